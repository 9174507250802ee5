"""
Icebreaker generation via the Gemini generateContent API.

Icebreakers are advisory: any failure falls back to a static list and is
only logged.
"""

import re
from typing import Optional

import httpx

from syncwatch.config import settings
from syncwatch.utils.logging_config import video_logger

ICEBREAKER_COUNT = 3
NUMBERED_ITEM = re.compile(r"\d+\.\s*(.+)")

DEFAULT_ICEBREAKERS = [
    "What do you think of the video so far?",
]

PROMPT_TEMPLATE = (
    "Based on the YouTube video title '{title}', generate exactly {count} short, fun, "
    "and engaging conversation starters or 'icebreakers' for a watch party. Format them "
    "as a numbered list, like '1. Question one?'. Do not add any extra introduction or conclusion."
)


def parse_icebreakers(raw: str) -> list[str]:
    """Numarali maddeleri cikar; hic yoksa bos olmayan satirlari don."""
    items = [match.strip() for match in NUMBERED_ITEM.findall(raw)]
    items = [item for item in items if item]
    if items:
        return items
    return [line.strip() for line in raw.splitlines() if line.strip()]


def _first(value, key: str):
    """``value[key][0]`` when both levels have the expected JSON shape."""
    if not isinstance(value, dict):
        return None
    items = value.get(key)
    if not isinstance(items, list) or not items:
        return None
    return items[0]


def _extract_text(data) -> Optional[str]:
    candidate = _first(data, "candidates")
    content = candidate.get("content") if isinstance(candidate, dict) else None
    part = _first(content, "parts")
    text = part.get("text") if isinstance(part, dict) else None
    return text if isinstance(text, str) else None


async def generate_icebreakers(title: str, client: Optional[httpx.AsyncClient] = None) -> list[str]:
    if not settings.GEMINI_API_KEY:
        return list(DEFAULT_ICEBREAKERS)

    body = {
        "contents": [
            {"parts": [{"text": PROMPT_TEMPLATE.format(title=title, count=ICEBREAKER_COUNT)}]}
        ]
    }
    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)

    try:
        response = await client.post(
            settings.GEMINI_API_URL,
            params={"key": settings.GEMINI_API_KEY},
            json=body,
        )
        response.raise_for_status()
        text = _extract_text(response.json())
    except (httpx.HTTPError, ValueError) as e:
        video_logger.warning(
            "Icebreaker generation failed, using defaults",
            extra={"video_title": title, "error": str(e)}
        )
        return list(DEFAULT_ICEBREAKERS)
    finally:
        if owns_client:
            await client.aclose()

    icebreakers = parse_icebreakers(text or "")
    if not icebreakers:
        video_logger.warning("Unexpected icebreaker response format", extra={"video_title": title})
        return list(DEFAULT_ICEBREAKERS)
    return icebreakers
