"""
YouTube video reference resolution.

URL veya ham video ID'sini 11 karakterlik YouTube ID'sine cevirir ve
oEmbed endpoint'inden video basligini alir.
"""

import re
from typing import Optional
from urllib.parse import parse_qs, urlparse

import httpx

from syncwatch.config import settings
from syncwatch.exceptions import ExternalServiceException, InvalidVideoReferenceException
from syncwatch.utils.logging_config import video_logger

VIDEO_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{11}$")
PATH_ID_PATTERN = re.compile(r"^/(?:embed|shorts|live|v)/([A-Za-z0-9_-]{11})")

YOUTUBE_HOSTS = {"youtube.com", "www.youtube.com", "m.youtube.com", "music.youtube.com"}
SHORT_HOSTS = {"youtu.be", "www.youtu.be"}


def extract_video_id(reference: str) -> str:
    """
    Desteklenen formatlar:
        https://www.youtube.com/watch?v=<id>
        https://youtu.be/<id>
        https://www.youtube.com/embed/<id> (ayrica /shorts/, /live/, /v/)
        <id>

    Raises:
        InvalidVideoReferenceException: referans bir video ID'sine cozulmuyorsa
    """
    raw = (reference or "").strip()
    if not raw:
        raise InvalidVideoReferenceException(reference or "", "Please paste a YouTube URL")

    if VIDEO_ID_PATTERN.match(raw):
        return raw

    candidate = raw if "://" in raw else f"https://{raw}"
    parsed = urlparse(candidate)
    host = (parsed.hostname or "").lower()

    video_id: Optional[str] = None
    if host in SHORT_HOSTS:
        video_id = parsed.path.lstrip("/").split("/")[0]
    elif host in YOUTUBE_HOSTS:
        if parsed.path == "/watch":
            video_id = (parse_qs(parsed.query).get("v") or [""])[0]
        else:
            match = PATH_ID_PATTERN.match(parsed.path)
            if match:
                video_id = match.group(1)

    if not video_id or not VIDEO_ID_PATTERN.match(video_id):
        raise InvalidVideoReferenceException(raw)
    return video_id


async def fetch_video_title(video_id: str, client: Optional[httpx.AsyncClient] = None) -> str:
    """
    oEmbed ile video basligini getir.

    Raises:
        InvalidVideoReferenceException: video yok, ozel veya gomulemez
        ExternalServiceException: oEmbed erisilemez
    """
    params = {"url": f"https://www.youtube.com/watch?v={video_id}", "format": "json"}
    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)

    try:
        response = await client.get(settings.YOUTUBE_OEMBED_URL, params=params)
    except httpx.HTTPError as e:
        video_logger.warning(
            "oEmbed request failed",
            extra={"video_id": video_id, "error": str(e)}
        )
        raise ExternalServiceException("YouTube oEmbed", "request failed") from e
    finally:
        if owns_client:
            await client.aclose()

    if response.status_code in (400, 401, 403, 404):
        raise InvalidVideoReferenceException(video_id, "Video is unavailable or cannot be embedded")
    if response.status_code != 200:
        raise ExternalServiceException(
            "YouTube oEmbed", f"unexpected status {response.status_code}"
        )

    try:
        data = response.json()
    except ValueError as e:
        raise ExternalServiceException("YouTube oEmbed", "malformed response") from e
    if not isinstance(data, dict):
        raise ExternalServiceException("YouTube oEmbed", "malformed response")
    title = data.get("title")
    if not isinstance(title, str):
        title = ""

    video_logger.info("Resolved video title", extra={"video_id": video_id, "video_title": title})
    return title
