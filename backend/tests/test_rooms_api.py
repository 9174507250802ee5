"""Tests for room creation and lookup endpoints."""

from __future__ import annotations

from syncwatch.config import settings
from syncwatch.services.icebreaker_service import DEFAULT_ICEBREAKERS

from conftest import UNPLAYABLE_VIDEO_ID, VIDEO_ID


class TestCreateRoom:
    def test_create_room(self, client) -> None:
        response = client.post("/api/rooms", json={"url": f"https://youtu.be/{VIDEO_ID}"})

        assert response.status_code == 201
        body = response.json()
        assert body["videoId"] == VIDEO_ID
        assert body["videoTitle"] == "Test Video"
        assert body["icebreakers"] == DEFAULT_ICEBREAKERS
        assert body["roomId"]

    def test_legacy_create(self, client) -> None:
        response = client.post("/create", json={"url": f"https://www.youtube.com/watch?v={VIDEO_ID}"})

        assert response.status_code == 200
        assert list(response.json()) == ["roomId"]

    def test_invalid_reference(self, client) -> None:
        response = client.post("/api/rooms", json={"url": "https://vimeo.com/1"})

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "VIDEO_001"

    def test_unplayable_video(self, client) -> None:
        response = client.post("/api/rooms", json={"url": UNPLAYABLE_VIDEO_ID})

        assert response.status_code == 400
        assert response.json()["error"] == "VIDEO_001"

    def test_missing_url(self, client) -> None:
        response = client.post("/api/rooms", json={})

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "VAL_001"
        assert body["status_code"] == 422
        assert [e["field"] for e in body["details"]["validation_errors"]] == ["url"]

    def test_rate_limited(self, client, monkeypatch) -> None:
        monkeypatch.setattr(settings, "ROOM_CREATE_RATE_LIMIT", 2)

        statuses = [
            client.post("/api/rooms", json={"url": VIDEO_ID}).status_code for _ in range(3)
        ]

        assert statuses == [201, 201, 429]
        response = client.post("/api/rooms", json={"url": VIDEO_ID})
        assert response.json()["error"] == "GEN_003"
        assert response.headers["Retry-After"] == "60"


class TestGetRoom:
    def test_get_room(self, client) -> None:
        room_id = client.post("/api/rooms", json={"url": VIDEO_ID}).json()["roomId"]

        response = client.get(f"/api/rooms/{room_id}")

        assert response.status_code == 200
        body = response.json()
        assert body["roomId"] == room_id
        assert body["videoTitle"] == "Test Video"
        assert body["participantCount"] == 0
        assert body["playerState"]["status"] == -1
        assert body["playerState"]["position"] == 0.0

    def test_unknown_room(self, client) -> None:
        response = client.get("/api/rooms/missing")

        assert response.status_code == 404
        assert response.json()["error"] == "ROOM_001"


class TestHealth:
    def test_health(self, client) -> None:
        client.post("/api/rooms", json={"url": VIDEO_ID})

        body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert body["relay"] == {"rooms": 1, "participants": 0}

    def test_ready(self, client) -> None:
        assert client.get("/ready").json() == {"status": "ready"}


class TestErrorBody:
    def test_unknown_route(self, client) -> None:
        response = client.get("/api/nowhere")

        assert response.status_code == 404
        assert response.json() == {
            "success": False,
            "error": "VAL_002",
            "message": "Not Found",
            "status_code": 404,
        }
