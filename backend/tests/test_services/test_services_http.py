"""Tests for the HTTP collaborators against httpx.MockTransport."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from app.services.image_generation import CUTOUT_SUFFIX, FalImageGenerator, GenerationError
from app.services.spotify import MusicServiceError, SpotifyController

MODEL_URL = "https://fal.test/flux"
BG_URL = "https://fal.test/birefnet"


def _generator(handler, api_key="secret"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return FalImageGenerator(api_key, client=client, model_url=MODEL_URL, background_removal_url=BG_URL)


class TestFalImageGenerator:
    def test_cutout_goes_through_background_removal(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((str(request.url), json.loads(request.content), request.headers["Authorization"]))
            if str(request.url) == MODEL_URL:
                return httpx.Response(200, json={"images": [{"url": "https://cdn.test/raw.png"}]})
            return httpx.Response(200, json={"image": {"url": "https://cdn.test/cut.png"}})

        url = asyncio.run(_generator(handler).generate("a fox"))
        assert url == "https://cdn.test/cut.png"
        assert seen[0][1]["prompt"] == "a fox" + CUTOUT_SUFFIX
        assert seen[0][2] == "Key secret"
        assert seen[1][1] == {"image_url": "https://cdn.test/raw.png"}

    def test_background_style_skips_removal(self):
        calls = []

        def handler(request):
            calls.append(str(request.url))
            return httpx.Response(200, json={"images": [{"url": "https://cdn.test/bg.png"}]})

        assert asyncio.run(_generator(handler).generate("clouds", "background")) == "https://cdn.test/bg.png"
        assert calls == [MODEL_URL]

    def test_failed_removal_keeps_original(self):
        def handler(request):
            if str(request.url) == MODEL_URL:
                return httpx.Response(200, json={"images": [{"url": "https://cdn.test/raw.png"}]})
            return httpx.Response(500)

        assert asyncio.run(_generator(handler).generate("a fox")) == "https://cdn.test/raw.png"

    @pytest.mark.parametrize(
        "response",
        [httpx.Response(503), httpx.Response(200, json={"images": []}), httpx.Response(200, text="nope")],
    )
    def test_service_failures_raise(self, response):
        with pytest.raises(GenerationError):
            asyncio.run(_generator(lambda request: response).generate("a fox", "realistic"))

    def test_missing_key(self):
        with pytest.raises(GenerationError, match="FAL_KEY"):
            asyncio.run(_generator(lambda request: httpx.Response(200), api_key="").generate("a fox"))


def _controller(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SpotifyController("tok", client=client, api_base="https://api.test/v1")


class TestSpotifyController:
    def test_now_playing_is_normalized(self):
        payload = {
            "is_playing": True,
            "progress_ms": 1200,
            "item": {
                "name": "Neon Lights",
                "uri": "spotify:track:1",
                "duration_ms": 200000,
                "artists": [{"name": "Synthwave Dreams"}, {"name": "Guest"}],
                "album": {"name": "Retro", "images": [{"url": "https://img.test/a.jpg"}]},
            },
        }
        track = asyncio.run(_controller(lambda r: httpx.Response(200, json=payload)).now_playing())
        assert track["name"] == "Neon Lights"
        assert track["artist"] == "Synthwave Dreams, Guest"
        assert track["albumArt"] == "https://img.test/a.jpg"
        assert track["isPlaying"] is True

    def test_nothing_playing(self):
        assert asyncio.run(_controller(lambda r: httpx.Response(204)).now_playing()) is None

    @pytest.mark.parametrize(
        "action,value,method,path,query",
        [
            ("play", None, "PUT", "/v1/me/player/play", ""),
            ("pause", None, "PUT", "/v1/me/player/pause", ""),
            ("next", None, "POST", "/v1/me/player/next", ""),
            ("shuffle", False, "PUT", "/v1/me/player/shuffle", "state=false"),
            ("volume", 30, "PUT", "/v1/me/player/volume", "volume_percent=30"),
        ],
    )
    def test_control_requests(self, action, value, method, path, query):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(204)

        asyncio.run(_controller(handler).control(action, value))
        (request,) = seen
        assert request.method == method
        assert request.url.path == path
        assert request.url.query.decode() == query
        assert request.headers["Authorization"] == "Bearer tok"

    @pytest.mark.parametrize(
        "status,message",
        [(401, "Token expired"), (404, "No active device"), (500, "Playback control failed")],
    )
    def test_error_mapping(self, status, message):
        with pytest.raises(MusicServiceError, match=message):
            asyncio.run(_controller(lambda r: httpx.Response(status)).control("pause"))

    def test_invalid_action(self):
        with pytest.raises(MusicServiceError, match="Invalid action"):
            asyncio.run(_controller(lambda r: httpx.Response(204)).control("rewind"))
