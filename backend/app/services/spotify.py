"""Spotify Web API player controller used behind the ``spotify`` snippet binding.

Token acquisition (OAuth) happens elsewhere; this class is handed a ready access token.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from app.config import settings

logger = logging.getLogger(__name__)


class MusicServiceError(Exception):
    """The music service rejected or failed a request."""


class SpotifyController:
    def __init__(
        self,
        access_token: str,
        *,
        client: httpx.AsyncClient | None = None,
        api_base: str | None = None,
        authorize_url: str | None = None,
    ) -> None:
        self._token = access_token
        self._client = client
        self._base = (api_base or settings.spotify_api_base).rstrip("/")
        self._authorize_url = authorize_url

    def authorize_url(self) -> str | None:
        return self._authorize_url

    async def now_playing(self) -> dict[str, Any] | None:
        response = await self._request("GET", "/me/player/currently-playing")
        if response.status_code == 204:
            return None
        data = response.json()
        item = data.get("item")
        if not item:
            return None
        images = item.get("album", {}).get("images") or [{}]
        return {
            "name": item.get("name"),
            "artist": ", ".join(a.get("name", "") for a in item.get("artists", [])),
            "album": item.get("album", {}).get("name"),
            "albumArt": images[0].get("url"),
            "duration": item.get("duration_ms"),
            "progress": data.get("progress_ms"),
            "isPlaying": bool(data.get("is_playing")),
            "uri": item.get("uri"),
        }

    async def control(self, action: str, value: Any = None) -> None:
        method, path, params, body = "PUT", "/me/player", None, None
        if action == "play":
            path += "/play"
            if value:
                body = {"uris": [value]}
        elif action == "pause":
            path += "/pause"
        elif action == "next":
            method, path = "POST", path + "/next"
        elif action == "previous":
            method, path = "POST", path + "/previous"
        elif action == "shuffle":
            path += "/shuffle"
            params = {"state": "false" if value is False else "true"}
        elif action == "volume":
            path += "/volume"
            params = {"volume_percent": int(value if value is not None else 50)}
        else:
            raise MusicServiceError(f"Invalid action {action!r}")
        await self._request(method, path, params=params, json=body)

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._token}"}
        kwargs = {k: v for k, v in kwargs.items() if v is not None}
        try:
            if self._client is not None:
                response = await self._client.request(method, self._base + path, headers=headers, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=10.0) as client:
                    response = await client.request(method, self._base + path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise MusicServiceError(f"music service unreachable: {e}") from e

        if response.status_code == 401:
            raise MusicServiceError("Token expired")
        if response.status_code == 404:
            raise MusicServiceError("No active device found. Open Spotify on a device first.")
        if response.status_code >= 400:
            raise MusicServiceError(f"Playback control failed ({response.status_code})")
        return response
