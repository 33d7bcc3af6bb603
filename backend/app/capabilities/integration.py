"""Integration context handed to capability snippets as ``spotify``.

Snippets only see the five members listed in ``sandbox_exposed``. The async work
behind ``connect``/``fetch_now_playing``/``control`` is scheduled on the running
loop and the call returns at once; a snippet never awaits.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)

CONTROL_ACTIONS = ("play", "pause", "next", "previous", "shuffle", "volume")


class MusicController(Protocol):
    """Whatever actually talks to the music service."""

    async def now_playing(self) -> dict[str, Any] | None: ...

    async def control(self, action: str, value: Any = None) -> None: ...

    def authorize_url(self) -> str | None: ...


class MusicIntegration:
    sandbox_exposed = frozenset({"is_connected", "track", "connect", "fetch_now_playing", "control"})

    def __init__(self, controller: MusicController | None = None) -> None:
        self._controller = controller
        self._track: dict[str, Any] | None = None
        self._pending: set[asyncio.Task] = set()
        self.connect_requests = 0

    @property
    def is_connected(self) -> bool:
        return self._controller is not None

    @property
    def track(self) -> dict[str, Any] | None:
        return dict(self._track) if self._track else None

    def connect(self) -> str | None:
        """Ask the user to link their account. Returns the authorization URL when known."""
        self.connect_requests += 1
        if self._controller is None:
            logger.info("Music connect requested but no controller is configured")
            return None
        return self._controller.authorize_url()

    def fetch_now_playing(self) -> None:
        if self._controller is None:
            return
        self._schedule(self._refresh())

    def control(self, action: str, value: Any = None) -> None:
        if action not in CONTROL_ACTIONS:
            raise ValueError(f"unknown music action {action!r}")
        if self._controller is None:
            logger.debug("Music control %s ignored, not connected", action)
            return
        self._schedule(self._control_then_refresh(action, value))

    # -- internals ---------------------------------------------------------

    async def _refresh(self) -> None:
        self._track = await self._controller.now_playing()

    async def _control_then_refresh(self, action: str, value: Any) -> None:
        await self._controller.control(action, value)
        await self._refresh()

    def _schedule(self, coro) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.warning("No running event loop, music call dropped")
            return
        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Music call failed: %s", exc)

    async def drain(self) -> None:
        """Wait for in-flight music calls (tests and shutdown)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
