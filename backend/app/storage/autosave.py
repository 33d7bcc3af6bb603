"""Debounced autosave: one save after the scene has been quiet for ``delay`` seconds."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class Autosaver:
    """Trailing-edge debounce around a save callable. Save failures are logged, never raised."""

    def __init__(self, save: Callable[[], None], delay: float = 0.5) -> None:
        self._save = save
        self._delay = delay
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Outside the event loop (scripts, sync tests): save right away
            self._run()
            return
        self._handle = loop.call_later(self._delay, self._run)

    def flush(self) -> None:
        """Run a pending save now."""
        if self._handle is not None:
            self._handle.cancel()
            self._run()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _run(self) -> None:
        self._handle = None
        try:
            self._save()
        except Exception:
            logger.exception("Autosave failed")
