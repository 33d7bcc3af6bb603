"""Scene sessions — one live canvas: store, executor, autosave, load/interval triggers.

The session is where the pure applier meets side effects. After a batch of actions is
dispatched it fires ``load`` capabilities that were attached by that batch, turns
``finish`` intents into a persisted room, and lets the autosaver know the scene moved.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from app.capabilities.executor import CapabilityExecutor
from app.capabilities.integration import MusicIntegration
from app.config import settings
from app.models.actions import SceneAction
from app.models.capability import ExecutionResult
from app.models.room import RoomRecord
from app.scene.applier import FinishIntent, SceneState
from app.scene.store import SceneStore
from app.storage.autosave import Autosaver
from app.storage.rooms import RoomStore, SceneRepository

logger = logging.getLogger(__name__)

WORLD_ROUTE = "/world"


@dataclass
class SessionUpdate:
    """What the rendering surface needs to hear after actions were applied."""

    executions: list[ExecutionResult] = field(default_factory=list)
    room: RoomRecord | None = None
    navigate: str | None = None


class SceneSession:
    def __init__(
        self,
        canvas_id: str,
        *,
        store: SceneStore | None = None,
        repository: SceneRepository | None = None,
        room_store: RoomStore | None = None,
        integration: MusicIntegration | None = None,
        rng: np.random.Generator | None = None,
        autosave_delay: float | None = None,
        interval_seconds: float | None = None,
    ) -> None:
        self.canvas_id = canvas_id
        self.store = store or SceneStore(rng=rng)
        self.executor = CapabilityExecutor(self.store, integration=integration)
        self._repository = repository
        self._room_store = room_store
        self._interval = interval_seconds or settings.interval_tick_seconds
        self._ticker: asyncio.Task | None = None
        delay = settings.autosave_delay_seconds if autosave_delay is None else autosave_delay
        self.autosaver = Autosaver(self._save, delay)
        self.store.subscribe(self._on_change)

    # -- actions -----------------------------------------------------------

    def apply(self, actions: Iterable[SceneAction | dict[str, Any]]) -> SessionUpdate:
        before = self.store.state
        result = self.store.dispatch(actions)
        update = SessionUpdate()

        for capability in self._newly_attached(before, result.state):
            if capability.trigger == "load":
                update.executions.append(self.executor.run(capability))

        for effect in result.effects:
            if isinstance(effect, FinishIntent):
                update.room = self.finish(effect.room_name)
                update.navigate = WORLD_ROUTE
        return update

    def finish(self, room_name: str) -> RoomRecord | None:
        """Persist the current scene as a room. Failures are logged; the scene is kept."""
        if self._room_store is None:
            logger.warning("finish(%r) with no room store configured", room_name)
            return None
        self.autosaver.flush()
        try:
            return self._room_store.create(room_name, self.store.snapshot())
        except OSError:
            logger.exception("Failed to save room %r", room_name)
            return None

    @staticmethod
    def _newly_attached(before: SceneState, after: SceneState):
        seen = set(map(id, before.capabilities))
        return [c for c in after.capabilities if id(c) not in seen]

    # -- triggers ----------------------------------------------------------

    def trigger(self, element_id: str, trigger: str, event: dict[str, Any] | None = None) -> ExecutionResult:
        return self.executor.execute(element_id, trigger, event)

    def drag(self, element_id: str, x: float, y: float, phase: str) -> ExecutionResult:
        if phase == "move":
            self.store.move_element(element_id, x, y)
        return self.executor.execute(element_id, "drag", {"phase": phase, "x": x, "y": y})

    def tick_intervals(self) -> list[ExecutionResult]:
        """Fire every ``interval`` capability once."""
        return [
            self.executor.run(c) for c in self.store.capabilities if c.trigger == "interval"
        ]

    def ensure_ticker(self) -> None:
        """Start the interval ticker on the running loop if it isn't running yet."""
        if self._ticker is not None and not self._ticker.done():
            return
        self._ticker = asyncio.get_running_loop().create_task(self._tick_forever())

    async def _tick_forever(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self.tick_intervals()
            except Exception:
                logger.exception("Interval tick failed on canvas %s", self.canvas_id)

    # -- failure / lifecycle ----------------------------------------------

    def clear_generating(self) -> None:
        self.store.clear_generating()

    def reset(self) -> None:
        """Empty the scene and forget its saved copy, so a reload starts blank too."""
        self.store.reset()
        self.autosaver.cancel()
        if self._repository is None:
            return
        try:
            self._repository.delete(self.canvas_id)
        except OSError:
            logger.exception("Could not delete saved scene %s", self.canvas_id)

    async def close(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            try:
                await self._ticker
            except asyncio.CancelledError:
                pass
            self._ticker = None
        self.autosaver.flush()

    # -- persistence -------------------------------------------------------

    def _on_change(self, store: SceneStore, old: SceneState, new: SceneState) -> None:
        if self._repository is not None:
            self.autosaver.schedule()

    def _save(self) -> None:
        snapshot = self.store.snapshot()
        if not snapshot.has_content:
            return
        self._repository.save(self.canvas_id, snapshot)


class SessionRegistry:
    """Live sessions by canvas id, restored from the scene repository on first use."""

    def __init__(
        self,
        repository: SceneRepository | None = None,
        room_store: RoomStore | None = None,
        integration: MusicIntegration | None = None,
    ) -> None:
        self.repository = repository
        self.room_store = room_store
        self.integration = integration
        self._sessions: dict[str, SceneSession] = {}

    def get(self, canvas_id: str) -> SceneSession:
        session = self._sessions.get(canvas_id)
        if session is not None:
            return session

        session = SceneSession(
            canvas_id,
            repository=self.repository,
            room_store=self.room_store,
            integration=self.integration,
        )
        if self.repository is not None:
            try:
                snapshot = self.repository.load(canvas_id)
            except (OSError, ValueError):
                logger.exception("Could not restore scene %s, starting empty", canvas_id)
                snapshot = None
            if snapshot is not None:
                session.store.restore(snapshot)
                session.autosaver.cancel()
        self._sessions[canvas_id] = session
        return session

    def discard(self, canvas_id: str) -> None:
        self._sessions.pop(canvas_id, None)

    async def close_all(self) -> None:
        for session in list(self._sessions.values()):
            await session.close()
        self._sessions.clear()
