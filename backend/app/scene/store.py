"""Scene store — the single authoritative, in-memory scene for one canvas.

All mutation goes through the methods below; nothing outside this module assigns to
the state directly. Listeners are told about every committed change (autosave,
trigger bookkeeping). There is no locking: agent turns, drags and capability
snippets interleave on the event loop and the last writer wins.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import replace
from typing import Any

import numpy as np

from app.models.actions import SceneAction
from app.models.scene import (
    AttachedCapability,
    BackgroundConfig,
    SceneElement,
    SceneSnapshot,
    new_element_id,
)
from app.scene.applier import ApplyResult, SceneState, apply_actions, clamp

logger = logging.getLogger(__name__)

ChangeListener = Callable[["SceneStore", SceneState, SceneState], None]

DRAG_RANGE = (0.0, 100.0)


class SceneStore:
    """Holds one canvas's elements, background, capabilities and generating state."""

    def __init__(
        self,
        state: SceneState | None = None,
        *,
        rng: np.random.Generator | None = None,
        new_id: Callable[[], str] = new_element_id,
    ) -> None:
        self._state = state or SceneState()
        self._rng = rng if rng is not None else np.random.default_rng()
        self._new_id = new_id
        self._listeners: list[ChangeListener] = []

    # -- read side ---------------------------------------------------------

    @property
    def state(self) -> SceneState:
        return self._state

    @property
    def elements(self) -> tuple[SceneElement, ...]:
        return self._state.elements

    @property
    def background(self) -> BackgroundConfig:
        return self._state.background

    @property
    def capabilities(self) -> tuple[AttachedCapability, ...]:
        return self._state.capabilities

    @property
    def generating(self) -> frozenset[str]:
        return self._state.generating

    @property
    def background_generating(self) -> bool:
        return self._state.background_generating

    def get_element(self, element_id: str) -> SceneElement | None:
        return next((el for el in self._state.elements if el.id == element_id), None)

    # -- listeners ---------------------------------------------------------

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _commit(self, new_state: SceneState) -> None:
        old_state = self._state
        if new_state == old_state:
            return
        self._state = new_state
        for listener in list(self._listeners):
            try:
                listener(self, old_state, new_state)
            except Exception:
                logger.exception("Scene change listener failed")

    # -- documented mutations ---------------------------------------------

    def dispatch(self, actions: Iterable[SceneAction | dict[str, Any]]) -> ApplyResult:
        """Apply a batch of actions in receipt order and commit the result once."""
        result = apply_actions(self._state, actions, rng=self._rng, new_id=self._new_id)
        self._commit(result.state)
        return result

    def replace_elements(self, elements: Sequence[SceneElement]) -> None:
        """Swap the whole element list (capability snippets mutate only through this)."""
        self._commit(replace(self._state, elements=tuple(elements)))

    def attach_capability(self, capability: AttachedCapability) -> None:
        self._commit(replace(self._state, capabilities=self._state.capabilities + (capability,)))

    def move_element(self, element_id: str, x: float, y: float) -> SceneElement | None:
        """Drag gesture: reposition one draggable element, clamped to the canvas."""
        element = self.get_element(element_id)
        if element is None or not element.draggable:
            return None
        moved = element.model_copy(
            update={"position": element.position.model_copy(
                update={"x": clamp(x, DRAG_RANGE), "y": clamp(y, DRAG_RANGE)}
            )}
        )
        self.replace_elements([moved if el.id == element_id else el for el in self._state.elements])
        return moved

    def clear_generating(self) -> None:
        """Drop every generating flag (used when a turn fails at the top level)."""
        self._commit(replace(self._state, generating=frozenset(), background_generating=False))

    def reset(self) -> None:
        """Empty scene. The only operation that drops attached capabilities."""
        self._commit(SceneState())

    # -- persistence -------------------------------------------------------

    def snapshot(self) -> SceneSnapshot:
        return SceneSnapshot(
            elements=list(self._state.elements),
            background=self._state.background,
            capabilities=list(self._state.capabilities),
            saved_at=time.time(),
        )

    def restore(self, snapshot: SceneSnapshot) -> None:
        self._commit(
            SceneState(
                elements=tuple(snapshot.elements),
                background=snapshot.background,
                capabilities=tuple(snapshot.capabilities),
            )
        )

    @classmethod
    def from_snapshot(cls, snapshot: SceneSnapshot, **kwargs: Any) -> SceneStore:
        store = cls(**kwargs)
        store.restore(snapshot)
        return store
