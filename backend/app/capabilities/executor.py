"""Capability registry and executor for one scene store.

Capabilities live on the store (``SceneStore.capabilities``); this module looks them
up by exact ``(element_id, trigger)`` and runs their code in the sandbox interpreter
with exactly six bindings:

    element       dict copy of the element the trigger fired on
    elements      list of dict copies of the whole scene
    set_elements  replace the element list: a list, or ``lambda prev: ...``;
                  ``delay=<seconds>`` schedules the update on the event loop
    event         trigger payload (pointer position, drag phase, ...) or None
    set_popup     show a popup: {"type": "text"|"image", "content": ...} or None
    spotify       MusicIntegration context

A snippet that fails is logged and reported in the ExecutionResult; the executor and
the scene stay usable.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from app.capabilities.click_actions import run_click_action
from app.capabilities.integration import MusicIntegration
from app.capabilities.interpreter import Interpreter, SandboxError, parse_snippet
from app.config import settings
from app.models.capability import ExecutionResult
from app.models.scene import AttachedCapability, SceneElement, Trigger, new_element_id
from app.scene.store import SceneStore

logger = logging.getLogger(__name__)


@functools.lru_cache(maxsize=256)
def _compile(code: str):
    return parse_snippet(code)


class CapabilityExecutor:
    def __init__(
        self,
        store: SceneStore,
        *,
        integration: MusicIntegration | None = None,
        max_steps: int | None = None,
        new_id: Callable[[], str] = new_element_id,
    ) -> None:
        self._store = store
        self.integration = integration or MusicIntegration()
        self._max_steps = max_steps or settings.sandbox_max_steps
        self._new_id = new_id

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def attach(
        self,
        element_id: str,
        trigger: Trigger,
        code: str,
        *,
        capability_id: str | None = None,
        name: str | None = None,
    ) -> AttachedCapability:
        capability = AttachedCapability(
            element_id=element_id, trigger=trigger, code=code, capability_id=capability_id, name=name
        )
        self._store.attach_capability(capability)
        return capability

    def lookup(self, element_id: str, trigger: str) -> AttachedCapability | None:
        """First capability attached to exactly this (element, trigger) pair."""
        return next(
            (c for c in self._store.capabilities if c.element_id == element_id and c.trigger == trigger),
            None,
        )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute(self, element_id: str, trigger: str, event: dict[str, Any] | None = None) -> ExecutionResult:
        element = self._store.get_element(element_id)
        if element is None:
            logger.debug("Trigger %s on unknown element %s ignored", trigger, element_id)
            return ExecutionResult()

        capability = self.lookup(element_id, trigger)
        if capability is None:
            if trigger == "click" and element.click_action is not None:
                return self._run_click_action(element)
            return ExecutionResult()
        return self.run(capability, event)

    def run(self, capability: AttachedCapability, event: dict[str, Any] | None = None) -> ExecutionResult:
        """Run one specific capability (load triggers and interval ticks bypass lookup)."""
        element = self._store.get_element(capability.element_id)
        if element is None:
            logger.debug("Capability on missing element %s skipped", capability.element_id)
            return ExecutionResult()
        trigger, element_id = capability.trigger, capability.element_id

        result = ExecutionResult(executed=True)
        bindings = {
            "element": element.to_wire(),
            "elements": self._wire_elements(),
            "set_elements": self._make_set_elements(capability),
            "event": dict(event) if event else None,
            "set_popup": lambda popup=None: self._set_popup(result, popup),
            "spotify": self.integration,
        }
        try:
            tree = _compile(capability.code)
            Interpreter(bindings, max_steps=self._max_steps).run(tree)
        except SandboxError as e:
            logger.warning(
                "Capability %s (%s on %s) failed: %s",
                capability.name or capability.capability_id or "<inline>",
                trigger,
                element_id,
                e,
            )
            result.error = str(e)
        return result

    def _run_click_action(self, element: SceneElement) -> ExecutionResult:
        outcome = run_click_action(element, self._store.elements, self._new_id)
        if outcome.elements is not None:
            self._store.replace_elements(outcome.elements)
        return ExecutionResult(executed=True, popups=outcome.popups, effects=outcome.effects)

    # -- bindings ----------------------------------------------------------

    def _wire_elements(self) -> list[dict[str, Any]]:
        return [el.to_wire() for el in self._store.elements]

    def _make_set_elements(self, capability: AttachedCapability):
        def set_elements(value: Any, delay: float | None = None) -> None:
            if delay is None or delay <= 0:
                self._apply_update(value)
                return
            loop = asyncio.get_running_loop()
            loop.call_later(float(delay), self._apply_delayed, value, capability)

        return set_elements

    def _apply_update(self, value: Any) -> None:
        if callable(value):
            value = value(self._wire_elements())
        if not isinstance(value, (list, tuple)):
            raise SandboxError(f"set_elements expects a list, got {type(value).__name__}")
        try:
            elements = [
                el if isinstance(el, SceneElement) else SceneElement.model_validate(el)
                for el in value
            ]
        except ValidationError as e:
            raise SandboxError(f"set_elements got an invalid element: {e.errors()[:1]}") from e
        self._store.replace_elements(elements)

    def _apply_delayed(self, value: Any, capability: AttachedCapability) -> None:
        # Runs against whatever the store holds when the timer fires
        try:
            self._apply_update(value)
        except SandboxError as e:
            logger.warning("Delayed update from capability on %s failed: %s", capability.element_id, e)

    @staticmethod
    def _set_popup(result: ExecutionResult, popup: Any) -> None:
        if popup is None:
            result.popups.append({"type": "close"})
            return
        if isinstance(popup, str):
            popup = {"type": "text", "content": popup}
        if not isinstance(popup, dict):
            raise SandboxError("set_popup expects a dict, a string or None")
        result.popups.append(dict(popup))
