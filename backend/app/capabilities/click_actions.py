"""Built-in click actions: the declarative fallback when no click capability is attached."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from app.models.scene import SceneElement, new_element_id
from app.scene.applier import build_element, merge_changes

logger = logging.getLogger(__name__)


@dataclass
class ClickOutcome:
    popups: list[dict[str, Any]] = field(default_factory=list)
    effects: list[dict[str, Any]] = field(default_factory=list)
    # None means the element list is untouched
    elements: list[SceneElement] | None = None


def _decode_json(payload: str | None, expected: type) -> Any:
    if not payload:
        return None
    try:
        value = json.loads(payload)
    except json.JSONDecodeError:
        logger.warning("Click action payload is not valid JSON: %.80s", payload)
        return None
    if not isinstance(value, expected):
        logger.warning("Click action payload has wrong shape: expected %s", expected.__name__)
        return None
    return value


def run_click_action(
    element: SceneElement,
    elements: Sequence[SceneElement],
    new_id: Callable[[], str] = new_element_id,
) -> ClickOutcome:
    """Interpret ``element.click_action`` against the current element list."""
    action = element.click_action
    outcome = ClickOutcome()
    if action is None:
        return outcome

    kind, payload = action.type, action.payload

    if kind == "showText":
        outcome.popups.append({"type": "text", "content": payload or ""})
    elif kind == "showImage":
        outcome.popups.append({"type": "image", "content": payload or ""})
    elif kind in ("playSound", "navigate"):
        outcome.effects.append({"type": kind, "payload": payload})
    elif kind == "removeThis":
        outcome.elements = [el for el in elements if el.id != element.id]
    elif kind == "addElements":
        items = _decode_json(payload, list) or []
        added: list[SceneElement] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            try:
                added.append(build_element(item, new_id))
            except ValidationError as e:
                logger.warning("addElements: skipping invalid element: %s", e.errors()[:1])
        if added:
            outcome.elements = list(elements) + added
    elif kind == "transform":
        changes = _decode_json(payload, dict)
        if changes:
            try:
                changed = merge_changes(element, changes)
            except ValidationError as e:
                logger.warning("transform: changes rejected for %s: %s", element.id, e.errors()[:1])
            else:
                outcome.elements = [changed if el.id == element.id else el for el in elements]
    return outcome
