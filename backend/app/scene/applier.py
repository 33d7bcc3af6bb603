"""Action applier — folds typed SceneActions into a scene state, one at a time.

``apply_action`` is pure: it never mutates the state it receives and takes its only
sources of nondeterminism (the scatter RNG and the id factory) as arguments. Target
misses are silent no-ops; the model routinely guesses at scene contents.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from typing import Any

import numpy as np
from pydantic import ValidationError

from app.models.actions import (
    AddAction,
    AttachCapabilityAction,
    DuplicateAction,
    FinishAction,
    ModifyAction,
    ModifyBackgroundAction,
    RemoveAction,
    ReplaceWithImageAction,
    SceneAction,
    StartGeneratingAction,
    StopGeneratingAction,
    parse_action,
)
from app.models.scene import (
    AttachedCapability,
    BackgroundConfig,
    ElementKind,
    Position,
    SceneElement,
    new_element_id,
)
from app.scene.targeting import resolve_target_element, resolve_targets

logger = logging.getLogger(__name__)

# Usable canvas rectangle for duplicates; the bottom strip is reserved for the chat bar
X_RANGE = (0.0, 100.0)
Y_RANGE = (0.0, 65.0)
SCATTER_SPREAD = 30.0


@dataclass(frozen=True)
class SceneState:
    elements: tuple[SceneElement, ...] = ()
    background: BackgroundConfig = field(default_factory=BackgroundConfig)
    capabilities: tuple[AttachedCapability, ...] = ()
    generating: frozenset[str] = frozenset()
    background_generating: bool = False


@dataclass(frozen=True)
class FinishIntent:
    """Terminal intent: persist the scene as a room and move the user on."""

    room_name: str


@dataclass
class ApplyResult:
    state: SceneState
    effects: list[FinishIntent] = field(default_factory=list)


def clamp(value: float, bounds: tuple[float, float]) -> float:
    lo, hi = bounds
    return max(lo, min(hi, value))


def apply_action(
    state: SceneState,
    action: SceneAction,
    *,
    rng: np.random.Generator,
    new_id: Callable[[], str] = new_element_id,
) -> ApplyResult:
    """Apply one action and return the next state plus any side-effect intents."""
    if isinstance(action, AddAction):
        return ApplyResult(_apply_add(state, action, new_id))
    if isinstance(action, RemoveAction):
        return ApplyResult(_apply_remove(state, action))
    if isinstance(action, ModifyAction):
        return ApplyResult(_apply_modify(state, action))
    if isinstance(action, DuplicateAction):
        return ApplyResult(_apply_duplicate(state, action, rng, new_id))
    if isinstance(action, AttachCapabilityAction):
        return ApplyResult(_apply_attach(state, action))
    if isinstance(action, StartGeneratingAction):
        return ApplyResult(_apply_start_generating(state, action))
    if isinstance(action, StopGeneratingAction):
        return ApplyResult(_apply_stop_generating(state, action))
    if isinstance(action, ReplaceWithImageAction):
        return ApplyResult(_apply_replace_with_image(state, action))
    if isinstance(action, ModifyBackgroundAction):
        return ApplyResult(_apply_background(state, action))
    if isinstance(action, FinishAction):
        return ApplyResult(state, [FinishIntent(room_name=action.data.room_name)])

    logger.warning("Unhandled action type %r, skipping", getattr(action, "type", action))
    return ApplyResult(state)


def apply_actions(
    state: SceneState,
    actions: Iterable[SceneAction | dict[str, Any]],
    *,
    rng: np.random.Generator,
    new_id: Callable[[], str] = new_element_id,
) -> ApplyResult:
    """Apply actions strictly in order. A malformed action is logged and skipped alone."""
    effects: list[FinishIntent] = []
    for raw in actions:
        try:
            action = parse_action(raw)
        except ValidationError as e:
            logger.warning("Malformed scene action skipped: %s", e.errors()[:1])
            continue
        result = apply_action(state, action, rng=rng, new_id=new_id)
        state = result.state
        effects.extend(result.effects)
    return ApplyResult(state, effects)


# ---------------------------------------------------------------------------
# Per-action helpers
# ---------------------------------------------------------------------------

def build_element(fields: dict[str, Any], new_id: Callable[[], str] = new_element_id) -> SceneElement:
    """Construct an element from a partial wire dict, filling documented defaults."""
    fields = {k: v for k, v in fields.items() if v is not None}
    fields.setdefault("id", new_id())
    return SceneElement.model_validate(fields)


def _apply_add(state: SceneState, action: AddAction, new_id: Callable[[], str]) -> SceneState:
    fields = action.data.model_dump(by_alias=True, exclude_none=True)
    try:
        element = build_element(fields, new_id)
    except ValidationError as e:
        logger.warning("add: invalid element data, skipping: %s", e.errors()[:1])
        return state
    return replace(state, elements=state.elements + (element,))


def _apply_remove(state: SceneState, action: RemoveAction) -> SceneState:
    target = action.data.target
    if target == "all":
        # Capabilities of removed elements stay behind as orphans
        return replace(state, elements=())
    doomed = set(resolve_targets(state.elements, target, action.data.match))
    if not doomed:
        logger.debug("remove: no element matched %s/%r", target, action.data.match)
        return state
    return replace(state, elements=tuple(el for el in state.elements if el.id not in doomed))


def merge_changes(element: SceneElement, changes: dict[str, Any]) -> SceneElement:
    """Merge a change set onto an element. ``x``/``y`` become a position update only."""
    changes = dict(changes)
    x = changes.pop("x", None)
    y = changes.pop("y", None)
    merged = element.model_dump(by_alias=True)
    merged.update(changes)
    if x is not None or y is not None:
        merged["position"] = {
            "x": x if x is not None else element.position.x,
            "y": y if y is not None else element.position.y,
        }
    return SceneElement.model_validate(merged)


def _apply_modify(state: SceneState, action: ModifyAction) -> SceneState:
    ids = set(resolve_targets(state.elements, action.data.target, action.data.match))
    if not ids:
        logger.debug("modify: no element matched %s/%r", action.data.target, action.data.match)
        return state

    updated: list[SceneElement] = []
    for el in state.elements:
        if el.id in ids:
            try:
                el = merge_changes(el, action.data.changes)
            except ValidationError as e:
                logger.warning("modify: changes rejected for %s: %s", el.id, e.errors()[:1])
        updated.append(el)
    return replace(state, elements=tuple(updated))


def _apply_duplicate(
    state: SceneState,
    action: DuplicateAction,
    rng: np.random.Generator,
    new_id: Callable[[], str],
) -> SceneState:
    data = action.data
    ids = resolve_targets(
        state.elements, data.target, data.match, single=True, occurrence=data.occurrence
    )
    if not ids:
        logger.debug("duplicate: no source matched %s/%r", data.target, data.match)
        return state
    source = next(el for el in state.elements if el.id == ids[0])

    copies: list[SceneElement] = []
    for i in range(data.count):
        if data.scatter:
            dx, dy = (rng.random(2) - 0.5) * SCATTER_SPREAD
        else:
            dx = dy = 2.0 * (i + 1)
        position = Position(
            x=clamp(source.position.x + float(dx), X_RANGE),
            y=clamp(source.position.y + float(dy), Y_RANGE),
        )
        copies.append(source.model_copy(update={"id": new_id(), "position": position}))
    return replace(state, elements=state.elements + tuple(copies))


def _apply_attach(state: SceneState, action: AttachCapabilityAction) -> SceneState:
    data = action.data
    element_id = resolve_target_element(state.elements, data.target_element, data.occurrence)
    if element_id is None:
        logger.debug("attachCapability: no element matched %r", data.target_element)
        return state
    capability = AttachedCapability(
        element_id=element_id,
        trigger=data.trigger,
        code=data.code,
        capability_id=data.capability_id,
        name=data.name,
    )
    return replace(state, capabilities=state.capabilities + (capability,))


def _apply_start_generating(state: SceneState, action: StartGeneratingAction) -> SceneState:
    data = action.data
    # last or matching only
    if data.target not in ("last", "matching"):
        logger.debug("startGenerating: unsupported target %r ignored", data.target)
        return state
    ids = resolve_targets(state.elements, data.target, data.match)
    return replace(state, generating=state.generating | set(ids))


def _apply_stop_generating(state: SceneState, action: StopGeneratingAction) -> SceneState:
    data = action.data
    ids: set[str] = set()
    if data.element_id:
        ids.add(data.element_id)
    if data.target:
        ids.update(resolve_targets(state.elements, data.target, data.match))
    return replace(state, generating=state.generating - ids)


def _apply_replace_with_image(state: SceneState, action: ReplaceWithImageAction) -> SceneState:
    data = action.data
    ids = set(resolve_targets(state.elements, data.target, data.match))
    if not ids:
        logger.debug("replaceWithImage: no element matched %s/%r", data.target, data.match)
        return state

    updated = tuple(
        el.model_copy(update={"type": ElementKind.IMAGE, "content": data.image_url or "", "size": data.size})
        if el.id in ids
        else el
        for el in state.elements
    )
    return replace(state, elements=updated, generating=state.generating - ids)


def _apply_background(state: SceneState, action: ModifyBackgroundAction) -> SceneState:
    data = action.data
    background = state.background.model_copy(update=data.changes())
    flag = state.background_generating if data.generating is None else data.generating
    return replace(state, background=background, background_generating=flag)
