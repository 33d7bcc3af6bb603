"""Tests for the action applier (pure state transitions)."""

from __future__ import annotations

from typing import get_args

import numpy as np
import pytest

from app.models.scene import AttachedCapability, ElementKind, Trigger
from app.scene.applier import FinishIntent, SceneState, apply_actions
from tests.conftest import MUSHROOM_ADD, id_factory, make_element


def _apply(state: SceneState, *actions, seed: int = 0):
    return apply_actions(state, actions, rng=np.random.default_rng(seed), new_id=id_factory())


def _state(*elements, **kwargs) -> SceneState:
    return SceneState(elements=tuple(elements), **kwargs)


# ---------------------------------------------------------------------------
# End-to-end scenarios
# ---------------------------------------------------------------------------

class TestScenarios:
    def test_add_fills_defaults(self):
        result = _apply(SceneState(), MUSHROOM_ADD)
        assert len(result.state.elements) == 1
        el = result.state.elements[0]
        assert el.id == "e1"
        assert el.type == ElementKind.EMOJI
        assert el.content == "🍄"
        assert (el.position.x, el.position.y) == (50, 30)
        assert el.size == 40
        assert el.color == "#33ff00"
        assert el.animation == "none"
        assert el.draggable is True
        assert el.opacity == 1

    def test_duplicate_without_scatter_is_deterministic(self):
        state = _state(make_element("a", x=10, y=10))
        result = _apply(state, {"type": "duplicate", "data": {"target": "last", "count": 3, "scatter": False}})
        elements = result.state.elements
        assert len(elements) == 4
        assert [(e.position.x, e.position.y) for e in elements[1:]] == [(12, 12), (14, 14), (16, 16)]
        assert len({e.id for e in elements}) == 4

    def test_modify_matching_moves_only_x(self):
        state = _state(make_element("m", "🍄", x=20, y=25), make_element("c", "🐱", x=40, y=45))
        result = _apply(state, {"type": "modify", "data": {"target": "matching", "match": "🍄", "changes": {"x": 80}}})
        mushroom, cat = result.state.elements
        assert (mushroom.position.x, mushroom.position.y) == (80, 25)
        assert (cat.position.x, cat.position.y) == (40, 45)
        dumped = mushroom.model_dump()
        assert "x" not in dumped and "y" not in dumped

    def test_attach_to_missing_element_is_noop(self):
        state = _state(make_element("m", "🍄"))
        result = _apply(
            state,
            {"type": "attachCapability", "data": {"trigger": "click", "code": "pass", "targetElement": "🦄"}},
        )
        assert result.state.capabilities == ()
        assert result.state.elements == state.elements


# ---------------------------------------------------------------------------
# Per-action semantics
# ---------------------------------------------------------------------------

class TestAdd:
    def test_generates_id_when_absent(self):
        result = _apply(SceneState(), {"type": "add", "data": {"content": "🌵"}})
        el = result.state.elements[0]
        assert el.id == "new-1"
        assert (el.position.x, el.position.y) == (50, 30)
        assert el.size == 40

    def test_only_explicit_false_disables_drag(self):
        result = _apply(
            SceneState(),
            {"type": "add", "data": {"id": "a", "draggable": None}},
            {"type": "add", "data": {"id": "b", "draggable": False}},
        )
        a, b = result.state.elements
        assert a.draggable is True
        assert b.draggable is False

    def test_custom_props_are_kept(self):
        result = _apply(SceneState(), {"type": "add", "data": {"id": "a", "content": "hi", "glow": "soft"}})
        assert result.state.elements[0].model_extra["glow"] == "soft"

    def test_long_kind_names_are_accepted(self):
        result = _apply(SceneState(), {"type": "add", "data": {"id": "a", "type": "raster-image"}})
        assert result.state.elements[0].type == ElementKind.IMAGE


class TestRemove:
    def test_remove_all_leaves_capabilities(self):
        cap = AttachedCapability(element_id="a", trigger="click", code="pass")
        state = _state(make_element("a"), make_element("b"), capabilities=(cap,))
        result = _apply(state, {"type": "remove", "data": {"target": "all"}})
        assert result.state.elements == ()
        assert result.state.capabilities == (cap,)

    def test_remove_last(self):
        state = _state(make_element("a"), make_element("b"))
        result = _apply(state, {"type": "remove", "data": {"target": "last"}})
        assert [e.id for e in result.state.elements] == ["a"]

    def test_remove_matching_removes_every_match(self):
        state = _state(make_element("a", "🍄"), make_element("b", "🐱"), make_element("c", "🍄🍄"))
        result = _apply(state, {"type": "remove", "data": {"target": "matching", "match": "🍄"}})
        assert [e.id for e in result.state.elements] == ["b"]

    @pytest.mark.parametrize("data", [{"target": "matching"}, {"target": "matching", "match": ""}, {}])
    def test_missing_selector_is_noop(self, data):
        state = _state(make_element("a"))
        result = _apply(state, {"type": "remove", "data": data})
        assert result.state.elements == state.elements

    def test_remove_from_empty_scene(self):
        result = _apply(SceneState(), {"type": "remove", "data": {"target": "last"}})
        assert result.state.elements == ()


class TestModify:
    def test_modify_all(self):
        state = _state(make_element("a"), make_element("b"))
        result = _apply(state, {"type": "modify", "data": {"target": "all", "changes": {"color": "#ff0000"}}})
        assert all(e.color == "#ff0000" for e in result.state.elements)

    def test_invalid_changes_leave_element_unchanged(self):
        state = _state(make_element("a"))
        result = _apply(state, {"type": "modify", "data": {"target": "last", "changes": {"size": "huge"}}})
        assert result.state.elements == state.elements

    def test_y_only_keeps_x(self):
        state = _state(make_element("a", x=12, y=34))
        result = _apply(state, {"type": "modify", "data": {"target": "last", "changes": {"y": 5}}})
        pos = result.state.elements[0].position
        assert (pos.x, pos.y) == (12, 5)


class TestDuplicate:
    def test_matching_uses_first_match(self):
        state = _state(make_element("a", "🍄", x=10, y=10), make_element("b", "🍄", x=60, y=40))
        result = _apply(
            state, {"type": "duplicate", "data": {"target": "matching", "match": "🍄", "scatter": False}}
        )
        copy = result.state.elements[-1]
        assert (copy.position.x, copy.position.y) == (12, 12)

    def test_occurrence_hint_picks_later_match(self):
        state = _state(make_element("a", "🍄", x=10, y=10), make_element("b", "🍄", x=60, y=40))
        result = _apply(
            state,
            {"type": "duplicate", "data": {"target": "matching", "match": "🍄", "scatter": False, "occurrence": 1}},
        )
        copy = result.state.elements[-1]
        assert (copy.position.x, copy.position.y) == (62, 42)

    @pytest.mark.parametrize("count", [0, -3, None])
    def test_non_positive_count_means_one(self, count):
        state = _state(make_element("a"))
        result = _apply(state, {"type": "duplicate", "data": {"target": "last", "count": count}})
        assert len(result.state.elements) == 2

    def test_scatter_is_clamped(self):
        state = _state(make_element("a", x=99, y=64))
        result = _apply(state, {"type": "duplicate", "data": {"target": "last", "count": 20}}, seed=3)
        for copy in result.state.elements[1:]:
            assert 0 <= copy.position.x <= 100
            assert 0 <= copy.position.y <= 65

    def test_scatter_reproducible_with_seed(self):
        state = _state(make_element("a", x=50, y=30))
        action = {"type": "duplicate", "data": {"target": "last", "count": 4}}
        first = _apply(state, action, seed=11).state.elements
        second = _apply(state, action, seed=11).state.elements
        assert [e.position for e in first] == [e.position for e in second]

    def test_copies_keep_source_fields(self):
        state = _state(make_element("a", "🐟", color="#00f", animation="float"))
        result = _apply(state, {"type": "duplicate", "data": {"target": "last", "scatter": False}})
        copy = result.state.elements[-1]
        assert copy.content == "🐟"
        assert copy.color == "#00f"
        assert copy.animation == "float"
        assert copy.id != "a"

    def test_all_names_no_source(self):
        state = _state(make_element("a"), make_element("b"))
        result = _apply(state, {"type": "duplicate", "data": {"target": "all", "scatter": False}})
        assert [e.id for e in result.state.elements] == ["a", "b"]


class TestCapabilitiesAndGeneration:
    def test_attach_to_last(self):
        state = _state(make_element("a"), make_element("b"))
        result = _apply(state, {"type": "attachCapability", "data": {"trigger": "hover", "code": "pass"}})
        (cap,) = result.state.capabilities
        assert cap.element_id == "b"
        assert cap.trigger == "hover"

    def test_trigger_vocabulary(self):
        state = _state(make_element("a"))
        attach = [{"type": "attachCapability", "data": {"trigger": t, "code": "pass"}} for t in get_args(Trigger)]
        result = _apply(state, *attach, {"type": "attachCapability", "data": {"trigger": "doubleclick", "code": "pass"}})
        assert [c.trigger for c in result.state.capabilities] == ["click", "hover", "load", "interval", "drag"]

    def test_generating_lifecycle(self):
        state = _state(make_element("a", "🐱"), make_element("b", "🐶"))
        started = _apply(state, {"type": "startGenerating", "data": {"target": "matching", "match": "🐱"}})
        assert started.state.generating == {"a"}

        replaced = _apply(
            started.state,
            {"type": "replaceWithImage", "data": {"target": "matching", "match": "🐱", "imageUrl": "u.png"}},
        )
        cat = replaced.state.elements[0]
        assert cat.type == ElementKind.IMAGE
        assert cat.content == "u.png"
        assert cat.size == 150
        assert replaced.state.generating == frozenset()

    def test_stop_generating_by_id_and_by_target(self):
        state = _state(make_element("a", "🐱"), make_element("b", "🐶"), generating=frozenset({"a", "b"}))
        by_id = _apply(state, {"type": "stopGenerating", "data": {"elementId": "a"}})
        assert by_id.state.generating == {"b"}
        by_target = _apply(state, {"type": "stopGenerating", "data": {"target": "last"}})
        assert by_target.state.generating == {"a"}

    def test_start_generating_ignores_all(self):
        state = _state(make_element("a"), make_element("b"))
        result = _apply(state, {"type": "startGenerating", "data": {"target": "all"}})
        assert result.state.generating == frozenset()
        last = _apply(state, {"type": "startGenerating", "data": {"target": "last"}})
        assert last.state.generating == {"b"}


class TestBackgroundAndFinish:
    def test_background_merges_present_fields_only(self):
        result = _apply(SceneState(), {"type": "modifyBackground", "data": {"color": "#ff0000"}})
        bg = result.state.background
        assert bg.color == "#ff0000"
        assert bg.type == "grid"
        assert bg.size == 40
        assert bg.opacity == 0.05

    def test_generating_flag_not_stored_in_background(self):
        result = _apply(SceneState(), {"type": "modifyBackground", "data": {"generating": True}})
        assert result.state.background_generating is True
        assert "generating" not in result.state.background.model_dump()

        done = _apply(
            result.state,
            {"type": "modifyBackground", "data": {"type": "image", "imageUrl": "bg.png", "opacity": 0.3, "generating": False}},
        )
        assert done.state.background_generating is False
        assert done.state.background.image_url == "bg.png"

    def test_finish_emits_intent(self):
        result = _apply(SceneState(), {"type": "finish", "data": {"roomName": "Forest"}})
        assert result.effects == [FinishIntent(room_name="Forest")]


class TestBatch:
    def test_actions_apply_in_order(self):
        result = _apply(
            SceneState(),
            {"type": "add", "data": {"id": "a", "content": "🍄"}},
            {"type": "modify", "data": {"target": "last", "changes": {"size": 80}}},
            {"type": "duplicate", "data": {"target": "last", "scatter": False}},
        )
        assert [e.size for e in result.state.elements] == [80, 80]

    def test_malformed_action_is_skipped_alone(self):
        result = _apply(
            SceneState(),
            {"type": "explode", "data": {}},
            {"type": "attachCapability", "data": {}},
            {"type": "add", "data": {"id": "a"}},
        )
        assert [e.id for e in result.state.elements] == ["a"]

    def test_input_state_is_not_mutated(self):
        state = _state(make_element("a"))
        _apply(state, {"type": "remove", "data": {"target": "all"}})
        assert len(state.elements) == 1
