"""Tests for the bounded tool-calling loop."""

from __future__ import annotations

import asyncio

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from app.agent import handlers
from app.agent.handlers import ToolContext
from app.agent.orchestrator import (
    FAILURE_REPLY,
    ToolRoundLimitExceeded,
    TurnTimeout,
    extract_text,
    run_scene_turn,
    run_turn,
)
from app.scene.session import SceneSession
from app.scene.store import SceneStore
from app.storage.capabilities import CapabilityStore
from tests.conftest import ScriptedModel, id_factory, make_element, tool_call, tool_message


@pytest.fixture
def ctx(tmp_path, image_generator):
    return ToolContext(
        capability_store=CapabilityStore(tmp_path),
        image_generator=image_generator,
        new_id=id_factory("el"),
    )


def _turn(model, ctx, message="hi", history=None, **kwargs):
    return asyncio.run(run_turn(model, message, history or [], ctx, system_prompt="SYSTEM", **kwargs))


class TestRunTurn:
    def test_plain_reply(self, ctx):
        model = ScriptedModel([AIMessage(content="Hello there!")])
        result = _turn(model, ctx)
        assert result.response == "Hello there!"
        assert result.actions == []
        assert result.tool_rounds == 0

    def test_history_precedes_message(self, ctx):
        model = ScriptedModel([AIMessage(content="ok")])
        history = [{"role": "user", "content": "first"}, {"role": "assistant", "content": "sure"}]
        _turn(model, ctx, message="second", history=history)
        (seen,) = model.calls
        assert isinstance(seen[0], SystemMessage)
        assert seen[0].content == "SYSTEM"
        assert [m.content for m in seen[1:]] == ["first", "sure", "second"]
        assert isinstance(seen[-1], HumanMessage)

    def test_tool_calls_run_in_order_and_results_fed_back(self, ctx):
        model = ScriptedModel([
            tool_message(
                tool_call("add_element", {"content": "🍄"}, "c1"),
                tool_call("duplicate_element", {"target": "last", "count": 2}, "c2"),
            ),
            AIMessage(content="Two more mushrooms!"),
        ])
        result = _turn(model, ctx)
        assert result.response == "Two more mushrooms!"
        assert [a.type for a in result.actions] == ["add", "duplicate"]
        assert result.tool_rounds == 1

        second_call = model.calls[1]
        tool_results = [m for m in second_call if isinstance(m, ToolMessage)]
        assert [m.tool_call_id for m in tool_results] == ["c1", "c2"]
        assert tool_results[0].content == "Added emoji: 🍄"

    def test_empty_final_text_defaults(self, ctx):
        model = ScriptedModel([tool_message(tool_call("remove_elements", {"target": "all"})), AIMessage(content="")])
        assert _turn(model, ctx).response == "Done!"

    def test_round_limit(self, ctx):
        looping = [tool_message(tool_call("remove_elements", {"target": "last"}, f"c{i}")) for i in range(5)]
        with pytest.raises(ToolRoundLimitExceeded):
            _turn(ScriptedModel(looping), ctx, max_rounds=2)

    def test_timeout(self, ctx):
        class SlowModel:
            async def ainvoke(self, messages):
                await asyncio.sleep(1)
                return AIMessage(content="too late")

        with pytest.raises(TurnTimeout):
            _turn(SlowModel(), ctx, timeout=0.05)

    def test_handler_exception_is_contained(self, ctx, monkeypatch):
        async def broken(args, ctx):
            raise RuntimeError("kaboom")

        monkeypatch.setitem(handlers.HANDLERS, "remove_elements", broken)
        model = ScriptedModel([
            tool_message(
                tool_call("remove_elements", {"target": "all"}, "c1"),
                tool_call("add_element", {"content": "🌵"}, "c2"),
            ),
            AIMessage(content="recovered"),
        ])
        result = _turn(model, ctx)
        assert result.response == "recovered"
        assert [a.type for a in result.actions] == ["add"]
        errors = [m.content for m in model.calls[1] if isinstance(m, ToolMessage)]
        assert errors[0] == "Error executing tool 'remove_elements': kaboom"


def test_extract_text_from_content_blocks():
    message = AIMessage(content=[{"type": "text", "text": "Hi "}, {"type": "tool_use", "id": "x"}, {"type": "text", "text": "there"}])
    assert extract_text(message) == "Hi there"
    assert extract_text(AIMessage(content="   ")) == "Done!"


class TestRunSceneTurn:
    def test_actions_are_applied_to_session(self, ctx, rng):
        session = SceneSession("c1", store=SceneStore(rng=rng))
        model = ScriptedModel([
            tool_message(tool_call("add_element", {"content": "🍄"})),
            AIMessage(content="A mushroom appears."),
        ])
        response, actions, update = asyncio.run(run_scene_turn(session, "add a mushroom", [], model=model, ctx=ctx))
        assert response == "A mushroom appears."
        assert len(actions) == 1
        assert update is not None
        assert [el.content for el in session.store.elements] == ["🍄"]

    def test_system_prompt_describes_scene(self, ctx, rng):
        session = SceneSession("c1", store=SceneStore(rng=rng))
        session.store.replace_elements([make_element("a", "🦊")])
        model = ScriptedModel([AIMessage(content="ok")])
        asyncio.run(run_scene_turn(session, "hi", [], model=model, ctx=ctx))
        assert "🦊" in model.calls[0][0].content

    def test_corrupt_capability_file_does_not_break_the_turn(self, ctx, rng, tmp_path):
        (tmp_path / "capabilities.json").write_text("{not json", encoding="utf-8")
        session = SceneSession("c1", store=SceneStore(rng=rng))
        model = ScriptedModel([AIMessage(content="Still here.")])
        response, actions, update = asyncio.run(run_scene_turn(session, "hi", [], model=model, ctx=ctx))
        assert response == "Still here."
        assert actions == []

    def test_failure_clears_generating_and_returns_generic_reply(self, ctx, rng):
        session = SceneSession("c1", store=SceneStore(rng=rng))
        session.apply([
            {"type": "add", "data": {"id": "a", "content": "🐱"}},
            {"type": "startGenerating", "data": {"target": "last"}},
        ])
        assert session.store.generating == {"a"}

        class ExplodingModel:
            async def ainvoke(self, messages):
                raise ConnectionError("api unreachable")

        response, actions, update = asyncio.run(
            run_scene_turn(session, "make it real", [], model=ExplodingModel(), ctx=ctx)
        )
        assert response == FAILURE_REPLY
        assert actions == []
        assert update is None
        assert session.store.generating == frozenset()
