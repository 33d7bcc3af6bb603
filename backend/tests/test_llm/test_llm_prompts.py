"""Tests for prompt assembly, tool schemas and model selection."""

from __future__ import annotations

import pytest

from app.capabilities.interpreter import validate
from app.config import settings
from app.llm import client
from app.llm.client import LLMNotConfigured, build_chat_model, to_langchain_history
from app.llm.model_router import get_model_for_task
from app.llm.prompts import _CAPABILITY_GUIDE, build_scene_context, build_system_prompt
from app.llm.tools import TOOL_NAMES, TOOLS
from app.models.capability import CapabilityHandler, CapabilityRecord
from tests.conftest import make_element


def test_scene_context_lists_elements_and_capabilities():
    record = CapabilityRecord(
        name="popup", description="says hi", handler=CapabilityHandler(trigger="click", code="x = 1"), usage_count=3
    )
    context = build_scene_context([make_element("a", "🍄", x=20, y=35.5)], [record])
    assert "1 elements:" in context
    assert '- emoji: "🍄" at (20%, 35.5%)' in context
    assert "- popup: says hi (used 3 times)" in context


def test_system_prompt_ends_with_scene():
    prompt = build_system_prompt([])
    assert prompt.rstrip().endswith("Empty canvas.")
    assert "{" not in prompt.split("## Current Scene")[1]


def test_prompt_examples_pass_the_sandbox_check():
    examples = _CAPABILITY_GUIDE.replace("{{", "{").replace("}}", "}").split("```python\n")[1:]
    assert len(examples) == 2
    for example in examples:
        assert validate(example.split("```")[0]) is None


def test_tool_schemas():
    assert TOOL_NAMES == (
        "add_element",
        "remove_elements",
        "modify_elements",
        "duplicate_element",
        "create_capability",
        "execute_capability",
        "generate_image",
        "modify_background",
        "finish_onboarding",
    )
    for tool in TOOLS:
        assert tool["input_schema"]["type"] == "object"
        assert tool["description"]


def test_model_routing(monkeypatch):
    monkeypatch.setattr(settings, "model_mid", "mid-model")
    monkeypatch.setattr(settings, "model_cheap", "cheap-model")
    assert get_model_for_task("execute") == "mid-model"
    assert get_model_for_task("anything-else") == "cheap-model"


def test_missing_key_means_not_configured(monkeypatch):
    monkeypatch.setattr(client.settings, "anthropic_api_key", "")
    with pytest.raises(LLMNotConfigured):
        build_chat_model()


def test_history_conversion_skips_empty_turns():
    messages = to_langchain_history([
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": ""},
        {"role": "system", "content": "ignored"},
        {"role": "assistant", "content": "hello"},
    ])
    assert [(m.type, m.content) for m in messages] == [("human", "hi"), ("ai", "hello")]
