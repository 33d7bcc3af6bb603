"""Shared test fixtures."""

from __future__ import annotations

import itertools

import numpy as np
import pytest
from langchain_core.messages import AIMessage

from app.models.scene import SceneElement
from app.scene.store import SceneStore
from app.services.image_generation import GenerationError


# Sample actions and elements

MUSHROOM_ADD = {
    "type": "add",
    "data": {
        "id": "e1",
        "type": "symbolic-glyph",
        "content": "🍄",
        "position": {"x": 50, "y": 30},
        "size": 40,
        "color": "#33ff00",
    },
}

SPARKLE_CODE = """\
sparkles = []
for i in range(3):
    sparkles.append({
        "id": "sparkle-" + str(i),
        "type": "emoji",
        "content": "✨",
        "position": {"x": element["position"]["x"] + i, "y": element["position"]["y"]},
        "size": 20,
    })
set_elements(lambda prev: prev + sparkles)
"""

POPUP_CODE = 'set_popup({"type": "text", "content": "Hello " + element["content"]})'


def make_element(element_id: str, content: str = "🍄", x: float = 50, y: float = 30, **extra) -> SceneElement:
    return SceneElement(id=element_id, content=content, position={"x": x, "y": y}, **extra)


def id_factory(prefix: str = "new"):
    counter = itertools.count(1)
    return lambda: f"{prefix}-{next(counter)}"


# Fakes for collaborators


class ScriptedModel:
    """Chat model stand-in: returns the queued AIMessages in order and records what it saw."""

    def __init__(self, responses: list[AIMessage]) -> None:
        self._responses = list(responses)
        self.calls: list[list] = []

    async def ainvoke(self, messages):
        self.calls.append(list(messages))
        if not self._responses:
            raise AssertionError("ScriptedModel ran out of responses")
        return self._responses.pop(0)


def tool_call(name: str, args: dict, call_id: str | None = None) -> dict:
    return {"name": name, "args": args, "id": call_id or f"call-{name}", "type": "tool_call"}


def tool_message(*calls: dict, text: str = "") -> AIMessage:
    return AIMessage(content=text, tool_calls=list(calls))


class FakeImageGenerator:
    def __init__(self, url: str = "https://img.example/cat.png", fail: bool = False) -> None:
        self.url = url
        self.fail = fail
        self.prompts: list[tuple[str, str]] = []

    async def generate(self, prompt: str, style: str = "cutout") -> str:
        self.prompts.append((prompt, style))
        if self.fail:
            raise GenerationError("service down")
        return self.url


class FakeMusicController:
    def __init__(self, track: dict | None = None) -> None:
        self.track = track
        self.actions: list[tuple[str, object]] = []

    async def now_playing(self):
        return self.track

    async def control(self, action, value=None):
        self.actions.append((action, value))

    def authorize_url(self):
        return "https://accounts.example/authorize"


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(7)


@pytest.fixture
def store(rng) -> SceneStore:
    return SceneStore(rng=rng, new_id=id_factory())


@pytest.fixture
def image_generator() -> FakeImageGenerator:
    return FakeImageGenerator()
