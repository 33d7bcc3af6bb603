"""API request models."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field

from app.models.scene import BackgroundConfig, SceneElement, AttachedCapability, Trigger, WireModel


class ChatTurn(WireModel):
    role: Literal["user", "assistant"]
    content: str


class ExecuteRequest(WireModel):
    message: str = Field(..., description="What the user asked for")
    history: list[ChatTurn] = Field(
        default_factory=list,
        description="Earlier chat turns (role/content pairs)",
    )


class TriggerRequest(WireModel):
    element_id: str
    trigger: Trigger
    event: dict[str, Any] | None = None


class DragRequest(WireModel):
    element_id: str
    x: float
    y: float
    phase: Literal["start", "move", "end"] = "move"


class SceneRestoreRequest(WireModel):
    elements: list[SceneElement] = Field(default_factory=list)
    background: BackgroundConfig = Field(default_factory=BackgroundConfig)
    capabilities: list[AttachedCapability] = Field(default_factory=list)
