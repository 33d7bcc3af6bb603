"""API response models."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from app.models.capability import ExecutionResult
from app.models.room import RoomRecord
from app.models.scene import AttachedCapability, BackgroundConfig, SceneElement, WireModel


class HealthResponse(WireModel):
    status: str = "ok"
    version: str = "0.1.0"
    tools_registered: int = 0


class ExecuteResponse(WireModel):
    response: str
    actions: list[dict[str, Any]] = Field(default_factory=list)
    executions: list[ExecutionResult] = Field(default_factory=list)
    room: RoomRecord | None = None
    navigate: str | None = None


class SceneResponse(WireModel):
    elements: list[SceneElement] = Field(default_factory=list)
    background: BackgroundConfig = Field(default_factory=BackgroundConfig)
    capabilities: list[AttachedCapability] = Field(default_factory=list)
    generating: list[str] = Field(default_factory=list)
    background_generating: bool = False
    saved_at: float | None = None


class DragResponse(WireModel):
    element: SceneElement | None = None
    result: ExecutionResult = Field(default_factory=ExecutionResult)
