"""Room records written when a scene is finished."""

from __future__ import annotations

import secrets
from datetime import datetime, timezone
from typing import Literal

from pydantic import Field

from app.models.scene import AttachedCapability, BackgroundConfig, SceneElement, WireModel


class RoomConfig(WireModel):
    prompt: str
    elements: list[SceneElement] = Field(default_factory=list)
    background: BackgroundConfig = Field(default_factory=BackgroundConfig)
    capabilities: list[AttachedCapability] = Field(default_factory=list)
    status: Literal["ready"] = "ready"


class RoomRecord(WireModel):
    id: str = Field(default_factory=lambda: f"room-{secrets.token_hex(6)}")
    type: Literal["generated"] = "generated"
    config: RoomConfig
    created_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
