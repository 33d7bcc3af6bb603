"""Persisted capability records (reusable behaviors created by the agent)."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any

from pydantic import Field

from app.models.scene import Trigger, WireModel


def new_capability_id() -> str:
    return f"cap-{int(time.time() * 1000)}"


class CapabilityHandler(WireModel):
    trigger: Trigger
    code: str


class CapabilityRecord(WireModel):
    id: str = Field(default_factory=new_capability_id)
    name: str
    description: str = ""
    handler: CapabilityHandler
    created_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    usage_count: int = 0


class ExecutionResult(WireModel):
    """Outcome of firing one trigger on one element."""

    executed: bool = False
    error: str | None = None
    popups: list[dict[str, Any]] = Field(default_factory=list)
    effects: list[dict[str, Any]] = Field(default_factory=list)
