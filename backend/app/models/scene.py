"""Scene data model: elements, background, attached capabilities, snapshots."""

from __future__ import annotations

import enum
import secrets
import time
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for everything that crosses the wire: camelCase JSON, snake_case attrs."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ElementKind(str, enum.Enum):
    EMOJI = "emoji"
    TEXT = "text"
    SHAPE = "shape"
    IMAGE = "image"


# Long-form names used by some callers for the same four kinds
_KIND_ALIASES = {
    "symbolic-glyph": ElementKind.EMOJI,
    "geometric-shape": ElementKind.SHAPE,
    "raster-image": ElementKind.IMAGE,
}

Animation = Literal["float", "pulse", "spin", "bounce", "none"]
Trigger = Literal["click", "hover", "load", "interval", "drag"]
TargetMode = Literal["all", "last", "matching"]


def new_element_id() -> str:
    """High-entropy element id. Delayed capability cleanups match on ids, so collisions matter."""
    return f"el-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


class Position(WireModel):
    x: float
    y: float


class ClickAction(WireModel):
    type: Literal[
        "showImage", "showText", "playSound", "navigate", "addElements", "removeThis", "transform"
    ]
    payload: str | None = None


class SceneElement(WireModel):
    """One visual member of the scene. Extra fields (custom props) are kept."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str = Field(default_factory=new_element_id)
    type: ElementKind = ElementKind.EMOJI
    content: str = ""
    position: Position = Field(default_factory=lambda: Position(x=50, y=30))
    size: float = 40
    color: str | None = None
    animation: Animation = "none"
    rotation: float | None = None
    opacity: float = 1
    draggable: bool = True
    click_action: ClickAction | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_kind(cls, v: Any) -> Any:
        if isinstance(v, str):
            return _KIND_ALIASES.get(v, v)
        return v

    @field_validator("animation", mode="before")
    @classmethod
    def _default_animation(cls, v: Any) -> Any:
        return "none" if v is None else v

    @field_validator("opacity", mode="before")
    @classmethod
    def _default_opacity(cls, v: Any) -> Any:
        return 1 if v is None else v

    @field_validator("draggable", mode="before")
    @classmethod
    def _default_draggable(cls, v: Any) -> Any:
        # Only an explicit False turns dragging off
        return v is not False

    @field_validator("content", mode="before")
    @classmethod
    def _coerce_content(cls, v: Any) -> Any:
        if v is None:
            return ""
        return v if isinstance(v, str) else str(v)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class BackgroundConfig(WireModel):
    type: Literal["grid", "dots", "none", "image"] = "grid"
    color: str = "#33ff00"
    secondary_color: str | None = None
    size: float = 40
    opacity: float = 0.05
    image_url: str | None = None


class AttachedCapability(WireModel):
    element_id: str
    trigger: Trigger
    code: str
    capability_id: str | None = None
    name: str | None = None


class SceneSnapshot(WireModel):
    """Durable form of a scene. The generating set is a UX signal and is not included."""

    elements: list[SceneElement] = Field(default_factory=list)
    background: BackgroundConfig = Field(default_factory=BackgroundConfig)
    capabilities: list[AttachedCapability] = Field(default_factory=list)
    saved_at: float | None = None

    @property
    def has_content(self) -> bool:
        return bool(self.elements or self.capabilities or self.background.type != "grid")
