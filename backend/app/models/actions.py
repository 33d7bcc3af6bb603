"""SceneAction tagged union — one variant per action type, discriminated on ``type``.

Every ``data`` model fills documented defaults so a partially specified action from
the model is applied best-effort instead of rejected.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

from app.models.scene import BackgroundConfig, ClickAction, Position, TargetMode, Trigger, WireModel


# ---------------------------------------------------------------------------
# Data payloads
# ---------------------------------------------------------------------------

class AddData(WireModel):
    """Element fields for ``add``. Unknown keys (spread custom props) ride along as extras."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str | None = None
    type: str = "emoji"
    content: str | None = None
    position: Position | None = None
    size: float | None = None
    color: str | None = None
    animation: str | None = None
    rotation: float | None = None
    opacity: float | None = None
    draggable: bool | None = None
    click_action: ClickAction | None = None


class TargetData(WireModel):
    target: TargetMode | None = None
    match: str | None = None


class ModifyData(TargetData):
    changes: dict[str, Any] = Field(default_factory=dict)


class DuplicateData(TargetData):
    count: int = 1
    scatter: bool = True
    occurrence: int = 0

    @field_validator("count", mode="before")
    @classmethod
    def _at_least_one(cls, v: Any) -> Any:
        # Mirrors `count || 1`: zero, negative and missing all mean one copy
        if v is None:
            return 1
        try:
            return max(1, int(v))
        except (TypeError, ValueError):
            return 1

    @field_validator("scatter", mode="before")
    @classmethod
    def _scatter_default(cls, v: Any) -> Any:
        return v is not False


class AttachCapabilityData(WireModel):
    trigger: Trigger
    code: str = ""
    target_element: str = "last"
    capability_id: str | None = None
    name: str | None = None
    is_new: bool = False
    occurrence: int = 0


class StartGeneratingData(TargetData):
    pass


class StopGeneratingData(WireModel):
    element_id: str | None = None
    target: TargetMode | None = None
    match: str | None = None


class ReplaceWithImageData(TargetData):
    image_url: str | None = None
    size: float = 150

    @field_validator("size", mode="before")
    @classmethod
    def _size_default(cls, v: Any) -> Any:
        return v or 150


class ModifyBackgroundData(BackgroundConfig):
    """Partial background; only fields present in the payload are merged."""

    type: Literal["grid", "dots", "none", "image"] | None = None
    color: str | None = None
    size: float | None = None
    opacity: float | None = None
    generating: bool | None = None

    def changes(self) -> dict[str, Any]:
        fields = self.model_dump(exclude_unset=True, exclude={"generating"})
        return {k: v for k, v in fields.items() if v is not None}


class FinishData(WireModel):
    room_name: str = "Untitled room"


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

class AddAction(WireModel):
    type: Literal["add"] = "add"
    data: AddData = Field(default_factory=AddData)


class RemoveAction(WireModel):
    type: Literal["remove"] = "remove"
    data: TargetData = Field(default_factory=TargetData)


class ModifyAction(WireModel):
    type: Literal["modify"] = "modify"
    data: ModifyData = Field(default_factory=ModifyData)


class DuplicateAction(WireModel):
    type: Literal["duplicate"] = "duplicate"
    data: DuplicateData = Field(default_factory=DuplicateData)


class FinishAction(WireModel):
    type: Literal["finish"] = "finish"
    data: FinishData = Field(default_factory=FinishData)


class AttachCapabilityAction(WireModel):
    type: Literal["attachCapability"] = "attachCapability"
    data: AttachCapabilityData


class ReplaceWithImageAction(WireModel):
    type: Literal["replaceWithImage"] = "replaceWithImage"
    data: ReplaceWithImageData = Field(default_factory=ReplaceWithImageData)


class StartGeneratingAction(WireModel):
    type: Literal["startGenerating"] = "startGenerating"
    data: StartGeneratingData = Field(default_factory=StartGeneratingData)


class StopGeneratingAction(WireModel):
    type: Literal["stopGenerating"] = "stopGenerating"
    data: StopGeneratingData = Field(default_factory=StopGeneratingData)


class ModifyBackgroundAction(WireModel):
    type: Literal["modifyBackground"] = "modifyBackground"
    data: ModifyBackgroundData = Field(default_factory=ModifyBackgroundData)


SceneAction = Annotated[
    Union[
        AddAction,
        RemoveAction,
        ModifyAction,
        DuplicateAction,
        FinishAction,
        AttachCapabilityAction,
        ReplaceWithImageAction,
        StartGeneratingAction,
        StopGeneratingAction,
        ModifyBackgroundAction,
    ],
    Field(discriminator="type"),
]

_action_adapter: TypeAdapter[SceneAction] = TypeAdapter(SceneAction)


def parse_action(raw: dict[str, Any] | WireModel) -> SceneAction:
    """Validate one raw ``{type, data}`` record into its typed variant."""
    if isinstance(raw, WireModel):
        return raw  # type: ignore[return-value]
    return _action_adapter.validate_python(raw)


def action_to_wire(action: SceneAction) -> dict[str, Any]:
    return action.model_dump(by_alias=True, mode="json", exclude_none=True)
