"""Tool handlers: one coroutine per tool, each turning tool input into scene actions.

A handler appends typed actions to ``ctx.actions`` and returns the text the model
sees as the tool result. Collaborator failures are reported in that text; anything a
handler raises is contained to its own call by the orchestrator.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from app.capabilities.interpreter import validate
from app.models.actions import SceneAction, parse_action
from app.models.capability import CapabilityHandler, CapabilityRecord
from app.models.scene import new_element_id
from app.scene.targeting import split_target_element
from app.services.image_generation import GenerationError, ImageGenerator
from app.storage.capabilities import CapabilityStore

logger = logging.getLogger(__name__)

DEFAULT_COLOR = "#33ff00"
DEFAULT_IMAGE_SIZE = 150
BACKGROUND_SUFFIX = " seamless background pattern"


@dataclass
class ToolContext:
    capability_store: CapabilityStore
    image_generator: ImageGenerator
    actions: list[SceneAction] = field(default_factory=list)
    new_id: Callable[[], str] = new_element_id

    def emit(self, action_type: str, data: dict[str, Any]) -> SceneAction:
        action = parse_action({"type": action_type, "data": data})
        self.actions.append(action)
        return action


ToolHandler = Callable[[dict[str, Any], ToolContext], Awaitable[str]]


def _drop_none(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


# ---------------------------------------------------------------------------
# Element tools
# ---------------------------------------------------------------------------

async def handle_add_element(args: dict[str, Any], ctx: ToolContext) -> str:
    data: dict[str, Any] = {
        "id": ctx.new_id(),
        "type": args.get("type", "emoji"),
        "content": args.get("content", ""),
        "position": {"x": args.get("x", 50), "y": args.get("y", 30)},
        "size": args.get("size") or 40,
        "color": args.get("color") or DEFAULT_COLOR,
        "animation": args.get("animation") or "none",
        "draggable": args.get("draggable") is not False,
    }
    if args.get("clickAction"):
        data["clickAction"] = args["clickAction"]
    custom = args.get("customProps")
    if isinstance(custom, dict):
        data.update(custom)
    ctx.emit("add", data)
    return f"Added {data['type']}: {data['content']}"


async def handle_remove_elements(args: dict[str, Any], ctx: ToolContext) -> str:
    ctx.emit("remove", _drop_none({"target": args.get("target"), "match": args.get("match")}))
    return "Removed elements"


async def handle_modify_elements(args: dict[str, Any], ctx: ToolContext) -> str:
    ctx.emit(
        "modify",
        _drop_none({"target": args.get("target"), "match": args.get("match"), "changes": args.get("changes") or {}}),
    )
    return "Modified elements"


async def handle_duplicate_element(args: dict[str, Any], ctx: ToolContext) -> str:
    ctx.emit(
        "duplicate",
        {
            "target": args.get("target"),
            "match": args.get("match"),
            "count": args.get("count") or 1,
            "scatter": args.get("scatter") is not False,
        },
    )
    return "Duplicated element"


# ---------------------------------------------------------------------------
# Capability tools
# ---------------------------------------------------------------------------

async def handle_create_capability(args: dict[str, Any], ctx: ToolContext) -> str:
    name = args.get("name") or ""
    code = args.get("code") or ""
    trigger = args.get("trigger")

    problem = validate(code)
    if problem is not None:
        logger.info("Rejected capability %r: %s", name, problem)
        return f"Error: capability code was rejected: {problem}. Fix the code and call create_capability again."

    record = CapabilityRecord(
        name=name,
        description=args.get("description") or "",
        handler=CapabilityHandler(trigger=trigger, code=code),
    )
    ctx.capability_store.save(record)
    ctx.emit(
        "attachCapability",
        {
            "capabilityId": record.id,
            "name": name,
            "trigger": trigger,
            "targetElement": args.get("targetElement") or "last",
            "code": code,
            "isNew": True,
        },
    )
    return f"Created new capability: {name}. This is now available for all users!"


async def handle_execute_capability(args: dict[str, Any], ctx: ToolContext) -> str:
    record = ctx.capability_store.get_by_name(args.get("capabilityName") or "")
    if record is None:
        return "Capability not found"

    ctx.emit(
        "attachCapability",
        {
            "capabilityId": record.id,
            "name": record.name,
            "trigger": record.handler.trigger,
            "targetElement": args.get("targetElement") or "last",
            "code": record.handler.code,
            "isNew": False,
        },
    )
    ctx.capability_store.increment_usage(record.id)
    return f"Attached capability: {record.name}"


# ---------------------------------------------------------------------------
# Generation tools
# ---------------------------------------------------------------------------

async def handle_generate_image(args: dict[str, Any], ctx: ToolContext) -> str:
    prompt = args.get("prompt") or ""
    target_element = args.get("targetElement")
    size = args.get("size") or DEFAULT_IMAGE_SIZE

    selector: dict[str, Any] | None = None
    if target_element:
        target, match = split_target_element(target_element)
        selector = _drop_none({"target": target, "match": match})
        ctx.emit("startGenerating", selector)

    try:
        image_url = await ctx.image_generator.generate(prompt, "cutout")
    except GenerationError as e:
        logger.warning("Image generation failed for %r: %s", prompt, e)
        if selector is not None:
            ctx.emit("stopGenerating", selector)
        return f"Failed to generate image: {e}. Using emoji fallback."

    if selector is not None:
        ctx.emit("replaceWithImage", {**selector, "imageUrl": image_url, "size": size})
    else:
        ctx.emit(
            "add",
            {
                "id": ctx.new_id(),
                "type": "image",
                "content": image_url,
                "position": {"x": args.get("x") or 50, "y": args.get("y") or 30},
                "size": size,
                "color": "#ffffff",
                "animation": "none",
                "draggable": True,
            },
        )
    return f"Generated realistic image for: {prompt}"


async def handle_modify_background(args: dict[str, Any], ctx: ToolContext) -> str:
    bg_type = args.get("type")
    color = args.get("color")
    size = args.get("size")
    opacity = args.get("opacity")
    image_prompt = args.get("imagePrompt")

    if bg_type == "image" and image_prompt:
        ctx.emit("modifyBackground", {"generating": True})
        try:
            image_url = await ctx.image_generator.generate(image_prompt + BACKGROUND_SUFFIX, "background")
        except GenerationError as e:
            logger.warning("Background generation failed for %r: %s", image_prompt, e)
            ctx.emit("modifyBackground", {"generating": False})
            return f"Failed to generate background image: {e}"
        ctx.emit(
            "modifyBackground",
            {
                "type": "image",
                "imageUrl": image_url,
                "opacity": opacity if opacity is not None else 0.3,
                "generating": False,
            },
        )
        return f"Generated custom background image: {image_prompt}"

    data: dict[str, Any] = {}
    if bg_type:
        data["type"] = bg_type
    if color:
        data["color"] = color
    if size:
        data["size"] = size
    if opacity is not None:
        data["opacity"] = opacity
    ctx.emit("modifyBackground", data)

    summary = f"Changed background: {bg_type or 'updated'}"
    if color:
        summary += f" color={color}"
    if size:
        summary += f" size={size}"
    return summary


async def handle_finish_onboarding(args: dict[str, Any], ctx: ToolContext) -> str:
    ctx.emit("finish", _drop_none({"roomName": args.get("roomName")}))
    return "Finishing onboarding"


HANDLERS: dict[str, ToolHandler] = {
    "add_element": handle_add_element,
    "remove_elements": handle_remove_elements,
    "modify_elements": handle_modify_elements,
    "duplicate_element": handle_duplicate_element,
    "create_capability": handle_create_capability,
    "execute_capability": handle_execute_capability,
    "generate_image": handle_generate_image,
    "modify_background": handle_modify_background,
    "finish_onboarding": handle_finish_onboarding,
}


async def handle_tool(name: str, args: dict[str, Any], ctx: ToolContext) -> str:
    handler = HANDLERS.get(name)
    if handler is None:
        return f"Error: unknown tool '{name}'"
    return await handler(args or {}, ctx)
