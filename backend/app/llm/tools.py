"""Tool schemas offered to the model (Anthropic tool format)."""

from __future__ import annotations

from typing import Any

_TARGET = {"type": "string", "enum": ["all", "last", "matching"]}

TOOLS: list[dict[str, Any]] = [
    {
        "name": "add_element",
        "description": "Add a visual element to the scene. Use this to create emojis, text, or shapes.",
        "input_schema": {
            "type": "object",
            "properties": {
                "type": {
                    "type": "string",
                    "enum": ["emoji", "text", "shape"],
                    "description": "emoji for any visual object, text for words, shape for geometric forms",
                },
                "content": {
                    "type": "string",
                    "description": "For emoji: the emoji character(s). For text: the words. For shape: 'circle', 'square', 'triangle'",
                },
                "x": {"type": "number", "description": "Horizontal position (0-100, where 50 is center)"},
                "y": {"type": "number", "description": "Vertical position (0-100, where 0 is top). Keep under 65"},
                "size": {"type": "number", "description": "Size (10-100, where 40 is medium)"},
                "color": {"type": "string", "description": "Color as hex (e.g. '#ff0000')"},
                "animation": {"type": "string", "enum": ["float", "pulse", "spin", "bounce", "none"]},
                "draggable": {"type": "boolean", "description": "If true, the user can drag this element around"},
                "clickAction": {
                    "type": "object",
                    "properties": {
                        "type": {
                            "type": "string",
                            "enum": [
                                "showImage", "showText", "playSound", "navigate",
                                "addElements", "removeThis", "transform",
                            ],
                        },
                        "payload": {
                            "type": "string",
                            "description": "URL for showImage/navigate, text for showText, JSON for addElements/transform",
                        },
                    },
                    "description": "Make the element clickable with a built-in action",
                },
                "customProps": {"type": "object", "description": "Any additional properties for the element"},
            },
            "required": ["type", "content", "x", "y", "size"],
        },
    },
    {
        "name": "remove_elements",
        "description": "Remove elements from the scene",
        "input_schema": {
            "type": "object",
            "properties": {"target": _TARGET, "match": {"type": "string"}},
            "required": ["target"],
        },
    },
    {
        "name": "modify_elements",
        "description": "Modify existing elements. x/y in changes move the element.",
        "input_schema": {
            "type": "object",
            "properties": {"target": _TARGET, "match": {"type": "string"}, "changes": {"type": "object"}},
            "required": ["target", "changes"],
        },
    },
    {
        "name": "duplicate_element",
        "description": "Duplicate an element",
        "input_schema": {
            "type": "object",
            "properties": {
                "target": {"type": "string", "enum": ["last", "matching"]},
                "match": {"type": "string"},
                "count": {"type": "number"},
                "scatter": {"type": "boolean"},
            },
            "required": ["target"],
        },
    },
    {
        "name": "create_capability",
        "description": (
            "Create a NEW capability that doesn't exist yet. Use this when the user asks for "
            "something you can't do with existing tools."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "name": {"type": "string", "description": "Short name (e.g. 'clickToExplode', 'followCursor')"},
                "description": {"type": "string", "description": "What this capability does"},
                "trigger": {
                    "type": "string",
                    "enum": ["click", "hover", "load", "interval", "drag"],
                    "description": "When this capability activates",
                },
                "targetElement": {
                    "type": "string",
                    "description": "Which element to attach this to ('last', or content match)",
                },
                "code": {
                    "type": "string",
                    "description": (
                        "Capability code (restricted Python) that runs when triggered. Has access to: "
                        "element, elements, set_elements, event, set_popup, spotify"
                    ),
                },
            },
            "required": ["name", "description", "trigger", "code"],
        },
    },
    {
        "name": "execute_capability",
        "description": "Attach an existing capability to an element",
        "input_schema": {
            "type": "object",
            "properties": {"capabilityName": {"type": "string"}, "targetElement": {"type": "string"}},
            "required": ["capabilityName"],
        },
    },
    {
        "name": "generate_image",
        "description": (
            "Generate a realistic AI image with transparent background. Use when the user wants "
            "realistic/actual images instead of emojis. Takes a few seconds."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "prompt": {"type": "string", "description": "Detailed description of what to generate"},
                "targetElement": {
                    "type": "string",
                    "description": "If replacing an existing element, 'last' or the content to match. Leave empty for a new element.",
                },
                "x": {"type": "number", "description": "X position (0-100), optional if replacing"},
                "y": {"type": "number", "description": "Y position (0-100), optional if replacing"},
                "size": {"type": "number", "description": "Size in pixels (100-300 recommended)"},
            },
            "required": ["prompt"],
        },
    },
    {
        "name": "modify_background",
        "description": "Change the canvas background: grid, dots, solid color, or a generated image.",
        "input_schema": {
            "type": "object",
            "properties": {
                "type": {"type": "string", "enum": ["grid", "dots", "none", "image"]},
                "color": {"type": "string", "description": "Primary color (hex). For grid/dots the line/dot color."},
                "size": {"type": "number", "description": "Grid/dot spacing in pixels (20-100). Default 40."},
                "opacity": {"type": "number", "description": "Background opacity (0.01-0.3). Default 0.05."},
                "imagePrompt": {"type": "string", "description": "If type is 'image', what to generate."},
            },
            "required": [],
        },
    },
    {
        "name": "finish_onboarding",
        "description": "Save the creation as a room and move to the world",
        "input_schema": {
            "type": "object",
            "properties": {"roomName": {"type": "string"}},
            "required": ["roomName"],
        },
    },
]

TOOL_NAMES: tuple[str, ...] = tuple(t["name"] for t in TOOLS)
