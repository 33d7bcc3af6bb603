"""Orchestration loop — the bounded tool-calling exchange with the model.

    AwaitingModel → (ToolCallReceived → ExecuteTools → AwaitingModel)* → FinalReply

Each model response either carries tool calls (run them all, in order, feed the
results back, ask again) or is the final reply. The number of tool rounds and the
wall-clock time of a turn are both capped; hitting either raises an
OrchestrationError. Cancelling the awaiting task cancels the turn.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage

from app.agent.handlers import ToolContext, handle_tool
from app.config import settings
from app.llm.client import to_langchain_history
from app.llm.prompts import build_system_prompt
from app.models.actions import SceneAction

logger = logging.getLogger(__name__)

DEFAULT_REPLY = "Done!"
FAILURE_REPLY = "Something went wrong. Try again?"


class OrchestrationError(Exception):
    """A turn could not produce a final reply."""


class ToolRoundLimitExceeded(OrchestrationError):
    pass


class TurnTimeout(OrchestrationError):
    pass


class ChatModel(Protocol):
    async def ainvoke(self, messages: list[BaseMessage]) -> AIMessage: ...


@dataclass
class TurnResult:
    response: str
    actions: list[SceneAction] = field(default_factory=list)
    tool_rounds: int = 0


def extract_text(message: AIMessage) -> str:
    """Final reply text from an AIMessage whose content may be a string or content blocks."""
    content = message.content
    if isinstance(content, str):
        text = content
    else:
        parts = []
        for block in content or []:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        text = "".join(parts)
    return text.strip() or DEFAULT_REPLY


async def run_turn(
    model: ChatModel,
    message: str,
    history: list[dict[str, Any]],
    ctx: ToolContext,
    *,
    system_prompt: str,
    max_rounds: int | None = None,
    timeout: float | None = None,
) -> TurnResult:
    """Run one user turn to completion. Raises OrchestrationError subclasses on limits."""
    max_rounds = settings.max_tool_rounds if max_rounds is None else max_rounds
    timeout = settings.turn_timeout_seconds if timeout is None else timeout

    messages: list[BaseMessage] = [
        SystemMessage(content=system_prompt),
        *to_langchain_history(history),
        HumanMessage(content=message),
    ]
    try:
        return await asyncio.wait_for(_run_rounds(model, messages, ctx, max_rounds), timeout)
    except asyncio.TimeoutError as e:
        raise TurnTimeout(f"turn exceeded {timeout:g}s") from e


async def _run_rounds(
    model: ChatModel,
    messages: list[BaseMessage],
    ctx: ToolContext,
    max_rounds: int,
) -> TurnResult:
    rounds = 0
    while True:
        response = await model.ainvoke(messages)
        tool_calls = getattr(response, "tool_calls", None) or []
        if not tool_calls:
            logger.info("Turn finished after %d tool round(s), %d action(s)", rounds, len(ctx.actions))
            return TurnResult(response=extract_text(response), actions=list(ctx.actions), tool_rounds=rounds)

        if rounds >= max_rounds:
            raise ToolRoundLimitExceeded(f"model still calling tools after {max_rounds} rounds")
        rounds += 1

        messages.append(response)
        for call in tool_calls:
            name = call.get("name", "")
            try:
                result = await handle_tool(name, call.get("args") or {}, ctx)
            except Exception as e:
                logger.exception("Tool %s failed", name)
                result = f"Error executing tool '{name}': {e}"
            logger.debug("Tool %s -> %.200s", name, result)
            messages.append(ToolMessage(content=result or "(empty result)", tool_call_id=call.get("id") or name))


async def run_scene_turn(session, message: str, history: list[dict[str, Any]], *, model: ChatModel, ctx: ToolContext):
    """Run a turn against a live session and apply its actions.

    Returns ``(response_text, actions, update)``. Any failure is logged, the session's
    generating flags are cleared and the generic reply is returned with no actions.
    """
    system_prompt = build_system_prompt(session.store.elements, ctx.capability_store.load_all())
    try:
        result = await run_turn(model, message, history, ctx, system_prompt=system_prompt)
    except asyncio.CancelledError:
        raise
    except Exception:
        logger.exception("Turn failed on canvas %s", session.canvas_id)
        session.clear_generating()
        return FAILURE_REPLY, [], None

    update = session.apply(result.actions)
    return result.response, result.actions, update
