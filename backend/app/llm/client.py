"""LangChain ChatAnthropic wrapper."""

from __future__ import annotations

import logging
from typing import Any

from app.config import settings
from app.llm.model_router import get_model_for_task
from app.llm.tools import TOOLS

logger = logging.getLogger(__name__)


class LLMNotConfigured(RuntimeError):
    pass


def build_chat_model(task: str = "execute") -> Any:
    """Chat model with the scene tools bound. Anything with ``async ainvoke(messages)`` works in its place."""
    if not settings.anthropic_api_key:
        raise LLMNotConfigured("LLM not configured — set ANTHROPIC_API_KEY in .env")

    from langchain_anthropic import ChatAnthropic

    model_id = get_model_for_task(task)
    logger.debug("Building chat model %s for task %s", model_id, task)
    llm = ChatAnthropic(
        model=model_id,
        api_key=settings.anthropic_api_key,
        max_tokens=settings.model_max_tokens,
    )
    return llm.bind_tools(TOOLS, tool_choice="auto")


def to_langchain_history(history: list[dict[str, Any]]) -> list:
    """Convert ``[{role, content}]`` chat history into LangChain messages."""
    from langchain_core.messages import AIMessage, HumanMessage

    messages: list = []
    for msg in history:
        content = msg.get("content")
        if not content:
            continue
        if msg.get("role") == "user":
            messages.append(HumanMessage(content=content))
        elif msg.get("role") == "assistant":
            messages.append(AIMessage(content=content))
    return messages
