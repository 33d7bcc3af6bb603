"""Health check + meta endpoints."""

from __future__ import annotations

from fastapi import APIRouter

from app.llm.tools import TOOL_NAMES
from app.models.responses import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="ok", version="0.1.0", tools_registered=len(TOOL_NAMES))


@router.get("/prompts")
async def prompts() -> dict[str, str]:
    from app.llm.prompts import build_system_prompt

    return {"execute": build_system_prompt([])}
