"""Master API router — mounts all endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from app.api import canvas, capabilities, health

api_router = APIRouter(prefix="/api")

api_router.include_router(health.router)
api_router.include_router(canvas.router)
api_router.include_router(capabilities.router)
