"""Task → model tier. Scene turns run on the mid tier; anything unlisted falls back to cheap."""

from __future__ import annotations

from app.config import settings

_TASK_TIER = {
    "execute": "mid",
}

_TIER_SETTING = {
    "cheap": "model_cheap",
    "mid": "model_mid",
    "frontier": "model_frontier",
}


def get_model_for_task(task: str) -> str:
    return getattr(settings, _TIER_SETTING[_TASK_TIER.get(task, "cheap")])
