"""FastAPI dependency injection."""

from __future__ import annotations

from app.config import settings
from app.storage.capabilities import CapabilityStore, get_capability_store

_registry = None
_image_generator = None


def get_registry():
    """Process-wide SessionRegistry backed by the JSON scene/room stores."""
    global _registry
    if _registry is None:
        from app.capabilities.integration import MusicIntegration
        from app.scene.session import SessionRegistry
        from app.storage.rooms import RoomStore, SceneRepository

        controller = None
        if settings.spotify_access_token:
            from app.services.spotify import SpotifyController

            controller = SpotifyController(settings.spotify_access_token)
        _registry = SessionRegistry(
            repository=SceneRepository(),
            room_store=RoomStore(),
            integration=MusicIntegration(controller),
        )
    return _registry


def get_capabilities() -> CapabilityStore:
    return get_capability_store()


def get_image_generator():
    global _image_generator
    if _image_generator is None:
        from app.services.image_generation import FalImageGenerator

        _image_generator = FalImageGenerator()
    return _image_generator


def get_chat_model():
    """Tool-bound chat model; None when no API key is configured."""
    from app.llm.client import LLMNotConfigured, build_chat_model

    try:
        return build_chat_model("execute")
    except LLMNotConfigured:
        return None
