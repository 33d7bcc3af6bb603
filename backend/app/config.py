"""Application configuration from environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    anthropic_api_key: str = ""
    fal_key: str = ""
    scenecraft_env: str = "development"
    scenecraft_log_level: str = "debug"

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    # Model routing
    model_cheap: str = "claude-haiku-4-5-20251001"
    model_mid: str = "claude-sonnet-4-5-20250929"
    model_frontier: str = "claude-sonnet-4-5-20250929"
    model_max_tokens: int = 4096

    # Orchestration bounds
    max_tool_rounds: int = 8
    turn_timeout_seconds: float = 120.0

    # Capability sandbox + triggers
    sandbox_max_steps: int = 20_000
    interval_tick_seconds: float = 1.0

    # Persistence
    data_dir: Path = Path(__file__).parent / "data"
    autosave_delay_seconds: float = 0.5

    # Collaborators
    image_model_url: str = "https://fal.run/fal-ai/flux/schnell"
    background_removal_url: str = "https://fal.run/fal-ai/birefnet"
    image_timeout_seconds: float = 60.0
    spotify_api_base: str = "https://api.spotify.com/v1"
    spotify_access_token: str = ""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
