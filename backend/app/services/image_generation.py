"""Image generation collaborator (fal.ai Flux Schnell over REST)."""

from __future__ import annotations

import logging
from typing import Any, Literal, Protocol

import httpx

from app.config import settings

logger = logging.getLogger(__name__)

ImageStyle = Literal["cutout", "realistic", "background"]

CUTOUT_SUFFIX = (
    ", isolated on pure white background, cutout style, no shadows, clean edges, "
    "transparent background compatible, PNG sticker style"
)
REALISTIC_SUFFIX = ", photorealistic, high quality, detailed"


class GenerationError(Exception):
    """The generation service was unreachable or returned no usable result."""


class ImageGenerator(Protocol):
    async def generate(self, prompt: str, style: ImageStyle = "cutout") -> str: ...


def build_prompt(prompt: str, style: ImageStyle) -> str:
    if style == "cutout":
        return prompt + CUTOUT_SUFFIX
    if style == "realistic":
        return prompt + REALISTIC_SUFFIX
    return prompt


class FalImageGenerator:
    """Calls the synchronous fal.run endpoints and returns a hosted image URL."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        model_url: str | None = None,
        background_removal_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self._api_key = api_key if api_key is not None else settings.fal_key
        self._client = client
        self._model_url = model_url or settings.image_model_url
        self._bg_url = background_removal_url or settings.background_removal_url
        self._timeout = timeout or settings.image_timeout_seconds

    async def generate(self, prompt: str, style: ImageStyle = "cutout") -> str:
        if not prompt:
            raise GenerationError("prompt is required")
        if not self._api_key:
            raise GenerationError("FAL_KEY not configured")

        full_prompt = build_prompt(prompt, style)
        logger.info("Generating image (%s): %.120s", style, full_prompt)

        data = await self._post(
            self._model_url,
            {
                "prompt": full_prompt,
                "image_size": "square",
                "num_inference_steps": 4,
                "num_images": 1,
                "enable_safety_checker": True,
            },
        )
        try:
            image_url = data["images"][0]["url"]
        except (KeyError, IndexError, TypeError):
            raise GenerationError("No image URL returned from the image service")

        if style == "cutout":
            image_url = await self._remove_background(image_url)
        return image_url

    async def _remove_background(self, image_url: str) -> str:
        try:
            data = await self._post(self._bg_url, {"image_url": image_url})
            return data["image"]["url"]
        except (GenerationError, KeyError, TypeError) as e:
            # The un-cut image is still usable
            logger.warning("Background removal failed, using original: %s", e)
            return image_url

    async def _post(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        headers = {"Authorization": f"Key {self._api_key}", "Content-Type": "application/json"}
        try:
            if self._client is not None:
                response = await self._client.post(url, json=payload, headers=headers, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(url, json=payload, headers=headers)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise GenerationError(f"image service returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise GenerationError(f"image service unreachable: {e}") from e
        except ValueError as e:
            raise GenerationError("image service returned invalid JSON") from e
