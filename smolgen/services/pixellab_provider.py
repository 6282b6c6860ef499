"""
PixelLab Provider
Pixel-art cover generation through the PixelLab pixflux API
"""

import time
from typing import Any, Dict, Optional

import httpx

from ..core.config import get_settings
from ..core.logging import provider_logger
from ..core.result import Result

settings = get_settings()


class PixelLabProvider:
    """PixelLab API provider for cover images"""

    SCENE_NOTE = "NOTE: Prefer rich scenes to characters and avatars."
    NEGATIVE_DESCRIPTION = "blurry. dithering."

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        image_size: Optional[int] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.PIXELLAB_API_KEY
        self.base_url = base_url or settings.PIXELLAB_BASE_URL
        self.image_size = image_size or settings.PIXELLAB_IMAGE_SIZE
        self.timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                    "User-Agent": "Smolgen/1.0"
                }
            )
        return self._client

    def _prepare_request(self, prompt: str) -> Dict[str, Any]:
        return {
            "description": f"{prompt}.\n{self.SCENE_NOTE}",
            "negative_description": self.NEGATIVE_DESCRIPTION,
            "text_guidance_scale": 8,
            "image_size": {
                "width": self.image_size,
                "height": self.image_size
            },
            "outline": "selective outline",
            "shading": "basic shading",
            "detail": "medium detail",
            "view": "low top-down",
            "direction": "south",
            "no_background": False
        }

    async def generate_image(self, prompt: str) -> Result[str]:
        """Generate a square pixel-art scene; data is the base64 PNG"""

        if not prompt:
            return Result.err("Prompt is required for image generation")

        start_time = time.time()
        provider_logger.log_request_start("pixellab", "generate_image", prompt=prompt[:100])

        try:
            response = await self._get_client().post(
                "/generate-image-pixflux",
                json=self._prepare_request(prompt)
            )

            if not response.is_success:
                error = f"PixelLab API error: {response.status_code} - {response.text}"
                provider_logger.log_request_error("pixellab", "generate_image", error=error)
                return Result.err(error)

            image_base64 = (response.json().get("image") or {}).get("base64")
            if not image_base64:
                return Result.err("PixelLab response did not contain an image")

            provider_logger.log_request_complete(
                "pixellab",
                "generate_image",
                duration_ms=(time.time() - start_time) * 1000
            )
            return Result.ok(image_base64)

        except (httpx.HTTPError, ValueError) as e:
            provider_logger.log_request_error("pixellab", "generate_image", error=str(e))
            return Result.err(f"PixelLab request failed: {e}")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


__all__ = ["PixelLabProvider"]
