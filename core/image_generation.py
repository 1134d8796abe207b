# =============================================================================
# core/image_generation.py  -  EverArt image generation provider
# =============================================================================
#
# HOW A GENERATION WORKS:
#   1. POST /v1/models/{model}/generations starts a txt2img job and returns
#      the queued generation(s).
#   2. GET /v1/generations/{id} is polled until the job reaches a terminal
#      status (SUCCEEDED, FAILED, CANCELED).
#   3. The finished generation carries image_url.
#
# Every failure (HTTP error, failed job, missing URL, polling budget spent)
# surfaces as ProviderError so the dispatcher can turn it into an error
# envelope for that single call.
# =============================================================================

import asyncio
import logging
from typing import Any, Optional

import httpx

from core.errors import ProviderError

logger = logging.getLogger(__name__)

EVERART_BASE_URL = "https://api.everart.ai"

# Model IDs the generate_image tool advertises.
AVAILABLE_MODELS: dict[str, str] = {
    "5000": "FLUX1.1 (standard quality)",
    "9000": "FLUX1.1-ultra (ultra high quality)",
    "6000": "SD3.5 (Stable Diffusion 3.5)",
    "7000": "Recraft-Real (photorealistic style)",
    "8000": "Recraft-Vector (vector art style)",
}

_TERMINAL_STATUSES = {"SUCCEEDED", "FAILED", "CANCELED"}


class EverArtClient:
    """Async client for the EverArt REST API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = EVERART_BASE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        poll_interval: float = 1.0,
        max_polls: int = 120,
        timeout: float = 30.0,
    ):
        self._http = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {api_key}"},
            transport=transport,
            timeout=timeout,
        )
        self._poll_interval = poll_interval
        self._max_polls = max_polls

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "EverArtClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self._http.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ProviderError(
                f"EverArt request failed ({exc.response.status_code}): {exc.response.text[:200]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"EverArt request failed: {exc}") from exc
        return response.json()

    async def create_generation(
        self,
        model: str,
        prompt: str,
        image_count: int = 1,
        height: int = 1024,
        width: int = 1024,
    ) -> list[dict[str, Any]]:
        body = await self._request(
            "POST",
            f"/v1/models/{model}/generations",
            json={
                "prompt": prompt,
                "type": "txt2img",
                "image_count": image_count,
                "height": height,
                "width": width,
            },
        )
        generations = body.get("generations") or []
        if not generations:
            raise ProviderError("EverArt returned no generations")
        return generations

    async def fetch_with_polling(self, generation_id: str) -> dict[str, Any]:
        for _ in range(self._max_polls):
            body = await self._request("GET", f"/v1/generations/{generation_id}")
            generation = body.get("generation") or body
            status = generation.get("status")
            if status in _TERMINAL_STATUSES:
                if status != "SUCCEEDED":
                    raise ProviderError(f"Generation {generation_id} ended with status {status}")
                return generation
            await asyncio.sleep(self._poll_interval)
        raise ProviderError(f"Generation {generation_id} did not finish in time")

    async def generate(self, prompt: str, model: str = "5000", image_count: int = 1) -> str:
        """Run a txt2img generation to completion and return its image URL."""
        generations = await self.create_generation(model, prompt, image_count)
        generation_id = generations[0]["id"]
        logger.info(f"EverArt generation {generation_id} queued on model {model}")

        completed = await self.fetch_with_polling(generation_id)
        image_url = completed.get("image_url")
        if not image_url:
            raise ProviderError("No image URL")
        return image_url
