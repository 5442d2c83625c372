import logging

import httpx

from .catalog import Category, ModelDescriptor
from .errors import InvalidApiKey, UpstreamError

logger = logging.getLogger(__name__)

ENDPOINTS = {
    Category.TEXT: "chat/completions",
    Category.IMAGE: "image/generation",
    Category.AUDIO: "audio/generation",
}

IMAGE_STEPS = 30
IMAGE_CFG_SCALE = 5
IMAGE_SIZE = 1024
AUDIO_SPEED = 1


def build_payload(model: ModelDescriptor, prompt: str) -> dict:
    if model.category == Category.TEXT:
        return {
            "messages": [{"role": "user", "content": prompt}],
            "model": model.api_model_name,
            "max_tokens": model.max_tokens,
            "temperature": model.temperature,
            "top_p": model.top_p,
        }
    if model.category == Category.IMAGE:
        return {
            "model_name": model.api_model_name,
            "prompt": prompt,
            "steps": IMAGE_STEPS,
            "cfg_scale": IMAGE_CFG_SCALE,
            "enable_refiner": False,
            "height": IMAGE_SIZE,
            "width": IMAGE_SIZE,
            "backend": "auto",
        }
    return {"text": prompt, "speed": AUDIO_SPEED}


class HyperbolicClient:
    """
    Thin async wrapper over the Hyperbolic REST API.

    One shared httpx.AsyncClient; the user's key travels per request since
    every chat brings its own.
    """

    def __init__(self, base_url: str, timeout: float = 120.0, transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def generate(self, api_key: str, model: ModelDescriptor, prompt: str) -> dict:
        url = f"{self.base_url}/{ENDPOINTS[model.category]}"
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }
        try:
            response = await self.client.post(url, json=build_payload(model, prompt), headers=headers)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"Hyperbolic {model.category.value} request failed with HTTP {status}: {e.response.text[:500]}")
            if status == 401:
                raise InvalidApiKey() from e
            raise UpstreamError() from e
        except httpx.HTTPError as e:
            logger.error(f"Hyperbolic {model.category.value} request failed: {e!r}")
            raise UpstreamError() from e
        except ValueError as e:
            logger.error(f"Hyperbolic returned a non-JSON body: {e}")
            raise UpstreamError() from e

    async def aclose(self):
        await self.client.aclose()
