"""Replicate (gpt-image-1) client for photo-to-coloring-page generation."""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, List, Optional

import httpx

from config import settings

logger = logging.getLogger(__name__)


class ImageGenerationError(RuntimeError):
    """Raised when the image provider fails or returns no usable output."""


def build_prediction_payload(image_bytes: bytes, mime_type: str, prompt: str) -> Dict[str, Any]:
    image_base64 = base64.b64encode(image_bytes).decode("utf-8")
    return {
        "input": {
            "prompt": prompt,
            "quality": "high",
            "background": "auto",
            "moderation": "low",
            "aspect_ratio": "2:3",
            "input_images": [{"value": {"path": f"data:{mime_type};base64,{image_base64}"}}],
            "output_format": "png",
            "input_fidelity": "high",
            "openai_api_key": settings.OPENAI_API_KEY,
            "number_of_images": 1,
            "output_compression": 90,
        }
    }


async def generate_coloring_page(
    image_bytes: bytes,
    mime_type: str,
    prompt: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> List[bytes]:
    """Run one synchronous prediction and download every output image."""
    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=float(settings.IMAGE_GENERATION_TIMEOUT_SECONDS))
    try:
        try:
            response = await http.post(
                settings.REPLICATE_MODEL_URL,
                json=build_prediction_payload(image_bytes, mime_type, prompt),
                headers={
                    "Authorization": f"Bearer {settings.REPLICATE_API_TOKEN}",
                    "Content-Type": "application/json",
                    "Prefer": "wait",
                },
            )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise ImageGenerationError(f"Replicate request failed: {exc}") from exc

        if response.status_code >= 400:
            logger.error("Replicate API error %s: %s", response.status_code, response.text[:500])
            raise ImageGenerationError(f"Replicate API failed: {response.status_code}")

        try:
            result = response.json()
        except ValueError as exc:
            raise ImageGenerationError("Replicate returned a non-JSON response") from exc

        outputs = result.get("output") if isinstance(result, dict) else None
        if isinstance(outputs, str):
            outputs = [outputs]
        if not outputs or not isinstance(outputs, list):
            logger.error("Empty output from Replicate: %s", str(result)[:500])
            raise ImageGenerationError("Failed to retrieve image data from API.")

        images: List[bytes] = []
        for image_url in outputs:
            try:
                image_response = await http.get(str(image_url))
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                raise ImageGenerationError(f"Failed to fetch generated image: {exc}") from exc
            if image_response.status_code >= 400:
                raise ImageGenerationError(f"Failed to fetch generated image: {image_response.status_code}")
            images.append(image_response.content)
        logger.info("Replicate returned %s image(s)", len(images))
        return images
    finally:
        if owns_client:
            await http.aclose()
