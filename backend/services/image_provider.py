"""AI image generation via the OpenAI Images API."""

from __future__ import annotations

import asyncio
import base64
import logging
from io import BytesIO
import httpx
import openai

from backend.config import settings
from engine.kernel.storage import ImageGenerator

logger = logging.getLogger(__name__)

# Transient error types that warrant a retry
_RETRYABLE_OPENAI = (
    openai.RateLimitError,
    openai.APIConnectionError,
    openai.InternalServerError,
)


def decode_data_url(value: str) -> bytes | None:
    """Bytes of a base64 data: URL, or None for anything else."""
    if not value.startswith("data:") or "," not in value:
        return None
    header, payload = value.split(",", 1)
    if ";base64" not in header:
        return None
    return base64.b64decode(payload)


class OpenAIImageGenerator(ImageGenerator):
    """
    Prompt → image, optionally editing a source image.

    Returns a data: URL for base64 responses, or the hosted URL when the
    model returns one. Credits are accounted by the caller; the account id
    is passed to OpenAI as the end-user identifier.

    A source image must be a data: URL or an asset already in our own
    storage; other URLs are refused before anything is fetched.
    """

    def __init__(self) -> None:
        self.client = openai.AsyncOpenAI(api_key=settings.OPENAI_API_KEY)

    async def generate(
        self,
        prompt: str,
        account_id: str,
        source_image: str | None = None,
        max_retries: int = 1,
    ) -> str:
        """
        Args:
            prompt: What to draw (or how to change the source image)
            account_id: Account the image is generated for
            source_image: data: URL or public asset URL of an image to edit
            max_retries: Number of retries on transient failures (default 1)

        Raises:
            openai.APIError: If all retries exhausted
            ValueError: If source_image is neither a data: URL nor one of our assets
        """
        source = await self._load_source(source_image) if source_image else None
        last_error: Exception | None = None

        for attempt in range(max_retries + 1):
            try:
                if source is not None:
                    image_file = BytesIO(source)
                    image_file.name = "source.png"
                    response = await self.client.images.edit(
                        model=settings.IMAGE_MODEL,
                        image=image_file,
                        prompt=prompt,
                        size=settings.IMAGE_SIZE,
                        user=account_id,
                    )
                else:
                    response = await self.client.images.generate(
                        model=settings.IMAGE_MODEL,
                        prompt=prompt,
                        size=settings.IMAGE_SIZE,
                        n=1,
                        user=account_id,
                    )
                break
            except _RETRYABLE_OPENAI as e:
                last_error = e
                if attempt < max_retries:
                    wait_time = 2**attempt
                    logger.warning("images: OpenAI error (attempt %d), retrying in %ds: %s", attempt + 1, wait_time, e)
                    await asyncio.sleep(wait_time)
                else:
                    logger.warning("images: OpenAI error, retries exhausted: %s", e)
        else:
            raise last_error  # type: ignore[misc]

        image = response.data[0]
        if image.b64_json:
            reference = f"data:image/png;base64,{image.b64_json}"
        elif image.url:
            reference = image.url
        else:
            raise ValueError("Image response carried neither data nor a URL")

        return reference

    async def _load_source(self, source_image: str) -> bytes:
        data = decode_data_url(source_image)
        if data is not None:
            return data
        asset_prefix = settings.R2_PUBLIC_URL.rstrip("/") + "/"
        if not source_image.startswith(asset_prefix):
            raise ValueError("source_image must be a data: URL or an uploaded asset")
        async with httpx.AsyncClient(timeout=30) as client:
            response = await client.get(source_image)
            response.raise_for_status()
            return response.content


image_generator = OpenAIImageGenerator()


def get_image_generator() -> ImageGenerator:
    return image_generator
