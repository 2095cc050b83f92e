"""Cloudflare R2 asset storage for uploaded images."""

from __future__ import annotations

import asyncio
import logging

import aioboto3
from botocore.exceptions import ClientError

from backend.config import settings
from engine.kernel.storage import AssetUploader

logger = logging.getLogger(__name__)

# Retryable S3 error codes
_RETRYABLE_CODES = {"RequestTimeout", "ServiceUnavailable", "ThrottlingException", "Throttling"}


class R2AssetStorage(AssetUploader):
    """Cloudflare R2 storage using the S3-compatible API."""

    def __init__(self) -> None:
        """Initialize R2 client settings from config."""
        self.session = aioboto3.Session()
        self.endpoint = settings.R2_ENDPOINT
        self.access_key = settings.R2_ACCESS_KEY
        self.secret_key = settings.R2_SECRET_KEY
        self.bucket = settings.R2_ASSET_BUCKET
        self.public_url = settings.R2_PUBLIC_URL.rstrip("/")

    def public_url_for(self, key: str) -> str:
        return f"{self.public_url}/{key}"

    async def upload(
        self,
        data: bytes,
        key: str,
        content_type: str | None = None,
        max_retries: int = 1,
    ) -> str:
        """
        Upload an asset with retry on transient failures.

        Args:
            data: File bytes
            key: Destination key (portfolios/<id>/<ms>_<name>)
            content_type: MIME type stored with the object
            max_retries: Number of retries on transient failures (default 1)

        Returns:
            Public URL of the uploaded object
        """
        last_error: Exception | None = None

        for attempt in range(max_retries + 1):
            try:
                async with self.session.client(
                    "s3",
                    endpoint_url=self.endpoint,
                    aws_access_key_id=self.access_key,
                    aws_secret_access_key=self.secret_key,
                ) as s3:
                    await s3.put_object(
                        Bucket=self.bucket,
                        Key=key,
                        Body=data,
                        ContentType=content_type or "application/octet-stream",
                        CacheControl="public, max-age=31536000, immutable",
                    )
                return self.public_url_for(key)
            except ClientError as e:
                error_code = e.response.get("Error", {}).get("Code", "")
                if error_code in _RETRYABLE_CODES and attempt < max_retries:
                    wait_time = 2**attempt
                    logger.warning("r2: upload error (attempt %d), retrying in %ds: %s", attempt + 1, wait_time, e)
                    await asyncio.sleep(wait_time)
                    last_error = e
                else:
                    raise
            except Exception as e:
                # Network errors, timeouts, etc.
                if attempt < max_retries:
                    wait_time = 2**attempt
                    logger.warning("r2: upload error (attempt %d), retrying in %ds: %s", attempt + 1, wait_time, e)
                    await asyncio.sleep(wait_time)
                    last_error = e
                else:
                    raise

        raise last_error  # type: ignore[misc]


asset_storage = R2AssetStorage()


def get_asset_storage() -> AssetUploader:
    return asset_storage
