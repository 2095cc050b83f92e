"""
Folio Kernel — Asset pipeline

Fills an image-bearing field (hero.avatarUrl, projects.<id>.thumbnailUrl,
linkInBio.links.<id>.thumbnail, ...) from exactly one of three sources:

  upload    binary → asset storage → public URL
  library   pre-hosted URL, written as-is
  generate  prompt → AI image service (signed in, with credit left)

One target path is active at a time. Starting a new request takes over the
active path; a slower result from an older request is dropped rather than
written to whatever field is active by then. Failures clear the active
path and are raised to the caller.
"""

from __future__ import annotations

import logging

from engine.kernel.session import EditorSession
from engine.kernel.storage import AssetUploader, CreditChecker, ImageGenerator
from engine.kernel.types import Identity, now_ms

logger = logging.getLogger(__name__)


class AssetPipelineError(Exception):
    """Base class for asset replacement failures."""

    pass


class AssetUploadError(AssetPipelineError):
    """Upload to asset storage failed."""

    pass


class AssetGenerationError(AssetPipelineError):
    """AI image generation failed."""

    pass


class CreditExhaustedError(AssetPipelineError):
    """No AI generation credit left. Not retryable."""

    pass


class AuthenticationRequiredError(AssetPipelineError):
    """AI generation needs a signed-in account."""

    pass


def asset_key(doc_id: str, filename: str, now: int | None = None) -> str:
    """Storage key: portfolios/<doc id>/<epoch ms>_<file name>."""
    name = filename.replace("\\", "/").rsplit("/", 1)[-1] or "upload"
    return f"portfolios/{doc_id}/{now if now is not None else now_ms()}_{name}"


class AssetPipelineCoordinator:
    def __init__(
        self,
        session: EditorSession,
        *,
        uploader: AssetUploader | None = None,
        image_generator: ImageGenerator | None = None,
        credits: CreditChecker | None = None,
        identity: Identity | None = None,
    ) -> None:
        self.session = session
        self.uploader = uploader
        self.image_generator = image_generator
        self.credits = credits
        self.identity = identity
        self.active_path: str | None = None
        self._generation = 0

    def _begin(self, path: str) -> int:
        self._generation += 1
        self.active_path = path
        return self._generation

    def _end(self, token: int) -> None:
        if token == self._generation:
            self.active_path = None

    def _commit(self, token: int, path: str, reference: str) -> str | None:
        if token != self._generation:
            logger.info("assets: dropping result for %s, superseded by %s", path, self.active_path)
            return None
        self.active_path = None
        self.session.set_field(path, reference)
        return reference

    def cancel(self) -> None:
        """Forget the active path; a result still in flight is dropped."""
        self._generation += 1
        self.active_path = None

    async def upload(
        self,
        path: str,
        data: bytes,
        filename: str,
        content_type: str | None = None,
    ) -> str | None:
        """
        Upload a file and write its URL to path.

        Returns:
            The URL written, or None if a newer request took over meanwhile.
        """
        if self.uploader is None:
            raise AssetUploadError("No asset storage configured")
        token = self._begin(path)
        key = asset_key(self.session.doc_id, filename)
        try:
            url = await self.uploader.upload(data, key, content_type)
        except Exception as e:
            self._end(token)
            logger.warning("assets: upload of %s failed: %s", key, e)
            raise AssetUploadError(f"Upload failed: {e}") from e
        return self._commit(token, path, url)

    def pick_library(self, path: str, reference: str) -> str | None:
        token = self._begin(path)
        return self._commit(token, path, reference)

    async def _release_credit(self, account_id: str) -> None:
        try:
            await self.credits.release_credit(account_id)
        except Exception as e:
            logger.warning("assets: could not release credit for %s: %s", account_id, e)

    async def generate(self, path: str, prompt: str, source_image: str | None = None) -> str | None:
        """
        Generate (or, with source_image, edit) an image and write it to path.
        One credit is reserved before any call to the image service and
        released again if the generation fails.
        """
        if self.identity is None:
            raise AuthenticationRequiredError("Sign in to generate images")
        if self.image_generator is None or self.credits is None:
            raise AssetGenerationError("No image service configured")

        token = self._begin(path)
        account_id = self.identity.account_id
        try:
            allowed = await self.credits.reserve_credit(account_id)
        except Exception as e:
            self._end(token)
            logger.warning("assets: credit check for %s failed: %s", account_id, e)
            raise AssetGenerationError(f"Could not check AI credits: {e}") from e
        if not allowed:
            self._end(token)
            raise CreditExhaustedError("AI image limit reached for this month")

        try:
            reference = await self.image_generator.generate(prompt, account_id, source_image)
        except Exception as e:
            self._end(token)
            logger.warning("assets: generation for %s failed: %s", path, e)
            await self._release_credit(account_id)
            raise AssetGenerationError(f"Image generation failed: {e}") from e
        return self._commit(token, path, reference)
