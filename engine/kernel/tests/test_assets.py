"""
Folio Asset Pipeline -- upload, library pick and AI generation into one field

Covers:
  - each source writes its reference through the session
  - credit is checked before the image service is called
  - failures clear the active path and raise typed errors
  - a slower, superseded request never writes its result
"""

import asyncio

import pytest

from engine.kernel.assets import (
    AssetGenerationError,
    AssetPipelineCoordinator,
    AssetUploadError,
    AuthenticationRequiredError,
    CreditExhaustedError,
    asset_key,
)
from engine.kernel.session import EditorSession
from engine.kernel.storage import AssetUploader, CreditChecker, ImageGenerator
from engine.kernel.types import AIUsage


class RecordingUploader(AssetUploader):
    def __init__(self, error=None):
        self.error = error
        self.uploads = []
        self.gates = {}

    async def upload(self, data, key, content_type=None):
        self.uploads.append((key, content_type, len(data)))
        gate = self.gates.get(key.rsplit("_", 1)[-1])
        if gate is not None:
            await gate.wait()
        if self.error:
            raise self.error
        return f"https://assets.example.com/{key}"


class FixedCredits(CreditChecker):
    def __init__(self, count=0, limit=10, error=None):
        self.count = count
        self.limit = limit
        self.error = error

    async def usage(self, account_id):
        if self.error:
            raise self.error
        return AIUsage(count=self.count, limit=self.limit)

    async def reserve_credit(self, account_id):
        usage = await self.usage(account_id)
        if usage.exhausted:
            return False
        self.count += 1
        return True

    async def release_credit(self, account_id):
        self.count -= 1


class FakeImages(ImageGenerator):
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    async def generate(self, prompt, account_id, source_image=None):
        self.calls.append((prompt, account_id, source_image))
        if self.error:
            raise self.error
        return "data:image/png;base64,AAAA"


@pytest.fixture
async def session(seeded_store, own, identity):
    session = EditorSession(seeded_store, own, "d1", identity=identity)
    await session.start(live=False)
    yield session
    session.close()
    await session.flush()


def test_asset_key():
    assert asset_key("d1", "me.png", now=123) == "portfolios/d1/123_me.png"
    assert asset_key("d1", "C:\\Users\\ada\\me.png", now=1) == "portfolios/d1/1_me.png"
    assert asset_key("d1", "", now=1) == "portfolios/d1/1_upload"


class TestUpload:
    @pytest.mark.asyncio
    async def test_writes_public_url(self, session):
        uploader = RecordingUploader()
        assets = AssetPipelineCoordinator(session, uploader=uploader)

        url = await assets.upload("projects.p2.thumbnailUrl", b"png", "shot.png", "image/png")

        assert url.startswith("https://assets.example.com/portfolios/d1/")
        assert url.endswith("_shot.png")
        assert session.document["projects"][1]["thumbnailUrl"] == url
        assert assets.active_path is None

    @pytest.mark.asyncio
    async def test_failure_clears_active_path(self, session):
        assets = AssetPipelineCoordinator(session, uploader=RecordingUploader(error=OSError("503")))
        with pytest.raises(AssetUploadError):
            await assets.upload("hero.avatarUrl", b"x", "me.png")
        assert assets.active_path is None
        assert "avatarUrl" not in session.document["hero"]

    @pytest.mark.asyncio
    async def test_no_uploader(self, session):
        with pytest.raises(AssetUploadError):
            await AssetPipelineCoordinator(session).upload("hero.avatarUrl", b"x", "me.png")

    @pytest.mark.asyncio
    async def test_superseded_result_dropped(self, session):
        uploader = RecordingUploader()
        slow = asyncio.Event()
        uploader.gates["slow.png"] = slow
        assets = AssetPipelineCoordinator(session, uploader=uploader)

        first = asyncio.create_task(assets.upload("projects.p1.thumbnailUrl", b"1", "slow.png"))
        await asyncio.sleep(0)
        second = await assets.upload("projects.p2.thumbnailUrl", b"2", "fast.png")
        slow.set()

        assert await first is None
        assert second.endswith("_fast.png")
        assert session.document["projects"][0]["thumbnailUrl"] == ""
        assert session.document["projects"][1]["thumbnailUrl"] == second


class TestLibrary:
    @pytest.mark.asyncio
    async def test_writes_reference_as_is(self, session):
        assets = AssetPipelineCoordinator(session)
        ref = assets.pick_library("hero.avatarUrl", "https://images.example.com/a.jpg")
        assert ref == "https://images.example.com/a.jpg"
        assert session.document["hero"]["avatarUrl"] == ref


class TestGenerate:
    @pytest.mark.asyncio
    async def test_requires_identity(self, session):
        images = FakeImages()
        assets = AssetPipelineCoordinator(session, image_generator=images, credits=FixedCredits())
        with pytest.raises(AuthenticationRequiredError):
            await assets.generate("hero.avatarUrl", "a cat")
        assert images.calls == []

    @pytest.mark.asyncio
    async def test_exhausted_credit_never_calls_service(self, session, identity):
        images = FakeImages()
        assets = AssetPipelineCoordinator(
            session, image_generator=images, credits=FixedCredits(count=10, limit=10), identity=identity
        )
        with pytest.raises(CreditExhaustedError):
            await assets.generate("hero.avatarUrl", "a cat")
        assert images.calls == []
        assert assets.active_path is None

    @pytest.mark.asyncio
    async def test_generates_into_field(self, session, identity):
        images = FakeImages()
        credits = FixedCredits()
        assets = AssetPipelineCoordinator(session, image_generator=images, credits=credits, identity=identity)

        ref = await assets.generate("projects.p1.thumbnailUrl", "a compiler", source_image="https://x/y.png")

        assert ref == "data:image/png;base64,AAAA"
        assert credits.count == 1
        assert images.calls == [("a compiler", "u1", "https://x/y.png")]
        assert session.document["projects"][0]["thumbnailUrl"] == ref

    @pytest.mark.asyncio
    async def test_service_failure_releases_credit(self, session, identity):
        credits = FixedCredits(count=3)
        assets = AssetPipelineCoordinator(
            session, image_generator=FakeImages(error=RuntimeError("boom")), credits=credits, identity=identity
        )
        with pytest.raises(AssetGenerationError):
            await assets.generate("hero.avatarUrl", "a cat")
        assert assets.active_path is None
        assert credits.count == 3

    @pytest.mark.asyncio
    async def test_concurrent_generations_cannot_overspend(self, session, identity):
        credits = FixedCredits(count=9, limit=10)
        images = FakeImages()
        first = AssetPipelineCoordinator(session, image_generator=images, credits=credits, identity=identity)
        second = AssetPipelineCoordinator(session, image_generator=images, credits=credits, identity=identity)

        results = await asyncio.gather(
            first.generate("hero.avatarUrl", "a cat"),
            second.generate("projects.p1.thumbnailUrl", "a dog"),
            return_exceptions=True,
        )

        assert sum(isinstance(r, CreditExhaustedError) for r in results) == 1
        assert len(images.calls) == 1
        assert credits.count == 10

    @pytest.mark.asyncio
    async def test_credit_check_failure(self, session, identity):
        images = FakeImages()
        assets = AssetPipelineCoordinator(
            session, image_generator=images, credits=FixedCredits(error=ConnectionError("db")), identity=identity
        )
        with pytest.raises(AssetGenerationError):
            await assets.generate("hero.avatarUrl", "a cat")
        assert images.calls == []

    @pytest.mark.asyncio
    async def test_not_configured(self, session, identity):
        with pytest.raises(AssetGenerationError):
            await AssetPipelineCoordinator(session, identity=identity).generate("hero.avatarUrl", "a cat")


@pytest.mark.asyncio
async def test_cancel_drops_in_flight_result(session):
    uploader = RecordingUploader()
    gate = asyncio.Event()
    uploader.gates["me.png"] = gate
    assets = AssetPipelineCoordinator(session, uploader=uploader)

    task = asyncio.create_task(assets.upload("hero.avatarUrl", b"x", "me.png"))
    await asyncio.sleep(0)
    assets.cancel()
    gate.set()

    assert await task is None
    assert "avatarUrl" not in session.document["hero"]
