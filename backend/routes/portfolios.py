"""
Portfolio routes — list, create, open, edit, delete, theme import,
image assets and guest migration.

Every edit opens a short-lived EditorSession for the resolved owner,
applies one operation through it, waits for the write to settle and
returns the resulting document. Long-lived editing goes through the
WebSocket route instead.
"""

from __future__ import annotations

import base64
import binascii
import logging
import uuid
from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Response, status

from backend.auth import ensure_guest_id, get_current_user, get_guest_id, get_optional_user, identity_for
from backend.config import settings
from backend.models.portfolio import (
    AssetResponse,
    CreatePortfolioRequest,
    EditorResponse,
    EntryOperationRequest,
    GenerateImageRequest,
    LibraryAssetRequest,
    MigrationResponse,
    PortfolioSummary,
    SetFieldRequest,
    ThemeImportRequest,
    ThemeImportResponse,
    UpdateRequest,
    UploadAssetRequest,
)
from backend.models.user import User
from backend.services.credits import get_credit_checker
from backend.services.documents import get_document_store
from backend.services.guest_sessions import GuestSessionRegistry, get_guest_sessions
from backend.services.handles import get_handle_directory
from backend.services.image_provider import get_image_generator
from backend.services.r2 import get_asset_storage
from engine.kernel.assets import (
    AssetPipelineCoordinator,
    AssetPipelineError,
    AuthenticationRequiredError,
    CreditExhaustedError,
)
from engine.kernel.generator import new_document
from engine.kernel.hydrator import hydrate
from engine.kernel.identity import IdentityResolver, canonical_editor_path
from engine.kernel.lenses import EntryNotFoundError, InvalidPathError, UnknownSectionError
from engine.kernel.migration import MigrationAgent
from engine.kernel.session import EditorSession
from engine.kernel.storage import (
    AssetUploader,
    CreditChecker,
    DocumentStore,
    GuestOwnerError,
    HandleLookup,
    ImageGenerator,
)
from engine.kernel.theme_transfer import extract_theme, theme_summary
from engine.kernel.types import GUEST_OWNER

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/portfolios", tags=["portfolios"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Portfolio not found.")


async def open_session(
    doc_id: str,
    user: User | None,
    guest_id: str | None,
    store: DocumentStore,
    guests: GuestSessionRegistry,
    handles: HandleLookup,
    handle: str | None = None,
    *,
    writable: bool = True,
) -> EditorSession:
    """Resolve the owner and load the document once (no subscription)."""
    identity = identity_for(user)
    owner = await IdentityResolver(handles).resolve(identity, handle)

    guest_store = None
    if owner.is_guest:
        guest_store = guests.existing(guest_id)
        if guest_store is None or guest_store.load(doc_id) is None:
            raise _not_found()

    session = EditorSession(
        store,
        owner,
        doc_id,
        guest_store=guest_store,
        route_handle=handle,
        identity=identity,
    )
    await session.start(live=False)
    if session.status == "failed":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Could not load portfolio.")
    if not session.ready:
        raise _not_found()
    if writable and owner.kind == "other":
        session.close()
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only edit your own portfolios.")
    return session


def _editor_response(session: EditorSession) -> EditorResponse:
    return EditorResponse(
        document=session.document or {},
        owner=session.owner.kind,
        canonical_path=session.canonical_path,
    )


async def _apply(session: EditorSession, edit: Callable[[], Any]) -> dict[str, Any]:
    """Run one edit, wait for its write, and close the session."""
    errors: list[Exception] = []
    session.add_write_error_listener(lambda fields, e: errors.append(e))
    try:
        edit()
    except (UnknownSectionError, InvalidPathError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except EntryNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Entry not found: {e}") from e
    finally:
        await session.flush()
        session.close()
    if errors:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Change was not saved. Please retry.")
    return session.document or {}


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------


@router.get("", status_code=200)
async def list_portfolios(
    user: User | None = Depends(get_optional_user),
    guest_id: str | None = Depends(get_guest_id),
    store: DocumentStore = Depends(get_document_store),
    guests: GuestSessionRegistry = Depends(get_guest_sessions),
) -> list[PortfolioSummary]:
    """List the caller's portfolios, most recently edited first."""
    if user is None:
        guest_store = guests.existing(guest_id)
        docs = [hydrate(d, GUEST_OWNER) for d in guest_store.load_all()] if guest_store else []
        docs.sort(key=lambda d: d["updatedAt"], reverse=True)
    else:
        owner_id = str(user.id)
        docs = [hydrate(record, owner_id) for record in await store.list(owner_id)]
    return [PortfolioSummary.from_document(d) for d in docs]


@router.post("", status_code=201)
async def create_portfolio(
    req: CreatePortfolioRequest,
    response: Response,
    user: User | None = Depends(get_optional_user),
    guest_id: str | None = Depends(get_guest_id),
    store: DocumentStore = Depends(get_document_store),
    guests: GuestSessionRegistry = Depends(get_guest_sessions),
) -> EditorResponse:
    """
    Create a starter portfolio.

    Signed-in callers get a remote document. Guests get one in their guest
    storage (and a guest cookie if they had none); it moves into their
    account through /migrate after sign-in.
    """
    if user is None:
        guest_store = guests.store_for(ensure_guest_id(response, guest_id))
        doc = new_document(
            GUEST_OWNER,
            doc_id=str(uuid.uuid4()),
            prompt=req.prompt,
            title=req.title,
            template_id=req.template_id,
            mode=req.mode,
        )
        if not guest_store.save(doc):
            raise HTTPException(status_code=status.HTTP_507_INSUFFICIENT_STORAGE, detail="Guest storage is full.")
        return EditorResponse(document=doc, owner="guest")

    owner_id = str(user.id)
    draft = new_document(owner_id, prompt=req.prompt, title=req.title, template_id=req.template_id, mode=req.mode)
    doc_id = await store.create(owner_id, draft)
    record = await store.get(owner_id, doc_id)
    identity = user.identity()
    return EditorResponse(
        document=hydrate(record, owner_id, doc_id=doc_id),
        owner="self",
        canonical_path=canonical_editor_path(identity.handle, doc_id),
    )


@router.post("/migrate", status_code=200)
async def migrate_guest_portfolios(
    user: User = Depends(get_current_user),
    guest_id: str | None = Depends(get_guest_id),
    store: DocumentStore = Depends(get_document_store),
    guests: GuestSessionRegistry = Depends(get_guest_sessions),
) -> MigrationResponse:
    """Move everything the caller made as a guest into their account."""
    guest_store = guests.existing(guest_id)
    if guest_store is None:
        return MigrationResponse(migrated={}, failed=[])
    report = await MigrationAgent(guest_store, store).migrate(user.identity())
    logger.info(
        "portfolios: migrated %d guest portfolios for %s (%d failed)",
        len(report.migrated),
        user.id,
        len(report.failed),
    )
    if not guest_store.ids():
        guests.drop(guest_id)
    return MigrationResponse(migrated=report.migrated, failed=report.failed)


# ---------------------------------------------------------------------------
# Single document
# ---------------------------------------------------------------------------


@router.get("/{doc_id}", status_code=200)
async def open_portfolio(
    doc_id: str,
    handle: str | None = None,
    user: User | None = Depends(get_optional_user),
    guest_id: str | None = Depends(get_guest_id),
    store: DocumentStore = Depends(get_document_store),
    guests: GuestSessionRegistry = Depends(get_guest_sessions),
    handles: HandleLookup = Depends(get_handle_directory),
) -> EditorResponse:
    """
    Load a portfolio for the editor.

    `handle` is the owner handle from the editor URL, if any. The response
    carries the canonical handle-qualified editor path for signed-in
    callers, so the client can rewrite a legacy URL in place.
    """
    session = await open_session(doc_id, user, guest_id, store, guests, handles, handle, writable=False)
    session.close()
    return _editor_response(session)


@router.delete("/{doc_id}", status_code=204)
async def delete_portfolio(
    doc_id: str,
    user: User | None = Depends(get_optional_user),
    guest_id: str | None = Depends(get_guest_id),
    store: DocumentStore = Depends(get_document_store),
    guests: GuestSessionRegistry = Depends(get_guest_sessions),
) -> None:
    """Delete a portfolio. Irreversible."""
    if user is None:
        guest_store = guests.existing(guest_id)
        if guest_store is None or guest_store.load(doc_id) is None:
            raise _not_found()
        guest_store.clear(doc_id)
        return
    try:
        deleted = await store.delete(str(user.id), doc_id)
    except GuestOwnerError as e:
        raise _not_found() from e
    if not deleted:
        raise _not_found()


@router.patch("/{doc_id}", status_code=200)
async def update_portfolio(
    doc_id: str,
    req: UpdateRequest,
    handle: str | None = None,
    user: User | None = Depends(get_optional_user),
    guest_id: str | None = Depends(get_guest_id),
    store: DocumentStore = Depends(get_document_store),
    guests: GuestSessionRegistry = Depends(get_guest_sessions),
    handles: HandleLookup = Depends(get_handle_directory),
) -> dict[str, Any]:
    """Merge top-level keys into the document."""
    session = await open_session(doc_id, user, guest_id, store, guests, handles, handle)
    return await _apply(session, lambda: session.update(req.fields))


@router.post("/{doc_id}/fields", status_code=200)
async def set_portfolio_field(
    doc_id: str,
    req: SetFieldRequest,
    handle: str | None = None,
    user: User | None = Depends(get_optional_user),
    guest_id: str | None = Depends(get_guest_id),
    store: DocumentStore = Depends(get_document_store),
    guests: GuestSessionRegistry = Depends(get_guest_sessions),
    handles: HandleLookup = Depends(get_handle_directory),
) -> dict[str, Any]:
    """Set one nested field, e.g. hero.headline or projects.<id>.title."""
    session = await open_session(doc_id, user, guest_id, store, guests, handles, handle)
    return await _apply(session, lambda: session.set_field(req.path, req.value))


@router.post("/{doc_id}/entries", status_code=200)
async def edit_portfolio_entry(
    doc_id: str,
    req: EntryOperationRequest,
    handle: str | None = None,
    user: User | None = Depends(get_optional_user),
    guest_id: str | None = Depends(get_guest_id),
    store: DocumentStore = Depends(get_document_store),
    guests: GuestSessionRegistry = Depends(get_guest_sessions),
    handles: HandleLookup = Depends(get_handle_directory),
) -> dict[str, Any]:
    """Insert, update, replace, remove or move one entry of a list section."""
    edit = entry_operation(req)
    session = await open_session(doc_id, user, guest_id, store, guests, handles, handle)
    return await _apply(session, lambda: edit(session))


def entry_operation(req: EntryOperationRequest) -> Callable[[EditorSession], Any]:
    """Validate an entry operation and bind it to a session call."""

    def _bad(detail: str) -> HTTPException:
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)

    if req.op == "insert":
        if req.entry is None:
            raise _bad("insert needs an entry")
        return lambda s: s.insert_entry(req.list_path, req.entry, req.index)
    if not req.entry_id:
        raise _bad(f"{req.op} needs an entry_id")
    if req.op == "update":
        if req.fields is None:
            raise _bad("update needs fields")
        return lambda s: s.update_entry(req.list_path, req.entry_id, req.fields)
    if req.op == "replace":
        if req.entry is None:
            raise _bad("replace needs an entry")
        return lambda s: s.replace_entry(req.list_path, req.entry_id, req.entry)
    if req.op == "move":
        if req.index is None:
            raise _bad("move needs an index")
        return lambda s: s.move_entry(req.list_path, req.entry_id, req.index)
    return lambda s: s.remove_entry(req.list_path, req.entry_id)


# ---------------------------------------------------------------------------
# Theme import
# ---------------------------------------------------------------------------


async def theme_source_descriptor(session: EditorSession, source_id: str) -> dict[str, Any] | None:
    """Theme descriptor of another document in the session owner's partition."""
    if session.is_guest:
        source = session.guest_store.load(source_id) if session.guest_store else None
    else:
        source = await session.store.get(session.owner.owner_id, source_id)
    if source is None:
        return None
    return extract_theme(hydrate(source, session.owner.owner_id, doc_id=source_id))


@router.post("/{doc_id}/theme/import", status_code=200)
async def import_theme(
    doc_id: str,
    req: ThemeImportRequest,
    handle: str | None = None,
    user: User | None = Depends(get_optional_user),
    guest_id: str | None = Depends(get_guest_id),
    store: DocumentStore = Depends(get_document_store),
    guests: GuestSessionRegistry = Depends(get_guest_sessions),
    handles: HandleLookup = Depends(get_handle_directory),
) -> ThemeImportResponse:
    """Copy the style of another of the caller's portfolios into this one."""
    session = await open_session(doc_id, user, guest_id, store, guests, handles, handle)
    descriptor = await theme_source_descriptor(session, req.source_id)
    if descriptor is None:
        session.close()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Source portfolio not found.")

    document = await _apply(session, lambda: session.apply_theme(descriptor))
    return ThemeImportResponse(descriptor=descriptor, summary=theme_summary(descriptor), document=document)


# ---------------------------------------------------------------------------
# Image assets
# ---------------------------------------------------------------------------


def _asset_error(e: AssetPipelineError) -> HTTPException:
    if isinstance(e, CreditExhaustedError):
        return HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=str(e))
    if isinstance(e, AuthenticationRequiredError):
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))


async def _run_asset(session: EditorSession, path: str, run) -> AssetResponse:
    errors: list[Exception] = []
    session.add_write_error_listener(lambda fields, e: errors.append(e))
    try:
        reference = await run()
    except AssetPipelineError as e:
        raise _asset_error(e) from e
    except (UnknownSectionError, InvalidPathError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except EntryNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Entry not found: {e}") from e
    finally:
        await session.flush()
        session.close()
    if errors:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Change was not saved. Please retry.")
    return AssetResponse(path=path, reference=reference, document=session.document or {})


@router.post("/{doc_id}/assets/upload", status_code=200)
async def upload_asset(
    doc_id: str,
    req: UploadAssetRequest,
    handle: str | None = None,
    user: User | None = Depends(get_optional_user),
    guest_id: str | None = Depends(get_guest_id),
    store: DocumentStore = Depends(get_document_store),
    guests: GuestSessionRegistry = Depends(get_guest_sessions),
    handles: HandleLookup = Depends(get_handle_directory),
    uploader: AssetUploader = Depends(get_asset_storage),
) -> AssetResponse:
    """Upload an image (base64 body) and write its URL to `path`."""
    try:
        data = base64.b64decode(req.data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="data must be base64.") from e
    if len(data) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="File too large.")

    session = await open_session(doc_id, user, guest_id, store, guests, handles, handle)
    assets = AssetPipelineCoordinator(session, uploader=uploader, identity=identity_for(user))
    return await _run_asset(session, req.path, lambda: assets.upload(req.path, data, req.filename, req.content_type))


@router.post("/{doc_id}/assets/library", status_code=200)
async def pick_library_asset(
    doc_id: str,
    req: LibraryAssetRequest,
    handle: str | None = None,
    user: User | None = Depends(get_optional_user),
    guest_id: str | None = Depends(get_guest_id),
    store: DocumentStore = Depends(get_document_store),
    guests: GuestSessionRegistry = Depends(get_guest_sessions),
    handles: HandleLookup = Depends(get_handle_directory),
) -> AssetResponse:
    """Write a pre-hosted image URL to `path`."""
    session = await open_session(doc_id, user, guest_id, store, guests, handles, handle)
    assets = AssetPipelineCoordinator(session, identity=identity_for(user))

    async def run() -> str | None:
        return assets.pick_library(req.path, req.url)

    return await _run_asset(session, req.path, run)


@router.post("/{doc_id}/assets/generate", status_code=200)
async def generate_asset(
    doc_id: str,
    req: GenerateImageRequest,
    handle: str | None = None,
    user: User | None = Depends(get_optional_user),
    guest_id: str | None = Depends(get_guest_id),
    store: DocumentStore = Depends(get_document_store),
    guests: GuestSessionRegistry = Depends(get_guest_sessions),
    handles: HandleLookup = Depends(get_handle_directory),
    image_generator: ImageGenerator = Depends(get_image_generator),
    credits: CreditChecker = Depends(get_credit_checker),
) -> AssetResponse:
    """Generate (or edit) an image with AI and write it to `path`. Signed-in only."""
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Sign in to generate images")
    session = await open_session(doc_id, user, guest_id, store, guests, handles, handle)
    assets = AssetPipelineCoordinator(
        session,
        image_generator=image_generator,
        credits=credits,
        identity=identity_for(user),
    )
    return await _run_asset(
        session,
        req.path,
        lambda: assets.generate(req.path, req.prompt, req.source_image),
    )


