"""
WebSocket endpoint for live portfolio editing.

Accepts connections at /ws/portfolio/{doc_id}?handle=<owner handle>.
One EditorSession (with its live subscription) per connection.

Server → client frames:
  {"type": "snapshot", "document": {...}}     after every state change
  {"type": "status", "status": "not_found"}   document not (yet) loadable
  {"type": "route", "path": "/portfolio/..."} canonical editor path
  {"type": "save.error", "keys": [...], "error": "..."}
  {"type": "<op>.error", "error": "..."}      a client frame failed
  {"type": "asset.done", "path": ..., "reference": ...}
  {"type": "theme.imported", "summary": ..., "descriptor": {...}}

Client → server frames:
  update, set_field, entry, theme.import, asset.upload, asset.library,
  asset.generate (see _handle_frame)
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from backend.auth import get_guest_id, get_optional_user, identity_for
from backend.config import settings
from backend.models.portfolio import (
    EntryOperationRequest,
    GenerateImageRequest,
    LibraryAssetRequest,
    SetFieldRequest,
    ThemeImportRequest,
    UpdateRequest,
    UploadAssetRequest,
)
from backend.models.user import User
from backend.routes.portfolios import entry_operation, theme_source_descriptor
from backend.services.credits import get_credit_checker
from backend.services.documents import get_document_store
from backend.services.guest_sessions import GuestSessionRegistry, get_guest_sessions
from backend.services.handles import get_handle_directory
from backend.services.image_provider import get_image_generator
from backend.services.r2 import get_asset_storage
from engine.kernel.assets import AssetPipelineCoordinator, AssetPipelineError
from engine.kernel.identity import IdentityResolver
from engine.kernel.lenses import EntryNotFoundError, InvalidPathError, UnknownSectionError
from engine.kernel.session import EditorSession, SessionClosed, SessionNotReady
from engine.kernel.storage import AssetUploader, CreditChecker, DocumentStore, HandleLookup, ImageGenerator
from engine.kernel.theme_transfer import theme_summary

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])

# Errors a single frame can cause without ending the connection
_FRAME_ERRORS = (
    UnknownSectionError,
    InvalidPathError,
    EntryNotFoundError,
    SessionNotReady,
    SessionClosed,
    AssetPipelineError,
    ValidationError,
    KeyError,
    TypeError,
    ValueError,
)

_ASSET_REQUESTS = {
    "asset.upload": UploadAssetRequest,
    "asset.library": LibraryAssetRequest,
    "asset.generate": GenerateImageRequest,
}


class _Connection:
    """Per-connection state: the session, its asset coordinator and the outbox."""

    def __init__(self, session: EditorSession, assets: AssetPipelineCoordinator) -> None:
        self.session = session
        self.assets = assets
        self.outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self.tasks: set[asyncio.Task] = set()

        session.add_listener(lambda doc: self.send({"type": "snapshot", "document": doc}))
        session.add_write_error_listener(
            lambda fields, e: self.send({"type": "save.error", "keys": sorted(fields), "error": str(e)})
        )

    def send(self, frame: dict[str, Any]) -> None:
        self.outbox.put_nowait(frame)

    def spawn(self, msg_type: str, coro) -> None:
        """Run a slow frame (asset work) without blocking the receive loop."""

        async def _run() -> None:
            try:
                await coro
            except _FRAME_ERRORS as e:
                self.send({"type": f"{msg_type}.error", "error": str(e)})

        task = asyncio.create_task(_run())
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)


async def _handle_frame(conn: _Connection, msg: dict[str, Any]) -> None:
    session = conn.session
    msg_type = msg.get("type", "")

    if session.owner.kind == "other":
        raise ValueError("Read-only: this portfolio belongs to someone else")

    if msg_type == "update":
        session.update(UpdateRequest.model_validate(_body(msg)).fields)
    elif msg_type == "set_field":
        req = SetFieldRequest.model_validate(_body(msg))
        session.set_field(req.path, req.value)
    elif msg_type == "entry":
        req = EntryOperationRequest.model_validate(_body(msg))
        try:
            edit = entry_operation(req)
        except HTTPException as e:
            raise ValueError(e.detail) from e
        edit(session)
    elif msg_type == "theme.import":
        req = ThemeImportRequest.model_validate(_body(msg))
        descriptor = await theme_source_descriptor(session, req.source_id)
        if descriptor is None:
            raise KeyError("Source portfolio not found")
        session.apply_theme(descriptor)
        conn.send({"type": "theme.imported", "descriptor": descriptor, "summary": theme_summary(descriptor)})
    elif msg_type in _ASSET_REQUESTS:
        req = _ASSET_REQUESTS[msg_type].model_validate(_body(msg))
        conn.spawn(msg_type, _run_asset(conn, req))
    else:
        raise ValueError(f"Unknown message type: {msg_type!r}")


def _body(msg: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in msg.items() if k != "type"}


async def _run_asset(conn: _Connection, req: UploadAssetRequest | LibraryAssetRequest | GenerateImageRequest) -> None:
    if isinstance(req, LibraryAssetRequest):
        reference = conn.assets.pick_library(req.path, req.url)
    elif isinstance(req, UploadAssetRequest):
        try:
            data = base64.b64decode(req.data, validate=True)
        except binascii.Error as e:
            raise ValueError("data must be base64") from e
        if len(data) > settings.MAX_UPLOAD_BYTES:
            raise ValueError("File too large")
        reference = await conn.assets.upload(req.path, data, req.filename, req.content_type)
    else:
        reference = await conn.assets.generate(req.path, req.prompt, req.source_image)
    # None: superseded by a newer asset request for another field
    if reference is not None:
        conn.send({"type": "asset.done", "path": req.path, "reference": reference})


async def _pump(websocket: WebSocket, conn: _Connection) -> None:
    while True:
        frame = await conn.outbox.get()
        await websocket.send_json(frame)


@router.websocket("/ws/portfolio/{doc_id}")
async def portfolio_ws(
    websocket: WebSocket,
    doc_id: str,
    handle: str | None = None,
    user: User | None = Depends(get_optional_user),
    guest_id: str | None = Depends(get_guest_id),
    store: DocumentStore = Depends(get_document_store),
    guests: GuestSessionRegistry = Depends(get_guest_sessions),
    handles: HandleLookup = Depends(get_handle_directory),
    uploader: AssetUploader = Depends(get_asset_storage),
    image_generator: ImageGenerator = Depends(get_image_generator),
    credits: CreditChecker = Depends(get_credit_checker),
) -> None:
    await websocket.accept()

    identity = identity_for(user)
    owner = await IdentityResolver(handles).resolve(identity, handle)
    guest_store = guests.existing(guest_id) if owner.is_guest else None
    if owner.is_guest and (guest_store is None or guest_store.load(doc_id) is None):
        await websocket.send_json({"type": "status", "status": "not_found"})
        await websocket.close(code=4404)
        return

    session = EditorSession(
        store,
        owner,
        doc_id,
        guest_store=guest_store,
        route_handle=handle,
        identity=identity,
    )
    assets = AssetPipelineCoordinator(
        session,
        uploader=uploader,
        image_generator=image_generator,
        credits=credits,
        identity=identity,
    )
    conn = _Connection(session, assets)
    sender = asyncio.create_task(_pump(websocket, conn))

    logger.info("ws: opened %s for %s owner %s", doc_id, owner.kind, owner.owner_id)
    try:
        await session.start(live=True)
        if not session.ready:
            conn.send({"type": "status", "status": session.status})
        if session.canonical_path:
            conn.send({"type": "route", "path": session.canonical_path})

        while True:
            raw = await websocket.receive_text()
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                conn.send({"type": "error", "error": "Invalid JSON"})
                continue
            if not isinstance(msg, dict):
                conn.send({"type": "error", "error": "Expected a JSON object"})
                continue
            try:
                await _handle_frame(conn, msg)
            except _FRAME_ERRORS as e:
                logger.info("ws: %s frame on %s failed: %s", msg.get("type"), doc_id, e)
                conn.send({"type": f"{msg.get('type', 'message')}.error", "error": str(e)})
    except WebSocketDisconnect:
        logger.info("ws: client disconnected from %s", doc_id)
    finally:
        session.close()
        sender.cancel()
