"""
Folio Kernel — Editor session (synchronization core)

Owns the in-memory document for one (document id, owner) pair and
reconciles three inputs:

  1. initial load     one point read, then a standing subscription
  2. local edits      applied synchronously, written fire-and-forget
  3. remote pushes    re-hydrated and swapped in wholesale

Reconciliation is last-remote-wins: a subscription event replaces the
document even when a local edit has not yet round-tripped, so an edit
whose write is still in flight can visibly revert until its own echo
arrives. Failed writes are not rolled back; they are logged and reported
to write-error listeners.

Guest sessions never touch the remote store. They start from the guest
snapshot for this id (or a freshly generated document) and every edit
overwrites that snapshot.

Usage:
    session = EditorSession(store, owner, doc_id, identity=identity)
    await session.start()
    session.set_field("hero.headline", "Hello")
    ...
    session.close()
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Callable
from typing import Any, Literal

from engine.kernel import lenses
from engine.kernel.generator import new_document
from engine.kernel.guest_store import GuestSessionStore
from engine.kernel.hydrator import hydrate
from engine.kernel.identity import canonical_editor_path
from engine.kernel.storage import DocumentStore, Subscription
from engine.kernel.theme_transfer import apply_theme
from engine.kernel.types import GUEST_OWNER, STORE_MANAGED_KEYS, Identity, OwnerRef, now_ms

logger = logging.getLogger(__name__)

SessionStatus = Literal["idle", "loading", "ready", "not_found", "failed", "closed"]

StateListener = Callable[[dict[str, Any]], None]
WriteErrorListener = Callable[[dict[str, Any], Exception], None]


class SessionNotReady(Exception):
    """Edit attempted before a document was loaded."""

    pass


class SessionClosed(Exception):
    """Edit attempted on a session that has been closed."""

    pass


class EditorSession:
    def __init__(
        self,
        store: DocumentStore,
        owner: OwnerRef,
        doc_id: str,
        *,
        guest_store: GuestSessionStore | None = None,
        route_handle: str | None = None,
        identity: Identity | None = None,
    ) -> None:
        self.store = store
        self.owner = owner
        self.doc_id = doc_id
        self.guest_store = guest_store
        self.route_handle = route_handle
        self.identity = identity

        self.document: dict[str, Any] | None = None
        self.status: SessionStatus = "idle"
        self.canonical_path: str | None = None

        self._subscription: Subscription | None = None
        self._pending: set[asyncio.Task] = set()
        self._listeners: list[StateListener] = []
        self._write_error_listeners: list[WriteErrorListener] = []

    # -- state ---------------------------------------------------------------

    @property
    def is_guest(self) -> bool:
        return self.owner.is_guest

    @property
    def ready(self) -> bool:
        return self.status == "ready"

    @property
    def pending_writes(self) -> int:
        return len(self._pending)

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Call listener with the document after every change. Returns a remover."""
        self._listeners.append(listener)
        return lambda: _discard(self._listeners, listener)

    def add_write_error_listener(self, listener: WriteErrorListener) -> Callable[[], None]:
        """Call listener(fields, error) when a background write fails."""
        self._write_error_listeners.append(listener)
        return lambda: _discard(self._write_error_listeners, listener)

    # -- lifecycle -----------------------------------------------------------

    async def start(self, live: bool = True, *, seed: dict[str, Any] | None = None) -> None:
        """
        Load the document.

        Args:
            live: Open the standing subscription after the first read
            seed: Guest sessions only; a generated document to start from
        """
        if self.status == "closed":
            raise SessionClosed(self.doc_id)
        self.status = "loading"

        if self.is_guest:
            self._start_guest(seed)
            return

        try:
            record = await self.store.get(self.owner.owner_id, self.doc_id)
        except Exception as e:
            logger.warning("session: initial read of %s failed: %s", self.doc_id, e)
            self.status = "failed"
            return

        if self.status == "closed":
            return
        if record is None:
            logger.warning("session: %s not found for owner %s", self.doc_id, self.owner.owner_id)
            self.status = "not_found"
        else:
            self._replace(record)

        if not live:
            return
        try:
            subscription = await self.store.subscribe(self.owner.owner_id, self.doc_id, self._on_remote)
        except Exception as e:
            logger.warning("session: subscription for %s failed: %s", self.doc_id, e)
            if self.document is None:
                self.status = "failed"
            return
        if self.status == "closed":
            subscription.close()
            return
        self._subscription = subscription

    def close(self) -> None:
        """Release the subscription. In-flight writes are left to finish."""
        if self.status == "closed":
            return
        self.status = "closed"
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        logger.debug("session: closed %s (%d writes in flight)", self.doc_id, len(self._pending))

    async def flush(self) -> None:
        """Wait for every write issued so far to settle."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    def _start_guest(self, seed: dict[str, Any] | None) -> None:
        snapshot = self.guest_store.load(self.doc_id) if self.guest_store else None
        source = seed if seed is not None else snapshot
        if source is not None:
            self.document = hydrate({**source, "id": self.doc_id, "userId": GUEST_OWNER}, GUEST_OWNER)
        else:
            self.document = new_document(GUEST_OWNER, doc_id=self.doc_id)
        self.status = "ready"
        if self.guest_store is not None and (seed is not None or snapshot is None):
            self.guest_store.save(self.document)
        self._notify()

    def _on_remote(self, record: dict[str, Any] | None) -> None:
        if self.status == "closed":
            return
        if record is None:
            logger.info("session: %s was deleted remotely", self.doc_id)
            return
        self._replace(record)

    def _replace(self, record: dict[str, Any]) -> None:
        self.document = hydrate(record, self.owner.owner_id, doc_id=self.doc_id)
        self.status = "ready"
        if self.identity is not None and self.canonical_path is None:
            handle = self.route_handle if self.owner.kind == "other" and self.route_handle else self.identity.handle
            self.canonical_path = canonical_editor_path(handle, self.doc_id)
        self._notify()

    def _notify(self) -> None:
        if self.document is None:
            return
        for listener in list(self._listeners):
            listener(self.document)

    # -- edits ---------------------------------------------------------------

    def _current(self) -> dict[str, Any]:
        if self.status == "closed":
            raise SessionClosed(self.doc_id)
        if self.document is None:
            raise SessionNotReady(self.doc_id)
        return self.document

    def update(self, partial: dict[str, Any]) -> dict[str, Any]:
        """
        Apply a top-level partial to local state now and persist it in the
        background (or to the guest snapshot). Returns the new document.
        """
        if not isinstance(partial, dict):
            raise TypeError("update expects a dict of top-level fields")
        current = self._current()
        fields = {k: copy.deepcopy(v) for k, v in partial.items() if k not in STORE_MANAGED_KEYS and k != "userId"}
        if not fields:
            return current

        document = {**current, **fields}
        document["updatedAt"] = max(now_ms(), current.get("updatedAt", 0))
        self.document = document

        if self.is_guest:
            if self.guest_store is not None:
                self.guest_store.save(document)
        else:
            task = asyncio.get_running_loop().create_task(self._write(fields))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

        self._notify()
        return document

    async def _write(self, fields: dict[str, Any]) -> None:
        try:
            await self.store.merge(self.owner.owner_id, self.doc_id, fields)
        except Exception as e:
            logger.warning("session: write of %s to %s failed: %s", sorted(fields), self.doc_id, e)
            for listener in list(self._write_error_listeners):
                listener(fields, e)

    def set_field(self, path: str, value: Any) -> dict[str, Any]:
        return self.update(lenses.set_field(self._current(), path, value))

    def replace_section(self, key: str, value: Any) -> dict[str, Any]:
        return self.update(lenses.replace_section(self._current(), key, value))

    def merge_section(self, key: str, fields: dict[str, Any]) -> dict[str, Any]:
        return self.update(lenses.merge_section(self._current(), key, fields))

    def update_entry(self, list_path: str, entry_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        return self.update(lenses.update_entry(self._current(), list_path, entry_id, fields))

    def replace_entry(self, list_path: str, entry_id: str, entry: dict[str, Any]) -> dict[str, Any]:
        return self.update(lenses.replace_entry(self._current(), list_path, entry_id, entry))

    def insert_entry(self, list_path: str, entry: dict[str, Any], index: int | None = None) -> dict[str, Any]:
        return self.update(lenses.insert_entry(self._current(), list_path, entry, index))

    def remove_entry(self, list_path: str, entry_id: str) -> dict[str, Any]:
        return self.update(lenses.remove_entry(self._current(), list_path, entry_id))

    def move_entry(self, list_path: str, entry_id: str, index: int) -> dict[str, Any]:
        return self.update(lenses.move_entry(self._current(), list_path, entry_id, index))

    def apply_theme(self, descriptor: dict[str, Any]) -> dict[str, Any]:
        """Merge a theme descriptor in, one update per touched section."""
        document = self._current()
        for key, value in apply_theme(document, descriptor).items():
            document = self.update({key: value})
        return document


def _discard(items: list, item: Any) -> None:
    if item in items:
        items.remove(item)
