"""
Folio Kernel — Collaborator interfaces

Everything the kernel talks to that lives outside it:

  DocumentStore   remote per-owner document store with change subscriptions
  KeyValueStore   client-local ephemeral storage (guest documents only)
  HandleLookup    handle → account id
  CreditChecker   AI usage counter and credit check
  AssetUploader   binary → public reference
  ImageGenerator  prompt → image reference

Each interface is a plain base class. Production implementations live in
engine.kernel.postgres_storage and backend.services; the in-memory ones
below are used by tests and by the server-side guest registry.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import uuid
from collections.abc import Callable
from typing import Any

from engine.kernel.types import GUEST_OWNER, STORE_MANAGED_KEYS, AIUsage, now_ms

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class DocumentNotFound(Exception):
    """Document does not exist in the owner's partition."""

    pass


class GuestOwnerError(Exception):
    """The guest sentinel (or an empty owner) was sent to the remote store."""

    pass


class StorageQuotaExceeded(Exception):
    """Local key-value storage is full."""

    pass


def ensure_remote_owner(owner_id: str) -> None:
    if not owner_id or owner_id == GUEST_OWNER:
        raise GuestOwnerError(owner_id)


def clean_fields(fields: dict[str, Any]) -> dict[str, Any]:
    """Drop keys the store manages itself (id, timestamps)."""
    return {k: copy.deepcopy(v) for k, v in fields.items() if k not in STORE_MANAGED_KEYS}


# ---------------------------------------------------------------------------
# Remote document store
# ---------------------------------------------------------------------------

# Receives the full latest record, or None once the document is gone.
ChangeCallback = Callable[[dict[str, Any] | None], None]


class Subscription:
    """Handle for a standing change subscription."""

    def __init__(self, on_close: Callable[[], None]) -> None:
        self._on_close = on_close
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._on_close()


class DocumentStore:
    """
    Abstract remote store. Documents are partitioned by owner and keyed by id.
    Implement with Postgres for production, or in-memory for tests.
    """

    async def get(self, owner_id: str, doc_id: str) -> dict[str, Any] | None:
        """Point read. Returns None if not found."""
        raise NotImplementedError

    async def list(self, owner_id: str) -> list[dict[str, Any]]:
        """All documents of an owner, most recently updated first."""
        raise NotImplementedError

    async def merge(self, owner_id: str, doc_id: str, fields: dict[str, Any]) -> None:
        """
        Partial write. Only the given top-level keys change; everything else
        is left as stored. Creates the record if missing.
        """
        raise NotImplementedError

    async def create(self, owner_id: str, data: dict[str, Any]) -> str:
        """Create a document and return the id the store assigned."""
        raise NotImplementedError

    async def delete(self, owner_id: str, doc_id: str) -> bool:
        """Delete a document. True if something was deleted."""
        raise NotImplementedError

    async def subscribe(self, owner_id: str, doc_id: str, callback: ChangeCallback) -> Subscription:
        """
        Invoke callback with the latest full record on every change,
        including changes made through this store, in delivery order.
        """
        raise NotImplementedError


class MemoryDocumentStore(DocumentStore):
    """
    In-memory store for testing.

    Change notifications are scheduled on the running event loop rather
    than delivered inline, so like a real store they arrive after the
    write that caused them has returned.
    """

    def __init__(self) -> None:
        self.records: dict[tuple[str, str], dict[str, Any]] = {}
        self.writes: list[tuple[str, str, dict[str, Any]]] = []
        self._subscribers: dict[tuple[str, str], list[ChangeCallback]] = {}

    async def get(self, owner_id: str, doc_id: str) -> dict[str, Any] | None:
        ensure_remote_owner(owner_id)
        record = self.records.get((owner_id, doc_id))
        return copy.deepcopy(record) if record is not None else None

    async def list(self, owner_id: str) -> list[dict[str, Any]]:
        ensure_remote_owner(owner_id)
        owned = [copy.deepcopy(r) for (owner, _), r in self.records.items() if owner == owner_id]
        return sorted(owned, key=lambda r: r.get("updatedAt", 0), reverse=True)

    async def merge(self, owner_id: str, doc_id: str, fields: dict[str, Any]) -> None:
        ensure_remote_owner(owner_id)
        self.writes.append((owner_id, doc_id, copy.deepcopy(fields)))
        self._apply(owner_id, doc_id, fields)

    async def create(self, owner_id: str, data: dict[str, Any]) -> str:
        ensure_remote_owner(owner_id)
        doc_id = str(uuid.uuid4())
        now = now_ms()
        self.records[(owner_id, doc_id)] = {
            **clean_fields(data),
            "id": doc_id,
            "userId": owner_id,
            "createdAt": now,
            "updatedAt": now,
        }
        self._notify(owner_id, doc_id)
        return doc_id

    async def delete(self, owner_id: str, doc_id: str) -> bool:
        ensure_remote_owner(owner_id)
        existed = self.records.pop((owner_id, doc_id), None) is not None
        if existed:
            self._notify(owner_id, doc_id)
        return existed

    async def subscribe(self, owner_id: str, doc_id: str, callback: ChangeCallback) -> Subscription:
        ensure_remote_owner(owner_id)
        key = (owner_id, doc_id)
        self._subscribers.setdefault(key, []).append(callback)

        def _unsubscribe() -> None:
            callbacks = self._subscribers.get(key, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return Subscription(_unsubscribe)

    def push(self, owner_id: str, doc_id: str, fields: dict[str, Any]) -> None:
        """Apply a change as if another client had written it."""
        self._apply(owner_id, doc_id, fields)

    def subscriber_count(self, owner_id: str, doc_id: str) -> int:
        return len(self._subscribers.get((owner_id, doc_id), []))

    def _apply(self, owner_id: str, doc_id: str, fields: dict[str, Any]) -> None:
        key = (owner_id, doc_id)
        record = self.records.get(key) or {"id": doc_id, "userId": owner_id, "createdAt": now_ms()}
        record = {**record, **clean_fields(fields)}
        record["updatedAt"] = max(now_ms(), record.get("updatedAt", 0))
        self.records[key] = record
        self._notify(owner_id, doc_id)

    def _notify(self, owner_id: str, doc_id: str) -> None:
        key = (owner_id, doc_id)
        callbacks = list(self._subscribers.get(key, []))
        if not callbacks:
            return
        loop = asyncio.get_running_loop()
        record = self.records.get(key)
        for callback in callbacks:
            loop.call_soon(self._deliver, key, callback, copy.deepcopy(record))

    def _deliver(self, key: tuple[str, str], callback: ChangeCallback, record: dict[str, Any] | None) -> None:
        # Dropped if the subscription closed while the event was queued.
        if callback in self._subscribers.get(key, []):
            callback(record)


# ---------------------------------------------------------------------------
# Client-local key-value storage
# ---------------------------------------------------------------------------


class KeyValueStore:
    """Narrow string key-value interface over client-local storage."""

    def get(self, key: str) -> str | None:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def list_keys_with_prefix(self, prefix: str) -> list[str]:
        raise NotImplementedError


class MemoryKeyValueStore(KeyValueStore):
    """In-memory key-value store with an optional size quota."""

    def __init__(self, quota_bytes: int | None = None) -> None:
        self.items: dict[str, str] = {}
        self.quota_bytes = quota_bytes

    def get(self, key: str) -> str | None:
        return self.items.get(key)

    def set(self, key: str, value: str) -> None:
        if self.quota_bytes is not None:
            used = sum(len(k) + len(v) for k, v in self.items.items() if k != key)
            if used + len(key) + len(value) > self.quota_bytes:
                raise StorageQuotaExceeded(f"quota of {self.quota_bytes} bytes exceeded writing {key}")
        self.items[key] = value

    def delete(self, key: str) -> None:
        self.items.pop(key, None)

    def list_keys_with_prefix(self, prefix: str) -> list[str]:
        return sorted(k for k in self.items if k.startswith(prefix))

    def dump(self) -> str:
        return json.dumps(self.items)


# ---------------------------------------------------------------------------
# Identity, credits, assets
# ---------------------------------------------------------------------------


class HandleLookup:
    """Translate a human-readable handle into an account id."""

    async def find_owner_id(self, handle: str) -> str | None:
        raise NotImplementedError


class CreditChecker:
    """AI usage counter exposed by the identity/session context."""

    async def usage(self, account_id: str) -> AIUsage:
        raise NotImplementedError

    async def check_credit(self, account_id: str) -> bool:
        """True when the account may start one more AI generation."""
        usage = await self.usage(account_id)
        return not usage.exhausted

    async def reserve_credit(self, account_id: str) -> bool:
        """
        Take one credit for a generation about to start. False when none is
        left. Counters shared between processes override this with an
        atomic conditional increment.
        """
        return await self.check_credit(account_id)

    async def release_credit(self, account_id: str) -> None:
        """Give back a credit reserved for a generation that failed."""


class AssetUploader:
    """Asset storage: binary payload + destination key → public reference."""

    async def upload(self, data: bytes, key: str, content_type: str | None = None) -> str:
        raise NotImplementedError


class ImageGenerator:
    """AI image service: prompt (+ optional source image) → image reference."""

    async def generate(self, prompt: str, account_id: str, source_image: str | None = None) -> str:
        raise NotImplementedError
