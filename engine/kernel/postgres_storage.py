"""
PostgresDocumentStore adapter for the Folio kernel.

Implements the DocumentStore interface on asyncpg. Each document is one
row of the portfolios table; the document body lives in a jsonb column
and merges are top-level key merges (`data || $fields`).

Change subscriptions ride on LISTEN/NOTIFY: a trigger (see alembic
migration 001) notifies `portfolio_changes` with `<user_id>:<id>` on every
insert, update and delete. One listener connection is held while anyone
is subscribed; each notification re-reads the row and hands the full
record to subscribers, in notification order.

The pool must be created with the jsonb codec from backend.db.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any
from uuid import UUID

import asyncpg

from engine.kernel.storage import (
    ChangeCallback,
    DocumentNotFound,
    DocumentStore,
    Subscription,
    clean_fields,
    ensure_remote_owner,
)

logger = logging.getLogger(__name__)

CHANNEL = "portfolio_changes"


def _uuid(value: str) -> UUID | None:
    try:
        return value if isinstance(value, UUID) else UUID(str(value))
    except ValueError:
        return None


def _millis(value: Any) -> int:
    return int(value.timestamp() * 1000)


def _row_to_record(row: asyncpg.Record) -> dict[str, Any]:
    data = row["data"] if isinstance(row["data"], dict) else {}
    return {
        **data,
        "id": str(row["id"]),
        "userId": str(row["user_id"]),
        "createdAt": _millis(row["created_at"]),
        "updatedAt": _millis(row["updated_at"]),
    }


class PostgresDocumentStore(DocumentStore):
    """
    Postgres-backed document store.

    Table:
    - portfolios(id uuid, user_id uuid, data jsonb, created_at, updated_at)
    """

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool
        self._subscribers: dict[tuple[str, str], list[ChangeCallback]] = {}
        self._listen_conn: asyncpg.Connection | None = None
        self._queue: asyncio.Queue[tuple[str, str]] = asyncio.Queue()
        self._pump_task: asyncio.Task | None = None
        self._listen_lock = asyncio.Lock()

    async def get(self, owner_id: str, doc_id: str) -> dict[str, Any] | None:
        ensure_remote_owner(owner_id)
        owner, pk = _uuid(owner_id), _uuid(doc_id)
        if owner is None or pk is None:
            return None
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM portfolios WHERE id = $1 AND user_id = $2",
                pk,
                owner,
            )
            return _row_to_record(row) if row else None

    async def list(self, owner_id: str) -> list[dict[str, Any]]:
        ensure_remote_owner(owner_id)
        owner = _uuid(owner_id)
        if owner is None:
            return []
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT * FROM portfolios WHERE user_id = $1 ORDER BY updated_at DESC",
                owner,
            )
            return [_row_to_record(row) for row in rows]

    async def merge(self, owner_id: str, doc_id: str, fields: dict[str, Any]) -> None:
        ensure_remote_owner(owner_id)
        owner, pk = _uuid(owner_id), _uuid(doc_id)
        if owner is None or pk is None:
            raise DocumentNotFound(doc_id)
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                """
                INSERT INTO portfolios (id, user_id, data)
                VALUES ($1, $2, $3)
                ON CONFLICT (id) DO UPDATE
                SET data = portfolios.data || EXCLUDED.data,
                    updated_at = GREATEST(now(), portfolios.updated_at)
                WHERE portfolios.user_id = EXCLUDED.user_id
                """,
                pk,
                owner,
                clean_fields(fields),
            )
        # Conflicting row belongs to someone else
        if result.endswith(" 0"):
            raise DocumentNotFound(doc_id)

    async def create(self, owner_id: str, data: dict[str, Any]) -> str:
        ensure_remote_owner(owner_id)
        owner = _uuid(owner_id)
        if owner is None:
            raise ValueError(f"Invalid owner id: {owner_id}")
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO portfolios (user_id, data)
                VALUES ($1, $2)
                RETURNING id
                """,
                owner,
                clean_fields(data),
            )
            return str(row["id"])

    async def delete(self, owner_id: str, doc_id: str) -> bool:
        ensure_remote_owner(owner_id)
        owner, pk = _uuid(owner_id), _uuid(doc_id)
        if owner is None or pk is None:
            return False
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM portfolios WHERE id = $1 AND user_id = $2",
                pk,
                owner,
            )
            return result != "DELETE 0"

    # -- subscriptions -------------------------------------------------------

    async def subscribe(self, owner_id: str, doc_id: str, callback: ChangeCallback) -> Subscription:
        ensure_remote_owner(owner_id)
        await self._ensure_listening()
        key = (owner_id, doc_id)
        self._subscribers.setdefault(key, []).append(callback)

        def _unsubscribe() -> None:
            callbacks = self._subscribers.get(key, [])
            if callback in callbacks:
                callbacks.remove(callback)
            if not callbacks:
                self._subscribers.pop(key, None)

        return Subscription(_unsubscribe)

    async def _ensure_listening(self) -> None:
        async with self._listen_lock:
            if self._listen_conn is not None:
                return
            conn = await self.pool.acquire()
            await conn.add_listener(CHANNEL, self._on_notify)
            self._listen_conn = conn
            self._pump_task = asyncio.create_task(self._pump())
            logger.info("postgres: listening on %s", CHANNEL)

    def _on_notify(self, conn: asyncpg.Connection, pid: int, channel: str, payload: str) -> None:
        owner_id, _, doc_id = payload.partition(":")
        if (owner_id, doc_id) in self._subscribers:
            self._queue.put_nowait((owner_id, doc_id))

    async def _pump(self) -> None:
        while True:
            owner_id, doc_id = await self._queue.get()
            try:
                record = await self.get(owner_id, doc_id)
            except Exception as e:
                logger.warning("postgres: re-read of %s after notify failed: %s", doc_id, e)
                continue
            for callback in list(self._subscribers.get((owner_id, doc_id), [])):
                try:
                    callback(copy.deepcopy(record))
                except Exception as e:
                    logger.warning("postgres: subscriber for %s raised: %s", doc_id, e)

    async def close(self) -> None:
        """Stop listening and release the listener connection."""
        if self._pump_task is not None:
            self._pump_task.cancel()
            self._pump_task = None
        if self._listen_conn is not None:
            await self._listen_conn.remove_listener(CHANNEL, self._on_notify)
            await self.pool.release(self._listen_conn)
            self._listen_conn = None
        self._subscribers.clear()
