"""Process-wide document store, set up in the app lifespan."""

from __future__ import annotations

import asyncpg

from engine.kernel.postgres_storage import PostgresDocumentStore
from engine.kernel.storage import DocumentStore

document_store: DocumentStore | None = None


def init_document_store(pool: asyncpg.Pool) -> DocumentStore:
    global document_store
    document_store = PostgresDocumentStore(pool)
    return document_store


async def close_document_store() -> None:
    global document_store
    if isinstance(document_store, PostgresDocumentStore):
        await document_store.close()
    document_store = None


def get_document_store() -> DocumentStore:
    """FastAPI dependency. Tests override it with a MemoryDocumentStore."""
    if document_store is None:
        raise RuntimeError("Document store not initialized")
    return document_store
