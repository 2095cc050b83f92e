"""
Tests for PostgresDocumentStore.

Requires a running Postgres instance migrated with alembic (users,
portfolios and the change trigger).
"""

import asyncio
import json
import os
import uuid

import asyncpg
import pytest

from engine.kernel.postgres_storage import PostgresDocumentStore
from engine.kernel.storage import DocumentNotFound, GuestOwnerError


async def _init_connection(conn):
    await conn.set_type_codec("jsonb", encoder=json.dumps, decoder=json.loads, schema="pg_catalog")


@pytest.fixture
async def db_pool():
    """Create a connection pool for tests."""
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        pytest.skip("DATABASE_URL not set")

    pool = await asyncpg.create_pool(database_url, init=_init_connection)
    yield pool
    await pool.close()


@pytest.fixture
async def owner_id(db_pool):
    """A throwaway user; portfolios go with it via ON DELETE CASCADE."""
    user_id = uuid.uuid4()
    async with db_pool.acquire() as conn:
        await conn.execute(
            "INSERT INTO users (id, email, name) VALUES ($1, $2, $3)",
            user_id,
            f"test-{user_id}@example.com",
            "Test User",
        )
    yield str(user_id)
    async with db_pool.acquire() as conn:
        await conn.execute("DELETE FROM users WHERE id = $1", user_id)


@pytest.fixture
async def storage(db_pool):
    store = PostgresDocumentStore(db_pool)
    yield store
    await store.close()


class TestPostgresDocumentStore:
    @pytest.mark.asyncio
    async def test_create_and_get(self, storage, owner_id):
        doc_id = await storage.create(owner_id, {"id": "local", "title": "T", "hero": {"headline": "Hi"}})
        record = await storage.get(owner_id, doc_id)

        assert record["id"] == doc_id
        assert record["userId"] == owner_id
        assert record["title"] == "T"
        assert record["hero"] == {"headline": "Hi"}
        assert isinstance(record["updatedAt"], int)

    @pytest.mark.asyncio
    async def test_get_nonexistent(self, storage, owner_id):
        assert await storage.get(owner_id, str(uuid.uuid4())) is None
        assert await storage.get(owner_id, "not-a-uuid") is None

    @pytest.mark.asyncio
    async def test_merge_is_top_level(self, storage, owner_id):
        doc_id = await storage.create(owner_id, {"title": "T", "hero": {"headline": "a", "subheadline": "b"}})
        await storage.merge(owner_id, doc_id, {"hero": {"headline": "c"}, "updatedAt": 0})
        record = await storage.get(owner_id, doc_id)

        assert record["title"] == "T"
        assert record["hero"] == {"headline": "c"}
        assert "updatedAt" not in (await _raw_data(storage, doc_id))

    @pytest.mark.asyncio
    async def test_merge_into_someone_elses_document(self, storage, owner_id, db_pool):
        doc_id = await storage.create(owner_id, {"title": "Mine"})
        intruder = uuid.uuid4()
        async with db_pool.acquire() as conn:
            await conn.execute(
                "INSERT INTO users (id, email) VALUES ($1, $2)", intruder, f"test-{intruder}@example.com"
            )
        try:
            with pytest.raises(DocumentNotFound):
                await storage.merge(str(intruder), doc_id, {"title": "Stolen"})
            assert (await storage.get(owner_id, doc_id))["title"] == "Mine"
        finally:
            async with db_pool.acquire() as conn:
                await conn.execute("DELETE FROM users WHERE id = $1", intruder)

    @pytest.mark.asyncio
    async def test_list_and_delete(self, storage, owner_id):
        first = await storage.create(owner_id, {"title": "one"})
        second = await storage.create(owner_id, {"title": "two"})
        await storage.merge(owner_id, first, {"title": "one again"})

        assert [r["id"] for r in await storage.list(owner_id)] == [first, second]
        assert await storage.delete(owner_id, first) is True
        assert await storage.delete(owner_id, first) is False

    @pytest.mark.asyncio
    async def test_guest_owner_rejected(self, storage):
        with pytest.raises(GuestOwnerError):
            await storage.list("guest")

    @pytest.mark.asyncio
    async def test_subscription_receives_changes(self, storage, owner_id):
        doc_id = await storage.create(owner_id, {"title": "T"})
        received = asyncio.Queue()
        subscription = await storage.subscribe(owner_id, doc_id, received.put_nowait)

        await storage.merge(owner_id, doc_id, {"about": "live"})
        record = await asyncio.wait_for(received.get(), timeout=5)
        assert record["about"] == "live"

        await storage.delete(owner_id, doc_id)
        assert await asyncio.wait_for(received.get(), timeout=5) is None
        subscription.close()


async def _raw_data(storage, doc_id):
    async with storage.pool.acquire() as conn:
        return await conn.fetchval("SELECT data FROM portfolios WHERE id = $1", uuid.UUID(doc_id))
