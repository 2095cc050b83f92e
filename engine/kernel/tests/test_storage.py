"""Tests for the in-memory collaborators in engine.kernel.storage."""

import asyncio

import pytest

from engine.kernel.storage import (
    CreditChecker,
    GuestOwnerError,
    MemoryKeyValueStore,
    StorageQuotaExceeded,
    clean_fields,
)
from engine.kernel.types import AIUsage


class TestMemoryDocumentStore:
    @pytest.mark.asyncio
    async def test_guest_owner_rejected(self, store):
        with pytest.raises(GuestOwnerError):
            await store.get("guest", "d1")
        with pytest.raises(GuestOwnerError):
            await store.merge("", "d1", {"title": "x"})

    @pytest.mark.asyncio
    async def test_merge_touches_only_given_keys(self, seeded_store):
        await seeded_store.merge("u1", "d1", {"about": "New", "updatedAt": 1})
        record = await seeded_store.get("u1", "d1")
        assert record["about"] == "New"
        assert record["title"] == "Ada's Portfolio"
        assert record["updatedAt"] > 1

    @pytest.mark.asyncio
    async def test_create_assigns_id_and_owner(self, store):
        doc_id = await store.create("u1", {"id": "local", "userId": "guest", "title": "T"})
        record = await store.get("u1", doc_id)
        assert doc_id != "local"
        assert record["id"] == doc_id
        assert record["title"] == "T"
        assert record["userId"] == "u1"

    @pytest.mark.asyncio
    async def test_list_is_per_owner_newest_first(self, store):
        store.records[("u1", "a")] = {"id": "a", "updatedAt": 1}
        store.records[("u1", "b")] = {"id": "b", "updatedAt": 2}
        store.records[("u2", "c")] = {"id": "c", "updatedAt": 3}
        assert [r["id"] for r in await store.list("u1")] == ["b", "a"]

    @pytest.mark.asyncio
    async def test_delete(self, seeded_store):
        assert await seeded_store.delete("u1", "d1") is True
        assert await seeded_store.delete("u1", "d1") is False
        assert await seeded_store.get("u1", "d1") is None

    @pytest.mark.asyncio
    async def test_notifications_arrive_after_the_write(self, seeded_store):
        received = []
        await seeded_store.subscribe("u1", "d1", received.append)

        await seeded_store.merge("u1", "d1", {"about": "x"})
        assert received == []

        await asyncio.sleep(0)
        assert len(received) == 1
        assert received[0]["about"] == "x"

    @pytest.mark.asyncio
    async def test_closed_subscription_gets_nothing(self, seeded_store):
        received = []
        subscription = await seeded_store.subscribe("u1", "d1", received.append)
        subscription.close()
        subscription.close()
        seeded_store.push("u1", "d1", {"about": "x"})
        await asyncio.sleep(0)
        assert received == []
        assert subscription.closed


class TestMemoryKeyValueStore:
    def test_prefix_listing(self):
        kv = MemoryKeyValueStore()
        kv.set("portfolio_b", "{}")
        kv.set("portfolio_a", "{}")
        kv.set("other", "{}")
        assert kv.list_keys_with_prefix("portfolio_") == ["portfolio_a", "portfolio_b"]

    def test_quota(self):
        kv = MemoryKeyValueStore(quota_bytes=20)
        kv.set("k", "x" * 10)
        kv.set("k", "y" * 19)
        with pytest.raises(StorageQuotaExceeded):
            kv.set("j", "z" * 5)
        assert "j" not in kv.items


def test_clean_fields_drops_managed_keys():
    assert clean_fields({"id": 1, "createdAt": 2, "updatedAt": 3, "title": "t"}) == {"title": "t"}


class TestCreditChecker:
    @pytest.mark.asyncio
    async def test_check_credit_uses_usage(self):
        class Fixed(CreditChecker):
            def __init__(self, usage):
                self._usage = usage

            async def usage(self, account_id):
                return self._usage

        assert await Fixed(AIUsage(count=9, limit=10)).check_credit("u1") is True
        assert await Fixed(AIUsage(count=10, limit=10)).check_credit("u1") is False
        assert await Fixed(AIUsage(count=9, limit=10)).reserve_credit("u1") is True
        assert await Fixed(AIUsage(count=10, limit=10)).reserve_credit("u1") is False
        assert await Fixed(AIUsage(count=9, limit=10)).release_credit("u1") is None

    def test_remaining_never_negative(self):
        assert AIUsage(count=12, limit=10).remaining == 0
