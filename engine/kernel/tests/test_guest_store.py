"""Tests for guest snapshots in client-local storage."""

import json

import pytest

from engine.kernel.guest_store import KEY_PREFIX, GuestSessionStore
from engine.kernel.storage import MemoryKeyValueStore


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
def guest_store(kv):
    return GuestSessionStore(kv)


class TestSaveLoad:
    def test_round_trip_under_prefixed_key(self, guest_store, kv):
        assert guest_store.save({"id": "g1", "title": "T", "hero": {}})
        assert f"{KEY_PREFIX}g1" in kv.items
        assert guest_store.load("g1")["title"] == "T"

    def test_save_overwrites(self, guest_store):
        guest_store.save({"id": "g1", "title": "One"})
        guest_store.save({"id": "g1", "title": "Two"})
        assert guest_store.load("g1")["title"] == "Two"
        assert guest_store.ids() == ["g1"]

    def test_missing(self, guest_store):
        assert guest_store.load("nope") is None

    def test_quota_failure_is_reported(self):
        guest_store = GuestSessionStore(MemoryKeyValueStore(quota_bytes=10))
        assert guest_store.save({"id": "g1", "title": "far too long for the quota"}) is False
        assert guest_store.load("g1") is None

    def test_unserializable_document(self, guest_store):
        assert guest_store.save({"id": "g1", "tags": {"a", "b"}}) is False

    def test_document_without_id(self, guest_store):
        assert guest_store.save({"title": "T"}) is False

    def test_clear(self, guest_store):
        guest_store.save({"id": "g1"})
        guest_store.clear("g1")
        guest_store.clear("g1")
        assert guest_store.load("g1") is None


class TestLoadAll:
    def test_skips_unreadable_and_incomplete_entries(self, guest_store, kv):
        guest_store.save({"id": "good", "title": "Good", "hero": {}})
        kv.set(f"{KEY_PREFIX}broken", "{not json")
        kv.set(f"{KEY_PREFIX}list", json.dumps([1, 2]))
        kv.set(f"{KEY_PREFIX}nohero", json.dumps({"title": "x"}))
        kv.set("unrelated", json.dumps({"title": "x", "hero": {}}))

        docs = guest_store.load_all()

        assert [d["id"] for d in docs] == ["good"]

    def test_key_is_the_id(self, guest_store, kv):
        kv.set(f"{KEY_PREFIX}g7", json.dumps({"id": "stale", "title": "T", "hero": {}}))
        assert guest_store.load_all()[0]["id"] == "g7"
