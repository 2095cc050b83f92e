"""
Engine kernel test configuration.

Kernel tests run against the in-memory collaborators in
engine.kernel.storage and don't need a shared session loop.
PostgresDocumentStore tests are skipped automatically when DATABASE_URL
is not set.
"""

import pytest

from engine.kernel.storage import MemoryDocumentStore
from engine.kernel.types import Identity, OwnerRef


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def identity():
    return Identity(account_id="u1", email="ada@example.com", display_name="Ada")


@pytest.fixture
def own():
    return OwnerRef(owner_id="u1", kind="self")


@pytest.fixture
def stored_record():
    """A partial record as an older client would have written it."""
    return {
        "id": "d1",
        "userId": "u1",
        "title": "Ada's Portfolio",
        "templateId": "minimalist",
        "hero": {"headline": "Hello", "subheadline": "Engineer"},
        "projects": [
            {"id": "p1", "title": "Compiler", "thumbnailUrl": ""},
            {"id": "p2", "title": "Garden", "thumbnailUrl": ""},
        ],
        "createdAt": 1_700_000_000_000,
        "updatedAt": 1_700_000_000_000,
    }


@pytest.fixture
def seeded_store(store, stored_record):
    store.records[("u1", "d1")] = dict(stored_record)
    return store
