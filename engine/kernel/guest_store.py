"""
Folio Kernel — Guest session store

One JSON snapshot per document id in client-local key-value storage,
keyed `portfolio_<id>`. Used only while the owner is the guest sentinel.
Nothing here ever reaches the remote store; the migration agent is the
only reader that promotes entries.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from engine.kernel.hydrator import is_migratable
from engine.kernel.storage import KeyValueStore, StorageQuotaExceeded

logger = logging.getLogger(__name__)

KEY_PREFIX = "portfolio_"


class GuestSessionStore:
    def __init__(self, kv: KeyValueStore) -> None:
        self.kv = kv

    @staticmethod
    def key_for(doc_id: str) -> str:
        return f"{KEY_PREFIX}{doc_id}"

    def save(self, doc: dict[str, Any]) -> bool:
        """
        Overwrite the snapshot for doc["id"]. Best-effort: quota and
        serialization failures are logged and reported as False.
        """
        doc_id = doc.get("id")
        if not doc_id:
            logger.warning("guest: refusing to save a document without an id")
            return False
        try:
            self.kv.set(self.key_for(doc_id), json.dumps(doc))
        except StorageQuotaExceeded as e:
            logger.warning("guest: snapshot for %s not saved: %s", doc_id, e)
            return False
        except (TypeError, ValueError) as e:
            logger.warning("guest: snapshot for %s not serializable: %s", doc_id, e)
            return False
        return True

    def load(self, doc_id: str) -> dict[str, Any] | None:
        """One snapshot, or None when absent or unreadable."""
        return self._read(self.key_for(doc_id))

    def load_all(self) -> list[dict[str, Any]]:
        """Every stored guest document with at least a title and a hero."""
        docs = []
        for key in self.kv.list_keys_with_prefix(KEY_PREFIX):
            doc = self._read(key)
            if doc is None:
                continue
            if not is_migratable(doc):
                logger.info("guest: skipping %s, missing title or hero", key)
                continue
            # The key is the source of truth for the local id.
            doc["id"] = key[len(KEY_PREFIX):]
            docs.append(doc)
        return docs

    def clear(self, doc_id: str) -> None:
        self.kv.delete(self.key_for(doc_id))

    def ids(self) -> list[str]:
        return [key[len(KEY_PREFIX):] for key in self.kv.list_keys_with_prefix(KEY_PREFIX)]

    def _read(self, key: str) -> dict[str, Any] | None:
        raw = self.kv.get(key)
        if raw is None:
            return None
        try:
            doc = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("guest: %s is not valid JSON, skipping", key)
            return None
        if not isinstance(doc, dict):
            logger.warning("guest: %s is not an object, skipping", key)
            return None
        return doc
