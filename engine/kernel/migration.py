"""
Folio Kernel — Guest migration

Promotes guest-authored documents into an account once someone signs in.
Each guest snapshot becomes a new remote document (the store assigns the
id); the local copy is cleared only after the create succeeds. Anything
that fails stays put for the next attempt.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from engine.kernel.guest_store import GuestSessionStore
from engine.kernel.storage import DocumentStore
from engine.kernel.types import Identity

logger = logging.getLogger(__name__)

# Guest-only keys that must not follow the document into the account.
_GUEST_KEYS = ("id", "userId", "ownerId", "createdAt", "updatedAt")


@dataclass
class MigrationReport:
    # guest id → new remote id
    migrated: dict[str, str] = field(default_factory=dict)
    failed: list[str] = field(default_factory=list)


class MigrationAgent:
    def __init__(self, guest_store: GuestSessionStore, store: DocumentStore) -> None:
        self.guest_store = guest_store
        self.store = store
        self._identity: Identity | None = None

    async def migrate(self, identity: Identity) -> MigrationReport:
        report = MigrationReport()
        for doc in self.guest_store.load_all():
            guest_id = doc["id"]
            data: dict[str, Any] = {k: v for k, v in doc.items() if k not in _GUEST_KEYS}
            try:
                new_id = await self.store.create(identity.account_id, data)
            except Exception as e:
                logger.warning("migration: %s not migrated, kept locally: %s", guest_id, e)
                report.failed.append(guest_id)
                continue
            self.guest_store.clear(guest_id)
            report.migrated[guest_id] = new_id
            logger.info("migration: %s → %s for account %s", guest_id, new_id, identity.account_id)
        return report

    async def on_identity_change(self, identity: Identity | None) -> MigrationReport | None:
        """Run a migration on a signed-out → signed-in transition only."""
        previous, self._identity = self._identity, identity
        if previous is not None or identity is None:
            return None
        return await self.migrate(identity)
