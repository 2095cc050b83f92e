"""
Server-side guest storage.

Each guest cookie gets its own quota-limited key-value partition, the
server's stand-in for the browser-local storage guest documents live in.
Partitions idle longer than GUEST_SESSION_TTL_HOURS are dropped by the
cleanup task in backend.main.
"""

from __future__ import annotations

import logging
import time

from backend.config import settings
from engine.kernel.guest_store import GuestSessionStore
from engine.kernel.storage import MemoryKeyValueStore

logger = logging.getLogger(__name__)


class GuestSessionRegistry:
    def __init__(self, ttl_seconds: float, quota_bytes: int | None = None) -> None:
        self.ttl_seconds = ttl_seconds
        self.quota_bytes = quota_bytes
        self._partitions: dict[str, MemoryKeyValueStore] = {}
        self._last_seen: dict[str, float] = {}

    def store_for(self, guest_id: str) -> GuestSessionStore:
        kv = self._partitions.get(guest_id)
        if kv is None:
            kv = MemoryKeyValueStore(quota_bytes=self.quota_bytes)
            self._partitions[guest_id] = kv
        self._last_seen[guest_id] = time.monotonic()
        return GuestSessionStore(kv)

    def existing(self, guest_id: str | None) -> GuestSessionStore | None:
        if not guest_id or guest_id not in self._partitions:
            return None
        return self.store_for(guest_id)

    def drop(self, guest_id: str) -> None:
        self._partitions.pop(guest_id, None)
        self._last_seen.pop(guest_id, None)

    def cleanup(self) -> int:
        """Drop idle partitions. Returns how many were dropped."""
        cutoff = time.monotonic() - self.ttl_seconds
        expired = [gid for gid, seen in self._last_seen.items() if seen < cutoff]
        for guest_id in expired:
            self.drop(guest_id)
        if expired:
            logger.info("guest: dropped %d idle guest partitions", len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._partitions)


guest_sessions = GuestSessionRegistry(
    ttl_seconds=settings.GUEST_SESSION_TTL_HOURS * 3600,
    quota_bytes=settings.GUEST_STORAGE_QUOTA_BYTES,
)


def get_guest_sessions() -> GuestSessionRegistry:
    return guest_sessions
