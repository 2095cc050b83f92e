"""Handle → account id lookup with an in-process cache."""

from __future__ import annotations

import logging
import time

from backend.repos.user_repo import UserRepo
from engine.kernel.storage import HandleLookup

logger = logging.getLogger(__name__)


class HandleDirectory(HandleLookup):
    """
    Resolves handles against the users table.

    Hits are cached for the life of the process; the underlying lookup is a
    full scan. Misses are cached for miss_ttl seconds only, so an account
    created after a failed lookup becomes reachable without a restart.
    """

    def __init__(self, user_repo: UserRepo | None = None, miss_ttl: float = 60.0) -> None:
        self.user_repo = user_repo or UserRepo()
        self.miss_ttl = miss_ttl
        self._hits: dict[str, str] = {}
        self._misses: dict[str, float] = {}

    async def find_owner_id(self, handle: str) -> str | None:
        if handle in self._hits:
            return self._hits[handle]
        missed_at = self._misses.get(handle)
        if missed_at is not None and time.monotonic() - missed_at < self.miss_ttl:
            return None

        user_id = await self.user_repo.find_id_by_handle(handle)
        logger.debug("handles: %s → %s", handle, user_id)
        if user_id is None:
            self._misses[handle] = time.monotonic()
            return None
        self._misses.pop(handle, None)
        self._hits[handle] = str(user_id)
        return self._hits[handle]

    def forget(self, handle: str) -> None:
        self._hits.pop(handle, None)
        self._misses.pop(handle, None)


handle_directory = HandleDirectory()


def get_handle_directory() -> HandleDirectory:
    return handle_directory
