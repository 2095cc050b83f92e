"""
Folio Kernel — Identity resolution and editor routes

Decides which partition an editor session works against:

  no identity            → guest sentinel (handle in the route is ignored)
  no handle / own handle → the signed-in account
  someone else's handle  → that account, via HandleLookup
  lookup miss or error   → the signed-in account (logged, never raised)

Also parses and builds the two editor URL shapes:

  /portfolio/edit/<id>             legacy
  /portfolio/<handle>/edit/<id>    canonical

Either may carry a two-letter language prefix (/es/portfolio/...).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from engine.kernel.storage import HandleLookup
from engine.kernel.types import Identity, OwnerRef

logger = logging.getLogger(__name__)

_EDITOR_PATH = re.compile(
    r"^(?:/(?P<lang>[a-z]{2}))?/portfolio(?:/(?P<handle>[^/]+))?/edit/(?P<doc_id>[^/?#]+)/?$"
)


@dataclass(frozen=True)
class EditorRoute:
    doc_id: str
    handle: str | None = None
    lang: str | None = None


def parse_editor_path(path: str) -> EditorRoute | None:
    """Parse an editor URL path. None if it is not an editor path."""
    match = _EDITOR_PATH.match(path.split("?", 1)[0])
    if not match:
        return None
    return EditorRoute(doc_id=match["doc_id"], handle=match["handle"], lang=match["lang"])


def canonical_editor_path(handle: str, doc_id: str, lang: str | None = None) -> str:
    path = f"/portfolio/{handle}/edit/{doc_id}"
    return f"/{lang}{path}" if lang else path


def is_legacy_editor_path(path: str) -> bool:
    route = parse_editor_path(path)
    return route is not None and route.handle is None


class IdentityResolver:
    """Resolve (identity, route handle) to an owner reference."""

    def __init__(self, lookup: HandleLookup) -> None:
        self.lookup = lookup

    async def resolve(self, identity: Identity | None, handle: str | None = None) -> OwnerRef:
        if identity is None:
            return OwnerRef.guest()

        own = OwnerRef(owner_id=identity.account_id, kind="self")
        if not handle or handle == identity.handle:
            return own

        try:
            owner_id = await self.lookup.find_owner_id(handle)
        except Exception as e:
            logger.warning("identity: lookup for handle %r failed, using own account: %s", handle, e)
            return own

        if not owner_id:
            logger.info("identity: handle %r not found, using own account", handle)
            return own
        if owner_id == identity.account_id:
            return own
        return OwnerRef(owner_id=owner_id, kind="other")
