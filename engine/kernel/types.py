"""
Folio Kernel — Shared Types

Vocabulary used across the hydrator, lenses, session, guest store,
migration agent and asset coordinator.

A portfolio document travels through the kernel as a plain dict with the
camelCase keys the remote store persists. The dataclasses here describe
the things around a document: who owns it, who is signed in, and how many
AI credits they have left.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

# ---------------------------------------------------------------------------
# Owners
# ---------------------------------------------------------------------------

# Owner id used for documents edited before any account exists.
# Never written to the remote store.
GUEST_OWNER = "guest"

OwnerKind = Literal["self", "other", "guest"]


@dataclass(frozen=True)
class OwnerRef:
    """The partition a document belongs to for one editing session."""

    owner_id: str
    kind: OwnerKind

    @property
    def is_guest(self) -> bool:
        return self.kind == "guest"

    @classmethod
    def guest(cls) -> OwnerRef:
        return cls(owner_id=GUEST_OWNER, kind="guest")


@dataclass(frozen=True)
class Identity:
    """The signed-in account, as exposed by the session context."""

    account_id: str
    email: str | None = None
    display_name: str | None = None

    @property
    def handle(self) -> str:
        """Human-readable handle used in editor URLs (email local part)."""
        if self.email and "@" in self.email:
            local = self.email.split("@", 1)[0]
            if local:
                return local
        return "user"


@dataclass(frozen=True)
class AIUsage:
    """AI generation counter for one account."""

    count: int
    limit: int

    @property
    def remaining(self) -> int:
        return max(self.limit - self.count, 0)

    @property
    def exhausted(self) -> bool:
        return self.count >= self.limit


# ---------------------------------------------------------------------------
# Mode
# ---------------------------------------------------------------------------


class Mode(str, Enum):
    """What kind of site a document renders as."""

    PORTFOLIO = "portfolio"
    LINK_IN_BIO = "link-in-bio"
    BUSINESS_CARD = "business-card"

    @classmethod
    def parse(cls, value: Any) -> Mode | None:
        """
        Parse a stored mode value. Accepts the canonical values and the
        legacy spellings older records carry. Returns None when the value
        is missing or unrecognized.
        """
        if isinstance(value, Mode):
            return value
        if not isinstance(value, str) or not value:
            return None
        return _MODE_ALIASES.get(value.strip().lower())


_MODE_ALIASES: dict[str, Mode] = {
    "portfolio": Mode.PORTFOLIO,
    "link-in-bio": Mode.LINK_IN_BIO,
    "linkinbio": Mode.LINK_IN_BIO,
    "link_in_bio": Mode.LINK_IN_BIO,
    "business-card": Mode.BUSINESS_CARD,
    "business_card": Mode.BUSINESS_CARD,
    "businesscard": Mode.BUSINESS_CARD,
}


# ---------------------------------------------------------------------------
# Document shape
# ---------------------------------------------------------------------------

DEFAULT_TITLE = "Untitled Portfolio"
DEFAULT_TEMPLATE_ID = "minimalist"
DEFAULT_STORAGE_SECTION = "portfolios"

# Collections whose entries carry a locally-unique string id.
# Value is the prefix used when an entry id has to be backfilled.
COLLECTION_ID_PREFIXES: dict[str, str] = {
    "timeline": "timeline",
    "education": "education",
    "techStack": "skill",
    "projects": "project",
    "socialLinks": "social",
}

# Id-addressed lists nested inside object sections, as dotted subpaths.
# Backfilled ids use the last segment without its plural "s".
NESTED_ENTRY_LISTS: dict[str, tuple[str, ...]] = {
    "hero": ("buttons",),
    "linkInBio": ("links", "introPage.assets"),
}

DEFAULT_HERO: dict[str, Any] = {
    "headline": "",
    "subheadline": "",
    "ctaPrimaryLabel": "",
    "ctaPrimaryUrl": "",
    "ctaSecondaryLabel": "",
    "ctaSecondaryUrl": "",
}

DEFAULT_THEME: dict[str, Any] = {
    "primaryColor": "#2563eb",
    "darkMode": False,
}

DEFAULT_SECTION_LABELS: dict[str, str] = {
    "about": "About Me",
    "timeline": "My Journey",
    "techStack": "Tech Stack",
    "projects": "Featured Projects",
    "contact": "Contact",
}

DEFAULT_LINK_IN_BIO: dict[str, Any] = {
    "links": [],
    "showSocial": True,
    "showEmail": True,
    "displayName": "",
    "bio": "",
    "customStyle": {},
    "enableStore": False,
}

DEFAULT_BUSINESS_CARD: dict[str, Any] = {
    "orientation": "horizontal",
}

# Keys the store owns. Stripped from partial writes.
STORE_MANAGED_KEYS: frozenset[str] = frozenset({"id", "createdAt", "updatedAt"})


def now_ms() -> int:
    """Current time as integer epoch milliseconds."""
    return int(time.time() * 1000)
