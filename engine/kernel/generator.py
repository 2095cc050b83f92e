"""
Folio Kernel — Document generation

Builds a fully populated starter document without any model call: the
template is picked from keywords in the prompt and every section gets
placeholder content the user then edits. Guest sessions start from one of
these, and so does every "create" that does not come with content of its
own.
"""

from __future__ import annotations

import uuid
from typing import Any

from engine.kernel.hydrator import hydrate
from engine.kernel.types import DEFAULT_THEME, Mode, now_ms

_TEMPLATE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("visual", ("designer", "creative", "artist", "photographer")),
    ("corporate", ("manager", "executive", "director", "consultant")),
)

_TEMPLATE_THEMES: dict[str, dict[str, Any]] = {
    "minimalist": {"primaryColor": "#2563eb", "darkMode": False},
    "visual": {"primaryColor": "#8b5cf6", "darkMode": True},
    "corporate": {"primaryColor": "#0f172a", "darkMode": False},
}

_MODE_TEMPLATES: dict[Mode, str] = {
    Mode.LINK_IN_BIO: "linktree_minimal",
    Mode.BUSINESS_CARD: "card_minimal",
}


def new_entry_id(prefix: str) -> str:
    """Locally-unique id for a new collection entry."""
    return f"{prefix}_{uuid.uuid4().hex[:10]}"


def pick_template(prompt: str | None) -> str:
    lowered = (prompt or "").lower()
    for template_id, keywords in _TEMPLATE_KEYWORDS:
        if any(word in lowered for word in keywords):
            return template_id
    return "minimalist"


def new_document(
    owner_id: str,
    *,
    doc_id: str | None = None,
    prompt: str | None = None,
    title: str | None = None,
    template_id: str | None = None,
    mode: Mode | str | None = None,
    now: int | None = None,
) -> dict[str, Any]:
    """
    Create a starter document owned by owner_id (an account id or the
    guest sentinel).

    Args:
        owner_id: Owner partition
        doc_id: Id to assign; a fresh uuid4 when omitted
        prompt: Free-text description ("senior product designer")
        title: Internal title; derived from the prompt when omitted
        template_id: Explicit template; otherwise picked from the prompt
        mode: Explicit mode; otherwise inferred from the template
        now: Creation time in epoch ms

    Returns:
        Hydrated document
    """
    created = now if now is not None else now_ms()
    parsed_mode = Mode.parse(mode)
    if template_id is None:
        template_id = _MODE_TEMPLATES.get(parsed_mode) if parsed_mode else None
    template_id = template_id or pick_template(prompt)
    subject = (prompt or "").strip()

    raw: dict[str, Any] = {
        "id": doc_id or str(uuid.uuid4()),
        "userId": owner_id,
        "title": title or (f"{subject} Portfolio" if subject else "My Portfolio"),
        "templateId": template_id,
        "hero": {
            "headline": "Welcome to my Portfolio",
            "subheadline": subject,
            "ctaPrimaryLabel": "View My Work",
            "ctaPrimaryUrl": "#projects",
            "ctaSecondaryLabel": "Contact Me",
            "ctaSecondaryUrl": "mailto:hello@example.com",
            "avatarUrl": "",
        },
        "about": f"I am passionate about {subject}." if subject else "",
        "timeline": [
            {
                "id": new_entry_id("timeline"),
                "jobTitle": "Senior Role",
                "employer": "Tech Corp",
                "startDate": "2021",
                "endDate": "Present",
                "city": "Remote",
                "description": "Leading key projects.",
            }
        ],
        "techStack": [{"id": new_entry_id("skill"), "name": "Communication", "level": "Expert"}],
        "projects": [
            {
                "id": new_entry_id("project"),
                "title": "Sample Project",
                "description": "A great project",
                "tags": ["Tech"],
                "thumbnailUrl": "",
                "demoUrl": "",
                "repoUrl": "",
            }
        ],
        "theme": dict(_TEMPLATE_THEMES.get(template_id, DEFAULT_THEME)),
        "createdAt": created,
        "updatedAt": created,
    }
    if parsed_mode is not None:
        raw["mode"] = parsed_mode.value
    return hydrate(raw, owner_id, now=created)
