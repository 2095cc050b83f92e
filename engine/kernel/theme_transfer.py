"""
Folio Kernel — Theme transfer

Borrow the look of one document (typically a link-in-bio page) for
another (typically a business card).

A theme descriptor is a flat dict of style values. Keys the source does
not define are left out entirely, so applying a descriptor never replaces
a destination value with a guess.
"""

from __future__ import annotations

import re
from typing import Any

from engine.kernel.themes import get_theme, is_solid_color
from engine.kernel.types import Mode

# Keys copied from the source's `theme` and merged into the destination's.
THEME_KEYS = ("primaryColor", "secondaryColor", "textColor", "backgroundColor", "fontFamily")

# linkInBio.customStyle keys carried verbatim into the descriptor.
_STYLE_OVERRIDES = ("buttonColor", "buttonTextColor", "profileTitleColor", "profileTextColor")


def _present(value: Any) -> bool:
    return value is not None and value != ""


def extract_theme(doc: dict[str, Any]) -> dict[str, Any]:
    """Build a descriptor from a document's style fields."""
    theme = doc.get("theme") or {}
    descriptor = {key: theme[key] for key in THEME_KEYS if _present(theme.get(key))}

    link_in_bio = doc.get("linkInBio")
    if Mode.parse(doc.get("mode")) is not Mode.LINK_IN_BIO or not isinstance(link_in_bio, dict):
        return descriptor

    base = get_theme(link_in_bio.get("themeId"))
    if base is not None:
        descriptor["themeSource"] = base.name
        descriptor.setdefault("primaryColor", base.accent)
        descriptor.setdefault("backgroundColor", base.background)
        descriptor.setdefault("textColor", base.text)

    style = link_in_bio.get("customStyle") or {}
    for key in _STYLE_OVERRIDES:
        if _present(style.get(key)):
            descriptor[key] = style[key]
    # profileFontFamily beats fontFamily
    for key in ("fontFamily", "profileFontFamily"):
        if _present(style.get(key)):
            descriptor["fontFamily"] = style[key]
    background = style.get("backgroundOverride")
    if _present(background) and is_solid_color(background):
        descriptor["backgroundColor"] = background

    return descriptor


def apply_theme(doc: dict[str, Any], descriptor: dict[str, Any]) -> dict[str, Any]:
    """
    Partials that merge a descriptor into doc: `theme`, plus `businessCard`
    (recording the source theme name) when doc has a business card.
    Non-style fields are never touched.
    """
    updates: dict[str, Any] = {}
    fields = {key: descriptor[key] for key in THEME_KEYS if _present(descriptor.get(key))}
    if fields:
        updates["theme"] = {**(doc.get("theme") or {}), **fields}

    card = doc.get("businessCard")
    if isinstance(card, dict) and _present(descriptor.get("themeSource")):
        updates["businessCard"] = {**card, "themeId": descriptor["themeSource"]}
    return updates


def theme_summary(descriptor: dict[str, Any]) -> str:
    """
    One-line description for a confirmation prompt.

    >>> theme_summary({"themeSource": "Air", "primaryColor": "#000", "fontFamily": "'Inter', sans-serif"})
    'Theme: Air • Primary: #000 • Font: Inter'
    """
    parts = []
    if descriptor.get("themeSource"):
        parts.append(f"Theme: {descriptor['themeSource']}")
    if descriptor.get("primaryColor"):
        parts.append(f"Primary: {descriptor['primaryColor']}")
    if descriptor.get("fontFamily"):
        font = re.sub(r"['\"]", "", descriptor["fontFamily"].split(",")[0])
        parts.append(f"Font: {font}")
    return " • ".join(parts)
