"""
Folio Kernel — Hydrator

(raw record, owner id) → complete portfolio document. Pure.

Remote records are whatever the store holds: older records miss fields
that were added later, some predate the `mode` field, and timestamps come
back as epoch numbers, datetimes or server timestamp objects. The hydrator
turns any of them into a document where every required field is present
with a deterministic default.

Properties:
  - hydrate(hydrate(r, o), o) == hydrate(r, o)
  - unknown keys are carried through untouched
  - the input record is never mutated
"""

from __future__ import annotations

import copy
from datetime import datetime
from typing import Any

from engine.kernel.themes import LINK_IN_BIO_TEMPLATE_IDS, is_registered_theme
from engine.kernel.types import (
    COLLECTION_ID_PREFIXES,
    DEFAULT_BUSINESS_CARD,
    DEFAULT_HERO,
    DEFAULT_LINK_IN_BIO,
    DEFAULT_SECTION_LABELS,
    DEFAULT_STORAGE_SECTION,
    DEFAULT_TEMPLATE_ID,
    DEFAULT_THEME,
    DEFAULT_TITLE,
    NESTED_ENTRY_LISTS,
    Mode,
    now_ms,
)

# String fields defaulted to "" when missing or null.
_TEXT_FIELDS = ("about", "contactEmail", "phone", "location")


def infer_mode(template_id: str | None, stored_mode: Any = None) -> Mode:
    """
    Decide a document's mode.

    An explicit stored mode always wins. Otherwise a templateId naming a
    link-in-bio layout or a registered visual theme selects link-in-bio;
    anything else is a plain portfolio.
    """
    parsed = Mode.parse(stored_mode)
    if parsed is not None:
        return parsed
    if template_id and (template_id in LINK_IN_BIO_TEMPLATE_IDS or is_registered_theme(template_id)):
        return Mode.LINK_IN_BIO
    return Mode.PORTFOLIO


def to_millis(value: Any, fallback: int) -> int:
    """
    Normalize a timestamp-like value to integer epoch milliseconds.

    Accepts numbers, datetimes, ISO-8601 strings and server timestamp
    objects exposing to_millis() or timestamp(). Anything else yields
    the fallback.
    """
    if value is None or isinstance(value, bool):
        return fallback
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, datetime):
        return int(value.timestamp() * 1000)
    if isinstance(value, str):
        try:
            return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp() * 1000)
        except ValueError:
            return fallback
    to_ms = getattr(value, "to_millis", None)
    if callable(to_ms):
        return int(to_ms())
    ts = getattr(value, "timestamp", None)
    if callable(ts):
        return int(ts() * 1000)
    return fallback


def is_migratable(doc: Any) -> bool:
    """Minimum shape a guest document needs before it can be promoted."""
    return isinstance(doc, dict) and bool(doc.get("title")) and isinstance(doc.get("hero"), dict)


def _with_defaults(value: Any, defaults: dict[str, Any]) -> dict[str, Any]:
    """Defaults first, then whatever the record has (dict values only)."""
    merged = copy.deepcopy(defaults)
    if isinstance(value, dict):
        merged.update(copy.deepcopy(value))
    return merged


def _with_entry_ids(entries: Any, prefix: str) -> list[Any]:
    """
    Copy a collection, giving every dict entry an array-unique string id.

    Existing ids are kept (stringified). Missing or duplicate ids are
    replaced with `<prefix>_<index>`, suffixed until unique.
    """
    if not isinstance(entries, list):
        return []

    result: list[Any] = []
    seen: set[str] = set()
    for index, entry in enumerate(entries):
        entry = copy.deepcopy(entry)
        if isinstance(entry, dict):
            entry_id = entry.get("id")
            entry_id = str(entry_id) if entry_id not in (None, "") else ""
            if not entry_id or entry_id in seen:
                candidate = f"{prefix}_{index}"
                suffix = 1
                while candidate in seen:
                    candidate = f"{prefix}_{index}_{suffix}"
                    suffix += 1
                entry_id = candidate
            entry["id"] = entry_id
            seen.add(entry_id)
        result.append(entry)
    return result


def _with_nested_entry_ids(section: dict[str, Any], key: str) -> dict[str, Any]:
    """Backfill ids in the entry lists nested inside an object section (in place)."""
    for subpath in NESTED_ENTRY_LISTS.get(key, ()):
        *parents, leaf = subpath.split(".")
        container: Any = section
        for part in parents:
            container = container.get(part)
            if not isinstance(container, dict):
                break
        else:
            if leaf in container:
                container[leaf] = _with_entry_ids(container[leaf], leaf.rstrip("s"))
    return section


def _hydrate_link_in_bio(value: Any) -> dict[str, Any]:
    section = _with_nested_entry_ids(_with_defaults(value, DEFAULT_LINK_IN_BIO), "linkInBio")
    if not isinstance(section.get("customStyle"), dict):
        section["customStyle"] = {}
    return section


def hydrate(
    raw: dict[str, Any] | None,
    owner_id: str,
    *,
    doc_id: str | None = None,
    now: int | None = None,
) -> dict[str, Any]:
    """
    Produce a complete document from a possibly partial record.

    Args:
        raw: Record as read from the store or a guest snapshot (may be None)
        owner_id: Resolved owner, used when the record carries no userId
        doc_id: Document id when the record itself does not carry one
        now: Epoch ms used for missing timestamps (defaults to the clock)

    Returns:
        A new dict; the input is not modified.
    """
    record: dict[str, Any] = dict(raw) if isinstance(raw, dict) else {}
    doc: dict[str, Any] = copy.deepcopy(record)

    doc["id"] = str(record.get("id") or doc_id or "")
    doc["userId"] = record.get("userId") or owner_id
    doc["title"] = record.get("title") or DEFAULT_TITLE
    doc["templateId"] = record.get("templateId") or DEFAULT_TEMPLATE_ID
    doc["section"] = record.get("section") or DEFAULT_STORAGE_SECTION

    mode = infer_mode(doc["templateId"], record.get("mode"))
    doc["mode"] = mode.value

    doc["hero"] = _with_nested_entry_ids(_with_defaults(record.get("hero"), DEFAULT_HERO), "hero")
    doc["theme"] = _with_defaults(record.get("theme"), DEFAULT_THEME)
    doc["sectionLabels"] = _with_defaults(record.get("sectionLabels"), DEFAULT_SECTION_LABELS)

    for field_name in _TEXT_FIELDS:
        value = record.get(field_name)
        doc[field_name] = value if isinstance(value, str) else ""

    for key, prefix in COLLECTION_ID_PREFIXES.items():
        doc[key] = _with_entry_ids(record.get(key), prefix)

    # Mode substructures are kept across mode switches; created on demand.
    if record.get("linkInBio") is not None or mode is Mode.LINK_IN_BIO:
        doc["linkInBio"] = _hydrate_link_in_bio(record.get("linkInBio"))
    if record.get("businessCard") is not None or mode is Mode.BUSINESS_CARD:
        doc["businessCard"] = _with_defaults(record.get("businessCard"), DEFAULT_BUSINESS_CARD)

    clock = now if now is not None else now_ms()
    updated_at = to_millis(record.get("updatedAt"), to_millis(record.get("createdAt"), clock))
    created_at = to_millis(record.get("createdAt"), updated_at)
    doc["createdAt"] = created_at
    doc["updatedAt"] = updated_at

    return doc
