"""
Folio Kernel — Section lenses (nested field updates)

Every edit to a document resolves to a partial of exactly one top-level
key: `{"hero": <whole new hero>}`, `{"projects": <whole new list>}`. The
remote merge is only aware of top-level keys, so deeper partial paths are
never produced.

There is one lens per top-level key, from a closed registry:

  ScalarLens     title, about, contactEmail, ...   value replaced as-is
  ObjectLens     hero, theme, linkInBio, ...       dict, copy-on-write descent;
                                                   may contain entry lists
                                                   (hero.buttons, linkInBio.links)
  EntryListLens  timeline, projects, ...           list of entries located by id

Paths are dot-separated. Inside an entry list the segment after the list
is an entry id, never an index:

  "hero.headline"
  "projects.p2.thumbnailUrl"
  "linkInBio.links.l1.thumbnail"
  "linkInBio.customStyle.buttonColor"

All functions are pure. The document passed in is never mutated; new
containers are created along the edited path only.
"""

from __future__ import annotations

import copy
from typing import Any

from engine.kernel.generator import new_entry_id
from engine.kernel.types import COLLECTION_ID_PREFIXES, NESTED_ENTRY_LISTS, Mode

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class UnknownSectionError(Exception):
    """Top-level key has no lens (or is owned by the store)."""

    pass


class InvalidPathError(Exception):
    """Path is malformed or does not fit the section's shape."""

    pass


class EntryNotFoundError(Exception):
    """No entry with the given id in the addressed list."""

    pass


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------


def split_path(path: str) -> tuple[str, ...]:
    if not isinstance(path, str) or not path.strip():
        raise InvalidPathError("Path must be a non-empty string")
    segments = tuple(part.strip() for part in path.strip().split("."))
    if any(not part for part in segments):
        raise InvalidPathError(f"Empty segment in path '{path}'")
    return segments


def _index_of(entries: list[Any], entry_id: str) -> int:
    for index, entry in enumerate(entries):
        if isinstance(entry, dict) and str(entry.get("id")) == str(entry_id):
            return index
    raise EntryNotFoundError(entry_id)


def _assign(
    node: Any,
    path: tuple[str, ...],
    value: Any,
    entry_lists: frozenset[tuple[str, ...]],
    prefix: tuple[str, ...] = (),
) -> dict[str, Any]:
    """Copy-on-write assignment of value at path inside a dict."""
    head, rest = path[0], path[1:]
    here = prefix + (head,)
    current = dict(node) if isinstance(node, dict) else {}
    if not rest:
        current[head] = value
        return current
    if here in entry_lists:
        current[head] = _assign_in_entries(current.get(head), rest, value)
    else:
        current[head] = _assign(current.get(head), rest, value, entry_lists, here)
    return current


def _assign_in_entries(entries: Any, path: tuple[str, ...], value: Any) -> list[Any]:
    """Copy-on-write assignment inside the entry whose id is path[0]."""
    items = list(entries) if isinstance(entries, list) else []
    entry_id, field_path = path[0], path[1:]
    index = _index_of(items, entry_id)
    if not field_path:
        if isinstance(value, dict):
            value = {**value, "id": items[index]["id"]}
        items[index] = value
    else:
        items[index] = _assign(items[index], field_path, value, frozenset())
    return items


# ---------------------------------------------------------------------------
# Lenses
# ---------------------------------------------------------------------------


class Lens:
    """Read-modify-write access to one top-level key."""

    def __init__(self, key: str) -> None:
        self.key = key

    def read(self, doc: dict[str, Any]) -> Any:
        return doc.get(self.key)

    def replace(self, value: Any) -> dict[str, Any]:
        return {self.key: copy.deepcopy(value)}

    def assign(self, doc: dict[str, Any], path: tuple[str, ...], value: Any) -> dict[str, Any]:
        raise NotImplementedError

    def entry_list(self, subpath: tuple[str, ...]) -> tuple[str, ...]:
        """Validate that subpath addresses an entry list inside this section."""
        raise InvalidPathError(f"'{self.key}' has no entry list at {'.'.join(subpath) or '<root>'}")


class ScalarLens(Lens):
    def assign(self, doc: dict[str, Any], path: tuple[str, ...], value: Any) -> dict[str, Any]:
        if path:
            raise InvalidPathError(f"'{self.key}' has no nested fields")
        return self.replace(value)


class ModeLens(ScalarLens):
    """Stores the canonical mode value."""

    def replace(self, value: Any) -> dict[str, Any]:
        mode = Mode.parse(value)
        if mode is None:
            raise InvalidPathError(f"Unknown mode: {value!r}")
        return {self.key: mode.value}


class ObjectLens(Lens):
    def __init__(self, key: str, entry_lists: tuple[str, ...] = ()) -> None:
        super().__init__(key)
        self.entry_lists: frozenset[tuple[str, ...]] = frozenset(tuple(p.split(".")) for p in entry_lists)
        self.entry_prefixes: dict[tuple[str, ...], str] = {
            tuple(p.split(".")): p.split(".")[-1].rstrip("s") for p in entry_lists
        }

    def read(self, doc: dict[str, Any]) -> dict[str, Any]:
        value = doc.get(self.key)
        return value if isinstance(value, dict) else {}

    def merge(self, doc: dict[str, Any], fields: dict[str, Any]) -> dict[str, Any]:
        return {self.key: {**self.read(doc), **copy.deepcopy(fields)}}

    def assign(self, doc: dict[str, Any], path: tuple[str, ...], value: Any) -> dict[str, Any]:
        if not path:
            return self.replace(value)
        # Assigning a whole nested list is fine; only paths *through* it need an id.
        return {self.key: _assign(self.read(doc), path, value, self.entry_lists)}

    def entry_list(self, subpath: tuple[str, ...]) -> tuple[str, ...]:
        if subpath not in self.entry_lists:
            return super().entry_list(subpath)
        return subpath


class EntryListLens(Lens):
    def __init__(self, key: str, id_prefix: str) -> None:
        super().__init__(key)
        self.id_prefix = id_prefix

    def read(self, doc: dict[str, Any]) -> list[Any]:
        value = doc.get(self.key)
        return value if isinstance(value, list) else []

    def assign(self, doc: dict[str, Any], path: tuple[str, ...], value: Any) -> dict[str, Any]:
        if not path:
            return self.replace(value)
        return {self.key: _assign_in_entries(self.read(doc), path, value)}

    def entry_list(self, subpath: tuple[str, ...]) -> tuple[str, ...]:
        if subpath:
            return super().entry_list(subpath)
        return subpath


LENSES: dict[str, Lens] = {
    **{
        key: ScalarLens(key)
        for key in (
            "title",
            "about",
            "contactEmail",
            "phone",
            "location",
            "templateId",
            "section",
            "attachedResumeId",
        )
    },
    "mode": ModeLens("mode"),
    "hero": ObjectLens("hero", entry_lists=NESTED_ENTRY_LISTS["hero"]),
    "theme": ObjectLens("theme"),
    "sectionLabels": ObjectLens("sectionLabels"),
    "linkInBio": ObjectLens("linkInBio", entry_lists=NESTED_ENTRY_LISTS["linkInBio"]),
    "businessCard": ObjectLens("businessCard"),
    **{key: EntryListLens(key, prefix) for key, prefix in COLLECTION_ID_PREFIXES.items()},
}


def lens_for(key: str) -> Lens:
    lens = LENSES.get(key)
    if lens is None:
        raise UnknownSectionError(key)
    return lens


# ---------------------------------------------------------------------------
# Section-level updates
# ---------------------------------------------------------------------------


def replace_section(doc: dict[str, Any], key: str, value: Any) -> dict[str, Any]:
    """Shape (a): replace one top-level key wholesale."""
    return lens_for(key).replace(value)


def merge_section(doc: dict[str, Any], key: str, fields: dict[str, Any]) -> dict[str, Any]:
    """Shallow-merge fields into an object section (hero, theme, ...)."""
    lens = lens_for(key)
    if not isinstance(lens, ObjectLens):
        raise InvalidPathError(f"'{key}' is not an object section")
    return lens.merge(doc, fields)


def set_field(doc: dict[str, Any], path: str, value: Any) -> dict[str, Any]:
    """
    Shape (b): set one nested field, returning the whole rebuilt section.

    >>> set_field({"hero": {"headline": "a", "subheadline": "b"}}, "hero.headline", "c")
    {'hero': {'headline': 'c', 'subheadline': 'b'}}
    """
    segments = split_path(path)
    return lens_for(segments[0]).assign(doc, segments[1:], value)


# ---------------------------------------------------------------------------
# Entry-list updates
# ---------------------------------------------------------------------------


def _resolve_list(list_path: str) -> tuple[Lens, tuple[str, ...]]:
    segments = split_path(list_path)
    lens = lens_for(segments[0])
    return lens, lens.entry_list(segments[1:])


def _read_list(doc: dict[str, Any], lens: Lens, subpath: tuple[str, ...]) -> list[Any]:
    node: Any = lens.read(doc)
    for segment in subpath:
        node = node.get(segment) if isinstance(node, dict) else None
    return list(node) if isinstance(node, list) else []


def _write_list(doc: dict[str, Any], lens: Lens, subpath: tuple[str, ...], entries: list[Any]) -> dict[str, Any]:
    if not subpath:
        return {lens.key: entries}
    return lens.assign(doc, subpath, entries)


def _id_prefix(lens: Lens, subpath: tuple[str, ...]) -> str:
    if isinstance(lens, EntryListLens):
        return lens.id_prefix
    if isinstance(lens, ObjectLens):
        return lens.entry_prefixes.get(subpath, "entry")
    return "entry"


def update_entry(doc: dict[str, Any], list_path: str, entry_id: str, fields: dict[str, Any]) -> dict[str, Any]:
    """Shallow-merge fields into the entry with entry_id."""
    lens, subpath = _resolve_list(list_path)
    entries = _read_list(doc, lens, subpath)
    index = _index_of(entries, entry_id)
    current = entries[index] if isinstance(entries[index], dict) else {}
    entries[index] = {**current, **copy.deepcopy(fields), "id": current.get("id", entry_id)}
    return _write_list(doc, lens, subpath, entries)


def replace_entry(doc: dict[str, Any], list_path: str, entry_id: str, entry: dict[str, Any]) -> dict[str, Any]:
    """Swap the entry with entry_id for a new one (keeping its id)."""
    lens, subpath = _resolve_list(list_path)
    entries = _read_list(doc, lens, subpath)
    index = _index_of(entries, entry_id)
    entries[index] = {**copy.deepcopy(entry), "id": entries[index]["id"]}
    return _write_list(doc, lens, subpath, entries)


def insert_entry(
    doc: dict[str, Any],
    list_path: str,
    entry: dict[str, Any],
    index: int | None = None,
) -> dict[str, Any]:
    """
    Insert a new entry (appended when index is None). An entry without an
    id gets a fresh local one; an id already in the list is rejected.
    """
    lens, subpath = _resolve_list(list_path)
    entries = _read_list(doc, lens, subpath)
    new = copy.deepcopy(entry)
    if not new.get("id"):
        new["id"] = new_entry_id(_id_prefix(lens, subpath))
    if any(isinstance(e, dict) and str(e.get("id")) == str(new["id"]) for e in entries):
        raise InvalidPathError(f"Duplicate entry id '{new['id']}' in {list_path}")
    if index is None:
        entries.append(new)
    else:
        entries.insert(index, new)
    return _write_list(doc, lens, subpath, entries)


def remove_entry(doc: dict[str, Any], list_path: str, entry_id: str) -> dict[str, Any]:
    lens, subpath = _resolve_list(list_path)
    entries = _read_list(doc, lens, subpath)
    del entries[_index_of(entries, entry_id)]
    return _write_list(doc, lens, subpath, entries)


def move_entry(doc: dict[str, Any], list_path: str, entry_id: str, index: int) -> dict[str, Any]:
    """Reorder: move the entry with entry_id to position index (clamped)."""
    lens, subpath = _resolve_list(list_path)
    entries = _read_list(doc, lens, subpath)
    entry = entries.pop(_index_of(entries, entry_id))
    entries.insert(max(0, min(index, len(entries))), entry)
    return _write_list(doc, lens, subpath, entries)
