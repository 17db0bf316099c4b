# services/step_engine/entries.py
# Lifecycle of multi-entry answers: numbered list entries and the resentment grid.
# Every helper returns new lists and leaves its input untouched.
import time
import uuid
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

from .checklist import RESENTMENTS_FIELD, is_list_item, list_value
from .models import (
    AFFECTED_DOMAINS,
    AffectsMy,
    EntryNotFoundError,
    EntryRemovalError,
    ListEntry,
    ResentmentEntry,
    SectionItem,
    Step,
)

LIST_ENTRY_FIELDS = ("content", "date", "rippleEffects")
RESENTMENT_TEXT_FIELDS = ("resentfulAt", "theCause", "myPart", "myFears", "sexReview")
AFFECTS_PREFIX = "affectsMy."


def _empty_list_entry(key: str, position: int) -> Dict[str, Any]:
    return ListEntry(id=f"{key}_{position}").model_dump(by_alias=True)


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _dict_rows(value: Any) -> List[Dict[str, Any]]:
    return list_value({"rows": value}, "rows")


def _position_id(prefix: str, position: int, taken: Set[str]) -> str:
    candidate = position
    while f"{prefix}_{candidate}" in taken:
        candidate += 1
    return f"{prefix}_{candidate}"


def _repair_ids(rows: List[Dict[str, Any]], prefix: str) -> List[str]:
    """Stored ids, with missing ones derived from the row's position."""
    taken = {row["id"] for row in rows if isinstance(row.get("id"), str) and row["id"]}
    ids = []
    for position, row in enumerate(rows, start=1):
        entry_id = row.get("id")
        if not isinstance(entry_id, str) or not entry_id:
            entry_id = _position_id(prefix, position, taken)
            taken.add(entry_id)
        ids.append(entry_id)
    return ids


def _clean_list_entries(value: Any, key: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Dict rows repaired into well-formed entries, in stored order.

    Nothing the user wrote is dropped: a missing id comes from the row's
    position and non-string fields read as "". Non-dict rows are skipped,
    the same rows checklist.list_value ignores.
    """
    rows = _dict_rows(value)
    cleaned = []
    for entry_id, raw in zip(_repair_ids(rows, key or "entry"), rows):
        entry = ListEntry(
            id=entry_id,
            content=_text(raw.get("content")),
            date=_text(raw.get("date")),
            ripple_effects=_text(raw.get("rippleEffects")),
        )
        cleaned.append({**raw, **entry.model_dump(by_alias=True)})
    return cleaned


# --- Numbered list entries ---

def materialize_list_entries(item: SectionItem, value: Any) -> List[Dict[str, Any]]:
    """
    Entries to show for a count-bearing item. With nothing stored yet the item
    gets `count` blank entries with ids "<key>_1".."<key>_<count>".
    """
    entries = _clean_list_entries(value, item.key)
    if not entries and item.count:
        return [_empty_list_entry(item.key, i + 1) for i in range(item.count)]
    return entries


def prepare_field_data(step: Step, field_data: Optional[Mapping[str, Any]]) -> Tuple[Dict[str, Any], List[str]]:
    """
    Fills in blank entries for every list-rendered item that has none stored.

    Returns:
        The updated field data and the keys that changed, so the caller can
        persist exactly those.
    """
    data = dict(field_data) if isinstance(field_data, Mapping) else {}
    changed: List[str] = []
    for _, section in step.iter_sections():
        for item in section.items:
            if not is_list_item(section.type, item):
                continue
            if list_value(data, item.key):
                continue
            data[item.key] = materialize_list_entries(item, data.get(item.key))
            changed.append(item.key)
    return data, changed


def add_list_entry(key: str, entries: Any) -> List[Dict[str, Any]]:
    current = _clean_list_entries(entries, key)
    taken = {entry["id"] for entry in current}
    entry = ListEntry(id=_position_id(key, len(current) + 1, taken)).model_dump(by_alias=True)
    return current + [entry]


def update_list_entry(entries: Any, index: int, field: str, value: Any, key: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Sets one field of the entry at `index`. An index one past the end creates
    the entry, which needs `key` to derive its id.
    """
    if field not in LIST_ENTRY_FIELDS:
        raise ValueError(f"Unknown list entry field '{field}'")
    current = _clean_list_entries(entries, key)
    if 0 <= index < len(current):
        current[index] = {**current[index], field: _text(value)}
        return current
    if index == len(current) and key:
        taken = {entry["id"] for entry in current}
        entry = ListEntry(id=_position_id(key, index + 1, taken)).model_dump(by_alias=True)
        entry[field] = _text(value)
        return current + [entry]
    raise EntryNotFoundError(f"No list entry at position {index}")


def remove_list_entry(entries: Any, index: int, key: Optional[str] = None) -> List[Dict[str, Any]]:
    current = _clean_list_entries(entries, key)
    if not 0 <= index < len(current):
        raise EntryNotFoundError(f"No list entry at position {index}")
    if len(current) <= 1:
        raise EntryRemovalError("A list must keep at least one entry.")
    return current[:index] + current[index + 1:]


# --- Resentment inventory ---

def new_resentment_id() -> str:
    return f"resentment_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def new_resentment_entry(entry_id: Optional[str] = None) -> Dict[str, Any]:
    return ResentmentEntry(id=entry_id or new_resentment_id()).model_dump(by_alias=True)


def _clean_resentments(value: Any) -> List[Dict[str, Any]]:
    """Stored resentment rows repaired the same way as list entries."""
    rows = _dict_rows(value)
    cleaned = []
    for entry_id, raw in zip(_repair_ids(rows, "resentment"), rows):
        affects = raw.get("affectsMy")
        affects = affects if isinstance(affects, dict) else {}
        entry = ResentmentEntry(
            id=entry_id,
            resentful_at=_text(raw.get("resentfulAt")),
            the_cause=_text(raw.get("theCause")),
            affects_my=AffectsMy.model_validate({domain: affects.get(domain) is True for domain in AFFECTED_DOMAINS}),
            my_part=_text(raw.get("myPart")),
            my_fears=_text(raw.get("myFears")),
            sex_review=_text(raw.get("sexReview")),
        )
        cleaned.append({**raw, **entry.model_dump(by_alias=True)})
    return cleaned


def stored_resentments(field_data: Optional[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    data = field_data if isinstance(field_data, Mapping) else {}
    return _clean_resentments(data.get(RESENTMENTS_FIELD))


def resentment_entries_for_view(field_data: Optional[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Stored entries, or a single blank one (not persisted) when there are none."""
    entries = stored_resentments(field_data)
    return entries if entries else [new_resentment_entry()]


def update_resentment(entries: Any, entry_id: str, field: str, value: Any) -> List[Dict[str, Any]]:
    """
    Sets one field on the entry with `entry_id`.

    `field` is one of the text columns, or "affectsMy.<domain>" for the
    affected-domain flags. With nothing stored yet, the blank entry shown on
    the view is adopted under `entry_id` so the first edit persists it.

    Raises:
        ValueError: Unknown field.
        EntryNotFoundError: No entry with that id among stored entries.
    """
    current = _clean_resentments(entries)
    if not current:
        current = [new_resentment_entry(entry_id)]

    for position, entry in enumerate(current):
        if entry["id"] != entry_id:
            continue
        updated = dict(entry)
        if field in RESENTMENT_TEXT_FIELDS:
            updated[field] = value if isinstance(value, str) else ""
        elif field.startswith(AFFECTS_PREFIX) and field[len(AFFECTS_PREFIX):] in AFFECTED_DOMAINS:
            updated["affectsMy"] = {**entry["affectsMy"], field[len(AFFECTS_PREFIX):]: value is True}
        else:
            raise ValueError(f"Unknown resentment field '{field}'")
        current[position] = updated
        return current

    raise EntryNotFoundError(f"Resentment entry '{entry_id}' not found")


def remove_resentment(entries: Any, entry_id: str) -> List[Dict[str, Any]]:
    current = _clean_resentments(entries)
    remaining = [entry for entry in current if entry["id"] != entry_id]
    if len(remaining) == len(current):
        raise EntryNotFoundError(f"Resentment entry '{entry_id}' not found")
    if not remaining:
        raise EntryRemovalError("The inventory must keep at least one entry.")
    return remaining
