# services/step_engine/checklist.py
# Required-input checklist per section type. The completion evaluator, the step
# view and the export builder all read "is this filled in" from here.
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from .models import SectionItem

RESENTMENTS_FIELD = "resentments"


@dataclass(frozen=True)
class RequiredInput:
    field_key: str
    label: str
    satisfied: bool


# --- Defensive field readers ---

def text_value(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    return value if isinstance(value, str) else ""


def has_text(data: Mapping[str, Any], key: str) -> bool:
    return bool(text_value(data, key).strip())


def list_value(data: Mapping[str, Any], key: str) -> List[Dict[str, Any]]:
    """Entries stored under key; anything that is not a list of dicts reads as empty."""
    value = data.get(key)
    if not isinstance(value, list):
        return []
    return [entry for entry in value if isinstance(entry, dict)]


def has_list_content(data: Mapping[str, Any], key: str) -> bool:
    return any(
        isinstance(entry.get("content"), str) and entry["content"].strip()
        for entry in list_value(data, key)
    )


def section_value(data: Mapping[str, Any], section, suffix: str, part_number: Optional[int] = None) -> Any:
    """
    Reads a section-scoped value such as "<id>_checklist", falling back to the
    key older clients derived from type, title and part number.
    """
    key = f"{section.id}_{suffix}"
    if key in data:
        return data[key]
    return data.get(f"{section.legacy_key(part_number)}_{suffix}")


def checklist_state(data: Mapping[str, Any], section, part_number: Optional[int] = None) -> Dict[str, bool]:
    value = section_value(data, section, "checklist", part_number)
    if not isinstance(value, dict):
        return {}
    return {str(k): v is True for k, v in value.items()}


def section_completed(data: Mapping[str, Any], section, part_number: Optional[int] = None) -> bool:
    return section_value(data, section, "completed", part_number) is True


def all_checked(data: Mapping[str, Any], section, part_number: Optional[int] = None) -> bool:
    state = checklist_state(data, section, part_number)
    return all(state.get(item.key, False) for item in section.items)


def is_list_item(section_type: str, item: SectionItem) -> bool:
    """Whether the item is answered with a list of entries rather than free text."""
    if section_type == "writing":
        return bool(item.count)
    if section_type == "list":
        # a prompt wins over a count: the item is answered as free text
        return not item.prompt and bool(item.count)
    return False


def resentment_complete(entry: Mapping[str, Any]) -> bool:
    resentful_at = entry.get("resentfulAt")
    the_cause = entry.get("theCause")
    return (
        isinstance(resentful_at, str) and bool(resentful_at.strip())
        and isinstance(the_cause, str) and bool(the_cause.strip())
    )


# --- Per-type rules ---

def _definitions(section, data, part_number):
    return [
        RequiredInput(item.key, f"{section.title}: {item.label}", has_text(data, item.key))
        for item in section.items
    ]


def _reading(section, data, part_number):
    return [
        RequiredInput(
            section.checklist_key,
            f"{section.title}: Check all reading items",
            all_checked(data, section, part_number),
        ),
        RequiredInput(
            section.completed_key,
            f"{section.title}: Confirm reading completion",
            section_completed(data, section, part_number),
        ),
    ]


def _writing(section, data, part_number):
    inputs = []
    for item in section.items:
        filled = has_list_content(data, item.key) if item.count else has_text(data, item.key)
        inputs.append(RequiredInput(item.key, f"{section.title}: {item.label}", filled))
    return inputs


def _list(section, data, part_number):
    inputs = []
    for item in section.items:
        if item.prompt:
            inputs.append(RequiredInput(item.key, f"{section.title}: {item.prompt}", has_text(data, item.key)))
        elif item.count:
            inputs.append(
                RequiredInput(item.key, f"{section.title}: Fill in list items", has_list_content(data, item.key))
            )
        # display-only rows carry no requirement
    return inputs


def _checklist(section, data, part_number):
    return [
        RequiredInput(
            section.checklist_key,
            f"{section.title}: Complete all items",
            all_checked(data, section, part_number),
        )
    ]


def _prayer(section, data, part_number):
    inputs = [
        RequiredInput(
            section.completed_key,
            f"{section.title}: Confirm prayer completion",
            section_completed(data, section, part_number),
        )
    ]
    if section.items:
        inputs.append(
            RequiredInput(
                section.checklist_key,
                f"{section.title}: Complete all prayer items",
                all_checked(data, section, part_number),
            )
        )
    return inputs


def _resentment(section, data, part_number):
    entries = list_value(data, RESENTMENTS_FIELD)
    if not entries:
        return [RequiredInput(RESENTMENTS_FIELD, f"{section.title}: Add at least one resentment entry", False)]
    return [
        RequiredInput(
            RESENTMENTS_FIELD,
            f"{section.title}: Complete at least one entry (Resentful At + Cause)",
            any(resentment_complete(entry) for entry in entries),
        )
    ]


SECTION_RULES: Dict[str, Callable[..., List[RequiredInput]]] = {
    "definitions": _definitions,
    "reading": _reading,
    "writing": _writing,
    "list": _list,
    "checklist": _checklist,
    "todo": _checklist,
    "prayer": _prayer,
    "resentment": _resentment,
}


def required_inputs(section, field_data: Optional[Mapping[str, Any]], part_number: Optional[int] = None) -> List[RequiredInput]:
    """
    Lists what a section needs filled in, in catalog order.

    Args:
        section: A catalog section.
        field_data: The step's field data. Missing or malformed values count as empty.
        part_number: Part the section belongs to, used for legacy key lookups.

    Returns:
        One RequiredInput per requirement, satisfied or not.
    """
    data = field_data if isinstance(field_data, Mapping) else {}
    try:
        rule = SECTION_RULES[section.type]
    except KeyError:
        raise ValueError(f"No completion rule for section type '{section.type}'")
    return rule(section, data, part_number)
