"""Content tree for the printable step export.

The tree is handed to an external renderer. Every section lists its
requirements from the shared checklist contract next to the answers given.
"""
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from .catalog import get_catalog
from .checklist import (
    checklist_state,
    is_list_item,
    list_value,
    required_inputs,
    section_completed,
    text_value,
)
from .entries import stored_resentments
from .models import AFFECTED_DOMAINS, Step

WORKBOOK_TITLE = "12-Step Recovery Workbook"
BLANK_LINE = "_________________________________"
BLANK_DATE = "___/___/___"
NO_ENTRIES = "No entries recorded"
RESENTMENT_COLUMNS = ("Resentment", "Cause", "Affects", "My Part", "Fear", "Sex/Harm")


def format_long_date(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.strftime("%B %d, %Y")


def format_entry_date(value: Any) -> str:
    """MM/DD/YYYY for an ISO date string, the blank date placeholder otherwise."""
    if not isinstance(value, str) or not value.strip():
        return BLANK_DATE
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed = date.fromisoformat(value.strip()[:10])
        except ValueError:
            return BLANK_DATE
    return parsed.strftime("%m/%d/%Y")


def _text_line(label: str, data: Mapping[str, Any], key: str) -> Dict[str, Any]:
    answer = text_value(data, key)
    return {"label": label, "value": answer if answer.strip() else BLANK_LINE}


def _list_block(item, data: Mapping[str, Any]) -> Dict[str, Any]:
    entries = list_value(data, item.key)
    rows = []
    # pad to the configured count; extra entries beyond it are still printed
    for position in range(max(item.count or 0, len(entries))):
        entry = entries[position] if position < len(entries) else {}
        content = entry.get("content")
        row = {
            "number": position + 1,
            "value": content if isinstance(content, str) and content.strip() else BLANK_LINE,
        }
        if item.has_date:
            row["date"] = format_entry_date(entry.get("date"))
        if item.has_ripple_effects:
            ripple = entry.get("rippleEffects")
            row["rippleEffects"] = ripple if isinstance(ripple, str) else ""
        rows.append(row)
    block: Dict[str, Any] = {"label": item.label, "entries": rows}
    # column headers for the optional columns
    if item.has_date:
        block["dateLabel"] = item.date_label
    if item.has_ripple_effects:
        block["rippleEffectsLabel"] = item.ripple_effects_label
    return block


def _resentment_table(data: Mapping[str, Any]) -> Dict[str, Any]:
    rows = []
    for entry in stored_resentments(data):
        affects = [domain for domain in AFFECTED_DOMAINS if entry["affectsMy"].get(domain)]
        rows.append([
            entry["resentfulAt"],
            entry["theCause"],
            ", ".join(affects),
            entry["myPart"],
            entry["myFears"],
            entry["sexReview"],
        ])
    return {"columns": list(RESENTMENT_COLUMNS), "rows": rows, "empty": NO_ENTRIES if not rows else None}


def _section_block(section, data: Mapping[str, Any], part_number: Optional[int]) -> Dict[str, Any]:
    block: Dict[str, Any] = {
        "id": section.id,
        "type": section.type,
        "title": section.title,
        "instruction": section.instruction,
        "requirements": [
            {"label": r.label, "satisfied": r.satisfied}
            for r in required_inputs(section, data, part_number)
        ],
        "lines": [],
    }

    if section.type in ("definitions", "writing", "list"):
        for item in section.items:
            if is_list_item(section.type, item):
                block["lines"].append(_list_block(item, data))
            elif section.type == "list" and not item.prompt:
                block["lines"].append({"label": item.text or item.key, "value": None})
            else:
                block["lines"].append(_text_line(item.label, data, item.key))
    elif section.type == "resentment":
        block["table"] = _resentment_table(data)
    else:
        checked = checklist_state(data, section, part_number)
        block["lines"] = [
            {"label": item.text or item.label, "checked": checked.get(item.key, False)}
            for item in section.items
        ]
        block["completed"] = section_completed(data, section, part_number)
    return block


def build_export_document(
    step: Step,
    field_data: Optional[Mapping[str, Any]],
    assignment_date: Optional[datetime] = None,
    completion_date: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Builds the export content tree for one step.

    Args:
        step: Catalog step.
        field_data: The user's answers. Malformed values print as blanks.
        assignment_date: When the step was assigned, if ever.
        completion_date: When the step was completed, if ever.
        now: Generation timestamp. Defaults to the current UTC time.

    Returns:
        Nested dict with header fields, then either "parts" or "sections".
    """
    data = field_data if isinstance(field_data, Mapping) else {}
    now = now or datetime.now(timezone.utc)

    document: Dict[str, Any] = {
        "documentTitle": f"Step {step.number} - {step.title} - Recovery Workbook",
        "heading": WORKBOOK_TITLE,
        "subtitle": f"Step {step.number}: {step.title}",
        "quote": step.quote,
        "assignment": format_long_date(assignment_date) or "Not set",
        "completion": format_long_date(completion_date) or "In Progress",
        "prayer": get_catalog().prayer_text(step.number),
        "generatedOn": format_long_date(now),
    }

    if step.parts is not None:
        parts: List[Dict[str, Any]] = []
        for part in step.parts:
            parts.append({
                "partNumber": part.part_number,
                "title": part.title or f"Part {part.part_number}",
                "sections": [_section_block(s, data, part.part_number) for s in part.sections],
            })
        document["parts"] = parts
    else:
        document["sections"] = [_section_block(s, data, None) for s in step.sections or []]
    return document
