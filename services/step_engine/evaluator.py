from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .checklist import RequiredInput, required_inputs
from .models import ProgressRecord, Step

EXPORT_REQUIRED = "Export step to PDF"
HAS_EXPORTED_FIELD = "hasExported"


@dataclass(frozen=True)
class CompletionResult:
    complete: bool
    missing: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"complete": self.complete, "missing": list(self.missing)}


def section_inputs(step: Step, field_data: Optional[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Required inputs grouped per section, in catalog order."""
    grouped = []
    for part_number, section in step.iter_sections():
        inputs: List[RequiredInput] = required_inputs(section, field_data, part_number)
        grouped.append({
            "section_id": section.id,
            "part_number": part_number,
            "title": section.title,
            "type": section.type,
            "inputs": inputs,
        })
    return grouped


def evaluate_completion(step: Step, field_data: Optional[Mapping[str, Any]], has_exported: bool) -> CompletionResult:
    """
    Works out what is still outstanding before a step can be marked complete.

    Every gap is collected in catalog order, with the export requirement first,
    so callers can show the whole list. Pure: identical input gives identical output.

    Args:
        step: Catalog step.
        field_data: The user's answers for this step.
        has_exported: Whether the step has been exported to a document.

    Returns:
        CompletionResult with complete=True only when nothing is missing.
    """
    missing: List[str] = []
    if not has_exported:
        missing.append(EXPORT_REQUIRED)

    for part_number, section in step.iter_sections():
        for required in required_inputs(section, field_data, part_number):
            if not required.satisfied:
                missing.append(required.label)

    return CompletionResult(complete=not missing, missing=missing)


def evaluate_record(step: Step, record: Optional[ProgressRecord]) -> CompletionResult:
    """Evaluates a stored record, reading the export flag from its field data."""
    data = record.data if record else {}
    return evaluate_completion(step, data, data.get(HAS_EXPORTED_FIELD) is True)


def remaining_summary(result: CompletionResult, limit: int = 5) -> List[str]:
    """First `limit` missing items, plus a count line for the rest."""
    shown = result.missing[:limit]
    hidden = len(result.missing) - len(shown)
    if hidden > 0:
        shown.append(f"...and {hidden} more items")
    return shown
