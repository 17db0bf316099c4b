"""Program-level progress derived from a user's step records.

Pure functions. Anything measuring elapsed time takes `now` explicitly.
"""
import math
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from .models import MAX_STEP, ProgressRecord

DAY_SECONDS = 24 * 60 * 60

STATUS_COMPLETED = "completed"
STATUS_CURRENT = "current"
STATUS_LOCKED = "locked"


def _valid(records: Optional[Iterable[Any]]) -> List[ProgressRecord]:
    if not records:
        return []
    return [r for r in records if isinstance(r, ProgressRecord)]


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def elapsed_days(start: datetime, now: datetime) -> int:
    """Calendar days between two instants, rounded up."""
    seconds = abs((_as_utc(now) - _as_utc(start)).total_seconds())
    return math.ceil(seconds / DAY_SECONDS)


def find_record(records: Iterable[ProgressRecord], step_number: int) -> Optional[ProgressRecord]:
    for record in _valid(records):
        if record.step_number == step_number:
            return record
    return None


def current_stage(records) -> int:
    """
    Highest step that is assigned but not completed. Failing that, the step
    after the highest completed one (capped at 12), or 1 with no progress.
    """
    records = _valid(records)
    in_progress = [r.step_number for r in records if r.assignment_date and not r.completion_date]
    if in_progress:
        return max(in_progress)

    completed = [r.step_number for r in records if r.completion_date]
    if completed:
        return min(max(completed) + 1, MAX_STEP)
    return 1


def completed_count(records) -> int:
    return len({r.step_number for r in _valid(records) if r.completion_date})


def total_days(records, now: datetime) -> int:
    """Days since step 1 was assigned; 0 if it never was."""
    step_one = find_record(records, 1)
    if step_one is None or step_one.assignment_date is None:
        return 0
    return elapsed_days(step_one.assignment_date, now)


def current_stage_days(records, stage_number: int, now: datetime) -> int:
    """Days on the given step, counted only while it is still incomplete."""
    for record in _valid(records):
        if record.step_number == stage_number and not record.completion_date:
            if record.assignment_date is None:
                return 0
            return elapsed_days(record.assignment_date, now)
    return 0


def derive_progress_summary(records, now: datetime) -> Dict[str, int]:
    current = current_stage(records)
    return {
        "currentStage": current,
        "completedCount": completed_count(records),
        "totalDays": total_days(records, now),
        "currentStageDays": current_stage_days(records, current, now),
    }


def step_status(records, step_number: int, current: Optional[int] = None) -> str:
    """Dashboard status of a step: completed, current or locked."""
    if current is None:
        current = current_stage(records)
    record = find_record(records, step_number)
    if record is not None and record.completion_date:
        return STATUS_COMPLETED
    if (record is not None and record.assignment_date) or step_number == current:
        return STATUS_CURRENT
    return STATUS_LOCKED


def _is_filled(value: Any) -> bool:
    if value is None or value == "":
        return False
    if isinstance(value, (dict, list)):
        return len(value) > 0
    return True


def fill_percentage(record: Optional[ProgressRecord]) -> int:
    """Rough share of non-empty field values, 0-100."""
    if record is None or not record.data:
        return 0
    values = list(record.data.values())
    filled = sum(1 for v in values if _is_filled(v))
    return min(100, round(filled / max(len(values), 1) * 100))
