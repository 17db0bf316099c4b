from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from services.step_engine.access import StageState
from services.step_engine.models import ProgressRecord, WireModel


class UnlockRequest(BaseModel):
    password: str = Field(..., description="Step password entered by the user.")
    attempts: Optional[int] = Field(
        None,
        ge=0,
        description="Failed attempts the client has counted so far; used when the server cannot count them.",
    )


class UnlockResponse(WireModel):
    unlocked: bool
    attempts: Optional[int] = Field(None, description="Failed attempts so far; null when unknown.")
    hint: Optional[str] = None


class FieldUpdateRequest(BaseModel):
    value: Any = Field(..., description="New value for the field (string, list or dict).")


class ResentmentUpdateRequest(BaseModel):
    field: str = Field(..., description="Column to change, or 'affectsMy.<domain>'.")
    value: Any


class AssignmentRequest(WireModel):
    assignment_date: Optional[datetime] = Field(None, description="Defaults to now.")


class StepSummary(WireModel):
    number: int
    title: str
    quote: str
    display_title: str


class Evaluation(WireModel):
    complete: bool
    missing: List[str]
    remaining: List[str]


class RequirementView(WireModel):
    field_key: str
    label: str
    satisfied: bool


class SectionRequirements(WireModel):
    section_id: str
    part_number: Optional[int] = None
    title: str
    type: str
    inputs: List[RequirementView]


class StepView(WireModel):
    step: Dict[str, Any]
    record: Optional[ProgressRecord] = None
    role: str
    requires_password: bool
    state: StageState
    prayer: Optional[str] = None
    evaluation: Evaluation
    sections: List[SectionRequirements]
    resentments: Optional[List[Dict[str, Any]]] = None


class RecordUpdateResponse(WireModel):
    record: ProgressRecord
    evaluation: Evaluation


class ListEntryUpdateRequest(BaseModel):
    field: str = Field(..., description="One of content, date, rippleEffects.")
    value: Any
