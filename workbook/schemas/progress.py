from typing import List

from services.step_engine.models import ProgressRecord, WireModel


class ProgressSummary(WireModel):
    current_stage: int
    completed_count: int
    total_days: int
    current_stage_days: int


class DashboardStep(WireModel):
    number: int
    title: str
    status: str
    accessible: bool
    fill_percentage: int


class ProgressOverview(WireModel):
    summary: ProgressSummary
    encouragement: str
    steps: List[DashboardStep]


class ProgressRecords(WireModel):
    records: List[ProgressRecord]
