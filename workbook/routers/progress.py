import asyncio
import json
import logging
from datetime import datetime
from typing import AsyncGenerator, Callable, List

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from services.step_engine.access import is_accessible
from services.step_engine.aggregator import (
    current_stage,
    derive_progress_summary,
    fill_percentage,
    find_record,
    step_status,
)
from services.step_engine.catalog import StepCatalog, random_encouragement
from services.step_engine.models import ProgressRecord
from workbook.config import app_settings
from workbook.dependencies import (
    get_clock,
    get_current_profile,
    get_progress_repository,
    get_step_catalog,
    load_records,
)
from workbook.schemas.progress import DashboardStep, ProgressOverview, ProgressRecords, ProgressSummary
from workbook.services.identity import UserProfile
from workbook.services.progress_store import ProgressRepository

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/progress", response_model=ProgressOverview)
async def get_progress(
    profile: UserProfile = Depends(get_current_profile),
    repo: ProgressRepository = Depends(get_progress_repository),
    catalog: StepCatalog = Depends(get_step_catalog),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """Dashboard data: day counters, an encouragement and one row per step."""
    records = await load_records(repo, profile.id)
    summary = derive_progress_summary(records, clock())
    current = current_stage(records)

    rows = [
        DashboardStep(
            number=step.number,
            title=step.title,
            status=step_status(records, step.number, current),
            accessible=is_accessible(step.number, profile.role, records),
            fill_percentage=fill_percentage(find_record(records, step.number)),
        )
        for step in catalog.steps()
    ]
    return ProgressOverview(
        summary=ProgressSummary.model_validate(summary),
        encouragement=random_encouragement(current),
        steps=rows,
    )


@router.get("/progress/records", response_model=ProgressRecords)
async def get_progress_records(
    profile: UserProfile = Depends(get_current_profile),
    repo: ProgressRepository = Depends(get_progress_repository),
):
    return ProgressRecords(records=await load_records(repo, profile.id))


def _sse_event(records: List[ProgressRecord]) -> str:
    payload = [record.model_dump(mode="json", by_alias=True) for record in records]
    return f"event: progress\ndata: {json.dumps(payload)}\n\n"


async def progress_events(
    request: Request,
    repo: ProgressRepository,
    user_id: str,
    keepalive_seconds: float,
) -> AsyncGenerator[str, None]:
    """
    Server-Sent Events feed: the current records first, then the full record
    list after every write, until the client disconnects.
    """
    queue: asyncio.Queue = asyncio.Queue()
    unsubscribe = repo.subscribe_all(user_id, queue.put_nowait)
    logger.info(f"Progress stream opened for user {user_id}.")
    try:
        yield _sse_event(await load_records(repo, user_id))
        while True:
            if await request.is_disconnected():
                break
            try:
                records = await asyncio.wait_for(queue.get(), timeout=keepalive_seconds)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            yield _sse_event(records)
    finally:
        unsubscribe()
        logger.info(f"Progress stream closed for user {user_id}.")


@router.get("/progress/stream")
async def stream_progress(
    request: Request,
    profile: UserProfile = Depends(get_current_profile),
    repo: ProgressRepository = Depends(get_progress_repository),
):
    return StreamingResponse(
        progress_events(request, repo, profile.id, app_settings.stream_keepalive_seconds),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
