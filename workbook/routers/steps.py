import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from services.step_engine import entries
from services.step_engine.access import (
    STEP_UNLOCKED_FIELD,
    AccessGate,
    requires_password,
    stage_state,
)
from services.step_engine.catalog import StepCatalog
from services.step_engine.checklist import RESENTMENTS_FIELD, is_list_item
from services.step_engine.evaluator import (
    HAS_EXPORTED_FIELD,
    CompletionResult,
    evaluate_completion,
    evaluate_record,
    remaining_summary,
    section_inputs,
)
from services.step_engine.export import build_export_document
from services.step_engine.models import EntryNotFoundError, EntryRemovalError, ProgressRecord, SectionItem, Step
from workbook.constants import ErrorCodes
from workbook.dependencies import (
    api_error,
    get_access_gate,
    get_clock,
    get_current_profile,
    get_progress_repository,
    get_step_catalog,
    get_unlock_counter,
    load_record,
    resolve_step,
    save_failed,
    shielded_write,
)
from workbook.schemas.steps import (
    AssignmentRequest,
    Evaluation,
    FieldUpdateRequest,
    ListEntryUpdateRequest,
    RecordUpdateResponse,
    ResentmentUpdateRequest,
    SectionRequirements,
    StepSummary,
    StepView,
    UnlockRequest,
    UnlockResponse,
)
from workbook.services.identity import UserProfile
from workbook.services.progress_store import ProgressRepository, ProgressStoreError
from workbook.services.unlock_attempts import UnlockAttemptCounter

router = APIRouter()
logger = logging.getLogger(__name__)

RESERVED_FIELDS = {STEP_UNLOCKED_FIELD, HAS_EXPORTED_FIELD}


def _evaluation(result: CompletionResult) -> Evaluation:
    return Evaluation(complete=result.complete, missing=result.missing, remaining=remaining_summary(result))


def _record_response(step: Step, record: ProgressRecord) -> RecordUpdateResponse:
    return RecordUpdateResponse(record=record, evaluation=_evaluation(evaluate_record(step, record)))


def _has_resentment_section(step: Step) -> bool:
    return any(section.type == "resentment" for _, section in step.iter_sections())


async def _require_unlocked(
    repo: ProgressRepository,
    profile: UserProfile,
    step: Step,
) -> Optional[ProgressRecord]:
    """
    Loads the step's record ahead of a write, refusing sponsees who have not
    unlocked it. A store outage here fails the write as SAVE_FAILED.
    """
    try:
        record = await repo.get(profile.id, step.number)
    except ProgressStoreError as e:
        logger.error(f"Could not load step {step.number} for user {profile.id} before writing: {e}")
        raise save_failed()
    if requires_password(profile.role, record.data if record else {}):
        logger.info(f"User {profile.id} tried to change locked step {step.number}.")
        raise api_error(status.HTTP_403_FORBIDDEN, ErrorCodes.STEP_LOCKED, f"Step {step.number} is locked.")
    return record


def _require_resentments(step: Step) -> None:
    if not _has_resentment_section(step):
        raise api_error(
            status.HTTP_400_BAD_REQUEST,
            ErrorCodes.INVALID_FIELD,
            f"Step {step.number} has no resentment inventory.",
        )


def _require_list_item(step: Step, key: str) -> SectionItem:
    """The count-bearing item answered as a list of entries under `key`."""
    for _, section in step.iter_sections():
        for item in section.items:
            if item.key == key and is_list_item(section.type, item):
                return item
    raise api_error(
        status.HTTP_400_BAD_REQUEST,
        ErrorCodes.INVALID_FIELD,
        f"'{key}' is not a list item of step {step.number}.",
    )


@router.get("/steps", response_model=List[StepSummary])
async def list_steps(catalog: StepCatalog = Depends(get_step_catalog)):
    return [
        StepSummary(number=s.number, title=s.title, quote=s.quote, display_title=catalog.step_title(s.number))
        for s in catalog.steps()
    ]


@router.get("/steps/{step_number}", response_model=StepView)
async def get_step_view(
    step: Step = Depends(resolve_step),
    profile: UserProfile = Depends(get_current_profile),
    repo: ProgressRepository = Depends(get_progress_repository),
    catalog: StepCatalog = Depends(get_step_catalog),
):
    """
    Everything a client needs to render a step: definition, stored answers,
    gate state and what is still missing before completion.
    """
    record = await load_record(repo, profile.id, step.number)
    data: Dict[str, Any] = record.data if record else {}
    locked = requires_password(profile.role, data)

    if not locked:
        data, changed = entries.prepare_field_data(step, data)
        if changed:
            updates = {key: data[key] for key in changed}
            try:
                record = await shielded_write(repo.set_fields(profile.id, step.number, updates))
            except HTTPException as e:
                # the view still shows the blank entries; they are saved on first edit
                logger.warning(f"Could not persist blank list entries for user {profile.id} step {step.number}: {e.detail}")

    evaluation = evaluate_completion(step, data, data.get(HAS_EXPORTED_FIELD) is True)
    sections = [
        SectionRequirements(
            section_id=group["section_id"],
            part_number=group["part_number"],
            title=group["title"],
            type=group["type"],
            inputs=[
                {"field_key": r.field_key, "label": r.label, "satisfied": r.satisfied}
                for r in group["inputs"]
            ],
        )
        for group in section_inputs(step, data)
    ]

    return StepView(
        step=step.model_dump(mode="json", by_alias=True),
        record=record,
        role=profile.role.value,
        requires_password=locked,
        state=stage_state(profile.role, record, evaluation),
        prayer=catalog.prayer_text(step.number),
        evaluation=_evaluation(evaluation),
        sections=sections,
        resentments=entries.resentment_entries_for_view(data) if _has_resentment_section(step) else None,
    )


@router.post("/steps/{step_number}/unlock", response_model=UnlockResponse)
async def unlock_step(
    request: UnlockRequest,
    step: Step = Depends(resolve_step),
    profile: UserProfile = Depends(get_current_profile),
    repo: ProgressRepository = Depends(get_progress_repository),
    gate: AccessGate = Depends(get_access_gate),
    counter: UnlockAttemptCounter = Depends(get_unlock_counter),
):
    if not gate.verify(step.number, request.password):
        attempts = await counter.record_failure(profile.id, step.number)
        if attempts is None and request.attempts is not None:
            # Redis is down: fall back to the client's own count
            attempts = request.attempts + 1
        hint = gate.hint_for(step.number, attempts) if attempts is not None else None
        logger.info(f"Wrong password for user {profile.id} step {step.number} (attempts={attempts}).")
        return UnlockResponse(unlocked=False, attempts=attempts, hint=hint)

    await shielded_write(repo.set_field(profile.id, step.number, STEP_UNLOCKED_FIELD, True))
    await counter.reset(profile.id, step.number)
    logger.info(f"User {profile.id} unlocked step {step.number}.")
    return UnlockResponse(unlocked=True, attempts=0, hint=None)


@router.put("/steps/{step_number}/fields/{field_key}", response_model=RecordUpdateResponse)
async def update_field(
    field_key: str,
    request: FieldUpdateRequest,
    step: Step = Depends(resolve_step),
    profile: UserProfile = Depends(get_current_profile),
    repo: ProgressRepository = Depends(get_progress_repository),
):
    if field_key in RESERVED_FIELDS:
        raise api_error(
            status.HTTP_400_BAD_REQUEST,
            ErrorCodes.RESERVED_FIELD,
            f"'{field_key}' is set by the unlock and export actions.",
        )
    await _require_unlocked(repo, profile, step)
    record = await shielded_write(repo.set_field(profile.id, step.number, field_key, request.value))
    return _record_response(step, record)


@router.post("/steps/{step_number}/lists/{key}", response_model=RecordUpdateResponse, status_code=status.HTTP_201_CREATED)
async def add_list_entry(
    key: str,
    step: Step = Depends(resolve_step),
    profile: UserProfile = Depends(get_current_profile),
    repo: ProgressRepository = Depends(get_progress_repository),
):
    item = _require_list_item(step, key)
    record = await _require_unlocked(repo, profile, step)
    current = entries.materialize_list_entries(item, (record.data if record else {}).get(key))
    updated = entries.add_list_entry(key, current)
    record = await shielded_write(repo.set_field(profile.id, step.number, key, updated))
    return _record_response(step, record)


@router.patch("/steps/{step_number}/lists/{key}/{index}", response_model=RecordUpdateResponse)
async def update_list_entry(
    key: str,
    index: int,
    request: ListEntryUpdateRequest,
    step: Step = Depends(resolve_step),
    profile: UserProfile = Depends(get_current_profile),
    repo: ProgressRepository = Depends(get_progress_repository),
):
    """Sets one field of the entry at the zero-based `index`."""
    item = _require_list_item(step, key)
    record = await _require_unlocked(repo, profile, step)
    current = entries.materialize_list_entries(item, (record.data if record else {}).get(key))
    try:
        updated = entries.update_list_entry(current, index, request.field, request.value, key=key)
    except EntryNotFoundError as e:
        raise api_error(status.HTTP_404_NOT_FOUND, ErrorCodes.ENTRY_NOT_FOUND, str(e))
    except ValueError as e:
        raise api_error(status.HTTP_400_BAD_REQUEST, ErrorCodes.INVALID_FIELD, str(e))
    record = await shielded_write(repo.set_field(profile.id, step.number, key, updated))
    return _record_response(step, record)


@router.delete("/steps/{step_number}/lists/{key}/{index}", response_model=RecordUpdateResponse)
async def delete_list_entry(
    key: str,
    index: int,
    step: Step = Depends(resolve_step),
    profile: UserProfile = Depends(get_current_profile),
    repo: ProgressRepository = Depends(get_progress_repository),
):
    item = _require_list_item(step, key)
    record = await _require_unlocked(repo, profile, step)
    current = entries.materialize_list_entries(item, (record.data if record else {}).get(key))
    try:
        updated = entries.remove_list_entry(current, index, key=key)
    except EntryRemovalError as e:
        raise api_error(status.HTTP_409_CONFLICT, ErrorCodes.LAST_ENTRY, str(e))
    except EntryNotFoundError as e:
        raise api_error(status.HTTP_404_NOT_FOUND, ErrorCodes.ENTRY_NOT_FOUND, str(e))
    record = await shielded_write(repo.set_field(profile.id, step.number, key, updated))
    return _record_response(step, record)


@router.post("/steps/{step_number}/resentments", response_model=RecordUpdateResponse, status_code=status.HTTP_201_CREATED)
async def add_resentment(
    step: Step = Depends(resolve_step),
    profile: UserProfile = Depends(get_current_profile),
    repo: ProgressRepository = Depends(get_progress_repository),
):
    _require_resentments(step)
    record = await _require_unlocked(repo, profile, step)
    current = entries.stored_resentments(record.data if record else {})
    updated = current + [entries.new_resentment_entry()]
    record = await shielded_write(repo.set_field(profile.id, step.number, RESENTMENTS_FIELD, updated))
    return _record_response(step, record)


@router.patch("/steps/{step_number}/resentments/{entry_id}", response_model=RecordUpdateResponse)
async def update_resentment(
    entry_id: str,
    request: ResentmentUpdateRequest,
    step: Step = Depends(resolve_step),
    profile: UserProfile = Depends(get_current_profile),
    repo: ProgressRepository = Depends(get_progress_repository),
):
    _require_resentments(step)
    record = await _require_unlocked(repo, profile, step)
    try:
        updated = entries.update_resentment(
            entries.stored_resentments(record.data if record else {}),
            entry_id,
            request.field,
            request.value,
        )
    except EntryNotFoundError as e:
        raise api_error(status.HTTP_404_NOT_FOUND, ErrorCodes.ENTRY_NOT_FOUND, str(e))
    except ValueError as e:
        raise api_error(status.HTTP_400_BAD_REQUEST, ErrorCodes.INVALID_FIELD, str(e))
    record = await shielded_write(repo.set_field(profile.id, step.number, RESENTMENTS_FIELD, updated))
    return _record_response(step, record)


@router.delete("/steps/{step_number}/resentments/{entry_id}", response_model=RecordUpdateResponse)
async def delete_resentment(
    entry_id: str,
    step: Step = Depends(resolve_step),
    profile: UserProfile = Depends(get_current_profile),
    repo: ProgressRepository = Depends(get_progress_repository),
):
    _require_resentments(step)
    record = await _require_unlocked(repo, profile, step)
    try:
        updated = entries.remove_resentment(entries.stored_resentments(record.data if record else {}), entry_id)
    except EntryRemovalError as e:
        raise api_error(status.HTTP_409_CONFLICT, ErrorCodes.LAST_ENTRY, str(e))
    except EntryNotFoundError as e:
        raise api_error(status.HTTP_404_NOT_FOUND, ErrorCodes.ENTRY_NOT_FOUND, str(e))
    record = await shielded_write(repo.set_field(profile.id, step.number, RESENTMENTS_FIELD, updated))
    return _record_response(step, record)


@router.put("/steps/{step_number}/assignment", response_model=RecordUpdateResponse)
async def set_assignment(
    request: AssignmentRequest,
    step: Step = Depends(resolve_step),
    profile: UserProfile = Depends(get_current_profile),
    repo: ProgressRepository = Depends(get_progress_repository),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    await _require_unlocked(repo, profile, step)
    assigned = request.assignment_date or clock()
    record = await shielded_write(repo.set_dates(profile.id, step.number, assigned=assigned))
    return _record_response(step, record)


@router.post("/steps/{step_number}/export")
async def export_step(
    step: Step = Depends(resolve_step),
    profile: UserProfile = Depends(get_current_profile),
    repo: ProgressRepository = Depends(get_progress_repository),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> Dict[str, Any]:
    """Returns the printable content tree and records that the step was exported."""
    record = await _require_unlocked(repo, profile, step)
    document = build_export_document(
        step,
        record.data if record else {},
        assignment_date=record.assignment_date if record else None,
        completion_date=record.completion_date if record else None,
        now=clock(),
    )
    record = await shielded_write(repo.set_field(profile.id, step.number, HAS_EXPORTED_FIELD, True))
    logger.info(f"User {profile.id} exported step {step.number}.")
    response = _record_response(step, record)
    return {"document": document, **response.model_dump(mode="json", by_alias=True)}


@router.post("/steps/{step_number}/complete", response_model=RecordUpdateResponse)
async def complete_step(
    step: Step = Depends(resolve_step),
    profile: UserProfile = Depends(get_current_profile),
    repo: ProgressRepository = Depends(get_progress_repository),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    record = await _require_unlocked(repo, profile, step)
    if record is not None and record.completion_date:
        return _record_response(step, record)

    result = evaluate_record(step, record)
    if not result.complete:
        raise api_error(
            status.HTTP_409_CONFLICT,
            ErrorCodes.STEP_INCOMPLETE,
            f"Step {step.number} still has {len(result.missing)} item(s) to finish.",
            missing=result.missing,
        )
    record = await shielded_write(repo.set_dates(profile.id, step.number, completed=clock()))
    logger.info(f"User {profile.id} completed step {step.number}.")
    return _record_response(step, record)
