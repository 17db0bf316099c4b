import pytest

from services.step_engine.access import (
    AccessGate,
    Role,
    StageState,
    check_elevation_phrase,
    check_stage_password,
    get_hint,
    is_accessible,
    requires_password,
    should_show_hint,
    stage_state,
)
from services.step_engine.evaluator import CompletionResult
from workbook.services.identity import InMemoryIdentityProvider, UserProfile

INCOMPLETE = CompletionResult(complete=False, missing=["x"])
COMPLETE = CompletionResult(complete=True)


@pytest.mark.parametrize("candidate", ["courage", "  Courage ", "COURAGE"])
def test_stage_password_ignores_case_and_whitespace(candidate):
    assert check_stage_password(4, candidate)


@pytest.mark.parametrize("step_number, candidate", [(4, "courag"), (4, ""), (4, None), (99, "courage")])
def test_stage_password_rejects(step_number, candidate):
    assert not check_stage_password(step_number, candidate)


def test_hint_is_first_letter_uppercased():
    assert get_hint(4) == 'Starts with "C"'
    assert get_hint(1) == 'Starts with "H"'
    assert get_hint(13) == ""


def test_hint_threshold():
    assert not should_show_hint(2)
    assert should_show_hint(3)
    assert should_show_hint(1, threshold=1)


def test_elevation_phrase():
    assert check_elevation_phrase(" FreelyGiven ")
    assert not check_elevation_phrase("freely given")
    assert not check_elevation_phrase("", phrase="")


def test_sponsor_never_needs_password():
    assert not requires_password(Role.SPONSOR, {})
    assert not requires_password("sponsor", None)
    assert requires_password(Role.SPONSEE, {})
    assert requires_password(Role.SPONSEE, {"stepUnlocked": "true"})
    assert not requires_password(Role.SPONSEE, {"stepUnlocked": True})


def test_is_accessible(make_record, now):
    records = [make_record(1, assigned=now, completed=now), make_record(2, assigned=now)]
    assert is_accessible(1, Role.SPONSEE, records)
    assert is_accessible(2, Role.SPONSEE, records)
    assert not is_accessible(7, Role.SPONSEE, records)
    assert is_accessible(7, Role.SPONSOR, records)


def test_stage_state_transitions(make_record, now):
    locked = make_record(4)
    unlocked = make_record(4, data={"stepUnlocked": True})
    done = make_record(4, completed=now)
    assert stage_state(Role.SPONSEE, None, INCOMPLETE) == StageState.LOCKED
    assert stage_state(Role.SPONSEE, locked, INCOMPLETE) == StageState.LOCKED
    assert stage_state(Role.SPONSOR, locked, INCOMPLETE) == StageState.UNLOCKED_INCOMPLETE
    assert stage_state(Role.SPONSEE, unlocked, INCOMPLETE) == StageState.UNLOCKED_INCOMPLETE
    assert stage_state(Role.SPONSEE, unlocked, COMPLETE) == StageState.COMPLETABLE
    assert stage_state(Role.SPONSEE, done, INCOMPLETE) == StageState.COMPLETED


def test_gate_hint_only_after_threshold():
    gate = AccessGate(hint_after_attempts=2)
    assert gate.hint_for(4, 1) is None
    assert gate.hint_for(4, 2) == 'Starts with "C"'
    assert gate.hint_for(42, 5) is None


@pytest.mark.asyncio
async def test_elevate_role_with_correct_phrase():
    identity = InMemoryIdentityProvider()
    gate = AccessGate(elevation_phrase="opensesame")
    assert await gate.elevate_role(identity, "u1", "OpenSesame")
    assert await identity.role("u1") == Role.SPONSOR


@pytest.mark.asyncio
async def test_elevate_role_rejects_wrong_phrase():
    identity = InMemoryIdentityProvider({"u1": UserProfile(id="u1")})
    gate = AccessGate()
    assert not await gate.elevate_role(identity, "u1", "nope")
    assert await identity.role("u1") == Role.SPONSEE


@pytest.mark.asyncio
async def test_elevate_role_is_idempotent_for_sponsors():
    identity = InMemoryIdentityProvider({"u1": UserProfile(id="u1", role=Role.SPONSOR)})
    assert await AccessGate().elevate_role(identity, "u1", "freelygiven")
    assert await identity.role("u1") == Role.SPONSOR
