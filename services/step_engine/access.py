import logging
from enum import Enum
from typing import Any, Mapping, Optional

from .aggregator import STATUS_COMPLETED, STATUS_CURRENT, step_status
from .definitions import STEP_PASSWORDS
from .evaluator import CompletionResult
from .models import ProgressRecord

logger = logging.getLogger(__name__)

STEP_UNLOCKED_FIELD = "stepUnlocked"
DEFAULT_ELEVATION_PHRASE = "freelygiven"
DEFAULT_HINT_AFTER_ATTEMPTS = 3


class Role(str, Enum):
    SPONSOR = "sponsor"
    SPONSEE = "sponsee"


class StageState(str, Enum):
    LOCKED = "locked"
    UNLOCKED_INCOMPLETE = "unlocked_incomplete"
    COMPLETABLE = "completable"
    COMPLETED = "completed"


def _normalise(candidate: Any) -> str:
    return candidate.strip().lower() if isinstance(candidate, str) else ""


def check_stage_password(stage_number: int, candidate: Any) -> bool:
    """Case-insensitive, trimmed match against the step's password."""
    password = STEP_PASSWORDS.get(stage_number)
    if not password:
        return False
    return _normalise(candidate) == password.lower()


def get_hint(stage_number: int) -> str:
    password = STEP_PASSWORDS.get(stage_number)
    if not password:
        return ""
    return f'Starts with "{password[0].upper()}"'


def should_show_hint(failed_attempts: int, threshold: int = DEFAULT_HINT_AFTER_ATTEMPTS) -> bool:
    return failed_attempts >= threshold


def check_elevation_phrase(candidate: Any, phrase: str = DEFAULT_ELEVATION_PHRASE) -> bool:
    expected = _normalise(phrase)
    return bool(expected) and _normalise(candidate) == expected


def is_sponsor(role: Any) -> bool:
    return role == Role.SPONSOR or role == Role.SPONSOR.value


def is_unlocked(field_data: Optional[Mapping[str, Any]]) -> bool:
    return isinstance(field_data, Mapping) and field_data.get(STEP_UNLOCKED_FIELD) is True


def requires_password(role: Any, field_data: Optional[Mapping[str, Any]]) -> bool:
    """Sponsees see the password gate until the step has been unlocked once."""
    return not is_sponsor(role) and not is_unlocked(field_data)


def is_accessible(stage_number: int, role: Any, records) -> bool:
    """Whether the step can be opened from the dashboard."""
    if is_sponsor(role):
        return True
    return step_status(records, stage_number) in (STATUS_COMPLETED, STATUS_CURRENT)


def stage_state(role: Any, record: Optional[ProgressRecord], evaluation: CompletionResult) -> StageState:
    """
    Position of a step in LOCKED -> UNLOCKED_INCOMPLETE -> COMPLETABLE -> COMPLETED.
    Sponsors skip LOCKED. A completion date is terminal even if answers are edited later.
    """
    if record is not None and record.completion_date:
        return StageState.COMPLETED
    data = record.data if record else {}
    if requires_password(role, data):
        return StageState.LOCKED
    if evaluation.complete:
        return StageState.COMPLETABLE
    return StageState.UNLOCKED_INCOMPLETE


class AccessGate:
    """
    Single point of enforcement for step passwords and role elevation.

    Every surface that lets a user become a sponsor goes through elevate_role.
    """
    def __init__(
        self,
        elevation_phrase: str = DEFAULT_ELEVATION_PHRASE,
        hint_after_attempts: int = DEFAULT_HINT_AFTER_ATTEMPTS,
    ):
        self.elevation_phrase = elevation_phrase
        self.hint_after_attempts = hint_after_attempts

    def verify(self, stage_number: int, candidate: Any) -> bool:
        return check_stage_password(stage_number, candidate)

    def hint_for(self, stage_number: int, failed_attempts: int) -> Optional[str]:
        if should_show_hint(failed_attempts, self.hint_after_attempts):
            return get_hint(stage_number) or None
        return None

    async def elevate_role(self, identity, user_id: str, phrase: Any) -> bool:
        """
        Promotes a sponsee to sponsor when the shared phrase matches.

        Args:
            identity: Identity provider exposing async role()/set_role().
            user_id: The user to promote.
            phrase: Phrase the user entered.

        Returns:
            True if the user is a sponsor afterwards, False on a wrong phrase.
        """
        if not check_elevation_phrase(candidate=phrase, phrase=self.elevation_phrase):
            logger.info(f"Role elevation rejected for user {user_id}: phrase mismatch.")
            return False
        current = await identity.role(user_id)
        if is_sponsor(current):
            logger.debug(f"User {user_id} is already a sponsor.")
            return True
        await identity.set_role(user_id, Role.SPONSOR)
        logger.info(f"User {user_id} elevated to sponsor.")
        return True
