"""Persistence port for per-step progress records, with in-memory and SQL adapters.

Writes merge keys into the record's field data and never touch other keys.
After every acknowledged write, subscribers of that user receive the full,
step-ordered record list.
"""
import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from services.step_engine.models import MAX_STEP, MIN_STEP, ProgressRecord
from workbook.db.models import StepProgress
from workbook.db.session import session_scope

logger = logging.getLogger(__name__)

Subscriber = Callable[[List[ProgressRecord]], Union[None, Awaitable[None]]]


class ProgressStoreError(Exception):
    """Raised when the backing store cannot complete a read or write."""
    pass


class InvalidStepError(ValueError):
    """Raised for step numbers outside 1..12, before anything is written."""
    def __init__(self, step_number: Any):
        self.step_number = step_number
        super().__init__(f"Invalid step number: {step_number!r}")


def _check_step(step_number: Any) -> int:
    if isinstance(step_number, bool) or not isinstance(step_number, int) or not MIN_STEP <= step_number <= MAX_STEP:
        raise InvalidStepError(step_number)
    return step_number


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProgressRepository(ABC):
    """Async port every progress backend implements."""

    def __init__(self):
        self._subscribers: Dict[str, List[Subscriber]] = defaultdict(list)

    @abstractmethod
    async def get(self, user_id: str, step_number: int) -> Optional[ProgressRecord]:
        pass

    @abstractmethod
    async def list_all(self, user_id: str) -> List[ProgressRecord]:
        """All of the user's records ordered by step number."""
        pass

    @abstractmethod
    async def _merge_fields(self, user_id: str, step_number: int, updates: Mapping[str, Any]) -> ProgressRecord:
        pass

    @abstractmethod
    async def _write_dates(
        self,
        user_id: str,
        step_number: int,
        assigned: Optional[datetime],
        completed: Optional[datetime],
    ) -> ProgressRecord:
        pass

    async def set_fields(self, user_id: str, step_number: int, updates: Mapping[str, Any]) -> ProgressRecord:
        """
        Merges several keys into the step's field data in one write, creating
        the record if needed.
        """
        _check_step(step_number)
        record = await self._merge_fields(user_id, step_number, dict(updates))
        logger.debug(f"Saved fields {sorted(updates)} for user {user_id} step {step_number}.")
        await self._notify(user_id)
        return record

    async def set_field(self, user_id: str, step_number: int, key: str, value: Any) -> ProgressRecord:
        return await self.set_fields(user_id, step_number, {key: value})

    async def set_dates(
        self,
        user_id: str,
        step_number: int,
        assigned: Optional[datetime] = None,
        completed: Optional[datetime] = None,
    ) -> ProgressRecord:
        """Sets whichever of the two dates is given; the other is left as is."""
        _check_step(step_number)
        record = await self._write_dates(user_id, step_number, assigned, completed)
        logger.info(
            f"Updated dates for user {user_id} step {step_number} "
            f"(assigned={'set' if assigned else 'unchanged'}, completed={'set' if completed else 'unchanged'})."
        )
        await self._notify(user_id)
        return record

    def subscribe_all(self, user_id: str, callback: Subscriber) -> Callable[[], None]:
        """
        Registers a callback for the user's record list. Returns an
        unsubscribe function; calling it twice is harmless.
        """
        self._subscribers[user_id].append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(user_id, [])
            if callback in callbacks:
                callbacks.remove(callback)
            if not callbacks:
                self._subscribers.pop(user_id, None)

        return unsubscribe

    async def _notify(self, user_id: str) -> None:
        callbacks = list(self._subscribers.get(user_id, []))
        if not callbacks:
            return
        try:
            records = await self.list_all(user_id)
        except ProgressStoreError as e:
            # subscribers catch up on the next write
            logger.error(f"Could not reload progress for subscribers of user {user_id}: {e}")
            return
        for callback in callbacks:
            try:
                result = callback(list(records))
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                # the write is already acknowledged; one bad subscriber must not fail it
                logger.error(f"Progress subscriber for user {user_id} failed: {e}", exc_info=True)


class InMemoryProgressRepository(ProgressRepository):
    """Dict-backed store for development, demos and tests."""

    def __init__(self, seed: Optional[Iterable[ProgressRecord]] = None):
        super().__init__()
        self._records: Dict[Tuple[str, int], ProgressRecord] = {}
        self._lock = asyncio.Lock()
        for record in seed or []:
            self._records[(record.user_id, record.step_number)] = record

    def _blank(self, user_id: str, step_number: int) -> ProgressRecord:
        return ProgressRecord(
            id=ProgressRecord.make_id(user_id, step_number),
            user_id=user_id,
            step_number=step_number,
        )

    async def get(self, user_id: str, step_number: int) -> Optional[ProgressRecord]:
        _check_step(step_number)
        return self._records.get((user_id, step_number))

    async def list_all(self, user_id: str) -> List[ProgressRecord]:
        records = [r for (uid, _), r in self._records.items() if uid == user_id]
        return sorted(records, key=lambda r: r.step_number)

    async def _merge_fields(self, user_id, step_number, updates):
        async with self._lock:
            current = self._records.get((user_id, step_number)) or self._blank(user_id, step_number)
            record = current.model_copy(update={"data": {**current.data, **updates}, "last_updated": _utcnow()})
            self._records[(user_id, step_number)] = record
            return record

    async def _write_dates(self, user_id, step_number, assigned, completed):
        async with self._lock:
            current = self._records.get((user_id, step_number)) or self._blank(user_id, step_number)
            changes: Dict[str, Any] = {"last_updated": _utcnow()}
            if assigned is not None:
                changes["assignment_date"] = assigned
            if completed is not None:
                changes["completion_date"] = completed
            # model_copy skips validation, so rebuild to normalise timestamps
            record = ProgressRecord.model_validate({**current.model_dump(), **changes})
            self._records[(user_id, step_number)] = record
            return record


_retry_transient = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type((OperationalError, IntegrityError)),
    reraise=True,
)


def _to_record(row: StepProgress) -> ProgressRecord:
    return ProgressRecord(
        id=row.id,
        user_id=row.user_id,
        step_number=row.step_number,
        part_number=row.part_number,
        assignment_date=row.assignment_date,
        completion_date=row.completion_date,
        data=row.data,
        last_updated=row.last_updated,
    )


class SqlProgressRepository(ProgressRepository):
    """
    SQLAlchemy-backed store. Transient errors (lost connection, a concurrent
    first write to the same record) are retried; anything left is raised as
    ProgressStoreError.
    """

    def __init__(self, session_factory: async_sessionmaker):
        super().__init__()
        self._session_factory = session_factory

    async def _row(self, session, user_id: str, step_number: int) -> Optional[StepProgress]:
        result = await session.execute(
            select(StepProgress).where(
                StepProgress.user_id == user_id,
                StepProgress.step_number == step_number,
            )
        )
        return result.scalar_one_or_none()

    def _new_row(self, user_id: str, step_number: int) -> StepProgress:
        return StepProgress(
            id=ProgressRecord.make_id(user_id, step_number),
            user_id=user_id,
            step_number=step_number,
            data={},
            last_updated=_utcnow(),
        )

    async def get(self, user_id: str, step_number: int) -> Optional[ProgressRecord]:
        _check_step(step_number)
        try:
            return await self._get(user_id, step_number)
        except SQLAlchemyError as e:
            logger.error(f"Failed to read progress for user {user_id} step {step_number}: {e}")
            raise ProgressStoreError(str(e)) from e

    @_retry_transient
    async def _get(self, user_id: str, step_number: int) -> Optional[ProgressRecord]:
        async with session_scope(self._session_factory) as session:
            row = await self._row(session, user_id, step_number)
            return _to_record(row) if row else None

    async def list_all(self, user_id: str) -> List[ProgressRecord]:
        try:
            return await self._list_all(user_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to list progress for user {user_id}: {e}")
            raise ProgressStoreError(str(e)) from e

    @_retry_transient
    async def _list_all(self, user_id: str) -> List[ProgressRecord]:
        async with session_scope(self._session_factory) as session:
            result = await session.execute(
                select(StepProgress).where(StepProgress.user_id == user_id).order_by(StepProgress.step_number)
            )
            return [_to_record(row) for row in result.scalars().all()]

    async def _merge_fields(self, user_id, step_number, updates):
        try:
            return await self._merge_fields_once(user_id, step_number, updates)
        except SQLAlchemyError as e:
            logger.error(f"Failed to save fields for user {user_id} step {step_number}: {e}")
            raise ProgressStoreError(str(e)) from e

    @_retry_transient
    async def _merge_fields_once(self, user_id, step_number, updates):
        async with session_scope(self._session_factory) as session:
            row = await self._row(session, user_id, step_number)
            if row is None:
                row = self._new_row(user_id, step_number)
                session.add(row)
            # assign a new dict so the JSON column is flagged as changed
            row.data = {**(row.data or {}), **updates}
            row.last_updated = _utcnow()
            await session.flush()
            return _to_record(row)

    async def _write_dates(self, user_id, step_number, assigned, completed):
        try:
            return await self._write_dates_once(user_id, step_number, assigned, completed)
        except SQLAlchemyError as e:
            logger.error(f"Failed to save dates for user {user_id} step {step_number}: {e}")
            raise ProgressStoreError(str(e)) from e

    @_retry_transient
    async def _write_dates_once(self, user_id, step_number, assigned, completed):
        async with session_scope(self._session_factory) as session:
            row = await self._row(session, user_id, step_number)
            if row is None:
                row = self._new_row(user_id, step_number)
                session.add(row)
            if assigned is not None:
                row.assignment_date = assigned
            if completed is not None:
                row.completion_date = completed
            row.last_updated = _utcnow()
            await session.flush()
            return _to_record(row)
