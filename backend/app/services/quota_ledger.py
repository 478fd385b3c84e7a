"""
Daily generation quota ledger.

Each user may complete at most `limit` generations per UTC calendar day.
The count is derived from the generation_events table alone; there is no
separate counter that could drift from it.

Admission is atomic per (user, day): record_event first upserts the
matching quota_window_locks row, which holds a row lock until the
transaction ends, then counts and appends inside the same transaction.
Two instances recording for the same user therefore serialize at the
database, and the loser sees the winner's event when it counts.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.base import utc_now
from app.models.generation_event import GenerationEvent, GenerationKind
from app.models.quota_window_lock import QuotaWindowLock

logger = logging.getLogger(__name__)

# Dialects with an INSERT ... ON CONFLICT DO UPDATE construct
_UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class QuotaError(Exception):
    """Base class for quota ledger failures."""


class QuotaUnavailable(QuotaError):
    """The window count could not be determined. Callers must deny the request."""


class QuotaRecordFailed(QuotaError):
    """A generation event could not be appended."""


class QuotaExceeded(QuotaError):
    """The user's window is full. An expected outcome, reported as HTTP 429."""

    def __init__(self, decision: "QuotaDecision"):
        super().__init__(
            f"Daily generation limit reached ({decision.current_count}/{decision.limit})"
        )
        self.decision = decision


class QuotaCeilingReached(QuotaExceeded):
    """record_event lost the admission race: appending would exceed the limit."""


@dataclass(frozen=True)
class QuotaDecision:
    """Result of counting a user's current quota window."""
    allowed: bool
    current_count: int
    limit: int
    remaining: int
    window_date: date

    @classmethod
    def from_count(cls, count: int, limit: int, window_date: date) -> "QuotaDecision":
        return cls(
            allowed=count < limit,
            current_count=count,
            limit=limit,
            remaining=max(limit - count, 0),
            window_date=window_date,
        )


def window_bounds(moment: datetime) -> Tuple[datetime, datetime]:
    """
    Return the [start, end) bounds of the UTC day containing `moment`.

    Args:
        moment: Naive UTC or timezone-aware datetime

    Returns:
        Tuple of naive UTC datetimes (midnight, next midnight)
    """
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    start = datetime(moment.year, moment.month, moment.day)
    return start, start + timedelta(days=1)


class QuotaLedger:
    """Counts and records generation events against the daily limit."""

    def __init__(
        self,
        db: AsyncSession,
        limit: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            db: Database session
            limit: Daily limit (default: settings.daily_generation_limit)
            clock: Returns the current time; naive values are taken as UTC
        """
        if limit is None:
            limit = settings.daily_generation_limit
        if limit < 0:
            raise ValueError("Daily generation limit cannot be negative")
        self.db = db
        self.limit = limit
        self._clock = clock or utc_now

    def _now(self) -> datetime:
        now = self._clock()
        if now.tzinfo is not None:
            now = now.astimezone(timezone.utc).replace(tzinfo=None)
        return now

    async def check_quota(self, user_id: str) -> QuotaDecision:
        """
        Count today's events for the user and decide whether another
        generation may start.

        Args:
            user_id: Resolved user ID (never a raw token)

        Returns:
            QuotaDecision for the current UTC day

        Raises:
            ValueError: If user_id is empty
            QuotaUnavailable: If the count query fails
        """
        if not user_id:
            raise ValueError("user_id is required")

        start, end = window_bounds(self._now())
        try:
            count = await self._count_window(user_id, start, end)
            # End the read transaction so no snapshot is held during the upstream call
            await self.db.commit()
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Quota count failed for user {user_id}: {e}")
            raise QuotaUnavailable(f"Could not determine generation count: {e}") from e

        return QuotaDecision.from_count(count, self.limit, start.date())

    async def record_event(
        self,
        user_id: str,
        kind: GenerationKind,
        prompt: str,
        result_ref: str,
        input_image_count: int = 0,
        input_refs: Optional[List[str]] = None,
    ) -> GenerationEvent:
        """
        Append one generation event, refusing it if the window is full.

        Must be called at most once per generation that produced an image.

        Args:
            user_id: Resolved user ID
            kind: Generation kind
            prompt: Prompt text (may be empty, not None)
            result_ref: Opaque reference to the generated artifact
            input_image_count: Number of source images sent upstream
            input_refs: Opaque references to the stored source images

        Returns:
            The persisted GenerationEvent

        Raises:
            ValueError: On invalid arguments
            QuotaCeilingReached: If the window already holds `limit` events
            QuotaRecordFailed: If the append fails
        """
        if not user_id:
            raise ValueError("user_id is required")
        if prompt is None:
            raise ValueError("prompt cannot be None")
        if result_ref is None:
            raise ValueError("result_ref cannot be None")
        kind = GenerationKind(kind)

        now = self._now()
        start, end = window_bounds(now)

        try:
            await self._lock_window(user_id, start.date(), now)
            count = await self._count_window(user_id, start, end)

            if count >= self.limit:
                # Releases the window lock; nothing else was written
                await self.db.commit()
                raise QuotaCeilingReached(
                    QuotaDecision.from_count(count, self.limit, start.date())
                )

            event = GenerationEvent(
                user_id=user_id,
                kind=kind,
                prompt=prompt,
                result_ref=result_ref,
                input_image_count=input_image_count,
                input_refs=list(input_refs or []),
                occurred_at=now,
            )
            self.db.add(event)
            await self.db.commit()
        except (SQLAlchemyError, OSError) as e:
            await self._rollback_quietly()
            raise QuotaRecordFailed(f"Could not record generation event: {e}") from e

        logger.debug(f"Recorded {kind.value} event for user {user_id} ({count + 1}/{self.limit})")
        return event

    async def _count_window(self, user_id: str, start: datetime, end: datetime) -> int:
        # Hidden events still count: removing history never refunds quota
        result = await self.db.execute(
            select(func.count())
            .select_from(GenerationEvent)
            .where(GenerationEvent.user_id == user_id)
            .where(GenerationEvent.occurred_at >= start)
            .where(GenerationEvent.occurred_at < end)
        )
        return result.scalar_one()

    async def _lock_window(self, user_id: str, window_date: date, now: datetime) -> None:
        dialect = self.db.get_bind().dialect.name
        insert = _UPSERT_INSERTS.get(dialect)
        if insert is None:
            raise QuotaRecordFailed(f"Atomic admission is not supported on dialect '{dialect}'")

        stmt = insert(QuotaWindowLock).values(
            user_id=user_id,
            window_date=window_date,
            touched_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[QuotaWindowLock.user_id, QuotaWindowLock.window_date],
            set_={"touched_at": stmt.excluded.touched_at},
        )
        await self.db.execute(stmt)

    async def _rollback_quietly(self) -> None:
        try:
            await self.db.rollback()
        except SQLAlchemyError as e:
            logger.warning(f"Rollback after failed quota record also failed: {e}")
