"""
Tests for the daily generation quota ledger.
"""
import asyncio
from datetime import date, datetime, timezone, timedelta

import pytest
from sqlalchemy import select, func

from app.models.generation_event import GenerationEvent, GenerationKind
from app.models.quota_window_lock import QuotaWindowLock
from app.models.user import User
from app.services.history_service import HistoryService
from app.services.quota_ledger import (
    QuotaLedger,
    QuotaDecision,
    QuotaExceeded,
    QuotaCeilingReached,
    QuotaRecordFailed,
    QuotaUnavailable,
    window_bounds,
)

LIMIT = 3
NOON = datetime(2025, 3, 14, 12, 0, 0)


def clock_at(moment: datetime):
    return lambda: moment


async def record(ledger: QuotaLedger, user_id: str, prompt: str = "a red fox") -> GenerationEvent:
    return await ledger.record_event(
        user_id,
        GenerationKind.TEXT_TO_IMAGE,
        prompt,
        "data:image/png;base64,AAAA",
    )


class TestWindowBounds:
    """Tests for UTC day window computation."""

    def test_naive_moment(self):
        start, end = window_bounds(datetime(2025, 3, 14, 23, 59, 59, 999000))
        assert start == datetime(2025, 3, 14)
        assert end == datetime(2025, 3, 15)

    def test_aware_moment_is_converted_to_utc(self):
        # 01:30 in UTC+3 is 22:30 the previous day in UTC
        moment = datetime(2025, 3, 15, 1, 30, tzinfo=timezone(timedelta(hours=3)))
        start, end = window_bounds(moment)
        assert start == datetime(2025, 3, 14)
        assert end == datetime(2025, 3, 15)


class TestQuotaDecision:
    """Tests for QuotaDecision arithmetic."""

    def test_remaining_never_negative(self):
        decision = QuotaDecision.from_count(5, 3, date(2025, 3, 14))
        assert decision.allowed is False
        assert decision.remaining == 0

    def test_allowed_below_limit(self):
        decision = QuotaDecision.from_count(2, 3, date(2025, 3, 14))
        assert decision.allowed is True
        assert decision.remaining == 1


class TestCheckQuota:
    """Tests for QuotaLedger.check_quota."""

    @pytest.mark.asyncio
    async def test_empty_window_allows(self, db_session, test_user: User):
        """A user with no events today may generate."""
        ledger = QuotaLedger(db_session, limit=LIMIT, clock=clock_at(NOON))
        decision = await ledger.check_quota(test_user.id)

        assert decision.allowed is True
        assert decision.current_count == 0
        assert decision.limit == LIMIT
        assert decision.remaining == LIMIT
        assert decision.window_date == date(2025, 3, 14)

    @pytest.mark.asyncio
    async def test_limit_reached_denies(self, db_session, test_user: User):
        """After `limit` recorded events the next check is denied."""
        ledger = QuotaLedger(db_session, limit=LIMIT, clock=clock_at(NOON))

        for i in range(LIMIT):
            decision = await ledger.check_quota(test_user.id)
            assert decision.allowed is True
            assert decision.current_count == i
            await record(ledger, test_user.id)

        decision = await ledger.check_quota(test_user.id)
        assert decision.allowed is False
        assert decision.current_count == LIMIT
        assert decision.remaining == 0

    @pytest.mark.asyncio
    async def test_zero_limit_denies_everything(self, db_session, test_user: User):
        ledger = QuotaLedger(db_session, limit=0, clock=clock_at(NOON))
        decision = await ledger.check_quota(test_user.id)

        assert decision.allowed is False
        assert decision.remaining == 0

    @pytest.mark.asyncio
    async def test_check_has_no_side_effects(self, db_session, test_user: User):
        """Checking repeatedly never consumes quota."""
        ledger = QuotaLedger(db_session, limit=LIMIT, clock=clock_at(NOON))
        for _ in range(5):
            await ledger.check_quota(test_user.id)

        decision = await ledger.check_quota(test_user.id)
        assert decision.current_count == 0

    @pytest.mark.asyncio
    async def test_users_are_counted_separately(self, db_session, test_user: User, other_user: User):
        ledger = QuotaLedger(db_session, limit=LIMIT, clock=clock_at(NOON))
        await record(ledger, test_user.id)
        await record(ledger, test_user.id)

        assert (await ledger.check_quota(test_user.id)).current_count == 2
        assert (await ledger.check_quota(other_user.id)).current_count == 0

    @pytest.mark.asyncio
    async def test_store_unreachable_raises_unavailable(self, failing_db):
        """A failed count is reported, never treated as zero."""
        ledger = QuotaLedger(failing_db, limit=LIMIT)

        with pytest.raises(QuotaUnavailable):
            await ledger.check_quota("user-1")

    @pytest.mark.asyncio
    async def test_empty_user_id_rejected(self, db_session):
        ledger = QuotaLedger(db_session, limit=LIMIT)
        with pytest.raises(ValueError):
            await ledger.check_quota("")

    def test_negative_limit_rejected(self):
        with pytest.raises(ValueError):
            QuotaLedger(None, limit=-1)


class TestDayBoundary:
    """The window resets at UTC midnight."""

    @pytest.mark.asyncio
    async def test_event_before_midnight_not_counted_next_day(self, db_session, test_user: User):
        last_moment = datetime(2025, 3, 14, 23, 59, 59, 999000)
        midnight = datetime(2025, 3, 15, 0, 0, 0)

        before = QuotaLedger(db_session, limit=1, clock=clock_at(last_moment))
        await record(before, test_user.id)
        assert (await before.check_quota(test_user.id)).allowed is False

        after = QuotaLedger(db_session, limit=1, clock=clock_at(midnight))
        decision = await after.check_quota(test_user.id)
        assert decision.allowed is True
        assert decision.current_count == 0
        assert decision.window_date == date(2025, 3, 15)

    @pytest.mark.asyncio
    async def test_event_at_midnight_belongs_to_new_day(self, db_session, test_user: User):
        midnight = datetime(2025, 3, 15, 0, 0, 0)
        ledger = QuotaLedger(db_session, limit=LIMIT, clock=clock_at(midnight))
        await record(ledger, test_user.id)

        previous_day = QuotaLedger(db_session, limit=LIMIT, clock=clock_at(datetime(2025, 3, 14, 23, 0)))
        assert (await previous_day.check_quota(test_user.id)).current_count == 0
        assert (await ledger.check_quota(test_user.id)).current_count == 1


class TestRecordEvent:
    """Tests for QuotaLedger.record_event."""

    @pytest.mark.asyncio
    async def test_record_persists_event(self, db_session, test_user: User):
        ledger = QuotaLedger(db_session, limit=LIMIT, clock=clock_at(NOON))
        event = await ledger.record_event(
            test_user.id,
            GenerationKind.MULTI_IMAGE_EDIT,
            "combine these",
            "data:image/png;base64,AAAA",
            input_image_count=2,
        )

        assert event.id is not None
        assert event.user_id == test_user.id
        assert event.kind == GenerationKind.MULTI_IMAGE_EDIT
        assert event.input_image_count == 2
        assert event.occurred_at == NOON
        assert event.hidden_at is None

    @pytest.mark.asyncio
    async def test_record_accepts_kind_value(self, db_session, test_user: User):
        ledger = QuotaLedger(db_session, limit=LIMIT, clock=clock_at(NOON))
        event = await ledger.record_event(test_user.id, "image_edit", "", "data:image/png;base64,AAAA")
        assert event.kind == GenerationKind.IMAGE_EDIT
        assert event.prompt == ""

    @pytest.mark.asyncio
    async def test_record_beyond_limit_refused(self, db_session, test_user: User):
        """The ceiling is enforced at write time, not only at check time."""
        ledger = QuotaLedger(db_session, limit=LIMIT, clock=clock_at(NOON))
        for _ in range(LIMIT):
            await record(ledger, test_user.id)

        with pytest.raises(QuotaCeilingReached) as exc_info:
            await record(ledger, test_user.id)

        assert isinstance(exc_info.value, QuotaExceeded)
        assert exc_info.value.decision.current_count == LIMIT
        assert (await ledger.check_quota(test_user.id)).current_count == LIMIT

    @pytest.mark.asyncio
    async def test_record_takes_window_lock_row(self, db_session, test_user: User):
        ledger = QuotaLedger(db_session, limit=LIMIT, clock=clock_at(NOON))
        await record(ledger, test_user.id)
        await record(ledger, test_user.id)

        result = await db_session.execute(
            select(QuotaWindowLock).where(QuotaWindowLock.user_id == test_user.id)
        )
        locks = result.scalars().all()
        assert len(locks) == 1
        assert locks[0].window_date == date(2025, 3, 14)

    @pytest.mark.asyncio
    async def test_invalid_arguments_rejected(self, db_session, test_user: User):
        ledger = QuotaLedger(db_session, limit=LIMIT, clock=clock_at(NOON))

        with pytest.raises(ValueError):
            await ledger.record_event("", GenerationKind.TEXT_TO_IMAGE, "p", "ref")
        with pytest.raises(ValueError):
            await ledger.record_event(test_user.id, GenerationKind.TEXT_TO_IMAGE, None, "ref")
        with pytest.raises(ValueError):
            await ledger.record_event(test_user.id, "video", "p", "ref")

        assert (await ledger.check_quota(test_user.id)).current_count == 0

    @pytest.mark.asyncio
    async def test_store_failure_raises_record_failed(self, failing_db):
        ledger = QuotaLedger(failing_db, limit=LIMIT)

        with pytest.raises(QuotaRecordFailed):
            await record(ledger, "user-1")

        failing_db.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_hidden_events_still_count(self, db_session, test_user: User, inline_artifacts):
        """Clearing history does not give quota back."""
        ledger = QuotaLedger(db_session, limit=LIMIT, clock=clock_at(NOON))
        await record(ledger, test_user.id)
        await record(ledger, test_user.id)

        hidden = await HistoryService.hide_all(db_session, test_user.id, inline_artifacts)
        assert hidden == 2

        assert (await ledger.check_quota(test_user.id)).current_count == 2


class TestConcurrentAdmission:
    """Concurrent recorders for one user never exceed the limit."""

    @pytest.mark.asyncio
    async def test_race_for_last_slot(self, session_maker, test_user: User):
        user_id = test_user.id

        async def attempt() -> bool:
            async with session_maker() as session:
                ledger = QuotaLedger(session, limit=1, clock=clock_at(NOON))
                try:
                    await record(ledger, user_id)
                    return True
                except QuotaCeilingReached:
                    return False

        results = await asyncio.gather(attempt(), attempt(), attempt())
        assert results.count(True) == 1

        async with session_maker() as session:
            count = (await session.execute(
                select(func.count()).select_from(GenerationEvent).where(GenerationEvent.user_id == user_id)
            )).scalar_one()
        assert count == 1

    @pytest.mark.asyncio
    async def test_parallel_records_fill_exactly_to_limit(self, session_maker, test_user: User):
        user_id = test_user.id

        async def attempt() -> bool:
            async with session_maker() as session:
                ledger = QuotaLedger(session, limit=LIMIT, clock=clock_at(NOON))
                try:
                    await record(ledger, user_id)
                    return True
                except QuotaCeilingReached:
                    return False

        results = await asyncio.gather(*(attempt() for _ in range(LIMIT + 2)))
        assert results.count(True) == LIMIT

        async with session_maker() as session:
            decision = await QuotaLedger(session, limit=LIMIT, clock=clock_at(NOON)).check_quota(user_id)
        assert decision.current_count == LIMIT
        assert decision.allowed is False
