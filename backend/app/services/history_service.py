"""
History service for listing and hiding a user's generations.

Hiding sets hidden_at and drops the stored images; the event row stays so
the daily quota count is unaffected.
"""
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.base import utc_now
from app.models.generation_event import GenerationEvent, GenerationKind
from app.models.user import User
from app.storage.artifacts import ArtifactStore

MAX_PAGE_SIZE = 100


def _page_bounds(page: int, limit: int) -> Tuple[int, int]:
    page_size = max(1, min(limit, MAX_PAGE_SIZE))
    offset = (max(page, 1) - 1) * page_size
    return page_size, offset


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _apply_filters(query, kind: Optional[GenerationKind], search: Optional[str]):
    if kind is not None:
        query = query.where(GenerationEvent.kind == kind)
    if search:
        # Match % and _ literally
        query = query.where(GenerationEvent.prompt.ilike(f"%{_escape_like(search)}%", escape="\\"))
    return query


class HistoryService:
    """Service for generation history business logic."""

    @staticmethod
    async def list_events(
        db: AsyncSession,
        user_id: str,
        page: int = 1,
        limit: int = 20,
        kind: Optional[GenerationKind] = None,
        search: Optional[str] = None,
    ) -> Tuple[List[GenerationEvent], int, int]:
        """
        List the user's visible events, newest first.

        Args:
            db: Database session
            user_id: Owner of the history
            page: 1-based page number
            limit: Page size (capped at 100)
            kind: Optional kind filter
            search: Optional case-insensitive prompt substring

        Returns:
            Tuple of (events, total matching, effective page size)
        """
        page_size, offset = _page_bounds(page, limit)
        base = _apply_filters(
            select(GenerationEvent)
            .where(GenerationEvent.user_id == user_id)
            .where(GenerationEvent.hidden_at.is_(None)),
            kind,
            search,
        )

        total = (await db.execute(
            select(func.count()).select_from(base.subquery())
        )).scalar_one()

        result = await db.execute(
            base.order_by(GenerationEvent.occurred_at.desc())
            .offset(offset)
            .limit(page_size)
        )
        return list(result.scalars().all()), total, page_size

    @staticmethod
    async def list_all_events(
        db: AsyncSession,
        page: int = 1,
        limit: int = 50,
        kind: Optional[GenerationKind] = None,
        search: Optional[str] = None,
        user_id: Optional[str] = None,
        include_hidden: bool = False,
    ) -> Tuple[List[Tuple[GenerationEvent, User]], int, int]:
        """
        Admin listing across all users, newest first, joined with the owner.

        Returns:
            Tuple of ([(event, user)], total matching, effective page size)
        """
        page_size, offset = _page_bounds(page, limit)
        base = select(GenerationEvent, User).join(User, GenerationEvent.user_id == User.id)
        if user_id:
            base = base.where(GenerationEvent.user_id == user_id)
        if not include_hidden:
            base = base.where(GenerationEvent.hidden_at.is_(None))
        base = _apply_filters(base, kind, search)

        total = (await db.execute(
            select(func.count()).select_from(base.subquery())
        )).scalar_one()

        result = await db.execute(
            base.order_by(GenerationEvent.occurred_at.desc())
            .offset(offset)
            .limit(page_size)
        )
        return [(row[0], row[1]) for row in result.all()], total, page_size

    @staticmethod
    async def hide_event(
        db: AsyncSession,
        user_id: str,
        event_id: str,
        artifacts: ArtifactStore,
    ) -> bool:
        """
        Remove one event from the user's history.

        Returns:
            True if a visible event owned by the user was hidden
        """
        result = await db.execute(
            select(GenerationEvent).where(
                GenerationEvent.id == event_id,
                GenerationEvent.user_id == user_id,
                GenerationEvent.hidden_at.is_(None),
            )
        )
        event = result.scalar_one_or_none()
        if event is None:
            return False

        refs = [event.result_ref, *(event.input_refs or [])]
        event.hidden_at = utc_now()
        event.result_ref = ""
        event.input_refs = []
        await db.commit()

        await artifacts.discard(refs)
        return True

    @staticmethod
    async def hide_all(
        db: AsyncSession,
        user_id: str,
        artifacts: ArtifactStore,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Remove every visible event from the user's history.

        Returns:
            Number of events hidden
        """
        # Refs come from exactly the rows this UPDATE hid
        rows = (await db.execute(
            update(GenerationEvent)
            .where(GenerationEvent.user_id == user_id)
            .where(GenerationEvent.hidden_at.is_(None))
            .values(hidden_at=now or utc_now(), result_ref="", input_refs=[])
            .returning(GenerationEvent.result_ref, GenerationEvent.input_refs)
            .execution_options(synchronize_session=False)
        )).all()
        await db.commit()

        refs = []
        for result_ref, input_refs in rows:
            refs.append(result_ref)
            refs.extend(input_refs or [])
        await artifacts.discard(refs)
        return len(rows)
