"""
Streak Engine — Data Store
============================

What:  Every read and write the streak job performs against the database.
Why:   Keeps SQL out of the updaters, which only decide what the new state is,
       and gives the orchestrator one handle to pass around and dispose.
How:   Each operation runs in its own short transaction on a fresh session,
       so concurrent workers never share a session and partial progress is
       committed entity by entity.

Resilience Strategy:
    1. Transient errors (dropped connection, server restart) are retried with
       tenacity exponential backoff + jitter; each attempt uses a new session.
    2. Errors left after retries become DatabaseError (details logged only).
    3. A primary-key conflict on insert becomes ConcurrentUpdateError: another
       run created the row first.
    4. Writes are compare-and-swap UPDATEs keyed on the last credited date and
       report whether they won.
"""

import logging
from collections import defaultdict
from datetime import date, datetime, timezone
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set, TypeVar

from sqlalchemy import func, select, text, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from streak_engine.config import Settings
from streak_engine.database import create_session_factory
from streak_engine.exceptions import ConcurrentUpdateError, DatabaseError
from streak_engine.models.circle import Circle, CircleMember
from streak_engine.models.profile import Profile
from streak_engine.models.sprint import Sprint
from streak_engine.models.streak import Streak
from streak_engine.schemas.streak import (
    CircleRecord,
    CircleStreakState,
    ProfileRecord,
    StreakState,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors worth another attempt; everything else fails fast
TRANSIENT_ERRORS = (OperationalError, InterfaceError)


def _utc(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def _matches_date(column, expected: Optional[date]):
    if expected is None:
        return column.is_(None)
    return column == expected


class StreakStore:
    """
    Data store handle for one job run (or one app lifetime).

    Constructed by `open_store()`; the engine is disposed by its owner,
    never by the store.
    """

    def __init__(self, engine: AsyncEngine, config: Settings):
        self.engine = engine
        self.config = config
        self.session_factory = create_session_factory(engine)

    # ── Plumbing ──────────────────────────────────────────────────────────

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.config.retry_max_attempts),
            wait=wait_exponential_jitter(
                initial=self.config.retry_min_wait,
                max=self.config.retry_max_wait,
                jitter=self.config.retry_min_wait,
            ),
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    async def _run(
        self,
        operation: str,
        work: Callable[[AsyncSession], Awaitable[T]],
        **log_context,
    ) -> T:
        """Run `work` in a committed transaction, with retries and error mapping."""
        try:
            async for attempt in self._retrying():
                with attempt:
                    async with self.session_factory() as session:
                        async with session.begin():
                            return await work(session)
        except IntegrityError as e:
            entity_type = log_context.get("entity_type", "row")
            entity_id = str(log_context.get("entity_id", "?"))
            logger.info("%s lost an insert race for %s %s", operation, entity_type, entity_id)
            raise ConcurrentUpdateError(
                entity_type, entity_id, context={"operation": operation}
            ) from e
        except SQLAlchemyError as e:
            logger.error(
                "Store operation %s failed: %s", operation, str(e),
                extra={"operation": operation, **log_context},
            )
            raise DatabaseError(
                message=f"Store operation '{operation}' failed",
                context={"operation": operation, "error_type": type(e).__name__, **log_context},
            ) from e

    async def ping(self) -> bool:
        async def work(session: AsyncSession) -> bool:
            await session.execute(text("SELECT 1"))
            return True

        return await self._run("ping", work)

    # ── Profiles & Sprints ────────────────────────────────────────────────

    async def list_profiles(self) -> List[ProfileRecord]:
        async def work(session: AsyncSession) -> List[ProfileRecord]:
            result = await session.execute(select(Profile).order_by(Profile.user_id))
            return [ProfileRecord.model_validate(p) for p in result.scalars().all()]

        return await self._run("list_profiles", work)

    async def count_qualifying_sprints(
        self, user_id: str, start: datetime, end: datetime
    ) -> int:
        """Sprints with counts_for_streak that ended in [start, end)."""
        async def work(session: AsyncSession) -> int:
            result = await session.execute(
                select(func.count(Sprint.id)).where(
                    Sprint.user_id == user_id,
                    Sprint.counts_for_streak.is_(True),
                    Sprint.ends_at >= _utc(start),
                    Sprint.ends_at < _utc(end),
                )
            )
            return result.scalar() or 0

        return await self._run(
            "count_qualifying_sprints", work, entity_type="user", entity_id=user_id
        )

    async def active_users_between(
        self, user_ids: Iterable[str], start: datetime, end: datetime
    ) -> Set[str]:
        """Set-based form of count_qualifying_sprints for one zone's users."""
        ids = list(user_ids)
        if not ids:
            return set()

        async def work(session: AsyncSession) -> Set[str]:
            result = await session.execute(
                select(Sprint.user_id)
                .where(
                    Sprint.user_id.in_(ids),
                    Sprint.counts_for_streak.is_(True),
                    Sprint.ends_at >= _utc(start),
                    Sprint.ends_at < _utc(end),
                )
                .distinct()
            )
            return set(result.scalars().all())

        return await self._run("active_users_between", work, batch_size=len(ids))

    # ── User Streaks ──────────────────────────────────────────────────────

    async def get_streak(self, user_id: str) -> Optional[StreakState]:
        async def work(session: AsyncSession) -> Optional[StreakState]:
            row = await session.get(Streak, user_id)
            return StreakState.model_validate(row) if row is not None else None

        return await self._run("get_streak", work, entity_type="user", entity_id=user_id)

    async def insert_streak(self, state: StreakState) -> None:
        """
        Create a user's first streak row.

        Raises ConcurrentUpdateError if the row already exists.
        """
        async def work(session: AsyncSession) -> None:
            session.add(Streak(**state.model_dump()))
            await session.flush()

        await self._run(
            "insert_streak", work, entity_type="user", entity_id=state.user_id
        )

    async def compare_and_set_streak(
        self, state: StreakState, expected_last_date: Optional[date]
    ) -> bool:
        """
        Write `state` only if the row still has `expected_last_date`.

        Returns False when another writer got there first.
        """
        async def work(session: AsyncSession) -> bool:
            result = await session.execute(
                update(Streak)
                .where(
                    Streak.user_id == state.user_id,
                    _matches_date(Streak.last_completed_local_date, expected_last_date),
                )
                .values(
                    current_len=state.current_len,
                    best_len=state.best_len,
                    freeze_tokens=state.freeze_tokens,
                    last_completed_local_date=state.last_completed_local_date,
                    updated_at=datetime.now(timezone.utc),
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

        return await self._run(
            "compare_and_set_streak", work, entity_type="user", entity_id=state.user_id
        )

    # ── Circles ───────────────────────────────────────────────────────────

    async def list_circles(self) -> List[CircleRecord]:
        async def work(session: AsyncSession) -> List[CircleRecord]:
            result = await session.execute(select(Circle).order_by(Circle.id))
            return [CircleRecord.model_validate(c) for c in result.scalars().all()]

        return await self._run("list_circles", work)

    async def get_circle(self, circle_id: str) -> Optional[CircleRecord]:
        async def work(session: AsyncSession) -> Optional[CircleRecord]:
            row = await session.get(Circle, circle_id)
            return CircleRecord.model_validate(row) if row is not None else None

        return await self._run("get_circle", work, entity_type="circle", entity_id=circle_id)

    async def circle_members(self, circle_ids: Iterable[str]) -> Dict[str, Set[str]]:
        """Live membership per circle; circles without members are absent."""
        ids = list(circle_ids)
        if not ids:
            return {}

        async def work(session: AsyncSession) -> Dict[str, Set[str]]:
            result = await session.execute(
                select(CircleMember.circle_id, CircleMember.user_id).where(
                    CircleMember.circle_id.in_(ids)
                )
            )
            members: Dict[str, Set[str]] = defaultdict(set)
            for circle_id, user_id in result.all():
                members[circle_id].add(user_id)
            return dict(members)

        return await self._run("circle_members", work, batch_size=len(ids))

    async def active_circle_members(
        self, circle_ids: Iterable[str], start: datetime, end: datetime
    ) -> Dict[str, Set[str]]:
        """Distinct users with a qualifying circle sprint in [start, end), per circle."""
        ids = list(circle_ids)
        if not ids:
            return {}

        async def work(session: AsyncSession) -> Dict[str, Set[str]]:
            result = await session.execute(
                select(Sprint.circle_id, Sprint.user_id)
                .where(
                    Sprint.circle_id.in_(ids),
                    Sprint.counts_for_streak.is_(True),
                    Sprint.ends_at >= _utc(start),
                    Sprint.ends_at < _utc(end),
                )
                .distinct()
            )
            active: Dict[str, Set[str]] = defaultdict(set)
            for circle_id, user_id in result.all():
                active[circle_id].add(user_id)
            return dict(active)

        return await self._run("active_circle_members", work, batch_size=len(ids))

    async def compare_and_set_circle(
        self, state: CircleStreakState, expected_last_date: Optional[date]
    ) -> bool:
        async def work(session: AsyncSession) -> bool:
            result = await session.execute(
                update(Circle)
                .where(
                    Circle.id == state.circle_id,
                    _matches_date(Circle.last_streak_date, expected_last_date),
                )
                .values(
                    current_streak=state.current_streak,
                    best_streak=state.best_streak,
                    last_streak_date=state.last_streak_date,
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

        return await self._run(
            "compare_and_set_circle", work, entity_type="circle", entity_id=state.circle_id
        )
