"""
Streak Engine — Daily Streak Job (Batch Orchestrator)
=======================================================

What:  One run of the daily streak computation over every user and circle.
Why:   The app reads streak counters and freeze tokens; this job is the only
       writer. It is triggered externally once a day (HTTP or cron CLI).
How:   Two phases, users then circles, each fanned out under a semaphore.

Run Flow:
    ┌──────────────┐   ┌───────────────────┐   ┌──────────────────────┐
    │ list profiles│──▶│ group by zone,    │──▶│ update_user_streak   │
    │              │   │ set-based activity│   │ (bounded fan-out)    │
    └──────────────┘   └───────────────────┘   └──────────────────────┘
    ┌──────────────┐   ┌───────────────────┐   ┌──────────────────────┐
    │ list circles │──▶│ members + active  │──▶│ update_circle_streak │
    │              │   │ (per chunk)       │   │ (bounded fan-out)    │
    └──────────────┘   └───────────────────┘   └──────────────────────┘

Failure Isolation:
    Every entity runs inside its own error boundary. An error becomes a
    FailureRecord and the run moves on. A failed batch read fails only the
    entities of that batch; a failed listing fails only its phase.
    Cancellation is not caught: rows already written stay valid because each
    update is self-contained and guarded by its day marker.
"""

import asyncio
import logging
import time
from collections import defaultdict
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

from streak_engine.config import Settings
from streak_engine.database import open_store
from streak_engine.exceptions import StreakEngineError
from streak_engine.schemas.streak import CircleRecord, FailureRecord, JobReport, ProfileRecord
from streak_engine.services.circle_streaks import update_circle_streak
from streak_engine.services.local_day import (
    LocalDayRange,
    resolve_yesterday,
    resolve_zone,
    utc_yesterday,
)
from streak_engine.services.streak_store import StreakStore
from streak_engine.services.user_streaks import update_user_streak

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _chunks(items: Sequence[T], size: int) -> List[Sequence[T]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


def _describe(exc: BaseException) -> str:
    if isinstance(exc, StreakEngineError):
        return exc.message
    return f"{type(exc).__name__}: {exc}"


class _RunState:
    """Counters and failures accumulated during one run."""

    def __init__(self) -> None:
        self.processed_users = 0
        self.processed_circles = 0
        self.updated_users = 0
        self.updated_circles = 0
        self.failures: List[FailureRecord] = []

    def fail(self, entity_type: str, entity_id: str, exc: BaseException) -> None:
        self.failures.append(
            FailureRecord(entity_type=entity_type, entity_id=entity_id, cause=_describe(exc))
        )


class StreakJob:
    """
    Daily streak job bound to one store handle.

    Stateless between runs: everything a run needs is read from the store,
    and the only persisted effect is the streak and circle rows it writes.
    """

    def __init__(self, store: StreakStore, config: Settings):
        self.store = store
        self.config = config

    async def run(self, now: Optional[datetime] = None) -> JobReport:
        """
        Run both phases for the day before `now` (default: the current instant).
        """
        if now is None:
            now = datetime.now(timezone.utc)
        elif now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)

        started = time.perf_counter()
        state = _RunState()
        semaphore = asyncio.Semaphore(self.config.job_max_concurrency)

        logger.info("Streak job starting for reference instant %s", now.isoformat())

        await self._run_user_phase(now, state, semaphore)
        await self._run_circle_phase(now, state, semaphore)

        report = JobReport(
            success=not state.failures,
            run_at=now,
            processed_users=state.processed_users,
            processed_circles=state.processed_circles,
            updated_users=state.updated_users,
            updated_circles=state.updated_circles,
            failures=state.failures,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )

        log_level = logging.INFO if report.success else logging.WARNING
        logger.log(
            log_level,
            "Streak job finished: users %d processed / %d updated, "
            "circles %d processed / %d updated, %d failures in %.1fms",
            report.processed_users, report.updated_users,
            report.processed_circles, report.updated_circles,
            len(report.failures), report.duration_ms,
            extra={
                "processed_users": report.processed_users,
                "processed_circles": report.processed_circles,
                "failure_count": len(report.failures),
                "duration_ms": report.duration_ms,
            },
        )
        return report

    # ── Error Boundary ────────────────────────────────────────────────────

    async def _guarded(
        self,
        semaphore: asyncio.Semaphore,
        state: _RunState,
        entity_type: str,
        entity_id: str,
        work: Callable[[], Awaitable[Optional[object]]],
    ) -> None:
        async with semaphore:
            try:
                result = await work()
            except StreakEngineError as e:
                logger.warning(
                    "Skipping %s %s: %s", entity_type, entity_id, e.message,
                    extra={"entity_type": entity_type, "entity_id": entity_id},
                )
                state.fail(entity_type, entity_id, e)
                return
            except Exception as e:
                logger.error(
                    "Unexpected error updating %s %s", entity_type, entity_id,
                    exc_info=True,
                )
                state.fail(entity_type, entity_id, e)
                return

        if entity_type == "user":
            state.processed_users += 1
            if result is not None:
                state.updated_users += 1
        else:
            state.processed_circles += 1
            if result is not None:
                state.updated_circles += 1

    # ── Users ─────────────────────────────────────────────────────────────

    async def _run_user_phase(
        self, now: datetime, state: _RunState, semaphore: asyncio.Semaphore
    ) -> None:
        try:
            profiles = await self.store.list_profiles()
        except StreakEngineError as e:
            logger.error("Could not list profiles, skipping user phase: %s", e.message)
            state.fail("phase", "users", e)
            return

        by_zone: Dict[str, List[ProfileRecord]] = defaultdict(list)
        for profile in profiles:
            zone = resolve_zone(profile.timezone, self.config.default_timezone)
            by_zone[zone.key].append(profile)

        tasks = []
        for zone_key, zone_profiles in by_zone.items():
            day = resolve_yesterday(now, zone_key)
            for batch in _chunks(zone_profiles, self.config.store_batch_size):
                try:
                    active = await self.store.active_users_between(
                        [p.user_id for p in batch], day.start_utc, day.end_utc
                    )
                except StreakEngineError as e:
                    logger.error(
                        "Activity lookup failed for %d users in %s: %s",
                        len(batch), zone_key, e.message,
                    )
                    for profile in batch:
                        state.fail("user", profile.user_id, e)
                    continue
                tasks.extend(
                    self._guarded(
                        semaphore, state, "user", profile.user_id,
                        self._user_work(profile, day, profile.user_id in active),
                    )
                    for profile in batch
                )

        await asyncio.gather(*tasks)

    def _user_work(self, profile: ProfileRecord, day: LocalDayRange, has_activity: bool):
        async def work():
            return await update_user_streak(
                self.store, profile, day,
                has_activity=has_activity,
                milestone=self.config.freeze_token_milestone,
            )
        return work

    # ── Circles ───────────────────────────────────────────────────────────

    async def _run_circle_phase(
        self, now: datetime, state: _RunState, semaphore: asyncio.Semaphore
    ) -> None:
        try:
            circles = await self.store.list_circles()
        except StreakEngineError as e:
            logger.error("Could not list circles, skipping circle phase: %s", e.message)
            state.fail("phase", "circles", e)
            return

        # One UTC day for every circle in the run
        day = utc_yesterday(now)

        tasks = []
        for batch in _chunks(circles, self.config.store_batch_size):
            ids = [c.id for c in batch]
            try:
                members = await self.store.circle_members(ids)
                active = await self.store.active_circle_members(ids, day.start_utc, day.end_utc)
            except StreakEngineError as e:
                logger.error("Membership lookup failed for %d circles: %s", len(batch), e.message)
                for circle in batch:
                    state.fail("circle", circle.id, e)
                continue
            tasks.extend(
                self._guarded(
                    semaphore, state, "circle", circle.id,
                    self._circle_work(
                        circle, members.get(circle.id, set()), active.get(circle.id, set()), day
                    ),
                )
                for circle in batch
            )

        await asyncio.gather(*tasks)

    def _circle_work(self, circle: CircleRecord, member_ids, active_ids, day: LocalDayRange):
        async def work():
            return await update_circle_streak(
                self.store, circle, member_ids, day,
                active_ids=active_ids,
                threshold=self.config.circle_participation_threshold,
            )
        return work


async def run_daily_streak_job(
    config: Settings, now: Optional[datetime] = None
) -> JobReport:
    """
    Validate configuration, open a store for this run, run the job, dispose the store.

    Raises ConfigurationError before any store access when settings are incomplete.
    """
    config.validate_required_for_production()
    async with open_store(config) as store:
        return await StreakJob(store, config).run(now)
