"""
Streak Engine — Circle Streak Updater
=======================================

What:  Applies the participation rule to one circle for yesterday.
Who:   Called by the StreakJob once per circle with a single UTC day shared
       by every circle in the run.

Rule:
    ratio = distinct members with a qualifying circle sprint / live member count
    ratio >= threshold (0.6) → current + 1, otherwise current = 0.
    best = max(prior best, current). Circles with no members are skipped.

The day is UTC midnight to midnight for every member regardless of their own
zone. User streaks use local days; the two are deliberately not unified.

Idempotency:
    last_streak_date records the day evaluated. A circle already evaluated for
    the day is left alone, and the write is a compare-and-swap on that column,
    so retries and overlapping runs cannot double-increment. A replay of an
    earlier day (an older reference instant) is skipped as well.
"""

import logging
from datetime import date
from typing import Iterable, Optional, Set

from streak_engine.exceptions import ConcurrentUpdateError
from streak_engine.schemas.streak import CircleRecord, CircleStreakState
from streak_engine.services.local_day import LocalDayRange
from streak_engine.services.streak_store import StreakStore

logger = logging.getLogger(__name__)

DEFAULT_PARTICIPATION_THRESHOLD = 0.6
MAX_CAS_ATTEMPTS = 3


def participation_ratio(active_members: int, total_members: int) -> float:
    if total_members <= 0:
        return 0.0
    return active_members / total_members


def compute_next_circle_streak(
    circle: CircleRecord,
    member_ids: Set[str],
    active_ids: Set[str],
    evaluated_day: date,
    threshold: float = DEFAULT_PARTICIPATION_THRESHOLD,
) -> Optional[CircleStreakState]:
    """
    New streak columns for `circle`, or None when the circle is skipped.

    Sprints by users who are no longer members do not count.
    Days on or before the last evaluated day are skipped.
    """
    if not member_ids:
        return None
    # The marker never moves backwards: replaying an earlier day is a no-op
    if circle.last_streak_date is not None and circle.last_streak_date >= evaluated_day:
        return None

    active = len(active_ids & member_ids)
    ratio = participation_ratio(active, len(member_ids))
    new_current = circle.current_streak + 1 if ratio >= threshold else 0

    return CircleStreakState(
        circle_id=circle.id,
        current_streak=new_current,
        best_streak=max(circle.best_streak, new_current),
        last_streak_date=evaluated_day,
    )


async def update_circle_streak(
    store: StreakStore,
    circle: CircleRecord,
    member_ids: Iterable[str],
    day: LocalDayRange,
    *,
    active_ids: Optional[Set[str]] = None,
    threshold: float = DEFAULT_PARTICIPATION_THRESHOLD,
) -> Optional[CircleStreakState]:
    """
    Evaluate and persist one circle's streak for `day`.

    `active_ids` may come from a set-based query made by the orchestrator;
    when omitted it is read here.

    Returns the persisted state, or None when nothing changed.
    """
    members = set(member_ids)
    if not members:
        return None

    if active_ids is None:
        by_circle = await store.active_circle_members([circle.id], day.start_utc, day.end_utc)
        active_ids = by_circle.get(circle.id, set())

    current: Optional[CircleRecord] = circle
    for attempt in range(1, MAX_CAS_ATTEMPTS + 1):
        if current is None:
            # Circle deleted mid-run
            return None
        new_state = compute_next_circle_streak(
            current, members, active_ids, day.local_date, threshold
        )
        if new_state is None:
            return None

        if await store.compare_and_set_circle(
            new_state, expected_last_date=current.last_streak_date
        ):
            logger.debug(
                "Circle %s: %d/%d active, streak %d → %d",
                circle.id, len(active_ids & members), len(members),
                current.current_streak, new_state.current_streak,
            )
            return new_state

        logger.info(
            "Circle %s streak changed during update (attempt %d), retrying",
            circle.id, attempt,
        )
        current = await store.get_circle(circle.id)

    raise ConcurrentUpdateError("circle", circle.id, attempts=MAX_CAS_ATTEMPTS)
