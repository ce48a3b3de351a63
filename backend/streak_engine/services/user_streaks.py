"""
Streak Engine — User Streak Updater
=====================================

What:  Decides whether one user's streak continues, resets or starts, and
       persists the result.
Who:   Called by the StreakJob once per profile, with the user's own
       LocalDayRange for yesterday.

Decision Rules (compute_next_streak):
    - No qualifying sprint yesterday        → no change (misses are not penalised here)
    - No prior row                          → current = best = 1, tokens = 0
    - Prior row already credited yesterday  → no change (idempotency guard)
    - Prior credited the day before         → current + 1
    - Anything else (gap, future date)      → current = 1
    - best = max(prior best, current); one freeze token whenever current
      lands on a multiple of the milestone.

Concurrency:
    The write is a compare-and-swap on last_completed_local_date. A lost race
    re-reads the row, so an overlapping run that already credited the day
    turns this update into a no-op instead of a double increment.
"""

import logging
from datetime import date
from typing import Optional

from streak_engine.exceptions import ConcurrentUpdateError
from streak_engine.schemas.streak import ProfileRecord, StreakState
from streak_engine.services.local_day import LocalDayRange
from streak_engine.services.streak_store import StreakStore

logger = logging.getLogger(__name__)

DEFAULT_FREEZE_MILESTONE = 7
MAX_CAS_ATTEMPTS = 3


def compute_next_streak(
    user_id: str,
    prior: Optional[StreakState],
    credited_day: date,
    milestone: int = DEFAULT_FREEZE_MILESTONE,
) -> Optional[StreakState]:
    """
    New streak state after crediting `credited_day`, or None for no change.

    Only call this for a user who had at least one qualifying sprint on
    `credited_day`.
    """
    if prior is None:
        return StreakState(
            user_id=user_id,
            current_len=1,
            best_len=1,
            freeze_tokens=0,
            last_completed_local_date=credited_day,
        )

    if prior.last_completed_local_date == credited_day:
        return None

    new_current = 1
    if prior.last_completed_local_date is not None:
        diff_days = (credited_day - prior.last_completed_local_date).days
        if diff_days == 1:
            new_current = prior.current_len + 1

    new_tokens = prior.freeze_tokens
    if new_current > 0 and new_current % milestone == 0:
        new_tokens += 1

    return StreakState(
        user_id=user_id,
        current_len=new_current,
        best_len=max(prior.best_len, new_current),
        freeze_tokens=new_tokens,
        last_completed_local_date=credited_day,
    )


async def update_user_streak(
    store: StreakStore,
    profile: ProfileRecord,
    day: LocalDayRange,
    *,
    has_activity: Optional[bool] = None,
    milestone: int = DEFAULT_FREEZE_MILESTONE,
) -> Optional[StreakState]:
    """
    Credit `profile` for `day` if they completed a qualifying sprint in it.

    `has_activity` lets the orchestrator pass the result of a set-based
    activity query; when omitted the sprints are counted here.

    Returns the persisted state, or None when nothing changed.
    Raises DatabaseError or ConcurrentUpdateError; the caller isolates them.
    """
    if has_activity is None:
        count = await store.count_qualifying_sprints(
            profile.user_id, day.start_utc, day.end_utc
        )
        has_activity = count > 0
    if not has_activity:
        return None

    for attempt in range(1, MAX_CAS_ATTEMPTS + 1):
        prior = await store.get_streak(profile.user_id)
        new_state = compute_next_streak(profile.user_id, prior, day.local_date, milestone)
        if new_state is None:
            logger.debug(
                "User %s already credited for %s", profile.user_id, day.local_date
            )
            return None

        if prior is None:
            try:
                await store.insert_streak(new_state)
            except ConcurrentUpdateError:
                logger.info("User %s streak row created concurrently, retrying", profile.user_id)
                continue
            return new_state

        if await store.compare_and_set_streak(
            new_state, expected_last_date=prior.last_completed_local_date
        ):
            return new_state

        logger.info(
            "User %s streak changed during update (attempt %d), retrying",
            profile.user_id, attempt,
        )

    raise ConcurrentUpdateError("user", profile.user_id, attempts=MAX_CAS_ATTEMPTS)
