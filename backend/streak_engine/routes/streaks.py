"""
Streak Engine — Streak Read Routes
====================================

What:  GET /api/streaks/{user_id} and GET /api/circles/{circle_id}/streak.
Who:   The sprint screen (streak counter, freeze tokens, circle flame).
Why:   Read-only views of the rows the daily job maintains.
"""

from fastapi import APIRouter, Depends

from streak_engine.exceptions import NotFoundError
from streak_engine.routes.dependencies import get_store
from streak_engine.schemas.streak import CircleStreakResponse, ErrorResponse, StreakResponse
from streak_engine.services.streak_store import StreakStore

router = APIRouter(prefix="/api", tags=["Streaks"])


@router.get(
    "/streaks/{user_id}",
    response_model=StreakResponse,
    responses={404: {"description": "User has never been credited", "model": ErrorResponse}},
    summary="Get a user's streak",
)
async def get_user_streak(
    user_id: str,
    store: StreakStore = Depends(get_store),
) -> StreakResponse:
    streak = await store.get_streak(user_id)
    if streak is None:
        raise NotFoundError(resource="streak", resource_id=user_id)
    return StreakResponse.model_validate(streak.model_dump())


@router.get(
    "/circles/{circle_id}/streak",
    response_model=CircleStreakResponse,
    responses={404: {"description": "Circle not found", "model": ErrorResponse}},
    summary="Get a circle's streak",
)
async def get_circle_streak(
    circle_id: str,
    store: StreakStore = Depends(get_store),
) -> CircleStreakResponse:
    circle = await store.get_circle(circle_id)
    if circle is None:
        raise NotFoundError(resource="circle", resource_id=circle_id)
    return CircleStreakResponse(
        circle_id=circle.id,
        current_streak=circle.current_streak,
        best_streak=circle.best_streak,
        last_streak_date=circle.last_streak_date,
    )
