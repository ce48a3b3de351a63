"""
Streak Engine — Job Trigger Route
===================================

What:  POST /jobs/update-streaks runs one daily streak job.
Who:   Called by the platform scheduler once a day (e.g. 02:05 UTC).

Response contract:
    200 with the JobReport when every entity was processed,
    500 with the same JobReport when some entities failed. Partial progress is
    kept either way; the status code is what the scheduler alerts on.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from streak_engine.config import settings
from streak_engine.routes.dependencies import get_store, require_trigger_token
from streak_engine.schemas.streak import ErrorResponse, JobReport, JobRunRequest
from streak_engine.services.streak_job import StreakJob
from streak_engine.services.streak_store import StreakStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["Jobs"])


@router.post(
    "/update-streaks",
    response_model=JobReport,
    responses={
        200: {"description": "All users and circles processed", "model": JobReport},
        401: {"description": "Missing or invalid trigger token", "model": ErrorResponse},
        500: {"description": "Some entities failed; see failures", "model": JobReport},
    },
    summary="Run the daily streak job",
    dependencies=[Depends(require_trigger_token)],
)
async def update_streaks(
    payload: Optional[JobRunRequest] = Body(default=None),
    store: StreakStore = Depends(get_store),
) -> JSONResponse:
    now = payload.now if payload else None
    report = await StreakJob(store, settings).run(now)
    return JSONResponse(
        status_code=200 if report.success else 500,
        content=report.model_dump(mode="json"),
    )
