"""
Streak Engine — Health Check Route
====================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Runs SELECT 1 through the store; the service is only useful if the
       store is reachable.
"""

import logging
import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from streak_engine import __version__
from streak_engine.exceptions import StreakEngineError
from streak_engine.routes.dependencies import get_store
from streak_engine.schemas.streak import HealthResponse
from streak_engine.services.streak_store import StreakStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(store: StreakStore = Depends(get_store)) -> JSONResponse:
    db_status = "connected"
    overall = "healthy"

    try:
        await store.ping()
    except StreakEngineError as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", e.message)

    body = HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
    return JSONResponse(
        status_code=200 if overall == "healthy" else 503,
        content=body.model_dump(),
    )
