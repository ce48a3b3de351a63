"""
Streak Engine — Route Dependencies
====================================

What:  FastAPI dependencies shared by the route modules.
Why:   Routes get the store handle created by the lifespan through Depends(),
       so tests can swap it with app.dependency_overrides.
"""

import hmac
from typing import Optional

from fastapi import Header, Request

from streak_engine.config import settings
from streak_engine.exceptions import DatabaseError, UnauthorizedError
from streak_engine.services.streak_store import StreakStore


def get_store(request: Request) -> StreakStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise DatabaseError(message="The data store is not available")
    return store


def require_trigger_token(authorization: Optional[str] = Header(default=None)) -> None:
    """
    Check the bearer token on the job trigger.

    The check is skipped when JOB_TRIGGER_TOKEN is unset (local development).
    """
    expected = settings.job_trigger_token
    if not expected:
        return
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not hmac.compare_digest(
        token.strip().encode(), expected.encode()
    ):
        raise UnauthorizedError()
