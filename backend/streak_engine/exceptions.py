"""
Streak Engine — Custom Exception Hierarchy
============================================

What:  Application-specific exceptions for the streak job and its HTTP surface.
Why:   The batch orchestrator needs to tell a recorded per-entity failure apart
       from a fatal one, and the API needs to map errors to status codes without
       leaking store internals.
How:   Each exception carries a message and an optional context dict.
       Global exception handlers (registered in main.py) turn them into JSON.

Exception Hierarchy:
    StreakEngineError (base)
    ├── ConfigurationError     → fatal at startup, job does not run
    ├── DatabaseError          → 500 / FailureRecord (store failed after retries)
    ├── ConcurrentUpdateError  → 409 / FailureRecord (lost compare-and-swap)
    ├── NotFoundError          → 404 Not Found
    └── UnauthorizedError      → 401 Unauthorized (bad job trigger token)
"""

from typing import Any, Dict, Optional


class StreakEngineError(Exception):
    """
    Base exception for all streak engine errors.

    Attributes:
        message:  Human-readable description (safe to return in API responses
                  and to copy into a FailureRecord)
        context:  Additional debug info (logged but NOT returned to clients)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ConfigurationError(StreakEngineError):
    """
    Raised when required settings are missing or inconsistent.

    Never recorded as a per-entity failure: the job refuses to start.
    """

    def __init__(
        self,
        message: str = "Configuration is invalid",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(StreakEngineError):
    """
    Raised when a store read or write fails after all retries.

    The message stays generic; the SQL error type is kept in context
    for the server-side log only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ConcurrentUpdateError(StreakEngineError):
    """
    Raised when an optimistic update keeps losing to another writer.

    Overlapping job runs are expected to converge through the date guard;
    this only surfaces when the row changes under us repeatedly.
    """

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        attempts: int = 0,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"{entity_type} '{entity_id}' was modified concurrently"
        if attempts:
            message += f" ({attempts} attempts)"
        ctx = context or {}
        ctx.update({"entity_type": entity_type, "entity_id": entity_id, "attempts": attempts})
        super().__init__(message=message, context=ctx)
        self.entity_type = entity_type
        self.entity_id = entity_id


class NotFoundError(StreakEngineError):
    """
    Raised when a requested streak or circle does not exist.

    SQLAlchemy returns None for missing rows; the read routes convert
    that into this exception so the global handler answers 404.
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class UnauthorizedError(StreakEngineError):
    """Raised when the job trigger is called without the configured bearer token."""

    def __init__(
        self,
        message: str = "A valid job trigger token is required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
