"""
Streak Engine — Test Configuration (conftest.py)
==================================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixture Hierarchy:
    ├── test_settings: Settings pointing at a per-test SQLite file, no retry waits
    ├── store: StreakStore on that database with the schema created
    ├── seed: Inserts ORM rows into the store's database
    ├── mock_store: AsyncMock standing in for StreakStore (no database)
    └── test_client: HTTPX AsyncClient with the store dependency overridden
"""

import os

# Must run before streak_engine.config builds its singleton
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./streak_engine_test.db")
os.environ["RETRY_MIN_WAIT"] = "0"
os.environ["RETRY_MAX_WAIT"] = "0"
os.environ["LOG_LEVEL"] = "WARNING"

from unittest.mock import AsyncMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from streak_engine.config import Settings  # noqa: E402
from streak_engine.database import create_schema, open_store  # noqa: E402
from streak_engine.services.streak_store import StreakStore  # noqa: E402


@pytest.fixture
def test_settings(tmp_path):
    """Settings for one test: private SQLite file, two workers, instant retries."""
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'streaks.db'}",
        job_max_concurrency=2,
        retry_max_attempts=3,
        retry_min_wait=0,
        retry_max_wait=0,
        log_level="WARNING",
    )


@pytest_asyncio.fixture
async def store(test_settings):
    """
    A real StreakStore backed by aiosqlite.

    The engine is disposed when the test finishes, exactly as a job run does.
    """
    async with open_store(test_settings) as s:
        await create_schema(s.engine)
        yield s


@pytest.fixture
def seed(store):
    """
    Insert ORM rows in one committed transaction.

    Usage:
        await seed(Profile(user_id="u1", timezone="UTC"), Sprint(...))
    """
    async def _seed(*rows):
        async with store.session_factory() as session:
            async with session.begin():
                session.add_all(rows)

    return _seed


@pytest.fixture
def mock_store():
    """
    AsyncMock with StreakStore's interface; every method is awaitable.

    Listings default to empty so a job run over it is a no-op.
    """
    fake = AsyncMock(spec=StreakStore)
    fake.list_profiles.return_value = []
    fake.list_circles.return_value = []
    fake.circle_members.return_value = {}
    fake.active_circle_members.return_value = {}
    fake.active_users_between.return_value = set()
    return fake


@pytest_asyncio.fixture
async def test_client(mock_store):
    """
    HTTPX AsyncClient talking to the app through ASGITransport.

    ASGITransport does not run the lifespan, so the store dependency is
    overridden with mock_store.
    """
    from streak_engine.main import app
    from streak_engine.routes.dependencies import get_store

    app.dependency_overrides[get_store] = lambda: mock_store
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()
