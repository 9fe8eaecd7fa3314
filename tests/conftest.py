"""
Shared test fixtures.

============================================================
FIXTURES
============================================================
- fixed_now / clock: deterministic MockClock
- store: empty InMemoryDocumentStore
- repos: UpstreamRepositories over `store`
- session_factory: in-memory SQLite with every engine table

============================================================
"""

from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy.pool import StaticPool

from core.clock import MockClock
from data_sources.repositories import UpstreamRepositories
from data_sources.store import InMemoryDocumentStore
from database.engine import create_all_tables, create_database_engine, create_session_factory


FIXED_NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def clock() -> MockClock:
    return MockClock(FIXED_NOW)


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def repos(store) -> UpstreamRepositories:
    return UpstreamRepositories.from_store(store)


@pytest_asyncio.fixture
async def session_factory():
    """Fresh in-memory database per test."""
    engine = create_database_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    await create_all_tables(engine)
    try:
        yield create_session_factory(engine)
    finally:
        await engine.dispose()
