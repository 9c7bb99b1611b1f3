"""
Pytest configuration and fixtures for the progress engine tests.
"""
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from sequence_progress.api.main import create_app
from sequence_progress.config import Settings
from sequence_progress.core.engine import ProgressEngine
from sequence_progress.domain.clock import FixedClock
from sequence_progress.domain.models import SequenceDefinition
from sequence_progress.infrastructure.content import InMemoryContentRepository
from sequence_progress.infrastructure.database import (
    SqlAlchemyCompletionStore,
    create_engine_for,
    init_db,
    make_session_factory,
)
from sequence_progress.infrastructure.ledger_store import InMemoryCompletionStore

# 2024-03-10 15:00 UTC: mid-afternoon in UTC, morning in New York.
START = datetime(2024, 3, 10, 15, 0, tzinfo=timezone.utc)
START_DATE = date(2024, 3, 10)

USER = "user-123"


@pytest.fixture
def clock() -> FixedClock:
    """Clock pinned to START; tests move it explicitly."""
    return FixedClock(START)


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        app_name="sequence-progress-test",
        app_env="test",
        log_level="DEBUG",
        database_url="sqlite+aiosqlite://",
        default_time_zone="UTC",
        reveal_words_per_second=2.5,
        reveal_fallback_interval_seconds=12.0,
    )


@pytest.fixture
def definitions() -> list[SequenceDefinition]:
    return [
        SequenceDefinition(sequence_id="plan-7", total_items=7),
        SequenceDefinition(sequence_id="journey-open"),
        SequenceDefinition(
            sequence_id="experiment-7",
            total_items=7,
            window_start_date=START_DATE,
        ),
        SequenceDefinition(sequence_id="cohort-3", total_items=3, streak_eligible=False),
        SequenceDefinition(sequence_id="sleep-plan", total_items=5, streak_group="sleep"),
    ]


@pytest.fixture
def content(definitions: list[SequenceDefinition]) -> InMemoryContentRepository:
    return InMemoryContentRepository(definitions)


@pytest.fixture
def store() -> InMemoryCompletionStore:
    return InMemoryCompletionStore()


@pytest.fixture
def engine(
    store: InMemoryCompletionStore,
    content: InMemoryContentRepository,
    clock: FixedClock,
    test_settings: Settings,
) -> ProgressEngine:
    return ProgressEngine(store, content, clock=clock, settings=test_settings)


@pytest_asyncio.fixture
async def sql_store(tmp_path: Path) -> AsyncGenerator[SqlAlchemyCompletionStore, Any]:
    """SQL-backed store on a throwaway SQLite file."""
    db_engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'progress.db'}")
    await init_db(db_engine)
    yield SqlAlchemyCompletionStore(make_session_factory(db_engine))
    await db_engine.dispose()


@pytest.fixture
def sql_engine(
    sql_store: SqlAlchemyCompletionStore,
    content: InMemoryContentRepository,
    clock: FixedClock,
    test_settings: Settings,
) -> ProgressEngine:
    return ProgressEngine(sql_store, content, clock=clock, settings=test_settings)


@pytest_asyncio.fixture
async def client(engine: ProgressEngine) -> AsyncGenerator[AsyncClient, Any]:
    """Create test HTTP client."""
    app = create_app(engine)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
