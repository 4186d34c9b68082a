"""
TCG Value — Shared pytest Fixtures & Configuration

Provides common fixtures for all test modules:
- Temp-file SQLite database with every model table created
- Session factory (several sessions can share the same database)
- Fixed "today" for date-window tests
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from tcgvalue.engine.schema_probe import clear_probe_cache
from tcgvalue.models import Base


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _fresh_schema_probe_cache() -> None:
    """The market_items probe cache is process-wide; start every test cold."""
    clear_probe_cache()


# ---------------------------------------------------------------------------
# Database Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def db_engine(tmp_path: Any) -> AsyncGenerator[AsyncEngine, None]:
    """
    SQLite database in a temp file with all tables created.

    A file (not :memory:) so the pipeline's separate sessions all see the
    same data.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tcgvalue.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def today() -> date:
    return date(2026, 10, 19)


@pytest.fixture
def now() -> datetime:
    """Current timestamp for tests."""
    return datetime.now(timezone.utc)
