"""
TCG Value — Worker Entrypoint

Initializes the async SQLAlchemy engine, configures structlog, and runs the
revaluation worker (job queue + scheduled full revaluation).

Run via:
    python -m tcgvalue.main
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any, TextIO

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tcgvalue.config import settings
from tcgvalue.pipeline.worker import run_worker


# ---------------------------------------------------------------------------
# Structlog Configuration
# ---------------------------------------------------------------------------


def _configure_logging(log_level: str = "INFO", stream: TextIO = sys.stdout) -> None:
    """
    Set up structured logging with JSON output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
        stream: Where log lines go. The CLI uses stderr so stdout stays clean.
    """
    # stdlib logging for third-party libraries (sqlalchemy, httpx)
    logging.basicConfig(
        format="%(message)s",
        stream=stream,
        level=getattr(logging, log_level.upper()),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Database Setup
# ---------------------------------------------------------------------------


async def create_db_engine(database_url: str | None = None) -> tuple[Any, async_sessionmaker[AsyncSession]]:
    """
    Create SQLAlchemy async engine and session factory.

    Pool sizing applies to PostgreSQL; SQLite URLs (local runs) use the
    dialect's default pool.

    Returns:
        (engine, session_factory) tuple.
    """
    logger = structlog.get_logger(__name__)
    url = database_url or settings.DATABASE_URL

    engine_kwargs: dict[str, Any] = {"echo": False, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        engine_kwargs.update(pool_size=settings.DB_POOL_SIZE, max_overflow=settings.DB_MAX_OVERFLOW)

    engine = create_async_engine(url, **engine_kwargs)
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    logger.info("database_engine_ready", dialect=engine.dialect.name)
    return engine, session_factory


async def check_database(session_factory: async_sessionmaker[AsyncSession]) -> None:
    """Health check: SELECT 1."""
    async with session_factory() as session:
        await session.execute(text("SELECT 1"))


# ---------------------------------------------------------------------------
# Application Startup
# ---------------------------------------------------------------------------


async def main() -> None:
    """
    Worker entrypoint.

    Execution order:
    1. Configure logging (structlog JSON)
    2. Create async database engine and session factory
    3. Verify database connection (health check)
    4. Run the worker until a shutdown signal
    """
    _configure_logging(log_level=settings.LOG_LEVEL)
    logger = structlog.get_logger(__name__)

    logger.info("tcgvalue_startup_begin", version="0.1.0")

    if settings.LIVE_PRICE_ENABLED and not settings.POKEMONTCG_API_KEY:
        logger.warning("config_pokemontcg_api_key_missing", note="live Pokémon lookups are rate limited")
    if settings.FX_USD_TO_EUR is None and settings.FX_EUR_TO_USD is None:
        logger.info("config_fx_rates_unset", note="currency completion disabled")

    engine, session_factory = await create_db_engine()

    try:
        await check_database(session_factory)
        logger.info("database_health_check_passed")
    except Exception as e:
        logger.error(
            "database_health_check_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        await engine.dispose()
        raise

    logger.info(
        "tcgvalue_startup_complete",
        live_price_enabled=settings.LIVE_PRICE_ENABLED,
        full_revalue_interval_hours=settings.FULL_REVALUE_INTERVAL_HOURS,
        users_per_transaction=settings.REVALUE_USERS_PER_TRANSACTION,
    )

    try:
        await run_worker(session_factory)
    except KeyboardInterrupt:
        logger.info("tcgvalue_interrupted_by_user")
    except Exception as e:
        logger.error(
            "tcgvalue_fatal_error",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise
    finally:
        await engine.dispose()
        logger.info("tcgvalue_shutdown_complete")


# ---------------------------------------------------------------------------
# CLI Entry
# ---------------------------------------------------------------------------


if __name__ == "__main__":
    asyncio.run(main())
