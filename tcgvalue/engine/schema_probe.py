"""
TCG Value — market_items Schema Probe

market_items is owned by the catalog service and its enrichment columns
have drifted between deployments (`game` vs `category`, `display_name` vs
`name` vs `title`, ...). Instead of assuming a shape, the movers engine asks
the database which columns exist, turns the answer into an immutable
MarketItemColumns value, and hands that to a pure query builder that selects
NULL for anything absent.

The probe result is cached per process for SCHEMA_PROBE_TTL_SECONDS.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Iterable

import structlog
from sqlalchemy import Date, Integer, String, bindparam, inspect, text
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import TextClause

from tcgvalue.config import settings

logger = structlog.get_logger(__name__)

MARKET_ITEMS_TABLE = "market_items"

# logical name → accepted physical column names, preferred first
REQUIRED_COLUMNS: dict[str, tuple[str, ...]] = {
    "id": ("id",),
    "game": ("game", "category"),
    "canonical_id": ("canonical_id",),
}

OPTIONAL_COLUMNS: dict[str, tuple[str, ...]] = {
    "canonical_source": ("canonical_source",),
    "display_name": ("display_name", "name", "title"),
    "set_name": ("set_name", "set"),
    "number": ("number", "collector_number"),
    "image_url": ("image_url", "image", "img_url"),
}

# Module-level cache: table name → (monotonic fetch time, columns)
_probe_cache: dict[str, tuple[float, MarketItemColumns]] = {}


@dataclass(frozen=True)
class MarketItemColumns:
    """
    Physical column chosen for each logical market_items field, or None.

    Build with detect_market_item_columns(); never mutate.
    """
    id: str | None = None
    game: str | None = None
    canonical_id: str | None = None
    canonical_source: str | None = None
    display_name: str | None = None
    set_name: str | None = None
    number: str | None = None
    image_url: str | None = None
    available: frozenset[str] = frozenset()

    @property
    def missing_required(self) -> tuple[str, ...]:
        return tuple(name for name in REQUIRED_COLUMNS if getattr(self, name) is None)

    @property
    def is_usable(self) -> bool:
        return not self.missing_required

    def as_dict(self) -> dict[str, Any]:
        mapped = {name: getattr(self, name) for name in (*REQUIRED_COLUMNS, *OPTIONAL_COLUMNS)}
        return {"mapped": mapped, "available": sorted(self.available)}


def detect_market_item_columns(column_names: Iterable[str]) -> MarketItemColumns:
    """
    Map the columns present on market_items to logical fields.

    Pure; matching is case-insensitive but the physical spelling is kept.
    """
    by_lower = {str(name).lower(): str(name) for name in column_names}

    def choose(candidates: tuple[str, ...]) -> str | None:
        for candidate in candidates:
            if candidate in by_lower:
                return by_lower[candidate]
        return None

    chosen = {
        name: choose(candidates)
        for name, candidates in {**REQUIRED_COLUMNS, **OPTIONAL_COLUMNS}.items()
    }
    return MarketItemColumns(**chosen, available=frozenset(by_lower.values()))


async def probe_table_columns(session: AsyncSession, table_name: str) -> set[str]:
    """
    Column names of a table in the current schema; empty if it does not exist.

    PostgreSQL reads information_schema; other dialects use the inspector.
    """
    dialect = session.get_bind().dialect.name

    if dialect == "postgresql":
        result = await session.execute(
            text("""
                SELECT column_name
                FROM information_schema.columns
                WHERE table_schema = current_schema()
                  AND table_name = :table_name
            """),
            {"table_name": table_name},
        )
        return {row[0] for row in result}

    def _inspect(sync_conn: Any) -> set[str]:
        inspector = inspect(sync_conn)
        if not inspector.has_table(table_name):
            return set()
        return {col["name"] for col in inspector.get_columns(table_name)}

    conn = await session.connection()
    return await conn.run_sync(_inspect)


async def get_market_item_columns(
    session: AsyncSession,
    force: bool = False,
    ttl_seconds: int | None = None,
) -> MarketItemColumns:
    """Probe market_items (cached). force=True bypasses and refreshes the cache."""
    ttl = settings.SCHEMA_PROBE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
    now = time.monotonic()

    cached = _probe_cache.get(MARKET_ITEMS_TABLE)
    if cached and not force and ttl > 0:
        fetched_at, columns = cached
        if now - fetched_at < ttl:
            return columns

    names = await probe_table_columns(session, MARKET_ITEMS_TABLE)
    columns = detect_market_item_columns(names)
    _probe_cache[MARKET_ITEMS_TABLE] = (now, columns)

    logger.info(
        "schema_probe_market_items",
        columns=len(names),
        missing_required=list(columns.missing_required),
        mapped=columns.as_dict()["mapped"],
    )
    return columns


def clear_probe_cache() -> None:
    _probe_cache.clear()


def _col(name: str | None, alias: str) -> str:
    if name is None:
        return f"NULL AS {alias}"
    return f'mi."{name}" AS {alias}'


def build_market_item_query(columns: MarketItemColumns) -> TextClause:
    """
    Build the movers lookup for a detected market_items shape.

    Binds: canonical_ids (expanding), currency, from_date.

    Per matched market item returns the current price (to_*) and one daily
    snapshot (from_*): the latest on or before from_date, otherwise the
    oldest available.
    """
    if not columns.is_usable:
        raise ValueError(f"market_items lacks required columns: {', '.join(columns.missing_required)}")

    select_list = ",\n            ".join([
        f'CAST(mi."{columns.id}" AS TEXT) AS market_item_id',
        f'mi."{columns.game}" AS game',
        f'CAST(mi."{columns.canonical_id}" AS TEXT) AS canonical_id',
        _col(columns.canonical_source, "canonical_source"),
        _col(columns.display_name, "display_name"),
        _col(columns.set_name, "set_name"),
        _col(columns.number, "number"),
        _col(columns.image_url, "image_url"),
    ])

    sql = f"""
        WITH items AS (
            SELECT
            {select_list}
            FROM {MARKET_ITEMS_TABLE} mi
            WHERE CAST(mi."{columns.canonical_id}" AS TEXT) IN :canonical_ids
        ),
        from_ranked AS (
            SELECT
                CAST(d.market_item_id AS TEXT) AS market_item_id,
                d.as_of_date,
                d.value_cents,
                ROW_NUMBER() OVER (
                    PARTITION BY d.market_item_id
                    ORDER BY
                        CASE WHEN d.as_of_date <= :from_date THEN 0 ELSE 1 END,
                        CASE WHEN d.as_of_date <= :from_date THEN d.as_of_date END DESC,
                        d.as_of_date ASC
                ) AS rn
            FROM market_price_daily d
            WHERE d.currency = :currency
              AND CAST(d.market_item_id AS TEXT) IN (SELECT market_item_id FROM items)
        )
        SELECT
            i.market_item_id,
            i.game,
            i.canonical_id,
            i.canonical_source,
            i.display_name,
            i.set_name,
            i.number,
            i.image_url,
            c.price_cents AS to_cents,
            c.as_of_date AS to_date,
            c.source AS to_source,
            c.price_type AS to_price_type,
            f.value_cents AS from_cents,
            f.as_of_date AS from_date
        FROM items i
        LEFT JOIN market_prices_current c
            ON CAST(c.market_item_id AS TEXT) = i.market_item_id
           AND c.currency = :currency
        LEFT JOIN from_ranked f
            ON f.market_item_id = i.market_item_id
           AND f.rn = 1
        ORDER BY i.canonical_id, i.market_item_id
    """

    return (
        text(sql)
        .bindparams(
            bindparam("canonical_ids", expanding=True),
            bindparam("from_date", type_=Date),
        )
        .columns(
            to_cents=Integer,
            from_cents=Integer,
            to_date=Date,
            from_date=Date,
            number=String,
        )
    )
