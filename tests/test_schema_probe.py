"""Tests for engine/schema_probe.py — market_items column detection."""

from __future__ import annotations

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from tcgvalue.engine.schema_probe import (
    MarketItemColumns,
    build_market_item_query,
    detect_market_item_columns,
    get_market_item_columns,
    probe_table_columns,
)


# ---------------------------------------------------------------------------
# Detection (pure)
# ---------------------------------------------------------------------------


class TestDetectColumns:

    def test_canonical_names(self) -> None:
        cols = detect_market_item_columns(
            ["id", "game", "canonical_id", "canonical_source", "display_name", "set_name", "number", "image_url"]
        )
        assert cols.is_usable
        assert cols.game == "game"
        assert cols.display_name == "display_name"

    def test_aliases_case_insensitive(self) -> None:
        cols = detect_market_item_columns(["ID", "Category", "canonical_id", "Title", "set", "collector_number"])

        assert cols.id == "ID"
        assert cols.game == "Category"
        assert cols.display_name == "Title"
        assert cols.set_name == "set"
        assert cols.number == "collector_number"
        assert cols.image_url is None
        assert cols.is_usable

    def test_preferred_alias_wins(self) -> None:
        cols = detect_market_item_columns(["id", "category", "game", "canonical_id", "title", "name"])
        assert cols.game == "game"
        assert cols.display_name == "name"

    def test_missing_required(self) -> None:
        cols = detect_market_item_columns(["id", "name"])
        assert cols.missing_required == ("game", "canonical_id")
        assert not cols.is_usable

    def test_as_dict(self) -> None:
        cols = detect_market_item_columns(["id", "game", "canonical_id"])
        data = cols.as_dict()
        assert data["available"] == ["canonical_id", "game", "id"]
        assert data["mapped"]["display_name"] is None


class TestBuildQuery:

    def test_unusable_columns_rejected(self) -> None:
        with pytest.raises(ValueError, match="canonical_id"):
            build_market_item_query(MarketItemColumns(id="id", game="game"))

    def test_absent_optionals_select_null(self) -> None:
        query = build_market_item_query(detect_market_item_columns(["id", "category", "canonical_id"]))
        sql = str(query)

        assert 'mi."category" AS game' in sql
        assert "NULL AS display_name" in sql
        assert "NULL AS image_url" in sql


# ---------------------------------------------------------------------------
# Probing a live database
# ---------------------------------------------------------------------------


async def _create_market_items(session: AsyncSession, columns_sql: str) -> None:
    await session.execute(text(f"CREATE TABLE market_items ({columns_sql})"))
    await session.commit()


@pytest.mark.asyncio
async def test_probe_missing_table(db_session: AsyncSession) -> None:
    assert await probe_table_columns(db_session, "market_items") == set()


@pytest.mark.asyncio
async def test_probe_existing_table(db_session: AsyncSession) -> None:
    await _create_market_items(db_session, "id TEXT PRIMARY KEY, category TEXT, canonical_id TEXT, name TEXT")

    assert await probe_table_columns(db_session, "market_items") == {"id", "category", "canonical_id", "name"}


@pytest.mark.asyncio
async def test_probe_is_cached_until_forced(db_session: AsyncSession) -> None:
    before = await get_market_item_columns(db_session)
    assert not before.is_usable

    await _create_market_items(db_session, "id TEXT PRIMARY KEY, game TEXT, canonical_id TEXT")

    assert await get_market_item_columns(db_session) is before
    refreshed = await get_market_item_columns(db_session, force=True)
    assert refreshed.is_usable


@pytest.mark.asyncio
async def test_probe_zero_ttl_always_refreshes(db_session: AsyncSession) -> None:
    await get_market_item_columns(db_session, ttl_seconds=0)
    await _create_market_items(db_session, "id TEXT PRIMARY KEY, game TEXT, canonical_id TEXT")

    assert (await get_market_item_columns(db_session, ttl_seconds=0)).is_usable
