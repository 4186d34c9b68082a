"""
Tests for pipeline/revalue.py — Revaluation Pipeline.

Covers:
- unit price × quantity persisted on the item, the valuation and the portfolio
- same-day reruns overwrite instead of duplicating
- unsupported games and misses are counted, not fatal
- a resolver exception on one item leaves the rest of the run intact
- empty users still get a portfolio row (NULL P&L)
- a write failure rolls back and surfaces as RevalueError
- chunked transactions
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tcgvalue.config import Confidence
from tcgvalue.engine.resolver import PriceObservation, PriceResolver
from tcgvalue.models import (
    CollectionItem,
    MtgEffectivePrice,
    PortfolioDailyValuation,
    TcgplayerPokemonPrice,
    ValuationRecord,
    YgoCardPrice,
)
from tcgvalue.pipeline.revalue import RevaluationPipeline, RevalueError


def _item(user_id: str, game: str, card_id: str, quantity: int = 1, **kwargs) -> CollectionItem:
    return CollectionItem(user_id=user_id, game=game, card_id=card_id, quantity=quantity, **kwargs)


async def _seed_charizard(db_session: AsyncSession, user_id: str = "u1") -> CollectionItem:
    item = _item(user_id, "pokemon", "sv3-125", quantity=4, variant_type="holofoil", cost_cents=100)
    db_session.add_all([
        item,
        TcgplayerPokemonPrice(card_id="sv3-125", variant_type="holofoil", holofoil="2.50"),
    ])
    await db_session.commit()
    return item


async def _portfolio(session_factory: async_sessionmaker[AsyncSession], user_id: str) -> PortfolioDailyValuation | None:
    async with session_factory() as session:
        return await session.scalar(
            select(PortfolioDailyValuation).where(PortfolioDailyValuation.user_id == user_id)
        )


async def _valuations(session_factory: async_sessionmaker[AsyncSession]) -> list[ValuationRecord]:
    async with session_factory() as session:
        return list((await session.scalars(select(ValuationRecord))).all())


async def _last_value(session_factory: async_sessionmaker[AsyncSession], item_id: str) -> int | None:
    async with session_factory() as session:
        return await session.scalar(
            select(CollectionItem.last_value_cents).where(CollectionItem.id == item_id)
        )


# ---------------------------------------------------------------------------
# Single user
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_run_for_user_values_item(db_session: AsyncSession, session_factory, today: date) -> None:
    item = await _seed_charizard(db_session)

    result = await RevaluationPipeline(session_factory).run_for_user("u1", as_of_date=today)

    assert result.ok is True
    assert result.updated_items == 1
    assert result.skipped_no_price == 0
    assert result.users == 1
    assert await _last_value(session_factory, item.id) == 1000

    [valuation] = await _valuations(session_factory)
    assert valuation.item_id == item.id
    assert valuation.as_of_date == today
    assert valuation.value_cents == 1000
    assert valuation.source == "tcg_card_prices_tcgplayer:holofoil"
    assert valuation.confidence == Confidence.VARIANT_COLUMN.value
    assert valuation.meta["unit_price_cents"] == 250
    assert valuation.meta["quantity"] == 4
    assert valuation.meta["variant_type"] == "holofoil"

    portfolio = await _portfolio(session_factory, "u1")
    assert portfolio.total_quantity == 4
    assert portfolio.distinct_items == 1
    assert portfolio.total_cost_cents == 400
    assert portfolio.total_value_cents == 1000
    assert portfolio.unrealized_pnl_cents == 600
    assert portfolio.realized_pnl_cents is None
    assert portfolio.breakdown == {
        "byGame": {
            "pokemon": {
                "totalQuantity": 4,
                "distinctItems": 1,
                "totalCostCents": 400,
                "totalValueCents": 1000,
            }
        }
    }


@pytest.mark.asyncio
async def test_same_day_rerun_overwrites(db_session: AsyncSession, session_factory, today: date) -> None:
    await _seed_charizard(db_session)
    pipeline = RevaluationPipeline(session_factory)

    await pipeline.run_for_user("u1", as_of_date=today)
    await pipeline.run_for_user("u1", as_of_date=today)

    assert len(await _valuations(session_factory)) == 1
    async with session_factory() as session:
        rows = await session.scalar(select(func.count()).select_from(PortfolioDailyValuation))
    assert rows == 1


@pytest.mark.asyncio
async def test_new_day_adds_rows(db_session: AsyncSession, session_factory, today: date) -> None:
    await _seed_charizard(db_session)
    pipeline = RevaluationPipeline(session_factory)

    await pipeline.run_for_user("u1", as_of_date=date(2026, 10, 18))
    await pipeline.run_for_user("u1", as_of_date=today)

    assert sorted(v.as_of_date for v in await _valuations(session_factory)) == [date(2026, 10, 18), today]


@pytest.mark.asyncio
async def test_skips_are_counted(db_session: AsyncSession, session_factory, today: date) -> None:
    db_session.add_all([
        _item("u1", "lorcana", "tfc-1"),
        _item("u1", "mtg", "no-price-row"),
        _item("u1", "Yu-Gi-Oh!", "89631139", quantity=3, cost_cents=10),
        YgoCardPrice(card_id="89631139", tcgplayer_price=Decimal("0.75")),
    ])
    await db_session.commit()

    result = await RevaluationPipeline(session_factory).run_for_user("u1", as_of_date=today)

    assert result.updated_items == 1
    assert result.skipped_unsupported_game == 1
    assert result.skipped_no_price == 1

    portfolio = await _portfolio(session_factory, "u1")
    # Only valued items count toward the aggregates.
    assert portfolio.total_quantity == 3
    assert portfolio.total_value_cents == 225
    assert portfolio.total_cost_cents == 30
    assert list(portfolio.breakdown["byGame"]) == ["yugioh"]


@pytest.mark.asyncio
async def test_resolver_error_isolated(db_session: AsyncSession, session_factory, today: date) -> None:
    db_session.add_all([
        _item("u1", "mtg", "boom"),
        _item("u1", "mtg", "fine", quantity=2),
    ])
    await db_session.commit()

    async def flaky(self, game, card_id, variant=None):
        if card_id == "boom":
            raise RuntimeError("bad row")
        return PriceObservation.from_cents(150, "USD", "test:price", Confidence.MARKET_OR_MID)

    with patch.object(PriceResolver, "resolve", flaky):
        result = await RevaluationPipeline(session_factory).run_for_user("u1", as_of_date=today)

    assert result.ok is True
    assert result.updated_items == 1
    assert result.skipped_no_price == 1
    assert (await _portfolio(session_factory, "u1")).total_value_cents == 300


@pytest.mark.asyncio
async def test_empty_user_gets_zero_row(session_factory, today: date) -> None:
    result = await RevaluationPipeline(session_factory).run_for_user("ghost", as_of_date=today)

    assert result.ok is True
    assert result.updated_items == 0
    portfolio = await _portfolio(session_factory, "ghost")
    assert portfolio is not None
    assert portfolio.total_value_cents == 0
    assert portfolio.distinct_items == 0
    assert portfolio.unrealized_pnl_cents is None
    assert portfolio.breakdown == {"byGame": {}}


@pytest.mark.asyncio
async def test_nothing_priced_has_null_pnl(db_session: AsyncSession, session_factory, today: date) -> None:
    db_session.add(_item("u1", "mtg", "no-price-row", cost_cents=500))
    await db_session.commit()

    await RevaluationPipeline(session_factory).run_for_user("u1", as_of_date=today)

    portfolio = await _portfolio(session_factory, "u1")
    assert portfolio.total_cost_cents == 0
    assert portfolio.unrealized_pnl_cents is None


@pytest.mark.asyncio
async def test_item_cap(db_session: AsyncSession, session_factory, today: date) -> None:
    db_session.add_all([_item("u1", "mtg", f"card-{n}") for n in range(3)])
    db_session.add_all([MtgEffectivePrice(scryfall_id=f"card-{n}", effective_usd=Decimal("1.00")) for n in range(3)])
    await db_session.commit()

    result = await RevaluationPipeline(session_factory, max_items_per_user=2).run_for_user("u1", as_of_date=today)

    assert result.updated_items == 2


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_write_failure_rolls_back(db_session: AsyncSession, session_factory, today: date) -> None:
    item = await _seed_charizard(db_session)
    failure = OperationalError("INSERT INTO user_collection_daily_valuations", {}, Exception("disk I/O error"))

    with patch.object(RevaluationPipeline, "_upsert_portfolio", AsyncMock(side_effect=failure)):
        with pytest.raises(RevalueError) as exc_info:
            await RevaluationPipeline(session_factory).run_for_user("u1", as_of_date=today)

    assert exc_info.value.result.ok is False
    assert exc_info.value.result.updated_items == 1
    assert await _valuations(session_factory) == []
    assert await _last_value(session_factory, item.id) is None


# ---------------------------------------------------------------------------
# Full run
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.parametrize("users_per_transaction", [0, 1])
async def test_run_full(
    db_session: AsyncSession, session_factory, today: date, users_per_transaction: int
) -> None:
    await _seed_charizard(db_session, "u1")
    db_session.add_all([
        _item("u2", "magic", "c-1", quantity=2),
        _item("u2", "mtg", "c-missing"),
        MtgEffectivePrice(scryfall_id="c-1", effective_usd=Decimal("1.25")),
    ])
    await db_session.commit()

    result = await RevaluationPipeline(
        session_factory, users_per_transaction=users_per_transaction
    ).run_full(as_of_date=today)

    assert result.ok is True
    assert result.users == 2
    assert result.updated_items == 2
    assert result.skipped_no_price == 1

    assert (await _portfolio(session_factory, "u1")).total_value_cents == 1000
    assert (await _portfolio(session_factory, "u2")).total_value_cents == 250
