"""
Tests for pipeline/snapshots.py — TCGdex daily price snapshots.

Covers:
- USD bucket order and marketPrice → midPrice → mean(low, high)
- Cardmarket EUR candidate order
- FX completion flagged as derived
- Skip reasons, dry run, resume cursor
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tcgvalue.models import TcgdexCard, TcgdexPriceSnapshot
from tcgvalue.pipeline.snapshots import TcgdexSnapshotWriter, pick_eur, pick_usd, tcgplayer_bucket_usd


CARD_BOTH_CURRENCIES = {
    "id": "sv3-125",
    "pricing": {
        "tcgplayer": {
            "updated": "2026-10-18T20:00:00Z",
            "unit": "USD",
            "holofoil": {"marketPrice": 3.0},
            "normal": {"lowPrice": 1.0, "midPrice": 1.5, "marketPrice": None},
        },
        "cardmarket": {"unit": "EUR", "avg30": 1.1, "trend": 1.2},
    },
}

CARD_USD_ONLY = {
    "id": "sv3-126",
    "pricing": {"tcgplayer": {"reverse-holofoil": {"lowPrice": 1.0, "highPrice": 2.0}}},
}


async def _seed(session: AsyncSession, cards: dict[str, object]) -> None:
    session.add_all([TcgdexCard(id=card_id, raw_json=raw) for card_id, raw in cards.items()])
    await session.commit()


async def _snapshots(session_factory) -> list[TcgdexPriceSnapshot]:
    async with session_factory() as session:
        stmt = select(TcgdexPriceSnapshot).order_by(TcgdexPriceSnapshot.card_id, TcgdexPriceSnapshot.currency)
        return list((await session.scalars(stmt)).all())


# ---------------------------------------------------------------------------
# Price picking (pure)
# ---------------------------------------------------------------------------


class TestPickUsd:

    def test_bucket_order(self) -> None:
        assert pick_usd(CARD_BOTH_CURRENCIES["pricing"]["tcgplayer"]) == (Decimal("1.5"), "normal")

    def test_mean_of_low_high(self) -> None:
        assert tcgplayer_bucket_usd({"lowPrice": 1.0, "highPrice": 2.0}) == Decimal("1.5")
        assert tcgplayer_bucket_usd({"lowPrice": 1.0}) is None

    def test_unknown_bucket_used_last(self) -> None:
        tcgplayer = {"unit": "USD", "shadowless": {"marketPrice": 40}, "normal": {}}
        assert pick_usd(tcgplayer) == (Decimal("40"), "shadowless")

    def test_nothing_usable(self) -> None:
        assert pick_usd({"updated": "2026-10-18", "normal": {"marketPrice": 0}}) is None
        assert pick_usd(None) is None


class TestPickEur:

    def test_trend_first(self) -> None:
        assert pick_eur({"avg30": 1.1, "trend": 1.2}) == Decimal("1.2")

    def test_holo_fallback(self) -> None:
        assert pick_eur({"trend": 0, "trend-holo": "2.50"}) == Decimal("2.5")

    def test_missing(self) -> None:
        assert pick_eur({}) is None
        assert pick_eur("not a dict") is None


# ---------------------------------------------------------------------------
# Writer
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_writes_both_currencies(db_session: AsyncSession, session_factory, today: date) -> None:
    await _seed(db_session, {"sv3-125": CARD_BOTH_CURRENCIES})

    stats = await TcgdexSnapshotWriter(session_factory).run(as_of_date=today)

    assert stats.processed == 1
    assert stats.wrote_cards == 1
    assert stats.wrote_rows == 2
    assert stats.derived_rows == 0

    eur, usd = await _snapshots(session_factory)
    assert (eur.currency, eur.market_price_cents, eur.derived) == ("EUR", 120, False)
    assert (usd.currency, usd.market_price_cents, usd.derived) == ("USD", 150, False)
    assert usd.as_of_date == today
    assert usd.raw_json["tcgplayer_bucket"] == "normal"
    assert usd.raw_json["pricing"]["cardmarket"]["trend"] == 1.2


@pytest.mark.asyncio
async def test_missing_currency_derived_with_rate(db_session: AsyncSession, session_factory, today: date) -> None:
    await _seed(db_session, {"sv3-126": CARD_USD_ONLY})

    stats = await TcgdexSnapshotWriter(session_factory, usd_to_eur=Decimal("0.9")).run(as_of_date=today)

    assert stats.derived_rows == 1
    eur, usd = await _snapshots(session_factory)
    assert (eur.market_price_cents, eur.derived) == (135, True)
    assert (usd.market_price_cents, usd.derived) == (150, False)


@pytest.mark.asyncio
async def test_missing_currency_without_rate(db_session: AsyncSession, session_factory, today: date) -> None:
    await _seed(db_session, {"sv3-126": CARD_USD_ONLY})

    stats = await TcgdexSnapshotWriter(session_factory).run(as_of_date=today)

    assert stats.wrote_rows == 1
    [usd] = await _snapshots(session_factory)
    assert usd.currency == "USD"


@pytest.mark.asyncio
async def test_skip_reasons(db_session: AsyncSession, session_factory, today: date) -> None:
    await _seed(db_session, {
        "a-null": None,
        "b-garbage": "not json",
        "c-no-prices": {"id": "c-no-prices", "pricing": {"tcgplayer": {"normal": {}}}},
        "d-list": [1, 2, 3],
    })

    stats = await TcgdexSnapshotWriter(session_factory).run(as_of_date=today)

    assert stats.processed == 4
    assert stats.wrote_rows == 0
    assert stats.skipped == {
        "missing_card_or_raw": 1,
        "raw_not_parseable": 2,
        "no_usd_no_eur": 1,
    }
    assert await _snapshots(session_factory) == []


@pytest.mark.asyncio
async def test_rerun_same_day_upserts(db_session: AsyncSession, session_factory, today: date) -> None:
    await _seed(db_session, {"sv3-125": CARD_BOTH_CURRENCIES})
    writer = TcgdexSnapshotWriter(session_factory)

    await writer.run(as_of_date=today)
    await writer.run(as_of_date=today)

    assert len(await _snapshots(session_factory)) == 2


@pytest.mark.asyncio
async def test_dry_run_writes_nothing(db_session: AsyncSession, session_factory, today: date) -> None:
    await _seed(db_session, {"sv3-125": CARD_BOTH_CURRENCIES})

    stats = await TcgdexSnapshotWriter(session_factory).run(dry_run=True, as_of_date=today)

    assert stats.dry_run is True
    assert stats.wrote_rows == 2
    assert await _snapshots(session_factory) == []


@pytest.mark.asyncio
async def test_paging_with_cursor(db_session: AsyncSession, session_factory, today: date) -> None:
    await _seed(db_session, {
        "sv3-125": CARD_BOTH_CURRENCIES,
        "sv3-126": CARD_USD_ONLY,
        "sv3-127": CARD_USD_ONLY,
    })
    writer = TcgdexSnapshotWriter(session_factory)

    first = await writer.run(limit=2, as_of_date=today)
    assert first.processed == 2
    assert first.next_start_after_id == "sv3-126"

    second = await writer.run(limit=2, start_after_id=first.next_start_after_id, as_of_date=today)
    assert second.processed == 1
    assert second.next_start_after_id == "sv3-127"

    assert {s.card_id for s in await _snapshots(session_factory)} == {"sv3-125", "sv3-126", "sv3-127"}
