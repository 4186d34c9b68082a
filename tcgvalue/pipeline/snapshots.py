"""
TCG Value — TCGdex Daily Price Snapshots

Pages through tcgdex_cards by id and writes one row per card per currency
into tcgdex_price_snapshots_daily for the day.

USD comes from pricing.tcgplayer: the first bucket in preferred order that
has marketPrice → midPrice → mean(lowPrice, highPrice).
EUR comes from pricing.cardmarket: trend → avg30 → avg7 → avg → holo
variants → avg1 → low.
If only one side exists, complete_currency derives the other when an FX
rate is configured; derived rows are flagged.

Per-card failures are counted and logged; they never abort the page.
Resume with next_start_after_id.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Mapping

import structlog
from sqlalchemy import JSON, Boolean, Date, bindparam, select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tcgvalue.config import settings
from tcgvalue.engine.price_fields import PriceField, dollars_to_cents
from tcgvalue.models.vendor_prices import TcgdexCard
from tcgvalue.utils.forex import complete_currency

logger = structlog.get_logger(__name__)

MAX_ERROR_ROWS = 50

TCGPLAYER_BUCKET_ORDER = (
    "normal",
    "reverse-holofoil",
    "holofoil",
    "unlimited",
    "1st-edition",
    "unlimited-holofoil",
    "1st-edition-holofoil",
)

# Keys inside pricing.tcgplayer that are metadata, not price buckets.
TCGPLAYER_META_KEYS = {"updated", "unit"}

MARKET = PriceField("marketPrice", ("marketPrice", "market"))
MID = PriceField("midPrice", ("midPrice", "mid"))
LOW = PriceField("lowPrice", ("lowPrice", "low"))
HIGH = PriceField("highPrice", ("highPrice", "high"))

CARDMARKET_EUR = PriceField(
    "cardmarket",
    (
        "trend", "avg30", "avg7", "avg",
        "trend-holo", "avg30-holo", "avg7-holo", "avg-holo",
        "avg1", "avg1-holo", "low", "low-holo",
    ),
)

_UPSERT_SNAPSHOT = text("""
    INSERT INTO tcgdex_price_snapshots_daily (
        card_id, as_of_date, currency, market_price_cents, derived, raw_json
    ) VALUES (
        :card_id, :as_of_date, :currency, :market_price_cents, :derived, :raw_json
    )
    ON CONFLICT (card_id, as_of_date, currency) DO UPDATE SET
        market_price_cents = EXCLUDED.market_price_cents,
        derived = EXCLUDED.derived,
        raw_json = EXCLUDED.raw_json,
        updated_at = CURRENT_TIMESTAMP
""").bindparams(
    bindparam("as_of_date", type_=Date),
    bindparam("derived", type_=Boolean),
    bindparam("raw_json", type_=JSON),
)


@dataclass
class SnapshotRunStats:
    as_of_date: date
    dry_run: bool = False
    processed: int = 0
    wrote_rows: int = 0
    wrote_cards: int = 0
    derived_rows: int = 0
    errors: int = 0
    error_rows: list[dict[str, str]] = field(default_factory=list)
    skipped: dict[str, int] = field(default_factory=dict)
    next_start_after_id: str | None = None

    def skip(self, reason: str) -> None:
        self.skipped[reason] = self.skipped.get(reason, 0) + 1

    def as_dict(self) -> dict[str, Any]:
        return {
            "as_of_date": self.as_of_date.isoformat(),
            "dry_run": self.dry_run,
            "processed": self.processed,
            "wrote_rows": self.wrote_rows,
            "wrote_cards": self.wrote_cards,
            "derived_rows": self.derived_rows,
            "errors": self.errors,
            "error_rows": self.error_rows,
            "skipped": self.skipped,
            "next_start_after_id": self.next_start_after_id,
        }


def tcgplayer_bucket_usd(bucket: Mapping[str, Any] | None) -> Decimal | None:
    """marketPrice → midPrice → (low + high) / 2, in dollars."""
    if not isinstance(bucket, Mapping):
        return None
    for price_field in (MARKET, MID):
        cents = price_field.cents(bucket)
        if cents is not None:
            return Decimal(cents) / Decimal(100)
    low, high = LOW.amount(bucket), HIGH.amount(bucket)
    if low is not None and high is not None and low > 0 and high > 0:
        return (low + high) / Decimal(2)
    return None


def pick_usd(tcgplayer: Mapping[str, Any] | None) -> tuple[Decimal, str] | None:
    """(amount, bucket) from the first usable bucket in preferred order."""
    if not isinstance(tcgplayer, Mapping):
        return None
    others = sorted(
        key for key in tcgplayer
        if key not in TCGPLAYER_BUCKET_ORDER and key not in TCGPLAYER_META_KEYS
    )
    for name in (*TCGPLAYER_BUCKET_ORDER, *others):
        amount = tcgplayer_bucket_usd(tcgplayer.get(name))
        if amount is not None:
            return amount, name
    return None


def pick_eur(cardmarket: Mapping[str, Any] | None) -> Decimal | None:
    if not isinstance(cardmarket, Mapping):
        return None
    cents = CARDMARKET_EUR.cents(cardmarket)
    if cents is None:
        return None
    return Decimal(cents) / Decimal(100)


def _parse_raw(raw: Any) -> dict[str, Any] | None:
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, (str, bytes)):
        try:
            parsed = json.loads(raw)
        except ValueError:
            return None
        return parsed if isinstance(parsed, dict) else None
    return None


class TcgdexSnapshotWriter:
    """
    Writes daily USD/EUR snapshots from raw TCGdex payloads.

    Usage:
        writer = TcgdexSnapshotWriter(session_factory)
        stats = await writer.run(limit=500, start_after_id=None)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        usd_to_eur: Decimal | None = None,
        eur_to_usd: Decimal | None = None,
    ):
        self.session_factory = session_factory
        self.usd_to_eur = usd_to_eur
        self.eur_to_usd = eur_to_usd

    async def run(
        self,
        limit: int | None = None,
        start_after_id: str | None = None,
        dry_run: bool = False,
        as_of_date: date | None = None,
    ) -> SnapshotRunStats:
        limit = settings.SNAPSHOT_BATCH_LIMIT if limit is None else limit
        limit = max(1, min(int(limit), settings.SNAPSHOT_MAX_BATCH_LIMIT))
        as_of = as_of_date or datetime.now(timezone.utc).date()
        stats = SnapshotRunStats(as_of_date=as_of, dry_run=dry_run)

        async with self.session_factory() as session:
            stmt = select(TcgdexCard.id, TcgdexCard.raw_json).order_by(TcgdexCard.id).limit(limit)
            if start_after_id:
                stmt = stmt.where(TcgdexCard.id > start_after_id)
            cards = (await session.execute(stmt)).all()

            for card_id, raw in cards:
                stats.processed += 1
                stats.next_start_after_id = card_id
                await self._snapshot_card(session, card_id, raw, as_of, stats)

            if not dry_run:
                await session.commit()

        summary = stats.as_dict()
        summary.pop("error_rows")
        logger.info("tcgdex_snapshots_complete", **summary)
        return stats

    async def _snapshot_card(
        self,
        session: AsyncSession,
        card_id: str | None,
        raw: Any,
        as_of: date,
        stats: SnapshotRunStats,
    ) -> None:
        if not card_id or raw is None:
            stats.skip("missing_card_or_raw")
            return

        payload = _parse_raw(raw)
        if payload is None:
            stats.skip("raw_not_parseable")
            return

        pricing = payload.get("pricing") or {}
        if not isinstance(pricing, Mapping):
            pricing = {}
        usd_hit = pick_usd(pricing.get("tcgplayer"))
        eur = pick_eur(pricing.get("cardmarket"))

        pair = complete_currency(
            usd_hit[0] if usd_hit else None,
            eur,
            usd_to_eur=self.usd_to_eur,
            eur_to_usd=self.eur_to_usd,
        )
        rows = [(cur, amount) for cur, amount in (("USD", pair.usd), ("EUR", pair.eur)) if amount is not None]
        if not rows:
            stats.skip("no_usd_no_eur")
            return

        wrote = 0
        for currency, amount in rows:
            cents = dollars_to_cents(amount)
            if cents <= 0:
                continue
            derived = pair.derived and pair.derived_currency == currency
            if not stats.dry_run:
                try:
                    async with session.begin_nested():
                        await session.execute(
                            _UPSERT_SNAPSHOT,
                            {
                                "card_id": card_id,
                                "as_of_date": as_of,
                                "currency": currency,
                                "market_price_cents": cents,
                                "derived": derived,
                                "raw_json": {
                                    "tcgplayer_bucket": usd_hit[1] if usd_hit else None,
                                    "pricing": pricing,
                                },
                            },
                        )
                except Exception as e:
                    stats.errors += 1
                    if len(stats.error_rows) < MAX_ERROR_ROWS:
                        stats.error_rows.append({"card_id": card_id, "currency": currency, "error": str(e)})
                    logger.warning(
                        "tcgdex_snapshot_row_failed",
                        card_id=card_id,
                        currency=currency,
                        error=str(e),
                    )
                    continue
            wrote += 1
            stats.wrote_rows += 1
            if derived:
                stats.derived_rows += 1

        if wrote:
            stats.wrote_cards += 1
