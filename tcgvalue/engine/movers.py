"""
TCG Value — Portfolio Movers

Which of a user's holdings moved the most over the last N days?

For each (game, card) the user holds:
    to   = market_prices_current.price_cents (USD)
    from = market_price_daily on or before today − N days; if the card has
           no snapshot that old, its oldest snapshot
    delta_each  = to − from
    delta_total = delta_each × quantity
    change_pct  = (to − from) / from × 100   (None when from is 0)

Rows missing either price are dropped. The rest are ranked by
|delta_total| descending and truncated to `limit`.

Holdings map to market_items by canonical_id; see schema_probe for how the
catalog's drifting column names are handled.
"""

from __future__ import annotations

import csv
import io
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tcgvalue.config import Game, settings
from tcgvalue.engine.schema_probe import (
    MarketItemColumns,
    build_market_item_query,
    get_market_item_columns,
)
from tcgvalue.models.collection_item import CollectionItem
from tcgvalue.utils.normalize import normalize_game

logger = structlog.get_logger(__name__)

CSV_COLUMNS = (
    "game",
    "canonical_id",
    "display_name",
    "set_name",
    "number",
    "image_url",
    "quantity",
    "from_usd",
    "to_usd",
    "change_pct",
    "delta_each_usd",
    "delta_total_usd",
    "from_date",
    "to_date",
    "to_source",
    "to_price_type",
)


class MoversUnavailableError(RuntimeError):
    """market_items is missing a column movers cannot work without."""

    def __init__(self, reason: str, columns: MarketItemColumns):
        super().__init__(reason)
        self.reason = reason
        self.columns = columns


def _usd(cents: int | None) -> Decimal | None:
    if cents is None:
        return None
    return (Decimal(cents) / Decimal(100)).quantize(Decimal("0.01"))


def percent_change(from_cents: int | None, to_cents: int | None) -> Decimal | None:
    """Percent change, 2dp half-up. None when either side is missing or from is 0."""
    if from_cents is None or to_cents is None or from_cents == 0:
        return None
    pct = (Decimal(to_cents) - Decimal(from_cents)) / Decimal(from_cents) * Decimal(100)
    return pct.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class MoverRow:
    game: str
    canonical_id: str
    quantity: int
    from_cents: int
    to_cents: int
    from_date: date | None
    to_date: date | None
    display_name: str | None = None
    set_name: str | None = None
    number: str | None = None
    image_url: str | None = None
    to_source: str | None = None
    to_price_type: str | None = None

    @property
    def delta_each_cents(self) -> int:
        return self.to_cents - self.from_cents

    @property
    def delta_total_cents(self) -> int:
        return self.delta_each_cents * self.quantity

    @property
    def change_pct(self) -> Decimal | None:
        return percent_change(self.from_cents, self.to_cents)

    def as_dict(self) -> dict[str, Any]:
        pct = self.change_pct
        return {
            "game": self.game,
            "canonical_id": self.canonical_id,
            "display_name": self.display_name,
            "set_name": self.set_name,
            "number": self.number,
            "image_url": self.image_url,
            "quantity": self.quantity,
            "from_usd": float(_usd(self.from_cents)),
            "to_usd": float(_usd(self.to_cents)),
            "change_pct": float(pct) if pct is not None else None,
            "delta_each_usd": float(_usd(self.delta_each_cents)),
            "delta_total_usd": float(_usd(self.delta_total_cents)),
            "from_date": self.from_date.isoformat() if self.from_date else None,
            "to_date": self.to_date.isoformat() if self.to_date else None,
            "to_source": self.to_source,
            "to_price_type": self.to_price_type,
        }

    def csv_values(self) -> list[str]:
        pct = self.change_pct
        values: dict[str, Any] = {
            "game": self.game,
            "canonical_id": self.canonical_id,
            "display_name": self.display_name,
            "set_name": self.set_name,
            "number": self.number,
            "image_url": self.image_url,
            "quantity": self.quantity,
            "from_usd": _usd(self.from_cents),
            "to_usd": _usd(self.to_cents),
            "change_pct": pct,
            "delta_each_usd": _usd(self.delta_each_cents),
            "delta_total_usd": _usd(self.delta_total_cents),
            "from_date": self.from_date.isoformat() if self.from_date else None,
            "to_date": self.to_date.isoformat() if self.to_date else None,
            "to_source": self.to_source,
            "to_price_type": self.to_price_type,
        }
        return ["" if values[col] is None else str(values[col]) for col in CSV_COLUMNS]


@dataclass
class MoversReport:
    user_id: str
    window_days: int
    limit: int
    currency: str
    as_of_date: date
    from_target_date: date
    rows: list[MoverRow] = field(default_factory=list)
    input_items: int = 0
    matched_rows: int = 0

    @property
    def returned_rows(self) -> int:
        return len(self.rows)

    def as_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "window_days": self.window_days,
            "limit": self.limit,
            "currency": self.currency,
            "as_of_date": self.as_of_date.isoformat(),
            "from_target_date": self.from_target_date.isoformat(),
            "rows": [row.as_dict() for row in self.rows],
            "debug": {
                "input_items": self.input_items,
                "matched_rows": self.matched_rows,
                "returned_rows": self.returned_rows,
            },
        }


def clamp_window(window_days: int | None, limit: int | None) -> tuple[int, int]:
    """Clamp to 1..MOVERS_MAX_DAYS and 1..MOVERS_MAX_LIMIT; None → defaults."""
    days = settings.MOVERS_DEFAULT_DAYS if window_days is None else int(window_days)
    lim = settings.MOVERS_DEFAULT_LIMIT if limit is None else int(limit)
    days = max(1, min(days, settings.MOVERS_MAX_DAYS))
    lim = max(1, min(lim, settings.MOVERS_MAX_LIMIT))
    return days, lim


async def load_holdings(session: AsyncSession, user_id: str) -> OrderedDict[tuple[Game, str], int]:
    """
    (game, card_id) → total quantity across variants, grades and folders.

    Unknown games, blank ids and non-positive quantities are dropped.
    """
    stmt = (
        select(CollectionItem.game, CollectionItem.card_id, CollectionItem.quantity)
        .where(CollectionItem.user_id == user_id)
        .order_by(CollectionItem.created_at, CollectionItem.id)
        .limit(settings.MOVERS_MAX_HOLDINGS)
    )
    holdings: OrderedDict[tuple[Game, str], int] = OrderedDict()
    for game_label, card_id, quantity in (await session.execute(stmt)).all():
        game = normalize_game(game_label)
        card_id = (card_id or "").strip()
        if game is None or not card_id or not quantity or quantity <= 0:
            continue
        key = (game, card_id)
        holdings[key] = holdings.get(key, 0) + int(quantity)
    return holdings


async def compute_movers(
    session: AsyncSession,
    user_id: str,
    window_days: int | None = None,
    limit: int | None = None,
    today: date | None = None,
) -> MoversReport:
    """
    Rank a user's holdings by absolute value change over the window.

    Raises:
        MoversUnavailableError: market_items lacks id/game/canonical_id.
    """
    days, lim = clamp_window(window_days, limit)
    today = today or datetime.now(timezone.utc).date()
    from_target = today - timedelta(days=days)
    currency = settings.MOVERS_CURRENCY

    report = MoversReport(
        user_id=user_id,
        window_days=days,
        limit=lim,
        currency=currency,
        as_of_date=today,
        from_target_date=from_target,
    )

    holdings = await load_holdings(session, user_id)
    report.input_items = len(holdings)
    if not holdings:
        return report

    columns = await get_market_item_columns(session)
    if not columns.is_usable:
        missing = ", ".join(columns.missing_required)
        logger.error("movers_schema_unavailable", user_id=user_id, missing=missing)
        raise MoversUnavailableError(f"market_items is missing required columns: {missing}", columns)

    result = await session.execute(
        build_market_item_query(columns),
        {
            "canonical_ids": sorted({card_id for _, card_id in holdings}),
            "currency": currency,
            "from_date": from_target,
        },
    )

    # One market row per holding; prefer a row that has a current price.
    matched: dict[tuple[Game, str], Any] = {}
    for row in result.mappings():
        key = (normalize_game(row["game"]), row["canonical_id"])
        if key not in holdings:
            continue
        current = matched.get(key)
        if current is None or (current["to_cents"] is None and row["to_cents"] is not None):
            matched[key] = row
    report.matched_rows = len(matched)

    movers: list[MoverRow] = []
    for key, row in matched.items():
        if row["to_cents"] is None or row["from_cents"] is None:
            continue
        game, card_id = key
        movers.append(
            MoverRow(
                game=game.value,
                canonical_id=card_id,
                quantity=holdings[key],
                from_cents=int(row["from_cents"]),
                to_cents=int(row["to_cents"]),
                from_date=row["from_date"],
                to_date=row["to_date"],
                display_name=row["display_name"],
                set_name=row["set_name"],
                number=row["number"],
                image_url=row["image_url"],
                to_source=row["to_source"],
                to_price_type=row["to_price_type"],
            )
        )

    movers.sort(key=lambda m: (-abs(m.delta_total_cents), m.game, m.canonical_id))
    report.rows = movers[:lim]

    logger.debug(
        "movers_computed",
        user_id=user_id,
        window_days=days,
        input_items=report.input_items,
        matched_rows=report.matched_rows,
        priced_rows=len(movers),
        returned_rows=report.returned_rows,
    )
    return report


def render_movers_csv(report: MoversReport) -> str:
    """CSV with a fixed header; fields containing , \" or newlines are quoted."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for row in report.rows:
        writer.writerow(row.csv_values())
    return buffer.getvalue()


async def export_movers(
    session: AsyncSession,
    user_id: str,
    window_days: int | None = None,
    limit: int | None = None,
    fmt: str = "json",
    today: date | None = None,
) -> dict[str, Any] | str:
    """Compute movers and render as a JSON-ready dict or CSV text."""
    if fmt not in ("json", "csv"):
        raise ValueError(f"Unsupported movers format: {fmt!r}")
    report = await compute_movers(session, user_id, window_days, limit, today=today)
    if fmt == "csv":
        return render_movers_csv(report)
    return report.as_dict()
