"""
TCG Value — Valuation Models

Daily per-item valuation snapshots and per-user portfolio totals. Both are
written only by the revaluation pipeline and both are upserts, so re-running
a day converges on the same rows instead of accumulating duplicates.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import BIGINT, DATE, INTEGER, TIMESTAMP, Index, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from tcgvalue.models.base import Base, JSONDocument, UUIDText


class ValuationRecord(Base):
    """
    One valuation of one collection item on one day from one source.

    Unique on (user_id, item_id, as_of_date, source): a second run on the same
    day with the same source overwrites value/confidence/meta.
    """

    __tablename__ = "user_collection_item_valuations"

    id: Mapped[str] = mapped_column(
        UUIDText, primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    item_id: Mapped[str] = mapped_column(UUIDText, nullable=False, comment="user_collection_items.id")
    as_of_date: Mapped[date] = mapped_column(DATE, nullable=False)
    game: Mapped[str] = mapped_column(String, nullable=False, comment="Normalized game id")
    value_cents: Mapped[int] = mapped_column(
        INTEGER, nullable=False, server_default="0", comment="Total value (unit x quantity), cents"
    )
    currency: Mapped[str] = mapped_column(String, nullable=False, server_default="USD")
    source: Mapped[str] = mapped_column(
        String, nullable=False, comment="Vendor/field the price came from, e.g. tcgplayer_db"
    )
    confidence: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="variant_column | market_or_mid | live_fallback"
    )
    meta: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "item_id", "as_of_date", "source",
            name="ux_item_valuations_user_item_date_source",
        ),
        Index("ix_item_valuations_item_date", "item_id", "as_of_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<ValuationRecord item_id={self.item_id!r} as_of={self.as_of_date} "
            f"value={self.value_cents} source={self.source!r}>"
        )


class PortfolioDailyValuation(Base):
    """
    One row per (user, day) with portfolio totals and a per-game breakdown.

    unrealized_pnl_cents is NULL when the user had no valued items that day,
    which distinguishes "no data" from a genuine $0 gain.
    realized_pnl_cents is reserved (sales are not tracked here) and left NULL.
    """

    __tablename__ = "user_collection_daily_valuations"

    user_id: Mapped[str] = mapped_column(String, primary_key=True)
    as_of_date: Mapped[date] = mapped_column(DATE, primary_key=True)
    total_quantity: Mapped[int] = mapped_column(INTEGER, nullable=False, server_default="0")
    distinct_items: Mapped[int] = mapped_column(INTEGER, nullable=False, server_default="0")
    total_cost_cents: Mapped[int] = mapped_column(BIGINT, nullable=False, server_default="0")
    total_value_cents: Mapped[int] = mapped_column(BIGINT, nullable=False, server_default="0")
    realized_pnl_cents: Mapped[int | None] = mapped_column(BIGINT, nullable=True)
    unrealized_pnl_cents: Mapped[int | None] = mapped_column(BIGINT, nullable=True)
    breakdown: Mapped[dict[str, Any]] = mapped_column(
        JSONDocument, nullable=False, default=dict,
        comment='{"byGame": {game: {totalQuantity, distinctItems, totalCostCents, totalValueCents}}}',
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<PortfolioDailyValuation user_id={self.user_id!r} as_of={self.as_of_date} "
            f"value={self.total_value_cents} pnl={self.unrealized_pnl_cents}>"
        )
