"""
TCG Value — TCGdex Daily Price Snapshot Model

Up to two rows per card per day (USD and EUR). When one currency was derived
from the other via a configured FX rate, `derived` is true.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import BOOLEAN, DATE, INTEGER, TIMESTAMP, String, false, func
from sqlalchemy.orm import Mapped, mapped_column

from tcgvalue.models.base import Base, JSONDocument


class TcgdexPriceSnapshot(Base):
    __tablename__ = "tcgdex_price_snapshots_daily"

    card_id: Mapped[str] = mapped_column(String, primary_key=True)
    as_of_date: Mapped[date] = mapped_column(DATE, primary_key=True)
    currency: Mapped[str] = mapped_column(String, primary_key=True)
    market_price_cents: Mapped[int] = mapped_column(INTEGER, nullable=False)
    derived: Mapped[bool] = mapped_column(BOOLEAN, nullable=False, server_default=false(), default=False)
    raw_json: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<TcgdexPriceSnapshot card_id={self.card_id!r} as_of={self.as_of_date} "
            f"{self.currency}={self.market_price_cents} derived={self.derived}>"
        )
