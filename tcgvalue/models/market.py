"""
TCG Value — Market Price Tables (read-only)

Cross-game price tables keyed by market_items.id. market_items itself is not
modelled: its enrichment columns differ between deployments, so the movers
engine probes it at runtime (see engine/schema_probe.py).
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import DATE, INTEGER, String
from sqlalchemy.orm import Mapped, mapped_column

from tcgvalue.models.base import Base, UUIDText


class MarketPriceCurrent(Base):
    """Latest blended price per market item."""

    __tablename__ = "market_prices_current"

    market_item_id: Mapped[str] = mapped_column(UUIDText, primary_key=True)
    currency: Mapped[str] = mapped_column(String, nullable=False, server_default="USD")
    price_cents: Mapped[int] = mapped_column(INTEGER, nullable=False)
    source: Mapped[str] = mapped_column(String, nullable=False)
    price_type: Mapped[str] = mapped_column(String, nullable=False)
    confidence: Mapped[str] = mapped_column(String, nullable=False)
    as_of_date: Mapped[date] = mapped_column(DATE, nullable=False)


class MarketPriceDaily(Base):
    """Daily price history per market item and currency."""

    __tablename__ = "market_price_daily"

    market_item_id: Mapped[str] = mapped_column(UUIDText, primary_key=True)
    as_of_date: Mapped[date] = mapped_column(DATE, primary_key=True)
    currency: Mapped[str] = mapped_column(String, primary_key=True, server_default="USD")
    value_cents: Mapped[int] = mapped_column(INTEGER, nullable=False)
