"""
TCG Value — Vendor Price Tables (read-only)

Populated by the catalog sync jobs (TCGdex/TCGplayer, YGOPRODeck, Scryfall).
This package only reads them; the models document the columns the resolver
depends on and let tests build the tables.

Units: every price column here is decimal dollars. The Pokémon table stores
them as text exactly as the vendor returned them ("3.25", "$1,204.00", "").
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import DECIMAL, TIMESTAMP, String
from sqlalchemy.orm import Mapped, mapped_column

from tcgvalue.models.base import Base, JSONDocument, UUIDText


class TcgplayerPokemonPrice(Base):
    """
    Wide TCGplayer price row for a Pokémon card, one per reported variant.

    Variant columns (normal, holofoil, ...) hold the variant-specific market
    price; market/mid/low/high are the vendor's generic figures for the row.
    """

    __tablename__ = "tcg_card_prices_tcgplayer"

    card_id: Mapped[str] = mapped_column(String, primary_key=True)
    variant_type: Mapped[str] = mapped_column(String, primary_key=True, server_default="normal")
    normal: Mapped[str | None] = mapped_column(String, nullable=True)
    holofoil: Mapped[str | None] = mapped_column(String, nullable=True)
    reverse_holofoil: Mapped[str | None] = mapped_column(String, nullable=True)
    first_edition_holofoil: Mapped[str | None] = mapped_column(String, nullable=True)
    first_edition_normal: Mapped[str | None] = mapped_column(String, nullable=True)
    market_price: Mapped[str | None] = mapped_column(String, nullable=True)
    mid_price: Mapped[str | None] = mapped_column(String, nullable=True)
    low_price: Mapped[str | None] = mapped_column(String, nullable=True)
    high_price: Mapped[str | None] = mapped_column(String, nullable=True)
    currency: Mapped[str | None] = mapped_column(String, nullable=True)
    url: Mapped[str | None] = mapped_column(String, nullable=True)
    updated_at: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="Vendor timestamp, ISO-8601 text"
    )


class YgoCardPrice(Base):
    """YGOPRODeck aggregated prices, one row per card passcode."""

    __tablename__ = "ygo_card_prices"

    card_id: Mapped[str] = mapped_column(String, primary_key=True)
    tcgplayer_price: Mapped[Decimal | None] = mapped_column(DECIMAL(12, 2), nullable=True)
    cardmarket_price: Mapped[Decimal | None] = mapped_column(DECIMAL(12, 2), nullable=True)
    ebay_price: Mapped[Decimal | None] = mapped_column(DECIMAL(12, 2), nullable=True)
    amazon_price: Mapped[Decimal | None] = mapped_column(DECIMAL(12, 2), nullable=True)
    coolstuffinc_price: Mapped[Decimal | None] = mapped_column(DECIMAL(12, 2), nullable=True)


class MtgEffectivePrice(Base):
    """Blended Scryfall USD price computed upstream, one row per printing."""

    __tablename__ = "mtg_prices_effective"

    scryfall_id: Mapped[str] = mapped_column(UUIDText, primary_key=True)
    effective_usd: Mapped[Decimal | None] = mapped_column(DECIMAL(12, 2), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)


class TcgdexCard(Base):
    """Raw TCGdex card payloads; pricing lives under raw_json['pricing']."""

    __tablename__ = "tcgdex_cards"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    raw_json: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)
