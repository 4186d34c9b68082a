"""
TCG Value — Price Source Resolver

One authoritative per-unit price for (game, card, variant), read from the
vendor tables the catalog sync jobs maintain:

    pokemon → tcg_card_prices_tcgplayer  (wide text columns, variant aware)
    yugioh  → ygo_card_prices            (tcgplayer → cardmarket → ebay → amazon → coolstuffinc)
    mtg     → mtg_prices_effective       (effective_usd)

The first usable candidate wins; vendors are never averaged. When stored
data has nothing, an optional live lookup is tried under a hard timeout.
Live failures are logged and treated as a miss.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Mapping

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tcgvalue.config import Confidence, Game, settings
from tcgvalue.engine.price_fields import PriceField, dollars_to_cents, first_cents
from tcgvalue.engine.variant_price import VariantPick, pick_variant_cents
from tcgvalue.models.vendor_prices import MtgEffectivePrice, TcgplayerPokemonPrice, YgoCardPrice
from tcgvalue.utils.normalize import normalize_game, normalize_variant_type

if TYPE_CHECKING:
    from tcgvalue.pipeline.live_prices import LivePriceLookup

logger = structlog.get_logger(__name__)

POKEMON_TABLE = TcgplayerPokemonPrice.__tablename__
YGO_TABLE = YgoCardPrice.__tablename__
MTG_TABLE = MtgEffectivePrice.__tablename__

YGO_PRICE_FIELDS: tuple[PriceField, ...] = (
    PriceField("tcgplayer_price"),
    PriceField("cardmarket_price"),
    PriceField("ebay_price"),
    PriceField("amazon_price"),
    PriceField("coolstuffinc_price"),
)

MTG_PRICE_FIELD = PriceField("effective_usd")


@dataclass(frozen=True)
class PriceObservation:
    """A resolved per-unit price. amount is dollars in `currency`."""
    amount: Decimal
    currency: str
    source: str
    confidence: Confidence

    @property
    def unit_cents(self) -> int:
        return dollars_to_cents(self.amount)

    @classmethod
    def from_cents(
        cls,
        cents: int,
        currency: str,
        source: str,
        confidence: Confidence,
    ) -> PriceObservation:
        return cls(
            amount=Decimal(cents) / Decimal(100),
            currency=currency,
            source=source,
            confidence=confidence,
        )


class PriceResolver:
    """
    Resolves card prices against one AsyncSession.

    Usage:
        resolver = PriceResolver(session, live_lookup=client)
        obs = await resolver.resolve("pokemon", "sv3-125", "holofoil")
    """

    def __init__(
        self,
        session: AsyncSession,
        live_lookup: LivePriceLookup | None = None,
        live_timeout: float | None = None,
        live_enabled: bool | None = None,
    ):
        self._session = session
        self._live_lookup = live_lookup
        self._live_timeout = (
            live_timeout if live_timeout is not None else settings.LIVE_PRICE_TIMEOUT_SECONDS
        )
        self._live_enabled = (
            live_enabled if live_enabled is not None else settings.LIVE_PRICE_ENABLED
        )

    async def resolve(
        self,
        game: str | Game,
        card_id: str | None,
        variant: str | None = None,
    ) -> PriceObservation | None:
        """
        Resolve a per-unit price, or None when no source has one.

        Unknown games and blank card ids return None without querying.
        """
        canonical = normalize_game(game)
        card_id = (card_id or "").strip()
        if canonical is None or not card_id:
            return None

        if canonical is Game.POKEMON:
            observation = await self._resolve_pokemon(card_id, variant)
        elif canonical is Game.YUGIOH:
            observation = await self._resolve_yugioh(card_id)
        else:
            observation = await self._resolve_mtg(card_id)

        if observation is not None:
            return observation

        return await self._resolve_live(canonical, card_id, variant)

    # -----------------------------------------------------------------------
    # Stored vendor tables
    # -----------------------------------------------------------------------

    async def _resolve_pokemon(self, card_id: str, variant: str | None) -> PriceObservation | None:
        table = TcgplayerPokemonPrice.__table__
        result = await self._session.execute(select(table).where(table.c.card_id == card_id))
        rows = result.mappings().all()
        if not rows:
            return None

        wanted = normalize_variant_type(variant)
        picks: list[tuple[Mapping[str, Any], VariantPick]] = [
            (row, pick_variant_cents(row, wanted)) for row in rows
        ]

        # Newest first (null timestamps last), then exact variant rows and
        # rows with the variant's own column ahead of the rest.
        picks.sort(key=lambda p: p[0].get("updated_at") or "", reverse=True)
        picks.sort(
            key=lambda p: (
                normalize_variant_type(p[0].get("variant_type")) is not wanted,
                p[1].used_kind != "wide",
            )
        )

        for row, pick in picks:
            if pick.cents is None:
                continue
            confidence = (
                Confidence.VARIANT_COLUMN if pick.used_kind == "wide" else Confidence.MARKET_OR_MID
            )
            return PriceObservation.from_cents(
                pick.cents,
                currency=(row.get("currency") or settings.DEFAULT_CURRENCY).upper(),
                source=f"{POKEMON_TABLE}:{pick.field}",
                confidence=confidence,
            )

        logger.debug("resolver_pokemon_no_usable_row", card_id=card_id, rows=len(rows))
        return None

    async def _resolve_yugioh(self, card_id: str) -> PriceObservation | None:
        table = YgoCardPrice.__table__
        result = await self._session.execute(select(table).where(table.c.card_id == card_id))
        row = result.mappings().first()

        hit = first_cents(row, YGO_PRICE_FIELDS)
        if hit is None:
            return None

        cents, field = hit
        return PriceObservation.from_cents(
            cents,
            currency="USD",
            source=f"{YGO_TABLE}:{field.label}",
            confidence=Confidence.MARKET_OR_MID,
        )

    async def _resolve_mtg(self, card_id: str) -> PriceObservation | None:
        table = MtgEffectivePrice.__table__
        result = await self._session.execute(select(table).where(table.c.scryfall_id == card_id))
        row = result.mappings().first()

        cents = MTG_PRICE_FIELD.cents(row)
        if cents is None:
            return None

        return PriceObservation.from_cents(
            cents,
            currency="USD",
            source=f"{MTG_TABLE}:{MTG_PRICE_FIELD.label}",
            confidence=Confidence.MARKET_OR_MID,
        )

    # -----------------------------------------------------------------------
    # Live fallback
    # -----------------------------------------------------------------------

    async def _resolve_live(
        self,
        game: Game,
        card_id: str,
        variant: str | None,
    ) -> PriceObservation | None:
        if self._live_lookup is None or not self._live_enabled:
            return None

        try:
            live = await asyncio.wait_for(
                self._live_lookup.lookup(game, card_id, variant),
                timeout=self._live_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "resolver_live_fallback_timeout",
                game=game.value,
                card_id=card_id,
                timeout_seconds=self._live_timeout,
            )
            return None
        except Exception as e:
            logger.warning(
                "resolver_live_fallback_failed",
                game=game.value,
                card_id=card_id,
                error=str(e),
            )
            return None

        if live is None or dollars_to_cents(live.amount) <= 0:
            return None

        logger.info(
            "resolver_live_fallback_hit",
            game=game.value,
            card_id=card_id,
            source=live.source,
            amount=str(live.amount),
        )
        return PriceObservation(
            amount=live.amount,
            currency=live.currency,
            source=live.source,
            confidence=Confidence.LIVE_FALLBACK,
        )
