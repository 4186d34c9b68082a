"""
TCG Value — Live Price Fallback Clients

Used only when the stored vendor tables have nothing usable for a card.
Each game has one public source:

- Pokémon: pokemontcg.io v2   GET /cards/{id}             → tcgplayer.prices
- MTG:     Scryfall           GET /cards/{id}             → prices.usd / usd_foil
- Yu-Gi-Oh!: YGOPRODeck v7    GET /cardinfo.php?id={id}   → card_prices[0]

The resolver depends on the LivePriceLookup protocol, not on this client,
and wraps every call in its own timeout. A 404 here is "no price", not an
error.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol

import httpx
import structlog
from pydantic import BaseModel, Field

from tcgvalue.config import Game, VariantType, settings
from tcgvalue.engine.price_fields import PriceField, first_cents
from tcgvalue.utils.normalize import normalize_variant_type

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class LivePrice:
    """A per-unit price fetched from a live source."""
    amount: Decimal
    currency: str
    source: str


class LivePriceLookup(Protocol):
    async def lookup(
        self,
        game: Game,
        card_id: str,
        variant: str | None = None,
    ) -> LivePrice | None:
        ...


# ---------------------------------------------------------------------------
# Pydantic Response Models
# ---------------------------------------------------------------------------


class PokemonTcgPlayerBlock(BaseModel):
    """tcgplayer block of a pokemontcg.io card. prices: bucket → {market, mid, ...}."""
    url: str | None = None
    prices: dict[str, dict[str, Any]] = Field(default_factory=dict)


class PokemonCard(BaseModel):
    id: str
    tcgplayer: PokemonTcgPlayerBlock | None = None


class PokemonCardResponse(BaseModel):
    data: PokemonCard


class ScryfallCard(BaseModel):
    id: str
    prices: dict[str, Any] = Field(default_factory=dict)


class YgoCardInfo(BaseModel):
    id: int | str
    card_prices: list[dict[str, Any]] = Field(default_factory=list)


class YgoCardInfoResponse(BaseModel):
    data: list[YgoCardInfo] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Field selection
# ---------------------------------------------------------------------------

POKEMON_BUCKET_FIELDS: tuple[PriceField, ...] = (
    PriceField("market", ("market", "marketPrice")),
    PriceField("mid", ("mid", "midPrice")),
    PriceField("low", ("low", "lowPrice")),
    PriceField("high", ("high", "highPrice")),
)

# pokemontcg.io bucket names per variant, preferred first.
POKEMON_VARIANT_BUCKETS: dict[VariantType, tuple[str, ...]] = {
    VariantType.NORMAL: ("normal",),
    VariantType.HOLOFOIL: ("holofoil",),
    VariantType.REVERSE_HOLOFOIL: ("reverseHolofoil",),
    VariantType.FIRST_EDITION: ("1stEditionHolofoil", "1stEditionNormal"),
    VariantType.PROMO: ("holofoil", "normal"),
}

SCRYFALL_USD = PriceField("usd")
SCRYFALL_USD_FOIL = PriceField("usd_foil")
SCRYFALL_USD_ETCHED = PriceField("usd_etched")

YGO_FIELDS: tuple[PriceField, ...] = (
    PriceField("tcgplayer_price"),
    PriceField("cardmarket_price"),
    PriceField("ebay_price"),
    PriceField("amazon_price"),
    PriceField("coolstuffinc_price"),
)


def _cents_to_amount(cents: int) -> Decimal:
    return (Decimal(cents) / Decimal(100)).quantize(Decimal("0.01"))


def pick_pokemon_price(prices: dict[str, dict[str, Any]], variant: str | None) -> tuple[int, str] | None:
    """(cents, bucket) from the variant's bucket, else the first bucket with a price."""
    wanted = POKEMON_VARIANT_BUCKETS[normalize_variant_type(variant)]
    ordered = list(wanted) + [name for name in prices if name not in wanted]
    for name in ordered:
        hit = first_cents(prices.get(name), POKEMON_BUCKET_FIELDS)
        if hit is not None:
            return hit[0], name
    return None


def pick_scryfall_price(prices: dict[str, Any], variant: str | None) -> tuple[int, str] | None:
    foil_first = normalize_variant_type(variant) in (VariantType.HOLOFOIL, VariantType.REVERSE_HOLOFOIL)
    fields = (
        (SCRYFALL_USD_FOIL, SCRYFALL_USD, SCRYFALL_USD_ETCHED)
        if foil_first
        else (SCRYFALL_USD, SCRYFALL_USD_FOIL, SCRYFALL_USD_ETCHED)
    )
    hit = first_cents(prices, fields)
    if hit is None:
        return None
    return hit[0], hit[1].label


# ---------------------------------------------------------------------------
# API Client
# ---------------------------------------------------------------------------


class LivePriceClient:
    """
    Async client for the three live price sources.

    Usage:
        async with LivePriceClient() as client:
            price = await client.lookup(Game.MTG, "0000579f-7b35-4ed3-b44c-db2a538066fe")
    """

    def __init__(
        self,
        api_key: str | None = None,
        max_retries: int | None = None,
        base_backoff: float = 0.5,
        timeout: float | None = None,
    ):
        self._api_key = api_key if api_key is not None else settings.POKEMONTCG_API_KEY
        self._max_retries = max_retries if max_retries is not None else settings.LIVE_PRICE_MAX_RETRIES
        self._base_backoff = base_backoff
        self._timeout = timeout if timeout is not None else settings.LIVE_PRICE_TIMEOUT_SECONDS
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> LivePriceClient:
        self._client = httpx.AsyncClient(
            timeout=self._timeout,
            headers={"Accept": "application/json"},
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()

    async def _request(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any] | None:
        """GET with retry/backoff on 429 and 5xx. Returns None on 404."""
        assert self._client is not None, "Client not initialized. Use 'async with'."

        last_error: Exception | None = None

        for attempt in range(self._max_retries + 1):
            try:
                response = await self._client.get(url, params=params, headers=headers)

                if response.status_code == 404:
                    return None

                if response.status_code == 429:
                    wait_time = self._base_backoff * (2 ** attempt)
                    logger.warning(
                        "live_price_rate_limited",
                        url=url,
                        attempt=attempt + 1,
                        wait_seconds=wait_time,
                    )
                    await asyncio.sleep(wait_time)
                    continue

                response.raise_for_status()
                return response.json()

            except httpx.HTTPStatusError as e:
                last_error = e
                logger.error(
                    "live_price_http_error",
                    status_code=e.response.status_code,
                    attempt=attempt + 1,
                    url=url,
                )
                if e.response.status_code >= 500:
                    await asyncio.sleep(self._base_backoff * (2 ** attempt))
                    continue
                raise

            except httpx.RequestError as e:
                last_error = e
                logger.error(
                    "live_price_request_error",
                    error=str(e),
                    attempt=attempt + 1,
                    url=url,
                )
                await asyncio.sleep(self._base_backoff * (2 ** attempt))
                continue

        raise RuntimeError(
            f"Live price request failed after {self._max_retries + 1} attempts"
        ) from last_error

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    async def lookup(
        self,
        game: Game,
        card_id: str,
        variant: str | None = None,
    ) -> LivePrice | None:
        if not card_id:
            return None
        if game is Game.POKEMON:
            return await self.fetch_pokemon(card_id, variant)
        if game is Game.MTG:
            return await self.fetch_mtg(card_id, variant)
        if game is Game.YUGIOH:
            return await self.fetch_yugioh(card_id)
        return None

    async def fetch_pokemon(self, card_id: str, variant: str | None = None) -> LivePrice | None:
        headers = {"X-Api-Key": self._api_key} if self._api_key else None
        data = await self._request(f"{settings.POKEMONTCG_BASE_URL}/cards/{card_id}", headers=headers)
        if data is None:
            return None

        card = PokemonCardResponse.model_validate(data).data
        prices = card.tcgplayer.prices if card.tcgplayer else {}
        hit = pick_pokemon_price(prices, variant)
        if hit is None:
            logger.debug("live_price_pokemon_no_price", card_id=card_id, buckets=list(prices))
            return None

        cents, bucket = hit
        return LivePrice(
            amount=_cents_to_amount(cents),
            currency="USD",
            source=f"pokemontcg_io:tcgplayer.{bucket}",
        )

    async def fetch_mtg(self, card_id: str, variant: str | None = None) -> LivePrice | None:
        data = await self._request(f"{settings.SCRYFALL_BASE_URL}/cards/{card_id}")
        if data is None:
            return None

        card = ScryfallCard.model_validate(data)
        hit = pick_scryfall_price(card.prices, variant)
        if hit is None:
            return None

        cents, field = hit
        return LivePrice(amount=_cents_to_amount(cents), currency="USD", source=f"scryfall:{field}")

    async def fetch_yugioh(self, card_id: str) -> LivePrice | None:
        data = await self._request(
            f"{settings.YGOPRODECK_BASE_URL}/cardinfo.php",
            params={"id": card_id},
        )
        if data is None:
            return None

        response = YgoCardInfoResponse.model_validate(data)
        if not response.data or not response.data[0].card_prices:
            return None

        hit = first_cents(response.data[0].card_prices[0], YGO_FIELDS)
        if hit is None:
            return None

        cents, field = hit
        return LivePrice(amount=_cents_to_amount(cents), currency="USD", source=f"ygoprodeck:{field.label}")
