"""
Tests for the live price fallback client (tcgvalue/pipeline/live_prices.py).

Covers:
- pokemontcg.io: variant bucket selection and fallback to another bucket
- Scryfall: foil preference by variant
- YGOPRODeck: first usable vendor column
- 404 → None, blank id → no request
- Retry logic: 429 rate-limiting, 5xx exhaustion
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock, patch

import httpx
import pytest
import respx

from tcgvalue.config import Game, settings
from tcgvalue.pipeline.live_prices import LivePrice, LivePriceClient, pick_pokemon_price


POKEMON_PAYLOAD = {
    "data": {
        "id": "sv3-125",
        "name": "Charizard ex",
        "tcgplayer": {
            "url": "https://prices.pokemontcg.io/tcgplayer/sv3-125",
            "updatedAt": "2026/10/18",
            "prices": {
                "holofoil": {"low": 2.0, "mid": 3.0, "high": 8.0, "market": 3.25},
                "reverseHolofoil": {"low": 1.0, "mid": 1.5, "high": 2.0, "market": None},
            },
        },
    }
}


@pytest.mark.asyncio
async def test_pokemon_variant_bucket() -> None:
    with respx.mock(base_url=settings.POKEMONTCG_BASE_URL) as mock:
        mock.get("/cards/sv3-125").mock(return_value=httpx.Response(200, json=POKEMON_PAYLOAD))

        async with LivePriceClient(api_key="") as client:
            price = await client.lookup(Game.POKEMON, "sv3-125", "holofoil")

    assert price == LivePrice(
        amount=Decimal("3.25"),
        currency="USD",
        source="pokemontcg_io:tcgplayer.holofoil",
    )


@pytest.mark.asyncio
async def test_pokemon_reverse_uses_mid_when_market_missing() -> None:
    with respx.mock(base_url=settings.POKEMONTCG_BASE_URL) as mock:
        mock.get("/cards/sv3-125").mock(return_value=httpx.Response(200, json=POKEMON_PAYLOAD))

        async with LivePriceClient(api_key="") as client:
            price = await client.lookup(Game.POKEMON, "sv3-125", "reverse_holofoil")

    assert price is not None
    assert price.amount == Decimal("1.50")
    assert price.source == "pokemontcg_io:tcgplayer.reverseHolofoil"


@pytest.mark.asyncio
async def test_pokemon_api_key_header_sent() -> None:
    with respx.mock(base_url=settings.POKEMONTCG_BASE_URL) as mock:
        route = mock.get("/cards/sv3-125").mock(return_value=httpx.Response(200, json=POKEMON_PAYLOAD))

        async with LivePriceClient(api_key="test-key") as client:
            await client.lookup(Game.POKEMON, "sv3-125", "holofoil")

    assert route.calls.last.request.headers["X-Api-Key"] == "test-key"


def test_pick_pokemon_price_falls_back_to_other_bucket() -> None:
    prices = {"1stEditionHolofoil": {"market": 120.0}}
    assert pick_pokemon_price(prices, "normal") == (12000, "1stEditionHolofoil")
    assert pick_pokemon_price({}, "normal") is None


@pytest.mark.asyncio
async def test_not_found_returns_none() -> None:
    with respx.mock(base_url=settings.POKEMONTCG_BASE_URL) as mock:
        mock.get("/cards/nope-1").mock(return_value=httpx.Response(404, json={"error": "not found"}))

        async with LivePriceClient(api_key="") as client:
            price = await client.lookup(Game.POKEMON, "nope-1")

    assert price is None


@pytest.mark.asyncio
async def test_mtg_foil_preference() -> None:
    card_id = "0000579f-7b35-4ed3-b44c-db2a538066fe"
    payload = {"id": card_id, "prices": {"usd": "0.25", "usd_foil": "1.75", "eur": "0.20"}}

    with respx.mock(base_url=settings.SCRYFALL_BASE_URL) as mock:
        mock.get(f"/cards/{card_id}").mock(return_value=httpx.Response(200, json=payload))

        async with LivePriceClient() as client:
            plain = await client.lookup(Game.MTG, card_id)
            foil = await client.lookup(Game.MTG, card_id, "holofoil")

    assert plain == LivePrice(Decimal("0.25"), "USD", "scryfall:usd")
    assert foil == LivePrice(Decimal("1.75"), "USD", "scryfall:usd_foil")


@pytest.mark.asyncio
async def test_yugioh_first_usable_vendor() -> None:
    payload = {
        "data": [
            {
                "id": 89631139,
                "name": "Blue-Eyes White Dragon",
                "card_prices": [
                    {
                        "cardmarket_price": "0.12",
                        "tcgplayer_price": "0.00",
                        "ebay_price": "1.49",
                        "amazon_price": "3.00",
                        "coolstuffinc_price": "0.99",
                    }
                ],
            }
        ]
    }

    with respx.mock(base_url=settings.YGOPRODECK_BASE_URL) as mock:
        mock.get("/cardinfo.php", params={"id": "89631139"}).mock(
            return_value=httpx.Response(200, json=payload)
        )

        async with LivePriceClient() as client:
            price = await client.lookup(Game.YUGIOH, "89631139")

    assert price == LivePrice(Decimal("0.12"), "USD", "ygoprodeck:cardmarket_price")


@pytest.mark.asyncio
async def test_blank_card_id_makes_no_request() -> None:
    with respx.mock(assert_all_called=False) as mock:
        async with LivePriceClient() as client:
            assert await client.lookup(Game.MTG, "") is None
        assert mock.calls.call_count == 0


@pytest.mark.asyncio
async def test_retry_on_rate_limit() -> None:
    """Client retries after a 429 and succeeds on the second attempt."""
    card_id = "abc"
    call_count = 0

    def rate_limit_then_success(request: httpx.Request) -> httpx.Response:
        nonlocal call_count
        call_count += 1
        if call_count == 1:
            return httpx.Response(429, json={"error": "slow down"})
        return httpx.Response(200, json={"id": card_id, "prices": {"usd": "2.00"}})

    with respx.mock(base_url=settings.SCRYFALL_BASE_URL) as mock:
        mock.get(f"/cards/{card_id}").mock(side_effect=rate_limit_then_success)

        async with LivePriceClient(max_retries=2, base_backoff=0.0) as client:
            with patch("asyncio.sleep", new_callable=AsyncMock):
                price = await client.lookup(Game.MTG, card_id)

    assert price is not None
    assert price.amount == Decimal("2.00")
    assert call_count == 2


@pytest.mark.asyncio
async def test_retry_on_server_error_exhausts() -> None:
    """5xx on every attempt raises RuntimeError after max_retries + 1 calls."""
    card_id = "abc"

    with respx.mock(base_url=settings.SCRYFALL_BASE_URL) as mock:
        route = mock.get(f"/cards/{card_id}").mock(return_value=httpx.Response(503))

        with patch("asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(RuntimeError, match="Live price request failed"):
                async with LivePriceClient(max_retries=1, base_backoff=0.0) as client:
                    await client.lookup(Game.MTG, card_id)

    assert route.call_count == 2
