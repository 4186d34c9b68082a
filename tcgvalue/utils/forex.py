"""
TCG Value — Currency Completion

Vendor payloads often carry a price in only one currency (TCGplayer → USD,
Cardmarket → EUR). complete_currency fills the missing side using a
configured one-directional multiplier:

    eur = usd × FX_USD_TO_EUR
    usd = eur × FX_EUR_TO_USD

There is no live rate lookup. If the rate for the needed direction is not
configured (or is not positive) the missing side stays None rather than
being guessed.

All money values use Decimal, quantized to cents with ROUND_HALF_UP.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

import structlog

from tcgvalue.config import settings

logger = structlog.get_logger(__name__)

_CENTS = Decimal("0.01")


@dataclass(frozen=True)
class CurrencyPair:
    """USD/EUR amounts after completion. derived_currency names the computed side."""
    usd: Decimal | None
    eur: Decimal | None
    derived: bool = False
    derived_currency: str | None = None


def convert_amount(amount: Decimal, rate: Decimal) -> Decimal:
    """
    Multiply an amount by an FX rate, quantized to cents.

    Examples:
        >>> convert_amount(Decimal("10.00"), Decimal("0.92"))
        Decimal('9.20')
    """
    if amount < Decimal("0"):
        raise ValueError(f"amount must be non-negative, got {amount}")
    if rate <= Decimal("0"):
        raise ValueError(f"rate must be positive, got {rate}")
    return (amount * rate).quantize(_CENTS, rounding=ROUND_HALF_UP)


def _usable_rate(rate: Decimal | None) -> Decimal | None:
    if rate is None:
        return None
    rate = Decimal(str(rate))
    if not rate.is_finite() or rate <= Decimal("0"):
        logger.warning("forex_rate_ignored", rate=str(rate))
        return None
    return rate


def _money(value: Decimal | None) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value)).quantize(_CENTS, rounding=ROUND_HALF_UP)


def complete_currency(
    usd: Decimal | None,
    eur: Decimal | None,
    usd_to_eur: Decimal | None = None,
    eur_to_usd: Decimal | None = None,
) -> CurrencyPair:
    """
    Fill in whichever of USD/EUR is missing.

    Args:
        usd: Price in USD, or None.
        eur: Price in EUR, or None.
        usd_to_eur: Multiplier USD → EUR. Defaults to settings.FX_USD_TO_EUR.
        eur_to_usd: Multiplier EUR → USD. Defaults to settings.FX_EUR_TO_USD.

    Returns:
        CurrencyPair. Inputs that are both present (or both absent) come back
        unchanged with derived=False.
    """
    usd = _money(usd)
    eur = _money(eur)

    if (usd is None) == (eur is None):
        return CurrencyPair(usd=usd, eur=eur)

    if usd is not None:
        rate = _usable_rate(usd_to_eur if usd_to_eur is not None else settings.FX_USD_TO_EUR)
        if rate is None:
            return CurrencyPair(usd=usd, eur=None)
        derived_eur = convert_amount(usd, rate)
        logger.debug("forex_derived_eur", usd=str(usd), rate=str(rate), eur=str(derived_eur))
        return CurrencyPair(usd=usd, eur=derived_eur, derived=True, derived_currency="EUR")

    rate = _usable_rate(eur_to_usd if eur_to_usd is not None else settings.FX_EUR_TO_USD)
    if rate is None:
        return CurrencyPair(usd=None, eur=eur)
    derived_usd = convert_amount(eur, rate)
    logger.debug("forex_derived_usd", eur=str(eur), rate=str(rate), usd=str(derived_usd))
    return CurrencyPair(usd=derived_usd, eur=eur, derived=True, derived_currency="USD")
