"""
TCG Value — Currency Completion Tests

complete_currency fills the missing side of a USD/EUR pair using a
one-directional configured rate. All money values use Decimal, quantized to
cents half-up. No rate → no derivation.
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import patch

import pytest

from tcgvalue.config import settings
from tcgvalue.utils.forex import CurrencyPair, complete_currency, convert_amount


class TestCompleteCurrency:

    def test_both_present_unchanged(self) -> None:
        pair = complete_currency(Decimal("10.00"), Decimal("9.00"), usd_to_eur=Decimal("0.5"))
        assert pair == CurrencyPair(usd=Decimal("10.00"), eur=Decimal("9.00"), derived=False)

    def test_usd_only_derives_eur(self) -> None:
        pair = complete_currency(Decimal("10.00"), None, usd_to_eur=Decimal("0.92"))
        assert pair.usd == Decimal("10.00")
        assert pair.eur == Decimal("9.20")
        assert pair.derived is True
        assert pair.derived_currency == "EUR"

    def test_eur_only_derives_usd(self) -> None:
        pair = complete_currency(None, Decimal("10"), eur_to_usd=Decimal("1.087"))
        assert pair.usd == Decimal("10.87")
        assert pair.eur == Decimal("10.00")
        assert pair.derived_currency == "USD"

    def test_rate_for_wrong_direction_is_not_used(self) -> None:
        with patch.object(settings, "FX_USD_TO_EUR", None):
            pair = complete_currency(Decimal("4.00"), None, eur_to_usd=Decimal("1.10"))
        assert pair == CurrencyPair(usd=Decimal("4.00"), eur=None, derived=False)

    def test_missing_rate_leaves_none(self) -> None:
        with patch.object(settings, "FX_EUR_TO_USD", None):
            pair = complete_currency(None, Decimal("3.00"))
        assert pair.usd is None
        assert pair.derived is False

    @pytest.mark.parametrize("rate", [Decimal("0"), Decimal("-1.1")])
    def test_non_positive_rate_leaves_none(self, rate: Decimal) -> None:
        pair = complete_currency(Decimal("4.00"), None, usd_to_eur=rate)
        assert pair.eur is None
        assert pair.derived is False

    def test_rate_defaults_from_settings(self) -> None:
        with patch.object(settings, "FX_USD_TO_EUR", Decimal("0.5")):
            pair = complete_currency(Decimal("3.00"), None)
        assert pair.eur == Decimal("1.50")

    def test_half_up_quantization(self) -> None:
        # 1.01 × 0.5 = 0.505 → 0.51
        pair = complete_currency(Decimal("1.005"), None, usd_to_eur=Decimal("0.5"))
        assert pair.usd == Decimal("1.01")
        assert pair.eur == Decimal("0.51")

    def test_both_absent(self) -> None:
        assert complete_currency(None, None, usd_to_eur=Decimal("1")) == CurrencyPair(None, None)


class TestConvertAmount:

    def test_basic(self) -> None:
        assert convert_amount(Decimal("100"), Decimal("1.08")) == Decimal("108.00")

    def test_negative_amount_raises(self) -> None:
        with pytest.raises(ValueError, match="non-negative"):
            convert_amount(Decimal("-1"), Decimal("1.08"))

    def test_zero_rate_raises(self) -> None:
        with pytest.raises(ValueError, match="positive"):
            convert_amount(Decimal("1"), Decimal("0"))
