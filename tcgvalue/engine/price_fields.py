"""
TCG Value — Price Fields & Tolerant Numeric Parsing

Vendor rows and payloads disagree on key names (marketPrice vs market vs
price) and on formatting ("$3.25", "3,250.00", "", "N/A"). A PriceField is an
explicit, ordered list of accessor candidates for one logical price plus the
unit the vendor stores it in. Resolution code reads fields through these
descriptors instead of guessing at arbitrary keys.

All conversions into cents happen here, once, with ROUND_HALF_UP.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping

_CENTS = Decimal("0.01")
_STRIP_CHARS = re.compile(r"[^\d.\-]")
_NULL_TOKENS = {"", "n/a", "na", "null", "none", "-"}


class PriceUnit(str, Enum):
    DOLLARS = "dollars"
    CENTS = "cents"


def parse_decimal(value: Any) -> Decimal | None:
    """
    Parse a numeric-ish vendor value into a finite Decimal.

    Accepts numbers and strings such as "$3.25", "3,250.00", " 12 ".
    Returns None for None, blanks, null tokens, and anything non-numeric
    or non-finite. Booleans are rejected.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    else:
        text = str(value).strip()
        if text.lower() in _NULL_TOKENS:
            return None
        text = _STRIP_CHARS.sub("", text.replace(",", ""))
        if not text:
            return None
        try:
            result = Decimal(text)
        except InvalidOperation:
            return None

    if not result.is_finite():
        return None
    return result


def dollars_to_cents(amount: Decimal) -> int:
    """Round a dollar amount to integer cents, half-up."""
    return int((amount / _CENTS).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_cents(value: Any, unit: PriceUnit = PriceUnit.DOLLARS) -> int | None:
    """
    Convert a vendor value to positive integer cents.

    Zero and negative prices are treated as absent, never as a valid $0.
    """
    amount = parse_decimal(value)
    if amount is None:
        return None
    cents = dollars_to_cents(amount) if unit is PriceUnit.DOLLARS else int(
        amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    )
    return cents if cents > 0 else None


@dataclass(frozen=True)
class PriceField:
    """
    One logical price on a vendor row, with ordered accessor candidates.

    Example: PriceField("market", ("marketPrice", "market", "price")).
    """

    label: str
    candidates: tuple[str, ...] = ()
    unit: PriceUnit = PriceUnit.DOLLARS

    @property
    def keys(self) -> tuple[str, ...]:
        return self.candidates or (self.label,)

    def raw(self, row: Mapping[str, Any] | None) -> Any:
        """First candidate value that parses as a number, else None."""
        if not row:
            return None
        for key in self.keys:
            value = row.get(key)
            if parse_decimal(value) is not None:
                return value
        return None

    def amount(self, row: Mapping[str, Any] | None) -> Decimal | None:
        """Finite Decimal in the field's own unit (no sign filtering)."""
        return parse_decimal(self.raw(row))

    def cents(self, row: Mapping[str, Any] | None) -> int | None:
        """Positive integer cents from the first candidate that has them, or None."""
        if not row:
            return None
        for key in self.keys:
            cents = to_cents(row.get(key), self.unit)
            if cents is not None:
                return cents
        return None


def first_cents(
    row: Mapping[str, Any] | None,
    fields: tuple[PriceField, ...],
) -> tuple[int, PriceField] | None:
    """Walk fields in order; return (cents, field) for the first usable one."""
    for field in fields:
        cents = field.cents(row)
        if cents is not None:
            return cents, field
    return None
