"""
TCG Value — Variant Price Selector

Picks a unit price (cents) for a requested printing out of one wide
TCGplayer row. Variant-specific columns win; when the variant's column is
empty the row's generic market → mid → low → high figures are used.

Pure: no I/O, no logging.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Mapping

from tcgvalue.config import VariantType
from tcgvalue.engine.price_fields import PriceField, first_cents
from tcgvalue.utils.normalize import normalize_variant_type

UsedKind = Literal["wide", "generic", "none"]

NORMAL = PriceField("normal")
HOLOFOIL = PriceField("holofoil")
REVERSE_HOLOFOIL = PriceField("reverse_holofoil")
FIRST_EDITION_HOLOFOIL = PriceField("first_edition_holofoil")
FIRST_EDITION_NORMAL = PriceField("first_edition_normal")

GENERIC_FIELDS: tuple[PriceField, ...] = (
    PriceField("market_price", ("market_price", "marketPrice", "market")),
    PriceField("mid_price", ("mid_price", "midPrice", "mid")),
    PriceField("low_price", ("low_price", "lowPrice", "low")),
    PriceField("high_price", ("high_price", "highPrice", "high")),
)

VARIANT_FIELDS: dict[VariantType, tuple[PriceField, ...]] = {
    VariantType.NORMAL: (NORMAL,),
    VariantType.HOLOFOIL: (HOLOFOIL,),
    VariantType.REVERSE_HOLOFOIL: (REVERSE_HOLOFOIL,),
    VariantType.FIRST_EDITION: (FIRST_EDITION_HOLOFOIL, FIRST_EDITION_NORMAL),
    VariantType.PROMO: (HOLOFOIL, NORMAL),
}


@dataclass(frozen=True)
class VariantPick:
    cents: int | None
    used_kind: UsedKind
    field: str | None = None


def pick_variant_cents(
    row: Mapping[str, Any] | None,
    variant_type: str | VariantType | None,
) -> VariantPick:
    """
    Choose the best price on a wide row for the given variant.

    Examples:
        >>> pick_variant_cents({"holofoil": "3.25"}, "holofoil")
        VariantPick(cents=325, used_kind='wide', field='holofoil')
        >>> pick_variant_cents({"market_price": "1.10"}, "holo")
        VariantPick(cents=110, used_kind='generic', field='market_price')
    """
    variant = normalize_variant_type(variant_type)

    hit = first_cents(row, VARIANT_FIELDS[variant])
    if hit is not None:
        return VariantPick(cents=hit[0], used_kind="wide", field=hit[1].label)

    hit = first_cents(row, GENERIC_FIELDS)
    if hit is not None:
        return VariantPick(cents=hit[0], used_kind="generic", field=hit[1].label)

    return VariantPick(cents=None, used_kind="none")
