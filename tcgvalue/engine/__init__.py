from tcgvalue.engine.movers import compute_movers, export_movers, render_movers_csv
from tcgvalue.engine.price_fields import parse_decimal, to_cents
from tcgvalue.engine.resolver import PriceObservation, PriceResolver
from tcgvalue.engine.schema_probe import build_market_item_query, detect_market_item_columns
from tcgvalue.engine.variant_price import pick_variant_cents

__all__ = [
    "PriceObservation",
    "PriceResolver",
    "build_market_item_query",
    "compute_movers",
    "detect_market_item_columns",
    "export_movers",
    "parse_decimal",
    "pick_variant_cents",
    "render_movers_csv",
    "to_cents",
]
