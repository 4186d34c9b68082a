"""
Models package — export all SQLAlchemy models.
"""

from tcgvalue.models.base import Base
from tcgvalue.models.collection_item import CollectionItem
from tcgvalue.models.market import MarketPriceCurrent, MarketPriceDaily
from tcgvalue.models.revalue_job import RevalueJob
from tcgvalue.models.tcgdex_snapshot import TcgdexPriceSnapshot
from tcgvalue.models.valuation import PortfolioDailyValuation, ValuationRecord
from tcgvalue.models.vendor_prices import (
    MtgEffectivePrice,
    TcgdexCard,
    TcgplayerPokemonPrice,
    YgoCardPrice,
)

__all__ = [
    "Base",
    "CollectionItem",
    "MarketPriceCurrent",
    "MarketPriceDaily",
    "MtgEffectivePrice",
    "PortfolioDailyValuation",
    "RevalueJob",
    "TcgdexCard",
    "TcgdexPriceSnapshot",
    "TcgplayerPokemonPrice",
    "ValuationRecord",
    "YgoCardPrice",
]
