"""Database models package."""

from .base import Base
from .item_class import ItemClass
from .market import MarketListing, Holding, Balance, FeeRate
from .trade import TradeRecord
from .statistics import PriceStatistics

__all__ = [
    "Base",
    "ItemClass",
    "MarketListing",
    "Holding",
    "Balance",
    "FeeRate",
    "TradeRecord",
    "PriceStatistics",
]
