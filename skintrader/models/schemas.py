"""
Pydantic schemas for marketplace payload validation.

Adapters translate vendor responses into these shapes; everything past the
adapter boundary works with them instead of raw dictionaries.
"""

from typing import Any, Dict, List, Optional
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class FeedChannel(str, Enum):
    """Push feed channels carrying market events."""
    LISTED = "listed"
    PRICE_CHANGED = "price_changed"
    DELISTED_OR_SOLD = "delisted_or_sold"
    EXTRA_INFO = "extra_info"


class FeedAction(str, Enum):
    """Control tags of the push feed protocol."""
    AUTH = "WS_AUTH"
    AUTH_APIKEY = "WS_AUTH_APIKEY"
    DEAUTH = "WS_DEAUTH"
    SUB = "WS_SUB"
    UNSUB = "WS_UNSUB"
    UNSUB_ALL = "WS_UNSUB_ALL"


class DecisionOutcome(str, Enum):
    """Result of evaluating a purchase opportunity."""
    BOUGHT = "bought"
    SKIPPED = "skipped"


class SkipReason(str, Enum):
    """Why an opportunity was not taken."""
    UNRELIABLE_STATS = "unreliable_stats"
    UNAFFORDABLE = "unaffordable"
    UNPROFITABLE = "unprofitable"


IDENTIFIER_FIELDS = frozenset({
    "id", "item_class_id", "class_id", "listing_id", "skin_id",
    "asset_id", "bot_steam_id", "float_id", "offer_id",
})


# Base schemas
class BaseSchema(BaseModel):
    """Base schema with common configuration."""
    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("*", mode="before")
    @classmethod
    def coerce_identifiers(cls, v, info: ValidationInfo):
        """Vendors send identifiers as numbers or strings; store them as strings."""
        if info.field_name in IDENTIFIER_FIELDS and isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class ItemClassData(BaseSchema):
    """Catalog entry for one tradable item class."""
    id: str
    name: str
    class_id: Optional[str] = None
    suggested_price: Optional[float] = None


class ListingData(BaseSchema):
    """One offer on the remote order book."""
    id: str
    item_class_id: str
    price: float = Field(..., ge=0)
    offer_id: Optional[str] = None
    float_value: Optional[float] = None
    stickers: Optional[List[Dict[str, Any]]] = None
    created_at: Optional[datetime] = None
    name: Optional[str] = None


class ListingPage(BaseSchema):
    """A page of listings plus the vendor-reported total."""
    items: List[ListingData] = Field(default_factory=list)
    total: int = 0


class TradeData(BaseSchema):
    """A completed historical sale."""
    item_class_id: str
    traded_at: int
    price: float
    float_value: Optional[float] = None
    paint_index: Optional[int] = None
    paint_seed: Optional[int] = None
    phase_id: Optional[int] = None
    extras: Optional[int] = None
    stickers: Optional[List[Dict[str, Any]]] = None
    operation_type: Optional[str] = None


class HoldingData(BaseSchema):
    """An item owned by the operator, possibly listed for sale."""
    listing_id: str
    item_class_id: str
    offer_id: Optional[str] = None
    name: Optional[str] = None
    listed_price: Optional[float] = None
    float_value: Optional[float] = None


class FeedEvent(BaseSchema):
    """Payload of a market event delivered over the push feed."""
    id: str
    skin_id: str
    asset_id: Optional[str] = None
    app_id: Optional[int] = None
    bot_steam_id: Optional[str] = None
    class_id: Optional[str] = None
    float_id: Optional[str] = None
    float_value: Optional[float] = None
    name: Optional[str] = None
    paint_seed: Optional[int] = None
    price: Optional[float] = None
    old_price: Optional[float] = None
    suggested_price: Optional[float] = None
    tradehold: Optional[int] = None



class FeeRateData(BaseSchema):
    """A reduced sales fee granted for one item class."""
    item_class_id: str
    fraction: float = Field(..., ge=0, le=1)
    expires_at: Optional[int] = None
