"""
BitSkins API integration.

Prices are exchanged in the vendor's native unit (1/1000 USD). Requests are
authenticated with a static ``x-apikey`` header.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from skintrader.config.settings import Settings
from skintrader.integrations.base import MarketplaceAdapter
from skintrader.integrations.errors import DecodeError
from skintrader.models.schemas import (
    HoldingData,
    ItemClassData,
    ListingData,
    ListingPage,
    TradeData,
)
from skintrader.services.rate_limiter import RateLimiter
from skintrader.utils.logging import get_logger

logger = get_logger(__name__)

CS2_APP_ID = 730
MAX_LIMIT = 500

BUY_ENDPOINT = "/market/buy/single"

# Rejection codes the buy endpoint uses for listings that are already gone
UNAVAILABLE_MARKERS = ("ITEM_NOT_FOUND", "ITEM_NOT_AVAILABLE", "not found", "not available")


def _parse_timestamp(value: Any) -> int:
    """Convert an RFC 3339 string or epoch number into unix seconds."""
    if isinstance(value, (int, float)):
        return int(value)
    return int(datetime.fromisoformat(str(value).replace("Z", "+00:00")).timestamp())


class BitSkinsAPIClient(MarketplaceAdapter):
    """Async client for the BitSkins REST API."""

    name = "bitskins"
    base_url = "https://api.bitskins.com"
    page_size = MAX_LIMIT
    app_id = CS2_APP_ID

    def __init__(
        self,
        settings: Settings,
        rate_limiter: Optional[RateLimiter] = None,
        api_key: Optional[str] = None,
    ):
        super().__init__(settings, rate_limiter)
        self.api_key = api_key or settings.BITSKINS_API_KEY

        if not self.api_key:
            raise ValueError("BitSkins API key is required")

    def _category(self, path: str) -> str:
        if path.startswith("/market/search"):
            return "market"
        return "global"

    def _auth_headers(self, method: str, path_and_query: str, body: str) -> Dict[str, str]:
        return {"x-apikey": self.api_key}

    def _is_unavailable(self, path: str, status: int, body: str) -> bool:
        if path != BUY_ENDPOINT:
            return False
        if status in (404, 410) or status >= 500:
            return True
        return any(marker in body for marker in UNAVAILABLE_MARKERS)

    async def get_item_classes(self) -> List[ItemClassData]:
        data = await self._request("GET", f"/market/skin/{CS2_APP_ID}")
        try:
            return [ItemClassData.model_validate(skin) for skin in data]
        except (ValidationError, TypeError) as e:
            raise DecodeError(f"Unexpected skin catalog shape: {e}", endpoint="/market/skin") from e

    async def get_listings(self, item_class_id: str, offset: int) -> ListingPage:
        data = await self._request(
            "POST",
            f"/market/search/{CS2_APP_ID}",
            payload={
                "where": {"skin_id": [int(item_class_id)]},
                "limit": MAX_LIMIT,
                "offset": offset,
            },
        )
        try:
            items = [
                ListingData(
                    id=item["id"],
                    item_class_id=item.get("skin_id", item_class_id),
                    price=item["price"],
                    float_value=item.get("float_value"),
                    stickers=item.get("stickers"),
                    created_at=item.get("created_at"),
                    name=item.get("name"),
                )
                for item in data.get("list", [])
            ]
            total = int((data.get("counter") or {}).get("total", len(items)))
        except (ValidationError, KeyError, TypeError, AttributeError) as e:
            raise DecodeError(f"Unexpected search response: {e}", endpoint="/market/search") from e

        return ListingPage(items=items, total=total)

    async def get_trades(self, item_class_id: str) -> List[TradeData]:
        logger.info("Getting sales", skin_id=item_class_id)
        data = await self._request(
            "POST",
            "/market/pricing/list",
            payload={"app_id": CS2_APP_ID, "skin_id": int(item_class_id), "limit": MAX_LIMIT},
        )
        try:
            return [
                TradeData(
                    item_class_id=item_class_id,
                    traded_at=_parse_timestamp(sale["created_at"]),
                    price=sale["price"],
                    float_value=sale.get("float_value"),
                    paint_index=sale.get("paint_index"),
                    paint_seed=sale.get("paint_seed"),
                    phase_id=sale.get("phase_id"),
                    extras=sale.get("extras_1"),
                    stickers=sale.get("stickers"),
                )
                for sale in data
            ]
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            raise DecodeError(f"Unexpected pricing response: {e}", endpoint="/market/pricing/list") from e

    async def get_balance(self) -> float:
        data = await self._request("POST", "/account/profile/balance", payload={})
        if isinstance(data, dict):
            data = data.get("balance")
        try:
            return float(data)
        except (TypeError, ValueError) as e:
            raise DecodeError(f"Unexpected balance response: {data!r}", endpoint="/account/profile/balance") from e

    async def get_holdings(self) -> List[HoldingData]:
        data = await self._request(
            "POST",
            f"/market/search/mine/{CS2_APP_ID}",
            payload={"limit": MAX_LIMIT, "offset": 0},
        )
        try:
            return [
                HoldingData(
                    listing_id=item["id"],
                    item_class_id=item["skin_id"],
                    name=item.get("name"),
                    listed_price=item.get("price"),
                    float_value=item.get("float_value"),
                )
                for item in data.get("list", [])
            ]
        except (ValidationError, KeyError, TypeError, AttributeError) as e:
            raise DecodeError(f"Unexpected inventory response: {e}", endpoint="/market/search/mine") from e

    async def buy(
        self, listing_id: str, max_price: float, offer_id: Optional[str] = None
    ) -> Dict[str, Any]:
        logger.info("Buying item", listing_id=listing_id, max_price=max_price)
        return await self._request(
            "POST",
            BUY_ENDPOINT,
            payload={"app_id": CS2_APP_ID, "id": listing_id, "max_price": int(max_price)},
        )

    async def relist(self, listing_id: str, price: float) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/market/relist/single",
            payload={"app_id": CS2_APP_ID, "id": listing_id, "price": int(price)},
        )

    async def update_price(
        self, listing_id: str, price: float, offer_id: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/market/update_price/single",
            payload={"app_id": CS2_APP_ID, "id": listing_id, "price": int(price)},
        )
