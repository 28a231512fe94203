"""
DMarket API integration.

Every request is signed with the account's Ed25519 key. Prices are exchanged
in USD cents; the last-sales endpoint reports dollars and is converted here.
Listings are keyed by item (asset) id; purchases and edits go through the
sale offer id carried alongside it.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from skintrader.config.settings import Settings
from skintrader.integrations.base import MarketplaceAdapter
from skintrader.integrations.errors import DecodeError, MarketplaceError
from skintrader.integrations.signing import RequestSigner
from skintrader.models.schemas import (
    FeeRateData,
    HoldingData,
    ItemClassData,
    ListingData,
    ListingPage,
    TradeData,
)
from skintrader.services.rate_limiter import RateLimiter
from skintrader.utils.logging import get_logger

logger = get_logger(__name__)

CSGO_GAME_ID = "a8db"
CURRENCY_USD = "USD"
MARKET_LIMIT = 100

BUY_ENDPOINT = "/exchange/v1/offers-buy"
FEES_ENDPOINT = "/exchange/v1/customized-fees"
EDIT_ENDPOINT = "/marketplace-api/v1/user-offers/edit"

UNAVAILABLE_MARKERS = ("OfferNotFound", "not found", "NotFound", "unavailable")


def _cents(money: Any) -> Optional[float]:
    """Extract a USD cents amount from a ``{"USD": "1234"}`` price object."""
    if money is None:
        return None
    if isinstance(money, dict):
        money = money.get(CURRENCY_USD, money.get("amount"))
    return float(money) if money is not None else None


def _created_at(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


class DMarketAPIClient(MarketplaceAdapter):
    """Async client for the DMarket trading API."""

    name = "dmarket"
    base_url = "https://api.dmarket.com"
    page_size = MARKET_LIMIT

    def __init__(
        self,
        settings: Settings,
        rate_limiter: Optional[RateLimiter] = None,
        signer: Optional[RequestSigner] = None,
        game_id: str = CSGO_GAME_ID,
    ):
        super().__init__(settings, rate_limiter)
        self.signer = signer or RequestSigner(
            settings.DMARKET_API_KEY or "", settings.DMARKET_SECRET_KEY or ""
        )
        self.game_id = game_id

    def _category(self, path: str) -> str:
        if "fee" in path:
            return "fee"
        if "last-sales" in path:
            return "last-sales"
        if "market/items" in path or "market-items" in path:
            return "market-items"
        return "other"

    def _auth_headers(self, method: str, path_and_query: str, body: str) -> Dict[str, str]:
        return self.signer.headers(method, path_and_query, body)

    def _is_unavailable(self, path: str, status: int, body: str) -> bool:
        if path != BUY_ENDPOINT:
            return False
        if status in (404, 410):
            return True
        return status == 400 and any(marker in body for marker in UNAVAILABLE_MARKERS)

    def _listing(self, obj: Dict[str, Any], title: str) -> ListingData:
        extra = obj.get("extra") or {}
        return ListingData(
            id=obj["itemId"],
            item_class_id=obj.get("title", title),
            price=_cents(obj.get("price")) or 0.0,
            offer_id=extra.get("offerId"),
            float_value=extra.get("floatValue"),
            created_at=_created_at(obj.get("createdAt")),
            name=obj.get("title", title),
        )

    async def get_item_classes(self) -> List[ItemClassData]:
        """Walk the market cursor and collect distinct titles."""
        classes: Dict[str, ItemClassData] = {}
        cursor = None
        while True:
            data = await self._request(
                "GET",
                "/exchange/v1/market/items",
                params={
                    "gameId": self.game_id,
                    "currency": CURRENCY_USD,
                    "limit": MARKET_LIMIT,
                    "cursor": cursor,
                },
            )
            try:
                for obj in data.get("objects", []):
                    title = obj["title"]
                    if title not in classes:
                        classes[title] = ItemClassData(
                            id=title,
                            name=title,
                            class_id=obj.get("classId"),
                            suggested_price=_cents(obj.get("suggestedPrice")),
                        )
            except (ValidationError, KeyError, TypeError, AttributeError) as e:
                raise DecodeError(f"Unexpected market items response: {e}", endpoint="/exchange/v1/market/items") from e

            cursor = data.get("cursor")
            if not cursor or not data.get("objects"):
                break

        return list(classes.values())

    async def get_listings(self, item_class_id: str, offset: int) -> ListingPage:
        data = await self._request(
            "GET",
            "/exchange/v1/market/items",
            params={
                "gameId": self.game_id,
                "title": item_class_id,
                "currency": CURRENCY_USD,
                "limit": MARKET_LIMIT,
                "offset": offset,
                "orderBy": "price",
                "orderDir": "asc",
            },
        )
        try:
            items = [
                self._listing(obj, item_class_id)
                for obj in data.get("objects", [])
                if obj.get("title", item_class_id) == item_class_id
            ]
            total = int((data.get("total") or {}).get("offers", len(items)))
        except (ValidationError, KeyError, TypeError, ValueError, AttributeError) as e:
            raise DecodeError(f"Unexpected market items response: {e}", endpoint="/exchange/v1/market/items") from e

        return ListingPage(items=items, total=total)

    async def get_trades(self, item_class_id: str) -> List[TradeData]:
        data = await self._request(
            "GET",
            "/trade-aggregator/v1/last-sales",
            params={"gameId": self.game_id, "title": item_class_id},
        )
        try:
            return [
                TradeData(
                    item_class_id=item_class_id,
                    traded_at=int(sale["date"]),
                    price=round(float(sale["price"]) * 100, 2),
                    operation_type=sale.get("txOperationType"),
                )
                for sale in data.get("sales", [])
            ]
        except (ValidationError, KeyError, TypeError, ValueError, AttributeError) as e:
            raise DecodeError(f"Unexpected last sales response: {e}", endpoint="/trade-aggregator/v1/last-sales") from e

    async def get_balance(self) -> float:
        data = await self._request("GET", "/account/v1/balance")
        try:
            return float(data["usd"])
        except (KeyError, TypeError, ValueError) as e:
            raise DecodeError(f"Unexpected balance response: {data!r}", endpoint="/account/v1/balance") from e

    async def get_holdings(self) -> List[HoldingData]:
        data = await self._request(
            "GET",
            "/marketplace-api/v1/user-inventory",
            params={"GameID": self.game_id, "BasicFilters.Currency": CURRENCY_USD, "Limit": MARKET_LIMIT},
        )
        try:
            holdings = []
            for item in data.get("Items", []):
                offer = item.get("Offer") or {}
                price = (offer.get("Price") or {}).get("Amount")
                holdings.append(
                    HoldingData(
                        listing_id=item["AssetID"],
                        item_class_id=item["Title"],
                        offer_id=offer.get("OfferID"),
                        name=item["Title"],
                        listed_price=round(float(price) * 100, 2) if price is not None else None,
                    )
                )
            return holdings
        except (ValidationError, KeyError, TypeError, ValueError, AttributeError) as e:
            raise DecodeError(f"Unexpected inventory response: {e}", endpoint="/marketplace-api/v1/user-inventory") from e

    async def get_fee_rates(self) -> List[FeeRateData]:
        """Personal reduced fees; titles without one pay the default fee."""
        data = await self._request(
            "GET",
            FEES_ENDPOINT,
            params={"gameId": self.game_id, "offerType": "dmarket", "limit": MARKET_LIMIT},
        )
        try:
            return [
                FeeRateData(
                    item_class_id=fee["title"],
                    fraction=float(fee["fraction"]),
                    expires_at=fee.get("expiresAt"),
                )
                for fee in data.get("reducedFees") or []
            ]
        except (ValidationError, KeyError, TypeError, ValueError, AttributeError) as e:
            raise DecodeError(f"Unexpected fees response: {e}", endpoint=FEES_ENDPOINT) from e

    async def buy(
        self, listing_id: str, max_price: float, offer_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Buy the sale offer behind a mirrored item.

        Raises:
            MarketplaceError: If the listing carries no offer id
        """
        if not offer_id:
            raise MarketplaceError(f"Listing {listing_id} has no offer id", endpoint=BUY_ENDPOINT)

        logger.info("Buying offer", listing_id=listing_id, offer_id=offer_id, max_price=max_price)
        return await self._request(
            "PATCH",
            BUY_ENDPOINT,
            payload={
                "offers": [
                    {
                        "offerId": offer_id,
                        "price": {"amount": str(int(round(max_price))), "currency": CURRENCY_USD},
                        "type": "dmarket",
                    }
                ]
            },
        )

    async def relist(self, listing_id: str, price: float) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/marketplace-api/v1/user-offers/create",
            payload={
                "Offers": [
                    {
                        "AssetID": listing_id,
                        "Price": {"Currency": CURRENCY_USD, "Amount": round(price / 100, 2)},
                    }
                ]
            },
        )

    async def update_price(
        self, listing_id: str, price: float, offer_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Edit a live offer; DMarket identifies it by both offer and asset id."""
        if not offer_id:
            raise MarketplaceError(f"Holding {listing_id} has no offer id", endpoint=EDIT_ENDPOINT)

        return await self._request(
            "POST",
            EDIT_ENDPOINT,
            payload={
                "Offers": [
                    {
                        "OfferID": offer_id,
                        "AssetID": listing_id,
                        "Price": {"Currency": CURRENCY_USD, "Amount": round(price / 100, 2)},
                    }
                ]
            },
        )
