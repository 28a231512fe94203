"""
Marketplace adapter interface and the shared HTTP request machinery.

Concrete adapters only describe endpoints, authentication and payload
translation; retries, rate limiting and error mapping live here.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import urlencode

import aiohttp

from skintrader.config.settings import Settings
from skintrader.integrations.errors import (
    DecodeError,
    ItemUnavailableError,
    MarketplaceError,
    RemoteRejectionError,
    TransportError,
)
from skintrader.models.schemas import (
    FeeRateData,
    HoldingData,
    ItemClassData,
    ListingPage,
    TradeData,
)
from skintrader.services.rate_limiter import RateLimiter
from skintrader.utils.logging import get_logger

logger = get_logger(__name__)


class MarketplaceAdapter(ABC):
    """
    Async client for one marketplace.

    Use as an async context manager; the aiohttp session lives for the
    duration of the ``async with`` block.
    """

    name: str = "marketplace"
    base_url: str = ""
    page_size: int = 100
    app_id: Optional[int] = None

    def __init__(self, settings: Settings, rate_limiter: Optional[RateLimiter] = None):
        self.settings = settings
        self.rate_limiter = rate_limiter or RateLimiter(settings.rate_capacities())
        self.retries = settings.REQUEST_RETRY_ATTEMPTS
        self.retry_base_delay = settings.RETRY_BASE_DELAY
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        """Async context manager entry."""
        self.session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.settings.REQUEST_TIMEOUT),
            headers={
                "User-Agent": "skintrader/1.0",
                "Accept": "application/json",
            },
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self.session:
            await self.session.close()
            self.session = None

    # Hooks for concrete adapters

    @abstractmethod
    def _category(self, path: str) -> str:
        """Rate limit category for a request path."""

    def _auth_headers(self, method: str, path_and_query: str, body: str) -> Dict[str, str]:
        """Authentication headers for a request."""
        return {}

    def _is_unavailable(self, path: str, status: int, body: str) -> bool:
        """Whether a rejection means the target item no longer exists."""
        return False

    # Request machinery

    async def _send(
        self, method: str, path_and_query: str, body: str, headers: Dict[str, str]
    ) -> Tuple[int, str]:
        """Perform one HTTP exchange and return (status, body text)."""
        if not self.session:
            raise RuntimeError("Client not initialized. Use async context manager.")

        url = f"{self.base_url}{path_and_query}"
        async with self.session.request(
            method, url, data=body or None, headers=headers
        ) as response:
            return response.status, await response.text()

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        payload: Optional[Any] = None,
    ) -> Any:
        """
        Make an API request with rate limiting and retry logic.

        Args:
            method: HTTP method
            path: Endpoint path
            params: Query parameters
            payload: JSON body

        Returns:
            Decoded JSON response

        Raises:
            TransportError: Network failure after all retries
            RemoteRejectionError: Non-success status after all retries
            ItemUnavailableError: Target item is gone (never retried)
            DecodeError: Response is not valid JSON (never retried)
        """
        path_and_query = path
        if params:
            query = urlencode([(k, v) for k, v in params.items() if v is not None])
            path_and_query = f"{path}?{query}"
        body = json.dumps(payload, separators=(",", ":")) if payload is not None else ""
        category = self._category(path)

        last_error: Optional[MarketplaceError] = None
        for attempt in range(self.retries):
            await self.rate_limiter.acquire(category)
            headers = {"Content-Type": "application/json"} if body else {}
            headers.update(self._auth_headers(method, path_and_query, body))

            try:
                status, text = await self._send(method, path_and_query, body, headers)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = TransportError(f"Network error: {e}", endpoint=path)
            else:
                if 200 <= status < 300:
                    try:
                        return json.loads(text) if text else {}
                    except ValueError as e:
                        raise DecodeError(f"Invalid JSON from {path}: {e}", endpoint=path) from e

                if self._is_unavailable(path, status, text):
                    raise ItemUnavailableError(
                        f"Item unavailable: {text[:200]}", status, text, endpoint=path
                    )
                last_error = RemoteRejectionError(
                    f"API error {status}: {text[:200]}", status, text, endpoint=path
                )

            if attempt < self.retries - 1:
                wait_time = self.retry_base_delay * (2 ** attempt)
                logger.warning(
                    "Request failed, retrying",
                    marketplace=self.name,
                    endpoint=path,
                    attempt=attempt + 1,
                    wait=wait_time,
                    error=str(last_error),
                )
                await asyncio.sleep(wait_time)

        raise last_error

    # Marketplace operations

    @abstractmethod
    async def get_item_classes(self) -> List[ItemClassData]:
        """Fetch the full catalog of tradable item classes."""

    @abstractmethod
    async def get_listings(self, item_class_id: str, offset: int) -> ListingPage:
        """Fetch one page of the order book for an item class."""

    @abstractmethod
    async def get_trades(self, item_class_id: str) -> List[TradeData]:
        """Fetch historical sales for an item class."""

    @abstractmethod
    async def get_balance(self) -> float:
        """Fetch the spendable balance in the marketplace's native unit."""

    @abstractmethod
    async def get_holdings(self) -> List[HoldingData]:
        """Fetch items owned by the operator."""

    async def get_fee_rates(self) -> List[FeeRateData]:
        """Reduced per-class sales fees; marketplaces without them charge the flat rate."""
        return []

    @abstractmethod
    async def buy(
        self, listing_id: str, max_price: float, offer_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Purchase a listing, paying at most ``max_price``.

        ``offer_id`` names the sale offer on marketplaces that keep it apart
        from the item id.
        """

    @abstractmethod
    async def relist(self, listing_id: str, price: float) -> Dict[str, Any]:
        """Offer an owned item for sale at ``price``."""

    @abstractmethod
    async def update_price(
        self, listing_id: str, price: float, offer_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Change the asking price of an item already listed."""
