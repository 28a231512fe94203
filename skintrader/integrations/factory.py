"""
Adapter construction for the configured marketplace.
"""

from typing import Optional

from skintrader.config.settings import Settings
from skintrader.integrations.base import MarketplaceAdapter
from skintrader.integrations.bitskins_api import BitSkinsAPIClient
from skintrader.integrations.dmarket_api import DMarketAPIClient
from skintrader.services.rate_limiter import RateLimiter

ADAPTERS = {
    "bitskins": BitSkinsAPIClient,
    "dmarket": DMarketAPIClient,
}


def create_adapter(settings: Settings, rate_limiter: Optional[RateLimiter] = None) -> MarketplaceAdapter:
    """Build the adapter for ``settings.MARKETPLACE`` with its rate budget."""
    settings.require_credentials()
    adapter_cls = ADAPTERS[settings.MARKETPLACE]
    return adapter_cls(settings, rate_limiter or RateLimiter(settings.rate_capacities()))
