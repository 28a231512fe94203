"""
Market Synchronizer.

Keeps the local mirror in line with the remote marketplace: catalog,
order book listings, incremental trade history, fee rates, balance and
holdings.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from skintrader.config.settings import Settings
from skintrader.integrations.base import MarketplaceAdapter
from skintrader.models.schemas import ListingData
from skintrader.repositories.market_repository import MarketRepository
from skintrader.utils.logging import get_logger

logger = get_logger(__name__)


class MarketSynchronizer:
    """Reconciles the local market mirror against one marketplace."""

    def __init__(
        self,
        adapter: MarketplaceAdapter,
        repository: MarketRepository,
        settings: Settings,
    ):
        self.adapter = adapter
        self.repository = repository
        self.concurrency = settings.SYNC_CONCURRENCY
        self.max_offset = settings.LISTING_MAX_OFFSET

    async def _fan_out(
        self,
        operation: str,
        class_ids: Iterable[str],
        worker: Callable[[str], Awaitable[int]],
    ) -> Dict[str, Any]:
        """Run ``worker`` per class with bounded concurrency; failures are isolated."""
        semaphore = asyncio.Semaphore(self.concurrency)
        stats = {"classes": 0, "rows": 0, "errors": 0}

        async def run(class_id: str) -> None:
            async with semaphore:
                try:
                    rows = await worker(class_id)
                except Exception as e:
                    stats["errors"] += 1
                    logger.error(f"{operation} failed", item_class_id=class_id, error=str(e))
                else:
                    stats["rows"] += rows
                    stats["classes"] += 1

        await asyncio.gather(*(run(class_id) for class_id in class_ids))
        logger.info(f"{operation} completed", **stats)
        return stats

    async def sync_item_classes(self) -> int:
        classes = await self.adapter.get_item_classes()
        count = await self.repository.upsert_item_classes(classes)
        logger.info("Item classes synced", count=count)
        return count

    async def fetch_listings_for_class(self, item_class_id: str) -> List[ListingData]:
        """
        Page through the remote order book for one item class.

        Stops at the reported total, on an empty page, or at the hard offset
        cap, whichever comes first.
        """
        listings: List[ListingData] = []
        offset = 0
        while offset < self.max_offset:
            page = await self.adapter.get_listings(item_class_id, offset)
            if not page.items:
                break
            listings.extend(page.items)
            offset += self.adapter.page_size
            if offset >= page.total:
                break
        return listings

    async def reconcile_listings(self, item_class_id: str, incoming: List[ListingData]) -> int:
        """Make the local listings of a class equal ``incoming``."""
        local_ids = await self.repository.get_listing_ids(item_class_id)
        incoming_ids = {item.id for item in incoming}

        stale = local_ids - incoming_ids
        removed = await self.repository.delete_listings(stale)
        upserted = await self.repository.upsert_listings(incoming)

        logger.debug(
            "Listings reconciled",
            item_class_id=item_class_id,
            removed=removed,
            upserted=upserted,
        )
        return upserted

    async def sync_listings_for_class(self, item_class_id: str) -> int:
        incoming = await self.fetch_listings_for_class(item_class_id)
        return await self.reconcile_listings(item_class_id, incoming)

    async def sync_listings(self, class_ids: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        if class_ids is None:
            class_ids = await self.repository.get_item_class_ids()
        return await self._fan_out("Listing sync", class_ids, self.sync_listings_for_class)

    async def ingest_new_trades(self, item_class_id: str) -> int:
        """Insert only trades newer than the stored high-watermark."""
        watermark = await self.repository.get_watermark(item_class_id)
        trades = await self.adapter.get_trades(item_class_id)
        fresh = [trade for trade in trades if trade.traded_at > watermark]
        inserted = await self.repository.insert_trades(fresh)
        if inserted:
            logger.debug(
                "Trades ingested",
                item_class_id=item_class_id,
                inserted=inserted,
                watermark=watermark,
            )
        return inserted

    async def sync_new_trades(self, class_ids: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        if class_ids is None:
            class_ids = await self.repository.get_item_class_ids()
        return await self._fan_out("Trade sync", class_ids, self.ingest_new_trades)

    async def refresh_balance(self) -> float:
        balance = await self.adapter.get_balance()
        await self.repository.set_balance(balance)
        logger.info("Balance refreshed", balance=balance)
        return balance

    async def sync_holdings(self) -> int:
        """Mirror the operator's owned items and forget ones no longer owned."""
        holdings = await self.adapter.get_holdings()
        await self.repository.upsert_holdings(holdings)
        removed = await self.repository.remove_holdings_except(h.listing_id for h in holdings)
        logger.info("Holdings synced", count=len(holdings), removed=removed)
        return len(holdings)

    async def sync_fee_rates(self) -> int:
        """Replace the stored reduced fees with the marketplace's current set."""
        rates = await self.adapter.get_fee_rates()
        count = await self.repository.replace_fee_rates(rates)
        logger.info("Fee rates synced", count=count)
        return count

    async def sync(self) -> Dict[str, Any]:
        """Full pass: catalog, listings, trades, fee rates, then balance."""
        summary: Dict[str, Any] = {"item_classes": await self.sync_item_classes()}
        summary["listings"] = await self.sync_listings()
        summary["trades"] = await self.sync_new_trades()
        summary["fee_rates"] = await self.sync_fee_rates()
        summary["balance"] = await self.refresh_balance()
        return summary
