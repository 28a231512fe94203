"""
Arbitrage decision engine.

Gates purchases on statistical reliability, affordability and
profitability, executes accepted ones and keeps owned items listed.

Two paths can try to buy the same listing at the same time (a feed event
and the scheduled sweep). No cross-path guard exists; the loser gets an
item-unavailable rejection and cleans its mirror row.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from skintrader.config.settings import Settings
from skintrader.integrations.base import MarketplaceAdapter
from skintrader.integrations.errors import ItemUnavailableError, MarketplaceError
from skintrader.models.schemas import (
    DecisionOutcome,
    FeedChannel,
    FeedEvent,
    ListingData,
    SkipReason,
)
from skintrader.repositories.market_repository import MarketRepository
from skintrader.services.analyzer.profit_calculator import (
    ProfitCalculationResult,
    ProfitCalculator,
)
from skintrader.services.synchronizer import MarketSynchronizer
from skintrader.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class Decision:
    """Outcome of evaluating one purchase opportunity."""
    outcome: DecisionOutcome
    item_class_id: str
    price: float
    listing_id: Optional[str] = None
    reason: Optional[SkipReason] = None
    calculation: Optional[ProfitCalculationResult] = None

    @property
    def accepted(self) -> bool:
        return self.reason is None

    @property
    def bought(self) -> bool:
        return self.outcome == DecisionOutcome.BOUGHT


class ArbitrageTrader:
    """Buys underpriced listings and relists owned items near the fair price."""

    def __init__(
        self,
        adapter: MarketplaceAdapter,
        repository: MarketRepository,
        synchronizer: MarketSynchronizer,
        settings: Settings,
        calculator: Optional[ProfitCalculator] = None,
    ):
        self.adapter = adapter
        self.repository = repository
        self.synchronizer = synchronizer
        self.calculator = calculator or ProfitCalculator.from_settings(settings)
        self.min_sale_count = settings.MIN_SALE_COUNT
        self.min_price_slope = settings.MIN_PRICE_SLOPE
        self.min_monthly_sales = settings.MIN_MONTHLY_SALES
        self.affordability_fraction = settings.AFFORDABILITY_FRACTION

    def _skip(self, item_class_id: str, price: float, reason: SkipReason, **extra) -> Decision:
        return Decision(DecisionOutcome.SKIPPED, item_class_id, price, reason=reason, **extra)

    async def evaluate(self, item_class_id: str, price: float) -> Decision:
        """
        Apply the purchase gates without buying anything.

        Args:
            item_class_id: Item class of the listing
            price: Asking price in native units

        Returns:
            Decision with outcome SKIPPED; ``reason`` is None when every gate passed
        """
        stats = await self.repository.get_statistics(item_class_id)
        if stats is None or not stats.is_reliable(
            self.min_sale_count, self.min_price_slope, self.min_monthly_sales
        ):
            return self._skip(item_class_id, price, SkipReason.UNRELIABLE_STATS)

        balance = await self.repository.get_balance() or 0.0
        if price > self.affordability_fraction * balance:
            return self._skip(item_class_id, price, SkipReason.UNAFFORDABLE)

        fee_rate = await self.repository.get_fee_rate(item_class_id)
        calculation = self.calculator.calculate(price, stats.mean_price, fee_rate)
        if not calculation.is_profitable:
            return self._skip(item_class_id, price, SkipReason.UNPROFITABLE, calculation=calculation)

        return Decision(DecisionOutcome.SKIPPED, item_class_id, price, calculation=calculation)

    async def attempt_purchase(
        self,
        listing_id: str,
        item_class_id: str,
        price: float,
        offer_id: Optional[str] = None,
    ) -> Decision:
        """
        Evaluate a listing and buy it when every gate passes.

        ``offer_id`` is the vendor's purchasable offer when it differs from
        the listing id.

        Raises:
            ItemUnavailableError: The listing is gone; its mirror row is deleted
            MarketplaceError: Any other purchase failure, with no local changes
        """
        decision = await self.evaluate(item_class_id, price)
        decision.listing_id = listing_id
        if not decision.accepted:
            logger.debug(
                "Purchase skipped",
                listing_id=listing_id,
                item_class_id=item_class_id,
                price=price,
                reason=decision.reason.value,
            )
            return decision

        logger.info("Buying listing", listing_id=listing_id, item_class_id=item_class_id, price=price)
        try:
            await self.adapter.buy(listing_id, price, offer_id=offer_id)
        except ItemUnavailableError:
            logger.warning(
                "Listing no longer available, removing from mirror",
                listing_id=listing_id,
                item_class_id=item_class_id,
            )
            await self.repository.delete_listing(listing_id)
            raise

        await self.synchronizer.refresh_balance()
        await self.relist_holdings()

        decision.outcome = DecisionOutcome.BOUGHT
        return decision

    async def relist_holdings(self) -> Dict[str, Any]:
        """List or reprice every owned item that has statistics."""
        stats = {"holdings": 0, "listed": 0, "repriced": 0, "unchanged": 0, "errors": 0}

        await self.synchronizer.sync_holdings()
        for holding in await self.repository.get_holdings():
            stats["holdings"] += 1
            price_stats = await self.repository.get_statistics(holding.item_class_id)
            if price_stats is None:
                continue

            competitor = await self.repository.get_cheapest_listing(holding.item_class_id)
            price = self.calculator.list_price(
                price_stats.mean_price, competitor.price if competitor else None
            )
            if holding.listed_price == price:
                stats["unchanged"] += 1
                continue

            try:
                if holding.listed_price is None:
                    await self.adapter.relist(holding.listing_id, price)
                    stats["listed"] += 1
                else:
                    await self.adapter.update_price(holding.listing_id, price, offer_id=holding.offer_id)
                    stats["repriced"] += 1
                await self.repository.set_listed_price(holding.listing_id, price)
            except MarketplaceError as e:
                stats["errors"] += 1
                logger.error("Relisting failed", listing_id=holding.listing_id, price=price, error=str(e))

        logger.info("Holdings relisted", **stats)
        return stats

    async def purchase_best_available(self) -> Dict[str, Any]:
        """Try the cheapest mirrored listing of every reliably priced class."""
        stats = {"classes": 0, "bought": 0, "skipped": 0, "errors": 0}

        for item_class_id in await self.repository.get_reliable_class_ids(
            self.min_sale_count, self.min_price_slope, self.min_monthly_sales
        ):
            listing = await self.repository.get_cheapest_listing(item_class_id)
            if listing is None:
                continue

            stats["classes"] += 1
            try:
                decision = await self.attempt_purchase(
                    listing.id, item_class_id, listing.price, offer_id=listing.offer_id
                )
            except Exception as e:
                stats["errors"] += 1
                logger.error(
                    "Purchase attempt failed",
                    listing_id=listing.id,
                    item_class_id=item_class_id,
                    error=str(e),
                )
                continue

            stats["bought" if decision.bought else "skipped"] += 1

        logger.info("Purchase sweep completed", **stats)
        return stats

    # Push feed handling

    async def handle(self, channel: FeedChannel, event: FeedEvent) -> None:
        """Apply one market event to the mirror and react to it."""
        if self.adapter.app_id is not None and event.app_id != self.adapter.app_id:
            logger.debug("Ignoring event for other app", app_id=event.app_id, listing_id=event.id)
            return

        if channel == FeedChannel.LISTED:
            await self._handle_listed(event)
        elif channel == FeedChannel.PRICE_CHANGED:
            await self._handle_price_changed(event)
        elif channel == FeedChannel.DELISTED_OR_SOLD:
            await self._handle_delisted_or_sold(event)
        else:
            logger.warning("Unhandled channel", channel=channel.value)

    async def _try_purchase(self, event: FeedEvent) -> bool:
        """Try to buy the event's listing; False when it should not be mirrored."""
        if event.price is None:
            logger.warning("Event without price", listing_id=event.id, item_class_id=event.skin_id)
            return False
        try:
            await self.attempt_purchase(event.id, event.skin_id, event.price)
        except ItemUnavailableError:
            return False
        except MarketplaceError as e:
            logger.warning("Purchase from event failed", listing_id=event.id, error=str(e))
        return True

    async def _handle_listed(self, event: FeedEvent) -> None:
        if not await self._try_purchase(event):
            return

        await self.repository.ensure_item_class(
            event.skin_id,
            event.name,
            class_id=event.class_id,
            suggested_price=event.suggested_price,
        )
        await self.repository.upsert_listings([
            ListingData(
                id=event.id,
                item_class_id=event.skin_id,
                price=event.price,
                float_value=event.float_value,
            )
        ])

    async def _handle_price_changed(self, event: FeedEvent) -> None:
        if not await self._try_purchase(event):
            return
        if not await self.repository.update_listing_price(event.id, event.price):
            logger.warning("Price update for unknown listing", listing_id=event.id)

    async def _handle_delisted_or_sold(self, event: FeedEvent) -> None:
        if await self.repository.is_holding(event.id):
            await self.repository.delete_holding(event.id)
            await self.synchronizer.refresh_balance()
        if not await self.repository.delete_listing(event.id):
            logger.debug("Delisted listing was not mirrored", listing_id=event.id)
