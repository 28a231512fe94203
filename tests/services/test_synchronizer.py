"""
Unit tests for the market synchronizer.
"""

import asyncio

import pytest
import pytest_asyncio

from skintrader.integrations.errors import TransportError
from skintrader.models.schemas import (
    FeeRateData,
    HoldingData,
    ItemClassData,
    ListingData,
    ListingPage,
    TradeData,
)
from skintrader.services.synchronizer import MarketSynchronizer


def listing(listing_id: str, item_class_id: str = "100", price: float = 1000.0) -> ListingData:
    return ListingData(id=listing_id, item_class_id=item_class_id, price=price)


def trade(traded_at: int, price: float = 1000.0, item_class_id: str = "100") -> TradeData:
    return TradeData(item_class_id=item_class_id, traded_at=traded_at, price=price)


@pytest_asyncio.fixture
async def synchronizer(seeded_repository, mock_adapter, settings) -> MarketSynchronizer:
    return MarketSynchronizer(mock_adapter, seeded_repository, settings)


def paged(listings, page_size: int, total=None):
    """Build a get_listings side effect serving ``listings`` in pages."""
    total = len(listings) if total is None else total

    async def get_listings(item_class_id, offset):
        return ListingPage(items=listings[offset:offset + page_size], total=total)

    return get_listings


class TestMarketSynchronizer:
    """Test cases for MarketSynchronizer."""

    @pytest.mark.asyncio
    async def test_sync_item_classes(self, synchronizer):
        synchronizer.adapter.get_item_classes.return_value = [
            ItemClassData(id="300", name="M4A4 | Howl (Minimal Wear)"),
            ItemClassData(id="100", name="AK-47 | Redline (Field-Tested)", suggested_price=15000),
        ]

        count = await synchronizer.sync_item_classes()

        assert count == 2
        assert await synchronizer.repository.get_item_class_ids() == ["100", "200", "300"]

    @pytest.mark.asyncio
    async def test_fetch_listings_pages_until_total(self, synchronizer):
        remote = [listing(str(i)) for i in range(5)]
        synchronizer.adapter.get_listings.side_effect = paged(remote, page_size=2)

        fetched = await synchronizer.fetch_listings_for_class("100")

        assert [item.id for item in fetched] == ["0", "1", "2", "3", "4"]
        offsets = [call.args[1] for call in synchronizer.adapter.get_listings.call_args_list]
        assert offsets == [0, 2, 4]

    @pytest.mark.asyncio
    async def test_fetch_listings_stops_on_empty_page(self, synchronizer):
        remote = [listing(str(i)) for i in range(3)]
        # Vendor over-reports the total
        synchronizer.adapter.get_listings.side_effect = paged(remote, page_size=2, total=50)

        fetched = await synchronizer.fetch_listings_for_class("100")

        assert len(fetched) == 3
        assert synchronizer.adapter.get_listings.call_count == 3

    @pytest.mark.asyncio
    async def test_fetch_listings_respects_offset_cap(self, synchronizer):
        synchronizer.max_offset = 4
        remote = [listing(str(i)) for i in range(10)]
        synchronizer.adapter.get_listings.side_effect = paged(remote, page_size=2)

        fetched = await synchronizer.fetch_listings_for_class("100")

        assert len(fetched) == 4
        assert synchronizer.adapter.get_listings.call_count == 2

    @pytest.mark.asyncio
    async def test_reconcile_makes_local_equal_remote(self, synchronizer):
        await synchronizer.repository.upsert_listings([listing("a"), listing("b"), listing("c")])
        await synchronizer.repository.upsert_listings([listing("z", item_class_id="200")])

        incoming = [listing("b", price=900.0), listing("d", price=1100.0)]
        synchronizer.adapter.get_listings.side_effect = paged(incoming, page_size=2)

        await synchronizer.sync_listings(["100"])

        assert await synchronizer.repository.get_listing_ids("100") == {"b", "d"}
        assert (await synchronizer.repository.get_listing("b")).price == 900.0
        # Other classes are untouched
        assert await synchronizer.repository.get_listing_ids("200") == {"z"}

    @pytest.mark.asyncio
    async def test_reconcile_with_empty_remote_clears_class(self, synchronizer):
        await synchronizer.repository.upsert_listings([listing("a"), listing("b")])
        synchronizer.adapter.get_listings.return_value = ListingPage(items=[], total=0)

        await synchronizer.sync_listings_for_class("100")

        assert await synchronizer.repository.get_listing_ids("100") == set()

    @pytest.mark.asyncio
    async def test_sync_listings_isolates_class_failures(self, synchronizer):
        async def get_listings(item_class_id, offset):
            if item_class_id == "100":
                raise TransportError("connection reset")
            return ListingPage(items=[listing("x", item_class_id="200")], total=1)

        synchronizer.adapter.get_listings.side_effect = get_listings

        stats = await synchronizer.sync_listings()

        assert stats["errors"] == 1
        assert stats["classes"] == 1
        assert await synchronizer.repository.get_listing_ids("200") == {"x"}

    @pytest.mark.asyncio
    async def test_sync_listings_bounds_concurrency(self, synchronizer):
        synchronizer.concurrency = 2
        in_flight = 0
        peak = 0

        async def get_listings(item_class_id, offset):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return ListingPage(items=[], total=0)

        synchronizer.adapter.get_listings.side_effect = get_listings

        await synchronizer.sync_listings([str(i) for i in range(6)])

        assert peak <= 2

    @pytest.mark.asyncio
    async def test_sync_listings_counts_rows_of_concurrent_classes(self, synchronizer):
        remote = {
            "100": [listing("a1"), listing("a2"), listing("a3")],
            "200": [listing("b1", item_class_id="200"), listing("b2", item_class_id="200")],
        }

        async def get_listings(item_class_id, offset):
            await asyncio.sleep(0.01)
            items = remote[item_class_id]
            return ListingPage(items=items[offset:offset + 2], total=len(items))

        synchronizer.adapter.get_listings.side_effect = get_listings

        stats = await synchronizer.sync_listings()

        assert stats["classes"] == 2
        assert stats["rows"] == 5

    @pytest.mark.asyncio
    async def test_ingest_only_trades_newer_than_watermark(self, synchronizer):
        synchronizer.adapter.get_trades.return_value = [trade(100), trade(200), trade(300)]
        assert await synchronizer.ingest_new_trades("100") == 3

        # Remote history now overlaps what we already stored
        synchronizer.adapter.get_trades.return_value = [trade(200), trade(300), trade(400), trade(500)]
        assert await synchronizer.ingest_new_trades("100") == 2

        stored = await synchronizer.repository.get_trades("100")
        assert [t.traded_at for t in stored] == [100, 200, 300, 400, 500]

    @pytest.mark.asyncio
    async def test_ingest_twice_is_idempotent(self, synchronizer):
        synchronizer.adapter.get_trades.return_value = [trade(100), trade(200)]

        await synchronizer.ingest_new_trades("100")
        second = await synchronizer.ingest_new_trades("100")

        assert second == 0
        assert len(await synchronizer.repository.get_trades("100")) == 2

    @pytest.mark.asyncio
    async def test_refresh_balance(self, synchronizer):
        synchronizer.adapter.get_balance.return_value = 123456.0

        assert await synchronizer.refresh_balance() == 123456.0
        assert await synchronizer.repository.get_balance() == 123456.0

    @pytest.mark.asyncio
    async def test_sync_holdings_mirrors_and_prunes(self, synchronizer):
        synchronizer.adapter.get_holdings.return_value = [
            HoldingData(listing_id="h1", item_class_id="100", listed_price=2000.0),
            HoldingData(listing_id="h2", item_class_id="999", name="New Skin"),
        ]
        assert await synchronizer.sync_holdings() == 2

        synchronizer.adapter.get_holdings.return_value = [
            HoldingData(listing_id="h2", item_class_id="999", name="New Skin"),
        ]
        await synchronizer.sync_holdings()

        holdings = await synchronizer.repository.get_holdings()
        assert [h.listing_id for h in holdings] == ["h2"]
        assert "999" in await synchronizer.repository.get_item_class_ids()

    @pytest.mark.asyncio
    async def test_full_sync(self, synchronizer):
        synchronizer.adapter.get_item_classes.return_value = [
            ItemClassData(id="100", name="AK-47 | Redline (Field-Tested)"),
        ]
        synchronizer.adapter.get_listings.return_value = ListingPage(items=[], total=0)
        synchronizer.adapter.get_trades.side_effect = lambda item_class_id: [trade(100, item_class_id=item_class_id)]
        synchronizer.adapter.get_balance.return_value = 5000.0

        summary = await synchronizer.sync()

        assert summary["item_classes"] == 1
        assert summary["listings"]["errors"] == 0
        assert summary["trades"]["rows"] == 2
        assert summary["fee_rates"] == 0
        assert summary["balance"] == 5000.0

    @pytest.mark.asyncio
    async def test_reconcile_set_equality(self, synchronizer):
        await synchronizer.repository.upsert_listings([listing("1"), listing("2"), listing("3")])

        await synchronizer.reconcile_listings("100", [listing("2"), listing("3"), listing("4")])

        assert await synchronizer.repository.get_listing_ids("100") == {"2", "3", "4"}

    @pytest.mark.asyncio
    async def test_watermark_filters_old_and_equal_trades(self, synchronizer):
        await synchronizer.repository.insert_trades([trade(1000)])
        synchronizer.adapter.get_trades.return_value = [trade(900), trade(1000), trade(1100), trade(1200)]

        assert await synchronizer.ingest_new_trades("100") == 2

        stored = await synchronizer.repository.get_trades("100")
        assert [t.traded_at for t in stored] == [1000, 1100, 1200]

    @pytest.mark.asyncio
    async def test_sync_fee_rates_replaces_snapshot(self, synchronizer):
        synchronizer.adapter.get_fee_rates.return_value = [
            FeeRateData(item_class_id="100", fraction=0.03),
            FeeRateData(item_class_id="200", fraction=0.05),
        ]
        assert await synchronizer.sync_fee_rates() == 2

        synchronizer.adapter.get_fee_rates.return_value = [FeeRateData(item_class_id="200", fraction=0.04)]
        assert await synchronizer.sync_fee_rates() == 1

        assert await synchronizer.repository.get_fee_rate("100") is None
        assert await synchronizer.repository.get_fee_rate("200") == 0.04
