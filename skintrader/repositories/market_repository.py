"""
Persistence for the market mirror, trade history, statistics and account state.

Every method runs in its own short transaction. Writes are per-row
idempotent upserts or deletes so interrupted passes can simply be rerun.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from skintrader.config.database import upsert_statement
from skintrader.models import (
    Balance,
    FeeRate,
    Holding,
    ItemClass,
    MarketListing,
    PriceStatistics,
    TradeRecord,
)
from skintrader.models.schemas import (
    FeeRateData,
    HoldingData,
    ItemClassData,
    ListingData,
    TradeData,
)
from skintrader.utils.logging import get_logger

logger = get_logger(__name__)

BATCH_SIZE = 500


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _chunks(rows: Sequence[Dict[str, Any]], size: int = BATCH_SIZE):
    for start in range(0, len(rows), size):
        yield rows[start:start + size]


class MarketRepository:
    """
    Data access for one marketplace's mirror.

    Args:
        session_factory: async_sessionmaker bound to the engine
        marketplace: Marketplace name stored on item classes and balances
    """

    def __init__(self, session_factory: async_sessionmaker, marketplace: str):
        self.session_factory = session_factory
        self.marketplace = marketplace

    async def _upsert(self, model, rows: List[Dict[str, Any]], index_elements, update_columns=None) -> int:
        if not rows:
            return 0
        async with self.session_factory() as session:
            for chunk in _chunks(rows):
                stmt = upsert_statement(session, model, chunk, index_elements, update_columns)
                await session.execute(stmt)
            await session.commit()
        return len(rows)

    # Item classes

    async def upsert_item_classes(self, classes: Iterable[ItemClassData]) -> int:
        now = _utcnow()
        rows = [
            {
                "id": c.id,
                "marketplace": self.marketplace,
                "name": c.name,
                "class_id": c.class_id,
                "suggested_price": c.suggested_price,
                "updated_at": now,
            }
            for c in classes
        ]
        return await self._upsert(ItemClass, rows, ["id"])

    async def ensure_item_class(self, item_class_id: str, name: Optional[str] = None, **fields) -> None:
        """Create the item class if unseen; refresh only the fields given."""
        row = {
            "id": item_class_id,
            "marketplace": self.marketplace,
            "name": name or item_class_id,
            "updated_at": _utcnow(),
        }
        row.update({k: v for k, v in fields.items() if v is not None})
        update_columns = [k for k in row if k != "id" and (k != "name" or name)]
        await self._upsert(ItemClass, [row], ["id"], update_columns)

    async def get_item_class_ids(self) -> List[str]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ItemClass.id)
                .where(ItemClass.marketplace == self.marketplace)
                .order_by(ItemClass.id)
            )
            return list(result.scalars().all())

    # Listings

    async def get_listing_ids(self, item_class_id: str) -> Set[str]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(MarketListing.id).where(MarketListing.item_class_id == item_class_id)
            )
            return set(result.scalars().all())

    async def get_listing(self, listing_id: str) -> Optional[MarketListing]:
        async with self.session_factory() as session:
            return await session.get(MarketListing, listing_id)

    async def upsert_listings(self, listings: Iterable[ListingData]) -> int:
        now = _utcnow()
        rows = [
            {
                "id": item.id,
                "item_class_id": item.item_class_id,
                "price": item.price,
                "offer_id": item.offer_id,
                "float_value": item.float_value,
                "stickers": item.stickers,
                "created_at": item.created_at or now,
                "updated_at": now,
            }
            for item in listings
        ]
        return await self._upsert(
            MarketListing,
            rows,
            ["id"],
            ["item_class_id", "price", "offer_id", "float_value", "stickers", "updated_at"],
        )

    async def delete_listings(self, listing_ids: Iterable[str]) -> int:
        ids = list(listing_ids)
        if not ids:
            return 0
        async with self.session_factory() as session:
            await session.execute(delete(Holding).where(Holding.listing_id.in_(ids)))
            result = await session.execute(delete(MarketListing).where(MarketListing.id.in_(ids)))
            await session.commit()
            return result.rowcount or 0

    async def delete_listing(self, listing_id: str) -> bool:
        return await self.delete_listings([listing_id]) > 0

    async def update_listing_price(self, listing_id: str, price: float) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(
                update(MarketListing)
                .where(MarketListing.id == listing_id)
                .values(price=price, updated_at=_utcnow())
            )
            await session.commit()
            return (result.rowcount or 0) > 0

    async def get_cheapest_listing(self, item_class_id: str) -> Optional[MarketListing]:
        """Cheapest mirrored listing of a class that we do not already hold."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(MarketListing)
                .outerjoin(Holding, Holding.listing_id == MarketListing.id)
                .where(MarketListing.item_class_id == item_class_id, Holding.listing_id.is_(None))
                .order_by(MarketListing.price, MarketListing.id)
                .limit(1)
            )
            return result.scalars().first()

    # Trades

    async def get_watermark(self, item_class_id: str) -> int:
        """Latest ingested trade time for a class, or 0 when none exist."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(func.max(TradeRecord.traded_at)).where(TradeRecord.item_class_id == item_class_id)
            )
            return result.scalar() or 0

    async def insert_trades(self, trades: Iterable[TradeData]) -> int:
        records = [TradeRecord(**trade.model_dump()) for trade in trades]
        if not records:
            return 0
        async with self.session_factory() as session:
            session.add_all(records)
            await session.commit()
        return len(records)

    async def get_trades(self, item_class_id: str) -> List[TradeRecord]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(TradeRecord)
                .where(TradeRecord.item_class_id == item_class_id)
                .order_by(TradeRecord.traded_at, TradeRecord.id)
            )
            return list(result.scalars().all())

    async def get_traded_class_ids(self) -> List[str]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(TradeRecord.item_class_id).distinct().order_by(TradeRecord.item_class_id)
            )
            return list(result.scalars().all())

    # Statistics

    async def upsert_statistics(self, stats: Iterable[Dict[str, Any]]) -> int:
        return await self._upsert(PriceStatistics, list(stats), ["item_class_id"])

    async def get_statistics(self, item_class_id: str) -> Optional[PriceStatistics]:
        async with self.session_factory() as session:
            return await session.get(PriceStatistics, item_class_id)

    async def get_reliable_class_ids(
        self, min_sale_count: int, min_slope: float, min_monthly_sales: int = 0
    ) -> List[str]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PriceStatistics.item_class_id)
                .where(
                    PriceStatistics.sale_count >= min_sale_count,
                    PriceStatistics.monthly_sales >= min_monthly_sales,
                    PriceStatistics.price_slope >= min_slope,
                )
                .order_by(PriceStatistics.item_class_id)
            )
            return list(result.scalars().all())

    # Fee rates

    async def replace_fee_rates(self, rates: Iterable[FeeRateData]) -> int:
        """Swap the stored reduced fees for the latest vendor snapshot."""
        now = _utcnow()
        rows = [
            {
                "marketplace": self.marketplace,
                "item_class_id": r.item_class_id,
                "fraction": r.fraction,
                "expires_at": r.expires_at,
                "updated_at": now,
            }
            for r in rates
        ]
        async with self.session_factory() as session:
            await session.execute(delete(FeeRate).where(FeeRate.marketplace == self.marketplace))
            await session.commit()
        return await self._upsert(FeeRate, rows, ["marketplace", "item_class_id"])

    async def get_fee_rate(self, item_class_id: str, now: Optional[int] = None) -> Optional[float]:
        """Reduced fee fraction for a class, or None when no unexpired one exists."""
        if now is None:
            now = int(_utcnow().timestamp())
        async with self.session_factory() as session:
            rate = await session.get(FeeRate, (self.marketplace, item_class_id))
        if rate is None or (rate.expires_at is not None and rate.expires_at <= now):
            return None
        return rate.fraction

    # Balance

    async def get_balance(self) -> Optional[float]:
        async with self.session_factory() as session:
            balance = await session.get(Balance, self.marketplace)
            return balance.amount if balance else None

    async def set_balance(self, amount: float) -> None:
        await self._upsert(
            Balance,
            [{"marketplace": self.marketplace, "amount": amount, "updated_at": _utcnow()}],
            ["marketplace"],
        )

    # Holdings

    async def is_holding(self, listing_id: str) -> bool:
        async with self.session_factory() as session:
            return await session.get(Holding, listing_id) is not None

    async def get_holdings(self) -> List[Holding]:
        async with self.session_factory() as session:
            result = await session.execute(select(Holding).order_by(Holding.listing_id))
            return list(result.scalars().all())

    async def upsert_holdings(self, holdings: Iterable[HoldingData]) -> int:
        """Mirror owned items; the listing row is written before the holding row."""
        holdings = list(holdings)
        now = _utcnow()
        for h in holdings:
            await self.ensure_item_class(h.item_class_id, h.name)

        listing_rows = [
            {
                "id": h.listing_id,
                "item_class_id": h.item_class_id,
                "price": h.listed_price or 0.0,
                "offer_id": h.offer_id,
                "float_value": h.float_value,
                "created_at": now,
                "updated_at": now,
            }
            for h in holdings
        ]
        await self._upsert(MarketListing, listing_rows, ["id"], ["item_class_id", "price", "offer_id", "updated_at"])

        holding_rows = [
            {
                "listing_id": h.listing_id,
                "item_class_id": h.item_class_id,
                "offer_id": h.offer_id,
                "listed_price": h.listed_price,
                "updated_at": now,
            }
            for h in holdings
        ]
        return await self._upsert(Holding, holding_rows, ["listing_id"])

    async def set_listed_price(self, listing_id: str, price: float) -> None:
        async with self.session_factory() as session:
            await session.execute(
                update(Holding)
                .where(Holding.listing_id == listing_id)
                .values(listed_price=price, updated_at=_utcnow())
            )
            await session.commit()

    async def delete_holding(self, listing_id: str) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(delete(Holding).where(Holding.listing_id == listing_id))
            await session.commit()
            return (result.rowcount or 0) > 0

    async def remove_holdings_except(self, listing_ids: Iterable[str]) -> int:
        keep = list(listing_ids)
        async with self.session_factory() as session:
            stmt = delete(Holding)
            if keep:
                stmt = stmt.where(Holding.listing_id.notin_(keep))
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount or 0
