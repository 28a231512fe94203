"""
Price Analyzer Engine.

Derives a robust fair-price estimate per item class from its trade history:
outliers are removed with a Tukey fence on log-prices and the mean is taken
in log space (geometric mean of the retained prices).
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, Sequence

import numpy as np

from skintrader.repositories.market_repository import MarketRepository
from skintrader.utils.logging import get_logger

logger = get_logger(__name__)

IQR_MULTIPLIER = 1.5
MONTH_SECONDS = 30 * 24 * 60 * 60


class TradeLike(Protocol):
    id: Optional[int]
    traded_at: int
    price: float
    float_value: Optional[float]


@dataclass
class PriceStatisticsResult:
    """Statistics derived for one item class."""
    item_class_id: str
    mean_price: float
    sale_count: int
    monthly_sales: int
    price_slope: Optional[float]
    std_dev_price: Optional[float]
    min_float: Optional[float]
    max_float: Optional[float]
    time_correlation: Optional[float]

    def to_row(self, last_update: datetime) -> Dict[str, Any]:
        row = asdict(self)
        row["last_update"] = last_update
        return row


def _slope(x: np.ndarray, y: np.ndarray) -> Optional[float]:
    """Ordinary least squares slope of y on x."""
    if len(x) < 2:
        return None
    dx = x - x.mean()
    denominator = float(np.dot(dx, dx))
    if denominator == 0.0:
        return None
    return float(np.dot(dx, y - y.mean()) / denominator)


def _correlation(x: np.ndarray, y: np.ndarray) -> Optional[float]:
    if len(x) < 2 or np.ptp(x) == 0 or np.ptp(y) == 0:
        return None
    return float(np.corrcoef(x, y)[0, 1])


def compute_price_statistics(
    item_class_id: str,
    trades: Sequence[TradeLike],
    iqr_multiplier: float = IQR_MULTIPLIER,
    now: Optional[int] = None,
) -> Optional[PriceStatisticsResult]:
    """
    Compute robust statistics from a trade history.

    Args:
        item_class_id: Item class the trades belong to
        trades: Trade records (any order)
        iqr_multiplier: Tukey fence width
        now: Unix seconds that recent sales are counted back from (default: current time)

    Returns:
        PriceStatisticsResult, or None when no trade has a positive price
    """
    ordered = sorted(
        (t for t in trades if t.price is not None and t.price > 0),
        key=lambda t: (t.traded_at, t.id if t.id is not None else 0),
    )
    if not ordered:
        return None

    prices = np.array([t.price for t in ordered], dtype=float)
    times = np.array([t.traded_at for t in ordered], dtype=float)
    log_prices = np.log(prices)

    q1, q3 = np.percentile(log_prices, [25, 75], method="linear")
    iqr = q3 - q1
    lower = q1 - iqr_multiplier * iqr
    upper = q3 + iqr_multiplier * iqr

    mask = (log_prices >= lower) & (log_prices <= upper)
    kept_log = log_prices[mask]
    kept_prices = prices[mask]
    kept_times = times[mask]

    floats = np.array(
        [t.float_value for t, keep in zip(ordered, mask) if keep and t.float_value is not None],
        dtype=float,
    )

    if now is None:
        now = int(datetime.now(timezone.utc).timestamp())
    monthly_sales = int((kept_times > now - MONTH_SECONDS).sum())

    return PriceStatisticsResult(
        item_class_id=item_class_id,
        mean_price=float(np.exp(kept_log.mean())),
        sale_count=int(mask.sum()),
        monthly_sales=monthly_sales,
        price_slope=_slope(kept_times, kept_log),
        std_dev_price=float(np.std(kept_prices, ddof=1)) if len(kept_prices) > 1 else None,
        min_float=float(floats.min()) if len(floats) else None,
        max_float=float(floats.max()) if len(floats) else None,
        time_correlation=_correlation(kept_times, kept_log),
    )


class PriceAnalyzer:
    """Recomputes and persists price statistics for every traded item class."""

    def __init__(self, repository: MarketRepository, iqr_multiplier: float = IQR_MULTIPLIER):
        """
        Initialize price analyzer.

        Args:
            repository: Market data repository
            iqr_multiplier: Tukey fence width used for outlier removal
        """
        self.repository = repository
        self.iqr_multiplier = iqr_multiplier

    async def analyze_item_class(
        self, item_class_id: str, now: Optional[int] = None
    ) -> Optional[PriceStatisticsResult]:
        trades = await self.repository.get_trades(item_class_id)
        return compute_price_statistics(item_class_id, trades, self.iqr_multiplier, now)

    async def recompute_all(self) -> Dict[str, Any]:
        """
        Recompute statistics for all item classes with trades and upsert them.

        Returns:
            Run summary
        """
        stats = {"classes_analyzed": 0, "classes_skipped": 0, "errors": 0}
        now = datetime.now(timezone.utc)
        rows: List[Dict[str, Any]] = []

        for item_class_id in await self.repository.get_traded_class_ids():
            try:
                result = await self.analyze_item_class(item_class_id, int(now.timestamp()))
            except Exception as e:
                logger.error("Statistics failed", item_class_id=item_class_id, error=str(e))
                stats["errors"] += 1
                continue

            if result is None:
                stats["classes_skipped"] += 1
                continue

            rows.append(result.to_row(now))
            stats["classes_analyzed"] += 1

        await self.repository.upsert_statistics(rows)
        logger.info("Price statistics recomputed", **stats)
        return stats
