"""
Derived price statistics SQLAlchemy model.
"""

from sqlalchemy import Column, String, Float, Integer, DateTime, ForeignKey

from skintrader.models.base import Base


class PriceStatistics(Base):
    """Robust price summary per item class, fully recomputed on a schedule."""

    __tablename__ = "price_statistics"

    item_class_id = Column(
        String(255), ForeignKey("item_class.id", ondelete="CASCADE"), primary_key=True
    )
    mean_price = Column(Float, nullable=False)
    sale_count = Column(Integer, nullable=False)
    monthly_sales = Column(Integer, nullable=False, default=0, server_default="0")
    price_slope = Column(Float, nullable=True)
    std_dev_price = Column(Float, nullable=True)
    min_float = Column(Float, nullable=True)
    max_float = Column(Float, nullable=True)
    time_correlation = Column(Float, nullable=True)
    last_update = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<PriceStatistics(item_class_id='{self.item_class_id}', "
            f"mean_price={self.mean_price}, sale_count={self.sale_count})>"
        )

    def is_reliable(self, min_sale_count: int, min_slope: float, min_monthly_sales: int = 0) -> bool:
        """Whether the estimate is trustworthy enough to trade on."""
        if self.sale_count < min_sale_count or (self.monthly_sales or 0) < min_monthly_sales:
            return False
        return self.price_slope is not None and self.price_slope >= min_slope
