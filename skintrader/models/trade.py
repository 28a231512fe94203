"""
Trade history SQLAlchemy model.
"""

from sqlalchemy import (
    Column, String, Float, Integer, BigInteger, ForeignKey, Index, JSON
)

from skintrader.models.base import Base


class TradeRecord(Base):
    """A historical completed sale. Append-only."""

    __tablename__ = "trade_record"

    id = Column(Integer, primary_key=True, autoincrement=True)
    item_class_id = Column(
        String(255), ForeignKey("item_class.id", ondelete="CASCADE"), nullable=False
    )
    traded_at = Column(BigInteger, nullable=False)  # unix seconds
    price = Column(Float, nullable=False)
    float_value = Column(Float, nullable=True)
    paint_index = Column(Integer, nullable=True)
    paint_seed = Column(Integer, nullable=True)
    phase_id = Column(Integer, nullable=True)
    extras = Column(Integer, nullable=True)
    stickers = Column(JSON, nullable=True)
    operation_type = Column(String(32), nullable=True)

    __table_args__ = (
        Index("ix_trade_record_item_class_traded_at", "item_class_id", "traded_at"),
    )

    def __repr__(self) -> str:
        return f"<TradeRecord(item_class_id='{self.item_class_id}', traded_at={self.traded_at}, price={self.price})>"
