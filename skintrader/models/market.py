"""
Market mirror SQLAlchemy models: listings, holdings, balances and fee rates.
"""

from sqlalchemy import (
    BigInteger, Column, String, Float, DateTime, ForeignKey, Index, JSON, func
)
from sqlalchemy.orm import relationship

from skintrader.models.base import Base


class MarketListing(Base):
    """A listing currently offered for sale on the remote order book."""

    __tablename__ = "market_listing"

    id = Column(String(255), primary_key=True)
    item_class_id = Column(
        String(255), ForeignKey("item_class.id", ondelete="CASCADE"), nullable=False
    )
    price = Column(Float, nullable=False)
    offer_id = Column(String(255), nullable=True)
    float_value = Column(Float, nullable=True)
    stickers = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_market_listing_item_class_price", "item_class_id", "price"),
    )

    item_class = relationship("ItemClass", back_populates="listings")

    def __repr__(self) -> str:
        return f"<MarketListing(id='{self.id}', item_class_id='{self.item_class_id}', price={self.price})>"


class Holding(Base):
    """An item owned by the operator and relisted for sale."""

    __tablename__ = "holding"

    listing_id = Column(
        String(255), ForeignKey("market_listing.id", ondelete="CASCADE"), primary_key=True
    )
    item_class_id = Column(String(255), nullable=False, index=True)
    offer_id = Column(String(255), nullable=True)
    listed_price = Column(Float, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<Holding(listing_id='{self.listing_id}', listed_price={self.listed_price})>"


class Balance(Base):
    """Spendable account balance, one row per marketplace."""

    __tablename__ = "balance"

    marketplace = Column(String(20), primary_key=True)
    amount = Column(Float, nullable=False, default=0.0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<Balance(marketplace='{self.marketplace}', amount={self.amount})>"


class FeeRate(Base):
    """Reduced sales fee for one item class, replaced wholesale on every sync."""

    __tablename__ = "fee_rate"

    marketplace = Column(String(20), primary_key=True)
    item_class_id = Column(String(255), primary_key=True)
    fraction = Column(Float, nullable=False)
    expires_at = Column(BigInteger, nullable=True)  # unix seconds
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<FeeRate(item_class_id='{self.item_class_id}', fraction={self.fraction})>"
