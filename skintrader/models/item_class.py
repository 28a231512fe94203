"""
Item class SQLAlchemy model.
"""

from sqlalchemy import Column, String, Float, DateTime, func
from sqlalchemy.orm import relationship

from skintrader.models.base import Base


class ItemClass(Base):
    """A tradable item class (one skin / game title) on a marketplace."""

    __tablename__ = "item_class"

    id = Column(String(255), primary_key=True)
    marketplace = Column(String(20), nullable=False, default="bitskins")
    name = Column(String(255), nullable=False)
    class_id = Column(String(255), nullable=True)
    suggested_price = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    listings = relationship(
        "MarketListing",
        back_populates="item_class",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<ItemClass(id='{self.id}', name='{self.name}')>"
