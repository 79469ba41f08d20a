"""
Database models for repricing execution history.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class PriceChange(Base):
    """
    Append-only record of a price pushed to eBay by a strategy.
    Written only for successful pushes with a real price delta.
    """
    __tablename__ = "price_changes"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)

    # Listing reference
    item_id: Mapped[str] = mapped_column(String(50), nullable=False)
    sku: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Prices
    old_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    new_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    competitor_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    change_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    change_percentage: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    change_direction: Mapped[str] = mapped_column(String(10), nullable=False)

    # Strategy context
    strategy_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    strategy_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    repricing_rule: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    min_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    max_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    competitor_count: Mapped[int] = mapped_column(Integer, default=0)

    # Execution metadata
    source: Mapped[str] = mapped_column(String(30), default="strategy")
    push_method: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, default=True)
    executed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )

    __table_args__ = (
        Index("idx_price_changes_item", "item_id"),
        Index("idx_price_changes_item_time", "item_id", "executed_at"),
    )
