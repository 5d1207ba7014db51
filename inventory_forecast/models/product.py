from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, DateTime, Integer, Text, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from inventory_forecast.database import Base


class Product(Base):
    """
    Reseller catalog product.

    Owned by the catalog service; the forecast engine only reads it.
    Reorder parameters are nullable and fall back to configured defaults.
    """
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    # Basic Info (the storefront stores the product title in `description`)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    stock: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Replenishment parameters
    lead_time_days: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Days between placing a purchase order and receiving stock"
    )
    safety_stock_days: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Days of demand held as buffer"
    )
    review_period_days: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Days between replenishment decisions"
    )
    freight_cost_per_unit: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    min_order_quantity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    supplier_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )

    def __repr__(self) -> str:
        return f"<Product(id='{self.id}', description='{self.description}')>"
