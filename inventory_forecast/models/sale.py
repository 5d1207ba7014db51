from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column

from inventory_forecast.database import Base


class Sale(Base):
    """Storefront sale with its commission split, one row per unit sold."""
    __tablename__ = "sales_with_split"
    __table_args__ = (
        Index('ix_sales_with_split_paid_created', 'paid', 'created_at'),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    product_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    reseller_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    total_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<Sale(id='{self.id}', product_id='{self.product_id}', paid={self.paid})>"
