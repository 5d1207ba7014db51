"""
Forecast Data Sources

Read-only accessors for the three inputs of the forecast:
1. Catalog (required)
2. Paid sales inside the demand window (required)
3. Reseller directory (optional, attribution only)

The SQL implementations each open their own session so the facade can
read all three concurrently.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy import select, and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from inventory_forecast.database import async_session_factory
from inventory_forecast.models.product import Product
from inventory_forecast.models.reseller import Reseller
from inventory_forecast.models.sale import Sale
from inventory_forecast.schemas.inventory_forecast import (
    ProductRecord,
    ResellerRecord,
    SaleRecord,
)
from inventory_forecast.services.forecasting.exceptions import (
    OptionalSourceDegradedError,
    SourceUnavailableError,
)
from inventory_forecast.services.forecasting.metrics import UNKNOWN_RESELLER
from inventory_forecast.services.forecasting.parameters import (
    ReorderDefaults,
    product_record_from_row,
)

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncSession]


class CatalogSource(ABC):
    """Current product catalog with reorder parameters."""

    @abstractmethod
    async def fetch_products(self) -> List[ProductRecord]:
        """Raises SourceUnavailableError when the catalog can't be read."""
        pass


class SalesLedgerSource(ABC):
    """Paid sales ledger."""

    @abstractmethod
    async def fetch_paid_sales(self, since: datetime) -> List[SaleRecord]:
        """Paid sales created at or after `since`. Raises SourceUnavailableError."""
        pass


class ResellerDirectorySource(ABC):
    """Reseller identities for attribution."""

    @abstractmethod
    async def fetch_resellers(self) -> List[ResellerRecord]:
        """Raises OptionalSourceDegradedError when the directory can't be read."""
        pass


# ==================== SQL Implementations ====================

class SQLCatalogSource(CatalogSource):
    """Catalog read from the `products` table."""

    name = "catalog"

    def __init__(
        self,
        defaults: Optional[ReorderDefaults] = None,
        session_factory: SessionFactory = async_session_factory,
    ):
        self.defaults = defaults or ReorderDefaults()
        self._session_factory = session_factory

    async def fetch_products(self) -> List[ProductRecord]:
        query = select(
            Product.id,
            Product.description,
            Product.price,
            Product.stock,
            Product.lead_time_days,
            Product.safety_stock_days,
            Product.review_period_days,
            Product.freight_cost_per_unit,
            Product.min_order_quantity,
            Product.supplier_name,
        ).order_by(Product.created_at, Product.id)

        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                rows = result.all()
        except SQLAlchemyError as e:
            logger.error(f"Catalog query failed: {e}")
            raise SourceUnavailableError(self.name, str(e)) from e

        return [product_record_from_row(row._mapping, self.defaults) for row in rows]


class SQLSalesLedgerSource(SalesLedgerSource):
    """Paid sales read from the `sales_with_split` view."""

    name = "sales_ledger"

    def __init__(self, session_factory: SessionFactory = async_session_factory):
        self._session_factory = session_factory

    async def fetch_paid_sales(self, since: datetime) -> List[SaleRecord]:
        query = (
            select(
                Sale.product_id,
                Sale.reseller_id,
                Sale.total_amount,
                Sale.paid,
                Sale.created_at,
            )
            .where(
                and_(
                    Sale.paid == True,  # noqa: E712
                    Sale.created_at >= since,
                )
            )
            .order_by(Sale.created_at)
        )

        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                rows = result.all()
        except SQLAlchemyError as e:
            logger.error(f"Sales query failed: {e}")
            raise SourceUnavailableError(self.name, str(e)) from e

        return [
            SaleRecord(
                product_id=str(row.product_id),
                reseller_id=str(row.reseller_id) if row.reseller_id is not None else None,
                total_amount=float(row.total_amount or 0),
                paid=row.paid,
                created_at=row.created_at,
            )
            for row in rows
        ]


class SQLResellerDirectorySource(ResellerDirectorySource):
    """Reseller directory read from the `resellers` table (absent in some tenants)."""

    name = "reseller_directory"

    def __init__(self, session_factory: SessionFactory = async_session_factory):
        self._session_factory = session_factory

    async def fetch_resellers(self) -> List[ResellerRecord]:
        query = select(Reseller.id, Reseller.nome, Reseller.email)

        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                rows = result.all()
        except SQLAlchemyError as e:
            raise OptionalSourceDegradedError(self.name, str(e)) from e

        return [
            ResellerRecord(
                id=str(row.id),
                display_name=row.nome or row.email or UNKNOWN_RESELLER,
            )
            for row in rows
        ]
