"""Schemas for the inventory replenishment forecast."""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import ConfigDict, Field, field_validator

from inventory_forecast.schemas.base import BaseRecordSchema, BaseResponseSchema


class StockStatus(str, Enum):
    """Replenishment status, in decreasing order of urgency."""
    OUT_OF_STOCK = "out_of_stock"
    REORDER_NOW = "reorder_now"
    LOW_STOCK = "low_stock"
    HEALTHY = "healthy"


# Lower index sorts first
STATUS_PRIORITY = {
    StockStatus.OUT_OF_STOCK: 0,
    StockStatus.REORDER_NOW: 1,
    StockStatus.LOW_STOCK: 2,
    StockStatus.HEALTHY: 3,
}


class SalesTrend(str, Enum):
    """Direction of demand over the last two trend windows."""
    INCREASING = "increasing"
    STABLE = "stable"
    DECREASING = "decreasing"
    NO_SALES = "no_sales"
    INSUFFICIENT_DATA = "insufficient_data"


class ForecastState(str, Enum):
    """Lifecycle of the forecast pipeline."""
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


# ==================== Input Records ====================

class ProductRecord(BaseRecordSchema):
    """Catalog product with reorder parameters already resolved."""
    id: str
    name: str
    price: float = 0
    current_stock: int = 0
    lead_time_days: int
    safety_stock_days: int
    review_period_days: int
    freight_cost_per_unit: float
    min_order_quantity: int = Field(ge=1)
    supplier_name: Optional[str] = None


class SaleRecord(BaseRecordSchema):
    """Paid sale inside the demand window."""
    product_id: str
    reseller_id: Optional[str] = None
    total_amount: float = 0
    paid: bool = True
    created_at: datetime

    @field_validator('created_at')
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        # Naive timestamps from the ledger are UTC
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)


class ResellerRecord(BaseRecordSchema):
    """Reseller identity for attribution."""
    id: str
    display_name: str


# ==================== Derived Metrics ====================

class ResellerSales(BaseResponseSchema):
    """Share of a product's demand sold by one reseller."""
    reseller_id: Optional[str]
    reseller_name: str
    total_sold: int
    total_revenue: float
    percentage: float


class ProductInventoryMetrics(BaseResponseSchema):
    """Replenishment forecast for one product."""
    product_id: str
    product_name: str
    current_stock: int
    avg_daily_sales: float
    avg_weekly_sales: float
    avg_monthly_sales: float
    lead_time_days: int
    freight_cost_per_unit: float
    safety_stock: int
    reorder_point: int
    recommended_stock: int
    suggested_purchase: int
    days_until_stockout: int
    total_purchase_cost: float
    status: StockStatus
    trend: SalesTrend
    reseller_breakdown: List[ResellerSales] = []
    supplier_name: Optional[str] = None
    min_order_quantity: int
    safety_stock_days: int
    review_period_days: int


class InventorySummary(BaseResponseSchema):
    """Catalog-wide counters over a metrics list."""
    total_products: int = 0
    products_needing_reorder: int = 0
    products_out_of_stock: int = 0
    products_low_stock: int = 0
    products_healthy: int = 0
    total_suggested_purchase_value: float = 0
    total_freight_cost: float = 0


class ForecastSnapshot(BaseResponseSchema):
    """One published (metrics, summary) pair. Never mutated after publish."""
    model_config = ConfigDict(frozen=True)

    metrics: List[ProductInventoryMetrics] = []
    summary: InventorySummary = InventorySummary()
    computed_at: Optional[datetime] = None


# ==================== API Responses ====================

class ForecastStateResponse(BaseResponseSchema):
    """Current forecast as exposed to the dashboard."""
    metrics: List[ProductInventoryMetrics]
    summary: InventorySummary
    loading: bool
    error: Optional[str] = None
    state: ForecastState
    stale: bool = Field(
        False,
        description="True when the metrics predate a failed recompute"
    )
    computed_at: Optional[datetime] = None
