"""
Inventory Replenishment Forecasting

Per-product demand, trend, safety stock, reorder point and purchase
suggestion for a reseller catalog:
- compute_inventory_metrics: pure per-product forecast (with trend classification)
- summarize_inventory: catalog-wide counters
- InventoryForecastService: single-flight load -> compute -> publish pipeline
- ChangeFeedSubscriber: recompute on sales/product change notifications
"""

from inventory_forecast.services.forecasting.exceptions import (
    ForecastError,
    OptionalSourceDegradedError,
    SourceUnavailableError,
)
from inventory_forecast.services.forecasting.parameters import (
    ForecastParameters,
    ReorderDefaults,
    product_record_from_row,
)
from inventory_forecast.services.forecasting.metrics import (
    classify_trend,
    compute_inventory_metrics,
)
from inventory_forecast.services.forecasting.summary import summarize_inventory
from inventory_forecast.services.forecasting.forecast_service import (
    InventoryForecastService,
    create_forecast_service,
)
from inventory_forecast.services.forecasting.change_feed import (
    ChangeFeed,
    ChangeFeedSubscriber,
    InMemoryChangeFeed,
    PostgresChangeFeed,
    get_change_feed,
)

__all__ = [
    "ForecastError",
    "OptionalSourceDegradedError",
    "SourceUnavailableError",
    "ForecastParameters",
    "ReorderDefaults",
    "product_record_from_row",
    "classify_trend",
    "compute_inventory_metrics",
    "summarize_inventory",
    "InventoryForecastService",
    "create_forecast_service",
    "ChangeFeed",
    "ChangeFeedSubscriber",
    "InMemoryChangeFeed",
    "PostgresChangeFeed",
    "get_change_feed",
]
