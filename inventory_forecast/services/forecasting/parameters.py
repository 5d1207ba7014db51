"""
Forecast tunables and reorder defaults.

All thresholds live here so a product owner can tune sensitivity through
configuration. `ForecastParameters.from_settings()` is the production
entry point; tests build the model directly.
"""

from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict

from inventory_forecast.config import Settings, settings as app_settings
from inventory_forecast.schemas.inventory_forecast import ProductRecord


class ReorderDefaults(BaseModel):
    """Values used when a product leaves a reorder parameter empty."""
    model_config = ConfigDict(frozen=True)

    lead_time_days: int = 7
    safety_stock_days: int = 7
    review_period_days: int = 7
    freight_cost_per_unit: float = 0
    min_order_quantity: int = 1


class ForecastParameters(BaseModel):
    model_config = ConfigDict(frozen=True)

    demand_window_days: int = 30
    trend_window_days: int = 7
    trend_min_days_with_data: int = 7
    trend_increase_factor: float = 1.1
    trend_decrease_factor: float = 0.9
    low_stock_buffer_days: int = 7
    no_depletion_sentinel: int = 999
    defaults: ReorderDefaults = ReorderDefaults()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ForecastParameters":
        s = settings or app_settings
        return cls(
            demand_window_days=s.FORECAST_DEMAND_WINDOW_DAYS,
            trend_window_days=s.FORECAST_TREND_WINDOW_DAYS,
            trend_min_days_with_data=s.FORECAST_TREND_MIN_DAYS_WITH_DATA,
            trend_increase_factor=s.FORECAST_TREND_INCREASE_FACTOR,
            trend_decrease_factor=s.FORECAST_TREND_DECREASE_FACTOR,
            low_stock_buffer_days=s.FORECAST_LOW_STOCK_BUFFER_DAYS,
            no_depletion_sentinel=s.FORECAST_NO_DEPLETION_SENTINEL,
            defaults=ReorderDefaults(
                lead_time_days=s.DEFAULT_LEAD_TIME_DAYS,
                safety_stock_days=s.DEFAULT_SAFETY_STOCK_DAYS,
                review_period_days=s.DEFAULT_REVIEW_PERIOD_DAYS,
                freight_cost_per_unit=s.DEFAULT_FREIGHT_COST_PER_UNIT,
                min_order_quantity=s.DEFAULT_MIN_ORDER_QUANTITY,
            ),
        )


def _or_default(value: Any, default: Any) -> Any:
    return default if value is None else value


def product_record_from_row(row: Mapping[str, Any], defaults: ReorderDefaults) -> ProductRecord:
    """
    Build a ProductRecord from a raw catalog row, resolving defaults once.

    Args:
        row: Column name -> value mapping from the products table
        defaults: Reorder defaults for empty parameters

    Returns:
        ProductRecord with every reorder parameter populated
    """
    min_order_quantity = _or_default(row.get("min_order_quantity"), defaults.min_order_quantity)
    if min_order_quantity < 1:
        # A batch size of zero can't be ordered; treat it as unset
        min_order_quantity = defaults.min_order_quantity

    return ProductRecord(
        id=str(row["id"]),
        name=row.get("description") or "No name",
        price=float(_or_default(row.get("price"), 0)),
        current_stock=int(_or_default(row.get("stock"), 0)),
        lead_time_days=int(_or_default(row.get("lead_time_days"), defaults.lead_time_days)),
        safety_stock_days=int(_or_default(row.get("safety_stock_days"), defaults.safety_stock_days)),
        review_period_days=int(_or_default(row.get("review_period_days"), defaults.review_period_days)),
        freight_cost_per_unit=float(
            _or_default(row.get("freight_cost_per_unit"), defaults.freight_cost_per_unit)
        ),
        min_order_quantity=int(min_order_quantity),
        supplier_name=row.get("supplier_name"),
    )
