"""
Inventory Metrics Computation

Pure replenishment math over one catalog snapshot:
- Demand rate from paid sales in the demand window
- Trend classification (recent window vs. the one before it)
- Safety stock, reorder point and recommended stock
- Suggested purchase rounded up to the minimum order batch
- Stockout horizon and status

No I/O and no clock access: `now` is passed in, so identical inputs
always yield identical output.
"""

import math
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from inventory_forecast.schemas.inventory_forecast import (
    ProductInventoryMetrics,
    ProductRecord,
    ResellerRecord,
    ResellerSales,
    SaleRecord,
    SalesTrend,
    StockStatus,
    STATUS_PRIORITY,
)
from inventory_forecast.services.forecasting.parameters import ForecastParameters

UNKNOWN_RESELLER = "Unknown"


# ==================== Trend Classification ====================

def count_trend_windows(
    sales: Iterable[SaleRecord],
    now: datetime,
    window_days: int = 7,
) -> tuple[int, int]:
    """
    Count sales in the recent window and in the window before it.

    Returns:
        (recent, older) where recent covers [now - window, now] and older
        covers [now - 2*window, now - window)
    """
    recent_start = now - timedelta(days=window_days)
    older_start = now - timedelta(days=window_days * 2)

    recent = 0
    older = 0
    for sale in sales:
        if sale.created_at >= recent_start:
            recent += 1
        elif sale.created_at >= older_start:
            older += 1
    return recent, older


def classify_trend(
    total_sold: int,
    days_with_data: int,
    recent_sales: int,
    older_sales: int,
    params: Optional[ForecastParameters] = None,
) -> SalesTrend:
    """
    Classify demand direction.

    The increase/decrease factors form a dead band around the previous
    window so small sample noise reads as stable. Zero history is checked
    before the data-sufficiency rule.
    """
    params = params or ForecastParameters()

    if total_sold == 0:
        return SalesTrend.NO_SALES
    if days_with_data < params.trend_min_days_with_data:
        return SalesTrend.INSUFFICIENT_DATA
    if recent_sales > older_sales * params.trend_increase_factor:
        return SalesTrend.INCREASING
    if recent_sales < older_sales * params.trend_decrease_factor:
        return SalesTrend.DECREASING
    return SalesTrend.STABLE


# ==================== Replenishment Math ====================

def round_up_to_batch(quantity: float, batch_size: int) -> int:
    """Round a purchase quantity up to a whole number of batches."""
    if quantity <= 0:
        return 0
    return math.ceil(quantity / batch_size) * batch_size


def classify_status(
    current_stock: int,
    reorder_point: int,
    days_until_stockout: int,
    lead_time_days: int,
    low_stock_buffer_days: int = 7,
) -> StockStatus:
    """First matching rule wins; an empty shelf dominates everything else."""
    if current_stock == 0:
        return StockStatus.OUT_OF_STOCK
    if current_stock <= reorder_point:
        return StockStatus.REORDER_NOW
    if days_until_stockout <= lead_time_days + low_stock_buffer_days:
        return StockStatus.LOW_STOCK
    return StockStatus.HEALTHY


def build_reseller_breakdown(
    product_sales: Sequence[SaleRecord],
    reseller_names: Dict[str, str],
) -> List[ResellerSales]:
    """Per-reseller share of a product's sales, largest seller first."""
    total_sold = len(product_sales)
    by_reseller: Dict[Optional[str], Dict[str, float]] = {}

    for sale in product_sales:
        entry = by_reseller.setdefault(sale.reseller_id, {"count": 0, "revenue": 0.0})
        entry["count"] += 1
        entry["revenue"] += sale.total_amount or 0

    breakdown = [
        ResellerSales(
            reseller_id=reseller_id,
            reseller_name=reseller_names.get(reseller_id, UNKNOWN_RESELLER) if reseller_id else UNKNOWN_RESELLER,
            total_sold=int(data["count"]),
            total_revenue=data["revenue"],
            percentage=(data["count"] / total_sold) * 100 if total_sold > 0 else 0,
        )
        for reseller_id, data in by_reseller.items()
    ]
    breakdown.sort(key=lambda r: r.total_sold, reverse=True)
    return breakdown


def compute_product_metrics(
    product: ProductRecord,
    product_sales: Sequence[SaleRecord],
    reseller_names: Dict[str, str],
    now: datetime,
    params: ForecastParameters,
) -> ProductInventoryMetrics:
    """Forecast one product from its own sales."""
    sales_dates: set[date] = {sale.created_at.date() for sale in product_sales}
    days_with_data = len(sales_dates)
    total_sold = len(product_sales)

    avg_daily_sales = total_sold / max(days_with_data, 1) if days_with_data > 0 else 0.0

    recent_sales, older_sales = count_trend_windows(product_sales, now, params.trend_window_days)
    trend = classify_trend(total_sold, days_with_data, recent_sales, older_sales, params)

    lead_time_days = product.lead_time_days
    safety_stock_days = product.safety_stock_days
    review_period_days = product.review_period_days
    current_stock = product.current_stock

    safety_stock = math.ceil(avg_daily_sales * safety_stock_days)
    reorder_point = math.ceil(avg_daily_sales * lead_time_days + safety_stock)
    recommended_stock = math.ceil(
        avg_daily_sales * (lead_time_days + review_period_days) + safety_stock
    )

    raw_purchase = max(0, recommended_stock - current_stock)
    suggested_purchase = round_up_to_batch(raw_purchase, product.min_order_quantity)

    if avg_daily_sales > 0:
        days_until_stockout = math.floor(current_stock / avg_daily_sales)
    else:
        days_until_stockout = params.no_depletion_sentinel

    total_purchase_cost = suggested_purchase * (product.price + product.freight_cost_per_unit)

    status = classify_status(
        current_stock,
        reorder_point,
        days_until_stockout,
        lead_time_days,
        params.low_stock_buffer_days,
    )

    return ProductInventoryMetrics(
        product_id=product.id,
        product_name=product.name,
        current_stock=current_stock,
        avg_daily_sales=avg_daily_sales,
        avg_weekly_sales=avg_daily_sales * 7,
        avg_monthly_sales=avg_daily_sales * 30,
        lead_time_days=lead_time_days,
        freight_cost_per_unit=product.freight_cost_per_unit,
        safety_stock=safety_stock,
        reorder_point=reorder_point,
        recommended_stock=recommended_stock,
        suggested_purchase=suggested_purchase,
        days_until_stockout=days_until_stockout,
        total_purchase_cost=total_purchase_cost,
        status=status,
        trend=trend,
        reseller_breakdown=build_reseller_breakdown(product_sales, reseller_names),
        supplier_name=product.supplier_name,
        min_order_quantity=product.min_order_quantity,
        safety_stock_days=safety_stock_days,
        review_period_days=review_period_days,
    )


# ==================== Catalog Computation ====================

def compute_inventory_metrics(
    products: Sequence[ProductRecord],
    sales: Sequence[SaleRecord],
    resellers: Sequence[ResellerRecord],
    now: datetime,
    params: Optional[ForecastParameters] = None,
) -> List[ProductInventoryMetrics]:
    """
    Compute replenishment metrics for every product in the catalog.

    Args:
        products: Catalog snapshot with resolved reorder parameters
        sales: Paid sales inside the demand window
        resellers: Reseller directory (may be empty)
        now: Reference instant for the trend windows
        params: Forecast tunables, defaults when omitted

    Returns:
        One entry per product, most urgent status first, then fastest
        sellers first
    """
    params = params or ForecastParameters()
    reseller_names = {r.id: r.display_name for r in resellers}

    sales_by_product: Dict[str, List[SaleRecord]] = defaultdict(list)
    for sale in sales:
        sales_by_product[sale.product_id].append(sale)

    metrics = [
        compute_product_metrics(
            product,
            sales_by_product.get(product.id, []),
            reseller_names,
            now,
            params,
        )
        for product in products
    ]

    metrics.sort(key=lambda m: (STATUS_PRIORITY[m.status], -m.avg_daily_sales))
    return metrics
