"""Catalog-wide rollup of a metrics list."""

from typing import Sequence

from inventory_forecast.schemas.inventory_forecast import (
    InventorySummary,
    ProductInventoryMetrics,
    StockStatus,
)


def summarize_inventory(metrics: Sequence[ProductInventoryMetrics]) -> InventorySummary:
    """Count products per status and total the suggested purchase spend."""
    status_counts = {status: 0 for status in StockStatus}
    total_purchase_value = 0.0
    total_freight_cost = 0.0

    for m in metrics:
        status_counts[m.status] += 1
        total_purchase_value += m.total_purchase_cost
        total_freight_cost += m.suggested_purchase * m.freight_cost_per_unit

    return InventorySummary(
        total_products=len(metrics),
        products_needing_reorder=status_counts[StockStatus.REORDER_NOW],
        products_out_of_stock=status_counts[StockStatus.OUT_OF_STOCK],
        products_low_stock=status_counts[StockStatus.LOW_STOCK],
        products_healthy=status_counts[StockStatus.HEALTHY],
        total_suggested_purchase_value=total_purchase_value,
        total_freight_cost=total_freight_cost,
    )
