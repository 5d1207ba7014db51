"""
Inventory Forecasting API endpoints.

Read access to the current replenishment forecast:
- Full state (metrics, summary, loading/error flags)
- Per-product metrics, optionally filtered by status
- Catalog summary
- Manual refetch
"""

from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, status

from inventory_forecast.api.deps import ForecastService
from inventory_forecast.schemas.inventory_forecast import (
    ForecastState,
    ForecastStateResponse,
    InventorySummary,
    ProductInventoryMetrics,
    StockStatus,
)

router = APIRouter()


def _require_snapshot(service) -> None:
    """503 while nothing was ever published because the sources are failing."""
    if service.state == ForecastState.ERROR and not service.has_snapshot:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=service.error or "Inventory forecast unavailable",
        )


@router.get("", response_model=ForecastStateResponse)
async def get_forecast_state(service: ForecastService):
    """
    Get the current forecast with its pipeline state.

    `stale` is true when the last recompute failed and the metrics shown
    come from the last successful one.
    """
    return service.to_response()


@router.get("/metrics", response_model=List[ProductInventoryMetrics])
async def list_inventory_metrics(
    service: ForecastService,
    status_filter: Optional[StockStatus] = Query(
        None, alias="status", description="Only products with this status"
    ),
):
    """
    List per-product metrics, most urgent first.

    Ordering: out_of_stock, reorder_now, low_stock, healthy; within a
    status, fastest sellers first.
    """
    _require_snapshot(service)
    metrics = service.metrics
    if status_filter is not None:
        metrics = [m for m in metrics if m.status == status_filter]
    return metrics


@router.get("/metrics/{product_id}", response_model=ProductInventoryMetrics)
async def get_product_metrics(product_id: str, service: ForecastService):
    """Get the forecast for a single product."""
    _require_snapshot(service)
    for m in service.metrics:
        if m.product_id == product_id:
            return m
    raise HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"No forecast for product {product_id}",
    )


@router.get("/summary", response_model=InventorySummary)
async def get_inventory_summary(service: ForecastService):
    """Get catalog-wide replenishment counters."""
    _require_snapshot(service)
    return service.summary


@router.post(
    "/refetch",
    response_model=ForecastStateResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def refetch_forecast(service: ForecastService):
    """
    Schedule a recompute.

    Returns immediately. If a recompute is already running, one trailing
    rerun is queued instead of starting a second one.
    """
    service.refetch()
    return service.to_response()
