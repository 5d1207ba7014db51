from fastapi import APIRouter

from inventory_forecast.api.v1.endpoints import inventory_forecasting

api_router = APIRouter(prefix="/api/v1")

# ==================== Inventory Forecasting ====================
api_router.include_router(
    inventory_forecasting.router,
    prefix="/inventory-forecasting",
    tags=["Inventory Forecasting"]
)
