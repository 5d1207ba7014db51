from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from inventory_forecast.services.forecasting.forecast_service import InventoryForecastService


def get_forecast_service(request: Request) -> InventoryForecastService:
    """
    Dependency returning the process-wide forecast service.

    The service is created in the application lifespan and stored on
    app.state.
    """
    service = getattr(request.app.state, "forecast_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Inventory forecast service not initialized",
        )
    return service


ForecastService = Annotated[InventoryForecastService, Depends(get_forecast_service)]
