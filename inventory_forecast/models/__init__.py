from inventory_forecast.models.product import Product
from inventory_forecast.models.sale import Sale
from inventory_forecast.models.reseller import Reseller

__all__ = [
    "Product",
    "Sale",
    "Reseller",
]
