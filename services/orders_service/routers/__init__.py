"""Orders service routers package."""

from services.orders_service.routers.admin import router as admin_router
from services.orders_service.routers.buyer import router as buyer_router
from services.orders_service.routers.courier import router as courier_router

__all__ = [
    "admin_router",
    "buyer_router",
    "courier_router",
]
