"""Orders Service models package."""

from services.orders_service.models.core import (
    DeliveryProof,
    Order,
    OrderAddress,
    OrderAuditLog,
    OrderItem,
    OrderStatusHistory,
    PaymentConfirmation,
)
from services.orders_service.models.enums import (
    ActorRole,
    AuditEntityType,
    OrderStatus,
    enum_values,
)
from services.orders_service.models.profiles import (
    BuyerProfile,
    CourierProfile,
    Product,
)

__all__ = [
    "ActorRole",
    "AuditEntityType",
    "BuyerProfile",
    "CourierProfile",
    "DeliveryProof",
    "Order",
    "OrderAddress",
    "OrderAuditLog",
    "OrderItem",
    "OrderStatus",
    "OrderStatusHistory",
    "PaymentConfirmation",
    "Product",
    "enum_values",
]
