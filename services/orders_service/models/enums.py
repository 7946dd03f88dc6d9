"""Enum definitions for orders service models."""

import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class OrderStatus(str, enum.Enum):
    NEW = "new"
    WAITING_PAYMENT = "waiting_payment"
    PAID = "paid"
    ASSIGNED = "assigned"
    PICKED_UP = "picked_up"
    ON_DELIVERY = "on_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    FAILED = "failed"
    RETURNED = "returned"


class ActorRole(str, enum.Enum):
    BUYER = "buyer"
    COURIER = "courier"
    ADMIN = "admin"


class AuditEntityType(str, enum.Enum):
    ORDER = "order"
    PAYMENT_CONFIRMATION = "payment_confirmation"
