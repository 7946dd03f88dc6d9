"""Pydantic schemas for orders service."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from services.orders_service.models import AuditEntityType, OrderStatus

# ============================================================================
# CHECKOUT SCHEMAS
# ============================================================================


class CheckoutItem(BaseModel):
    product_id: uuid.UUID
    quantity: int = Field(..., gt=0)


class AddressCreate(BaseModel):
    recipient_name: str = Field(..., min_length=1, max_length=255)
    phone: str = Field(..., min_length=1, max_length=50)
    address: str = Field(..., min_length=1)
    landmark: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None


class CheckoutRequest(BaseModel):
    """Create an order from the buyer's cart contents."""

    items: list[CheckoutItem] = Field(..., min_length=1)
    address: AddressCreate
    notes: Optional[str] = None


# ============================================================================
# ORDER SCHEMAS
# ============================================================================


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    product_id: uuid.UUID
    product_name: str
    quantity: int
    price_at_order: Decimal
    hpp_at_order: Decimal
    subtotal: Decimal


class OrderAddressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    recipient_name: str
    phone: str
    address: str
    landmark: Optional[str]
    notes: Optional[str]


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_number: str
    status: OrderStatus
    buyer_id: uuid.UUID
    courier_id: Optional[uuid.UUID]

    subtotal: Decimal
    shipping_cost: Decimal
    admin_fee: Decimal
    total: Decimal
    total_hpp: Decimal

    notes: Optional[str]

    assigned_at: Optional[datetime]
    picked_up_at: Optional[datetime]
    delivered_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    created_at: datetime


class OrderDetailResponse(OrderResponse):
    items: list[OrderItemResponse] = []
    address: Optional[OrderAddressResponse] = None


class OrderListResponse(BaseModel):
    """Paginated order list."""

    items: list[OrderResponse]
    total: int
    page: int
    page_size: int


class OrderStatusUpdate(BaseModel):
    """Move an order along the lifecycle (admin)."""

    status: OrderStatus
    notes: Optional[str] = None


class CourierStatusUpdate(BaseModel):
    """Courier progress update; delivery goes through the proof endpoint."""

    status: Literal["picked_up", "on_delivery", "failed", "returned"]
    notes: Optional[str] = None


class AssignCourierRequest(BaseModel):
    courier_id: uuid.UUID


class StatusHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    status: OrderStatus
    changed_by: Optional[str]
    notes: Optional[str]
    created_at: datetime


class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    entity_type: AuditEntityType
    entity_id: uuid.UUID
    action: str
    old_value: Optional[dict]
    new_value: Optional[dict]
    performed_by: str
    performed_at: datetime
    notes: Optional[str]


class OrderHistoryResponse(BaseModel):
    """Lifecycle trail of one order plus the back-office actions on it."""

    status_history: list[StatusHistoryResponse]
    audit_logs: list[AuditLogResponse]


# ============================================================================
# CANCEL (buyer endpoint contract)
# ============================================================================


class CancelOrderRequest(BaseModel):
    orderId: Optional[str] = None


class CancelledOrder(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_number: str
    status: OrderStatus
    cancelled_at: Optional[datetime]


class CancelOrderResponse(BaseModel):
    success: bool = True
    order: CancelledOrder


# ============================================================================
# PAYMENT SCHEMAS
# ============================================================================


class PaymentProofCreate(BaseModel):
    """Buyer-submitted proof of bank transfer."""

    amount: Decimal = Field(..., gt=0)
    proof_image_url: str = Field(..., min_length=1, max_length=1024)
    bank_name: Optional[str] = Field(None, max_length=100)
    account_number: Optional[str] = Field(None, max_length=50)
    transfer_date: Optional[datetime] = None
    notes: Optional[str] = None


class PaymentRejectRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class PaymentConfirmationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_id: uuid.UUID
    amount: Decimal
    proof_image_url: str
    bank_name: Optional[str]
    account_number: Optional[str]
    transfer_date: Optional[datetime]
    is_confirmed: bool
    confirmed_at: Optional[datetime]
    confirmed_by: Optional[str]
    notes: Optional[str]
    created_at: datetime


# ============================================================================
# COURIER SCHEMAS
# ============================================================================


class DeliveryProofCreate(BaseModel):
    photo_url: str = Field(..., min_length=1, max_length=1024)
    recipient_signature: Optional[str] = None
    notes: Optional[str] = None


class CourierStats(BaseModel):
    assigned: int
    in_delivery: int
    delivered_today: int
    delivered_month: int
