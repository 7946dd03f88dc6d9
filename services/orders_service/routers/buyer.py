"""Buyer orders router: checkout, order history, payment proofs, cancellation."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, status
from libs.db.session import get_async_db
from services.orders_service.errors import NotFound, ValidationFailed
from services.orders_service.models import OrderStatus
from services.orders_service.schemas import (
    CancelledOrder,
    CancelOrderRequest,
    CancelOrderResponse,
    CheckoutRequest,
    OrderDetailResponse,
    OrderResponse,
    PaymentConfirmationResponse,
    PaymentProofCreate,
)
from services.orders_service.services.actors import Actor, get_buyer_actor
from services.orders_service.services.notifications import (
    OrderEventEmitter,
    get_order_event_emitter,
)
from services.orders_service.services.order_store import (
    create_order,
    get_order_detail,
    list_orders,
)
from services.orders_service.services.payments import submit_payment_proof
from services.orders_service.services.transitions import apply_transition
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["buyer"])


def _parse_order_id(raw: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        raise NotFound() from None


# ============================================================================
# CHECKOUT
# ============================================================================


@router.post(
    "/orders",
    response_model=OrderDetailResponse,
    status_code=status.HTTP_201_CREATED,
)
async def checkout(
    request: CheckoutRequest,
    actor: Actor = Depends(get_buyer_actor),
    db: AsyncSession = Depends(get_async_db),
):
    """Create a new order; prices and fees are computed server-side."""
    return await create_order(
        db, buyer_id=actor.profile_id, request=request, created_by=actor.user_id
    )


# ============================================================================
# ORDERS
# ============================================================================


@router.get("/orders", response_model=list[OrderResponse])
async def list_my_orders(
    status_filter: Optional[OrderStatus] = None,
    actor: Actor = Depends(get_buyer_actor),
    db: AsyncSession = Depends(get_async_db),
):
    """List the caller's orders, newest first."""
    return await list_orders(
        db,
        buyer_id=actor.profile_id,
        statuses=[status_filter] if status_filter else None,
    )


@router.post("/orders/cancel", response_model=CancelOrderResponse)
async def cancel_order(
    payload: Optional[CancelOrderRequest] = None,
    actor: Actor = Depends(get_buyer_actor),
    db: AsyncSession = Depends(get_async_db),
    emitter: OrderEventEmitter = Depends(get_order_event_emitter),
):
    """Cancel one of the caller's orders before any payment proof exists."""
    if payload is None or not payload.orderId:
        raise ValidationFailed("orderId is required")
    order_id = _parse_order_id(payload.orderId)

    # Orders of other buyers are reported as missing.
    if await get_order_detail(db, order_id, buyer_id=actor.profile_id) is None:
        raise NotFound()

    order = await apply_transition(
        db, order_id, OrderStatus.CANCELLED, actor, emitter=emitter
    )
    return CancelOrderResponse(order=CancelledOrder.model_validate(order))


@router.get("/orders/{order_id}", response_model=OrderDetailResponse)
async def get_my_order(
    order_id: uuid.UUID,
    actor: Actor = Depends(get_buyer_actor),
    db: AsyncSession = Depends(get_async_db),
):
    order = await get_order_detail(db, order_id, buyer_id=actor.profile_id)
    if order is None:
        raise NotFound()
    return order


@router.post(
    "/orders/{order_id}/payment",
    response_model=PaymentConfirmationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_payment(
    order_id: uuid.UUID,
    payload: PaymentProofCreate,
    actor: Actor = Depends(get_buyer_actor),
    db: AsyncSession = Depends(get_async_db),
    emitter: OrderEventEmitter = Depends(get_order_event_emitter),
):
    """Upload a bank-transfer proof for an unpaid order."""
    return await submit_payment_proof(db, order_id, actor, payload, emitter=emitter)
