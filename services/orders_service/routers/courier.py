"""Courier router: order pool, claiming, delivery progress."""

import uuid

from fastapi import APIRouter, Depends
from libs.db.session import get_async_db
from services.orders_service.errors import NotFound
from services.orders_service.models import OrderStatus
from services.orders_service.schemas import (
    CourierStats,
    CourierStatusUpdate,
    DeliveryProofCreate,
    OrderDetailResponse,
    OrderResponse,
)
from services.orders_service.services.actors import Actor, get_courier_actor
from services.orders_service.services.assignment import claim_order
from services.orders_service.services.delivery import deliver_order
from services.orders_service.services.notifications import (
    OrderEventEmitter,
    get_order_event_emitter,
)
from services.orders_service.services.order_store import (
    ACTIVE_COURIER_STATUSES,
    COURIER_HISTORY_STATUSES,
    courier_stats,
    get_order_detail,
    list_orders,
)
from services.orders_service.services.transitions import apply_transition
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["courier"])

HISTORY_LIMIT = 50


# ============================================================================
# ORDER POOL
# ============================================================================


@router.get("/orders/available", response_model=list[OrderDetailResponse])
async def list_available_orders(
    actor: Actor = Depends(get_courier_actor),
    db: AsyncSession = Depends(get_async_db),
):
    """Paid orders nobody has claimed yet, oldest first."""
    return await list_orders(
        db, statuses=[OrderStatus.PAID], unassigned=True, oldest_first=True
    )


@router.get("/orders/active", response_model=list[OrderDetailResponse])
async def list_active_orders(
    actor: Actor = Depends(get_courier_actor),
    db: AsyncSession = Depends(get_async_db),
):
    return await list_orders(
        db, courier_id=actor.profile_id, statuses=ACTIVE_COURIER_STATUSES
    )


@router.get("/orders/history", response_model=list[OrderResponse])
async def list_order_history(
    actor: Actor = Depends(get_courier_actor),
    db: AsyncSession = Depends(get_async_db),
):
    return await list_orders(
        db,
        courier_id=actor.profile_id,
        statuses=COURIER_HISTORY_STATUSES,
        limit=HISTORY_LIMIT,
    )


@router.get("/stats", response_model=CourierStats)
async def get_stats(
    actor: Actor = Depends(get_courier_actor),
    db: AsyncSession = Depends(get_async_db),
):
    """Dashboard counters for the calling courier."""
    return CourierStats(**await courier_stats(db, actor.profile_id))


@router.get("/orders/{order_id}", response_model=OrderDetailResponse)
async def get_assigned_order(
    order_id: uuid.UUID,
    actor: Actor = Depends(get_courier_actor),
    db: AsyncSession = Depends(get_async_db),
):
    order = await get_order_detail(db, order_id, courier_id=actor.profile_id)
    if order is None:
        raise NotFound()
    return order


# ============================================================================
# CLAIM & PROGRESS
# ============================================================================


@router.post("/orders/{order_id}/claim", response_model=OrderResponse)
async def claim(
    order_id: uuid.UUID,
    actor: Actor = Depends(get_courier_actor),
    db: AsyncSession = Depends(get_async_db),
    emitter: OrderEventEmitter = Depends(get_order_event_emitter),
):
    """Take a paid order. Exactly one of several concurrent claims wins."""
    return await claim_order(
        db, order_id, actor.profile_id, changed_by=actor.user_id, emitter=emitter
    )


@router.post("/orders/{order_id}/status", response_model=OrderResponse)
async def update_status(
    order_id: uuid.UUID,
    payload: CourierStatusUpdate,
    actor: Actor = Depends(get_courier_actor),
    db: AsyncSession = Depends(get_async_db),
    emitter: OrderEventEmitter = Depends(get_order_event_emitter),
):
    return await apply_transition(
        db,
        order_id,
        OrderStatus(payload.status),
        actor,
        notes=payload.notes,
        emitter=emitter,
    )


@router.post("/orders/{order_id}/deliver", response_model=OrderResponse)
async def deliver(
    order_id: uuid.UUID,
    payload: DeliveryProofCreate,
    actor: Actor = Depends(get_courier_actor),
    db: AsyncSession = Depends(get_async_db),
    emitter: OrderEventEmitter = Depends(get_order_event_emitter),
):
    """Complete the delivery with a photo proof."""
    return await deliver_order(db, order_id, actor, payload, emitter=emitter)
