"""Admin back-office router: order management, assignment, payment review."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from libs.db.session import get_async_db
from services.orders_service.errors import NotFound
from services.orders_service.models import AuditEntityType, Order, OrderStatus
from services.orders_service.schemas import (
    AssignCourierRequest,
    AuditLogResponse,
    OrderDetailResponse,
    OrderHistoryResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    PaymentConfirmationResponse,
    PaymentRejectRequest,
    StatusHistoryResponse,
)
from services.orders_service.services.actors import Actor, get_admin_actor
from services.orders_service.services.assignment import assign_order
from services.orders_service.services.notifications import (
    OrderEventEmitter,
    get_order_event_emitter,
)
from services.orders_service.services.order_store import (
    get_order_detail,
    get_status_history,
    list_audit_logs,
    log_audit,
    paginate_orders,
)
from services.orders_service.services.payments import (
    confirm_payment,
    list_payments,
    reject_payment,
)
from services.orders_service.services.transitions import apply_transition
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["admin"])


# ============================================================================
# ORDERS
# ============================================================================


@router.get("/orders", response_model=OrderListResponse)
async def list_all_orders(
    status_filter: Optional[OrderStatus] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(get_admin_actor),
    db: AsyncSession = Depends(get_async_db),
):
    """List all orders."""
    query = select(Order)
    if status_filter:
        query = query.where(Order.status == status_filter)

    orders, total = await paginate_orders(db, query, page=page, page_size=page_size)
    return OrderListResponse(
        items=[OrderResponse.model_validate(o) for o in orders],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/orders/{order_id}", response_model=OrderDetailResponse)
async def get_order_admin(
    order_id: uuid.UUID,
    actor: Actor = Depends(get_admin_actor),
    db: AsyncSession = Depends(get_async_db),
):
    """Get order detail (admin)."""
    order = await get_order_detail(db, order_id)
    if order is None:
        raise NotFound()
    return order


@router.get("/orders/{order_id}/history", response_model=OrderHistoryResponse)
async def get_order_history(
    order_id: uuid.UUID,
    actor: Actor = Depends(get_admin_actor),
    db: AsyncSession = Depends(get_async_db),
):
    if await get_order_detail(db, order_id) is None:
        raise NotFound()
    history = await get_status_history(db, order_id)
    audit_logs = await list_audit_logs(db, order_id)
    return OrderHistoryResponse(
        status_history=[StatusHistoryResponse.model_validate(h) for h in history],
        audit_logs=[AuditLogResponse.model_validate(a) for a in audit_logs],
    )


@router.patch("/orders/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: uuid.UUID,
    status_update: OrderStatusUpdate,
    actor: Actor = Depends(get_admin_actor),
    db: AsyncSession = Depends(get_async_db),
    emitter: OrderEventEmitter = Depends(get_order_event_emitter),
):
    """Update order status through the lifecycle rules."""

    async def _audit(session: AsyncSession, order: Order) -> None:
        await log_audit(
            session,
            AuditEntityType.ORDER,
            order.id,
            "status_changed",
            actor.user_id,
            old_value={"status": order.status.value},
            new_value={"status": status_update.status.value},
            notes=status_update.notes,
        )

    return await apply_transition(
        db,
        order_id,
        status_update.status,
        actor,
        notes=status_update.notes,
        side_effect=_audit,
        emitter=emitter,
    )


@router.post("/orders/{order_id}/assign", response_model=OrderResponse)
async def assign_courier(
    order_id: uuid.UUID,
    payload: AssignCourierRequest,
    actor: Actor = Depends(get_admin_actor),
    db: AsyncSession = Depends(get_async_db),
    emitter: OrderEventEmitter = Depends(get_order_event_emitter),
):
    """Hand a paid, unassigned order to a chosen active courier."""
    return await assign_order(db, order_id, payload.courier_id, actor, emitter=emitter)


# ============================================================================
# PAYMENTS
# ============================================================================


@router.get("/payments", response_model=list[PaymentConfirmationResponse])
async def list_payment_proofs(
    state: str = Query("pending", pattern="^(pending|confirmed|all)$"),
    actor: Actor = Depends(get_admin_actor),
    db: AsyncSession = Depends(get_async_db),
):
    return await list_payments(db, state)


@router.post(
    "/payments/{payment_id}/confirm", response_model=PaymentConfirmationResponse
)
async def confirm_payment_proof(
    payment_id: uuid.UUID,
    actor: Actor = Depends(get_admin_actor),
    db: AsyncSession = Depends(get_async_db),
    emitter: OrderEventEmitter = Depends(get_order_event_emitter),
):
    """Confirm a transfer and mark its order paid."""
    return await confirm_payment(db, payment_id, actor, emitter=emitter)


@router.post(
    "/payments/{payment_id}/reject", response_model=PaymentConfirmationResponse
)
async def reject_payment_proof(
    payment_id: uuid.UUID,
    payload: PaymentRejectRequest,
    actor: Actor = Depends(get_admin_actor),
    db: AsyncSession = Depends(get_async_db),
    emitter: OrderEventEmitter = Depends(get_order_event_emitter),
):
    """Reject a transfer proof; the order returns to ``new``."""
    return await reject_payment(
        db, payment_id, actor, payload.reason, emitter=emitter
    )
