"""Courier assignment guard.

A claim is one compare-and-swap UPDATE conditioned on ``status = paid`` and
``courier_id IS NULL``; the database lets at most one claimant match. There
is no read-then-write window to race on.
"""

import uuid
from typing import Awaitable, Callable, Optional

from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.orders_service.errors import (
    AlreadyClaimed,
    Forbidden,
    NotEligible,
    NotFound,
    OrderError,
    Unexpected,
    ValidationFailed,
)
from services.orders_service.models import (
    ActorRole,
    AuditEntityType,
    CourierProfile,
    Order,
    OrderStatus,
    OrderStatusHistory,
)
from services.orders_service.services.actors import Actor
from services.orders_service.services.notifications import (
    OrderEvent,
    OrderEventEmitter,
    emit_order_event,
)
from services.orders_service.services.order_store import (
    get_order_for_transition,
    log_audit,
)
from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

SideEffect = Callable[[AsyncSession, Order], Awaitable[None]]


async def _classify_failed_claim(db: AsyncSession, order_id: uuid.UUID) -> OrderError:
    try:
        order = await get_order_for_transition(db, order_id)
    except NotFound as exc:
        return exc
    if order.courier_id is not None:
        return AlreadyClaimed()
    return NotEligible(
        f"Order is {order.status.value}; only paid orders can be claimed"
    )


async def claim_order(
    db: AsyncSession,
    order_id: uuid.UUID,
    courier_id: uuid.UUID,
    *,
    changed_by: Optional[str] = None,
    notes: Optional[str] = None,
    side_effect: Optional[SideEffect] = None,
    emitter: Optional[OrderEventEmitter] = None,
) -> Order:
    """Atomically hand a paid, unassigned order to ``courier_id``.

    Raises NotFound, AlreadyClaimed (someone, possibly the same courier,
    already holds it) or NotEligible (any other status).
    """
    now = utc_now()
    stmt = (
        update(Order)
        .where(
            Order.id == order_id,
            Order.status == OrderStatus.PAID,
            Order.courier_id.is_(None),
        )
        .values(
            courier_id=courier_id,
            status=OrderStatus.ASSIGNED,
            assigned_at=func.coalesce(Order.assigned_at, now),
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )

    try:
        result = await db.execute(stmt)
        if result.rowcount != 1:
            await db.rollback()
            raise await _classify_failed_claim(db, order_id)

        db.add(
            OrderStatusHistory(
                order_id=order_id,
                status=OrderStatus.ASSIGNED,
                changed_by=changed_by or str(courier_id),
                notes=notes,
            )
        )
        if side_effect is not None:
            order = await get_order_for_transition(db, order_id)
            await side_effect(db, order)
        await db.commit()
    except OrderError:
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Claim of order %s by courier %s failed", order_id, courier_id)
        raise Unexpected() from exc

    order = await get_order_for_transition(db, order_id)
    logger.info("Order %s assigned to courier %s", order.order_number, courier_id)
    await emit_order_event(
        OrderEvent.from_transition(order, OrderStatus.PAID, changed_at=now), emitter
    )
    return order


async def assign_order(
    db: AsyncSession,
    order_id: uuid.UUID,
    courier_id: uuid.UUID,
    actor: Actor,
    *,
    notes: Optional[str] = None,
    emitter: Optional[OrderEventEmitter] = None,
) -> Order:
    """Assignment requested by a courier (self-claim) or an admin."""
    if actor.role == ActorRole.COURIER:
        if actor.profile_id != courier_id:
            raise Forbidden("Couriers can only claim orders for themselves")
        return await claim_order(
            db,
            order_id,
            courier_id,
            changed_by=actor.user_id,
            notes=notes,
            emitter=emitter,
        )

    if actor.role != ActorRole.ADMIN:
        raise Forbidden("Only couriers and admins can assign orders")

    courier = await db.get(CourierProfile, courier_id)
    if courier is None:
        raise NotFound("Courier not found")
    if not courier.is_active:
        raise ValidationFailed("Courier is inactive")

    async def _audit(session: AsyncSession, order: Order) -> None:
        await log_audit(
            session,
            AuditEntityType.ORDER,
            order.id,
            "courier_assigned",
            actor.user_id,
            old_value={"status": OrderStatus.PAID.value, "courier_id": None},
            new_value={
                "status": OrderStatus.ASSIGNED.value,
                "courier_id": str(courier_id),
            },
            notes=notes,
        )

    return await claim_order(
        db,
        order_id,
        courier_id,
        changed_by=actor.user_id,
        notes=notes,
        side_effect=_audit,
        emitter=emitter,
    )
