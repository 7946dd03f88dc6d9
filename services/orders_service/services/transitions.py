"""Order lifecycle transition engine.

All status changes go through :func:`apply_transition`. Each one is a single
conditional UPDATE whose WHERE clause carries the state the decision was
made on (current status, the courier holding the order, absence of payment
proofs for cancellations). A concurrent change makes the write match zero
rows instead of overwriting it, and the failure is classified from a fresh
read.
"""

import uuid
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.orders_service.errors import (
    Forbidden,
    InvalidTransition,
    OrderError,
    PaymentExists,
    Unexpected,
    ValidationFailed,
)
from services.orders_service.models import (
    ActorRole,
    Order,
    OrderStatus,
    OrderStatusHistory,
    PaymentConfirmation,
)
from services.orders_service.services.actors import Actor
from services.orders_service.services.assignment import SideEffect, assign_order
from services.orders_service.services.notifications import (
    OrderEvent,
    OrderEventEmitter,
    emit_order_event,
)
from services.orders_service.services.order_store import (
    get_order_for_transition,
    payment_exists,
)
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

S = OrderStatus
BUYER, COURIER, ADMIN = ActorRole.BUYER, ActorRole.COURIER, ActorRole.ADMIN

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    S.NEW: frozenset({S.WAITING_PAYMENT, S.CANCELLED}),
    S.WAITING_PAYMENT: frozenset({S.PAID, S.NEW, S.CANCELLED}),
    S.PAID: frozenset({S.ASSIGNED, S.CANCELLED}),
    S.ASSIGNED: frozenset({S.PICKED_UP, S.CANCELLED}),
    S.PICKED_UP: frozenset({S.ON_DELIVERY}),
    S.ON_DELIVERY: frozenset({S.DELIVERED, S.FAILED, S.RETURNED}),
    S.DELIVERED: frozenset(),
    S.CANCELLED: frozenset(),
    S.REFUNDED: frozenset(),
    S.FAILED: frozenset(),
    S.RETURNED: frozenset(),
}

TERMINAL_STATUSES = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)

# Who may request each edge. Paid/assigned cancellation is a back-office
# override only.
EDGE_ROLES: dict[tuple[OrderStatus, OrderStatus], frozenset[ActorRole]] = {
    (S.NEW, S.WAITING_PAYMENT): frozenset({BUYER}),
    (S.NEW, S.CANCELLED): frozenset({BUYER, ADMIN}),
    (S.WAITING_PAYMENT, S.PAID): frozenset({ADMIN}),
    (S.WAITING_PAYMENT, S.NEW): frozenset({ADMIN}),
    (S.WAITING_PAYMENT, S.CANCELLED): frozenset({BUYER, ADMIN}),
    (S.PAID, S.ASSIGNED): frozenset({COURIER, ADMIN}),
    (S.PAID, S.CANCELLED): frozenset({ADMIN}),
    (S.ASSIGNED, S.PICKED_UP): frozenset({COURIER, ADMIN}),
    (S.ASSIGNED, S.CANCELLED): frozenset({ADMIN}),
    (S.PICKED_UP, S.ON_DELIVERY): frozenset({COURIER, ADMIN}),
    (S.ON_DELIVERY, S.DELIVERED): frozenset({COURIER, ADMIN}),
    (S.ON_DELIVERY, S.FAILED): frozenset({COURIER, ADMIN}),
    (S.ON_DELIVERY, S.RETURNED): frozenset({COURIER, ADMIN}),
}

TIMESTAMP_FIELDS: dict[OrderStatus, str] = {
    S.ASSIGNED: "assigned_at",
    S.PICKED_UP: "picked_up_at",
    S.DELIVERED: "delivered_at",
    S.CANCELLED: "cancelled_at",
}

# Statuses a buyer may still cancel from; anything later is not cancellable.
BUYER_CANCELLABLE = frozenset({S.NEW, S.WAITING_PAYMENT})


def is_allowed(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def reachable_from(start: OrderStatus = S.NEW) -> frozenset[OrderStatus]:
    """Statuses reachable from ``start`` along the transition graph."""
    seen = {start}
    frontier = [start]
    while frontier:
        for target in ALLOWED_TRANSITIONS[frontier.pop()]:
            if target not in seen:
                seen.add(target)
                frontier.append(target)
    return frozenset(seen)


def check_transition(current: OrderStatus, target: OrderStatus) -> None:
    if not is_allowed(current, target):
        raise InvalidTransition(
            f"Order cannot move from {current.value} to {target.value}"
        )


def authorize_transition(order: Order, target: OrderStatus, actor: Actor) -> None:
    """Role and ownership rules for one edge."""
    if (
        actor.role == BUYER
        and target == S.CANCELLED
        and order.status not in BUYER_CANCELLABLE
    ):
        raise InvalidTransition(
            f"Order in status {order.status.value} can no longer be cancelled"
        )
    roles = EDGE_ROLES.get((order.status, target), frozenset())
    if actor.role not in roles:
        raise Forbidden(
            f"{actor.role.value} may not move an order from "
            f"{order.status.value} to {target.value}"
        )
    if actor.role == BUYER and order.buyer_id != actor.profile_id:
        raise Forbidden("Order belongs to another buyer")
    if actor.role == COURIER and target != S.ASSIGNED:
        if order.courier_id is None or order.courier_id != actor.profile_id:
            raise Forbidden("Order is assigned to another courier")


def stamp_values(target: OrderStatus, now) -> dict:
    """Values written with ``status``. Lifecycle timestamps are write-once."""
    values: dict = {"status": target, "updated_at": now}
    field = TIMESTAMP_FIELDS.get(target)
    if field is not None:
        values[field] = func.coalesce(getattr(Order, field), now)
    return values


async def _classify_lost_write(
    db: AsyncSession,
    order_id: uuid.UUID,
    expected_status: OrderStatus,
    target: OrderStatus,
) -> OrderError:
    """Explain why a conditional write matched no row."""
    current = await get_order_for_transition(db, order_id)
    if target == S.CANCELLED and await payment_exists(db, order_id):
        return PaymentExists()
    if current.status != expected_status:
        return InvalidTransition(
            f"Order status changed to {current.status.value}, "
            f"cannot move to {target.value}"
        )
    return Forbidden("Order is assigned to another courier")


async def apply_transition(
    db: AsyncSession,
    order_id: uuid.UUID,
    target_status: OrderStatus,
    actor: Actor,
    *,
    notes: Optional[str] = None,
    courier_id: Optional[uuid.UUID] = None,
    side_effect: Optional[SideEffect] = None,
    emitter: Optional[OrderEventEmitter] = None,
) -> Order:
    """Validate and apply one status change.

    Raises NotFound, InvalidTransition, Forbidden, PaymentExists (and the
    assignment errors for ``assigned``). ``side_effect`` runs inside the same
    transaction after the status write, for rows that must commit with it.
    """
    target = OrderStatus(target_status)

    if target == S.ASSIGNED:
        if actor.role == COURIER:
            courier_id = actor.profile_id
        if courier_id is None:
            raise ValidationFailed("courier_id is required to assign an order")
        return await assign_order(
            db, order_id, courier_id, actor, notes=notes, emitter=emitter
        )

    order = await get_order_for_transition(db, order_id)
    previous = order.status

    check_transition(previous, target)
    authorize_transition(order, target, actor)
    if target == S.CANCELLED and await payment_exists(db, order.id):
        raise PaymentExists()

    stmt = update(Order).where(Order.id == order.id, Order.status == previous)
    if actor.role == COURIER:
        stmt = stmt.where(Order.courier_id == actor.profile_id)
    if target == S.CANCELLED:
        stmt = stmt.where(
            ~select(PaymentConfirmation.id)
            .where(PaymentConfirmation.order_id == order.id)
            .exists()
        )
    now = utc_now()
    stmt = stmt.values(**stamp_values(target, now)).execution_options(
        synchronize_session=False
    )

    try:
        result = await db.execute(stmt)
        if result.rowcount != 1:
            await db.rollback()
            raise await _classify_lost_write(db, order_id, previous, target)

        db.add(
            OrderStatusHistory(
                order_id=order.id,
                status=target,
                changed_by=actor.user_id,
                notes=notes,
            )
        )
        if side_effect is not None:
            await side_effect(db, order)
        await db.commit()
    except OrderError:
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception(
            "Transition %s -> %s failed for order %s",
            previous.value,
            target.value,
            order_id,
        )
        raise Unexpected() from exc

    order = await get_order_for_transition(db, order_id)
    logger.info(
        "Order %s moved %s -> %s by %s %s",
        order.order_number,
        previous.value,
        target.value,
        actor.role.value,
        actor.user_id,
    )
    await emit_order_event(
        OrderEvent.from_transition(order, previous, changed_at=now), emitter
    )
    return order
