"""Payment proof workflow: buyer submission, admin confirmation/rejection."""

import uuid
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.orders_service.errors import (
    InvalidTransition,
    NotFound,
    OrderError,
    Unexpected,
    ValidationFailed,
)
from services.orders_service.models import (
    AuditEntityType,
    Order,
    OrderStatus,
    PaymentConfirmation,
)
from services.orders_service.schemas import PaymentProofCreate
from services.orders_service.services.actors import Actor
from services.orders_service.services.notifications import OrderEventEmitter
from services.orders_service.services.order_store import log_audit
from services.orders_service.services.transitions import apply_transition
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

PAYMENT_STATES = ("pending", "confirmed", "all")


async def _get_payment(db: AsyncSession, payment_id: uuid.UUID) -> PaymentConfirmation:
    result = await db.execute(
        select(PaymentConfirmation)
        .where(PaymentConfirmation.id == payment_id)
        .execution_options(populate_existing=True)
    )
    payment = result.scalar_one_or_none()
    if payment is None:
        raise NotFound("Payment not found")
    return payment


async def submit_payment_proof(
    db: AsyncSession,
    order_id: uuid.UUID,
    actor: Actor,
    payload: PaymentProofCreate,
    *,
    emitter: Optional[OrderEventEmitter] = None,
) -> PaymentConfirmation:
    """Record a transfer proof; a ``new`` order moves to ``waiting_payment``.

    Further proofs for an order already waiting on payment are added without
    a status change.
    """
    result = await db.execute(
        select(Order.status).where(
            Order.id == order_id, Order.buyer_id == actor.profile_id
        )
    )
    current = result.scalar_one_or_none()
    if current is None:
        raise NotFound()
    if current not in (OrderStatus.NEW, OrderStatus.WAITING_PAYMENT):
        raise InvalidTransition(
            f"Payment proof cannot be submitted for a {current.value} order"
        )

    payment = PaymentConfirmation(order_id=order_id, **payload.model_dump())

    async def _insert(session: AsyncSession, order: Order) -> None:
        session.add(payment)

    if current == OrderStatus.NEW:
        await apply_transition(
            db,
            order_id,
            OrderStatus.WAITING_PAYMENT,
            actor,
            notes="Payment proof submitted",
            side_effect=_insert,
            emitter=emitter,
        )
    else:
        db.add(payment)
        try:
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.exception("Saving payment proof failed for order %s", order_id)
            raise Unexpected() from exc

    logger.info(
        "Payment proof %s submitted for order %s (amount=%s)",
        payment.id,
        order_id,
        payment.amount,
    )
    return await _get_payment(db, payment.id)


async def confirm_payment(
    db: AsyncSession,
    payment_id: uuid.UUID,
    actor: Actor,
    *,
    emitter: Optional[OrderEventEmitter] = None,
) -> PaymentConfirmation:
    """Mark the proof confirmed and move its order to ``paid`` atomically."""
    payment = await _get_payment(db, payment_id)
    if payment.is_confirmed:
        raise ValidationFailed("Payment already confirmed")
    order_id = payment.order_id
    now = utc_now()

    async def _confirm(session: AsyncSession, order: Order) -> None:
        result = await session.execute(
            update(PaymentConfirmation)
            .where(
                PaymentConfirmation.id == payment_id,
                PaymentConfirmation.is_confirmed.is_(False),
            )
            .values(is_confirmed=True, confirmed_at=now, confirmed_by=actor.user_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ValidationFailed("Payment already confirmed")
        await log_audit(
            session,
            AuditEntityType.PAYMENT_CONFIRMATION,
            payment_id,
            "payment_confirmed",
            actor.user_id,
            old_value={"is_confirmed": False},
            new_value={"is_confirmed": True, "order_id": str(order_id)},
        )

    await apply_transition(
        db,
        order_id,
        OrderStatus.PAID,
        actor,
        notes="Payment confirmed",
        side_effect=_confirm,
        emitter=emitter,
    )
    logger.info("Payment %s confirmed by %s", payment_id, actor.user_id)
    return await _get_payment(db, payment_id)


async def reject_payment(
    db: AsyncSession,
    payment_id: uuid.UUID,
    actor: Actor,
    reason: str,
    *,
    emitter: Optional[OrderEventEmitter] = None,
) -> PaymentConfirmation:
    """Annotate the proof and send its order back to ``new``."""
    payment = await _get_payment(db, payment_id)
    if payment.is_confirmed:
        raise ValidationFailed("Confirmed payments cannot be rejected")
    order_id = payment.order_id
    rejection_note = f"Rejected: {reason}"

    async def _reject(session: AsyncSession, order: Order) -> None:
        await session.execute(
            update(PaymentConfirmation)
            .where(PaymentConfirmation.id == payment_id)
            .values(notes=rejection_note)
            .execution_options(synchronize_session=False)
        )
        await log_audit(
            session,
            AuditEntityType.PAYMENT_CONFIRMATION,
            payment_id,
            "payment_rejected",
            actor.user_id,
            new_value={"order_id": str(order_id)},
            notes=reason,
        )

    await apply_transition(
        db,
        order_id,
        OrderStatus.NEW,
        actor,
        notes=rejection_note,
        side_effect=_reject,
        emitter=emitter,
    )
    logger.info("Payment %s rejected by %s", payment_id, actor.user_id)
    return await _get_payment(db, payment_id)


async def list_payments(
    db: AsyncSession, state: str = "pending", limit: int = 100
) -> list[PaymentConfirmation]:
    if state not in PAYMENT_STATES:
        raise ValidationFailed(f"state must be one of {', '.join(PAYMENT_STATES)}")
    query = select(PaymentConfirmation)
    if state == "pending":
        query = query.where(PaymentConfirmation.is_confirmed.is_(False))
    elif state == "confirmed":
        query = query.where(PaymentConfirmation.is_confirmed.is_(True))
    result = await db.execute(
        query.order_by(PaymentConfirmation.created_at.desc()).limit(limit)
    )
    return list(result.scalars().all())
