"""Delivery completion with proof of delivery."""

import uuid
from typing import Optional

from services.orders_service.models import DeliveryProof, Order, OrderStatus
from services.orders_service.schemas import DeliveryProofCreate
from services.orders_service.services.actors import Actor
from services.orders_service.services.notifications import OrderEventEmitter
from services.orders_service.services.transitions import apply_transition
from sqlalchemy.ext.asyncio import AsyncSession


async def deliver_order(
    db: AsyncSession,
    order_id: uuid.UUID,
    actor: Actor,
    proof: DeliveryProofCreate,
    *,
    emitter: Optional[OrderEventEmitter] = None,
) -> Order:
    """Move ``on_delivery`` to ``delivered``; the proof commits with the status."""

    async def _attach_proof(session: AsyncSession, order: Order) -> None:
        session.add(
            DeliveryProof(
                order_id=order_id,
                photo_url=proof.photo_url,
                recipient_signature=proof.recipient_signature,
                notes=proof.notes,
                created_by=actor.user_id,
            )
        )

    return await apply_transition(
        db,
        order_id,
        OrderStatus.DELIVERED,
        actor,
        notes=proof.notes,
        side_effect=_attach_proof,
        emitter=emitter,
    )
