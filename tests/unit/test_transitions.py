"""Unit tests for the order transition engine.

Tests call the engine directly with a database session; no HTTP layer.
"""

import uuid
from datetime import datetime, timezone

import pytest
from services.orders_service.errors import (
    Forbidden,
    InvalidTransition,
    NotFound,
    PaymentExists,
)
from services.orders_service.models import (
    ActorRole,
    Order,
    OrderStatus,
    OrderStatusHistory,
)
from services.orders_service.services.actors import Actor
from services.orders_service.services.notifications import (
    OrderEvent,
    emit_order_event,
)
from services.orders_service.services.transitions import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    apply_transition,
    reachable_from,
)
from sqlalchemy import select
from tests.factories import (
    BuyerProfileFactory,
    CourierProfileFactory,
    OrderFactory,
    PaymentConfirmationFactory,
    RecordingEmitter,
)

ADMIN = Actor(role=ActorRole.ADMIN, user_id="admin-1")

COURIER_HELD = {
    OrderStatus.ASSIGNED,
    OrderStatus.PICKED_UP,
    OrderStatus.ON_DELIVERY,
    OrderStatus.DELIVERED,
    OrderStatus.FAILED,
    OrderStatus.RETURNED,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _buyer_actor(buyer) -> Actor:
    return Actor(role=ActorRole.BUYER, user_id=buyer.user_id, profile_id=buyer.id)


def _courier_actor(courier) -> Actor:
    return Actor(role=ActorRole.COURIER, user_id=courier.user_id, profile_id=courier.id)


async def _seed(db, status=OrderStatus.NEW, *, with_courier=False, with_payment=False):
    """Insert a buyer, optionally a courier, and one order in ``status``."""
    buyer = BuyerProfileFactory.create()
    courier = CourierProfileFactory.create() if with_courier else None
    db.add(buyer)
    if courier is not None:
        db.add(courier)
    order = OrderFactory.create(
        buyer_id=buyer.id,
        status=status,
        courier_id=courier.id if courier is not None else None,
    )
    db.add(order)
    if with_payment:
        db.add(PaymentConfirmationFactory.create(order_id=order.id))
    await db.commit()
    return buyer, courier, order


async def _history(db, order_id) -> list[OrderStatus]:
    result = await db.execute(
        select(OrderStatusHistory.status)
        .where(OrderStatusHistory.order_id == order_id)
        .order_by(OrderStatusHistory.created_at)
    )
    return list(result.scalars().all())


async def _status(db, order_id) -> OrderStatus:
    result = await db.execute(
        select(Order.status)
        .where(Order.id == order_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


# ---------------------------------------------------------------------------
# Transition graph
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_every_status_with_an_inbound_edge_is_reachable_from_new():
    inbound = {target for targets in ALLOWED_TRANSITIONS.values() for target in targets}
    reachable = reachable_from(OrderStatus.NEW)

    assert inbound | {OrderStatus.NEW} <= reachable
    assert OrderStatus.REFUNDED not in reachable


@pytest.mark.unit
def test_terminal_statuses_have_no_outgoing_edges():
    assert TERMINAL_STATUSES == {
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
        OrderStatus.REFUNDED,
        OrderStatus.FAILED,
        OrderStatus.RETURNED,
    }


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_buyer_cancels_new_order(db_session):
    buyer, _, order = await _seed(db_session)
    emitter = RecordingEmitter()

    cancelled = await apply_transition(
        db_session,
        order.id,
        OrderStatus.CANCELLED,
        _buyer_actor(buyer),
        emitter=emitter,
    )

    assert cancelled.status == OrderStatus.CANCELLED
    assert cancelled.cancelled_at is not None
    assert await _history(db_session, order.id) == [OrderStatus.CANCELLED]

    assert len(emitter.events) == 1
    event = emitter.events[0]
    assert event.previous_status == OrderStatus.NEW
    assert event.new_status == OrderStatus.CANCELLED
    assert event.order_id == order.id
    assert event.buyer_id == buyer.id


@pytest.mark.asyncio
@pytest.mark.unit
async def test_cancel_waiting_payment_with_proof_fails(db_session):
    """A submitted payment proof blocks cancellation and nothing changes."""
    buyer, _, order = await _seed(
        db_session, OrderStatus.WAITING_PAYMENT, with_payment=True
    )
    emitter = RecordingEmitter()

    with pytest.raises(PaymentExists):
        await apply_transition(
            db_session,
            order.id,
            OrderStatus.CANCELLED,
            _buyer_actor(buyer),
            emitter=emitter,
        )

    assert await _status(db_session, order.id) == OrderStatus.WAITING_PAYMENT
    assert await _history(db_session, order.id) == []
    assert emitter.events == []


@pytest.mark.asyncio
@pytest.mark.unit
async def test_admin_cannot_cancel_paid_order_with_payment(db_session):
    _, _, order = await _seed(db_session, OrderStatus.PAID, with_payment=True)

    with pytest.raises(PaymentExists):
        await apply_transition(db_session, order.id, OrderStatus.CANCELLED, ADMIN)


@pytest.mark.asyncio
@pytest.mark.unit
@pytest.mark.parametrize("status", [OrderStatus.PAID, OrderStatus.ASSIGNED])
async def test_buyer_cannot_cancel_after_payment_is_confirmed(db_session, status):
    buyer, _, order = await _seed(
        db_session, status, with_courier=status == OrderStatus.ASSIGNED
    )

    with pytest.raises(InvalidTransition):
        await apply_transition(
            db_session, order.id, OrderStatus.CANCELLED, _buyer_actor(buyer)
        )
    assert await _status(db_session, order.id) == status


@pytest.mark.asyncio
@pytest.mark.unit
async def test_buyer_cannot_cancel_another_buyers_order(db_session):
    _, _, order = await _seed(db_session)
    stranger = BuyerProfileFactory.create()
    db_session.add(stranger)
    await db_session.commit()

    with pytest.raises(Forbidden):
        await apply_transition(
            db_session, order.id, OrderStatus.CANCELLED, _buyer_actor(stranger)
        )
    assert await _status(db_session, order.id) == OrderStatus.NEW


@pytest.mark.asyncio
@pytest.mark.unit
async def test_cancelled_order_is_terminal(db_session):
    _, _, order = await _seed(db_session, OrderStatus.CANCELLED)

    with pytest.raises(InvalidTransition):
        await apply_transition(db_session, order.id, OrderStatus.NEW, ADMIN)


# ---------------------------------------------------------------------------
# Courier progress
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_assigned_cannot_jump_to_delivered(db_session):
    _, courier, order = await _seed(
        db_session, OrderStatus.ASSIGNED, with_courier=True
    )

    with pytest.raises(InvalidTransition):
        await apply_transition(
            db_session, order.id, OrderStatus.DELIVERED, _courier_actor(courier)
        )
    assert await _status(db_session, order.id) == OrderStatus.ASSIGNED


@pytest.mark.asyncio
@pytest.mark.unit
async def test_courier_cannot_progress_another_couriers_order(db_session):
    _, _, order = await _seed(db_session, OrderStatus.ASSIGNED, with_courier=True)
    other = CourierProfileFactory.create()
    db_session.add(other)
    await db_session.commit()

    with pytest.raises(Forbidden):
        await apply_transition(
            db_session, order.id, OrderStatus.PICKED_UP, _courier_actor(other)
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_buyer_cannot_confirm_own_payment(db_session):
    buyer, _, order = await _seed(db_session, OrderStatus.WAITING_PAYMENT)

    with pytest.raises(Forbidden):
        await apply_transition(
            db_session, order.id, OrderStatus.PAID, _buyer_actor(buyer)
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_unknown_order_is_not_found(db_session):
    with pytest.raises(NotFound):
        await apply_transition(db_session, uuid.uuid4(), OrderStatus.PAID, ADMIN)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_full_lifecycle_keeps_courier_invariant(db_session):
    """courier_id is set exactly while a courier holds the order."""
    buyer, _, order = await _seed(db_session)
    courier = CourierProfileFactory.create()
    db_session.add(courier)
    await db_session.commit()
    emitter = RecordingEmitter()

    steps = [
        (OrderStatus.WAITING_PAYMENT, _buyer_actor(buyer)),
        (OrderStatus.PAID, ADMIN),
        (OrderStatus.ASSIGNED, _courier_actor(courier)),
        (OrderStatus.PICKED_UP, _courier_actor(courier)),
        (OrderStatus.ON_DELIVERY, _courier_actor(courier)),
        (OrderStatus.DELIVERED, _courier_actor(courier)),
    ]
    for target, actor in steps:
        current = await apply_transition(
            db_session, order.id, target, actor, emitter=emitter
        )
        assert current.status == target
        assert (current.courier_id is not None) == (target in COURIER_HELD)

    assert current.courier_id == courier.id
    assert current.assigned_at is not None
    assert current.picked_up_at is not None
    assert current.delivered_at is not None
    assert await _history(db_session, order.id) == [target for target, _ in steps]
    assert [e.new_status for e in emitter.events] == [target for target, _ in steps]


@pytest.mark.asyncio
@pytest.mark.unit
async def test_lifecycle_timestamps_are_write_once(db_session):
    earlier = datetime(2025, 1, 1, 8, 0, tzinfo=timezone.utc)
    _, courier, order = await _seed(
        db_session, OrderStatus.ASSIGNED, with_courier=True
    )
    order.picked_up_at = earlier
    await db_session.commit()

    updated = await apply_transition(
        db_session, order.id, OrderStatus.PICKED_UP, _courier_actor(courier)
    )

    assert updated.status == OrderStatus.PICKED_UP
    assert updated.picked_up_at.replace(tzinfo=None) == earlier.replace(tzinfo=None)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_failed_notification_does_not_fail_transition(db_session):
    buyer, _, order = await _seed(db_session)

    cancelled = await apply_transition(
        db_session,
        order.id,
        OrderStatus.CANCELLED,
        _buyer_actor(buyer),
        emitter=RecordingEmitter(fail=True),
    )

    assert cancelled.status == OrderStatus.CANCELLED
    assert await _status(db_session, order.id) == OrderStatus.CANCELLED


@pytest.mark.asyncio
@pytest.mark.unit
async def test_emit_reports_failure_without_raising(db_session):
    _, _, order = await _seed(db_session)
    event = OrderEvent.from_transition(order, OrderStatus.NEW)

    assert await emit_order_event(event, RecordingEmitter(fail=True)) is False
    assert await emit_order_event(event, RecordingEmitter()) is True


@pytest.mark.unit
def test_event_payload_uses_camel_case_fields():
    order = OrderFactory.create(status=OrderStatus.PAID)
    payload = OrderEvent.from_transition(order, OrderStatus.WAITING_PAYMENT).to_payload()

    assert payload["entity"] == "order"
    assert payload["orderId"] == str(order.id)
    assert payload["previousStatus"] == "waiting_payment"
    assert payload["newStatus"] == "paid"
    assert payload["courierId"] is None
