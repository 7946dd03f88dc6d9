"""Integration tests for the admin back-office endpoints."""

import pytest
from services.orders_service.models import OrderStatus
from tests.factories import (
    BuyerProfileFactory,
    CourierProfileFactory,
    OrderFactory,
    PaymentConfirmationFactory,
    admin_user,
    courier_user,
)


async def _order(db, status=OrderStatus.NEW, with_payment=False):
    buyer = BuyerProfileFactory.create()
    db.add(buyer)
    order = OrderFactory.create(buyer_id=buyer.id, status=status)
    db.add(order)
    payment = None
    if with_payment:
        payment = PaymentConfirmationFactory.create(order_id=order.id)
        db.add(payment)
    await db.commit()
    return order, payment


@pytest.mark.asyncio
@pytest.mark.integration
async def test_list_orders_filters_by_status(client, db_session, login):
    login(admin_user())
    paid, _ = await _order(db_session, OrderStatus.PAID)
    await _order(db_session, OrderStatus.NEW)

    response = await client.get("/admin/orders", params={"status_filter": "paid"})

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert data["page"] == 1
    assert [o["id"] for o in data["items"]] == [str(paid.id)]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_payment_review_flow(client, db_session, login, emitter):
    """Confirming a proof marks the order paid; couriers then see it."""
    login(admin_user())
    order, payment = await _order(
        db_session, OrderStatus.WAITING_PAYMENT, with_payment=True
    )

    pending = await client.get("/admin/payments", params={"state": "pending"})
    assert [p["id"] for p in pending.json()] == [str(payment.id)]

    confirmed = await client.post(f"/admin/payments/{payment.id}/confirm")
    assert confirmed.status_code == 200, confirmed.text
    assert confirmed.json()["is_confirmed"] is True

    detail = await client.get(f"/admin/orders/{order.id}")
    assert detail.json()["status"] == "paid"
    assert [e.new_status for e in emitter.events] == [OrderStatus.PAID]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_reject_payment_returns_order_to_new(client, db_session, login):
    login(admin_user())
    order, payment = await _order(
        db_session, OrderStatus.WAITING_PAYMENT, with_payment=True
    )

    response = await client.post(
        f"/admin/payments/{payment.id}/reject", json={"reason": "Amount mismatch"}
    )

    assert response.status_code == 200, response.text
    assert response.json()["notes"] == "Rejected: Amount mismatch"
    detail = await client.get(f"/admin/orders/{order.id}")
    assert detail.json()["status"] == "new"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_status_override_is_recorded(client, db_session, login):
    login(admin_user("admin-ops"))
    order, _ = await _order(db_session, OrderStatus.NEW)

    response = await client.patch(
        f"/admin/orders/{order.id}/status",
        json={"status": "cancelled", "notes": "Customer called"},
    )
    assert response.status_code == 200, response.text
    assert response.json()["status"] == "cancelled"

    history = await client.get(f"/admin/orders/{order.id}/history")
    assert history.status_code == 200
    data = history.json()
    assert [h["status"] for h in data["status_history"]] == ["cancelled"]
    assert data["status_history"][0]["changed_by"] == "admin-ops"
    assert [a["action"] for a in data["audit_logs"]] == ["status_changed"]
    assert data["audit_logs"][0]["old_value"] == {"status": "new"}


@pytest.mark.asyncio
@pytest.mark.integration
async def test_status_override_respects_graph(client, db_session, login):
    login(admin_user())
    order, _ = await _order(db_session, OrderStatus.NEW)

    response = await client.patch(
        f"/admin/orders/{order.id}/status", json={"status": "delivered"}
    )

    assert response.status_code == 400
    assert response.json()["code"] == "InvalidTransition"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_assigns_courier(client, db_session, login):
    login(admin_user())
    order, _ = await _order(db_session, OrderStatus.PAID)
    courier = CourierProfileFactory.create()
    db_session.add(courier)
    await db_session.commit()

    response = await client.post(
        f"/admin/orders/{order.id}/assign", json={"courier_id": str(courier.id)}
    )

    assert response.status_code == 200, response.text
    assert response.json()["status"] == "assigned"
    assert response.json()["courier_id"] == str(courier.id)

    again = await client.post(
        f"/admin/orders/{order.id}/assign", json={"courier_id": str(courier.id)}
    )
    assert again.status_code == 409


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_endpoints_require_admin(client, login):
    login(courier_user("courier-1"))

    response = await client.get("/admin/orders")

    assert response.status_code == 403
