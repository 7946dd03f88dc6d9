"""Unit tests for order creation and courier dashboard reads."""

import re
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from libs.common.config import get_settings
from services.orders_service.errors import ValidationFailed
from services.orders_service.models import OrderStatus
from services.orders_service.schemas import AddressCreate, CheckoutItem, CheckoutRequest
from services.orders_service.services.order_store import (
    courier_stats,
    create_order,
    get_status_history,
    shipping_cost_for,
)
from tests.factories import (
    BuyerProfileFactory,
    CourierProfileFactory,
    OrderFactory,
    ProductFactory,
)

ADDRESS = AddressCreate(
    recipient_name="Sari",
    phone="081234567890",
    address="Jl. Melati No. 5, Bandung",
    landmark="Near the mosque",
)


async def _buyer_and_products(db, *products):
    buyer = BuyerProfileFactory.create()
    db.add(buyer)
    db.add_all(products)
    await db.commit()
    return buyer


@pytest.mark.unit
def test_shipping_is_free_from_threshold():
    settings = get_settings()
    threshold = settings.FREE_SHIPPING_THRESHOLD

    assert shipping_cost_for(threshold, settings) == Decimal("0")
    assert shipping_cost_for(threshold - 1, settings) == settings.SHIPPING_COST_DEFAULT


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_order_snapshots_prices_and_totals(db_session):
    settings = get_settings()
    rice = ProductFactory.create(price=Decimal("75000"), hpp=Decimal("60000"))
    oil = ProductFactory.create(
        name="Minyak Goreng 2L", price=Decimal("35000"), hpp=Decimal("30000")
    )
    buyer = await _buyer_and_products(db_session, rice, oil)

    order = await create_order(
        db_session,
        buyer_id=buyer.id,
        request=CheckoutRequest(
            items=[
                CheckoutItem(product_id=rice.id, quantity=2),
                CheckoutItem(product_id=oil.id, quantity=1),
            ],
            address=ADDRESS,
        ),
        created_by=buyer.user_id,
    )

    assert order.status == OrderStatus.NEW
    assert order.courier_id is None
    assert order.subtotal == Decimal("185000")
    assert order.total_hpp == Decimal("150000")
    assert order.shipping_cost == settings.SHIPPING_COST_DEFAULT
    assert order.total == order.subtotal + order.shipping_cost + order.admin_fee
    assert re.fullmatch(
        rf"{settings.ORDER_NUMBER_PREFIX}-\d{{8}}-[A-Z0-9]{{5}}", order.order_number
    )
    assert {item.product_name for item in order.items} == {rice.name, oil.name}
    assert order.address.recipient_name == "Sari"

    history = await get_status_history(db_session, order.id)
    assert [h.status for h in history] == [OrderStatus.NEW]


@pytest.mark.asyncio
@pytest.mark.unit
async def test_large_order_ships_free(db_session):
    tv = ProductFactory.create(name="Televisi 32in", price=Decimal("2500000"))
    buyer = await _buyer_and_products(db_session, tv)

    order = await create_order(
        db_session,
        buyer_id=buyer.id,
        request=CheckoutRequest(
            items=[CheckoutItem(product_id=tv.id, quantity=1)], address=ADDRESS
        ),
        created_by=buyer.user_id,
    )

    assert order.shipping_cost == Decimal("0")
    assert order.total == Decimal("2500000") + order.admin_fee


@pytest.mark.asyncio
@pytest.mark.unit
async def test_inactive_product_is_rejected(db_session):
    retired = ProductFactory.create(is_active=False)
    buyer = await _buyer_and_products(db_session, retired)

    with pytest.raises(ValidationFailed):
        await create_order(
            db_session,
            buyer_id=buyer.id,
            request=CheckoutRequest(
                items=[CheckoutItem(product_id=retired.id, quantity=1)],
                address=ADDRESS,
            ),
            created_by=buyer.user_id,
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_courier_stats_counts(db_session):
    now = datetime.now(timezone.utc)
    buyer = BuyerProfileFactory.create()
    courier = CourierProfileFactory.create()
    db_session.add_all([buyer, courier])

    def _order(status, delivered_at=None):
        return OrderFactory.create(
            buyer_id=buyer.id,
            courier_id=courier.id,
            status=status,
            delivered_at=delivered_at,
        )

    db_session.add_all(
        [
            _order(OrderStatus.ASSIGNED),
            _order(OrderStatus.PICKED_UP),
            _order(OrderStatus.ON_DELIVERY),
            _order(OrderStatus.DELIVERED, delivered_at=now),
            _order(OrderStatus.DELIVERED, delivered_at=now - timedelta(days=400)),
        ]
    )
    await db_session.commit()

    stats = await courier_stats(db_session, courier.id, now=now)

    assert stats["assigned"] == 1
    assert stats["in_delivery"] == 2
    assert stats["delivered_today"] == 1
    assert stats["delivered_month"] == 1
