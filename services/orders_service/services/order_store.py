"""Order persistence: creation, fresh reads for transitions, listings, audit."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from libs.common.config import Settings, get_settings
from libs.common.datetime_utils import start_of_day, start_of_month, utc_now
from libs.common.logging import get_logger
from services.orders_service.errors import NotFound, Unexpected, ValidationFailed
from services.orders_service.models import (
    AuditEntityType,
    Order,
    OrderAddress,
    OrderAuditLog,
    OrderItem,
    OrderStatus,
    OrderStatusHistory,
    PaymentConfirmation,
    Product,
)
from services.orders_service.schemas import CheckoutRequest
from sqlalchemy import Select, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = get_logger(__name__)

CENT = Decimal("0.01")

ACTIVE_COURIER_STATUSES = (
    OrderStatus.ASSIGNED,
    OrderStatus.PICKED_UP,
    OrderStatus.ON_DELIVERY,
)
COURIER_HISTORY_STATUSES = (
    OrderStatus.DELIVERED,
    OrderStatus.FAILED,
    OrderStatus.RETURNED,
    OrderStatus.CANCELLED,
)


def _money(value) -> Decimal:
    return Decimal(value).quantize(CENT)


# ============================================================================
# READS
# ============================================================================


async def get_order_for_transition(db: AsyncSession, order_id: uuid.UUID) -> Order:
    """Return the latest committed state of an order.

    ``populate_existing`` overwrites any instance already in the identity map,
    so a transition never decides on a stale copy.
    """
    result = await db.execute(
        select(Order)
        .where(Order.id == order_id)
        .execution_options(populate_existing=True)
    )
    order = result.scalar_one_or_none()
    if order is None:
        raise NotFound()
    return order


async def get_order_detail(
    db: AsyncSession,
    order_id: uuid.UUID,
    *,
    buyer_id: Optional[uuid.UUID] = None,
    courier_id: Optional[uuid.UUID] = None,
) -> Optional[Order]:
    """Order with items and address, optionally scoped to its buyer or courier."""
    query = (
        select(Order)
        .where(Order.id == order_id)
        .options(selectinload(Order.items), selectinload(Order.address))
        .execution_options(populate_existing=True)
    )
    if buyer_id is not None:
        query = query.where(Order.buyer_id == buyer_id)
    if courier_id is not None:
        query = query.where(Order.courier_id == courier_id)
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def payment_exists(db: AsyncSession, order_id: uuid.UUID) -> bool:
    result = await db.execute(
        select(
            select(PaymentConfirmation.id)
            .where(PaymentConfirmation.order_id == order_id)
            .exists()
        )
    )
    return bool(result.scalar())


async def paginate_orders(
    db: AsyncSession, query: Select, *, page: int, page_size: int
) -> tuple[list[Order], int]:
    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar() or 0

    query = (
        query.options(selectinload(Order.items), selectinload(Order.address))
        .order_by(Order.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(query)
    return list(result.scalars().all()), total


async def list_orders(
    db: AsyncSession,
    *,
    buyer_id: Optional[uuid.UUID] = None,
    courier_id: Optional[uuid.UUID] = None,
    statuses: Optional[Iterable[OrderStatus]] = None,
    unassigned: bool = False,
    limit: Optional[int] = None,
    oldest_first: bool = False,
) -> list[Order]:
    query = select(Order).options(
        selectinload(Order.items), selectinload(Order.address)
    )
    if buyer_id is not None:
        query = query.where(Order.buyer_id == buyer_id)
    if courier_id is not None:
        query = query.where(Order.courier_id == courier_id)
    if statuses is not None:
        query = query.where(Order.status.in_(list(statuses)))
    if unassigned:
        query = query.where(Order.courier_id.is_(None))
    query = query.order_by(
        Order.created_at.asc() if oldest_first else Order.created_at.desc()
    )
    if limit is not None:
        query = query.limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_status_history(
    db: AsyncSession, order_id: uuid.UUID
) -> list[OrderStatusHistory]:
    result = await db.execute(
        select(OrderStatusHistory)
        .where(OrderStatusHistory.order_id == order_id)
        .order_by(OrderStatusHistory.created_at)
    )
    return list(result.scalars().all())


async def courier_stats(
    db: AsyncSession, courier_id: uuid.UUID, now: Optional[datetime] = None
) -> dict[str, int]:
    """Counters shown on the courier dashboard.

    "Today" and "this month" follow the business timezone.
    """
    settings = get_settings()
    now = now or utc_now()

    async def _count(*criteria) -> int:
        result = await db.execute(
            select(func.count(Order.id)).where(
                Order.courier_id == courier_id, *criteria
            )
        )
        return result.scalar() or 0

    return {
        "assigned": await _count(Order.status == OrderStatus.ASSIGNED),
        "in_delivery": await _count(
            Order.status.in_([OrderStatus.PICKED_UP, OrderStatus.ON_DELIVERY])
        ),
        "delivered_today": await _count(
            Order.status == OrderStatus.DELIVERED,
            Order.delivered_at >= start_of_day(now, settings.TIMEZONE),
        ),
        "delivered_month": await _count(
            Order.status == OrderStatus.DELIVERED,
            Order.delivered_at >= start_of_month(now, settings.TIMEZONE),
        ),
    }


# ============================================================================
# CREATION
# ============================================================================


def shipping_cost_for(subtotal: Decimal, settings: Settings) -> Decimal:
    if subtotal >= settings.FREE_SHIPPING_THRESHOLD:
        return Decimal("0")
    return settings.SHIPPING_COST_DEFAULT


async def create_order(
    db: AsyncSession,
    *,
    buyer_id: uuid.UUID,
    request: CheckoutRequest,
    created_by: str,
    settings: Optional[Settings] = None,
) -> Order:
    """Insert order, items and address in one transaction.

    Prices and costs come from the product table and are copied onto the
    items; totals are computed once here and never recomputed.
    """
    settings = settings or get_settings()

    product_ids = {item.product_id for item in request.items}
    result = await db.execute(
        select(Product).where(Product.id.in_(product_ids), Product.is_active.is_(True))
    )
    products = {product.id: product for product in result.scalars().all()}
    missing = product_ids - products.keys()
    if missing:
        raise ValidationFailed(
            f"Products not available: {', '.join(sorted(str(p) for p in missing))}"
        )

    subtotal = Decimal("0")
    total_hpp = Decimal("0")
    items: list[OrderItem] = []
    for line in request.items:
        product = products[line.product_id]
        price = _money(product.price)
        hpp = _money(product.hpp or 0)
        line_total = price * line.quantity
        subtotal += line_total
        total_hpp += hpp * line.quantity
        items.append(
            OrderItem(
                product_id=product.id,
                product_name=product.name,
                quantity=line.quantity,
                price_at_order=price,
                hpp_at_order=hpp,
                subtotal=line_total,
            )
        )

    shipping_cost = _money(shipping_cost_for(subtotal, settings))
    admin_fee = _money(settings.ADMIN_FEE)

    order = Order(
        order_number=Order.generate_order_number(settings.ORDER_NUMBER_PREFIX),
        buyer_id=buyer_id,
        status=OrderStatus.NEW,
        subtotal=subtotal,
        shipping_cost=shipping_cost,
        admin_fee=admin_fee,
        total=subtotal + shipping_cost + admin_fee,
        total_hpp=total_hpp,
        notes=request.notes,
        items=items,
        address=OrderAddress(**request.address.model_dump()),
    )
    db.add(order)
    db.add(
        OrderStatusHistory(order=order, status=OrderStatus.NEW, changed_by=created_by)
    )

    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Order creation failed for buyer %s", buyer_id)
        raise Unexpected("Order could not be created") from exc

    logger.info(
        "Created order %s for buyer %s (total=%s)",
        order.order_number,
        buyer_id,
        order.total,
    )
    created = await get_order_detail(db, order.id)
    return created


# ============================================================================
# AUDIT
# ============================================================================


async def log_audit(
    db: AsyncSession,
    entity_type: AuditEntityType,
    entity_id: uuid.UUID,
    action: str,
    performed_by: str,
    old_value: Optional[dict] = None,
    new_value: Optional[dict] = None,
    notes: Optional[str] = None,
):
    """Log an audit event."""
    audit_log = OrderAuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        old_value=old_value,
        new_value=new_value,
        performed_by=performed_by,
        notes=notes,
    )
    db.add(audit_log)


async def list_audit_logs(
    db: AsyncSession, entity_id: uuid.UUID
) -> list[OrderAuditLog]:
    result = await db.execute(
        select(OrderAuditLog)
        .where(OrderAuditLog.entity_id == entity_id)
        .order_by(OrderAuditLog.performed_at)
    )
    return list(result.scalars().all())
