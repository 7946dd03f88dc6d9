"""Order change events and the channels that deliver them.

Events carry enough structure (entity, id, transition, parties) for each
consumer to decide on its own what to refresh or who to notify. Delivery is
fire-and-forget: a failed emit is logged and never reaches the caller of the
transition.
"""

import uuid
from datetime import datetime
from functools import lru_cache
from typing import Optional, Protocol

from libs.common.config import get_settings
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from libs.common.service_client import internal_post
from pydantic import BaseModel, ConfigDict, Field
from services.orders_service.models import Order, OrderStatus

logger = get_logger(__name__)

CALLING_SERVICE = "orders"


class OrderEvent(BaseModel):
    """Structured change event emitted after every applied transition."""

    model_config = ConfigDict(populate_by_name=True)

    entity: str = "order"
    order_id: uuid.UUID = Field(..., alias="orderId")
    order_number: str = Field(..., alias="orderNumber")
    previous_status: OrderStatus = Field(..., alias="previousStatus")
    new_status: OrderStatus = Field(..., alias="newStatus")
    buyer_id: uuid.UUID = Field(..., alias="buyerId")
    courier_id: Optional[uuid.UUID] = Field(None, alias="courierId")
    timestamp: datetime = Field(default_factory=utc_now)

    @classmethod
    def from_transition(
        cls,
        order: Order,
        previous_status: OrderStatus,
        changed_at: Optional[datetime] = None,
    ) -> "OrderEvent":
        """``changed_at`` is when the status was written; defaults to now."""
        return cls(
            timestamp=changed_at or utc_now(),
            order_id=order.id,
            order_number=order.order_number,
            previous_status=previous_status,
            new_status=order.status,
            buyer_id=order.buyer_id,
            courier_id=order.courier_id,
        )

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class OrderEventEmitter(Protocol):
    async def emit(self, event: OrderEvent) -> None: ...


class LoggingEmitter:
    """Default channel when no webhook is configured."""

    async def emit(self, event: OrderEvent) -> None:
        logger.info(
            "Order %s moved %s -> %s",
            event.order_number,
            event.previous_status.value,
            event.new_status.value,
            extra={"extra_fields": {"order_event": event.to_payload()}},
        )


class WebhookEmitter:
    """POST events to the notification collaborator (push, toasts, dashboards)."""

    def __init__(self, url: str, timeout: float = 5.0):
        self.url = url
        self.timeout = timeout

    async def emit(self, event: OrderEvent) -> None:
        response = await internal_post(
            url=self.url,
            calling_service=CALLING_SERVICE,
            json=event.to_payload(),
            timeout=self.timeout,
        )
        response.raise_for_status()


@lru_cache
def get_order_event_emitter() -> OrderEventEmitter:
    """FastAPI dependency returning the configured event channel."""
    settings = get_settings()
    if settings.ORDER_EVENTS_WEBHOOK_URL:
        return WebhookEmitter(
            settings.ORDER_EVENTS_WEBHOOK_URL,
            timeout=settings.ORDER_EVENTS_TIMEOUT_SECONDS,
        )
    return LoggingEmitter()


async def emit_order_event(
    event: OrderEvent, emitter: Optional[OrderEventEmitter] = None
) -> bool:
    """Deliver ``event``; returns False when delivery failed."""
    emitter = emitter or get_order_event_emitter()
    try:
        await emitter.emit(event)
    except Exception:
        logger.exception(
            "Failed to emit order event for %s (%s -> %s)",
            event.order_number,
            event.previous_status.value,
            event.new_status.value,
        )
        return False
    return True
