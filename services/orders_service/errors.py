"""Order lifecycle error taxonomy.

Every business-rule rejection is terminal and reported to the caller as is;
``Unexpected`` wraps storage/infrastructure failures and is safe to retry.
"""

from typing import Optional

from fastapi import status


class OrderError(Exception):
    """Base class for order lifecycle failures."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "OrderError"
    default_message: str = "Order operation failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(OrderError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "Unauthorized"
    default_message = "Unauthorized"


class Forbidden(OrderError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "Forbidden"
    default_message = "Not allowed to perform this action on the order"


class NotFound(OrderError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NotFound"
    default_message = "Order not found"


class ValidationFailed(OrderError):
    code = "ValidationFailed"
    default_message = "Invalid request"


class InvalidTransition(OrderError):
    code = "InvalidTransition"
    default_message = "Order cannot move to the requested status"


class PaymentExists(OrderError):
    code = "PaymentExists"
    default_message = "Order cannot be cancelled because a payment proof exists"


class NotEligible(OrderError):
    code = "NotEligible"
    default_message = "Order is not available for assignment"


class AlreadyClaimed(OrderError):
    status_code = status.HTTP_409_CONFLICT
    code = "AlreadyClaimed"
    default_message = "Order has already been claimed by a courier"


class Unexpected(OrderError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "Unexpected"
    default_message = "Unexpected error, please retry"
