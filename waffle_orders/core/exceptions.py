"""Order engine error taxonomy.

Benign races are not errors: a lost conditional write comes back as a
``TransitionResult`` with ``applied=False``. Everything here is either a
rejected request or genuine misuse.
"""
from typing import Optional, Any


class OrderError(Exception):
    """Base class for order engine errors"""


class InvalidTransition(OrderError):
    def __init__(self, current: str, requested: str, order_type: str,
                 reason: Optional[str] = None, order: Optional[Any] = None):
        self.current = current
        self.requested = requested
        self.order_type = order_type
        self.reason = reason
        self.order = order
        message = f"Cannot move {order_type} order from {current} to {requested}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class OrderExpired(OrderError):
    def __init__(self, order_id: str, order: Optional[Any] = None):
        self.order_id = order_id
        self.order = order
        super().__init__(f"Order {order_id} could not be confirmed in time")


class OrderNotFound(OrderError):
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class ValidationError(OrderError):
    """Checkout input rejected before anything is written"""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class InvalidEstimate(OrderError):
    def __init__(self, estimated_minutes: Any, allowed):
        self.estimated_minutes = estimated_minutes
        self.allowed = list(allowed)
        super().__init__(
            f"Estimated minutes {estimated_minutes!r} must be one of {self.allowed}"
        )


class StoreUnavailable(OrderError):
    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Order store unavailable during {operation}")


class DuplicateOrderId(OrderError):
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order id {order_id} already taken")
