import logging
from typing import Optional
from fastapi import Request

from ..models.order import Order
from ..services.order_repository import OrderRepository
from .exceptions import StoreUnavailable

logger = logging.getLogger(__name__)

def log_activity(
    repository: OrderRepository,
    user: dict,
    action: str,
    order: Order,
    details: Optional[dict] = None,
    request: Optional[Request] = None,
):
    """Record a staff action on an order for kitchen analytics"""
    activity = {
        "user_id": user.get("id"),
        "user_email": user.get("email"),
        "user_role": user.get("role"),
        "action": action,
        "resource": "order",
        "resource_id": order.id,
        "details": dict(details or {}, order_id=order.order_id, status=order.status.value),
        "ip_address": request.client.host if request and request.client else None,
    }

    try:
        repository.insert_activity(activity)
    except StoreUnavailable as e:
        # the order write already succeeded; the audit row is best effort
        logger.warning(f"Activity log for {order.order_id} not saved: {e}")
