"""Customer-facing tracking view: timeline steps, labels and copy."""
from datetime import datetime
from typing import List, Dict, Any, Optional

from ..models.order import Order, OrderItem, OrderStatus, OrderType
from .countdown import countdown_for
from .state_machine import stage_of

_DELIVERY_STEPS = [
    (OrderStatus.PENDING, "Order Placed"),
    (OrderStatus.CONFIRMED, "Confirmed"),
    (OrderStatus.PREPARING, "Preparing"),
    (OrderStatus.PACKED, "Packed"),
    (OrderStatus.OUT_FOR_DELIVERY, "Out for Delivery"),
    (OrderStatus.DELIVERED, "Delivered"),
]

_PICKUP_STEPS = [
    (OrderStatus.PENDING, "Order Placed"),
    (OrderStatus.CONFIRMED, "Confirmed"),
    (OrderStatus.PREPARING, "Preparing"),
    (OrderStatus.PACKED, "Ready for Pickup"),
    (OrderStatus.DELIVERED, "Picked Up"),
]

_LABELS = {
    OrderStatus.PENDING: "Pending",
    OrderStatus.CONFIRMED: "Confirmed",
    OrderStatus.PREPARING: "Preparing",
    OrderStatus.PACKED: "Packed",
    OrderStatus.OUT_FOR_DELIVERY: "Out for Delivery",
    OrderStatus.DELIVERED: "Delivered",
    OrderStatus.CANCELLED: "Cancelled",
    OrderStatus.EXPIRED: "Expired",
}


def status_label(status: OrderStatus, order_type: OrderType) -> str:
    status = OrderStatus(status)
    if order_type == OrderType.PICKUP:
        if status == OrderStatus.PACKED:
            return "Ready for Pickup"
        if status == OrderStatus.DELIVERED:
            return "Picked Up"
    return _LABELS[status]


def timeline_steps(order: Order) -> List[Dict[str, Any]]:
    """Steps with completed/current flags; empty for cancelled or expired"""
    if order.status in (OrderStatus.CANCELLED, OrderStatus.EXPIRED):
        return []
    steps = _PICKUP_STEPS if order.is_pickup else _DELIVERY_STEPS
    statuses = [s for s, _ in steps]
    # accepted orders have passed "confirmed" even though it is never stored
    current_idx = statuses.index(OrderStatus(order.status))
    return [
        {
            "status": status.value,
            "label": label,
            "completed": idx < current_idx,
            "current": idx == current_idx,
        }
        for idx, (status, label) in enumerate(steps)
    ]


def customer_message(order: Order, queue_ahead: Optional[int] = None) -> str:
    status = stage_of(order.status)
    if order.status == OrderStatus.EXPIRED:
        return "Sorry, your order could not be confirmed in time"
    if order.status == OrderStatus.CANCELLED:
        return "This order was cancelled"
    if status == OrderStatus.PENDING:
        if queue_ahead:
            noun = "order" if queue_ahead == 1 else "orders"
            return f"Please wait while our chef accepts your order. {queue_ahead} {noun} ahead of you"
        return "Please wait while our chef accepts your order. You're next in line!"
    if status == OrderStatus.PREPARING:
        if order.estimated_minutes:
            return f"Please wait, your food will be ready in about {order.estimated_minutes} minutes"
        return "Your food is being freshly prepared"
    if status == OrderStatus.PACKED:
        if order.is_pickup:
            return f"Head to the counter to pick up order {order.order_id}"
        return "Your order is packed and will be on its way shortly"
    if status == OrderStatus.OUT_FOR_DELIVERY:
        return "Our delivery partner is on the way with your order"
    if order.is_pickup:
        return "Thank you for dining with us. We hope you love every bite!"
    return "Your order has arrived. Enjoy every bite!"


def tracking_view(order: Order, items: List[OrderItem], queue_ahead: Optional[int], now: datetime) -> Dict[str, Any]:
    countdown = countdown_for(order, now)
    return {
        "order": order.model_dump(mode="json"),
        "items": [dict(item.model_dump(mode="json"), line_total=float(item.line_total)) for item in items],
        "display_status": status_label(order.status, order.order_type),
        "queue_ahead": queue_ahead,
        "countdown": countdown.to_dict() if countdown else None,
        "timeline": timeline_steps(order),
        "message": customer_message(order, queue_ahead),
        "is_ready_for_pickup": order.is_pickup and order.status == OrderStatus.PACKED,
        "awaits_payment": order.awaits_payment,
    }
