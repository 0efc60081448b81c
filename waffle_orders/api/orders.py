from fastapi import APIRouter, HTTPException, status, Depends
from typing import Optional

from ..models.checkout import CheckoutRequest
from ..core.permissions import get_current_user
from ..core.rate_limiter import checkout_limiter, tracking_limiter
from ..core.cache import invalidate_order_cache
from ..core.timeline import tracking_view, status_label
from ..services.checkout import CheckoutService
from ..services.order_service import OrderService
from ..services.order_queue import QueueCoordinator
from .deps import get_checkout_service, get_order_service, get_queue_coordinator

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post("/quote")
def quote_order(
    request: CheckoutRequest,
    checkout: CheckoutService = Depends(get_checkout_service),
):
    """Price a cart (coupon, delivery fee) without placing it"""
    quote = checkout.quote(request)
    return quote.model_dump(mode="json")


@router.post("", status_code=status.HTTP_201_CREATED, dependencies=[Depends(checkout_limiter)])
def place_order(
    request: CheckoutRequest,
    current_user: dict = Depends(get_current_user),
    checkout: CheckoutService = Depends(get_checkout_service),
):
    placed = checkout.place_order(request, user_id=current_user["id"])
    invalidate_order_cache(placed.order.order_id)

    return {
        "message": "Order placed",
        "order_id": placed.order.order_id,
        "order": placed.order.model_dump(mode="json"),
        "items": [item.model_dump(mode="json") for item in placed.items],
        "expires_at": placed.order.expires_at.isoformat(),
    }


@router.get("/mine")
def my_orders(
    current_user: dict = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    entries = service.list_orders_for_user(current_user["id"])
    return [
        {
            "order": entry.order.model_dump(mode="json"),
            "items": [item.model_dump(mode="json") for item in entry.items],
            "display_status": status_label(entry.order.status, entry.order.order_type),
        }
        for entry in entries
    ]


@router.get("/track/{order_id}", dependencies=[Depends(tracking_limiter)])
def track_order(
    order_id: str,
    service: OrderService = Depends(get_order_service),
    coordinator: QueueCoordinator = Depends(get_queue_coordinator),
):
    """Public tracking by the human order code, e.g. SW-1234"""
    found = service.lookup_by_order_id(order_id)
    if not found:
        raise HTTPException(
            status_code=404,
            detail="Order not found. Please check your order ID and try again"
        )

    queue_ahead: Optional[int] = coordinator.position_ahead(found.order)
    return tracking_view(found.order, found.items, queue_ahead, service.clock())
