from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from typing import Optional

from ..core.permissions import require_chef_staff
from ..core.activity_logger import log_activity
from ..core.cache import invalidate_order_cache
from ..services.order_service import OrderService, TransitionResult
from ..services.order_queue import QueueCoordinator
from .deps import get_order_service, get_queue_coordinator

router = APIRouter(prefix="/orders/kitchen", tags=["Kitchen"])

class AcceptOrder(BaseModel):
    # omitted -> suggested from the cart size
    estimated_minutes: Optional[int] = None


def _finish(result: TransitionResult, action: str, user: dict, service: OrderService,
            request: Request, details: Optional[dict] = None) -> dict:
    if result.applied:
        log_activity(service.repository, user, action, result.order, details, request)
        invalidate_order_cache(result.order.order_id)
    return result.to_dict()


@router.get("/board")
def kitchen_board(
    current_user: dict = Depends(require_chef_staff),
    coordinator: QueueCoordinator = Depends(get_queue_coordinator),
):
    """Queue, preparing and done-today lanes for the kitchen screen"""
    return coordinator.kitchen_board()


@router.post("/{id}/accept")
def accept_order(
    id: str,
    request: Request,
    body: Optional[AcceptOrder] = None,
    current_user: dict = Depends(require_chef_staff),
    service: OrderService = Depends(get_order_service),
):
    estimated_minutes = body.estimated_minutes if body else None
    result = service.accept(id, estimated_minutes)
    return _finish(result, "accept_order", current_user, service, request,
                   {"estimated_minutes": result.order.estimated_minutes})


@router.post("/{id}/advance")
def advance_order(
    id: str,
    request: Request,
    current_user: dict = Depends(require_chef_staff),
    service: OrderService = Depends(get_order_service),
):
    result = service.advance(id)
    return _finish(result, "advance_order", current_user, service, request)


@router.post("/{id}/cancel")
def cancel_order(
    id: str,
    request: Request,
    current_user: dict = Depends(require_chef_staff),
    service: OrderService = Depends(get_order_service),
):
    result = service.cancel(id)
    return _finish(result, "cancel_order", current_user, service, request)


@router.post("/{id}/mark-paid")
def mark_order_paid(
    id: str,
    request: Request,
    current_user: dict = Depends(require_chef_staff),
    service: OrderService = Depends(get_order_service),
):
    result = service.mark_paid(id)
    return _finish(result, "mark_paid", current_user, service, request,
                   {"payment_method": result.order.payment_method.value})
