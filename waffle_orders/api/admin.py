from fastapi import APIRouter, HTTPException, Depends, Query
from typing import Optional

from ..models.order import OrderStatus, OrderType
from ..core.permissions import require_admin
from ..core.cache import invalidate_order_cache
from ..services.order_service import OrderService
from ..services.order_queue import QueueCoordinator
from .deps import get_order_service, get_queue_coordinator

router = APIRouter(prefix="/admin/orders", tags=["Admin"])

STATUS_FILTERS = {"active", "all"} | {s.value for s in OrderStatus}


@router.get("")
def list_orders(
    status: str = Query("active"),
    order_type: Optional[OrderType] = None,
    limit: int = Query(100, ge=1, le=500),
    current_user: dict = Depends(require_admin),
    coordinator: QueueCoordinator = Depends(get_queue_coordinator),
):
    if status not in STATUS_FILTERS:
        raise HTTPException(status_code=400, detail=f"Unknown status filter: {status}")
    orders = coordinator.admin_orders(status=status, order_type=order_type, limit=limit)
    return {"orders": orders, "count": len(orders)}


@router.get("/stats/today")
def today_stats(
    current_user: dict = Depends(require_admin),
    coordinator: QueueCoordinator = Depends(get_queue_coordinator),
):
    return coordinator.today_stats()


@router.post("/expire-sweep")
def expire_sweep(
    current_user: dict = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    """Run the expiry watchdog now instead of waiting for the next tick"""
    expired = service.expire_due()
    if expired:
        invalidate_order_cache()
    return {"expired": [o.order_id for o in expired], "count": len(expired)}
