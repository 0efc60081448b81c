from functools import lru_cache
from fastapi import Depends

from ..services.order_repository import OrderRepository, SupabaseOrderRepository
from ..services.change_feed import ChangeFeed
from ..services.order_service import OrderService
from ..services.checkout import CheckoutService
from ..services.order_queue import QueueCoordinator

@lru_cache
def get_repository() -> OrderRepository:
    return SupabaseOrderRepository()

@lru_cache
def get_change_feed() -> ChangeFeed:
    return ChangeFeed()

def get_order_service(
    repository: OrderRepository = Depends(get_repository),
    feed: ChangeFeed = Depends(get_change_feed),
) -> OrderService:
    return OrderService(repository, feed)

def get_checkout_service(
    repository: OrderRepository = Depends(get_repository),
    feed: ChangeFeed = Depends(get_change_feed),
) -> CheckoutService:
    return CheckoutService(repository, feed)

def get_queue_coordinator(service: OrderService = Depends(get_order_service)) -> QueueCoordinator:
    return QueueCoordinator(service)

def build_order_service() -> OrderService:
    """Service for code running outside a request (sweeps, feed listener)"""
    return OrderService(get_repository(), get_change_feed())
