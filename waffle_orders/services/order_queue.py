"""Kitchen and admin views over the working set of orders."""
import math
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, Any, List, Optional, Iterable

from ..models.order import Order, OrderStatus, OrderType, OrderWithItems, TERMINAL_STATUSES
from ..core.cache import CacheKeys
from ..core.countdown import countdown_for
from ..core.state_machine import suggest_estimate, next_status
from ..core.timeline import status_label
from ..core.timeutils import utc_now, local_midnight
from .order_service import OrderService
from .redis import redis_client

QUEUE_STATUSES = (OrderStatus.PENDING,)
PREPARING_STATUSES = (OrderStatus.PREPARING, OrderStatus.CONFIRMED)
DONE_STATUSES = (OrderStatus.PACKED, OrderStatus.DELIVERED)
ACTIVE_STATUSES = [s.value for s in OrderStatus if s not in TERMINAL_STATUSES]


def _fifo(orders: Iterable[Order]) -> List[Order]:
    return sorted(orders, key=lambda o: o.placed_at)


class QueueCoordinator:
    def __init__(self, service: OrderService, clock: Callable[[], datetime] = None):
        self.service = service
        self.repository = service.repository
        self.clock = clock or service.clock

    def position_ahead(self, order: Order) -> Optional[int]:
        """Live count of pending orders ahead; None once the order left the queue"""
        if order.status != OrderStatus.PENDING:
            return None
        return self.repository.count_pending_before(order.placed_at, exclude_id=order.id)

    def _card(self, entry: OrderWithItems, now: datetime, position: Optional[int] = None) -> Dict[str, Any]:
        order = entry.order
        countdown = countdown_for(order, now)
        following = next_status(order.status, order.order_type)
        card = {
            "order": order.model_dump(mode="json"),
            "items": [item.model_dump(mode="json") for item in entry.items],
            "total_quantity": sum(item.quantity for item in entry.items),
            "display_status": status_label(order.status, order.order_type),
            "next_status": following.value if following and order.status != OrderStatus.PENDING else None,
            "awaits_payment": order.awaits_payment,
            "countdown": countdown.to_dict() if countdown else None,
        }
        if order.status == OrderStatus.PENDING:
            card["expires_in_seconds"] = max(0, math.floor((order.expires_at - now).total_seconds()))
        if position is not None:
            card["position"] = position
            card["suggested_estimate"] = suggest_estimate(entry.items, self.service.prep_time_options)
        return card

    def kitchen_board(self) -> Dict[str, Any]:
        """Queue / preparing / done-today lanes, each FIFO by placed_at"""
        now = self.clock()
        midnight = local_midnight(now)

        rows = self.repository.list_by_status([s.value for s in QUEUE_STATUSES + PREPARING_STATUSES + (OrderStatus.PACKED,)])
        seen = {row["id"] for row in rows}
        rows += [row for row in self.repository.list_placed_since(midnight)
                 if row["id"] not in seen and row["status"] == OrderStatus.DELIVERED.value]

        orders = self.service.expire_overdue([Order.from_row(r) for r in rows])
        entries = {e.order.id: e for e in self.service.with_items(orders)}

        queue = _fifo(o for o in orders if o.status in QUEUE_STATUSES)
        preparing = _fifo(o for o in orders if o.status in PREPARING_STATUSES)
        done = [o for o in orders if o.status in DONE_STATUSES]
        done_today = _fifo(o for o in done if o.placed_at >= midnight)

        return {
            "queue": [self._card(entries[o.id], now, position=idx + 1) for idx, o in enumerate(queue)],
            "preparing": [self._card(entries[o.id], now) for o in preparing],
            "done_today": [self._card(entries[o.id], now) for o in done_today],
            "counts": {
                "queue": len(queue),
                "making": len(preparing),
                "ready": len([o for o in done if o.status == OrderStatus.PACKED]),
                "done": len([o for o in done_today if o.status == OrderStatus.DELIVERED]),
            },
            "prep_time_options": list(self.service.prep_time_options),
            "generated_at": now.isoformat(),
        }

    def admin_orders(self, status: str = "active", order_type: Optional[OrderType] = None,
                     limit: int = 100) -> List[Dict[str, Any]]:
        if status == "all":
            statuses = None
        elif status == "active":
            statuses = ACTIVE_STATUSES
        else:
            statuses = [OrderStatus(status).value]

        rows = self.repository.list_recent(
            limit=limit, statuses=statuses, order_type=order_type.value if order_type else None
        )
        orders = self.service.expire_overdue([Order.from_row(r) for r in rows])
        now = self.clock()
        return [self._card(entry, now) for entry in self.service.with_items(orders)]

    def today_stats(self, use_cache: bool = True) -> Dict[str, Any]:
        now = self.clock()
        midnight = local_midnight(now)
        cache_key = CacheKeys.ADMIN_STATS.format(day=midnight.date().isoformat())
        if use_cache:
            cached = redis_client.get(cache_key)
            if cached:
                return cached

        orders = [Order.from_row(r) for r in self.repository.list_placed_since(midnight)]
        counted = [o for o in orders if o.status not in (OrderStatus.CANCELLED, OrderStatus.EXPIRED)]
        revenue = sum((o.total for o in counted), Decimal("0"))

        stats = {
            "total_orders": len(orders),
            "pending": len([o for o in orders if o.status == OrderStatus.PENDING]),
            "confirmed": len([o for o in counted if o.status != OrderStatus.PENDING]),
            "cancelled": len([o for o in orders if o.status == OrderStatus.CANCELLED]),
            "expired": len([o for o in orders if o.status == OrderStatus.EXPIRED]),
            "revenue": float(revenue),
            "unpaid_cod": len([o for o in counted if o.awaits_payment]),
            "pickup_orders": len([o for o in orders if o.order_type == OrderType.PICKUP]),
            "delivery_orders": len([o for o in orders if o.order_type == OrderType.DELIVERY]),
            "timestamp": now.isoformat(),
        }

        # Cache for 30 seconds
        redis_client.set(cache_key, stats, 30)
        return stats
