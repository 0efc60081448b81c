"""Single entry point for every order status change.

All writes are conditional on the status that was read, so two kitchen
tablets racing on one order produce exactly one applied transition; the
loser gets ``applied=False`` and the fresh row to re-render.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from ..config import settings
from ..models.order import Order, OrderItem, OrderStatus, OrderWithItems, PaymentStatus
from ..core.exceptions import OrderNotFound, OrderExpired
from ..core.state_machine import plan_transition, plan_advance, suggest_estimate, TransitionPlan
from ..core.timeutils import utc_now
from .order_repository import OrderRepository
from .change_feed import ChangeFeed

logger = logging.getLogger(__name__)


@dataclass
class TransitionResult:
    order: Order
    applied: bool
    noop: bool = False

    @property
    def lost_race(self) -> bool:
        return not self.applied and not self.noop

    def to_dict(self) -> dict:
        return {
            "applied": self.applied,
            "noop": self.noop,
            "order": self.order.model_dump(mode="json"),
        }


class OrderService:
    def __init__(
        self,
        repository: OrderRepository,
        feed: Optional[ChangeFeed] = None,
        clock: Callable[[], datetime] = utc_now,
        prep_time_options: Optional[Sequence[int]] = None,
    ):
        self.repository = repository
        self.feed = feed
        self.clock = clock
        self.prep_time_options = tuple(prep_time_options or settings.PREP_TIME_OPTIONS)

    # Internals

    def _publish(self, row: dict) -> None:
        if self.feed is not None:
            self.feed.publish(row)

    def _load(self, id: str) -> Order:
        row = self.repository.get_order(id)
        if not row:
            raise OrderNotFound(id)
        return Order.from_row(row)

    def _refetch(self, order: Order) -> Order:
        row = self.repository.get_order(order.id)
        return Order.from_row(row) if row else order

    def _apply(self, order: Order, plan: TransitionPlan) -> TransitionResult:
        if plan.noop:
            return TransitionResult(order=order, applied=False, noop=True)

        row = self.repository.conditional_update(order.id, plan.expected_status.value, plan.changes)
        if row is None:
            fresh = self._refetch(order)
            logger.info(
                f"Order {order.order_id}: {plan.expected_status.value} -> {plan.target.value} "
                f"already handled elsewhere (now {fresh.status.value})"
            )
            return TransitionResult(order=fresh, applied=False)

        updated = Order.from_row(row)
        logger.info(f"Order {updated.order_id}: {plan.expected_status.value} -> {plan.target.value}")
        self._publish(row)
        return TransitionResult(order=updated, applied=True)

    def _expire_if_due(self, order: Order, now: datetime) -> Order:
        """Passive watchdog: expire an overdue pending order on read"""
        if not order.is_overdue(now):
            return order
        result = self._apply(order, plan_transition(order, OrderStatus.EXPIRED, now))
        return result.order

    def _items_for(self, orders: List[Order]) -> dict:
        ids = [o.id for o in orders if o.id]
        grouped = {}
        for row in self.repository.get_items(ids):
            grouped.setdefault(row["order_id"], []).append(OrderItem.model_validate(row))
        return grouped

    # Kitchen actions

    def accept(self, id: str, estimated_minutes: Optional[int] = None) -> TransitionResult:
        """pending -> preparing, stamping accepted_at and the prep estimate"""
        now = self.clock()
        order = self._load(id)

        if order.is_overdue(now) or order.status == OrderStatus.EXPIRED:
            current = self._expire_if_due(order, now)
            if current.status != OrderStatus.EXPIRED:
                # another tablet accepted it before the deadline
                return TransitionResult(order=current, applied=False)
            raise OrderExpired(order.order_id, order=current)

        if estimated_minutes is None and order.status == OrderStatus.PENDING:
            items = self._items_for([order]).get(order.id, [])
            estimated_minutes = suggest_estimate(items, self.prep_time_options)

        plan = plan_transition(order, OrderStatus.PREPARING, now, estimated_minutes, self.prep_time_options)
        result = self._apply(order, plan)
        if result.lost_race and result.order.status == OrderStatus.EXPIRED:
            raise OrderExpired(order.order_id, order=result.order)
        return result

    def advance(self, id: str) -> TransitionResult:
        """Move to the next step of the order's pickup or delivery flow"""
        now = self.clock()
        order = self._expire_if_due(self._load(id), now)
        return self._apply(order, plan_advance(order, now))

    def cancel(self, id: str) -> TransitionResult:
        """Cancel from any non-terminal state; re-cancelling is a no-op"""
        now = self.clock()
        order = self._expire_if_due(self._load(id), now)
        result = self._apply(order, plan_transition(order, OrderStatus.CANCELLED, now))
        if result.lost_race and result.order.status == OrderStatus.CANCELLED:
            return TransitionResult(order=result.order, applied=False, noop=True)
        return result

    def mark_paid(self, id: str) -> TransitionResult:
        """Record cash/UPI collection; independent of the order status"""
        order = self._load(id)
        if order.payment_status == PaymentStatus.PAID:
            return TransitionResult(order=order, applied=False, noop=True)
        row = self.repository.update_fields(order.id, {
            "payment_status": PaymentStatus.PAID.value,
            "updated_at": self.clock().isoformat(),
        })
        if row is None:
            raise OrderNotFound(id)
        logger.info(f"Order {order.order_id}: payment collected")
        self._publish(row)
        return TransitionResult(order=Order.from_row(row), applied=True)

    # Watchdog

    def expire_due(self) -> List[Order]:
        """Sweep every pending order past its deadline into expired"""
        now = self.clock()
        expired = []
        for row in self.repository.list_expired_pending(now):
            order = Order.from_row(row)
            if not order.is_overdue(now):
                continue
            result = self._apply(order, plan_transition(order, OrderStatus.EXPIRED, now))
            if result.applied:
                expired.append(result.order)
        if expired:
            logger.info(f"Expiry sweep expired {len(expired)} order(s): {[o.order_id for o in expired]}")
        return expired

    def expire_overdue(self, orders: List[Order]) -> List[Order]:
        now = self.clock()
        return [self._expire_if_due(o, now) for o in orders]

    # Queries

    def get_order(self, id: str) -> OrderWithItems:
        order = self._expire_if_due(self._load(id), self.clock())
        return OrderWithItems(order=order, items=self._items_for([order]).get(order.id, []))

    def lookup_by_order_id(self, order_id: str) -> Optional[OrderWithItems]:
        """Customer lookup by human code; None when the code is unknown"""
        code = (order_id or "").strip().upper()
        if not code:
            return None
        row = self.repository.get_by_order_id(code)
        if not row:
            return None
        order = self._expire_if_due(Order.from_row(row), self.clock())
        return OrderWithItems(order=order, items=self._items_for([order]).get(order.id, []))

    def list_orders_for_user(self, user_id: str) -> List[OrderWithItems]:
        orders = self.expire_overdue([Order.from_row(r) for r in self.repository.list_for_user(user_id)])
        items = self._items_for(orders)
        return [OrderWithItems(order=o, items=items.get(o.id, [])) for o in orders]

    def with_items(self, orders: List[Order]) -> List[OrderWithItems]:
        items = self._items_for(orders)
        return [OrderWithItems(order=o, items=items.get(o.id, [])) for o in orders]
