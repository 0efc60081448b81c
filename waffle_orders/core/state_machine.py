"""Order lifecycle rules.

Pure functions only: callers read the current order, ask for a plan, and
write ``plan.changes`` with a conditional update on ``plan.expected_status``.
Nothing here touches the store or the clock.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any, Optional, Iterable, Sequence, FrozenSet, Tuple

from ..models.order import Order, OrderItem, OrderStatus, OrderType, TERMINAL_STATUSES
from .exceptions import InvalidTransition, OrderExpired, InvalidEstimate

PICKUP_FLOW: Tuple[OrderStatus, ...] = (
    OrderStatus.PENDING,
    OrderStatus.PREPARING,
    OrderStatus.PACKED,
    OrderStatus.DELIVERED,
)

DELIVERY_FLOW: Tuple[OrderStatus, ...] = (
    OrderStatus.PENDING,
    OrderStatus.PREPARING,
    OrderStatus.PACKED,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
)

# Rows written as "confirmed" by older dashboards sit at the preparing step
STAGE_ALIASES = {OrderStatus.CONFIRMED: OrderStatus.PREPARING}

DEFAULT_PREP_TIME_OPTIONS = (5, 10, 15, 20, 25, 30, 45, 60)


@dataclass(frozen=True)
class TransitionPlan:
    expected_status: OrderStatus
    target: OrderStatus
    changes: Dict[str, Any] = field(default_factory=dict)
    noop: bool = False


def flow_for(order_type: OrderType) -> Tuple[OrderStatus, ...]:
    return PICKUP_FLOW if OrderType(order_type) == OrderType.PICKUP else DELIVERY_FLOW


def stage_of(status: OrderStatus) -> OrderStatus:
    status = OrderStatus(status)
    return STAGE_ALIASES.get(status, status)


def is_terminal(status: OrderStatus) -> bool:
    return OrderStatus(status) in TERMINAL_STATUSES


def next_status(status: OrderStatus, order_type: OrderType) -> Optional[OrderStatus]:
    """Next step in the type-specific flow, or None at the end / off-flow"""
    flow = flow_for(order_type)
    stage = stage_of(status)
    if stage not in flow:
        return None
    idx = flow.index(stage)
    if idx >= len(flow) - 1:
        return None
    return flow[idx + 1]


def legal_targets(status: OrderStatus, order_type: OrderType) -> FrozenSet[OrderStatus]:
    status = OrderStatus(status)
    if is_terminal(status):
        return frozenset()
    if status == OrderStatus.PENDING:
        return frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED, OrderStatus.EXPIRED})
    targets = {OrderStatus.CANCELLED}
    following = next_status(status, order_type)
    if following is not None:
        targets.add(following)
    return frozenset(targets)


def validate_estimate(estimated_minutes: Any, options: Sequence[int] = DEFAULT_PREP_TIME_OPTIONS) -> int:
    if isinstance(estimated_minutes, bool) or not isinstance(estimated_minutes, int):
        raise InvalidEstimate(estimated_minutes, options)
    if estimated_minutes not in options:
        raise InvalidEstimate(estimated_minutes, options)
    return estimated_minutes


def suggest_estimate(items: Iterable[OrderItem], options: Sequence[int] = DEFAULT_PREP_TIME_OPTIONS) -> int:
    """Default prep time for the accept button: 2.5 min per unit, at least 5"""
    total_quantity = sum(item.quantity for item in items)
    wanted = max(5, math.ceil(total_quantity * 2.5))
    ordered = sorted(options)
    for minutes in ordered:
        if minutes >= wanted:
            return minutes
    return ordered[-1]


def plan_transition(
    order: Order,
    target: OrderStatus,
    now: datetime,
    estimated_minutes: Optional[int] = None,
    prep_time_options: Sequence[int] = DEFAULT_PREP_TIME_OPTIONS,
) -> TransitionPlan:
    """Decide whether ``order`` may move to ``target`` and which fields change.

    Raises InvalidTransition for moves off the graph, OrderExpired when an
    accept arrives after the deadline, and InvalidEstimate for a malformed
    prep time. Re-cancelling a cancelled order yields a no-op plan.
    """
    target = OrderStatus(target)
    current = OrderStatus(order.status)

    if target == OrderStatus.CANCELLED and current == OrderStatus.CANCELLED:
        return TransitionPlan(expected_status=current, target=target, noop=True)

    if target == OrderStatus.PREPARING:
        if current == OrderStatus.EXPIRED or order.is_overdue(now):
            raise OrderExpired(order.order_id, order=order)

    if target not in legal_targets(current, order.order_type):
        raise InvalidTransition(current.value, target.value, order.order_type.value, order=order)

    if target == OrderStatus.EXPIRED and not order.is_overdue(now):
        raise InvalidTransition(
            current.value, target.value, order.order_type.value,
            reason="confirmation deadline has not passed", order=order,
        )

    stamp = now.isoformat()
    changes: Dict[str, Any] = {"status": target.value, "updated_at": stamp}

    if target == OrderStatus.PREPARING:
        if estimated_minutes is None:
            raise InvalidEstimate(estimated_minutes, prep_time_options)
        changes["estimated_minutes"] = validate_estimate(estimated_minutes, prep_time_options)
        changes["confirmed_at"] = stamp
        changes["accepted_at"] = stamp
        changes["queue_position"] = None
    elif target == OrderStatus.PACKED:
        changes["completed_at"] = stamp

    return TransitionPlan(expected_status=current, target=target, changes=changes)


def plan_advance(
    order: Order,
    now: datetime,
) -> TransitionPlan:
    """Plan the move to the next step of the order's flow"""
    current = OrderStatus(order.status)
    if current == OrderStatus.PENDING:
        raise InvalidTransition(
            current.value, OrderStatus.PREPARING.value, order.order_type.value,
            reason="pending orders must be accepted with an estimate", order=order,
        )
    following = next_status(current, order.order_type)
    if following is None or is_terminal(current):
        raise InvalidTransition(
            current.value, "next", order.order_type.value,
            reason="no further step in this flow", order=order,
        )
    return plan_transition(order, following, now)
