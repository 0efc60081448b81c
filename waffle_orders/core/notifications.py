"""Per-observer reaction decisions for order change events.

One ``NotificationBridge`` lives per connected client. It remembers the last
status it saw for every order so that duplicate or reordered deliveries of
the feed, and full re-fetches after a reconnect, never fire a sound twice.
"""
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Dict, List, Optional, Iterable, Set

from ..models.order import Order, OrderStatus, TERMINAL_STATUSES
from .state_machine import stage_of


class Channel(str, Enum):
    KITCHEN = "kitchen"
    ADMIN = "admin"
    CUSTOMER = "customer"


class ReactionKind(str, Enum):
    NEW_ORDER_ALERT = "new_order_alert"
    ORDER_ACCEPTED = "order_accepted"
    ORDER_READY = "order_ready"
    PICKUP_READY_ALERT = "pickup_ready_alert"
    OUT_FOR_DELIVERY = "out_for_delivery"
    ORDER_DELIVERED = "order_delivered"
    ORDER_CANCELLED = "order_cancelled"
    ORDER_EXPIRED = "order_expired"


class Sound(str, Enum):
    NEW_ORDER = "new_order"
    ORDER_ACCEPTED = "order_accepted"
    ORDER_COMPLETE = "order_complete"
    PICKUP_READY = "pickup_ready"


@dataclass(frozen=True)
class Reaction:
    kind: ReactionKind
    order_id: Optional[str]
    message: str
    sound: Optional[Sound] = None
    repeat: bool = False
    flash: bool = False

    def to_dict(self) -> dict:
        data = asdict(self)
        data["kind"] = self.kind.value
        data["sound"] = self.sound.value if self.sound else None
        return data


# Position along the lifecycle; used to drop deliveries older than what we hold
_RANK = {
    OrderStatus.PENDING: 0,
    OrderStatus.PREPARING: 1,
    OrderStatus.PACKED: 2,
    OrderStatus.OUT_FOR_DELIVERY: 3,
    OrderStatus.DELIVERED: 4,
    OrderStatus.CANCELLED: 5,
    OrderStatus.EXPIRED: 5,
}


def status_rank(status: OrderStatus) -> int:
    return _RANK[stage_of(status)]


def _customer_reaction(order: Order) -> Optional[Reaction]:
    status = stage_of(order.status)
    code = order.order_id
    if status == OrderStatus.PREPARING:
        if order.estimated_minutes:
            message = f"Order {code} accepted! Ready in about {order.estimated_minutes} minutes"
        else:
            message = f"Order {code} accepted and being prepared"
        return Reaction(ReactionKind.ORDER_ACCEPTED, code, message)
    if status == OrderStatus.PACKED:
        message = f"Order {code} is ready for pickup" if order.is_pickup else f"Order {code} is packed"
        return Reaction(ReactionKind.ORDER_READY, code, message, sound=Sound.ORDER_COMPLETE)
    if status == OrderStatus.OUT_FOR_DELIVERY:
        return Reaction(ReactionKind.OUT_FOR_DELIVERY, code, f"Order {code} is on the way")
    if status == OrderStatus.DELIVERED:
        message = "Enjoy your food!" if order.is_pickup else f"Order {code} delivered"
        return Reaction(ReactionKind.ORDER_DELIVERED, code, message)
    if status == OrderStatus.CANCELLED:
        return Reaction(ReactionKind.ORDER_CANCELLED, code, f"Order {code} was cancelled")
    if status == OrderStatus.EXPIRED:
        return Reaction(ReactionKind.ORDER_EXPIRED, code, f"Order {code} could not be confirmed in time")
    return None


class NotificationBridge:
    def __init__(self, channel: Channel, sound_enabled: bool = True):
        self.channel = Channel(channel)
        self.sound_enabled = sound_enabled
        self._known: Dict[str, OrderStatus] = {}
        self._pickup_alerted: Set[str] = set()
        self._pending_count = 0
        self._primed = False

    @staticmethod
    def _key(order: Order) -> str:
        return order.id or order.order_id

    def _count_pending(self) -> int:
        return sum(1 for status in self._known.values() if status == OrderStatus.PENDING)

    def _with_sound(self, reaction: Reaction) -> Reaction:
        if self.sound_enabled or reaction.sound is None:
            return reaction
        return Reaction(reaction.kind, reaction.order_id, reaction.message,
                        sound=None, repeat=reaction.repeat, flash=reaction.flash)

    def _pending_alert(self) -> List[Reaction]:
        count = self._count_pending()
        increased = self._primed and count > self._pending_count
        self._pending_count = count
        if self.channel != Channel.KITCHEN or not increased:
            return []
        noun = "order" if count == 1 else "orders"
        return [Reaction(ReactionKind.NEW_ORDER_ALERT, None, f"{count} {noun} waiting",
                         sound=Sound.NEW_ORDER, flash=True)]

    def _pickup_alert(self, order: Order) -> List[Reaction]:
        if self.channel != Channel.CUSTOMER:
            return []
        if not order.is_pickup or stage_of(order.status) != OrderStatus.PACKED:
            return []
        key = self._key(order)
        if key in self._pickup_alerted:
            return []
        self._pickup_alerted.add(key)
        return [Reaction(ReactionKind.PICKUP_READY_ALERT, order.order_id,
                         f"Head to the counter to pick up order {order.order_id}",
                         sound=Sound.PICKUP_READY, repeat=True)]

    def resync(self, orders: Iterable[Order]) -> List[Reaction]:
        """Replace remembered state with a full snapshot.

        Used for the first load and after every reconnect. Only the kitchen
        pending-count alert and the one-shot pickup alert may fire here.
        """
        orders = list(orders)
        self._known = {self._key(o): OrderStatus(o.status) for o in orders}
        reactions: List[Reaction] = []
        reactions.extend(self._pending_alert())
        for order in orders:
            reactions.extend(self._pickup_alert(order))
        self._primed = True
        return [self._with_sound(r) for r in reactions]

    def handle(self, order: Order) -> List[Reaction]:
        """React to one change event carrying the full new row"""
        key = self._key(order)
        status = OrderStatus(order.status)
        previous = self._known.get(key)

        if previous is not None:
            if previous in TERMINAL_STATUSES and status != previous:
                return []
            if status_rank(status) < status_rank(previous):
                return []

        self._known[key] = status
        reactions: List[Reaction] = []

        if self.channel == Channel.KITCHEN:
            reactions.extend(self._pending_alert())
            if previous is not None and stage_of(previous) == OrderStatus.PENDING and stage_of(status) == OrderStatus.PREPARING:
                reactions.append(Reaction(ReactionKind.ORDER_ACCEPTED, order.order_id,
                                          f"Order {order.order_id} accepted", sound=Sound.ORDER_ACCEPTED))
            if previous is not None and stage_of(previous) != stage_of(status) and stage_of(status) == OrderStatus.PACKED:
                reactions.append(Reaction(ReactionKind.ORDER_READY, order.order_id,
                                          f"Order {order.order_id} ready", sound=Sound.ORDER_COMPLETE))
        elif self.channel == Channel.CUSTOMER:
            if previous is not None and stage_of(previous) != stage_of(status):
                reaction = _customer_reaction(order)
                if reaction is not None:
                    reactions.append(reaction)
            reactions.extend(self._pickup_alert(order))
        else:
            self._pending_count = self._count_pending()

        self._primed = True
        return [self._with_sound(r) for r in reactions]
