"""Prep countdown shared by the kitchen card and the customer tracking page.

Every observer derives the same numbers from two persisted fields and its
own clock reading; nothing is pushed per tick.
"""
import math
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

from ..models.order import Order, OrderStatus

ALMOST_READY_MESSAGE = "Almost ready"


@dataclass(frozen=True)
class Countdown:
    ready_at: datetime
    remaining_seconds: int
    progress: float
    label: str

    @property
    def is_due(self) -> bool:
        return self.remaining_seconds == 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["ready_at"] = self.ready_at.isoformat()
        data["is_due"] = self.is_due
        return data


def derive_countdown(anchor: datetime, estimated_minutes: int, now: datetime) -> Countdown:
    ready_at = anchor + timedelta(minutes=estimated_minutes)
    remaining = max(0, math.floor((ready_at - now).total_seconds()))
    total = estimated_minutes * 60
    progress = 1.0 if total <= 0 else 1 - remaining / total
    progress = min(1.0, max(0.0, progress))

    if remaining == 0:
        label = ALMOST_READY_MESSAGE
    else:
        mins, secs = divmod(remaining, 60)
        label = f"{mins:02d}:{secs:02d}"

    return Countdown(ready_at=ready_at, remaining_seconds=remaining, progress=progress, label=label)


def countdown_for(order: Order, now: datetime) -> Optional[Countdown]:
    """Countdown for an order at the preparing step, else None"""
    if order.status not in (OrderStatus.PREPARING, OrderStatus.CONFIRMED):
        return None
    anchor = order.accepted_at or order.confirmed_at
    if anchor is None or not order.estimated_minutes:
        return None
    return derive_countdown(anchor, order.estimated_minutes, now)
