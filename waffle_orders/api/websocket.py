import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query, HTTPException, Depends
from fastapi.concurrency import run_in_threadpool

from ..models.order import Order
from ..models.user import UserRole
from ..core.countdown import countdown_for
from ..core.exceptions import OrderError
from ..core.notifications import Channel, NotificationBridge, Reaction
from ..core.permissions import resolve_user
from ..core.timeutils import local_midnight
from ..services.order_service import OrderService
from ..services.order_queue import ACTIVE_STATUSES
from .deps import build_order_service, get_change_feed, get_order_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ws", tags=["WebSocket"])

CHANNEL_PERMISSIONS = {
    Channel.KITCHEN: [UserRole.CHEF.value, UserRole.ADMIN.value],
    Channel.ADMIN: [UserRole.ADMIN.value],
}


@dataclass
class Subscription:
    channel: Channel
    user_id: Optional[str] = None
    order_code: Optional[str] = None

    def matches(self, order: Order) -> bool:
        if self.channel != Channel.CUSTOMER:
            return True
        if self.order_code:
            return order.order_id == self.order_code
        return self.user_id is not None and order.user_id == self.user_id


def snapshot_for(subscription: Subscription, service: OrderService) -> List[Order]:
    """Full state a client starts from, and returns to after a reconnect"""
    repository = service.repository
    if subscription.channel == Channel.CUSTOMER:
        if subscription.order_code:
            found = service.lookup_by_order_id(subscription.order_code)
            return [found.order] if found else []
        rows = repository.list_for_user(subscription.user_id) if subscription.user_id else []
        return service.expire_overdue([Order.from_row(r) for r in rows])

    rows = repository.list_by_status(ACTIVE_STATUSES)
    if subscription.channel == Channel.ADMIN:
        seen = {row["id"] for row in rows}
        since = local_midnight(service.clock())
        rows += [row for row in repository.list_placed_since(since) if row["id"] not in seen]
    return service.expire_overdue([Order.from_row(r) for r in rows])


def _order_payload(order: Order, now: datetime) -> Dict[str, Any]:
    countdown = countdown_for(order, now)
    return dict(order.model_dump(mode="json"), countdown=countdown.to_dict() if countdown else None)


class ConnectionManager:
    def __init__(self):
        self.active_connections: Dict[WebSocket, Tuple[Subscription, NotificationBridge]] = {}

    async def connect(self, websocket: WebSocket, subscription: Subscription, snapshot: List[Order],
                      now: datetime):
        await websocket.accept()
        bridge = NotificationBridge(subscription.channel)
        self.active_connections[websocket] = (subscription, bridge)
        await self._send_snapshot(websocket, bridge, snapshot, now)

    def disconnect(self, websocket: WebSocket):
        self.active_connections.pop(websocket, None)

    def set_sound(self, websocket: WebSocket, enabled: bool):
        entry = self.active_connections.get(websocket)
        if entry:
            entry[1].sound_enabled = enabled

    async def _send(self, websocket: WebSocket, message: dict) -> bool:
        try:
            await websocket.send_json(message)
            return True
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.debug(f"Dropping dead websocket: {e}")
            self.disconnect(websocket)
            return False

    async def _send_snapshot(self, websocket: WebSocket, bridge: NotificationBridge,
                             orders: List[Order], now: datetime):
        reactions = bridge.resync(orders)
        await self._send(websocket, {
            "event": "snapshot",
            "orders": [_order_payload(o, now) for o in orders],
            "reactions": [r.to_dict() for r in reactions],
            "timestamp": now.isoformat(),
        })

    async def dispatch(self, order: Order, now: datetime):
        """Fan one change event out to every subscriber in scope"""
        for websocket, (subscription, bridge) in list(self.active_connections.items()):
            if not subscription.matches(order):
                continue
            reactions: List[Reaction] = bridge.handle(order)
            await self._send(websocket, {
                "event": "order_update",
                "order": _order_payload(order, now),
                "reactions": [r.to_dict() for r in reactions],
                "timestamp": now.isoformat(),
            })

    async def resync_all(self, service: OrderService):
        """Re-fetch full state for every client; run after the feed reconnects"""
        now = service.clock()
        for websocket, (subscription, bridge) in list(self.active_connections.items()):
            try:
                orders = await run_in_threadpool(snapshot_for, subscription, service)
            except OrderError as e:
                logger.warning(f"Resync skipped for {subscription.channel.value} client: {e}")
                continue
            await self._send_snapshot(websocket, bridge, orders, now)

manager = ConnectionManager()


def _authorize(channel: Channel, token: Optional[str], order_id: Optional[str]) -> Subscription:
    if channel == Channel.CUSTOMER:
        if order_id:
            return Subscription(channel, order_code=order_id.strip().upper())
        if not token:
            raise PermissionError("Token or order_id required")
        return Subscription(channel, user_id=resolve_user(token)["id"])

    if not token:
        raise PermissionError("Token required")
    user = resolve_user(token)
    if user.get("role") not in CHANNEL_PERMISSIONS[channel]:
        raise PermissionError("Unauthorized channel")
    return Subscription(channel, user_id=user["id"])


@router.websocket("/orders")
async def websocket_endpoint(
    websocket: WebSocket,
    channel: str = Query(...),
    token: str = Query(None),
    order_id: str = Query(None),
    service: OrderService = Depends(get_order_service),
):
    """Live order updates for the kitchen, admin and customer screens"""
    try:
        subscription = await run_in_threadpool(_authorize, Channel(channel), token, order_id)
    except ValueError:
        await websocket.close(code=1008, reason="Unknown channel")
        return
    except (PermissionError, HTTPException) as e:
        reason = str(e) if isinstance(e, PermissionError) else "Authentication failed"
        await websocket.close(code=1008, reason=reason)
        return

    try:
        snapshot = await run_in_threadpool(snapshot_for, subscription, service)
    except OrderError as e:
        logger.error(f"Websocket snapshot failed: {e}")
        await websocket.close(code=1011, reason="Order store unavailable")
        return

    await manager.connect(websocket, subscription, snapshot, service.clock())
    try:
        while True:
            text = await websocket.receive_text()
            try:
                message = json.loads(text)
            except ValueError:
                continue
            # {"sound": false} mutes alerts for this screen only
            if isinstance(message, dict) and "sound" in message:
                manager.set_sound(websocket, bool(message["sound"]))
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket)


async def run_feed_listener():
    """Bridge the Redis change feed into connected websockets"""
    service = build_order_service()

    async def handle_row(row: dict):
        try:
            order = Order.from_row(row)
        except ValueError as e:
            logger.warning(f"Ignoring unparseable order change: {e}")
            return
        await manager.dispatch(order, service.clock())

    async def resync():
        await manager.resync_all(service)

    try:
        await get_change_feed().listen(handle_row, on_reconnect=resync)
    except asyncio.CancelledError:
        logger.info("Order feed listener stopped")
        raise
