import asyncio

import pytest
from starlette.websockets import WebSocketDisconnect

from waffle_orders.api import websocket as ws_module
from waffle_orders.api.websocket import ConnectionManager, Subscription, snapshot_for
from waffle_orders.core.notifications import Channel
from waffle_orders.models.order import OrderStatus

from factories import BASE_TIME, build_order, store_order


class FakeWebSocket:
    def __init__(self, broken=False):
        self.sent = []
        self.accepted = False
        self.broken = broken

    async def accept(self):
        self.accepted = True

    async def send_json(self, data):
        if self.broken:
            raise RuntimeError("socket closed")
        self.sent.append(data)


def _reaction_kinds(message):
    return [r["kind"] for r in message["reactions"]]


def test_customer_only_hears_about_own_order():
    manager = ConnectionManager()
    mine, other = FakeWebSocket(), FakeWebSocket()

    async def scenario():
        await manager.connect(mine, Subscription(Channel.CUSTOMER, order_code="SW-1001"),
                              [build_order(status=OrderStatus.PREPARING)], BASE_TIME)
        await manager.connect(other, Subscription(Channel.CUSTOMER, order_code="SW-2002"), [], BASE_TIME)
        await manager.dispatch(build_order(status=OrderStatus.PACKED), BASE_TIME)
        await manager.dispatch(build_order(status=OrderStatus.PACKED), BASE_TIME)

    asyncio.run(scenario())

    assert mine.accepted
    assert [m["event"] for m in mine.sent] == ["snapshot", "order_update", "order_update"]
    assert _reaction_kinds(mine.sent[1]) == ["order_ready", "pickup_ready_alert"]
    assert mine.sent[2]["reactions"] == []
    assert [m["event"] for m in other.sent] == ["snapshot"]


def test_customer_subscribed_by_account():
    sub = Subscription(Channel.CUSTOMER, user_id="user-1")
    assert sub.matches(build_order(user_id="user-1"))
    assert not sub.matches(build_order(user_id="user-2"))
    assert Subscription(Channel.KITCHEN).matches(build_order(user_id="user-2"))


def test_kitchen_gets_new_order_alert():
    manager = ConnectionManager()
    kitchen = FakeWebSocket()

    async def scenario():
        await manager.connect(kitchen, Subscription(Channel.KITCHEN), [], BASE_TIME)
        await manager.dispatch(build_order(), BASE_TIME)

    asyncio.run(scenario())
    assert _reaction_kinds(kitchen.sent[1]) == ["new_order_alert"]


def test_muted_kitchen_gets_no_sound():
    manager = ConnectionManager()
    kitchen = FakeWebSocket()

    async def scenario():
        await manager.connect(kitchen, Subscription(Channel.KITCHEN), [], BASE_TIME)
        manager.set_sound(kitchen, False)
        await manager.dispatch(build_order(), BASE_TIME)

    asyncio.run(scenario())
    assert kitchen.sent[1]["reactions"][0]["sound"] is None


def test_dead_sockets_are_dropped():
    manager = ConnectionManager()
    dead = FakeWebSocket(broken=True)

    async def scenario():
        await manager.connect(dead, Subscription(Channel.ADMIN), [], BASE_TIME)
        await manager.dispatch(build_order(), BASE_TIME)

    asyncio.run(scenario())
    assert manager.active_connections == {}


def test_resync_sends_fresh_snapshot(service, repo):
    manager = ConnectionManager()
    kitchen = FakeWebSocket()
    order = store_order(repo)

    async def scenario():
        await manager.connect(kitchen, Subscription(Channel.KITCHEN), [], BASE_TIME)
        service.accept(order.id, 10)
        await manager.resync_all(service)

    asyncio.run(scenario())

    snapshot = kitchen.sent[-1]
    assert snapshot["event"] == "snapshot"
    assert [o["status"] for o in snapshot["orders"]] == ["preparing"]
    assert snapshot["orders"][0]["countdown"]["remaining_seconds"] == 600


def test_admin_snapshot_includes_finished_orders_from_today(service, repo):
    live = store_order(repo)
    finished = store_order(repo)
    service.cancel(finished.id)

    kitchen = snapshot_for(Subscription(Channel.KITCHEN), service)
    admin = snapshot_for(Subscription(Channel.ADMIN), service)

    assert [o.id for o in kitchen] == [live.id]
    assert {o.id for o in admin} == {live.id, finished.id}


def test_customer_socket_receives_snapshot(client, repo):
    store_order(repo, order_id="SW-7777")

    with client.websocket_connect("/ws/orders?channel=customer&order_id=sw-7777") as ws:
        message = ws.receive_json()

    assert message["event"] == "snapshot"
    assert [o["order_id"] for o in message["orders"]] == ["SW-7777"]


def test_kitchen_socket_needs_token(client):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws/orders?channel=kitchen") as ws:
            ws.receive_json()
    assert exc.value.code == 1008


def test_kitchen_socket_rejects_customers(client, monkeypatch):
    monkeypatch.setattr(ws_module, "resolve_user", lambda token: {"id": "user-1", "role": "customer"})
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws/orders?channel=kitchen&token=abc") as ws:
            ws.receive_json()


def test_kitchen_socket_for_chef(client, repo, monkeypatch):
    store_order(repo)
    monkeypatch.setattr(ws_module, "resolve_user", lambda token: {"id": "chef-1", "role": "chef"})

    with client.websocket_connect("/ws/orders?channel=kitchen&token=abc") as ws:
        message = ws.receive_json()

    assert len(message["orders"]) == 1
    assert message["reactions"] == []
