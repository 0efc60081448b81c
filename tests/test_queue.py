from datetime import timedelta

from waffle_orders.core.cache import invalidate_order_cache
from waffle_orders.models.order import OrderStatus, OrderType

from factories import store_order


def test_position_ahead_updates_as_queue_moves(service, coordinator, repo, clock):
    first = store_order(repo)
    store_order(repo, placed_at=clock.now + timedelta(minutes=1))
    mine = store_order(repo, placed_at=clock.now + timedelta(minutes=2))

    assert coordinator.position_ahead(mine) == 2
    service.accept(first.id, 10)
    assert coordinator.position_ahead(mine) == 1


def test_position_ahead_is_none_after_accept(service, coordinator, repo):
    order = store_order(repo)
    accepted = service.accept(order.id, 10).order
    assert coordinator.position_ahead(accepted) is None


def test_kitchen_board_lanes(service, coordinator, repo, clock):
    cooking = store_order(repo)
    waiting_late = store_order(repo, placed_at=clock.now + timedelta(minutes=2))
    waiting_early = store_order(repo, placed_at=clock.now + timedelta(minutes=1), quantity=3)
    served = store_order(repo)
    legacy = store_order(repo, status=OrderStatus.CONFIRMED, confirmed_at=clock.now, estimated_minutes=15)
    cancelled = store_order(repo, status=OrderStatus.CANCELLED)

    service.accept(cooking.id, 10)
    service.accept(served.id, 5)
    service.advance(served.id)
    service.advance(served.id)
    clock.advance(minutes=3)

    board = coordinator.kitchen_board()

    assert [c["order"]["id"] for c in board["queue"]] == [waiting_early.id, waiting_late.id]
    assert [c["position"] for c in board["queue"]] == [1, 2]
    assert board["queue"][0]["suggested_estimate"] == 10
    assert {c["order"]["id"] for c in board["preparing"]} == {cooking.id, legacy.id}
    assert [c["order"]["id"] for c in board["done_today"]] == [served.id]
    assert board["counts"] == {"queue": 2, "making": 2, "ready": 0, "done": 1}
    assert cancelled.id not in {c["order"]["id"] for lane in ("queue", "preparing", "done_today") for c in board[lane]}

    cooking_card = next(c for c in board["preparing"] if c["order"]["id"] == cooking.id)
    assert cooking_card["countdown"]["remaining_seconds"] == 7 * 60
    assert cooking_card["next_status"] == "packed"


def test_kitchen_board_drops_overdue_orders(coordinator, repo, clock):
    store_order(repo)
    clock.advance(minutes=12)
    board = coordinator.kitchen_board()
    assert board["queue"] == []
    assert board["counts"]["queue"] == 0


def test_admin_filters(service, coordinator, repo):
    pickup = store_order(repo)
    delivery = store_order(repo, order_type=OrderType.DELIVERY, address="12 MG Road", pincode="560001")
    gone = store_order(repo)
    service.cancel(gone.id)

    active = {c["order"]["id"] for c in coordinator.admin_orders()}
    assert active == {pickup.id, delivery.id}

    everything = coordinator.admin_orders(status="all")
    assert len(everything) == 3

    cancelled = coordinator.admin_orders(status="cancelled")
    assert [c["order"]["id"] for c in cancelled] == [gone.id]

    deliveries = coordinator.admin_orders(status="all", order_type=OrderType.DELIVERY)
    assert [c["order"]["id"] for c in deliveries] == [delivery.id]


def test_today_stats(service, coordinator, repo):
    paid = store_order(repo, total=300)
    store_order(repo, total=200)
    gone = store_order(repo, total=999)
    service.accept(paid.id, 10)
    service.mark_paid(paid.id)
    service.cancel(gone.id)

    stats = coordinator.today_stats()

    assert stats["total_orders"] == 3
    assert stats["pending"] == 1
    assert stats["confirmed"] == 1
    assert stats["cancelled"] == 1
    assert stats["revenue"] == 500.0
    assert stats["unpaid_cod"] == 1
    assert stats["pickup_orders"] == 3


def test_today_stats_cached_until_invalidated(service, coordinator, repo):
    store_order(repo)
    assert coordinator.today_stats()["total_orders"] == 1

    store_order(repo)
    assert coordinator.today_stats()["total_orders"] == 1

    invalidate_order_cache()
    assert coordinator.today_stats()["total_orders"] == 2


def test_admin_cards_count_down_to_expiry(service, coordinator, repo, clock):
    waiting = store_order(repo)
    cooking = store_order(repo)
    service.accept(cooking.id, 10)
    clock.advance(minutes=3, seconds=30)

    cards = {c["order"]["id"]: c for c in coordinator.admin_orders()}

    assert cards[waiting.id]["expires_in_seconds"] == 390
    assert "expires_in_seconds" not in cards[cooking.id]
