from datetime import timedelta

from waffle_orders.core.exceptions import StoreUnavailable
from waffle_orders.core.rate_limiter import checkout_limiter

from factories import cart, store_order


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "redis": True}


def test_quote(client):
    payload = cart(("classic", 2, {"size": ["large"]}), coupon_code="FLAT50")
    response = client.post("/orders/quote", json=payload)
    assert response.status_code == 200
    body = response.json()
    assert float(body["subtotal"]) == 320
    assert float(body["total"]) == 270


def test_place_and_track_order(client, repo):
    response = client.post("/orders", json=cart(customer_email="asha@sweetwaffle.in"))
    assert response.status_code == 201
    code = response.json()["order_id"]
    assert repo.get_by_order_id(code)["user_id"] == "user-1"

    tracked = client.get(f"/orders/track/{code.lower()}")
    assert tracked.status_code == 200
    body = tracked.json()
    assert body["order"]["order_id"] == code
    assert body["queue_ahead"] == 0
    assert body["display_status"] == "Pending"
    assert body["message"].endswith("You're next in line!")


def test_checkout_validation_is_422(client, repo):
    response = client.post("/orders", json=cart(order_type="delivery"))
    assert response.status_code == 422
    assert response.json()["field"] == "address"
    assert repo.orders == {}


def test_checkout_rate_limited(client, monkeypatch):
    monkeypatch.setattr(checkout_limiter, "requests", 2)
    statuses = [client.post("/orders", json=cart()).status_code for _ in range(3)]
    assert statuses == [201, 201, 429]


def test_track_unknown_order(client):
    response = client.get("/orders/track/SW-0000")
    assert response.status_code == 404
    assert "check your order ID" in response.json()["detail"]


def test_my_orders(client, repo):
    store_order(repo, user_id="user-1")
    store_order(repo, user_id="user-2")
    response = client.get("/orders/mine")
    assert response.status_code == 200
    assert len(response.json()) == 1


def test_customers_cannot_use_kitchen(client, repo):
    order = store_order(repo)
    response = client.post(f"/orders/kitchen/{order.id}/accept", json={"estimated_minutes": 10})
    assert response.status_code == 403


def test_kitchen_accept_and_conflict(client, repo, current_user):
    current_user["role"] = "chef"
    order = store_order(repo)

    first = client.post(f"/orders/kitchen/{order.id}/accept", json={"estimated_minutes": 10})
    assert first.status_code == 200
    assert first.json()["applied"] is True
    assert first.json()["order"]["status"] == "preparing"
    assert repo.activity[0]["action"] == "accept_order"

    second = client.post(f"/orders/kitchen/{order.id}/accept", json={"estimated_minutes": 10})
    assert second.status_code == 409
    assert second.json()["current"] == "preparing"
    assert second.json()["order"]["estimated_minutes"] == 10


def test_kitchen_accept_uses_suggestion_without_body(client, repo, current_user):
    current_user["role"] = "chef"
    order = store_order(repo, quantity=5)
    response = client.post(f"/orders/kitchen/{order.id}/accept")
    assert response.status_code == 200
    assert response.json()["order"]["estimated_minutes"] == 15


def test_kitchen_bad_estimate(client, repo, current_user):
    current_user["role"] = "chef"
    order = store_order(repo)
    response = client.post(f"/orders/kitchen/{order.id}/accept", json={"estimated_minutes": 7})
    assert response.status_code == 422
    assert response.json()["allowed"] == [5, 10, 15, 20, 25, 30, 45, 60]


def test_kitchen_accept_expired(client, repo, clock, current_user):
    current_user["role"] = "chef"
    order = store_order(repo)
    clock.advance(minutes=11)
    response = client.post(f"/orders/kitchen/{order.id}/accept", json={"estimated_minutes": 10})
    assert response.status_code == 410
    assert response.json()["order"]["status"] == "expired"


def test_kitchen_unknown_order(client, current_user):
    current_user["role"] = "chef"
    response = client.post("/orders/kitchen/missing/advance")
    assert response.status_code == 404


def test_kitchen_full_pickup_flow(client, repo, current_user):
    current_user["role"] = "chef"
    order = store_order(repo)
    client.post(f"/orders/kitchen/{order.id}/accept", json={"estimated_minutes": 5})
    assert client.post(f"/orders/kitchen/{order.id}/advance").json()["order"]["status"] == "packed"
    assert client.post(f"/orders/kitchen/{order.id}/mark-paid").json()["order"]["payment_status"] == "paid"
    assert client.post(f"/orders/kitchen/{order.id}/advance").json()["order"]["status"] == "delivered"


def test_cancel_twice_is_noop(client, repo, feed, current_user):
    current_user["role"] = "chef"
    order = store_order(repo)
    first = client.post(f"/orders/kitchen/{order.id}/cancel")
    second = client.post(f"/orders/kitchen/{order.id}/cancel")
    assert first.json()["applied"] is True
    assert second.status_code == 200
    assert second.json()["noop"] is True
    assert feed.statuses == ["cancelled"]
    assert len(repo.activity) == 1


def test_kitchen_board(client, repo, current_user):
    current_user["role"] = "admin"
    store_order(repo)
    response = client.get("/orders/kitchen/board")
    assert response.status_code == 200
    assert response.json()["counts"]["queue"] == 1


def test_store_outage_is_503(client, repo, monkeypatch, current_user):
    current_user["role"] = "chef"
    order = store_order(repo)

    def unavailable(id):
        raise StoreUnavailable("get order")

    monkeypatch.setattr(repo, "get_order", unavailable)
    response = client.post(f"/orders/kitchen/{order.id}/advance")
    assert response.status_code == 503
    assert response.json()["retryable"] is True


def test_admin_only_routes(client, repo, current_user):
    current_user["role"] = "chef"
    assert client.get("/admin/orders").status_code == 403

    current_user["role"] = "admin"
    store_order(repo)
    response = client.get("/admin/orders", params={"status": "all"})
    assert response.status_code == 200
    assert response.json()["count"] == 1
    assert client.get("/admin/orders", params={"status": "bogus"}).status_code == 400


def test_admin_stats_and_sweep(client, repo, clock, current_user):
    current_user["role"] = "admin"
    store_order(repo, total=150)
    assert client.get("/admin/orders/stats/today").json()["revenue"] == 150.0

    clock.advance(minutes=10, seconds=1)
    swept = client.post("/admin/orders/expire-sweep").json()
    assert swept["count"] == 1
    assert client.get("/admin/orders/stats/today").json()["expired"] == 1
