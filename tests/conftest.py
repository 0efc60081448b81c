import os

os.environ.setdefault("BACKGROUND_JOBS_ENABLED", "false")
os.environ.setdefault("STORE_RETRY_BACKOFF_SECONDS", "0")

import fakeredis
import pytest
from fastapi.testclient import TestClient

from waffle_orders.main import app
from waffle_orders.api import deps
from waffle_orders.core.permissions import get_current_user
from waffle_orders.services.checkout import CheckoutService
from waffle_orders.services.order_queue import QueueCoordinator
from waffle_orders.services.order_service import OrderService
from waffle_orders.services.redis import redis_client

from factories import FixedClock, InMemoryOrderRepository, RecordingFeed, seed_catalog


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
    server = fakeredis.FakeRedis(decode_responses=True)
    monkeypatch.setattr(redis_client, "client", server)
    return server


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def repo():
    return seed_catalog(InMemoryOrderRepository())


@pytest.fixture
def feed():
    return RecordingFeed()


@pytest.fixture
def service(repo, feed, clock):
    return OrderService(repo, feed, clock=clock)


@pytest.fixture
def checkout(repo, feed, clock):
    codes = iter(f"SW-{n}" for n in range(2001, 2100))
    return CheckoutService(repo, feed, clock=clock, id_generator=lambda: next(codes))


@pytest.fixture
def coordinator(service):
    return QueueCoordinator(service)


@pytest.fixture
def current_user():
    # tests switch roles by mutating this dict
    return {"id": "user-1", "email": "asha@example.com", "role": "customer"}


@pytest.fixture
def client(service, checkout, current_user):
    app.dependency_overrides[deps.get_order_service] = lambda: service
    app.dependency_overrides[deps.get_checkout_service] = lambda: checkout
    app.dependency_overrides[get_current_user] = lambda: current_user
    yield TestClient(app)
    app.dependency_overrides.clear()
