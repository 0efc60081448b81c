from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from waffle_orders.core import permissions
from waffle_orders.core.permissions import resolve_user


class FakeQuery:
    def __init__(self, rows, calls):
        self.rows = rows
        self.calls = calls

    def select(self, *args):
        return self

    def eq(self, column, value):
        return self

    def limit(self, n):
        return self

    def execute(self):
        self.calls.append(1)
        return SimpleNamespace(data=self.rows)


class FakeSupabase:
    def __init__(self, rows=(), valid=True):
        self.rows = list(rows)
        self.valid = valid
        self.calls = []
        self.auth = self

    def get_user(self, token):
        if not self.valid:
            raise RuntimeError("jwt expired")
        return SimpleNamespace(user=SimpleNamespace(id="user-9", email="ravi@sweetwaffle.in"))

    def table(self, name):
        return FakeQuery(self.rows, self.calls)


def _use(monkeypatch, fake):
    monkeypatch.setattr(permissions, "get_supabase", lambda: fake)
    monkeypatch.setattr(permissions, "get_supabase_admin", lambda: fake)


def test_staff_profile_role(monkeypatch):
    fake = FakeSupabase(rows=[{"id": "user-9", "role": "chef", "full_name": "Ravi"}])
    _use(monkeypatch, fake)

    user = resolve_user("token")

    assert user["role"] == "chef"
    assert user["email"] == "ravi@sweetwaffle.in"


def test_missing_profile_defaults_to_customer(monkeypatch):
    _use(monkeypatch, FakeSupabase(rows=[]))
    assert resolve_user("token")["role"] == "customer"


def test_profile_is_cached(monkeypatch):
    fake = FakeSupabase(rows=[{"id": "user-9", "role": "admin"}])
    _use(monkeypatch, fake)

    resolve_user("token")
    resolve_user("token")

    assert len(fake.calls) == 1


def test_bad_token_is_401(monkeypatch):
    _use(monkeypatch, FakeSupabase(valid=False))
    with pytest.raises(HTTPException) as exc:
        resolve_user("token")
    assert exc.value.status_code == 401
