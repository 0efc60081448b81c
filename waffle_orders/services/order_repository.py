"""Order Store access.

``OrderRepository`` is the seam the engine is written against; the Supabase
implementation talks to the ``orders`` / ``order_items`` tables and the
catalog tables the checkout reads. Rows go in and out as plain dicts.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Dict, Any, Optional, Iterable

from postgrest.exceptions import APIError
from supabase import Client

from ..database import get_supabase_admin
from ..core.exceptions import DuplicateOrderId
from ..core.retry import retry_read, guard_write

Row = Dict[str, Any]

UNIQUE_VIOLATION = "23505"


class OrderRepository(ABC):
    # Orders
    @abstractmethod
    def insert_order(self, row: Row) -> Row: ...

    @abstractmethod
    def delete_order(self, id: str) -> None: ...

    @abstractmethod
    def insert_items(self, rows: List[Row]) -> List[Row]: ...

    @abstractmethod
    def get_order(self, id: str) -> Optional[Row]: ...

    @abstractmethod
    def get_by_order_id(self, order_id: str) -> Optional[Row]: ...

    @abstractmethod
    def get_items(self, order_ids: Iterable[str]) -> List[Row]: ...

    @abstractmethod
    def list_for_user(self, user_id: str) -> List[Row]: ...

    @abstractmethod
    def list_by_status(self, statuses: Iterable[str]) -> List[Row]: ...

    @abstractmethod
    def list_recent(self, limit: int = 100, statuses: Optional[Iterable[str]] = None,
                    order_type: Optional[str] = None) -> List[Row]: ...

    @abstractmethod
    def list_placed_since(self, since: datetime) -> List[Row]: ...

    @abstractmethod
    def count_pending_before(self, placed_at: datetime, exclude_id: Optional[str] = None) -> int: ...

    @abstractmethod
    def list_expired_pending(self, now: datetime) -> List[Row]: ...

    @abstractmethod
    def conditional_update(self, id: str, expected_status: str, changes: Row) -> Optional[Row]:
        """Apply ``changes`` only if the row still has ``expected_status``.

        Returns the updated row, or None when zero rows matched.
        """

    @abstractmethod
    def update_fields(self, id: str, changes: Row) -> Optional[Row]: ...

    # Catalog
    @abstractmethod
    def get_delivery_zone(self, pincode: str) -> Optional[Row]: ...

    @abstractmethod
    def get_offer(self, code: str) -> Optional[Row]: ...

    @abstractmethod
    def get_menu_items(self, ids: Iterable[str]) -> List[Row]: ...

    @abstractmethod
    def get_customization_groups(self) -> List[Row]: ...

    @abstractmethod
    def get_customization_options(self, ids: Iterable[str]) -> List[Row]: ...

    # Audit
    @abstractmethod
    def insert_activity(self, row: Row) -> None: ...


def _first(result) -> Optional[Row]:
    return result.data[0] if result.data else None


class SupabaseOrderRepository(OrderRepository):
    def __init__(self, client: Optional[Client] = None):
        self._client = client

    @property
    def client(self) -> Client:
        return self._client or get_supabase_admin()

    @guard_write("insert order")
    def insert_order(self, row: Row) -> Row:
        try:
            result = self.client.table("orders").insert(row).execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise DuplicateOrderId(row["order_id"])
            raise
        return result.data[0]

    @guard_write("delete order")
    def delete_order(self, id: str) -> None:
        self.client.table("orders").delete().eq("id", id).execute()

    @guard_write("insert order items")
    def insert_items(self, rows: List[Row]) -> List[Row]:
        if not rows:
            return []
        result = self.client.table("order_items").insert(rows).execute()
        return result.data

    @retry_read("get order")
    def get_order(self, id: str) -> Optional[Row]:
        result = self.client.table("orders").select("*").eq("id", id).limit(1).execute()
        return _first(result)

    @retry_read("get order by code")
    def get_by_order_id(self, order_id: str) -> Optional[Row]:
        result = self.client.table("orders").select("*").eq("order_id", order_id).limit(1).execute()
        return _first(result)

    @retry_read("get order items")
    def get_items(self, order_ids: Iterable[str]) -> List[Row]:
        ids = list(order_ids)
        if not ids:
            return []
        result = self.client.table("order_items").select("*").in_("order_id", ids).execute()
        return result.data

    @retry_read("list orders for user")
    def list_for_user(self, user_id: str) -> List[Row]:
        result = self.client.table("orders").select("*").eq("user_id", user_id).order("placed_at", desc=True).execute()
        return result.data

    @retry_read("list orders by status")
    def list_by_status(self, statuses: Iterable[str]) -> List[Row]:
        result = self.client.table("orders").select("*").in_("status", list(statuses)).order("placed_at").execute()
        return result.data

    @retry_read("list recent orders")
    def list_recent(self, limit: int = 100, statuses: Optional[Iterable[str]] = None,
                    order_type: Optional[str] = None) -> List[Row]:
        query = self.client.table("orders").select("*")
        if statuses:
            query = query.in_("status", list(statuses))
        if order_type:
            query = query.eq("order_type", order_type)
        result = query.order("placed_at", desc=True).limit(limit).execute()
        return result.data

    @retry_read("list orders placed since")
    def list_placed_since(self, since: datetime) -> List[Row]:
        result = self.client.table("orders").select("*").gte("placed_at", since.isoformat()).order("placed_at", desc=True).execute()
        return result.data

    @retry_read("count pending ahead")
    def count_pending_before(self, placed_at: datetime, exclude_id: Optional[str] = None) -> int:
        query = self.client.table("orders").select("id", count="exact").eq("status", "pending").lt("placed_at", placed_at.isoformat())
        if exclude_id:
            query = query.neq("id", exclude_id)
        result = query.execute()
        return result.count or 0

    @retry_read("list overdue pending orders")
    def list_expired_pending(self, now: datetime) -> List[Row]:
        result = self.client.table("orders").select("*").eq("status", "pending").lte("expires_at", now.isoformat()).execute()
        return result.data

    @guard_write("conditional order update")
    def conditional_update(self, id: str, expected_status: str, changes: Row) -> Optional[Row]:
        result = self.client.table("orders").update(changes).eq("id", id).eq("status", expected_status).execute()
        return _first(result)

    @guard_write("order update")
    def update_fields(self, id: str, changes: Row) -> Optional[Row]:
        result = self.client.table("orders").update(changes).eq("id", id).execute()
        return _first(result)

    @retry_read("get delivery zone")
    def get_delivery_zone(self, pincode: str) -> Optional[Row]:
        result = self.client.table("delivery_zones").select("*").eq("pincode", pincode).eq("is_active", True).limit(1).execute()
        return _first(result)

    @retry_read("get offer")
    def get_offer(self, code: str) -> Optional[Row]:
        result = self.client.table("offers").select("*").eq("code", code).eq("is_active", True).limit(1).execute()
        return _first(result)

    @retry_read("get menu items")
    def get_menu_items(self, ids: Iterable[str]) -> List[Row]:
        ids = list(ids)
        if not ids:
            return []
        result = self.client.table("menu_items").select("*").in_("id", ids).execute()
        return result.data

    @retry_read("get customization groups")
    def get_customization_groups(self) -> List[Row]:
        result = self.client.table("customization_groups").select("*").order("display_order").execute()
        return result.data

    @retry_read("get customization options")
    def get_customization_options(self, ids: Iterable[str]) -> List[Row]:
        ids = list(ids)
        if not ids:
            return []
        result = self.client.table("customization_options").select("*").in_("id", ids).execute()
        return result.data

    @guard_write("insert activity log")
    def insert_activity(self, row: Row) -> None:
        self.client.table("activity_logs").insert(row).execute()
