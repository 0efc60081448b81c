from enum import Enum
from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field
from decimal import Decimal

class OrderType(str, Enum):
    DELIVERY = "delivery"
    PICKUP = "pickup"

class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    PACKED = "packed"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.EXPIRED})

class PaymentMethod(str, Enum):
    COD = "cod"
    UPI = "upi"
    CARD = "card"

class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PAID = "paid"

class SelectedCustomization(BaseModel):
    group_name: str
    option_name: str
    price: Decimal = Decimal("0")

class OrderItem(BaseModel):
    """Snapshot of a purchased line, never changed after checkout"""
    id: Optional[str] = None
    order_id: Optional[str] = None  # internal id of the owning order
    menu_item_id: str
    item_name: str
    unit_price: Decimal
    quantity: int = Field(ge=1)
    customizations: List[SelectedCustomization] = Field(default_factory=list)

    @property
    def line_total(self) -> Decimal:
        extras = sum((c.price for c in self.customizations), Decimal("0"))
        return (self.unit_price + extras) * self.quantity

    def to_row(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "menu_item_id": self.menu_item_id,
            "item_name": self.item_name,
            "unit_price": float(self.unit_price),
            "quantity": self.quantity,
            "customizations": [
                {"group_name": c.group_name, "option_name": c.option_name, "price": float(c.price)}
                for c in self.customizations
            ],
        }

class Order(BaseModel):
    id: Optional[str] = None
    order_id: str  # Human-facing code, like "SW-1234"
    user_id: Optional[str] = None
    order_type: OrderType
    status: OrderStatus = OrderStatus.PENDING

    # Customer info
    customer_name: str
    customer_phone: str
    customer_email: Optional[str] = None
    address: str = ""
    pincode: str = ""

    # Amounts
    subtotal: Decimal
    discount: Decimal = Decimal("0")
    delivery_fee: Decimal = Decimal("0")
    total: Decimal

    payment_method: PaymentMethod = PaymentMethod.COD
    payment_status: PaymentStatus = PaymentStatus.UNPAID

    # Tracking
    placed_at: datetime
    expires_at: datetime
    confirmed_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    estimated_minutes: Optional[int] = None
    queue_position: Optional[int] = None  # advisory only, see QueueCoordinator
    updated_at: Optional[datetime] = None

    @property
    def is_pickup(self) -> bool:
        return self.order_type == OrderType.PICKUP

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def awaits_payment(self) -> bool:
        """COD orders that still need cash collected"""
        return self.payment_method == PaymentMethod.COD and self.payment_status != PaymentStatus.PAID

    def is_overdue(self, now: datetime) -> bool:
        return self.status == OrderStatus.PENDING and now >= self.expires_at

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Order":
        return cls.model_validate(row)

    def to_row(self) -> Dict[str, Any]:
        row = self.model_dump(mode="json", exclude={"id"})
        for key in ("subtotal", "discount", "delivery_fee", "total"):
            row[key] = float(getattr(self, key))
        return row

class OrderWithItems(BaseModel):
    order: Order
    items: List[OrderItem] = Field(default_factory=list)
