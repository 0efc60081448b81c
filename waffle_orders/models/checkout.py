from typing import List, Optional, Dict
from decimal import Decimal
from pydantic import BaseModel, Field, EmailStr

from .order import OrderType, PaymentMethod, OrderItem

class CartLine(BaseModel):
    menu_item_id: str
    quantity: int = Field(gt=0)
    # customization group id -> selected option ids
    selections: Dict[str, List[str]] = Field(default_factory=dict)

class CheckoutRequest(BaseModel):
    order_type: OrderType
    customer_name: str
    customer_phone: str
    customer_email: Optional[EmailStr] = None
    address: str = ""
    pincode: str = ""
    payment_method: PaymentMethod = PaymentMethod.COD
    coupon_code: Optional[str] = None
    items: List[CartLine]

class CheckoutQuote(BaseModel):
    items: List[OrderItem]
    subtotal: Decimal
    discount: Decimal
    delivery_fee: Decimal
    total: Decimal
    zone_name: Optional[str] = None
    offer_code: Optional[str] = None
