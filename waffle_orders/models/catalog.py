from enum import Enum
from datetime import datetime
from typing import Optional
from pydantic import BaseModel
from decimal import Decimal

class SelectionType(str, Enum):
    SINGLE = "single"
    MULTI = "multi"

class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FLAT = "flat"

class MenuItem(BaseModel):
    id: str
    name: str
    price: Decimal
    prep_time: Optional[int] = None
    is_available: bool = True

class CustomizationGroup(BaseModel):
    id: str
    name: str
    selection_type: SelectionType = SelectionType.SINGLE
    is_required: bool = False
    display_order: int = 0

class CustomizationOption(BaseModel):
    id: str
    group_id: str
    name: str
    price: Decimal = Decimal("0")
    is_available: bool = True
    display_order: int = 0

class DeliveryZone(BaseModel):
    id: Optional[str] = None
    pincode: str
    area_name: str
    delivery_fee: Decimal
    min_order: Decimal = Decimal("0")
    estimated_time: Optional[int] = None
    is_active: bool = True

class Offer(BaseModel):
    id: Optional[str] = None
    code: str
    title: Optional[str] = None
    discount_type: DiscountType
    discount_value: Decimal
    min_order: Decimal = Decimal("0")
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: bool = True

    def is_valid_at(self, now: datetime) -> bool:
        if not self.is_active:
            return False
        if self.valid_from and now < self.valid_from:
            return False
        if self.valid_until and now > self.valid_until:
            return False
        return True
