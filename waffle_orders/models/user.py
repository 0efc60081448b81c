from enum import Enum
from datetime import datetime
from typing import Optional
from pydantic import BaseModel

class UserRole(str, Enum):
    ADMIN = "admin"
    CHEF = "chef"
    CUSTOMER = "customer"

class Profile(BaseModel):
    id: str
    role: UserRole = UserRole.CUSTOMER
    full_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    default_address: Optional[str] = None
    default_pincode: Optional[str] = None
    created_at: Optional[datetime] = None
