"""
Database Schemas for the Food Ordering API

Each Pydantic model below corresponds to a MongoDB collection.
The collection name is the lowercase class name (e.g., User -> "user").
OrderLineItem and DeliveryAddress are embedded in Order documents.
"""
from typing import Dict, List, Optional, Literal
from pydantic import BaseModel, Field, EmailStr, field_validator


ADDRESS_FIELDS = [
    "first_name", "last_name", "email", "street", "city", "state", "zip_code", "country", "phone",
]

OrderStatus = Literal["processing", "confirmed", "preparing", "out_for_delivery", "delivered", "cancelled"]
PaymentStatus = Literal["pending", "paid", "failed"]


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Unique email address")
    password_hash: str = Field(..., description="BCrypt password hash")
    cart_data: Dict[str, int] = Field(default_factory=dict, description="Food item _id -> quantity")

    @field_validator("cart_data", mode="before")
    @classmethod
    def drop_empty_entries(cls, value):
        return clean_cart_data(value)


class Fooditem(BaseModel):
    name: str = Field(..., description="Item name")
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    image: Optional[str] = None
    category: Optional[str] = None
    is_available: bool = True


class OrderLineItem(BaseModel):
    food_id: str = Field(..., description="Reference to fooditem _id")
    name: str = Field(..., description="Item name at time of order")
    price: float = Field(..., ge=0, description="Unit price at time of order")
    quantity: int = Field(..., ge=1)
    image: Optional[str] = None


class DeliveryAddress(BaseModel):
    first_name: str
    last_name: str
    email: str
    street: str
    city: str
    state: str
    zip_code: str
    country: str
    phone: str


class Order(BaseModel):
    user_id: str = Field(..., description="User who placed the order")
    order_number: str = Field(..., description="Human-friendly order number")
    items: List[OrderLineItem]
    subtotal: float
    delivery_fee: float
    total_amount: float
    address: DeliveryAddress
    status: OrderStatus = "processing"
    payment_status: PaymentStatus = "pending"
    payment_id: Optional[str] = None


def clean_cart_data(raw) -> Dict[str, int]:
    """Coerce a stored cart into ``{item_id: positive int}``.

    Non-numeric and non-positive quantities are dropped.
    """
    cart: Dict[str, int] = {}
    for item_id, quantity in (raw or {}).items():
        if isinstance(quantity, bool):
            continue
        try:
            quantity = int(quantity)
        except (TypeError, ValueError):
            continue
        if quantity > 0:
            cart[str(item_id)] = quantity
    return cart
