"""
Database Schemas for the food-delivery admin backend

Each Pydantic model represents a MongoDB collection or a singleton document in
`app_settings`. Stored field names are camelCase because the customer app reads
the same documents; Python attributes are snake_case with camelCase aliases.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, use_enum_values=True)

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True)


class ForeignDocument(Document):
    """Read side of documents written by other apps: numbers stored where text is expected are accepted."""
    model_config = ConfigDict(coerce_numbers_to_str=True)


class Role(str, Enum):
    admin = "admin"


class AdminUser(Document):
    username: str = Field(..., min_length=3)
    password_hash: str
    role: Role = Role.admin
    is_active: bool = True


# --- Catalog ---

Unit = Literal["gms", "kg", "ml", "ltr", "pcs", "pc"]
RawNumber = Union[int, float, str, None]


class Variant(Document):
    # Raw form values; numeric coercion happens in variants.coerce_variants
    weight: RawNumber = ""
    unit: Unit = "gms"
    price: RawNumber = ""
    stock: RawNumber = ""
    is_active: bool = True


class Product(Document):
    name: str
    category: str
    type: Literal["veg", "non-veg"] = "veg"
    is_available: bool = True
    image_url: str = ""
    variants: List[Variant] = Field(default_factory=lambda: [Variant()])


class Category(Document):
    name: str
    image_url: Optional[str] = None


# --- Orders ---

class OrderStatus(str, Enum):
    placed = "placed"
    processing = "processing"
    packed = "packed"
    out_for_delivery = "out_for_delivery"
    ready_for_pickup = "ready_for_pickup"
    delivered = "delivered"
    picked_up = "picked_up"
    cancelled = "cancelled"


class DeliveryMethod(str, Enum):
    home_delivery = "Home Delivery"
    store_pickup = "Store Pickup"


class PaymentMethod(str, Enum):
    cash = "Cash"
    upi = "UPI"
    card = "Card"


class LineItem(Document):
    name: str
    variant: Optional[str] = None
    price: float = Field(ge=0)
    qty: int = Field(ge=1)
    category: Optional[str] = None


class ShippingAddress(Document):
    line1: str
    city: str
    state: Optional[str] = None
    zip: str
    phone: Optional[str] = None


class Order(Document):
    order_id: str
    user_name: str
    user_email: Optional[str] = None
    user_phone: Optional[str] = None
    delivery_method: DeliveryMethod
    shipping_address: Optional[ShippingAddress] = None
    items: List[LineItem] = []
    subtotal: float = Field(ge=0)
    discount_amount: float = Field(default=0, ge=0)
    coupon_code: Optional[str] = None
    total_amount: float = Field(ge=0)
    created_at: Optional[datetime] = None
    status: OrderStatus = OrderStatus.placed
    payment_status: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    paid_at: Optional[str] = None
    rider_id: Optional[str] = None
    rider_name: Optional[str] = None
    rider_phone: Optional[str] = None


# --- People ---

class RiderStatus(str, Enum):
    active = "active"
    inactive = "inactive"


class Rider(ForeignDocument):
    name: str
    phone: str
    email: Optional[str] = None
    status: RiderStatus = RiderStatus.active


class CustomerAddress(ForeignDocument):
    type: Optional[str] = None
    line1: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None


class Customer(ForeignDocument):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    # Written by the customer app, sometimes as a {"seconds": ...} map
    created_at: Union[datetime, dict, str, None] = None
    addresses: List[CustomerAddress] = []


# --- app_settings singletons ---

class ShopControls(Document):
    is_open: bool = True
    online_orders: bool = True


class DeliveryConfig(Document):
    min_order_amount: float = Field(default=99, ge=0)
    updated_at: Optional[datetime] = None


class Banner(Document):
    id: Union[int, str]
    image_url: str
    order: Optional[int] = None
    duration: int = Field(default=5, ge=2, le=10)
    title: str = ""
    description: str = ""
    button_text: str = "Order Now"


class Offer(Document):
    id: Union[int, str]
    title: str = ""
    discount: str = ""
    min_order: Optional[float] = None


class Promotion(Document):
    id: Union[int, str]
    text: str = ""
    emoji: str = ""
    sub_text: str = ""
    deadline: Optional[str] = None
    image_url: Optional[str] = None


class Note(Document):
    id: Union[int, str]
    text: str = ""
    reason: Optional[str] = None


class HomeScreen(Document):
    banners: List[Banner] = []
    offers: List[Offer] = []
    promotions: List[Promotion] = []
    important_notes: List[Note] = []
    category_order: List[str] = []
    category_alignment: Literal["grid", "list", "scroll"] = "grid"
    best_sellers: List[str] = []


# --- Request bodies ---

class StatusChange(BaseModel):
    status: OrderStatus


class RiderAssignment(BaseModel):
    rider_id: str


class PaymentRecord(BaseModel):
    method: PaymentMethod


class RiderUpdate(Document):
    name: str
    phone: str
    status: RiderStatus


class VariantList(BaseModel):
    variants: List[Variant]


class MinOrderUpdate(Document):
    min_order_amount: float = Field(ge=0)
