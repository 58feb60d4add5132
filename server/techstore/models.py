from datetime import datetime
from decimal import Decimal
from typing import Annotated, List, Optional, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, PlainSerializer
from pydantic.alias_generators import to_camel

# Fixed-point currency; rendered as a JSON number on the wire.
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]

Category = Literal["processors", "graphics", "memory", "cooling", "peripherals"]


class ApiModel(BaseModel):
    """Base for models exchanged with the storefront (camelCase on the wire)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---- Accounts ----

class RegisterRequest(BaseModel):
    name: str
    email: EmailStr
    password: str


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class UserProfile(BaseModel):
    id: int
    name: str
    email: str


class AuthResponse(UserProfile):
    """Profile plus a freshly issued bearer token."""
    token: str


class UserSummary(UserProfile):
    pass


# ---- Catalog ----

class Product(ApiModel):
    id: int
    name: str
    price: Money
    category: Category
    description: str = ""
    image: str = ""
    image_alt: str = ""
    stock: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProductCreateRequest(ApiModel):
    name: str
    price: Decimal
    category: str
    description: str = ""
    image: str = ""
    image_alt: str = ""
    stock: int = 0


class ProductSummary(ApiModel):
    id: int
    name: str
    category: Optional[str] = None
    image: Optional[str] = None
    price: Optional[Money] = None


# ---- Orders ----

class ShippingAddress(ApiModel):
    address: str
    city: str
    postal_code: str
    country: str


class ShippingAddressIn(ApiModel):
    """Shipping address as submitted; completeness is checked by the order service."""
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


class OrderItemIn(ApiModel):
    """One cart line as submitted by the client."""
    product_id: int
    quantity: int
    price: Decimal
    name: Optional[str] = Field(None, max_length=200)
    image: Optional[str] = None


class PlaceOrderRequest(ApiModel):
    order_items: List[OrderItemIn] = []
    shipping_address: Optional[ShippingAddressIn] = None
    payment_method: Optional[str] = None
    total_price: Optional[Decimal] = None


class PaymentResult(ApiModel):
    """Opaque payment gateway snapshot; only its shape is checked."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: Optional[str] = Field(None, max_length=255)
    status: Optional[str] = Field(None, max_length=64)
    update_time: Optional[str] = Field(None, max_length=64)
    email_address: Optional[str] = Field(None, max_length=255)


class OrderItem(ApiModel):
    id: int
    order_id: int
    product_id: int
    name: Optional[str] = None
    quantity: int
    price: Money
    product: Optional[ProductSummary] = None


class Order(ApiModel):
    id: int
    user_id: int
    order_items: List[OrderItem] = []
    shipping_address: ShippingAddress
    payment_method: str
    payment_result: Optional[PaymentResult] = None
    total_price: Money
    is_paid: bool = False
    paid_at: Optional[datetime] = None
    is_delivered: bool = False
    delivered_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    user: Optional[UserSummary] = None


# ---- Tracking ----
# Field names follow the tracking script's snake_case payloads.

class TrackSessionRequest(BaseModel):
    user_id: int
    session_token: str = Field(..., min_length=1, max_length=255)


class TrackProductViewRequest(BaseModel):
    product_id: int
    user_id: Optional[int] = None
    visitor_id: Optional[str] = Field(None, max_length=100)
    view_duration: int = Field(0, ge=0)


class TrackCartRequest(BaseModel):
    product_id: int
    user_id: Optional[int] = None
    visitor_id: Optional[str] = Field(None, max_length=100)
    quantity: int = Field(1, ge=1)


class TrackCheckoutStartRequest(BaseModel):
    user_id: Optional[int] = None
    visitor_id: Optional[str] = Field(None, max_length=100)
    cart_items: List[dict] = []


class TrackCheckoutCompleteRequest(BaseModel):
    user_id: Optional[int] = None
    visitor_id: Optional[str] = Field(None, max_length=100)
    order_id: Optional[int] = None
    total_amount: Optional[Decimal] = None
    payment_method: Optional[str] = None


class TrackPageVisitRequest(BaseModel):
    user_id: Optional[int] = None
    visitor_id: Optional[str] = Field(None, max_length=100)
    page_url: str = Field(..., min_length=1, max_length=1000)
    page_title: str = Field("", max_length=500)
    referrer: str = Field("", max_length=1000)


class MessageResponse(BaseModel):
    message: str
