"""Pydantic schemas for request/response validation."""
import re
from datetime import datetime
from decimal import Decimal
from typing import Annotated, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from models import OrderStatus, ShippingMethod

THAI_PHONE_PATTERN = re.compile(r"^0[0-9]{1,2}[0-9]{7}$")
MAX_TEXT_LENGTH = 1000


def sanitize_text(value: Optional[str]) -> Optional[str]:
    """Strip angle brackets and surrounding whitespace, cap the length."""
    if value is None:
        return None
    return re.sub(r"[<>]", "", value).strip()[:MAX_TEXT_LENGTH]


Latitude = Optional[Annotated[float, Field(ge=-90, le=90)]]
Longitude = Optional[Annotated[float, Field(ge=-180, le=180)]]


class CoordinatesMixin(BaseModel):
    """Latitude/longitude pair that must be given together."""

    lat: Latitude = None
    lng: Longitude = None

    @model_validator(mode="after")
    def coordinates_together(self):
        if (self.lat is None) != (self.lng is None):
            raise ValueError("lat and lng must be provided together")
        return self


# Profiles

class ProfileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    display_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    is_admin: bool


class ProfileUpdate(CoordinatesMixin):
    display_name: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    address: Optional[str] = None

    @field_validator("email", mode="before")
    @classmethod
    def empty_email_is_none(cls, value):
        return value or None

    @field_validator("phone")
    @classmethod
    def thai_phone(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        if len(value) < 9:
            raise ValueError("Phone number is too short")
        if len(value) > 10:
            raise ValueError("Phone number is too long")
        if not THAI_PHONE_PATTERN.match(value):
            raise ValueError("Invalid Thai phone number format")
        return value

    @field_validator("display_name", "address")
    @classmethod
    def clean_text(cls, value: Optional[str]) -> Optional[str]:
        return sanitize_text(value)


# Products

class ProductResponse(BaseModel):
    """Schema for product response."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    price: float
    stock: int
    image_url: Optional[str] = None
    is_available: bool
    category: Optional[str] = None
    weight_kg: Optional[float] = None
    deleted_at: Optional[datetime] = None


class ProductCreate(BaseModel):
    """Schema for creating a product."""
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    price: Decimal = Field(..., ge=0, le=1_000_000)
    stock: int = Field(0, ge=0, le=10_000)
    image_url: Optional[str] = None
    is_available: bool = True
    category: Optional[str] = Field(None, max_length=50)
    weight_kg: Optional[Decimal] = Field(None, ge=0)

    @field_validator("name", "description")
    @classmethod
    def clean_text(cls, value: Optional[str]) -> Optional[str]:
        return sanitize_text(value)


class ProductUpdate(BaseModel):
    """Partial product update; only provided fields change."""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0, le=1_000_000)
    stock: Optional[int] = Field(None, ge=0, le=10_000)
    image_url: Optional[str] = None
    is_available: Optional[bool] = None
    category: Optional[str] = Field(None, max_length=50)
    weight_kg: Optional[Decimal] = Field(None, ge=0)

    @field_validator("name", "description")
    @classmethod
    def clean_text(cls, value: Optional[str]) -> Optional[str]:
        return sanitize_text(value)

    @field_validator("name", "price", "stock", "is_available")
    @classmethod
    def not_null(cls, value):
        # Omit a field to leave it unchanged
        if value is None:
            raise ValueError("must not be null")
        return value


class CategoriesResponse(BaseModel):
    categories: List[str]


# Store settings and shipping

class StorePublicResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    store_name: str
    store_address: Optional[str] = None
    store_lat: Optional[float] = None
    store_lng: Optional[float] = None
    flat_shipping_fee: float
    shipping_radius_km: float
    is_store_open: bool


class StoreSettingsResponse(StorePublicResponse):
    id: str
    updated_at: Optional[datetime] = None


class StoreSettingsUpdate(BaseModel):
    store_name: str = Field(..., max_length=100)
    store_address: Optional[str] = None
    store_lat: Latitude = None
    store_lng: Longitude = None
    flat_shipping_fee: Decimal = Field(..., ge=0)
    shipping_radius_km: Decimal = Field(..., gt=0)
    is_store_open: bool

    @field_validator("store_name")
    @classmethod
    def store_name_required(cls, value: str) -> str:
        value = sanitize_text(value)
        if not value:
            raise ValueError("Store name is required")
        return value

    @field_validator("store_address")
    @classmethod
    def clean_address(cls, value: Optional[str]) -> Optional[str]:
        return sanitize_text(value)

    @model_validator(mode="after")
    def coordinates_together(self):
        if (self.store_lat is None) != (self.store_lng is None):
            raise ValueError("store_lat and store_lng must be provided together")
        return self


class ShippingQuoteRequest(CoordinatesMixin):
    shipping_method: ShippingMethod = ShippingMethod.DELIVERY


class ShippingQuoteResponse(BaseModel):
    shipping_method: ShippingMethod
    shipping_fee: float
    distance_km: Optional[float] = None
    distance_text: Optional[str] = None
    shipping_radius_km: Optional[float] = None
    deliverable: bool


# Cart

class AddToCartRequest(BaseModel):
    """Schema for add to cart request."""
    product_id: str
    quantity: int = Field(1, gt=0)


class AddToCartResponse(BaseModel):
    """Schema for add to cart response."""
    message: str
    cart_item_id: str
    product_name: str
    quantity: int


class UpdateCartItemRequest(BaseModel):
    quantity: int


class CartItemResponse(BaseModel):
    """Schema for cart item in response."""
    id: str
    product_id: str
    product_name: str
    product_image: Optional[str] = None
    unit_price: float
    quantity: int
    max_quantity: int
    subtotal: float


class CartResponse(BaseModel):
    """Schema for cart response."""
    user_id: str
    items: List[CartItemResponse]
    total_items: int
    total_price: float


class CartValidationResponse(BaseModel):
    removed_product_ids: List[str]
    cart: CartResponse


# Orders

class CheckoutRequest(CoordinatesMixin):
    """Schema for checkout request."""
    shipping_method: ShippingMethod = ShippingMethod.DELIVERY
    shipping_address: Optional[str] = Field(None, max_length=500)

    @field_validator("shipping_address")
    @classmethod
    def clean_address(cls, value: Optional[str]) -> Optional[str]:
        return sanitize_text(value)


class CheckoutResponse(BaseModel):
    """Schema for checkout response."""
    message: str
    order_id: str
    order_number: str
    total_price: float
    shipping_fee: float
    grand_total: float


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    product_id: Optional[str] = None
    product_name: Optional[str] = None
    quantity: int
    unit_price: float
    subtotal: float


class OrderResponse(BaseModel):
    """Schema for order response."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: Optional[str] = None
    order_number: str
    status: OrderStatus
    total_price: float
    shipping_fee: float
    grand_total: float
    shipping_method: ShippingMethod
    shipping_address: str
    shipping_lat: Optional[float] = None
    shipping_lng: Optional[float] = None
    estimated_distance_km: Optional[float] = None
    payment_slip_url: Optional[str] = None
    trans_ref: Optional[str] = None
    slip_verified: bool
    verified_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    items: List[OrderItemResponse] = []


class OrdersListResponse(BaseModel):
    """Schema for orders list response."""
    orders: List[OrderResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class VerifyPaymentRequest(BaseModel):
    trans_ref: str = Field(..., min_length=5, max_length=100)
    slip_url: str = Field(..., min_length=1)


class PaymentResponse(BaseModel):
    message: str
    order_id: str
    order_number: str
    status: OrderStatus
    trans_ref: str
    amount: float
    payment_slip_url: Optional[str] = None


class OrderStatisticsResponse(BaseModel):
    start_date: datetime
    end_date: datetime
    total_orders: int
    total_revenue: float
    avg_order_value: float
    pending_orders: int
    paid_orders: int
    shipping_orders: int


# Activity log

class ActivityLogResponse(BaseModel):
    id: str
    user_id: Optional[str] = None
    user_display_name: Optional[str] = None
    action_type: str
    table_name: Optional[str] = None
    record_id: Optional[str] = None
    old_data: Optional[dict] = None
    new_data: Optional[dict] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime


class ActivityLogListResponse(BaseModel):
    logs: List[ActivityLogResponse]
    page: int
    limit: int
    has_more: bool
