"""Database models for the storefront service."""
import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

from config import DEFAULT_STORE_NAME, STORE_SETTINGS_ID

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    PROCESSING = "processing"
    SHIPPING = "shipping"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    PROBLEM = "problem"


class ShippingMethod(str, enum.Enum):
    DELIVERY = "delivery"
    PICKUP = "pickup"


_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in OrderStatus)
_METHOD_VALUES = ", ".join(f"'{m.value}'" for m in ShippingMethod)


class StoreSettings(Base):
    """Single-row store configuration."""
    __tablename__ = "store_settings"
    __table_args__ = (
        CheckConstraint(f"id = '{STORE_SETTINGS_ID}'", name="single_row"),
        CheckConstraint("flat_shipping_fee >= 0", name="store_fee_non_negative"),
        CheckConstraint("shipping_radius_km > 0", name="store_radius_positive"),
    )

    id = Column(String(36), primary_key=True, default=STORE_SETTINGS_ID)
    store_name = Column(String(100), nullable=False, default=DEFAULT_STORE_NAME)
    store_address = Column(Text)
    store_lat = Column(Float)
    store_lng = Column(Float)
    flat_shipping_fee = Column(Numeric(10, 2), nullable=False, default=0)
    shipping_radius_km = Column(Numeric(10, 2), nullable=False, default=10)
    is_store_open = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Profile(Base):
    """Customer or admin profile."""
    __tablename__ = "profiles"

    id = Column(String(64), primary_key=True)
    display_name = Column(String(100))
    phone = Column(String(20))
    email = Column(String(255))
    address = Column(Text)
    lat = Column(Float)
    lng = Column(Float)
    is_admin = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Product(Base):
    """Product model with soft delete."""
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("price >= 0", name="product_price_non_negative"),
        CheckConstraint("stock >= 0", name="product_stock_non_negative"),
        Index("idx_products_is_available", "is_available"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(200), nullable=False, index=True)
    description = Column(Text)
    price = Column(Numeric(10, 2), nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    image_url = Column(Text)
    is_available = Column(Boolean, nullable=False, default=True)
    category = Column(String(50))
    weight_kg = Column(Numeric(10, 2), default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime(timezone=True))

    @property
    def is_purchasable(self) -> bool:
        return bool(self.is_available) and self.deleted_at is None


class CartItem(Base):
    """Cart line, one per user and product."""
    __tablename__ = "cart_items"
    __table_args__ = (
        UniqueConstraint("user_id", "product_id", name="uq_cart_user_product"),
        CheckConstraint("quantity > 0", name="cart_quantity_positive"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    quantity = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    product = relationship("Product")


class Order(Base):
    """Customer order."""
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("total_price >= 0", name="order_total_non_negative"),
        CheckConstraint("shipping_fee >= 0", name="order_shipping_fee_non_negative"),
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="order_status_valid"),
        CheckConstraint(f"shipping_method IN ({_METHOD_VALUES})", name="order_shipping_method_valid"),
        Index("idx_orders_status", "status"),
        Index("idx_orders_created_at", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), ForeignKey("profiles.id", ondelete="SET NULL"), index=True)
    order_number = Column(String(20), unique=True, nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)
    shipping_fee = Column(Numeric(10, 2), nullable=False, default=0)
    shipping_address = Column(Text, nullable=False)
    shipping_lat = Column(Float)
    shipping_lng = Column(Float)
    shipping_method = Column(String(20), nullable=False, default=ShippingMethod.DELIVERY.value)
    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value)
    payment_slip_url = Column(Text)
    trans_ref = Column(String(100), unique=True)
    slip_verified = Column(Boolean, nullable=False, default=False)
    verified_at = Column(DateTime(timezone=True))
    estimated_distance_km = Column(Numeric(10, 2))
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.created_at",
    )

    @property
    def grand_total(self):
        return self.total_price + self.shipping_fee


class OrderItem(Base):
    """Order line with the unit price captured at placement."""
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="order_item_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="order_item_price_non_negative"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="SET NULL"))
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    subtotal = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")

    @property
    def product_name(self):
        return self.product.name if self.product is not None else None


class ActivityLog(Base):
    """Audit trail of admin actions, order events and errors."""
    __tablename__ = "activity_logs"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), ForeignKey("profiles.id", ondelete="SET NULL"))
    action_type = Column(String(50), nullable=False)
    table_name = Column(String(50))
    record_id = Column(String(36))
    old_data = Column(JSON)
    new_data = Column(JSON)
    ip_address = Column(String(45))
    user_agent = Column(Text)
    error_message = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    user = relationship("Profile")
