"""Order management service."""
import csv
import io
import logging
import random
from collections import OrderedDict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session, selectinload
from opentelemetry import trace

from config import PICKUP_ADDRESS
from errors import StoreError
from models import Order, OrderItem, OrderStatus, Product, ShippingMethod, utcnow
from monitoring import (
    order_amount_histogram,
    order_status_changes_counter,
    orders_failed_counter,
    orders_placed_counter,
)
from services.activity_service import ActivityService
from services.cart_service import CartService
from services.store_service import StoreService
from shipping import quote_shipping

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
ORDER_NUMBER_ATTEMPTS = 5
STATS_DEFAULT_DAYS = 30

# Allowed admin status changes; cancellation is handled by cancel_order
STATUS_TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    OrderStatus.PENDING.value: ("paid", "processing", "cancelled", "problem"),
    OrderStatus.PAID.value: ("processing", "shipping", "cancelled", "problem"),
    OrderStatus.PROCESSING.value: ("shipping", "cancelled", "problem"),
    OrderStatus.SHIPPING.value: ("delivered", "problem"),
    OrderStatus.PROBLEM.value: ("pending", "paid", "processing", "shipping", "cancelled"),
    OrderStatus.DELIVERED.value: (),
    OrderStatus.CANCELLED.value: (),
}

CSV_COLUMNS = (
    "order_number",
    "status",
    "total_price",
    "shipping_fee",
    "shipping_method",
    "shipping_address",
    "created_at",
)


def can_transition(current: str, new: str) -> bool:
    return new in STATUS_TRANSITIONS.get(current, ())


def merge_items(items: Iterable[Dict[str, Any]]) -> "OrderedDict[str, int]":
    """
    Combine lines for the same product, keyed by product id.

    Raises:
        StoreError: EMPTY_ORDER, INVALID_QUANTITY
    """
    merged: "OrderedDict[str, int]" = OrderedDict()
    for item in items:
        quantity = int(item["quantity"])
        if quantity <= 0:
            raise StoreError("INVALID_QUANTITY", f"Quantity for product {item['product_id']} must be positive")
        merged[str(item["product_id"])] = merged.get(str(item["product_id"]), 0) + quantity
    if not merged:
        raise StoreError("EMPTY_ORDER", "Order has no items")
    return merged


class OrderService:
    """Service for placing and managing orders."""

    def __init__(
        self,
        cart_service: CartService,
        store_service: StoreService,
        activity_service: ActivityService
    ):
        """
        Initialize order service.

        Args:
            cart_service: Cart service instance
            store_service: Store settings service
            activity_service: Activity log writer
        """
        self.cart_service = cart_service
        self.store_service = store_service
        self.activity_service = activity_service
        self.tracer = trace.get_tracer(__name__)

    def _generate_order_number(self, db: Session) -> str:
        """YYMMDD-NNNNN, retried until unused."""
        prefix = utcnow().strftime("%y%m%d")
        for _ in range(ORDER_NUMBER_ATTEMPTS):
            candidate = f"{prefix}-{random.randint(0, 99999):05d}"
            exists = db.query(Order.id).filter(Order.order_number == candidate).first()
            if exists is None:
                return candidate
        raise RuntimeError("Could not allocate a unique order number")

    def _lock_products(self, db: Session, product_ids: Iterable[str], purchasable_only: bool) -> Dict[str, Product]:
        """Lock product rows in ascending id order."""
        locked = {}
        for product_id in sorted(product_ids):
            with self.tracer.start_as_current_span("db.query.lock_product") as db_span:
                db_span.set_attribute("db.operation", "SELECT FOR UPDATE")
                db_span.set_attribute("db.table", "products")
                db_span.set_attribute("product.id", product_id)

                query = db.query(Product).filter(Product.id == product_id)
                if purchasable_only:
                    query = query.filter(Product.is_available.is_(True), Product.deleted_at.is_(None))
                product = query.with_for_update().first()
                db_span.set_attribute("db.rows_returned", 1 if product else 0)
            if product is not None:
                locked[product_id] = product
        return locked

    def place_order(
        self,
        db: Session,
        user_id: Optional[str],
        items: Iterable[Dict[str, Any]],
        shipping_method: str = ShippingMethod.DELIVERY.value,
        shipping_address: Optional[str] = None,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
        payment_slip_url: Optional[str] = None,
        trans_ref: Optional[str] = None,
        clear_cart: bool = False,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Order:
        """
        Place an order atomically.

        Locks the store settings row and every product row, decrements stock,
        inserts the order with its items and an ORDER_CREATED log entry, and
        commits once. Any failure rolls the whole transaction back and is
        recorded as ORDER_ERROR before being re-raised.

        Args:
            db: Database session
            user_id: Customer placing the order
            items: Dicts with product_id and quantity
            shipping_method: delivery or pickup
            shipping_address: Required for delivery
            lat: Delivery latitude
            lng: Delivery longitude
            payment_slip_url: Slip uploaded before placement, if any
            trans_ref: Transaction reference known at placement, if any
            clear_cart: Empty the customer's cart in the same transaction

        Returns:
            The committed order

        Raises:
            StoreError: EMPTY_ORDER, INVALID_QUANTITY, STORE_CLOSED,
                OUTSIDE_DELIVERY_AREA, SHIPPING_ADDRESS_REQUIRED,
                PRODUCT_UNAVAILABLE, INSUFFICIENT_STOCK
        """
        span = trace.get_current_span()
        span.set_attribute("shipping.method", shipping_method)

        try:
            with self.tracer.start_as_current_span("db.transaction.place_order") as tx_span:
                quantities = merge_items(items)
                tx_span.set_attribute("order.line_count", len(quantities))

                settings = self.store_service.get_settings(db, lock=True)
                if not settings.is_store_open:
                    raise StoreError("STORE_CLOSED", "Store is currently closed")

                quote = quote_shipping(settings, shipping_method, lat, lng)
                if not quote.deliverable:
                    raise StoreError(
                        "OUTSIDE_DELIVERY_AREA",
                        f"Delivery distance {quote.distance_km} km exceeds the "
                        f"{quote.radius_km} km service area"
                    )
                if shipping_method == ShippingMethod.PICKUP.value:
                    shipping_address = PICKUP_ADDRESS
                    lat = lng = None
                elif not shipping_address:
                    raise StoreError("SHIPPING_ADDRESS_REQUIRED", "Shipping address is required")

                products = self._lock_products(db, quantities.keys(), purchasable_only=True)
                for product_id in sorted(quantities):
                    quantity = quantities[product_id]
                    product = products.get(product_id)
                    if product is None:
                        raise StoreError("PRODUCT_UNAVAILABLE", f"Product {product_id} is not available")
                    if product.stock < quantity:
                        raise StoreError(
                            "INSUFFICIENT_STOCK",
                            f"Product {product_id} has only {product.stock} items in stock"
                        )
                    product.stock -= quantity

                order_items = []
                total_price = Decimal("0")
                for product_id, quantity in quantities.items():
                    unit_price = Decimal(products[product_id].price).quantize(CENTS)
                    subtotal = (unit_price * quantity).quantize(CENTS)
                    total_price += subtotal
                    order_items.append(OrderItem(
                        product_id=product_id,
                        quantity=quantity,
                        unit_price=unit_price,
                        subtotal=subtotal
                    ))

                order = Order(
                    user_id=user_id,
                    order_number=self._generate_order_number(db),
                    total_price=total_price,
                    shipping_fee=quote.fee.quantize(CENTS),
                    shipping_address=shipping_address,
                    shipping_lat=lat,
                    shipping_lng=lng,
                    shipping_method=shipping_method,
                    status=OrderStatus.PENDING.value,
                    payment_slip_url=payment_slip_url,
                    trans_ref=trans_ref,
                    estimated_distance_km=quote.distance_km,
                    items=order_items
                )
                db.add(order)
                db.flush()

                self.activity_service.log(
                    db,
                    "ORDER_CREATED",
                    user_id=user_id,
                    table_name="orders",
                    record_id=order.id,
                    new_data={
                        "order_number": order.order_number,
                        "total_price": float(total_price),
                        "shipping_fee": float(order.shipping_fee),
                        "items_count": len(order_items)
                    },
                    ip_address=ip_address,
                    user_agent=user_agent
                )

                if clear_cart and user_id:
                    self.cart_service.clear_cart(db, user_id, commit=False)

                db.commit()
                tx_span.set_attribute("order.id", order.id)
        except Exception as e:
            db.rollback()
            code = e.code if isinstance(e, StoreError) else type(e).__name__
            orders_failed_counter.add(1, {"error_code": code})
            logger.warning("Order placement failed", extra={
                "user_id": user_id,
                "error_code": code,
                "error": str(e)
            })
            self.activity_service.log_error(db, "ORDER_ERROR", str(e), user_id=user_id)
            raise

        if clear_cart and user_id:
            self.cart_service.invalidate_cache(user_id)

        grand_total = float(order.total_price + order.shipping_fee)
        orders_placed_counter.add(1, {"shipping_method": shipping_method})
        order_amount_histogram.record(grand_total, {"shipping_method": shipping_method})

        logger.info("Order placed", extra={
            "user_id": user_id,
            "order_id": order.id,
            "order_number": order.order_number,
            "total_price": float(order.total_price),
            "shipping_fee": float(order.shipping_fee),
            "shipping_method": shipping_method,
            "item_count": len(order.items)
        })
        return order

    def checkout(
        self,
        db: Session,
        user_id: str,
        shipping_method: str = ShippingMethod.DELIVERY.value,
        shipping_address: Optional[str] = None,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Order:
        """
        Place an order for the contents of the user's cart.

        Raises:
            StoreError: EMPTY_CART, or any place_order error
        """
        cart_items = self.cart_service.get_cart_items(db, user_id)
        if not cart_items:
            raise StoreError("EMPTY_CART", "Cart is empty")

        items = [{"product_id": item.product_id, "quantity": item.quantity} for item in cart_items]
        return self.place_order(
            db,
            user_id,
            items,
            shipping_method=shipping_method,
            shipping_address=shipping_address,
            lat=lat,
            lng=lng,
            clear_cart=True,
            ip_address=ip_address,
            user_agent=user_agent
        )

    def get_order(self, db: Session, order_id: str, user_id: Optional[str] = None) -> Order:
        """
        Get an order with its items.

        Args:
            user_id: When given, the order must belong to this user

        Raises:
            StoreError: ORDER_NOT_FOUND
        """
        query = db.query(Order).options(
            selectinload(Order.items).selectinload(OrderItem.product)
        ).filter(Order.id == order_id)
        if user_id is not None:
            query = query.filter(Order.user_id == user_id)
        order = query.first()
        if order is None:
            raise StoreError("ORDER_NOT_FOUND", f"Order {order_id} not found")
        return order

    def get_user_orders(self, db: Session, user_id: str) -> List[Order]:
        """
        Get all orders for a user, newest first.
        """
        with self.tracer.start_as_current_span("db.query.get_user_orders") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "orders")
            db_span.set_attribute("user.id", user_id)

            orders = (
                db.query(Order)
                .options(selectinload(Order.items).selectinload(OrderItem.product))
                .filter(Order.user_id == user_id)
                .order_by(Order.created_at.desc(), Order.order_number.desc())
                .all()
            )

            db_span.set_attribute("db.rows_returned", len(orders))
            return orders

    def _filtered_query(
        self,
        db: Session,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        search: Optional[str] = None,
        user_id: Optional[str] = None
    ):
        query = db.query(Order)
        if status:
            query = query.filter(Order.status == status)
        if start_date:
            query = query.filter(Order.created_at >= start_date)
        if end_date:
            query = query.filter(Order.created_at <= end_date)
        if user_id:
            query = query.filter(Order.user_id == user_id)
        if search:
            term = search.lower()
            query = query.filter(or_(
                func.lower(Order.order_number).contains(term),
                func.lower(Order.shipping_address).contains(term)
            ))
        return query

    def list_orders(
        self,
        db: Session,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        search: Optional[str] = None,
        user_id: Optional[str] = None,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List[Order], int]:
        """
        List orders for the back-office, newest first.

        Returns:
            Orders for the requested page and the total match count
        """
        with self.tracer.start_as_current_span("db.query.list_orders") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "orders")

            query = self._filtered_query(db, status, start_date, end_date, search, user_id)
            total = query.count()
            orders = (
                query.options(selectinload(Order.items).selectinload(OrderItem.product))
                .order_by(Order.created_at.desc(), Order.order_number.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
            db_span.set_attribute("db.rows_returned", len(orders))
            return orders, total

    def _lock_order(self, db: Session, order_id: str) -> Order:
        order = db.query(Order).filter(Order.id == order_id).with_for_update().first()
        if order is None:
            raise StoreError("ORDER_NOT_FOUND", f"Order {order_id} not found")
        return order

    def update_status(
        self,
        db: Session,
        order_id: str,
        new_status: str,
        user_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Order:
        """
        Change an order's status following STATUS_TRANSITIONS.

        Raises:
            StoreError: ORDER_NOT_FOUND, INVALID_STATUS_TRANSITION
        """
        order = self._lock_order(db, order_id)
        old_status = order.status
        if old_status == new_status:
            db.rollback()
            return self.get_order(db, order_id)
        if new_status == OrderStatus.CANCELLED.value:
            return self.cancel_order(
                db, order_id, user_id=user_id, require_pending=False,
                ip_address=ip_address, user_agent=user_agent
            )
        if not can_transition(old_status, new_status):
            db.rollback()
            raise StoreError(
                "INVALID_STATUS_TRANSITION",
                f"Cannot change order status from {old_status} to {new_status}"
            )

        order.status = new_status
        self.activity_service.log(
            db,
            "ORDER_STATUS_UPDATED",
            user_id=user_id,
            table_name="orders",
            record_id=order.id,
            old_data={"status": old_status},
            new_data={"status": new_status},
            ip_address=ip_address,
            user_agent=user_agent
        )
        db.commit()

        order_status_changes_counter.add(1, {"from": old_status, "to": new_status})
        logger.info("Order status updated", extra={
            "user_id": user_id,
            "order_id": order.id,
            "order_number": order.order_number,
            "old_status": old_status,
            "new_status": new_status
        })
        return self.get_order(db, order_id)

    def cancel_order(
        self,
        db: Session,
        order_id: str,
        user_id: Optional[str] = None,
        require_pending: bool = True,
        owner_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Order:
        """
        Cancel an order and return its items to stock.

        Args:
            require_pending: Customers may only cancel pending orders; admins
                may cancel any order that is not delivered or cancelled
            owner_id: When given, the order must belong to this user

        Raises:
            StoreError: ORDER_NOT_FOUND, ORDER_NOT_CANCELLABLE
        """
        order = self._lock_order(db, order_id)
        if owner_id is not None and order.user_id != owner_id:
            db.rollback()
            raise StoreError("ORDER_NOT_FOUND", f"Order {order_id} not found")

        old_status = order.status
        cancellable = (
            old_status == OrderStatus.PENDING.value
            if require_pending
            else can_transition(old_status, OrderStatus.CANCELLED.value)
        )
        if not cancellable:
            db.rollback()
            raise StoreError("ORDER_NOT_CANCELLABLE", "Cannot cancel order in current status")

        quantities: Dict[str, int] = {}
        for item in order.items:
            if item.product_id:
                quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity

        products = self._lock_products(db, quantities.keys(), purchasable_only=False)
        for product_id, product in products.items():
            product.stock += quantities[product_id]

        order.status = OrderStatus.CANCELLED.value
        self.activity_service.log(
            db,
            "ORDER_CANCELLED",
            user_id=user_id,
            table_name="orders",
            record_id=order.id,
            old_data={"status": old_status},
            new_data={
                "status": order.status,
                "restocked": {pid: qty for pid, qty in quantities.items() if pid in products}
            },
            ip_address=ip_address,
            user_agent=user_agent
        )
        db.commit()

        order_status_changes_counter.add(1, {"from": old_status, "to": order.status})
        logger.info("Order cancelled", extra={
            "user_id": user_id,
            "order_id": order.id,
            "order_number": order.order_number,
            "old_status": old_status
        })
        return self.get_order(db, order_id)

    def export_csv(
        self,
        db: Session,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        search: Optional[str] = None
    ) -> str:
        """Render matching orders as CSV, newest first."""
        orders = (
            self._filtered_query(db, status, start_date, end_date, search)
            .order_by(Order.created_at.desc(), Order.order_number.desc())
            .all()
        )

        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(CSV_COLUMNS)
        for order in orders:
            writer.writerow([
                order.order_number,
                order.status,
                f"{order.total_price:.2f}",
                f"{order.shipping_fee:.2f}",
                order.shipping_method,
                order.shipping_address,
                order.created_at.isoformat() if order.created_at else "",
            ])
        return buffer.getvalue()

    def order_statistics(
        self,
        db: Session,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Summarize non-cancelled orders in a date range (default: last 30 days).
        """
        end_date = end_date or utcnow()
        start_date = start_date or end_date - timedelta(days=STATS_DEFAULT_DAYS)

        def count_status(status: OrderStatus):
            return func.coalesce(func.sum(case((Order.status == status.value, 1), else_=0)), 0)

        row = (
            db.query(
                func.count(Order.id),
                func.coalesce(func.sum(Order.total_price + Order.shipping_fee), 0),
                func.coalesce(func.avg(Order.total_price + Order.shipping_fee), 0),
                count_status(OrderStatus.PENDING),
                count_status(OrderStatus.PAID),
                count_status(OrderStatus.SHIPPING),
            )
            .filter(
                Order.created_at >= start_date,
                Order.created_at <= end_date,
                Order.status != OrderStatus.CANCELLED.value
            )
            .one()
        )

        return {
            "start_date": start_date,
            "end_date": end_date,
            "total_orders": int(row[0]),
            "total_revenue": round(float(row[1]), 2),
            "avg_order_value": round(float(row[2]), 2),
            "pending_orders": int(row[3]),
            "paid_orders": int(row[4]),
            "shipping_orders": int(row[5]),
        }
