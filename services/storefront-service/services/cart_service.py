"""Cart management service."""
import logging
from decimal import Decimal
from typing import Any, Dict, List

from sqlalchemy.orm import Session, joinedload
import redis
from opentelemetry import trace

from errors import StoreError
from models import CartItem, Product
from monitoring import cart_additions_counter

logger = logging.getLogger(__name__)

CART_CACHE_TTL = 3600


class CartService:
    """Service for managing shopping carts."""

    def __init__(self, redis_client: redis.Redis):
        """
        Initialize cart service.

        Args:
            redis_client: Redis client holding the per-user cart line counter
        """
        self.redis_client = redis_client
        self.tracer = trace.get_tracer(__name__)

    def _load_product(self, db: Session, product_id: str) -> Product:
        with self.tracer.start_as_current_span("db.query.get_product") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "products")
            db_span.set_attribute("product.id", product_id)

            product = db.get(Product, product_id)
            if product is None or product.deleted_at is not None:
                db_span.set_attribute("db.rows_returned", 0)
                raise StoreError("PRODUCT_NOT_FOUND", "Product not found")
            db_span.set_attribute("db.rows_returned", 1)
            return product

    def _find_item(self, db: Session, user_id: str, product_id: str):
        return db.query(CartItem).filter(
            CartItem.user_id == user_id,
            CartItem.product_id == product_id
        ).first()

    def _refresh_cache(self, db: Session, user_id: str) -> None:
        cache_key = f"cart:{user_id}"
        with self.tracer.start_as_current_span("cache.set") as cache_span:
            cache_span.set_attribute("cache.system", "redis")
            cache_span.set_attribute("cache.operation", "SET")
            cache_span.set_attribute("cache.key", cache_key)

            count = db.query(CartItem).filter(CartItem.user_id == user_id).count()
            try:
                if count:
                    self.redis_client.set(cache_key, count, ex=CART_CACHE_TTL)
                else:
                    self.redis_client.delete(cache_key)
            except redis.RedisError as e:
                logger.error(f"Redis cart cache error: {e}")

    def add_item(
        self,
        db: Session,
        user_id: str,
        product_id: str,
        quantity: int = 1
    ) -> Dict[str, Any]:
        """
        Add a product to the user's cart, merging with an existing line.

        Raises:
            StoreError: PRODUCT_NOT_FOUND, PRODUCT_UNAVAILABLE, INSUFFICIENT_STOCK
        """
        span = trace.get_current_span()
        span.set_attribute("product.id", product_id)
        span.set_attribute("quantity", quantity)

        if quantity <= 0:
            raise StoreError("INVALID_QUANTITY", "Quantity must be positive")

        product = self._load_product(db, product_id)
        if not product.is_purchasable or product.stock <= 0:
            raise StoreError("PRODUCT_UNAVAILABLE", "Product is not available")

        cart_item = self._find_item(db, user_id, product_id)
        current_quantity = cart_item.quantity if cart_item else 0
        if current_quantity + quantity > product.stock:
            raise StoreError("INSUFFICIENT_STOCK", f"Only {product.stock} items available")

        with self.tracer.start_as_current_span("db.query.upsert_cart_item") as db_span:
            db_span.set_attribute("db.table", "cart_items")
            db_span.set_attribute("user.id", user_id)
            if cart_item:
                db_span.set_attribute("db.operation", "UPDATE")
                cart_item.quantity = current_quantity + quantity
            else:
                db_span.set_attribute("db.operation", "INSERT")
                cart_item = CartItem(user_id=user_id, product_id=product_id, quantity=quantity)
                db.add(cart_item)
            db.commit()

        self._refresh_cache(db, user_id)

        cart_additions_counter.add(1, {"product_id": str(product_id)})

        logger.info("Added product to cart", extra={
            "user_id": user_id,
            "product_id": product_id,
            "product_name": product.name,
            "quantity": cart_item.quantity
        })

        return {
            "cart_item_id": cart_item.id,
            "product_name": product.name,
            "quantity": cart_item.quantity
        }

    def update_quantity(
        self,
        db: Session,
        user_id: str,
        product_id: str,
        quantity: int
    ) -> None:
        """Set a line's quantity; zero or less removes it, above stock is clamped."""
        if quantity <= 0:
            self.remove_item(db, user_id, product_id)
            return

        cart_item = self._find_item(db, user_id, product_id)
        if cart_item is None:
            raise StoreError("PRODUCT_NOT_FOUND", "Product is not in cart")

        product = self._load_product(db, product_id)
        cart_item.quantity = min(quantity, product.stock)
        if cart_item.quantity <= 0:
            db.delete(cart_item)
        db.commit()
        self._refresh_cache(db, user_id)

    def remove_item(self, db: Session, user_id: str, product_id: str) -> None:
        cart_item = self._find_item(db, user_id, product_id)
        if cart_item is not None:
            db.delete(cart_item)
            db.commit()
        self._refresh_cache(db, user_id)

    def validate(self, db: Session, user_id: str) -> List[str]:
        """
        Drop lines whose product can no longer be bought.

        Returns:
            Product ids that were removed
        """
        removed = []
        for item in self.get_cart_items(db, user_id):
            product = item.product
            if product is None or not product.is_purchasable or product.stock <= 0:
                removed.append(item.product_id)
                db.delete(item)
        if removed:
            db.commit()
            logger.info("Removed unavailable items from cart", extra={
                "user_id": user_id,
                "product_ids": removed
            })
        self._refresh_cache(db, user_id)
        return removed

    def get_cart(self, db: Session, user_id: str) -> Dict[str, Any]:
        """
        Get user's cart contents.

        Returns:
            Cart lines priced at the current product price, with totals
        """
        items = []
        total_items = 0
        total_price = Decimal("0")

        for item in self.get_cart_items(db, user_id):
            product = item.product
            subtotal = product.price * item.quantity
            total_items += item.quantity
            total_price += subtotal
            items.append({
                "id": item.id,
                "product_id": product.id,
                "product_name": product.name,
                "product_image": product.image_url,
                "unit_price": product.price,
                "quantity": item.quantity,
                "max_quantity": product.stock,
                "subtotal": subtotal
            })

        return {
            "user_id": user_id,
            "items": items,
            "total_items": total_items,
            "total_price": total_price
        }

    def clear_cart(self, db: Session, user_id: str, commit: bool = True) -> None:
        """
        Clear user's cart.

        Args:
            db: Database session
            user_id: User identifier
            commit: Commit immediately; checkout passes False to clear the
                cart inside the order transaction and calls invalidate_cache
                after its own commit
        """
        with self.tracer.start_as_current_span("db.query.delete_cart_items") as db_span:
            db_span.set_attribute("db.operation", "DELETE")
            db_span.set_attribute("db.table", "cart_items")
            db_span.set_attribute("user.id", user_id)

            deleted_count = db.query(CartItem).filter(
                CartItem.user_id == user_id
            ).delete(synchronize_session="fetch")

            db_span.set_attribute("db.rows_affected", deleted_count)

        if commit:
            db.commit()
            self.invalidate_cache(user_id)

    def invalidate_cache(self, user_id: str) -> None:
        """Drop the cached line count; the cart rows stay authoritative."""
        cache_key = f"cart:{user_id}"
        with self.tracer.start_as_current_span("cache.delete") as cache_span:
            cache_span.set_attribute("cache.system", "redis")
            cache_span.set_attribute("cache.operation", "DELETE")
            cache_span.set_attribute("cache.key", cache_key)

            try:
                self.redis_client.delete(cache_key)
            except redis.RedisError as e:
                logger.error(f"Redis cart cache error: {e}")

    def get_cart_items(self, db: Session, user_id: str) -> List[CartItem]:
        """
        Get cart items for user, oldest first, with products loaded.
        """
        with self.tracer.start_as_current_span("db.query.get_cart_items") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "cart_items")
            db_span.set_attribute("user.id", user_id)

            cart_items = (
                db.query(CartItem)
                .options(joinedload(CartItem.product))
                .filter(CartItem.user_id == user_id)
                .order_by(CartItem.created_at, CartItem.id)
                .all()
            )

            db_span.set_attribute("db.rows_returned", len(cart_items))

            return cart_items
