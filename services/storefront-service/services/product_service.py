"""Product catalog service."""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session
from opentelemetry import trace

from errors import StoreError
from models import Product, utcnow
from schemas import ProductCreate, ProductUpdate
from services.activity_service import ActivityService

logger = logging.getLogger(__name__)

PRODUCT_FIELDS = (
    "name",
    "description",
    "price",
    "stock",
    "image_url",
    "is_available",
    "category",
    "weight_kg",
)


def product_snapshot(product: Product) -> Dict[str, Any]:
    snapshot = {}
    for field in PRODUCT_FIELDS:
        value = getattr(product, field)
        if isinstance(value, Decimal):
            value = float(value)
        snapshot[field] = value
    snapshot["deleted_at"] = product.deleted_at.isoformat() if product.deleted_at else None
    return snapshot


def purchasable_filter():
    return (Product.is_available.is_(True), Product.deleted_at.is_(None))


class ProductService:
    """Catalog browsing and admin product management."""

    def __init__(self, activity_service: ActivityService):
        self.activity_service = activity_service
        self.tracer = trace.get_tracer(__name__)

    def list_products(
        self,
        db: Session,
        category: Optional[str] = None,
        search: Optional[str] = None,
        include_unavailable: bool = False,
        include_deleted: bool = False
    ) -> List[Product]:
        """
        List products ordered by name.

        Storefront callers get purchasable products only; admins may include
        unavailable and soft-deleted ones.
        """
        with self.tracer.start_as_current_span("db.query.list_products") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "products")

            query = db.query(Product)
            if not include_deleted:
                query = query.filter(Product.deleted_at.is_(None))
            if not include_unavailable:
                query = query.filter(Product.is_available.is_(True))
            if category:
                query = query.filter(Product.category == category)
            if search:
                query = query.filter(func.lower(Product.name).contains(search.lower()))

            products = query.order_by(Product.name, Product.id).all()
            db_span.set_attribute("db.rows_returned", len(products))
            return products

    def list_categories(self, db: Session) -> List[str]:
        rows = (
            db.query(Product.category)
            .filter(*purchasable_filter(), Product.category.isnot(None))
            .distinct()
            .all()
        )
        return sorted(row[0] for row in rows)

    def get_product(self, db: Session, product_id: str, include_deleted: bool = False) -> Product:
        """
        Get a product by id.

        Raises:
            StoreError: PRODUCT_NOT_FOUND
        """
        product = db.get(Product, product_id)
        if product is None or (product.deleted_at is not None and not include_deleted):
            raise StoreError("PRODUCT_NOT_FOUND", f"Product {product_id} not found")
        return product

    def create_product(
        self,
        db: Session,
        data: ProductCreate,
        user_id: Optional[str] = None
    ) -> Product:
        product = Product(**data.model_dump())
        db.add(product)
        db.flush()

        self.activity_service.log(
            db,
            "PRODUCT_CREATED",
            user_id=user_id,
            table_name="products",
            record_id=product.id,
            new_data=product_snapshot(product)
        )
        db.commit()
        db.refresh(product)

        logger.info("Product created", extra={
            "user_id": user_id,
            "product_id": product.id,
            "product_name": product.name
        })
        return product

    def update_product(
        self,
        db: Session,
        product_id: str,
        data: ProductUpdate,
        user_id: Optional[str] = None
    ) -> Product:
        product = self.get_product(db, product_id, include_deleted=True)
        old_data = product_snapshot(product)

        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(product, field, value)

        self.activity_service.log(
            db,
            "PRODUCT_UPDATED",
            user_id=user_id,
            table_name="products",
            record_id=product.id,
            old_data=old_data,
            new_data=product_snapshot(product)
        )
        db.commit()
        db.refresh(product)

        logger.info("Product updated", extra={
            "user_id": user_id,
            "product_id": product.id
        })
        return product

    def delete_product(self, db: Session, product_id: str, user_id: Optional[str] = None) -> Product:
        """Soft delete: hide the product but keep it for existing orders."""
        product = self.get_product(db, product_id)
        old_data = product_snapshot(product)

        product.deleted_at = utcnow()
        product.is_available = False

        self.activity_service.log(
            db,
            "PRODUCT_DELETED",
            user_id=user_id,
            table_name="products",
            record_id=product.id,
            old_data=old_data,
            new_data=product_snapshot(product)
        )
        db.commit()
        db.refresh(product)

        logger.info("Product deleted", extra={
            "user_id": user_id,
            "product_id": product.id
        })
        return product

    def restore_product(self, db: Session, product_id: str, user_id: Optional[str] = None) -> Product:
        product = self.get_product(db, product_id, include_deleted=True)
        old_data = product_snapshot(product)

        product.deleted_at = None
        product.is_available = True

        self.activity_service.log(
            db,
            "PRODUCT_RESTORED",
            user_id=user_id,
            table_name="products",
            record_id=product.id,
            old_data=old_data,
            new_data=product_snapshot(product)
        )
        db.commit()
        db.refresh(product)
        return product
