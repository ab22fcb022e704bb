"""Products API router."""
from fastapi import APIRouter, Depends, HTTPException, Path, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from opentelemetry import trace

from database import get_db
from dependencies import get_product_service
from errors import StoreError
from monitoring import product_views_counter
from schemas import CategoriesResponse, ProductResponse
from services.product_service import ProductService

router = APIRouter(prefix="/products", tags=["products"])


@router.get("", response_model=List[ProductResponse])
async def get_products(
    category: Optional[str] = Query(None, description="Exact category name"),
    search: Optional[str] = Query(None, max_length=100, description="Case-insensitive name search"),
    db: Session = Depends(get_db),
    product_service: ProductService = Depends(get_product_service)
):
    """
    Get purchasable products ordered by name.

    Examples:
    - GET /products
    - GET /products?category=Groceries
    - GET /products?search=rice
    """
    products = product_service.list_products(db, category=category, search=search)

    span = trace.get_current_span()
    span.set_attribute("product.count", len(products))
    span.set_attribute("endpoint.type", "product_catalog")

    product_views_counter.add(1, {"view": "catalog"})
    return products


@router.get("/categories", response_model=CategoriesResponse)
async def get_categories(
    db: Session = Depends(get_db),
    product_service: ProductService = Depends(get_product_service)
):
    """Distinct categories of purchasable products."""
    return {"categories": product_service.list_categories(db)}


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: str = Path(..., description="Product ID"),
    db: Session = Depends(get_db),
    product_service: ProductService = Depends(get_product_service)
):
    """Get product details; deleted products are not found."""
    try:
        product = product_service.get_product(db, product_id)
    except StoreError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())

    span = trace.get_current_span()
    span.set_attribute("product.id", product_id)

    product_views_counter.add(1, {"view": "detail", "category": product.category or "none"})
    return product
