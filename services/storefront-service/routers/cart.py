"""Cart API router."""
from fastapi import APIRouter, Depends, HTTPException, Path
from sqlalchemy.orm import Session

from auth import get_current_user
from database import get_db
from dependencies import get_cart_service
from errors import StoreError
from models import Profile
from schemas import (
    AddToCartRequest,
    AddToCartResponse,
    CartResponse,
    CartValidationResponse,
    UpdateCartItemRequest,
)
from services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("", response_model=CartResponse)
async def get_cart(
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
    cart_service: CartService = Depends(get_cart_service)
):
    """Get user's cart - requires authentication."""
    return cart_service.get_cart(db, user.id)


@router.post("/add", response_model=AddToCartResponse)
async def add_to_cart(
    request: AddToCartRequest,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
    cart_service: CartService = Depends(get_cart_service)
):
    """Add item to cart - requires authentication."""
    try:
        result = cart_service.add_item(
            db=db,
            user_id=user.id,
            product_id=request.product_id,
            quantity=request.quantity
        )
    except StoreError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())

    return {
        "message": "Item added to cart",
        **result
    }


@router.put("/items/{product_id}", response_model=CartResponse)
async def update_cart_item(
    request: UpdateCartItemRequest,
    product_id: str = Path(..., description="Product ID"),
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
    cart_service: CartService = Depends(get_cart_service)
):
    """Set a line's quantity; zero removes the line."""
    try:
        cart_service.update_quantity(db, user.id, product_id, request.quantity)
    except StoreError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return cart_service.get_cart(db, user.id)


@router.delete("/items/{product_id}", response_model=CartResponse)
async def remove_cart_item(
    product_id: str = Path(..., description="Product ID"),
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
    cart_service: CartService = Depends(get_cart_service)
):
    cart_service.remove_item(db, user.id, product_id)
    return cart_service.get_cart(db, user.id)


@router.delete("", response_model=CartResponse)
async def clear_cart(
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
    cart_service: CartService = Depends(get_cart_service)
):
    cart_service.clear_cart(db, user.id)
    return cart_service.get_cart(db, user.id)


@router.post("/validate", response_model=CartValidationResponse)
async def validate_cart(
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
    cart_service: CartService = Depends(get_cart_service)
):
    """Drop lines whose product can no longer be bought."""
    removed = cart_service.validate(db, user.id)
    return {
        "removed_product_ids": removed,
        "cart": cart_service.get_cart(db, user.id)
    }
