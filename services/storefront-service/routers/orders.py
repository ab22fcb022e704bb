"""Orders API router."""
from typing import Dict, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Path, UploadFile
from sqlalchemy.orm import Session

from auth import get_current_user
from database import get_db
from dependencies import get_order_service, get_payment_service, get_request_meta
from errors import StoreError
from models import Profile
from schemas import (
    CheckoutRequest,
    CheckoutResponse,
    OrderResponse,
    OrdersListResponse,
    PaymentResponse,
    VerifyPaymentRequest,
)
from services.order_service import OrderService
from services.payment_service import PaymentService

router = APIRouter(prefix="/orders", tags=["orders"])


def payment_response(order, message: str) -> Dict:
    return {
        "message": message,
        "order_id": order.id,
        "order_number": order.order_number,
        "status": order.status,
        "trans_ref": order.trans_ref,
        "amount": float(order.grand_total),
        "payment_slip_url": order.payment_slip_url
    }


@router.post("/checkout", response_model=CheckoutResponse)
async def checkout(
    request: CheckoutRequest,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
    order_service: OrderService = Depends(get_order_service),
    meta: Dict[str, Optional[str]] = Depends(get_request_meta)
):
    """Place an order for the cart contents - requires authentication."""
    try:
        order = order_service.checkout(
            db=db,
            user_id=user.id,
            shipping_method=request.shipping_method.value,
            shipping_address=request.shipping_address,
            lat=request.lat,
            lng=request.lng,
            **meta
        )
    except StoreError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())

    return {
        "message": "Order placed",
        "order_id": order.id,
        "order_number": order.order_number,
        "total_price": float(order.total_price),
        "shipping_fee": float(order.shipping_fee),
        "grand_total": float(order.grand_total)
    }


@router.get("", response_model=OrdersListResponse)
async def get_orders(
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
    order_service: OrderService = Depends(get_order_service)
):
    """Get user's orders, newest first - requires authentication."""
    orders = order_service.get_user_orders(db, user.id)
    return {
        "orders": orders,
        "total": len(orders),
        "page": 1,
        "limit": len(orders),
        "total_pages": 1
    }


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: str = Path(..., description="Order ID"),
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
    order_service: OrderService = Depends(get_order_service)
):
    try:
        return order_service.get_order(db, order_id, user_id=user.id)
    except StoreError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: str = Path(..., description="Order ID"),
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
    order_service: OrderService = Depends(get_order_service),
    meta: Dict[str, Optional[str]] = Depends(get_request_meta)
):
    """Cancel a pending order of the caller."""
    try:
        return order_service.cancel_order(
            db, order_id, user_id=user.id, require_pending=True, owner_id=user.id, **meta
        )
    except StoreError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post("/{order_id}/payment-slip", response_model=PaymentResponse)
async def upload_payment_slip(
    order_id: str = Path(..., description="Order ID"),
    file: UploadFile = File(...),
    trans_ref: str = Form(..., min_length=5, max_length=100),
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
    payment_service: PaymentService = Depends(get_payment_service),
    meta: Dict[str, Optional[str]] = Depends(get_request_meta)
):
    """Upload a payment slip image or PDF and verify the payment."""
    data = await file.read()
    try:
        order = await payment_service.upload_and_verify(
            db,
            order_id,
            trans_ref.strip(),
            filename=file.filename,
            content_type=file.content_type,
            data=data,
            user_id=user.id,
            **meta
        )
    except StoreError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())

    return payment_response(order, "Payment verified")


@router.post("/{order_id}/verify-payment", response_model=PaymentResponse)
async def verify_payment(
    request: VerifyPaymentRequest,
    order_id: str = Path(..., description="Order ID"),
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
    payment_service: PaymentService = Depends(get_payment_service),
    meta: Dict[str, Optional[str]] = Depends(get_request_meta)
):
    """Verify a previously uploaded payment slip."""
    try:
        order = await payment_service.verify_payment(
            db,
            order_id,
            request.trans_ref.strip(),
            request.slip_url,
            user_id=user.id,
            **meta
        )
    except StoreError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())

    return payment_response(order, "Payment verified")
