"""Back-office API router - admin only."""
import math
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from auth import require_admin
from database import get_db
from dependencies import (
    get_activity_service,
    get_order_service,
    get_product_service,
    get_request_meta,
    get_store_service,
)
from errors import StoreError
from models import OrderStatus, Profile
from schemas import (
    ActivityLogListResponse,
    OrderResponse,
    OrderStatisticsResponse,
    OrderStatusUpdate,
    OrdersListResponse,
    ProductCreate,
    ProductResponse,
    ProductUpdate,
    StoreSettingsResponse,
    StoreSettingsUpdate,
)
from services.activity_service import ActivityService
from services.order_service import OrderService
from services.product_service import ProductService
from services.store_service import StoreService

router = APIRouter(prefix="/admin", tags=["admin"])


def store_error(e: StoreError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.to_detail())


# Orders

@router.get("/orders", response_model=OrdersListResponse)
async def list_orders(
    status: Optional[OrderStatus] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    search: Optional[str] = Query(None, max_length=100, description="Order number or address"),
    user_id: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    admin: Profile = Depends(require_admin),
    order_service: OrderService = Depends(get_order_service)
):
    """List orders with filters, newest first."""
    orders, total = order_service.list_orders(
        db,
        status=status.value if status else None,
        start_date=start_date,
        end_date=end_date,
        search=search,
        user_id=user_id,
        page=page,
        limit=limit
    )
    return {
        "orders": orders,
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if total else 0
    }


@router.get("/orders/export")
async def export_orders(
    status: Optional[OrderStatus] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    db: Session = Depends(get_db),
    admin: Profile = Depends(require_admin),
    order_service: OrderService = Depends(get_order_service)
):
    """Download matching orders as CSV."""
    content = order_service.export_csv(
        db,
        status=status.value if status else None,
        start_date=start_date,
        end_date=end_date,
        search=search
    )
    filename = f"orders-{datetime.now().strftime('%Y%m%d')}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


@router.get("/orders/stats", response_model=OrderStatisticsResponse)
async def order_stats(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    db: Session = Depends(get_db),
    admin: Profile = Depends(require_admin),
    order_service: OrderService = Depends(get_order_service)
):
    """Order statistics; defaults to the last 30 days."""
    return order_service.order_statistics(db, start_date=start_date, end_date=end_date)


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: str = Path(..., description="Order ID"),
    db: Session = Depends(get_db),
    admin: Profile = Depends(require_admin),
    order_service: OrderService = Depends(get_order_service)
):
    try:
        return order_service.get_order(db, order_id)
    except StoreError as e:
        raise store_error(e)


@router.patch("/orders/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    request: OrderStatusUpdate,
    order_id: str = Path(..., description="Order ID"),
    db: Session = Depends(get_db),
    admin: Profile = Depends(require_admin),
    order_service: OrderService = Depends(get_order_service),
    meta: Dict[str, Optional[str]] = Depends(get_request_meta)
):
    """Change an order's status; cancelling returns items to stock."""
    try:
        return order_service.update_status(
            db, order_id, request.status.value, user_id=admin.id, **meta
        )
    except StoreError as e:
        raise store_error(e)


# Products

@router.get("/products", response_model=List[ProductResponse])
async def list_products(
    include_deleted: bool = Query(False),
    category: Optional[str] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    db: Session = Depends(get_db),
    admin: Profile = Depends(require_admin),
    product_service: ProductService = Depends(get_product_service)
):
    """All products, including unavailable and optionally deleted ones."""
    return product_service.list_products(
        db,
        category=category,
        search=search,
        include_unavailable=True,
        include_deleted=include_deleted
    )


@router.post("/products", response_model=ProductResponse, status_code=201)
async def create_product(
    request: ProductCreate,
    db: Session = Depends(get_db),
    admin: Profile = Depends(require_admin),
    product_service: ProductService = Depends(get_product_service)
):
    return product_service.create_product(db, request, user_id=admin.id)


@router.patch("/products/{product_id}", response_model=ProductResponse)
async def update_product(
    request: ProductUpdate,
    product_id: str = Path(..., description="Product ID"),
    db: Session = Depends(get_db),
    admin: Profile = Depends(require_admin),
    product_service: ProductService = Depends(get_product_service)
):
    try:
        return product_service.update_product(db, product_id, request, user_id=admin.id)
    except StoreError as e:
        raise store_error(e)


@router.delete("/products/{product_id}", response_model=ProductResponse)
async def delete_product(
    product_id: str = Path(..., description="Product ID"),
    db: Session = Depends(get_db),
    admin: Profile = Depends(require_admin),
    product_service: ProductService = Depends(get_product_service)
):
    """Soft delete: the product disappears from the storefront."""
    try:
        return product_service.delete_product(db, product_id, user_id=admin.id)
    except StoreError as e:
        raise store_error(e)


@router.post("/products/{product_id}/restore", response_model=ProductResponse)
async def restore_product(
    product_id: str = Path(..., description="Product ID"),
    db: Session = Depends(get_db),
    admin: Profile = Depends(require_admin),
    product_service: ProductService = Depends(get_product_service)
):
    try:
        return product_service.restore_product(db, product_id, user_id=admin.id)
    except StoreError as e:
        raise store_error(e)


# Store settings

@router.get("/store-settings", response_model=StoreSettingsResponse)
async def get_store_settings(
    db: Session = Depends(get_db),
    admin: Profile = Depends(require_admin),
    store_service: StoreService = Depends(get_store_service)
):
    settings = store_service.get_settings(db)
    db.commit()
    return settings


@router.put("/store-settings", response_model=StoreSettingsResponse)
async def update_store_settings(
    request: StoreSettingsUpdate,
    db: Session = Depends(get_db),
    admin: Profile = Depends(require_admin),
    store_service: StoreService = Depends(get_store_service),
    meta: Dict[str, Optional[str]] = Depends(get_request_meta)
):
    return store_service.update_settings(db, request, user_id=admin.id, **meta)


# Activity log

@router.get("/activity-logs", response_model=ActivityLogListResponse)
async def list_activity_logs(
    filter: str = Query("all", pattern="^(all|error|order|payment)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    admin: Profile = Depends(require_admin),
    activity_service: ActivityService = Depends(get_activity_service)
):
    """Activity log, newest first."""
    rows, has_more = activity_service.list_logs(db, log_filter=filter, page=page, limit=limit)
    logs = [
        {
            "id": row.id,
            "user_id": row.user_id,
            "user_display_name": row.user.display_name if row.user else None,
            "action_type": row.action_type,
            "table_name": row.table_name,
            "record_id": row.record_id,
            "old_data": row.old_data,
            "new_data": row.new_data,
            "ip_address": row.ip_address,
            "user_agent": row.user_agent,
            "error_message": row.error_message,
            "created_at": row.created_at
        }
        for row in rows
    ]
    return {"logs": logs, "page": page, "limit": limit, "has_more": has_more}
