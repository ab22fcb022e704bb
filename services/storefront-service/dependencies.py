"""Dependency injection for services."""
from typing import Any, Dict, Optional
import redis
import httpx
from fastapi import Depends, Request

from services.activity_service import ActivityService
from services.cart_service import CartService
from services.external_service import SlipVerifierClient
from services.order_service import OrderService
from services.payment_service import PaymentService
from services.product_service import ProductService
from services.slip_storage import SlipStorage
from services.store_service import StoreService


def get_redis(request: Request) -> redis.Redis:
    """Get Redis client from app state."""
    return request.app.state.redis_client


def get_http_client(request: Request) -> httpx.AsyncClient:
    """Get HTTP client from app state."""
    return request.app.state.http_client


def get_request_meta(request: Request) -> Dict[str, Optional[str]]:
    """Client address and user agent recorded on activity log rows."""
    client_ip = request.client.host if request.client else None
    if "x-forwarded-for" in request.headers:
        client_ip = request.headers["x-forwarded-for"].split(",")[0].strip()
    return {
        "ip_address": client_ip,
        "user_agent": request.headers.get("user-agent")
    }


def get_activity_service() -> ActivityService:
    return ActivityService()


def get_store_service() -> StoreService:
    return StoreService(get_activity_service())


def get_product_service() -> ProductService:
    return ProductService(get_activity_service())


def get_cart_service(redis_client: Any = Depends(get_redis)) -> CartService:
    """Get cart service instance."""
    return CartService(redis_client)


def get_slip_storage() -> SlipStorage:
    return SlipStorage()


def get_order_service(cart_service: CartService = Depends(get_cart_service)) -> OrderService:
    """Get order service instance."""
    activity_service = get_activity_service()
    return OrderService(cart_service, StoreService(activity_service), activity_service)


def get_payment_service(
    http_client: httpx.AsyncClient = Depends(get_http_client),
    slip_storage: SlipStorage = Depends(get_slip_storage)
) -> PaymentService:
    """Get payment service instance."""
    return PaymentService(SlipVerifierClient(http_client), get_activity_service(), slip_storage)
