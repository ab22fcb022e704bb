"""Store information and shipping quote router."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import get_db
from dependencies import get_store_service
from schemas import ShippingQuoteRequest, ShippingQuoteResponse, StorePublicResponse
from services.store_service import StoreService
from shipping import format_distance, quote_shipping

router = APIRouter(tags=["store"])


@router.get("/store", response_model=StorePublicResponse)
async def get_store(
    db: Session = Depends(get_db),
    store_service: StoreService = Depends(get_store_service)
):
    """Public store information."""
    settings = store_service.get_settings(db)
    db.commit()
    return settings


@router.post("/shipping/quote", response_model=ShippingQuoteResponse)
async def shipping_quote(
    request: ShippingQuoteRequest,
    db: Session = Depends(get_db),
    store_service: StoreService = Depends(get_store_service)
):
    """Quote shipping for the current store settings."""
    settings = store_service.get_settings(db)
    quote = quote_shipping(settings, request.shipping_method.value, request.lat, request.lng)

    return {
        "shipping_method": quote.method,
        "shipping_fee": float(quote.fee),
        "distance_km": quote.distance_km,
        "distance_text": format_distance(quote.distance_km) if quote.distance_km is not None else None,
        "shipping_radius_km": quote.radius_km,
        "deliverable": quote.deliverable
    }
