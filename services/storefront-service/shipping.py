"""Shipping distance and fee calculation."""
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from models import ShippingMethod, StoreSettings

EARTH_RADIUS_KM = 6371


@dataclass
class ShippingQuote:
    """Fee and distance for a shipping request."""

    method: str
    fee: Decimal
    distance_km: Optional[float]
    deliverable: bool
    radius_km: Optional[float] = None


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in kilometers."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def quote_shipping(
    settings: StoreSettings,
    method: str,
    lat: Optional[float] = None,
    lng: Optional[float] = None
) -> ShippingQuote:
    """
    Quote shipping for the current store settings.

    Pickup is free. Delivery costs the flat fee when the customer is within the
    shipping radius; without coordinates on either side the flat fee applies
    and no distance is reported.
    """
    if method == ShippingMethod.PICKUP.value:
        return ShippingQuote(method=method, fee=Decimal("0"), distance_km=0.0, deliverable=True)

    flat_fee = Decimal(settings.flat_shipping_fee or 0)
    radius = float(settings.shipping_radius_km) if settings.shipping_radius_km is not None else None

    have_store = settings.store_lat is not None and settings.store_lng is not None
    have_customer = lat is not None and lng is not None
    if not (have_store and have_customer):
        return ShippingQuote(method=method, fee=flat_fee, distance_km=None, deliverable=True, radius_km=radius)

    distance = round(haversine_km(settings.store_lat, settings.store_lng, lat, lng), 2)
    deliverable = radius is None or distance <= radius
    return ShippingQuote(
        method=method,
        fee=flat_fee if deliverable else Decimal("0"),
        distance_km=distance,
        deliverable=deliverable,
        radius_km=radius,
    )


def format_distance(distance_km: float) -> str:
    if distance_km < 1:
        return f"{round(distance_km * 1000)} meters"
    return f"{distance_km:.2f} km"
