from decimal import Decimal

import pytest

from factories import FAR_AWAY, NEARBY, STORE_LAT, STORE_LNG
from models import StoreSettings
from shipping import format_distance, haversine_km, quote_shipping


def make_settings(**overrides):
    values = dict(
        store_lat=STORE_LAT,
        store_lng=STORE_LNG,
        flat_shipping_fee=Decimal("40.00"),
        shipping_radius_km=Decimal("10.00"),
        is_store_open=True,
    )
    values.update(overrides)
    return StoreSettings(**values)


def test_haversine_same_point_is_zero():
    assert haversine_km(STORE_LAT, STORE_LNG, STORE_LAT, STORE_LNG) == 0


def test_haversine_one_degree_of_latitude():
    assert haversine_km(0, 0, 1, 0) == pytest.approx(111.19, abs=0.01)


def test_haversine_bangkok_to_chiang_mai():
    assert haversine_km(13.7563, 100.5018, 18.7883, 98.9853) == pytest.approx(583, abs=10)


def test_pickup_is_free_and_always_deliverable():
    quote = quote_shipping(make_settings(), "pickup", **FAR_AWAY)

    assert quote.fee == Decimal("0")
    assert quote.distance_km == 0
    assert quote.deliverable is True


def test_delivery_within_radius_charges_flat_fee():
    quote = quote_shipping(make_settings(), "delivery", **NEARBY)

    assert quote.deliverable is True
    assert quote.fee == Decimal("40.00")
    assert 0 < quote.distance_km < 1
    assert quote.radius_km == 10.0


def test_delivery_outside_radius_is_not_deliverable():
    quote = quote_shipping(make_settings(), "delivery", **FAR_AWAY)

    assert quote.deliverable is False
    assert quote.fee == Decimal("0")
    assert quote.distance_km > 10


def test_delivery_without_customer_coordinates_uses_flat_fee():
    quote = quote_shipping(make_settings(), "delivery")

    assert quote.deliverable is True
    assert quote.fee == Decimal("40.00")
    assert quote.distance_km is None


def test_delivery_without_store_coordinates_uses_flat_fee():
    quote = quote_shipping(make_settings(store_lat=None, store_lng=None), "delivery", **FAR_AWAY)

    assert quote.deliverable is True
    assert quote.fee == Decimal("40.00")
    assert quote.distance_km is None


def test_distance_is_rounded_to_two_decimals():
    quote = quote_shipping(make_settings(), "delivery", **NEARBY)

    assert quote.distance_km == round(quote.distance_km, 2)


def test_format_distance():
    assert format_distance(0.5) == "500 meters"
    assert format_distance(12.5) == "12.50 km"
