"""Endpoint tests through the ASGI app."""
from datetime import datetime, timezone

import pytest

from factories import ADDRESS, FAR_AWAY, NEARBY
from models import Profile


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


# Auth

@pytest.mark.asyncio
async def test_login(client):
    response = await client.post("/auth/login", json={"username": "customer", "password": "customer123"})

    assert response.status_code == 200
    assert response.json() == {
        "token": "customer-token-123",
        "token_type": "bearer",
        "user_id": "user-customer",
    }


@pytest.mark.asyncio
async def test_login_wrong_password(client):
    response = await client.post("/auth/login", json={"username": "customer", "password": "nope"})

    assert response.status_code == 401


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "headers",
    [{}, {"Authorization": "Token abc"}, {"Authorization": "Bearer unknown-token"}],
)
async def test_protected_endpoints_require_valid_token(client, headers):
    response = await client.get("/cart", headers=headers)

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_me_creates_profile(client, db_session, customer_headers, admin_headers):
    response = await client.get("/auth/me", headers=customer_headers)

    assert response.status_code == 200
    assert response.json()["id"] == "user-customer"
    assert response.json()["is_admin"] is False
    assert db_session.get(Profile, "user-customer") is not None

    admin = await client.get("/auth/me", headers=admin_headers)
    assert admin.json()["is_admin"] is True


@pytest.mark.asyncio
async def test_update_profile(client, customer_headers):
    response = await client.put(
        "/auth/me",
        json={
            "display_name": "  Somchai <b>  ",
            "phone": "0812345678",
            "email": "",
            "address": ADDRESS,
            **NEARBY,
        },
        headers=customer_headers,
    )

    assert response.status_code == 200, response.text
    data = response.json()
    assert data["display_name"] == "Somchai b"
    assert data["phone"] == "0812345678"
    assert data["email"] is None
    assert data["lat"] == NEARBY["lat"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"phone": "12345"},
        {"phone": "1812345678"},
        {"email": "not-an-email"},
        {"lat": 95, "lng": 100},
        {"lat": 13.7},
    ],
)
async def test_update_profile_validation(client, customer_headers, payload):
    response = await client.put("/auth/me", json=payload, headers=customer_headers)

    assert response.status_code == 422


# Catalog and store

@pytest.mark.asyncio
async def test_catalog_lists_purchasable_products(client, make_product):
    make_product(name="Fish Sauce", category="Groceries")
    make_product(name="Dish Soap", category="Household")
    make_product(name="Hidden", category="Secret", is_available=False)
    make_product(name="Gone", category="Old", deleted_at=datetime.now(timezone.utc))

    response = await client.get("/products")
    assert [p["name"] for p in response.json()] == ["Dish Soap", "Fish Sauce"]

    response = await client.get("/products", params={"search": "SAUCE"})
    assert [p["name"] for p in response.json()] == ["Fish Sauce"]

    response = await client.get("/products", params={"category": "Household"})
    assert [p["name"] for p in response.json()] == ["Dish Soap"]

    response = await client.get("/products/categories")
    assert response.json() == {"categories": ["Groceries", "Household"]}


@pytest.mark.asyncio
async def test_product_detail(client, make_product):
    product = make_product(name="Fish Sauce", price="35.00")
    deleted = make_product(name="Gone", deleted_at=datetime.now(timezone.utc))

    response = await client.get(f"/products/{product.id}")
    assert response.status_code == 200
    assert response.json()["price"] == 35.0

    response = await client.get(f"/products/{deleted.id}")
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "PRODUCT_NOT_FOUND"


@pytest.mark.asyncio
async def test_store_info(client):
    response = await client.get("/store")

    assert response.status_code == 200
    data = response.json()
    assert data["store_name"] == "Test Shop"
    assert data["flat_shipping_fee"] == 40.0
    assert data["is_store_open"] is True


@pytest.mark.asyncio
async def test_shipping_quote(client):
    response = await client.post("/shipping/quote", json={"shipping_method": "delivery", **NEARBY})
    data = response.json()
    assert data["deliverable"] is True
    assert data["shipping_fee"] == 40.0
    assert data["distance_text"].endswith("meters")

    response = await client.post("/shipping/quote", json={"shipping_method": "delivery", **FAR_AWAY})
    assert response.json()["deliverable"] is False

    response = await client.post("/shipping/quote", json={"shipping_method": "pickup"})
    assert response.json()["shipping_fee"] == 0


# Cart and orders

@pytest.mark.asyncio
async def test_cart_flow(client, customer_headers, make_product):
    product = make_product(name="Coconut Milk", price="29.00", stock=4)

    response = await client.post(
        "/cart/add", json={"product_id": product.id, "quantity": 2}, headers=customer_headers
    )
    assert response.status_code == 200
    assert response.json()["message"] == "Item added to cart"
    assert response.json()["quantity"] == 2

    response = await client.post(
        "/cart/add", json={"product_id": product.id, "quantity": 3}, headers=customer_headers
    )
    assert response.status_code == 409
    assert response.json()["detail"] == {"code": "INSUFFICIENT_STOCK", "message": "Only 4 items available"}

    response = await client.put(f"/cart/items/{product.id}", json={"quantity": 3}, headers=customer_headers)
    assert response.json()["total_items"] == 3
    assert response.json()["total_price"] == 87.0

    response = await client.delete(f"/cart/items/{product.id}", headers=customer_headers)
    assert response.json()["items"] == []


@pytest.mark.asyncio
async def test_cart_add_rejects_non_positive_quantity(client, customer_headers, make_product):
    product = make_product()

    response = await client.post(
        "/cart/add", json={"product_id": product.id, "quantity": 0}, headers=customer_headers
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_validate_cart(client, db_session, customer_headers, make_product):
    product = make_product()
    await client.post("/cart/add", json={"product_id": product.id}, headers=customer_headers)
    product.stock = 0
    db_session.commit()

    response = await client.post("/cart/validate", headers=customer_headers)

    assert response.json()["removed_product_ids"] == [product.id]
    assert response.json()["cart"]["items"] == []


@pytest.mark.asyncio
async def test_checkout_and_order_history(client, customer_headers, shopper_headers, make_product):
    product = make_product(price="100.00", stock=5)
    await client.post("/cart/add", json={"product_id": product.id, "quantity": 2}, headers=customer_headers)

    response = await client.post(
        "/orders/checkout",
        json={"shipping_method": "delivery", "shipping_address": ADDRESS, **NEARBY},
        headers=customer_headers,
    )
    assert response.status_code == 200, response.text
    checkout = response.json()
    assert checkout["total_price"] == 200.0
    assert checkout["shipping_fee"] == 40.0
    assert checkout["grand_total"] == 240.0

    cart = await client.get("/cart", headers=customer_headers)
    assert cart.json()["items"] == []

    orders = await client.get("/orders", headers=customer_headers)
    assert orders.json()["total"] == 1
    order = orders.json()["orders"][0]
    assert order["order_number"] == checkout["order_number"]
    assert order["items"][0]["quantity"] == 2
    assert order["items"][0]["product_name"] == product.name

    detail = await client.get(f"/orders/{checkout['order_id']}", headers=customer_headers)
    assert detail.status_code == 200

    other = await client.get(f"/orders/{checkout['order_id']}", headers=shopper_headers)
    assert other.status_code == 404


@pytest.mark.asyncio
async def test_checkout_outside_delivery_area(client, customer_headers, make_product):
    product = make_product()
    await client.post("/cart/add", json={"product_id": product.id}, headers=customer_headers)

    response = await client.post(
        "/orders/checkout",
        json={"shipping_method": "delivery", "shipping_address": ADDRESS, **FAR_AWAY},
        headers=customer_headers,
    )

    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "OUTSIDE_DELIVERY_AREA"


@pytest.mark.asyncio
async def test_checkout_empty_cart(client, customer_headers):
    response = await client.post("/orders/checkout", json={"shipping_method": "pickup"}, headers=customer_headers)

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "EMPTY_CART"


@pytest.mark.asyncio
async def test_customer_cancels_pending_order(client, customer_headers, make_product):
    product = make_product(stock=5)
    await client.post("/cart/add", json={"product_id": product.id, "quantity": 2}, headers=customer_headers)
    checkout = await client.post("/orders/checkout", json={"shipping_method": "pickup"}, headers=customer_headers)
    order_id = checkout.json()["order_id"]

    response = await client.post(f"/orders/{order_id}/cancel", headers=customer_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"

    again = await client.post(f"/orders/{order_id}/cancel", headers=customer_headers)
    assert again.status_code == 409

    detail = await client.get(f"/products/{product.id}")
    assert detail.json()["stock"] == 5
