"""Back-office endpoints."""
import pytest

from factories import ADDRESS, NEARBY
from models import ActivityLog, Product, StoreSettings


async def place_order(client, headers, product, quantity=1, **body):
    await client.post("/cart/add", json={"product_id": product.id, "quantity": quantity}, headers=headers)
    body = body or {"shipping_method": "pickup"}
    response = await client.post("/orders/checkout", json=body, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "method, path",
    [
        ("GET", "/admin/orders"),
        ("GET", "/admin/orders/stats"),
        ("GET", "/admin/products"),
        ("GET", "/admin/store-settings"),
        ("GET", "/admin/activity-logs"),
    ],
)
async def test_admin_endpoints_reject_customers(client, customer_headers, method, path):
    response = await client.request(method, path, headers=customer_headers)

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_admin_lists_and_updates_orders(client, customer_headers, admin_headers, make_product):
    product = make_product(price="100.00", stock=5)
    order = await place_order(
        client, customer_headers, product, 2,
        shipping_method="delivery", shipping_address=ADDRESS, **NEARBY
    )

    listing = await client.get("/admin/orders", params={"status": "pending"}, headers=admin_headers)
    assert listing.status_code == 200
    assert listing.json()["total"] == 1
    assert listing.json()["total_pages"] == 1

    response = await client.patch(
        f"/admin/orders/{order['order_id']}/status", json={"status": "processing"}, headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["status"] == "processing"

    response = await client.patch(
        f"/admin/orders/{order['order_id']}/status", json={"status": "pending"}, headers=admin_headers
    )
    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "INVALID_STATUS_TRANSITION"

    response = await client.patch(
        f"/admin/orders/{order['order_id']}/status", json={"status": "cancelled"}, headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"

    detail = await client.get(f"/products/{product.id}")
    assert detail.json()["stock"] == 5


@pytest.mark.asyncio
async def test_admin_status_rejects_unknown_status(client, customer_headers, admin_headers, make_product):
    order = await place_order(client, customer_headers, make_product())

    response = await client.patch(
        f"/admin/orders/{order['order_id']}/status", json={"status": "lost"}, headers=admin_headers
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_admin_order_detail(client, customer_headers, admin_headers, make_product):
    order = await place_order(client, customer_headers, make_product())

    response = await client.get(f"/admin/orders/{order['order_id']}", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["user_id"] == "user-customer"

    missing = await client.get("/admin/orders/missing", headers=admin_headers)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_export_orders_csv(client, customer_headers, admin_headers, make_product):
    order = await place_order(client, customer_headers, make_product(price="45.00"))

    response = await client.get("/admin/orders/export", headers=admin_headers)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "attachment" in response.headers["content-disposition"]
    lines = response.text.strip().splitlines()
    assert lines[0] == "order_number,status,total_price,shipping_fee,shipping_method,shipping_address,created_at"
    assert lines[1].startswith(f"{order['order_number']},pending,45.00,0.00,pickup,Store Pickup,")


@pytest.mark.asyncio
async def test_order_stats(client, customer_headers, admin_headers, make_product):
    await place_order(client, customer_headers, make_product(price="45.00"))

    response = await client.get("/admin/orders/stats", headers=admin_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["total_orders"] == 1
    assert data["total_revenue"] == 45.0
    assert data["pending_orders"] == 1


@pytest.mark.asyncio
async def test_product_management(client, db_session, admin_headers):
    response = await client.post(
        "/admin/products",
        json={"name": "Green Curry Paste", "price": 55.5, "stock": 20, "category": "Groceries"},
        headers=admin_headers,
    )
    assert response.status_code == 201, response.text
    product_id = response.json()["id"]

    response = await client.patch(f"/admin/products/{product_id}", json={"stock": 15}, headers=admin_headers)
    assert response.json()["stock"] == 15
    assert response.json()["price"] == 55.5

    response = await client.delete(f"/admin/products/{product_id}", headers=admin_headers)
    assert response.json()["deleted_at"] is not None
    assert response.json()["is_available"] is False
    assert (await client.get(f"/products/{product_id}")).status_code == 404

    listing = await client.get("/admin/products", headers=admin_headers)
    assert listing.json() == []
    listing = await client.get("/admin/products", params={"include_deleted": True}, headers=admin_headers)
    assert [p["id"] for p in listing.json()] == [product_id]

    response = await client.post(f"/admin/products/{product_id}/restore", headers=admin_headers)
    assert response.json()["deleted_at"] is None
    assert (await client.get(f"/products/{product_id}")).status_code == 200

    actions = [
        row.action_type
        for row in db_session.query(ActivityLog).filter(ActivityLog.record_id == product_id).all()
    ]
    assert sorted(actions) == sorted([
        "PRODUCT_CREATED", "PRODUCT_UPDATED", "PRODUCT_DELETED", "PRODUCT_RESTORED"
    ])


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"name": "", "price": 10},
        {"name": "Rice", "price": -1},
        {"name": "Rice", "price": 1_000_001},
        {"name": "Rice", "price": 10, "stock": 10_001},
        {"name": "Rice", "price": 10, "stock": 1.5},
    ],
)
async def test_product_validation(client, admin_headers, payload):
    response = await client.post("/admin/products", json=payload, headers=admin_headers)

    assert response.status_code == 422


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "changes",
    [
        {"name": None},
        {"price": None},
        {"stock": None},
        {"is_available": None},
        {"stock": -1},
    ],
)
async def test_product_update_validation(client, db_session, admin_headers, make_product, changes):
    product = make_product(name="Fish Sauce", price="35.00", stock=10)

    response = await client.patch(f"/admin/products/{product.id}", json=changes, headers=admin_headers)

    assert response.status_code == 422
    db_session.expire_all()
    assert db_session.get(Product, product.id).name == "Fish Sauce"
    assert db_session.get(Product, product.id).stock == 10


@pytest.mark.asyncio
async def test_product_update_can_clear_optional_fields(client, admin_headers, make_product):
    product = make_product(category="Groceries")

    response = await client.patch(f"/admin/products/{product.id}", json={"category": None}, headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["category"] is None


@pytest.mark.asyncio
async def test_store_settings_update(client, db_session, admin_headers):
    payload = {
        "store_name": "  Corner Shop ",
        "store_address": "1 Silom Road, Bangkok",
        "store_lat": 13.73,
        "store_lng": 100.52,
        "flat_shipping_fee": 30,
        "shipping_radius_km": 5,
        "is_store_open": False,
    }

    response = await client.put("/admin/store-settings", json=payload, headers=admin_headers)

    assert response.status_code == 200, response.text
    assert response.json()["store_name"] == "Corner Shop"
    assert response.json()["flat_shipping_fee"] == 30.0
    db_session.expire_all()
    assert db_session.query(StoreSettings).one().is_store_open is False

    log = db_session.query(ActivityLog).filter(ActivityLog.action_type == "STORE_SETTINGS_UPDATED").one()
    assert log.old_data["store_name"] == "Test Shop"
    assert log.new_data["store_name"] == "Corner Shop"
    assert log.user_id == "user-admin"
    assert log.ip_address == "127.0.0.1"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "changes",
    [
        {"store_name": "   "},
        {"flat_shipping_fee": -1},
        {"shipping_radius_km": 0},
        {"store_lat": None},
        {"store_lng": 181},
    ],
)
async def test_store_settings_validation(client, admin_headers, changes):
    payload = {
        "store_name": "Corner Shop",
        "store_lat": 13.73,
        "store_lng": 100.52,
        "flat_shipping_fee": 30,
        "shipping_radius_km": 5,
        "is_store_open": True,
    }
    payload.update(changes)

    response = await client.put("/admin/store-settings", json=payload, headers=admin_headers)

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_closed_store_rejects_checkout(client, db_session, customer_headers, make_product):
    product = make_product()
    db_session.query(StoreSettings).update({"is_store_open": False})
    db_session.commit()
    await client.post("/cart/add", json={"product_id": product.id}, headers=customer_headers)

    response = await client.post("/orders/checkout", json={"shipping_method": "pickup"}, headers=customer_headers)

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "STORE_CLOSED"
    db_session.expire_all()
    assert db_session.get(Product, product.id).stock == 10


@pytest.mark.asyncio
async def test_activity_log_filters(client, db_session, customer_headers, admin_headers, make_product):
    await client.put("/auth/me", json={"display_name": "Somchai"}, headers=customer_headers)
    product = make_product(stock=1)
    await place_order(client, customer_headers, product)
    await client.post("/cart/add", json={"product_id": product.id}, headers=customer_headers)

    everything = await client.get("/admin/activity-logs", headers=admin_headers)
    assert everything.status_code == 200
    assert [log["action_type"] for log in everything.json()["logs"]] == ["ORDER_CREATED"]
    assert everything.json()["logs"][0]["user_display_name"] == "Somchai"
    assert everything.json()["has_more"] is False

    withdrawn = make_product(name="Withdrawn", stock=5)
    await client.post("/cart/add", json={"product_id": withdrawn.id}, headers=customer_headers)
    db_session.query(Product).filter(Product.id == withdrawn.id).update({"is_available": False})
    db_session.commit()
    failed = await client.post(
        "/orders/checkout", json={"shipping_method": "pickup"}, headers=customer_headers
    )
    assert failed.json()["detail"]["code"] == "PRODUCT_UNAVAILABLE"

    errors = await client.get("/admin/activity-logs", params={"filter": "error"}, headers=admin_headers)
    assert [log["action_type"] for log in errors.json()["logs"]] == ["ORDER_ERROR"]

    orders = await client.get("/admin/activity-logs", params={"filter": "order"}, headers=admin_headers)
    assert [log["action_type"] for log in orders.json()["logs"]] == ["ORDER_CREATED"]

    first_page = await client.get("/admin/activity-logs", params={"limit": 1}, headers=admin_headers)
    assert len(first_page.json()["logs"]) == 1
    assert first_page.json()["has_more"] is True

    invalid = await client.get("/admin/activity-logs", params={"filter": "bogus"}, headers=admin_headers)
    assert invalid.status_code == 422
