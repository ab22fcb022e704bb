from datetime import datetime, timezone

import pytest

from errors import StoreError
from models import CartItem


def test_add_item_merges_existing_line(db_session, cart_service, redis_stub, make_product):
    product = make_product(stock=10)

    cart_service.add_item(db_session, "user-1", product.id, 2)
    result = cart_service.add_item(db_session, "user-1", product.id, 3)

    assert result["quantity"] == 5
    assert result["product_name"] == product.name
    assert db_session.query(CartItem).filter(CartItem.user_id == "user-1").count() == 1
    assert redis_stub.get("cart:user-1") == "1"
    assert redis_stub.expirations["cart:user-1"] == 3600


def test_add_item_cannot_exceed_stock(db_session, cart_service, make_product):
    product = make_product(stock=5)
    cart_service.add_item(db_session, "user-1", product.id, 4)

    with pytest.raises(StoreError) as exc:
        cart_service.add_item(db_session, "user-1", product.id, 2)

    assert exc.value.code == "INSUFFICIENT_STOCK"
    assert exc.value.message == "Only 5 items available"


def test_add_item_rejects_unavailable_product(db_session, cart_service, make_product):
    hidden = make_product(name="Hidden", is_available=False)
    sold_out = make_product(name="Sold out", stock=0)

    for product in (hidden, sold_out):
        with pytest.raises(StoreError) as exc:
            cart_service.add_item(db_session, "user-1", product.id)
        assert exc.value.code == "PRODUCT_UNAVAILABLE"


def test_add_item_rejects_deleted_or_unknown_product(db_session, cart_service, make_product):
    deleted = make_product(deleted_at=datetime.now(timezone.utc))

    with pytest.raises(StoreError) as exc:
        cart_service.add_item(db_session, "user-1", deleted.id)
    assert exc.value.code == "PRODUCT_NOT_FOUND"

    with pytest.raises(StoreError) as exc:
        cart_service.add_item(db_session, "user-1", "missing")
    assert exc.value.code == "PRODUCT_NOT_FOUND"


def test_update_quantity_clamps_to_stock(db_session, cart_service, make_product):
    product = make_product(stock=3)
    cart_service.add_item(db_session, "user-1", product.id, 1)

    cart_service.update_quantity(db_session, "user-1", product.id, 10)

    cart = cart_service.get_cart(db_session, "user-1")
    assert cart["items"][0]["quantity"] == 3
    assert cart["items"][0]["max_quantity"] == 3


def test_update_quantity_zero_removes_line(db_session, cart_service, redis_stub, make_product):
    product = make_product()
    cart_service.add_item(db_session, "user-1", product.id, 2)

    cart_service.update_quantity(db_session, "user-1", product.id, 0)

    assert cart_service.get_cart(db_session, "user-1")["items"] == []
    assert redis_stub.get("cart:user-1") is None


def test_get_cart_totals(db_session, cart_service, make_product):
    fish_sauce = make_product(name="Fish Sauce", price="35.00")
    coconut_milk = make_product(name="Coconut Milk", price="29.00")
    cart_service.add_item(db_session, "user-1", fish_sauce.id, 2)
    cart_service.add_item(db_session, "user-1", coconut_milk.id, 1)

    cart = cart_service.get_cart(db_session, "user-1")

    assert cart["total_items"] == 3
    assert float(cart["total_price"]) == pytest.approx(99.00)
    assert [item["product_name"] for item in cart["items"]] == ["Fish Sauce", "Coconut Milk"]
    assert float(cart["items"][0]["subtotal"]) == pytest.approx(70.00)


def test_cart_is_per_user(db_session, cart_service, make_product):
    product = make_product()
    cart_service.add_item(db_session, "user-1", product.id, 1)

    assert cart_service.get_cart(db_session, "user-2")["items"] == []


def test_validate_removes_unpurchasable_lines(db_session, cart_service, make_product):
    keep = make_product(name="Keep")
    gone = make_product(name="Gone")
    cart_service.add_item(db_session, "user-1", keep.id, 1)
    cart_service.add_item(db_session, "user-1", gone.id, 1)

    gone.is_available = False
    db_session.commit()

    removed = cart_service.validate(db_session, "user-1")

    assert removed == [gone.id]
    cart = cart_service.get_cart(db_session, "user-1")
    assert [item["product_id"] for item in cart["items"]] == [keep.id]


def test_clear_cart(db_session, cart_service, redis_stub, make_product):
    product = make_product()
    cart_service.add_item(db_session, "user-1", product.id, 1)

    cart_service.clear_cart(db_session, "user-1")

    assert db_session.query(CartItem).count() == 0
    assert redis_stub.get("cart:user-1") is None
