from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from errors import StoreError
from models import ActivityLog, StoreSettings
from schemas import ProductCreate, ProductUpdate, StoreSettingsUpdate
from services.activity_service import ActivityService
from services.product_service import ProductService
from services.store_service import StoreService


@pytest.fixture
def product_service(activity_service):
    return ProductService(activity_service)


@pytest.fixture
def store_service(activity_service):
    return StoreService(activity_service)


def test_update_product_logs_old_and_new(db_session, product_service):
    product = product_service.create_product(
        db_session, ProductCreate(name="Fish Sauce", price=Decimal("35.00"), stock=10), user_id="user-admin"
    )

    product_service.update_product(db_session, product.id, ProductUpdate(price=Decimal("39.00")), user_id="user-admin")

    log = db_session.query(ActivityLog).filter(ActivityLog.action_type == "PRODUCT_UPDATED").one()
    assert log.old_data["price"] == 35.0
    assert log.new_data["price"] == 39.0
    assert log.new_data["stock"] == 10
    assert log.table_name == "products"


def test_soft_delete_keeps_row(db_session, product_service, make_product):
    product = make_product()

    product_service.delete_product(db_session, product.id)

    assert product_service.list_products(db_session) == []
    assert [p.id for p in product_service.list_products(db_session, include_unavailable=True, include_deleted=True)] == [product.id]
    with pytest.raises(StoreError) as exc:
        product_service.get_product(db_session, product.id)
    assert exc.value.code == "PRODUCT_NOT_FOUND"

    restored = product_service.restore_product(db_session, product.id)
    assert restored.deleted_at is None
    assert restored.is_available is True


def test_deleting_twice_is_not_found(db_session, product_service, make_product):
    product = make_product()
    product_service.delete_product(db_session, product.id)

    with pytest.raises(StoreError):
        product_service.delete_product(db_session, product.id)


def test_product_text_is_sanitized():
    data = ProductCreate(name="  <script>Rice</script> ", price=Decimal("10"))

    assert data.name == "scriptRice/script"


def test_get_settings_creates_default_row(engine):
    session = sessionmaker(bind=engine)()
    try:
        settings = StoreService(ActivityService()).get_settings(session)
        session.commit()

        assert settings.store_name == "Mini Shop"
        assert settings.is_store_open is True
        assert session.query(StoreSettings).count() == 1
    finally:
        session.close()


def test_update_settings(db_session, store_service):
    update = StoreSettingsUpdate(
        store_name="Corner Shop",
        flat_shipping_fee=Decimal("25"),
        shipping_radius_km=Decimal("3.5"),
        is_store_open=True,
    )

    settings = store_service.update_settings(db_session, update, user_id="user-admin")

    assert settings.flat_shipping_fee == Decimal("25.00")
    assert settings.store_lat is None
    log = db_session.query(ActivityLog).filter(ActivityLog.action_type == "STORE_SETTINGS_UPDATED").one()
    assert log.old_data["flat_shipping_fee"] == 40.0
    assert log.new_data["shipping_radius_km"] == 3.5
