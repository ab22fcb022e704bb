import os
import tempfile
from decimal import Decimal

# Settings are read at import time
os.environ["OTEL_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SLIP_VERIFY_API_URL"] = ""
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="storefront-uploads-")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config import STORE_SETTINGS_ID
from database import get_db
from dependencies import get_http_client, get_redis
from main import app
from models import Base, Product, StoreSettings
from services.activity_service import ActivityService
from services.cart_service import CartService
from services.order_service import OrderService
from services.store_service import StoreService
from factories import STORE_LAT, STORE_LNG
from stubs import StubRedis


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """
    Session bound to a fresh in-memory database with the store settings row:
    flat fee 40.00, 10 km radius, open.
    """
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    session.add(StoreSettings(
        id=STORE_SETTINGS_ID,
        store_name="Test Shop",
        store_address="1 Silom Road, Bangkok",
        store_lat=STORE_LAT,
        store_lng=STORE_LNG,
        flat_shipping_fee=Decimal("40.00"),
        shipping_radius_km=Decimal("10.00"),
        is_store_open=True,
    ))
    session.commit()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_product(db_session):
    def _make(name="Jasmine Rice 5kg", price="100.00", stock=10, **kwargs):
        product = Product(name=name, price=Decimal(price), stock=stock, **kwargs)
        db_session.add(product)
        db_session.commit()
        db_session.refresh(product)
        return product

    return _make


@pytest.fixture
def redis_stub():
    return StubRedis()


@pytest.fixture
def activity_service():
    return ActivityService()


@pytest.fixture
def cart_service(redis_stub):
    return CartService(redis_stub)


@pytest.fixture
def order_service(cart_service, activity_service):
    return OrderService(cart_service, StoreService(activity_service), activity_service)


@pytest_asyncio.fixture
async def client(db_session, redis_stub):
    """HTTP client against the app with database, Redis and HTTP client overridden."""
    verifier_http = httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(503))
    )

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = lambda: redis_stub
    app.dependency_overrides[get_http_client] = lambda: verifier_http

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    await verifier_http.aclose()


@pytest.fixture
def customer_headers():
    return {"Authorization": "Bearer customer-token-123"}


@pytest.fixture
def shopper_headers():
    return {"Authorization": "Bearer shopper-token-789"}


@pytest.fixture
def admin_headers():
    return {"Authorization": "Bearer admin-token-456"}
