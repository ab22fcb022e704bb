"""Database connection and session management."""
from decimal import Decimal
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from typing import Generator
import logging

from config import DATABASE_URL, STORE_SETTINGS_ID
from models import Base, Product, StoreSettings

logger = logging.getLogger(__name__)

if DATABASE_URL.startswith("sqlite"):
    # Local development and tests
    engine = create_engine(DATABASE_URL, connect_args={"check_same_thread": False})
else:
    engine = create_engine(
        DATABASE_URL,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,  # Verify connections before use
        pool_recycle=3600,
        pool_timeout=30,
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for getting database session.

    Yields:
        Database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def seed_store(db: Session) -> None:
    """Create the store settings row and sample catalog when missing."""
    if db.get(StoreSettings, STORE_SETTINGS_ID) is None:
        db.add(StoreSettings(id=STORE_SETTINGS_ID))
        db.commit()
        logger.info("Created default store settings")

    if db.query(Product).count() == 0:
        products = [
            Product(name="Jasmine Rice 5kg", price=Decimal("189.00"), stock=40, category="Groceries", weight_kg=Decimal("5.00")),
            Product(name="Fish Sauce", price=Decimal("35.00"), stock=120, category="Groceries", weight_kg=Decimal("0.70")),
            Product(name="Coconut Milk", price=Decimal("29.00"), stock=150, category="Groceries", weight_kg=Decimal("0.40")),
            Product(name="Drinking Water 6-pack", price=Decimal("60.00"), stock=80, category="Beverages", weight_kg=Decimal("9.00")),
            Product(name="Iced Coffee Beans", price=Decimal("250.00"), stock=25, category="Beverages", weight_kg=Decimal("0.50")),
            Product(name="Dish Soap", price=Decimal("45.00"), stock=60, category="Household", weight_kg=Decimal("0.50")),
            Product(name="Laundry Detergent", price=Decimal("159.00"), stock=30, category="Household", weight_kg=Decimal("2.50")),
        ]
        db.add_all(products)
        db.commit()
        logger.info("Seeded database with sample products")


def init_db() -> None:
    """Initialize database tables and seed data."""
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        seed_store(db)
    finally:
        db.close()
