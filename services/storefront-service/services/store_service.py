"""Store settings service."""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from config import STORE_SETTINGS_ID
from models import StoreSettings
from schemas import StoreSettingsUpdate
from services.activity_service import ActivityService

logger = logging.getLogger(__name__)

SETTINGS_FIELDS = (
    "store_name",
    "store_address",
    "store_lat",
    "store_lng",
    "flat_shipping_fee",
    "shipping_radius_km",
    "is_store_open",
)


def settings_snapshot(settings: StoreSettings) -> Dict[str, Any]:
    """JSON-safe copy of the editable settings."""
    snapshot = {}
    for field in SETTINGS_FIELDS:
        value = getattr(settings, field)
        if field in ("flat_shipping_fee", "shipping_radius_km") and value is not None:
            value = float(value)
        snapshot[field] = value
    return snapshot


class StoreService:
    """Reads and updates the singleton store settings row."""

    def __init__(self, activity_service: ActivityService):
        self.activity_service = activity_service

    def get_settings(self, db: Session, lock: bool = False) -> StoreSettings:
        """
        Load the settings row, creating the default row when missing.

        Args:
            db: Database session
            lock: Take a row lock (SELECT ... FOR UPDATE) for the transaction
        """
        query = db.query(StoreSettings).filter(StoreSettings.id == STORE_SETTINGS_ID)
        if lock:
            query = query.with_for_update()
        settings = query.first()
        if settings is None:
            settings = StoreSettings(id=STORE_SETTINGS_ID)
            db.add(settings)
            db.flush()
            logger.info("Created default store settings")
        return settings

    def update_settings(
        self,
        db: Session,
        update: StoreSettingsUpdate,
        user_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> StoreSettings:
        """Replace the editable settings and log the change."""
        settings = self.get_settings(db, lock=True)
        old_data = settings_snapshot(settings)

        for field in SETTINGS_FIELDS:
            setattr(settings, field, getattr(update, field))

        self.activity_service.log(
            db,
            "STORE_SETTINGS_UPDATED",
            user_id=user_id,
            table_name="store_settings",
            record_id=settings.id,
            old_data=old_data,
            new_data=settings_snapshot(settings),
            ip_address=ip_address,
            user_agent=user_agent
        )
        db.commit()
        db.refresh(settings)

        logger.info("Store settings updated", extra={
            "user_id": user_id,
            "is_store_open": settings.is_store_open,
            "flat_shipping_fee": float(settings.flat_shipping_fee),
        })
        return settings
