"""Activity (audit) log service."""
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session, joinedload
from opentelemetry import trace

from config import ACTIVITY_LOG_PAGE_SIZE
from models import ActivityLog

logger = logging.getLogger(__name__)

LOG_FILTERS = ("all", "error", "order", "payment")


class ActivityService:
    """Writes and reads activity log rows."""

    def __init__(self):
        self.tracer = trace.get_tracer(__name__)

    def log(
        self,
        db: Session,
        action_type: str,
        user_id: Optional[str] = None,
        table_name: Optional[str] = None,
        record_id: Optional[str] = None,
        old_data: Optional[Dict[str, Any]] = None,
        new_data: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> ActivityLog:
        """
        Add an activity row to the caller's transaction.

        The caller owns the commit, so the row is persisted or rolled back
        together with the change it describes.
        """
        entry = ActivityLog(
            user_id=user_id,
            action_type=action_type,
            table_name=table_name,
            record_id=record_id,
            old_data=old_data,
            new_data=new_data,
            error_message=error_message,
            ip_address=ip_address,
            user_agent=user_agent
        )
        db.add(entry)
        return entry

    def log_error(
        self,
        db: Session,
        action_type: str,
        error_message: str,
        user_id: Optional[str] = None,
        table_name: Optional[str] = None,
        record_id: Optional[str] = None
    ) -> None:
        """Record a failure in its own transaction, after the caller rolled back."""
        try:
            self.log(
                db,
                action_type,
                user_id=user_id,
                table_name=table_name,
                record_id=record_id,
                error_message=error_message
            )
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error("Failed to write activity log", extra={
                "action_type": action_type,
                "error": str(e)
            })

    def list_logs(
        self,
        db: Session,
        log_filter: str = "all",
        page: int = 1,
        limit: int = ACTIVITY_LOG_PAGE_SIZE
    ) -> Tuple[List[ActivityLog], bool]:
        """
        List activity rows, newest first.

        Args:
            db: Database session
            log_filter: all, error, order or payment
            page: 1-based page number
            limit: Page size

        Returns:
            Rows for the page and whether another page follows
        """
        with self.tracer.start_as_current_span("db.query.list_activity_logs") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "activity_logs")
            db_span.set_attribute("activity.filter", log_filter)

            query = db.query(ActivityLog).options(joinedload(ActivityLog.user))
            if log_filter == "error":
                query = query.filter(ActivityLog.error_message.isnot(None))
            elif log_filter == "order":
                query = query.filter(ActivityLog.table_name == "orders")
            elif log_filter == "payment":
                query = query.filter(ActivityLog.action_type.like("%PAYMENT%"))

            rows = (
                query.order_by(ActivityLog.created_at.desc(), ActivityLog.id)
                .offset((page - 1) * limit)
                .limit(limit + 1)
                .all()
            )
            db_span.set_attribute("db.rows_returned", len(rows))

        return rows[:limit], len(rows) > limit
