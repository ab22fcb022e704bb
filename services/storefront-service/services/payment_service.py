"""Payment slip verification service."""
import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from opentelemetry import trace

from errors import StoreError
from models import Order, OrderStatus, utcnow
from monitoring import payment_verifications_counter
from services.activity_service import ActivityService
from services.external_service import SlipVerifierClient
from services.slip_storage import SlipStorage

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


class PaymentService:
    """Verifies payment slips and marks orders as paid."""

    def __init__(
        self,
        verifier: SlipVerifierClient,
        activity_service: ActivityService,
        slip_storage: SlipStorage
    ):
        """
        Initialize payment service.

        Args:
            verifier: Slip verification client
            activity_service: Activity log writer
            slip_storage: Storage for uploaded slip files
        """
        self.verifier = verifier
        self.activity_service = activity_service
        self.slip_storage = slip_storage
        self.tracer = trace.get_tracer(__name__)

    def _fail(
        self,
        db: Session,
        order_id: str,
        user_id: Optional[str],
        code: str,
        message: str,
        trans_ref: str,
        ip_address: Optional[str],
        user_agent: Optional[str]
    ) -> StoreError:
        """Release the order lock, record PAYMENT_FAILED and build the error to raise."""
        db.rollback()
        self.activity_service.log(
            db,
            "PAYMENT_FAILED",
            user_id=user_id,
            table_name="orders",
            record_id=order_id,
            new_data={"trans_ref": trans_ref},
            error_message=message,
            ip_address=ip_address,
            user_agent=user_agent
        )
        db.commit()

        payment_verifications_counter.add(1, {"result": "failed", "reason": code})
        logger.warning("Payment verification failed", extra={
            "order_id": order_id,
            "trans_ref": trans_ref,
            "error_code": code,
            "error": message
        })
        return StoreError(code, message)

    async def verify_payment(
        self,
        db: Session,
        order_id: str,
        trans_ref: str,
        slip_url: Optional[str],
        expected_amount: Optional[Decimal] = None,
        user_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Order:
        """
        Verify a payment slip and mark the order as paid.

        The order row stays locked from the pending-payment check until the
        commit, so two verifications of the same order cannot both succeed.

        Args:
            db: Database session
            order_id: Order being paid
            trans_ref: Bank transaction reference from the slip
            slip_url: Public URL of the slip
            expected_amount: Amount to verify; defaults to total plus shipping
            user_id: When given, the order must belong to this user

        Returns:
            The paid order

        Raises:
            StoreError: ORDER_NOT_FOUND_OR_ALREADY_VERIFIED,
                DUPLICATE_TRANSACTION_REFERENCE, PAYMENT_VERIFICATION_FAILED,
                AMOUNT_MISMATCH, VERIFIER_UNAVAILABLE
        """
        span = trace.get_current_span()
        span.set_attribute("order.id", order_id)

        with self.tracer.start_as_current_span("db.query.lock_order") as db_span:
            db_span.set_attribute("db.operation", "SELECT FOR UPDATE")
            db_span.set_attribute("db.table", "orders")

            query = db.query(Order).filter(Order.id == order_id, Order.trans_ref.is_(None))
            if user_id is not None:
                query = query.filter(Order.user_id == user_id)
            order = query.with_for_update().first()
            db_span.set_attribute("db.rows_returned", 1 if order else 0)

        if order is None:
            db.rollback()
            payment_verifications_counter.add(1, {"result": "failed", "reason": "not_found"})
            raise StoreError("ORDER_NOT_FOUND_OR_ALREADY_VERIFIED", "Order not found or already verified")

        duplicate = (
            db.query(Order.id)
            .filter(Order.trans_ref == trans_ref, Order.id != order.id)
            .first()
        )
        if duplicate is not None:
            raise self._fail(
                db, order_id, user_id, "DUPLICATE_TRANSACTION_REFERENCE",
                "Transaction reference already used", trans_ref, ip_address, user_agent
            )

        amount = (expected_amount if expected_amount is not None else order.grand_total)
        amount = Decimal(amount).quantize(CENTS)

        try:
            result = await self.verifier.verify(order.id, trans_ref, amount, slip_url)
        except StoreError:
            db.rollback()
            payment_verifications_counter.add(1, {"result": "error", "reason": "verifier_unavailable"})
            raise

        if not result.success:
            raise self._fail(
                db, order_id, user_id, "PAYMENT_VERIFICATION_FAILED",
                result.error or "Verification failed", trans_ref, ip_address, user_agent
            )
        if result.amount.quantize(CENTS) != amount:
            raise self._fail(
                db, order_id, user_id, "AMOUNT_MISMATCH",
                f"Verified amount {result.amount:.2f} does not match expected {amount:.2f}",
                trans_ref, ip_address, user_agent
            )

        old_status = order.status
        order.status = OrderStatus.PAID.value
        order.trans_ref = trans_ref
        order.slip_verified = True
        order.verified_at = utcnow()
        order.payment_slip_url = slip_url

        self.activity_service.log(
            db,
            "PAYMENT_VERIFIED",
            user_id=user_id,
            table_name="orders",
            record_id=order.id,
            old_data={"status": old_status},
            new_data={"status": order.status, "trans_ref": trans_ref, "amount": float(amount)},
            ip_address=ip_address,
            user_agent=user_agent
        )

        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise self._fail(
                db, order_id, user_id, "DUPLICATE_TRANSACTION_REFERENCE",
                "Transaction reference already used", trans_ref, ip_address, user_agent
            )

        payment_verifications_counter.add(1, {"result": "verified", "reason": "ok"})
        logger.info("Payment verified", extra={
            "user_id": user_id,
            "order_id": order.id,
            "order_number": order.order_number,
            "trans_ref": trans_ref,
            "amount": float(amount),
            "verifier_mode": self.verifier.mode
        })
        db.refresh(order)
        return order

    async def upload_and_verify(
        self,
        db: Session,
        order_id: str,
        trans_ref: str,
        filename: Optional[str],
        content_type: Optional[str],
        data: bytes,
        user_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Order:
        """
        Store an uploaded slip, log the upload and verify the payment.

        Raises:
            StoreError: INVALID_FILE, or any verify_payment error
        """
        query = db.query(Order.id).filter(Order.id == order_id, Order.trans_ref.is_(None))
        if user_id is not None:
            query = query.filter(Order.user_id == user_id)
        if query.first() is None:
            db.rollback()
            payment_verifications_counter.add(1, {"result": "failed", "reason": "not_found"})
            raise StoreError("ORDER_NOT_FOUND_OR_ALREADY_VERIFIED", "Order not found or already verified")

        slip_url = self.slip_storage.save(filename, content_type, data)

        self.activity_service.log(
            db,
            "PAYMENT_SLIP_UPLOADED",
            user_id=user_id,
            table_name="orders",
            record_id=order_id,
            new_data={"payment_slip_url": slip_url, "trans_ref": trans_ref},
            ip_address=ip_address,
            user_agent=user_agent
        )
        db.commit()

        return await self.verify_payment(
            db,
            order_id,
            trans_ref,
            slip_url,
            user_id=user_id,
            ip_address=ip_address,
            user_agent=user_agent
        )
