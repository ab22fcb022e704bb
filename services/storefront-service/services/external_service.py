"""External service communication layer."""
import httpx
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from config import SLIP_VERIFY_API_KEY, SLIP_VERIFY_API_URL, SLIP_VERIFY_TIMEOUT
from errors import StoreError
from monitoring import payment_verify_duration_histogram

logger = logging.getLogger(__name__)

MIN_TRANS_REF_LENGTH = 5


@dataclass
class SlipVerification:
    """Outcome of a payment slip verification."""

    success: bool
    verified: bool
    amount: Decimal
    trans_ref: str
    timestamp: str
    message: Optional[str] = None
    error: Optional[str] = None


def parse_amount(value: Any) -> Optional[Decimal]:
    """Finite decimal amount from a verifier response, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value))
    except ArithmeticError:
        return None
    return amount if amount.is_finite() else None


def is_valid_verifier_response(data: Any) -> bool:
    """A successful response must confirm verification of a positive amount."""
    if not isinstance(data, dict) or not isinstance(data.get("success"), bool):
        return False
    if data["success"] is False:
        return True
    amount = parse_amount(data.get("amount"))
    return data.get("verified") is True and bool(data.get("trans_ref")) and amount is not None and amount > 0


class SlipVerifierClient:
    """Client for the payment slip verification API."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str = SLIP_VERIFY_API_URL,
        api_key: str = SLIP_VERIFY_API_KEY,
        timeout: float = SLIP_VERIFY_TIMEOUT
    ):
        """
        Initialize slip verifier client.

        Args:
            http_client: Async HTTP client
            base_url: Verification API base URL; empty selects rule-based checks
            api_key: Bearer key for the verification API
            timeout: Request timeout in seconds
        """
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    @property
    def mode(self) -> str:
        return "api" if self.base_url else "rules"

    async def verify(
        self,
        order_id: str,
        trans_ref: str,
        amount: Decimal,
        slip_url: Optional[str]
    ) -> SlipVerification:
        """
        Verify a payment slip.

        Args:
            order_id: Order identifier
            trans_ref: Bank transaction reference from the slip
            amount: Expected amount
            slip_url: Public URL of the uploaded slip

        Returns:
            Verification outcome

        Raises:
            StoreError: VERIFIER_UNAVAILABLE if the API cannot be reached or
                answers with an invalid response
        """
        start_time = time.time()
        status = "success"
        try:
            if self.base_url:
                result = await self._verify_remote(order_id, trans_ref, amount, slip_url)
            else:
                result = self._verify_rules(trans_ref, amount, slip_url)
            if not result.success:
                status = "rejected"
            return result
        except StoreError:
            status = "error"
            raise
        finally:
            payment_verify_duration_histogram.record(
                time.time() - start_time,
                {"mode": self.mode, "status": status}
            )

    async def _verify_remote(
        self,
        order_id: str,
        trans_ref: str,
        amount: Decimal,
        slip_url: Optional[str]
    ) -> SlipVerification:
        # HTTPXClientInstrumentor already creates spans for HTTP calls
        try:
            response = await self.http_client.post(
                f"{self.base_url}/verify",
                json={
                    "order_id": order_id,
                    "trans_ref": trans_ref,
                    "amount": float(amount),
                    "slip_url": slip_url
                },
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout
            )
            response.raise_for_status()
            data: Dict[str, Any] = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Slip verification API error", extra={
                "order_id": order_id,
                "trans_ref": trans_ref,
                "error": str(e)
            })
            raise StoreError("VERIFIER_UNAVAILABLE", "Payment verification service unavailable") from e

        if not is_valid_verifier_response(data):
            logger.error("Slip verification API returned an invalid response", extra={
                "order_id": order_id,
                "trans_ref": trans_ref
            })
            raise StoreError("VERIFIER_UNAVAILABLE", "Invalid response from payment verification service")

        # Rejections may omit the amount
        verified_amount = parse_amount(data.get("amount"))
        return SlipVerification(
            success=data["success"],
            verified=bool(data.get("verified", False)),
            amount=verified_amount if verified_amount is not None else amount,
            trans_ref=data.get("trans_ref", trans_ref),
            timestamp=data.get("timestamp") or datetime.now(timezone.utc).isoformat(),
            message=data.get("message"),
            error=data.get("error") or (None if data["success"] else "Verification failed")
        )

    def _verify_rules(
        self,
        trans_ref: str,
        amount: Decimal,
        slip_url: Optional[str]
    ) -> SlipVerification:
        errors = []
        if not trans_ref or len(trans_ref) < MIN_TRANS_REF_LENGTH:
            errors.append("Invalid transaction reference")
        if amount <= 0:
            errors.append("Invalid amount")
        if not slip_url:
            errors.append("No payment slip provided")

        timestamp = datetime.now(timezone.utc).isoformat()
        if errors:
            return SlipVerification(
                success=False,
                verified=False,
                amount=amount,
                trans_ref=trans_ref,
                timestamp=timestamp,
                error=", ".join(errors)
            )
        return SlipVerification(
            success=True,
            verified=True,
            amount=amount,
            trans_ref=trans_ref,
            timestamp=timestamp,
            message="Payment verified successfully"
        )
