"""Business rule errors raised by the service layer."""
from typing import Dict

# Error code -> HTTP status used by the routers
HTTP_STATUS_BY_CODE: Dict[str, int] = {
    "STORE_CLOSED": 409,
    "PRODUCT_NOT_FOUND": 404,
    "ORDER_NOT_FOUND": 404,
    "PRODUCT_UNAVAILABLE": 409,
    "INSUFFICIENT_STOCK": 409,
    "EMPTY_ORDER": 400,
    "EMPTY_CART": 400,
    "INVALID_QUANTITY": 400,
    "SHIPPING_ADDRESS_REQUIRED": 400,
    "OUTSIDE_DELIVERY_AREA": 422,
    "ORDER_NOT_FOUND_OR_ALREADY_VERIFIED": 409,
    "DUPLICATE_TRANSACTION_REFERENCE": 409,
    "PAYMENT_VERIFICATION_FAILED": 402,
    "AMOUNT_MISMATCH": 402,
    "INVALID_STATUS_TRANSITION": 409,
    "ORDER_NOT_CANCELLABLE": 409,
    "INVALID_FILE": 400,
    "VERIFIER_UNAVAILABLE": 502,
}


class StoreError(Exception):
    """A storefront business rule was violated."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}")

    @property
    def status_code(self) -> int:
        return HTTP_STATUS_BY_CODE.get(self.code, 400)

    def to_detail(self) -> Dict[str, str]:
        return {"code": self.code, "message": self.message}
