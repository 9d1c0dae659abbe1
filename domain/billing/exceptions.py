"""
Billing errors raised by the gateway boundary.

Callers branch on the concrete class (or `code`) to pick user messaging;
transport and unknown processor errors are not wrapped and reach the caller
unchanged.
"""
from __future__ import annotations

from typing import Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class SignatureVerificationError(BusinessException):
    """Webhook payload does not match its signature header."""

    def __init__(self, message: str = "Webhook signature verification failed", *, provider: str = "stripe"):
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message=message,
            error_type="SignatureVerificationError",
            details={"provider": provider},
            message_key="payments.webhook.signature_invalid",
        )


class EventParseError(BusinessException):
    """Verified webhook event whose embedded object cannot be read as expected."""

    def __init__(self, message: str, *, event_id: Optional[str] = None, event_type: Optional[str] = None):
        super().__init__(
            code=PaymentCode.EVENT_PARSE_ERROR,
            message=message,
            error_type="EventParseError",
            details={"event_id": event_id, "event_type": event_type},
            message_key="payments.webhook.parse_error",
        )


class CardDeclinedError(BusinessException):
    """The processor declined the card; `message` is safe to show to the payer."""

    def __init__(self, message: str, *, decline_code: Optional[str] = None, provider_code: Optional[str] = None):
        self.decline_code = decline_code
        super().__init__(
            code=PaymentCode.CARD_DECLINED,
            message=message,
            error_type="CardDeclined",
            details={"decline_code": decline_code, "provider_code": provider_code},
            message_key="payments.card.declined",
        )


class InvariantViolationError(BusinessException):
    def __init__(self, message: str, *, details: Optional[dict] = None):
        super().__init__(
            code=PaymentCode.INVARIANT_VIOLATION,
            message=message,
            error_type="InvariantViolation",
            details=details,
        )


class NotFoundError(BusinessException):
    def __init__(self, message: str, *, code: int = PaymentCode.NOT_FOUND, error_type: str = "NotFound", details: Optional[dict] = None):
        super().__init__(
            code=code,
            message=message,
            error_type=error_type,
            details=details,
            message_key="payments.not_found",
        )


class ProductNotFoundError(NotFoundError):
    def __init__(self, product_id: str):
        super().__init__(
            f"No price found for product {product_id}",
            error_type="ProductNotFound",
            details={"product_id": product_id},
        )


class CatalogEmptyError(NotFoundError):
    """The cached price listing holds no records at all."""

    def __init__(self, scope: Optional[str] = None):
        super().__init__(
            "Price catalog is empty",
            code=PaymentCode.CATALOG_EMPTY,
            error_type="CatalogEmpty",
            details={"scope": scope},
        )
