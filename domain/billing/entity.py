"""
Billing domain value types.

Immutable snapshots of processor objects expressed in domain vocabulary.
Every update operation on the gateway returns a new snapshot; nothing here is
mutated in place. Money is always integer minor units (cents).
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException
from shared.codes.payment_codes import (
    InvoiceStatus,
    PaymentIntentStatus,
)


def _ensure_non_negative(value: int, field_name: str) -> None:
    if value < 0:
        raise DomainValidationException(
            f"{field_name} must be >= 0: {value}",
            field=field_name,
        )


@dataclass(frozen=True)
class Plan:
    id: str
    name: str
    unit_amount_cents: int

    def __post_init__(self) -> None:
        _ensure_non_negative(self.unit_amount_cents, "unit_amount_cents")


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    unit_amount_cents: int

    def __post_init__(self) -> None:
        _ensure_non_negative(self.unit_amount_cents, "unit_amount_cents")


@dataclass(frozen=True)
class PaymentInfos:
    """Catalog summary shown before checkout."""

    plans: tuple[Plan, ...]
    products: tuple[Product, ...]
    trial_days: int


@dataclass(frozen=True)
class Customer:
    id: str
    default_payment_method_id: Optional[str] = None


@dataclass(frozen=True)
class PaymentMethodInfo:
    """Display-safe summary of a payment method. Never persisted."""

    added: bool
    last_four_digits: Optional[str] = None
    brand: Optional[str] = None


@dataclass(frozen=True)
class Subscription:
    id: str
    status: str
    current_period_end_epoch: Optional[int]
    plan_product_id: Optional[str] = None


@dataclass(frozen=True)
class PaymentIntent:
    """
    `id` is the client secret handed to the frontend; `payment_intent_id` is
    the processor's own identifier used for refund/cancel.
    """

    id: str
    status: str
    payment_intent_id: Optional[str] = None
    payment_method_id: Optional[str] = None
    customer_id: Optional[str] = None

    def succeeded(self) -> bool:
        return self.status == PaymentIntentStatus.SUCCEEDED


@dataclass(frozen=True)
class Order:
    id: str
    status: str


@dataclass(frozen=True)
class Charge:
    id: str
    status: str
    failure_code: Optional[str] = None
    failure_message: Optional[str] = None


@dataclass(frozen=True)
class Invoice:
    id: str
    status: str
    subscription: Subscription
    amount_paid_cents: int
    amount_due_cents: int
    customer_id: Optional[str] = None
    charge: Optional[Charge] = None
    current_period_end: Optional[datetime] = None

    def __post_init__(self) -> None:
        _ensure_non_negative(self.amount_paid_cents, "amount_paid_cents")
        _ensure_non_negative(self.amount_due_cents, "amount_due_cents")

    def succeeded(self) -> bool:
        # Processor invoices settle as "paid"; there is no "succeeded" invoice status.
        return self.status == InvoiceStatus.PAID


@dataclass(frozen=True)
class Coupon:
    """Exactly one of `amount_off_cents` / `percent_off` is meaningful; the other is 0."""

    id: str
    name: str
    amount_off_cents: int = 0
    percent_off: int = 0
    applicable_product_ids: Optional[tuple[str, ...]] = None

    def applies_to(self, product_id: str) -> bool:
        if self.applicable_product_ids is None:
            return True
        return product_id in self.applicable_product_ids


@dataclass(frozen=True)
class PromotionCode:
    code: str
    coupon: Coupon
    customer_id: Optional[str] = None
    first_time_transaction_only: Optional[bool] = None


class ActivityType(str, Enum):
    ADDED_PAYMENT_METHOD = "added_payment_method"
    ACTIVATION = "activation"
    CANCELLATION = "cancellation"


@dataclass(frozen=True)
class SubscriptionHistory:
    """Audit record of a lifecycle step, persisted by the caller."""

    consultant_id: str
    subscription_id: str
    activity_type: ActivityType
    description: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
