"""
Billing DTOs (Pydantic v2) used at the gateway port boundary.

One request model per create/update call so required vs optional fields are
validated before anything reaches the processor.
"""
from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _normalize_currency(v: str) -> str:
    u = (v or "").lower()
    if len(u) != 3 or not u.isalpha():
        raise ValueError("currency must be ISO-4217 alpha-3")
    return u


class GatewayConfig(BaseModel):
    """Resolved engine configuration (see core.settings.PaymentSettings.gateway_config)."""

    model_config = ConfigDict(frozen=True)

    provider: str = "stripe"
    webhook_secret: str
    currency: str = "brl"
    default_plan_product_id: Optional[str] = None
    default_product_id: Optional[str] = None
    basic_plan_price_id: str
    catalog_limit: int = Field(default=50, gt=0, le=100)
    catalog_product_id: Optional[str] = None
    coupon_list_limit: int = Field(default=3, gt=0, le=100)
    timezone: str = "UTC"

    @field_validator("currency")
    @classmethod
    def _lower_and_validate_currency(cls, v: str) -> str:
        return _normalize_currency(v)


class ListPrices(BaseModel):
    limit: int = Field(default=50, gt=0, le=100)
    product: Optional[str] = None
    active: Optional[bool] = None


class ListSubscriptions(BaseModel):
    customer: Optional[str] = None
    price: Optional[str] = None
    status: Optional[str] = None
    limit: int = Field(default=100, gt=0, le=100)


class CreateCustomer(BaseModel):
    name: str
    email: Optional[str] = None
    payment_method_id: Optional[str] = None
    idempotency_key: Optional[str] = None


class UpdateCustomer(BaseModel):
    customer_id: str
    default_payment_method_id: str


class CreateSubscription(BaseModel):
    customer_id: str
    plan_id: str
    trial_period_days: int = Field(ge=0)
    default_payment_method_id: Optional[str] = None
    coupon_id: Optional[str] = None
    idempotency_key: Optional[str] = None


class SubscriptionItemUpdate(BaseModel):
    id: str
    price: str


class UpdateSubscription(BaseModel):
    subscription_id: str
    end_trial_now: bool = False
    default_payment_method_id: Optional[str] = None
    items: Optional[list[SubscriptionItemUpdate]] = None
    proration_behavior: Optional[Literal["create_prorations", "none", "always_invoice"]] = None
    cancel_at_period_end: Optional[bool] = None
    idempotency_key: Optional[str] = None


class CreatePaymentIntent(BaseModel):
    amount_cents: int = Field(gt=0)
    currency: str
    customer_id: Optional[str] = None
    payment_method_id: str
    payment_method_types: list[str] = Field(default_factory=lambda: ["card"])
    confirm: bool = True
    capture_method: Literal["automatic", "manual"] = "automatic"
    idempotency_key: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def _lower_and_validate_currency(cls, v: str) -> str:
        return _normalize_currency(v)


class CreateSku(BaseModel):
    product_id: str
    amount_cents: int = Field(gt=0)
    currency: str
    inventory_type: Literal["infinite", "finite", "bucket"] = "infinite"
    idempotency_key: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def _lower_and_validate_currency(cls, v: str) -> str:
        return _normalize_currency(v)


class CreateOrder(BaseModel):
    customer_id: str
    currency: str
    sku_id: str
    quantity: int = Field(default=1, gt=0)
    idempotency_key: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def _lower_and_validate_currency(cls, v: str) -> str:
        return _normalize_currency(v)


class CreateRefund(BaseModel):
    payment_intent_id: str
    amount_cents: Optional[int] = Field(default=None, gt=0)  # None refunds the full amount
    reason: Optional[Literal["duplicate", "fraudulent", "requested_by_customer"]] = None
    idempotency_key: Optional[str] = None


class ListCoupons(BaseModel):
    limit: Optional[int] = Field(default=None, gt=0, le=100)
    expand: list[str] = Field(default_factory=list)


class ListPromotionCodes(BaseModel):
    code: str
    active: Optional[bool] = True
    limit: int = Field(default=10, gt=0, le=100)
