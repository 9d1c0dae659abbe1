"""
Payment-related settings using pydantic-settings v2 with nested env keys.

`PaymentSettings.gateway_config()` resolves these into the immutable
GatewayConfig the billing services are constructed with.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field

from application.dtos.billing import GatewayConfig


class PaymentTimeouts(BaseModel):
    connect: float = 1.0
    read: float = 10.0
    write: float = 10.0
    total: float = 30.0


class WebhookSettings(BaseModel):
    tolerance_seconds: int = 300


class StripeSettings(BaseModel):
    secret_key: Optional[str] = None
    webhook_secret: Optional[str] = None
    api_version: Optional[str] = None


class BillingSettings(BaseModel):
    currency: str = "brl"
    # Unset product ids make find_all_plans / find_all_products return every cached price
    default_plan_product_id: Optional[str] = None
    default_product_id: Optional[str] = None
    basic_plan_price_id: Optional[str] = None
    catalog_limit: int = 50
    # Restricts the cached price listing to one product when set; the default
    # plan and product ids must then name that same product
    catalog_product_id: Optional[str] = None
    coupon_list_limit: int = 3
    timezone: str = "UTC"


class PaymentSettings(BaseSettings):
    default_provider: str = Field(default="stripe", validation_alias="PAYMENT__DEFAULT_PROVIDER")
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)

    stripe: StripeSettings = Field(default_factory=StripeSettings)
    billing: BillingSettings = Field(default_factory=BillingSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )

    def gateway_config(self) -> GatewayConfig:
        if not self.stripe.webhook_secret:
            raise RuntimeError("STRIPE__WEBHOOK_SECRET not configured")
        if not self.billing.basic_plan_price_id:
            raise RuntimeError("BILLING__BASIC_PLAN_PRICE_ID not configured")
        scope = self.billing.catalog_product_id
        if scope:
            for name, product_id in (
                ("BILLING__DEFAULT_PLAN_PRODUCT_ID", self.billing.default_plan_product_id),
                ("BILLING__DEFAULT_PRODUCT_ID", self.billing.default_product_id),
            ):
                if product_id and product_id != scope:
                    raise RuntimeError(
                        f"{name}={product_id} is outside BILLING__CATALOG_PRODUCT_ID={scope}; "
                        "the cached catalog would never contain it"
                    )
        return GatewayConfig(
            provider=self.default_provider,
            webhook_secret=self.stripe.webhook_secret,
            currency=self.billing.currency,
            default_plan_product_id=self.billing.default_plan_product_id,
            default_product_id=self.billing.default_product_id,
            basic_plan_price_id=self.billing.basic_plan_price_id,
            catalog_limit=self.billing.catalog_limit,
            catalog_product_id=self.billing.catalog_product_id,
            coupon_list_limit=self.billing.coupon_list_limit,
            timezone=self.billing.timezone,
        )


payment_settings = PaymentSettings()
