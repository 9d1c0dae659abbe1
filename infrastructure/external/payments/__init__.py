"""
Factory for billing gateway clients and the services built on them.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from core.settings import payment_settings
from application.dtos.billing import GatewayConfig
from application.ports.billing_gateway import BillingGateway
from application.services.catalog_service import CatalogService
from application.services.customer_service import CustomerService
from application.services.payment_service import PaymentService
from application.services.promotion_service import PromotionService
from application.services.subscription_service import SubscriptionService
from application.services.webhook_service import InvoiceWebhookProcessor


def get_billing_gateway(provider: Optional[str] = None) -> BillingGateway:
    name = (provider or payment_settings.default_provider).lower()
    if name == "stripe":
        from .stripe_client import StripeClient
        return StripeClient()
    raise ValueError(f"Unsupported payment provider: {name}")


@dataclass(frozen=True)
class BillingServices:
    catalog: CatalogService
    customers: CustomerService
    subscriptions: SubscriptionService
    payments: PaymentService
    webhooks: InvoiceWebhookProcessor
    promotions: PromotionService


def build_billing_services(
    gateway: Optional[BillingGateway] = None,
    config: Optional[GatewayConfig] = None,
) -> BillingServices:
    """Wire every service to one gateway; keep the result for the process lifetime
    so the catalog snapshot is shared."""
    gateway = gateway or get_billing_gateway()
    config = config or payment_settings.gateway_config()
    return BillingServices(
        catalog=CatalogService(gateway, config),
        customers=CustomerService(gateway),
        subscriptions=SubscriptionService(gateway, config),
        payments=PaymentService(gateway, config),
        webhooks=InvoiceWebhookProcessor(gateway, config),
        promotions=PromotionService(gateway, config),
    )
