"""
Billing gateway port (application/ports) exposing a replaceable protocol.

Application services depend on this Protocol; infrastructure implements
adapters. Methods return the processor's raw objects as read-only mappings;
translating them into domain value types is the services' job.
"""
from __future__ import annotations

from typing import Any, Mapping, Protocol, runtime_checkable

from application.dtos.billing import (
    CreateCustomer,
    CreateOrder,
    CreatePaymentIntent,
    CreateRefund,
    CreateSku,
    CreateSubscription,
    ListCoupons,
    ListPrices,
    ListPromotionCodes,
    ListSubscriptions,
    UpdateCustomer,
    UpdateSubscription,
)

GatewayObject = Mapping[str, Any]


@runtime_checkable
class BillingGateway(Protocol):
    """Call surface of the remote payment processor.

    Implementations perform exactly one remote call per method, never retry,
    and translate card declines into CardDeclinedError. Any other processor
    or transport error propagates unchanged.
    """

    provider: str

    # Catalog
    async def list_prices(self, query: ListPrices) -> list[GatewayObject]: ...

    async def retrieve_product(self, product_id: str) -> GatewayObject: ...

    # Customers and payment methods
    async def create_customer(self, req: CreateCustomer) -> GatewayObject: ...

    async def retrieve_customer(self, customer_id: str) -> GatewayObject: ...

    async def update_customer(self, req: UpdateCustomer) -> GatewayObject: ...

    async def delete_customer(self, customer_id: str) -> GatewayObject: ...

    async def retrieve_payment_method(self, payment_method_id: str) -> GatewayObject: ...

    async def attach_payment_method(self, payment_method_id: str, customer_id: str) -> GatewayObject: ...

    async def detach_payment_method(self, payment_method_id: str) -> GatewayObject: ...

    # Subscriptions
    async def list_subscriptions(self, query: ListSubscriptions) -> list[GatewayObject]: ...

    async def create_subscription(self, req: CreateSubscription) -> GatewayObject: ...

    async def retrieve_subscription(self, subscription_id: str) -> GatewayObject: ...

    async def update_subscription(self, req: UpdateSubscription) -> GatewayObject: ...

    async def cancel_subscription(self, subscription_id: str) -> GatewayObject: ...

    # One-off payments
    async def create_payment_intent(self, req: CreatePaymentIntent) -> GatewayObject: ...

    async def retrieve_payment_intent(self, payment_intent_id: str) -> GatewayObject: ...

    async def cancel_payment_intent(self, payment_intent_id: str) -> GatewayObject: ...

    async def create_sku(self, req: CreateSku) -> GatewayObject: ...

    async def create_order(self, req: CreateOrder) -> GatewayObject: ...

    async def retrieve_charge(self, charge_id: str) -> GatewayObject: ...

    async def create_refund(self, req: CreateRefund) -> GatewayObject: ...

    # Promotions
    async def list_coupons(self, query: ListCoupons) -> list[GatewayObject]: ...

    async def retrieve_coupon(self, coupon_id: str, expand: list[str] | None = None) -> GatewayObject: ...

    async def list_promotion_codes(self, query: ListPromotionCodes) -> list[GatewayObject]: ...

    # Webhooks
    def construct_event(self, payload: bytes, signature_header: str, secret: str) -> GatewayObject: ...
