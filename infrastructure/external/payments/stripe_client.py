"""
Stripe adapter for the BillingGateway port using the official stripe-python SDK.

Notes on SDK usage:
- Async variants (`*_async`) run over `stripe.HTTPXClient`; SDK-level network
  retries are disabled because retry policy belongs to the caller.
- Idempotency keys are passed through the `idempotency_key` request option.
- SKUs and Orders are legacy resources without typed SDK classes, so they go
  through `stripe.StripeClient.raw_request_async` and `deserialize`, sharing
  the same HTTPX transport as the resource calls.
- Webhook verification uses `stripe.Webhook.construct_event` with the
  `Stripe-Signature` header.
"""
from __future__ import annotations

from typing import Any, Optional

import stripe

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
from application.ports.billing_gateway import GatewayObject
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.billing.exceptions import CardDeclinedError, EventParseError, SignatureVerificationError
from infrastructure.external.payments.base import BaseBillingClient


logger = get_logger(__name__)


def _drop_none(**params: Any) -> dict[str, Any]:
    return {k: v for k, v in params.items() if v is not None}


class StripeClient(BaseBillingClient):
    provider = "stripe"

    def __init__(self, *, secret_key: Optional[str] = None, webhook_tolerance: Optional[int] = None):
        super().__init__(timeouts=payment_settings.timeouts.model_dump())
        key = secret_key or payment_settings.stripe.secret_key
        if not key:
            raise RuntimeError("STRIPE__SECRET_KEY not configured")
        self._webhook_tolerance = (
            webhook_tolerance if webhook_tolerance is not None else payment_settings.webhook.tolerance_seconds
        )
        stripe.api_key = key
        if payment_settings.stripe.api_version:
            stripe.api_version = payment_settings.stripe.api_version
        stripe.max_network_retries = 0
        self._http_client = stripe.HTTPXClient(timeout=self.timeouts)
        stripe.default_http_client = self._http_client
        self._stripe = stripe.StripeClient(
            key,
            stripe_version=payment_settings.stripe.api_version or None,
            max_network_retries=0,
            http_client=self._http_client,
        )

    def _translate_error(self, exc: Exception) -> Optional[Exception]:
        if isinstance(exc, stripe.CardError):
            error = exc.error
            decline_code = getattr(error, "decline_code", None) if error is not None else None
            return CardDeclinedError(
                exc.user_message or str(exc),
                decline_code=decline_code,
                provider_code=exc.code,
            )
        return None

    # Catalog
    async def list_prices(self, query: ListPrices) -> list[GatewayObject]:
        params = _drop_none(limit=query.limit, product=query.product, active=query.active)
        page = await self._call("price.list", lambda: stripe.Price.list_async(**params), product=query.product)
        return list(page.data)

    async def retrieve_product(self, product_id: str) -> GatewayObject:
        return await self._call(
            "product.retrieve", lambda: stripe.Product.retrieve_async(product_id), product_id=product_id
        )

    # Customers and payment methods
    async def create_customer(self, req: CreateCustomer) -> GatewayObject:
        params = _drop_none(name=req.name, email=req.email, idempotency_key=req.idempotency_key)
        if req.payment_method_id:
            params["payment_method"] = req.payment_method_id
            params["invoice_settings"] = {"default_payment_method": req.payment_method_id}
        return await self._call("customer.create", lambda: stripe.Customer.create_async(**params))

    async def retrieve_customer(self, customer_id: str) -> GatewayObject:
        return await self._call(
            "customer.retrieve", lambda: stripe.Customer.retrieve_async(customer_id), customer_id=customer_id
        )

    async def update_customer(self, req: UpdateCustomer) -> GatewayObject:
        return await self._call(
            "customer.modify",
            lambda: stripe.Customer.modify_async(
                req.customer_id,
                invoice_settings={"default_payment_method": req.default_payment_method_id},
            ),
            customer_id=req.customer_id,
        )

    async def delete_customer(self, customer_id: str) -> GatewayObject:
        return await self._call(
            "customer.delete", lambda: stripe.Customer.delete_async(customer_id), customer_id=customer_id
        )

    async def retrieve_payment_method(self, payment_method_id: str) -> GatewayObject:
        return await self._call(
            "payment_method.retrieve",
            lambda: stripe.PaymentMethod.retrieve_async(payment_method_id),
            payment_method_id=payment_method_id,
        )

    async def attach_payment_method(self, payment_method_id: str, customer_id: str) -> GatewayObject:
        return await self._call(
            "payment_method.attach",
            lambda: stripe.PaymentMethod.attach_async(payment_method_id, customer=customer_id),
            payment_method_id=payment_method_id,
            customer_id=customer_id,
        )

    async def detach_payment_method(self, payment_method_id: str) -> GatewayObject:
        return await self._call(
            "payment_method.detach",
            lambda: stripe.PaymentMethod.detach_async(payment_method_id),
            payment_method_id=payment_method_id,
        )

    # Subscriptions
    async def list_subscriptions(self, query: ListSubscriptions) -> list[GatewayObject]:
        params = _drop_none(customer=query.customer, price=query.price, status=query.status, limit=query.limit)
        page = await self._call(
            "subscription.list", lambda: stripe.Subscription.list_async(**params), customer_id=query.customer
        )
        return list(page.data)

    async def create_subscription(self, req: CreateSubscription) -> GatewayObject:
        params: dict[str, Any] = _drop_none(
            customer=req.customer_id,
            items=[{"price": req.plan_id}],
            trial_period_days=req.trial_period_days or None,
            default_payment_method=req.default_payment_method_id,
            idempotency_key=req.idempotency_key,
        )
        if req.coupon_id:
            params["discounts"] = [{"coupon": req.coupon_id}]
        return await self._call(
            "subscription.create",
            lambda: stripe.Subscription.create_async(**params),
            customer_id=req.customer_id,
            plan_id=req.plan_id,
        )

    async def retrieve_subscription(self, subscription_id: str) -> GatewayObject:
        return await self._call(
            "subscription.retrieve",
            lambda: stripe.Subscription.retrieve_async(subscription_id),
            subscription_id=subscription_id,
        )

    async def update_subscription(self, req: UpdateSubscription) -> GatewayObject:
        params: dict[str, Any] = _drop_none(
            default_payment_method=req.default_payment_method_id,
            proration_behavior=req.proration_behavior,
            cancel_at_period_end=req.cancel_at_period_end,
            idempotency_key=req.idempotency_key,
        )
        if req.end_trial_now:
            params["trial_end"] = "now"
        if req.items is not None:
            params["items"] = [item.model_dump() for item in req.items]
        return await self._call(
            "subscription.modify",
            lambda: stripe.Subscription.modify_async(req.subscription_id, **params),
            subscription_id=req.subscription_id,
        )

    async def cancel_subscription(self, subscription_id: str) -> GatewayObject:
        return await self._call(
            "subscription.cancel",
            lambda: stripe.Subscription.cancel_async(subscription_id),
            subscription_id=subscription_id,
        )

    # One-off payments
    async def create_payment_intent(self, req: CreatePaymentIntent) -> GatewayObject:
        params = _drop_none(
            amount=req.amount_cents,
            currency=req.currency,
            customer=req.customer_id,
            payment_method=req.payment_method_id,
            payment_method_types=req.payment_method_types,
            confirm=req.confirm,
            capture_method=req.capture_method,
            idempotency_key=req.idempotency_key,
        )
        return await self._call(
            "payment_intent.create",
            lambda: stripe.PaymentIntent.create_async(**params),
            customer_id=req.customer_id,
            amount_cents=req.amount_cents,
        )

    async def retrieve_payment_intent(self, payment_intent_id: str) -> GatewayObject:
        return await self._call(
            "payment_intent.retrieve",
            lambda: stripe.PaymentIntent.retrieve_async(payment_intent_id),
            payment_intent_id=payment_intent_id,
        )

    async def cancel_payment_intent(self, payment_intent_id: str) -> GatewayObject:
        return await self._call(
            "payment_intent.cancel",
            lambda: stripe.PaymentIntent.cancel_async(payment_intent_id),
            payment_intent_id=payment_intent_id,
        )

    async def _raw_post(self, operation: str, url: str, **params: Any) -> GatewayObject:
        async def _request():
            response = await self._stripe.raw_request_async("post", url, **params)
            return self._stripe.deserialize(response, api_mode="V1")

        return await self._call(operation, _request)

    async def create_sku(self, req: CreateSku) -> GatewayObject:
        return await self._raw_post(
            "sku.create",
            "/v1/skus",
            **_drop_none(
                currency=req.currency,
                price=req.amount_cents,
                product=req.product_id,
                inventory={"type": req.inventory_type},
                idempotency_key=req.idempotency_key,
            ),
        )

    async def create_order(self, req: CreateOrder) -> GatewayObject:
        return await self._raw_post(
            "order.create",
            "/v1/orders",
            **_drop_none(
                currency=req.currency,
                customer=req.customer_id,
                items=[{"type": "sku", "parent": req.sku_id, "quantity": req.quantity}],
                idempotency_key=req.idempotency_key,
            ),
        )

    async def retrieve_charge(self, charge_id: str) -> GatewayObject:
        return await self._call("charge.retrieve", lambda: stripe.Charge.retrieve_async(charge_id), charge_id=charge_id)

    async def create_refund(self, req: CreateRefund) -> GatewayObject:
        params = _drop_none(
            payment_intent=req.payment_intent_id,
            amount=req.amount_cents,
            reason=req.reason,
            idempotency_key=req.idempotency_key,
        )
        return await self._call(
            "refund.create",
            lambda: stripe.Refund.create_async(**params),
            payment_intent_id=req.payment_intent_id,
        )

    # Promotions
    async def list_coupons(self, query: ListCoupons) -> list[GatewayObject]:
        params = _drop_none(limit=query.limit, expand=query.expand or None)
        page = await self._call("coupon.list", lambda: stripe.Coupon.list_async(**params))
        return list(page.data)

    async def retrieve_coupon(self, coupon_id: str, expand: list[str] | None = None) -> GatewayObject:
        params = _drop_none(expand=expand or None)
        return await self._call(
            "coupon.retrieve", lambda: stripe.Coupon.retrieve_async(coupon_id, **params), coupon_id=coupon_id
        )

    async def list_promotion_codes(self, query: ListPromotionCodes) -> list[GatewayObject]:
        params = _drop_none(code=query.code, active=query.active, limit=query.limit)
        page = await self._call("promotion_code.list", lambda: stripe.PromotionCode.list_async(**params))
        return list(page.data)

    # Webhooks
    def construct_event(self, payload: bytes, signature_header: str, secret: str) -> GatewayObject:
        if not signature_header:
            raise SignatureVerificationError("Missing Stripe-Signature header", provider=self.provider)
        try:
            body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        except UnicodeDecodeError as exc:
            # A body that is not UTF-8 cannot be the one that was signed
            raise SignatureVerificationError("Payload is not valid UTF-8", provider=self.provider) from exc
        try:
            return stripe.Webhook.construct_event(
                payload=body,
                sig_header=signature_header,
                secret=secret,
                tolerance=self._webhook_tolerance,
            )
        except stripe.SignatureVerificationError as exc:
            raise SignatureVerificationError(str(exc), provider=self.provider) from exc
        except ValueError as exc:
            # Signature matched but the body is not a JSON event envelope
            raise EventParseError(f"Invalid event payload: {exc}") from exc
