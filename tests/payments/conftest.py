import hashlib
import hmac
import json
import time
from typing import Any

import pytest
import stripe

from application.dtos.billing import (
    CreateCustomer,
    CreateOrder,
    CreatePaymentIntent,
    CreateRefund,
    CreateSku,
    CreateSubscription,
    GatewayConfig,
    ListCoupons,
    ListPrices,
    ListPromotionCodes,
    ListSubscriptions,
    UpdateCustomer,
    UpdateSubscription,
)
from domain.billing.exceptions import EventParseError, SignatureVerificationError


WEBHOOK_SECRET = "whsec_test"


class NotFound(Exception):
    pass


class RecordingGateway:
    """In-memory BillingGateway that records every call by method name."""

    provider = "stub"

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []
        self.prices: list[dict] = []
        self.products: dict[str, dict] = {}
        self.customers: dict[str, dict] = {}
        self.subscriptions: dict[str, dict] = {}
        self.payment_methods: dict[str, dict] = {}
        self.payment_intents: dict[str, dict] = {}
        self.charges: dict[str, dict] = {}
        self.coupons: list[dict] = []
        self.promotion_codes: list[dict] = []
        self._seq = 0

    def _next(self, prefix: str) -> str:
        self._seq += 1
        return f"{prefix}_{self._seq}"

    def _record(self, name: str, arg: Any = None) -> None:
        self.calls.append((name, arg))

    def count(self, name: str) -> int:
        return sum(1 for n, _ in self.calls if n == name)

    def args(self, name: str) -> list[Any]:
        return [a for n, a in self.calls if n == name]

    @staticmethod
    def _get(store: dict, key: str) -> dict:
        if key not in store:
            raise NotFound(key)
        return store[key]

    # Catalog
    async def list_prices(self, query: ListPrices):
        self._record("list_prices", query)
        prices = [p for p in self.prices if query.product is None or p["product"] == query.product]
        return prices[: query.limit]

    async def retrieve_product(self, product_id: str):
        self._record("retrieve_product", product_id)
        return self._get(self.products, product_id)

    # Customers and payment methods
    async def create_customer(self, req: CreateCustomer):
        self._record("create_customer", req)
        customer = {
            "id": self._next("cus"),
            "invoice_settings": {"default_payment_method": req.payment_method_id},
        }
        self.customers[customer["id"]] = customer
        return customer

    async def retrieve_customer(self, customer_id: str):
        self._record("retrieve_customer", customer_id)
        return self._get(self.customers, customer_id)

    async def update_customer(self, req: UpdateCustomer):
        self._record("update_customer", req)
        customer = dict(self._get(self.customers, req.customer_id))
        customer["invoice_settings"] = {"default_payment_method": req.default_payment_method_id}
        self.customers[req.customer_id] = customer
        return customer

    async def delete_customer(self, customer_id: str):
        self._record("delete_customer", customer_id)
        self._get(self.customers, customer_id)
        del self.customers[customer_id]
        return {"id": customer_id, "deleted": True}

    async def retrieve_payment_method(self, payment_method_id: str):
        self._record("retrieve_payment_method", payment_method_id)
        return self._get(self.payment_methods, payment_method_id)

    async def attach_payment_method(self, payment_method_id: str, customer_id: str):
        self._record("attach_payment_method", (payment_method_id, customer_id))
        pm = dict(self._get(self.payment_methods, payment_method_id), customer=customer_id)
        self.payment_methods[payment_method_id] = pm
        return pm

    async def detach_payment_method(self, payment_method_id: str):
        self._record("detach_payment_method", payment_method_id)
        pm = dict(self._get(self.payment_methods, payment_method_id), customer=None)
        self.payment_methods[payment_method_id] = pm
        return pm

    # Subscriptions
    async def list_subscriptions(self, query: ListSubscriptions):
        self._record("list_subscriptions", query)
        subs = list(self.subscriptions.values())
        if query.customer is not None:
            subs = [s for s in subs if s.get("customer") == query.customer]
        if query.price is not None:
            subs = [s for s in subs if s["items"]["data"][0]["price"]["id"] == query.price]
        return subs

    async def create_subscription(self, req: CreateSubscription):
        self._record("create_subscription", req)
        sub_id = self._next("sub")
        sub = {
            "id": sub_id,
            "object": "subscription",
            "customer": req.customer_id,
            "status": "trialing" if req.trial_period_days else "active",
            "created": int(time.time()) + self._seq,
            "current_period_end": 1_700_000_000,
            "default_payment_method": req.default_payment_method_id,
            "items": {"data": [{"id": f"si_{sub_id}", "price": {"id": req.plan_id, "product": "prod_plan"}}]},
        }
        self.subscriptions[sub_id] = sub
        return sub

    async def retrieve_subscription(self, subscription_id: str):
        self._record("retrieve_subscription", subscription_id)
        return self._get(self.subscriptions, subscription_id)

    async def update_subscription(self, req: UpdateSubscription):
        self._record("update_subscription", req)
        sub = dict(self._get(self.subscriptions, req.subscription_id))
        if req.end_trial_now:
            if sub["status"] != "trialing":
                raise stripe.InvalidRequestError("Subscription is not trialing", param="trial_end")
            sub["status"] = "active"
        if req.default_payment_method_id is not None:
            sub["default_payment_method"] = req.default_payment_method_id
        if req.items is not None:
            sub["items"] = {"data": [{"id": i.id, "price": {"id": i.price, "product": "prod_basic"}} for i in req.items]}
        self.subscriptions[req.subscription_id] = sub
        return sub

    async def cancel_subscription(self, subscription_id: str):
        self._record("cancel_subscription", subscription_id)
        sub = dict(self._get(self.subscriptions, subscription_id), status="canceled")
        self.subscriptions[subscription_id] = sub
        return sub

    # One-off payments
    async def create_payment_intent(self, req: CreatePaymentIntent):
        self._record("create_payment_intent", req)
        pi_id = self._next("pi")
        intent = {
            "id": pi_id,
            "client_secret": f"{pi_id}_secret_xyz",
            "status": "succeeded" if req.capture_method == "automatic" else "requires_capture",
            "payment_method": req.payment_method_id,
            "customer": req.customer_id,
        }
        self.payment_intents[pi_id] = intent
        return intent

    async def retrieve_payment_intent(self, payment_intent_id: str):
        self._record("retrieve_payment_intent", payment_intent_id)
        return self._get(self.payment_intents, payment_intent_id)

    async def cancel_payment_intent(self, payment_intent_id: str):
        self._record("cancel_payment_intent", payment_intent_id)
        intent = dict(self._get(self.payment_intents, payment_intent_id), status="canceled")
        self.payment_intents[payment_intent_id] = intent
        return intent

    async def create_sku(self, req: CreateSku):
        self._record("create_sku", req)
        return {"id": self._next("sku"), "price": req.amount_cents, "product": req.product_id}

    async def create_order(self, req: CreateOrder):
        self._record("create_order", req)
        return {"id": self._next("or"), "status": "created", "customer": req.customer_id}

    async def retrieve_charge(self, charge_id: str):
        self._record("retrieve_charge", charge_id)
        return self._get(self.charges, charge_id)

    async def create_refund(self, req: CreateRefund):
        self._record("create_refund", req)
        return {"id": self._next("re"), "payment_intent": req.payment_intent_id, "status": "succeeded"}

    # Promotions
    async def list_coupons(self, query: ListCoupons):
        self._record("list_coupons", query)
        return self.coupons[: query.limit] if query.limit else list(self.coupons)

    async def retrieve_coupon(self, coupon_id: str, expand=None):
        self._record("retrieve_coupon", coupon_id)
        for coupon in self.coupons:
            if coupon["id"] == coupon_id:
                return coupon
        raise NotFound(coupon_id)

    async def list_promotion_codes(self, query: ListPromotionCodes):
        self._record("list_promotion_codes", query)
        return [p for p in self.promotion_codes if p["code"] == query.code and p.get("active", True)]

    # Webhooks: the processor's real HMAC verification
    def construct_event(self, payload: bytes, signature_header: str, secret: str):
        self._record("construct_event", signature_header)
        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise SignatureVerificationError(str(exc), provider=self.provider) from exc
        try:
            return stripe.Webhook.construct_event(body, signature_header, secret)
        except stripe.SignatureVerificationError as exc:
            raise SignatureVerificationError(str(exc), provider=self.provider) from exc
        except ValueError as exc:
            raise EventParseError(str(exc)) from exc


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    ts = timestamp if timestamp is not None else int(time.time())
    signed = f"{ts}.{payload.decode('utf-8')}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def invoice_event(invoice: dict, event_type: str = "invoice.paid") -> bytes:
    return json.dumps(
        {"id": "evt_1", "object": "event", "type": event_type, "data": {"object": invoice}}
    ).encode("utf-8")


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture
def config() -> GatewayConfig:
    return GatewayConfig(
        webhook_secret=WEBHOOK_SECRET,
        currency="brl",
        default_plan_product_id="prod_plan",
        default_product_id="prod_booking",
        basic_plan_price_id="price_basic",
        catalog_limit=50,
    )


@pytest.fixture
def signer():
    return sign_payload


@pytest.fixture
def event_body():
    return invoice_event
