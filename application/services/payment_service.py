"""
Application service orchestrating one-off charges and booking refunds.

This class depends only on the BillingGateway port and DTOs. Gateway
implementations are provided by infrastructure and injected from the
composition root.
"""
from __future__ import annotations

from typing import Optional

from application.dtos.billing import (
    CreateOrder,
    CreatePaymentIntent,
    CreateRefund,
    CreateSku,
    GatewayConfig,
    ListSubscriptions,
)
from application.mappers.billing import (
    ref_id,
    subscription_period_end,
    to_order,
    to_payment_intent,
    to_payment_method_info,
)
from application.ports.billing_gateway import BillingGateway, GatewayObject
from application.utils.idempotency import derive_idempotency_key, request_idempotency_key
from core.logging_config import get_logger
from domain.billing.entity import Order, PaymentIntent, PaymentMethodInfo
from domain.billing.exceptions import InvariantViolationError
from shared.codes.payment_codes import PaymentIntentStatus, SubscriptionStatus


logger = get_logger(__name__)

_NO_PERIOD_END = float("inf")


def intent_id_from_transaction_code(transaction_code: str) -> str:
    """Client secrets look like `pi_123_secret_abc`; the intent id is the prefix."""
    return transaction_code.split("_secret_")[0]


class PaymentService:
    def __init__(self, gateway: BillingGateway, config: GatewayConfig) -> None:
        self.gateway = gateway
        self.config = config

    async def _billing_subscription(self, customer_id: str) -> GatewayObject:
        """Non-canceled subscription with the soonest period end."""
        subscriptions = await self.gateway.list_subscriptions(ListSubscriptions(customer=customer_id))
        live = [s for s in subscriptions if s.get("status") != SubscriptionStatus.CANCELED]
        if not live:
            raise InvariantViolationError(
                "Customer has no active subscription to charge",
                details={"customer_id": customer_id},
            )
        return min(live, key=lambda s: subscription_period_end(s) or _NO_PERIOD_END)

    async def _default_payment_method(self, customer_id: str) -> GatewayObject:
        subscription = await self._billing_subscription(customer_id)
        payment_method_id = ref_id(subscription.get("default_payment_method"))
        if payment_method_id is None:
            raise InvariantViolationError(
                "Subscription has no default payment method",
                details={"customer_id": customer_id, "subscription_id": subscription["id"]},
            )
        return await self.gateway.retrieve_payment_method(payment_method_id)

    async def charge_with_payment_intent(
        self,
        amount_cents: int,
        customer_id: str,
        capture: Optional[bool] = None,
        *,
        reference: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> PaymentIntent:
        """Create and confirm a card payment with the subscription's payment method.

        `reference` (e.g. a booking id) makes the idempotency key stable so a
        retried call after a timeout cannot charge twice.
        """
        payment_method = await self._default_payment_method(customer_id)
        req = CreatePaymentIntent(
            amount_cents=amount_cents,
            currency=self.config.currency,
            customer_id=ref_id(payment_method.get("customer")) or customer_id,
            payment_method_id=payment_method["id"],
            confirm=True,
            capture_method="manual" if capture is False else "automatic",
            idempotency_key=request_idempotency_key("payment_intent", idempotency_key, reference, customer_id, amount_cents),
        )
        logger.info(
            "payment_intent_request",
            customer_id=customer_id,
            amount_cents=amount_cents,
            idempotency_key=req.idempotency_key,
        )
        intent = to_payment_intent(await self.gateway.create_payment_intent(req))
        logger.info(
            "payment_intent_response",
            customer_id=customer_id,
            payment_intent_id=intent.payment_intent_id,
            status=intent.status,
        )
        return intent

    async def charge_product(
        self,
        product_id: str,
        customer_id: str,
        amount_cents: int,
        *,
        reference: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Order:
        """One-off purchase: infinite-inventory SKU at `amount_cents` plus a one-item order."""
        payment_method = await self._default_payment_method(customer_id)
        if not payment_method.get("customer"):
            await self.gateway.attach_payment_method(payment_method["id"], customer_id)

        key = request_idempotency_key("product_charge", idempotency_key, reference, product_id, customer_id, amount_cents)
        sku = await self.gateway.create_sku(
            CreateSku(
                product_id=product_id,
                amount_cents=amount_cents,
                currency=self.config.currency,
                idempotency_key=f"{key}:sku",
            )
        )
        order = to_order(
            await self.gateway.create_order(
                CreateOrder(
                    customer_id=customer_id,
                    currency=self.config.currency,
                    sku_id=sku["id"],
                    idempotency_key=f"{key}:order",
                )
            )
        )
        logger.info(
            "product_charged",
            product_id=product_id,
            customer_id=customer_id,
            order_id=order.id,
            status=order.status,
        )
        return order

    async def cancel_booking_payment(self, payment_intent_id: Optional[str]) -> None:
        """Refund a settled intent in full, otherwise cancel it.

        The branch follows the status read at call time. If the intent settles
        between the read and the cancel, the processor rejects the cancel and
        that error reaches the caller, who can retry to take the refund branch.
        """
        if not payment_intent_id:
            raise InvariantViolationError("Booking payment has no payment intent")
        intent_id = intent_id_from_transaction_code(payment_intent_id)
        intent = to_payment_intent(await self.gateway.retrieve_payment_intent(intent_id))

        if intent.succeeded():
            refund = await self.gateway.create_refund(
                CreateRefund(
                    payment_intent_id=intent_id,
                    idempotency_key=derive_idempotency_key("booking_refund", intent_id),
                )
            )
            logger.info("booking_refund_issued", payment_intent_id=intent_id, refund_id=refund.get("id"))
        elif intent.status == PaymentIntentStatus.CANCELED:
            logger.info("booking_payment_already_canceled", payment_intent_id=intent_id)
        else:
            await self.gateway.cancel_payment_intent(intent_id)
            logger.info("booking_payment_canceled", payment_intent_id=intent_id, previous_status=intent.status)

    async def find_customer_payment_info(self, subscription_id: str) -> PaymentMethodInfo:
        subscription = await self.gateway.retrieve_subscription(subscription_id)
        payment_method_id = ref_id(subscription.get("default_payment_method"))
        if payment_method_id is None:
            return to_payment_method_info(None)
        return to_payment_method_info(await self.gateway.retrieve_payment_method(payment_method_id))

    async def find_payment_intent(self, transaction_code: str) -> PaymentIntent:
        intent = await self.gateway.retrieve_payment_intent(intent_id_from_transaction_code(transaction_code))
        return to_payment_intent(intent)
