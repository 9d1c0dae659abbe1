"""
Subscription lifecycle use-cases.

States: trialing -> active -> past_due | canceled; active -> active on a plan
change; any state -> canceled on explicit cancel. Transition rules are enforced
by the processor; this service composes the calls and returns fresh snapshots.
"""
from __future__ import annotations

from typing import Optional

from application.dtos.billing import (
    CreateSubscription,
    GatewayConfig,
    ListSubscriptions,
    SubscriptionItemUpdate,
    UpdateSubscription,
)
from application.mappers.billing import dig, to_subscription
from application.ports.billing_gateway import BillingGateway, GatewayObject
from application.utils.idempotency import derive_idempotency_key, request_idempotency_key
from core.logging_config import get_logger
from domain.billing.entity import ActivityType, Subscription, SubscriptionHistory
from domain.billing.exceptions import InvariantViolationError
from shared.codes.payment_codes import SubscriptionStatus


logger = get_logger(__name__)


def select_current_subscription(subscriptions: list[GatewayObject]) -> Optional[GatewayObject]:
    """Most recently created subscription that is not canceled."""
    live = [s for s in subscriptions if s.get("status") != SubscriptionStatus.CANCELED]
    if not live:
        return None
    return max(live, key=lambda s: s.get("created") or 0)


def history_for(
    consultant_id: str,
    subscription: Subscription,
    activity_type: ActivityType,
    description: Optional[str] = None,
) -> SubscriptionHistory:
    return SubscriptionHistory(
        consultant_id=consultant_id,
        subscription_id=subscription.id,
        activity_type=activity_type,
        description=description,
    )


class SubscriptionService:
    def __init__(self, gateway: BillingGateway, config: GatewayConfig) -> None:
        self.gateway = gateway
        self.config = config

    async def create_subscription(
        self,
        customer_id: str,
        plan_id: str,
        trial_days_remaining: int,
        payment_method_id: Optional[str] = None,
        coupon_id: Optional[str] = None,
        *,
        reference: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Subscription:
        """Single-item subscription; a remaining trial resumes a partially used one.

        Retries are deduplicated only when the caller passes `idempotency_key` or
        a `reference` naming the signup attempt.
        """
        req = CreateSubscription(
            customer_id=customer_id,
            plan_id=plan_id,
            trial_period_days=trial_days_remaining,
            default_payment_method_id=payment_method_id,
            coupon_id=coupon_id,
            idempotency_key=request_idempotency_key(
                "subscription_create",
                idempotency_key,
                reference,
                customer_id,
                plan_id,
                trial_days_remaining,
                payment_method_id,
                coupon_id,
            ),
        )
        logger.info(
            "subscription_create_request",
            customer_id=customer_id,
            plan_id=plan_id,
            trial_days=trial_days_remaining,
            idempotency_key=req.idempotency_key,
        )
        subscription = to_subscription(await self.gateway.create_subscription(req))
        logger.info("subscription_create_response", subscription_id=subscription.id, status=subscription.status)
        return subscription

    async def charge_now_trial_subscription(self, subscription_id: str) -> Subscription:
        """End the trial now; the processor invoices the period immediately.

        The processor rejects this for subscriptions that are not trialing.
        """
        updated = await self.gateway.update_subscription(
            UpdateSubscription(subscription_id=subscription_id, end_trial_now=True)
        )
        subscription = to_subscription(updated)
        logger.info("subscription_trial_ended", subscription_id=subscription.id, status=subscription.status)
        return subscription

    async def cancel_subscription(self, subscription_id: str) -> Subscription:
        """Immediate cancellation, not at period end."""
        subscription = to_subscription(await self.gateway.cancel_subscription(subscription_id))
        logger.info("subscription_canceled", subscription_id=subscription.id, status=subscription.status)
        return subscription

    async def change_to_basic_plan(self, customer_id: str) -> Optional[Subscription]:
        """Swap the current subscription's item to the basic plan with proration.

        The current subscription is the most recently created one that is not
        canceled; None when the customer has none.
        """
        subscriptions = await self.gateway.list_subscriptions(ListSubscriptions(customer=customer_id))
        current = select_current_subscription(subscriptions)
        if current is None:
            logger.info("basic_plan_change_skipped", customer_id=customer_id, reason="no_subscription")
            return None

        item_id = dig(current, "items", "data", 0, "id")
        if item_id is None:
            raise InvariantViolationError(
                "Subscription has no line item to replace",
                details={"subscription_id": current["id"]},
            )
        basic_price = self.config.basic_plan_price_id
        updated = await self.gateway.update_subscription(
            UpdateSubscription(
                subscription_id=current["id"],
                cancel_at_period_end=False,
                proration_behavior="create_prorations",
                items=[SubscriptionItemUpdate(id=item_id, price=basic_price)],
                idempotency_key=derive_idempotency_key("subscription_basic_plan", current["id"], item_id, basic_price),
            )
        )
        subscription = to_subscription(updated)
        logger.info(
            "basic_plan_changed",
            customer_id=customer_id,
            subscription_id=subscription.id,
            price_id=basic_price,
        )
        return subscription

    async def update_subscription_payment_method(self, subscription_id: str, payment_method_id: str) -> None:
        await self.gateway.update_subscription(
            UpdateSubscription(subscription_id=subscription_id, default_payment_method_id=payment_method_id)
        )
        logger.info(
            "subscription_payment_method_updated",
            subscription_id=subscription_id,
            payment_method_id=payment_method_id,
        )

    async def find_all_subscriptions_by(self, customer_id: str, plan_id: Optional[str] = None) -> list[Subscription]:
        subscriptions = await self.gateway.list_subscriptions(
            ListSubscriptions(customer=customer_id, price=plan_id)
        )
        return [to_subscription(s) for s in subscriptions]
