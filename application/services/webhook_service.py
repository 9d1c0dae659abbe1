"""
Invoice webhook processing.

Verifies the event signature, then composes one Invoice snapshot from the
event's invoice plus freshly fetched charge and subscription. The extra
fetches happen inline so the caller gets a self-contained result; if any of
them fails the whole call fails and no partial Invoice is returned.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional

from application.dtos.billing import GatewayConfig
from application.mappers.billing import (
    dig,
    epoch_to_datetime,
    ref_id,
    to_charge,
    to_subscription,
)
from application.ports.billing_gateway import BillingGateway
from core.logging_config import get_logger
from domain.billing.entity import Charge, Invoice
from domain.billing.exceptions import EventParseError


logger = get_logger(__name__)


def _invoice_subscription_id(invoice: Mapping[str, Any]) -> Optional[str]:
    subscription = invoice.get("subscription")
    if subscription is None:
        # Newer API versions nest it under the invoice parent
        subscription = dig(invoice, "parent", "subscription_details", "subscription")
    return ref_id(subscription)


class InvoiceWebhookProcessor:
    def __init__(self, gateway: BillingGateway, config: GatewayConfig) -> None:
        self.gateway = gateway
        self.config = config

    async def _invoice_charge_id(self, invoice: Mapping[str, Any]) -> Optional[str]:
        charge = invoice.get("charge")
        if charge is not None:
            return ref_id(charge)
        # Newer API versions list settlements under invoice.payments instead
        for entry in dig(invoice, "payments", "data") or []:
            payment = entry.get("payment") or {}
            if payment.get("charge") is not None:
                return ref_id(payment["charge"])
            intent_id = ref_id(payment.get("payment_intent"))
            if intent_id is not None:
                intent = await self.gateway.retrieve_payment_intent(intent_id)
                return ref_id(intent.get("latest_charge"))
        return None

    async def parse_invoice_event(
        self,
        payload: bytes,
        signature_header: str,
        signing_secret: Optional[str] = None,
    ) -> Invoice:
        # Raises SignatureVerificationError before anything else is fetched
        event = self.gateway.construct_event(payload, signature_header, signing_secret or self.config.webhook_secret)
        event_id = event.get("id")
        event_type = event.get("type")

        invoice = dig(event, "data", "object")
        if invoice is None or invoice.get("object") != "invoice":
            raise EventParseError(
                "Event does not carry an invoice object",
                event_id=event_id,
                event_type=event_type,
            )
        subscription_id = _invoice_subscription_id(invoice)
        if subscription_id is None or not invoice.get("id"):
            raise EventParseError(
                "Invoice event lacks an id or subscription reference",
                event_id=event_id,
                event_type=event_type,
            )

        charge: Optional[Charge] = None
        charge_id = await self._invoice_charge_id(invoice)
        if charge_id is not None:
            charge = to_charge(await self.gateway.retrieve_charge(charge_id))

        subscription = to_subscription(
            await self.gateway.retrieve_subscription(subscription_id),
            with_plan=True,
        )

        result = Invoice(
            id=invoice["id"],
            status=invoice.get("status") or "",
            subscription=subscription,
            customer_id=ref_id(invoice.get("customer")),
            amount_paid_cents=invoice.get("amount_paid") or 0,
            amount_due_cents=invoice.get("amount_due") or 0,
            charge=charge,
            current_period_end=epoch_to_datetime(subscription.current_period_end_epoch, self.config.timezone),
        )
        logger.info(
            "invoice_webhook_parsed",
            event_id=event_id,
            event_type=event_type,
            invoice_id=result.id,
            invoice_status=result.status,
            subscription_id=subscription.id,
            charge_status=charge.status if charge else None,
        )
        return result
