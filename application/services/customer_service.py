"""Gateway-side billing identities and their default payment methods."""
from __future__ import annotations

from typing import Optional

from application.dtos.billing import CreateCustomer, UpdateCustomer
from application.mappers.billing import to_customer
from application.ports.billing_gateway import BillingGateway
from application.utils.idempotency import derive_idempotency_key
from core.logging_config import get_logger
from domain.billing.entity import Customer


logger = get_logger(__name__)


class CustomerService:
    def __init__(self, gateway: BillingGateway) -> None:
        self.gateway = gateway

    async def create_customer(
        self,
        name: str,
        email: Optional[str],
        payment_method_id: Optional[str] = None,
        *,
        reference: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Customer:
        """Create a customer, optionally with a default invoice payment method.

        Card declines while attaching the method raise CardDeclinedError.
        """
        key = idempotency_key
        if key is None and reference is not None:
            key = derive_idempotency_key("customer_create", reference, payment_method_id)
        customer = to_customer(
            await self.gateway.create_customer(
                CreateCustomer(
                    name=name,
                    email=email,
                    payment_method_id=payment_method_id,
                    idempotency_key=key,
                )
            )
        )
        logger.info("customer_created", customer_id=customer.id, has_payment_method=payment_method_id is not None)
        return customer

    async def update_customer_payment_method(self, customer: Customer, payment_method_id: str) -> Customer:
        """Replace the default payment method.

        The new method is attached and made the invoice default before the old
        one is detached, so a declined attach leaves the customer untouched.
        """
        previous = customer.default_payment_method_id
        await self.gateway.attach_payment_method(payment_method_id, customer.id)
        updated = to_customer(
            await self.gateway.update_customer(
                UpdateCustomer(customer_id=customer.id, default_payment_method_id=payment_method_id)
            )
        )
        if previous and previous != payment_method_id:
            await self.gateway.detach_payment_method(previous)
        logger.info(
            "customer_payment_method_replaced",
            customer_id=updated.id,
            previous_payment_method_id=previous,
        )
        return updated

    async def find_customer_by_id(self, customer_id: str) -> Customer:
        return to_customer(await self.gateway.retrieve_customer(customer_id))

    async def delete_customer(self, customer_id: str) -> Customer:
        deleted = await self.gateway.delete_customer(customer_id)
        logger.info("customer_deleted", customer_id=customer_id)
        return Customer(id=deleted["id"])
