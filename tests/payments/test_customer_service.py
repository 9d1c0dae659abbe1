import pytest

from application.services.customer_service import CustomerService
from domain.billing.entity import Customer
from domain.billing.exceptions import CardDeclinedError


@pytest.mark.asyncio
async def test_create_customer_with_payment_method(gateway):
    svc = CustomerService(gateway)

    customer = await svc.create_customer("Ana", "ana@example.com", "pm_1", reference="consultant-1")

    assert customer.default_payment_method_id == "pm_1"
    assert gateway.args("create_customer")[0].idempotency_key


@pytest.mark.asyncio
async def test_create_customer_without_payment_method(gateway):
    svc = CustomerService(gateway)

    customer = await svc.create_customer("Ana", "ana@example.com")

    assert customer.default_payment_method_id is None
    assert gateway.args("create_customer")[0].idempotency_key is None


@pytest.mark.asyncio
async def test_replace_payment_method_detaches_previous(gateway):
    gateway.customers = {"cus_1": {"id": "cus_1", "invoice_settings": {"default_payment_method": "pm_old"}}}
    gateway.payment_methods = {
        "pm_old": {"id": "pm_old", "customer": "cus_1"},
        "pm_new": {"id": "pm_new", "customer": None},
    }
    svc = CustomerService(gateway)

    updated = await svc.update_customer_payment_method(Customer("cus_1", "pm_old"), "pm_new")

    assert updated.default_payment_method_id == "pm_new"
    assert gateway.args("detach_payment_method") == ["pm_old"]
    assert gateway.args("attach_payment_method") == [("pm_new", "cus_1")]


@pytest.mark.asyncio
async def test_find_and_delete_customer(gateway):
    gateway.customers = {"cus_1": {"id": "cus_1", "invoice_settings": {"default_payment_method": None}}}
    svc = CustomerService(gateway)

    found = await svc.find_customer_by_id("cus_1")
    deleted = await svc.delete_customer("cus_1")

    assert found == Customer("cus_1", None)
    assert deleted.id == "cus_1"
    assert "cus_1" not in gateway.customers


@pytest.mark.asyncio
async def test_replace_payment_method_detaches_only_after_new_default_is_set(gateway):
    gateway.customers = {"cus_1": {"id": "cus_1", "invoice_settings": {"default_payment_method": "pm_old"}}}
    gateway.payment_methods = {
        "pm_old": {"id": "pm_old", "customer": "cus_1"},
        "pm_new": {"id": "pm_new", "customer": None},
    }
    svc = CustomerService(gateway)

    await svc.update_customer_payment_method(Customer("cus_1", "pm_old"), "pm_new")

    order = [name for name, _ in gateway.calls]
    assert order == ["attach_payment_method", "update_customer", "detach_payment_method"]


@pytest.mark.asyncio
async def test_declined_new_card_keeps_previous_method(gateway):
    gateway.customers = {"cus_1": {"id": "cus_1", "invoice_settings": {"default_payment_method": "pm_old"}}}
    gateway.payment_methods = {
        "pm_old": {"id": "pm_old", "customer": "cus_1"},
        "pm_declined": {"id": "pm_declined", "customer": None},
    }

    async def declined_attach(payment_method_id, customer_id):
        raise CardDeclinedError("Your card was declined.", decline_code="generic_decline")

    gateway.attach_payment_method = declined_attach
    svc = CustomerService(gateway)

    with pytest.raises(CardDeclinedError):
        await svc.update_customer_payment_method(Customer("cus_1", "pm_old"), "pm_declined")

    assert gateway.payment_methods["pm_old"]["customer"] == "cus_1"
    assert gateway.customers["cus_1"]["invoice_settings"]["default_payment_method"] == "pm_old"
    assert gateway.count("detach_payment_method") == 0
    assert gateway.count("update_customer") == 0
