import asyncio

import pytest

from application.services.catalog_service import CatalogService
from domain.billing.exceptions import CatalogEmptyError, ProductNotFoundError


def _seed(gateway):
    gateway.prices = [
        {"id": "price_monthly", "product": "prod_plan", "nickname": "Monthly", "unit_amount": 12345},
        {"id": "price_yearly", "product": "prod_plan", "nickname": None, "unit_amount": None},
        {"id": "price_session", "product": "prod_booking", "nickname": "Session", "unit_amount": 9900},
    ]
    gateway.products = {"prod_booking": {"id": "prod_booking", "name": "Booking"}}


@pytest.mark.asyncio
async def test_find_plan_by_id_is_served_from_one_listing(gateway, config):
    _seed(gateway)
    catalog = CatalogService(gateway, config)

    first = await catalog.find_plan_by_id("prod_plan")
    second = await catalog.find_plan_by_id("prod_plan")

    assert first == second
    assert first.id == "prod_plan"
    assert first.unit_amount_cents == 12345
    assert gateway.count("list_prices") == 1
    assert gateway.args("list_prices")[0].limit == 50


@pytest.mark.asyncio
async def test_concurrent_first_access_lists_once(gateway, config):
    _seed(gateway)
    catalog = CatalogService(gateway, config)

    results = await asyncio.gather(*(catalog.find_all_plans() for _ in range(5)))

    assert gateway.count("list_prices") == 1
    assert all(r == results[0] for r in results)


@pytest.mark.asyncio
async def test_missing_nickname_and_amount_default(gateway, config):
    _seed(gateway)
    catalog = CatalogService(gateway, config)

    plans = await catalog.find_all_plans()

    assert [p.id for p in plans] == ["price_monthly", "price_yearly"]
    assert plans[1].name == ""
    assert plans[1].unit_amount_cents == 0


@pytest.mark.asyncio
async def test_find_plan_by_product_id(gateway, config):
    _seed(gateway)
    catalog = CatalogService(gateway, config)

    plan = await catalog.find_plan_by_product_id("prod_booking")
    assert plan.id == "price_session"
    assert plan.unit_amount_cents == 9900
    assert await catalog.find_plan_by_product_id("prod_unknown") is None


@pytest.mark.asyncio
async def test_empty_catalog_is_reported(gateway, config):
    catalog = CatalogService(gateway, config)

    with pytest.raises(CatalogEmptyError):
        await catalog.find_plan_by_product_id("prod_plan")
    with pytest.raises(CatalogEmptyError):
        await catalog.find_product_by_id("prod_plan")
    assert await catalog.find_plan_by_id("prod_plan") is None


@pytest.mark.asyncio
async def test_find_product_by_id_uses_product_name(gateway, config):
    _seed(gateway)
    catalog = CatalogService(gateway, config)

    product = await catalog.find_product_by_id("prod_booking")
    await catalog.find_product_by_id("prod_booking")

    assert product.name == "Booking"
    assert product.unit_amount_cents == 9900
    assert gateway.count("retrieve_product") == 1
    with pytest.raises(ProductNotFoundError):
        await catalog.find_product_by_id("prod_missing")


@pytest.mark.asyncio
async def test_refresh_reloads_snapshot(gateway, config):
    _seed(gateway)
    catalog = CatalogService(gateway, config)
    await catalog.find_all_products()

    gateway.prices.append({"id": "price_group", "product": "prod_booking", "nickname": "Group", "unit_amount": 4000})
    assert len(await catalog.find_all_products()) == 1

    catalog.refresh()
    products = await catalog.find_all_products()

    assert [p.id for p in products] == ["price_session", "price_group"]
    assert gateway.count("list_prices") == 2


@pytest.mark.asyncio
async def test_payment_infos(gateway, config):
    _seed(gateway)
    catalog = CatalogService(gateway, config)

    infos = await catalog.payment_infos(trial_days=14)

    assert len(infos.plans) == 2
    assert len(infos.products) == 1
    assert infos.trial_days == 14


@pytest.mark.asyncio
async def test_refresh_during_first_load_is_not_lost(gateway, config):
    gateway.prices = [{"id": "price_old", "product": "prod_plan", "nickname": "Old", "unit_amount": 100}]
    listing_started = asyncio.Event()
    release_listing = asyncio.Event()
    list_prices = gateway.list_prices

    async def held_list_prices(query):
        prices = await list_prices(query)
        if gateway.count("list_prices") == 1:
            listing_started.set()
            await release_listing.wait()
        return prices

    gateway.list_prices = held_list_prices
    catalog = CatalogService(gateway, config)

    loading = asyncio.create_task(catalog.find_all_plans())
    await listing_started.wait()
    gateway.prices = [{"id": "price_new", "product": "prod_plan", "nickname": "New", "unit_amount": 200}]
    catalog.refresh()
    release_listing.set()

    assert [p.id for p in await loading] == ["price_new"]
    assert [p.id for p in await catalog.find_all_plans()] == ["price_new"]
    assert gateway.count("list_prices") == 2
