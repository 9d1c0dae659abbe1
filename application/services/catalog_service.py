"""
Catalog cache: a read-only snapshot of the processor's price listing.

The snapshot is loaded on first access with a single outbound listing call
(concurrent first callers share it) and kept for the life of the process.
Prices change upstream, so `refresh()` drops the snapshot and the next lookup
reloads it.
"""
from __future__ import annotations

import asyncio
from typing import Any, Mapping, Optional

from application.dtos.billing import GatewayConfig, ListPrices
from application.mappers.billing import (
    price_to_plan,
    price_to_product,
    price_to_product_plan,
    ref_id,
)
from application.ports.billing_gateway import BillingGateway
from core.logging_config import get_logger
from domain.billing.entity import PaymentInfos, Plan, Product
from domain.billing.exceptions import CatalogEmptyError, ProductNotFoundError


logger = get_logger(__name__)


class CatalogService:
    def __init__(self, gateway: BillingGateway, config: GatewayConfig) -> None:
        self.gateway = gateway
        self.config = config
        self._prices: Optional[tuple[Mapping[str, Any], ...]] = None
        self._product_names: dict[str, str] = {}
        self._generation = 0
        self._lock = asyncio.Lock()

    async def _snapshot(self) -> tuple[Mapping[str, Any], ...]:
        while True:
            prices = self._prices
            if prices is not None:
                return prices
            async with self._lock:
                if self._prices is not None:
                    continue
                generation = self._generation
                loaded = tuple(
                    await self.gateway.list_prices(
                        ListPrices(limit=self.config.catalog_limit, product=self.config.catalog_product_id)
                    )
                )
                # A refresh() during the listing invalidates what was just read
                if generation != self._generation:
                    logger.info("catalog_load_discarded", generation=generation)
                    continue
                self._prices = loaded
                logger.info(
                    "catalog_loaded",
                    count=len(loaded),
                    scope=self.config.catalog_product_id,
                )
                return loaded

    def refresh(self) -> None:
        """Invalidate the snapshot; the next lookup performs a new listing call.

        A listing already in flight when this is called is discarded.
        """
        self._generation += 1
        self._prices = None
        self._product_names.clear()
        logger.info("catalog_invalidated", generation=self._generation)

    async def _prices_for(self, product_id: Optional[str]) -> list[Mapping[str, Any]]:
        prices = await self._snapshot()
        if product_id is None:
            return list(prices)
        return [p for p in prices if ref_id(p.get("product")) == product_id]

    async def find_plan_by_id(self, plan_id: str) -> Optional[Plan]:
        """Plan whose product is `plan_id`; the returned plan id is the product id."""
        matches = await self._prices_for(plan_id)
        return price_to_product_plan(matches[0]) if matches else None

    async def find_plan_by_product_id(self, product_id: str) -> Optional[Plan]:
        """First price of `product_id` as a Plan keyed by the price id.

        Raises CatalogEmptyError when the snapshot holds no prices at all, so an
        unreachable or misconfigured catalog is not mistaken for "no plan".
        """
        prices = await self._snapshot()
        if not prices:
            raise CatalogEmptyError(self.config.catalog_product_id)
        matches = await self._prices_for(product_id)
        return price_to_plan(matches[0]) if matches else None

    async def find_all_plans(self) -> list[Plan]:
        return [price_to_plan(p) for p in await self._prices_for(self.config.default_plan_product_id)]

    async def find_all_products(self) -> list[Product]:
        return [price_to_product(p) for p in await self._prices_for(self.config.default_product_id)]

    async def find_product_by_id(self, product_id: str) -> Product:
        prices = await self._snapshot()
        if not prices:
            raise CatalogEmptyError(self.config.catalog_product_id)
        matches = await self._prices_for(product_id)
        if not matches:
            raise ProductNotFoundError(product_id)
        name = self._product_names.get(product_id)
        if name is None:
            product = await self.gateway.retrieve_product(product_id)
            name = product.get("name") or ""
            self._product_names[product_id] = name
        return price_to_product(matches[0], name=name)

    async def payment_infos(self, trial_days: int) -> PaymentInfos:
        return PaymentInfos(
            plans=tuple(await self.find_all_plans()),
            products=tuple(await self.find_all_products()),
            trial_days=trial_days,
        )
