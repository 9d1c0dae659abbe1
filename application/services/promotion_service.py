"""
Promotion code resolution.

Precondition: the processor keeps at most one active promotion code per code
string. Should more than one come back, a warning is logged and the first is
used.
"""
from __future__ import annotations

from typing import Optional

from application.dtos.billing import GatewayConfig, ListCoupons, ListPromotionCodes
from application.mappers.billing import dig, ref_id, to_coupon, to_promotion_code
from application.ports.billing_gateway import BillingGateway
from core.logging_config import get_logger
from domain.billing.entity import Coupon, PromotionCode
from domain.billing.exceptions import InvariantViolationError


logger = get_logger(__name__)

APPLIES_TO_EXPAND = ["data.applies_to"]


class PromotionService:
    def __init__(self, gateway: BillingGateway, config: GatewayConfig) -> None:
        self.gateway = gateway
        self.config = config

    async def find_promotion_code_by_code(self, code: str) -> Optional[PromotionCode]:
        matches = await self.gateway.list_promotion_codes(ListPromotionCodes(code=code, active=True))
        if not matches:
            return None
        if len(matches) > 1:
            logger.warning("promotion_code_ambiguous", code=code, matches=len(matches))
        promotion = matches[0]

        coupon_id = ref_id(promotion.get("coupon")) or ref_id(dig(promotion, "promotion", "coupon"))
        if coupon_id is None:
            raise InvariantViolationError(
                "Promotion code carries no coupon", details={"promotion_code_id": promotion.get("id")}
            )

        coupons = await self.gateway.list_coupons(ListCoupons(expand=APPLIES_TO_EXPAND))
        coupon = next((c for c in coupons if c.get("id") == coupon_id), None)
        if coupon is None:
            # Older coupons fall outside the first listing page
            coupon = await self.gateway.retrieve_coupon(coupon_id, expand=["applies_to"])
        return to_promotion_code(promotion, to_coupon(coupon))

    async def find_all_coupons(self) -> list[Coupon]:
        coupons = await self.gateway.list_coupons(ListCoupons(limit=self.config.coupon_list_limit))
        return [to_coupon(c) for c in coupons]
