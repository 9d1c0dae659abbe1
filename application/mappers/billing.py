from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, Optional
from zoneinfo import ZoneInfo

from domain.billing.entity import (
    Charge,
    Coupon,
    Customer,
    Order,
    PaymentIntent,
    PaymentMethodInfo,
    Plan,
    Product,
    PromotionCode,
    Subscription,
)


def dig(obj: Optional[Mapping[str, Any]], *path: Any) -> Any:
    """Follow keys/indexes through nested processor objects; None on any gap."""
    current: Any = obj
    for key in path:
        if current is None:
            return None
        if isinstance(key, int):
            if not isinstance(current, (list, tuple)) or len(current) <= key:
                return None
            current = current[key]
        else:
            current = current.get(key) if hasattr(current, "get") else None
    return current


def ref_id(value: Any) -> Optional[str]:
    """Identifier of a reference that may be a bare id or an expanded object."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return value.get("id")


def epoch_to_datetime(epoch: Optional[int], tz_name: str = "UTC") -> Optional[datetime]:
    if epoch is None:
        return None
    return datetime.fromtimestamp(int(epoch), tz=timezone.utc).astimezone(ZoneInfo(tz_name))


def price_to_plan(price: Mapping[str, Any]) -> Plan:
    return Plan(
        id=price["id"],
        name=price.get("nickname") or "",
        unit_amount_cents=price.get("unit_amount") or 0,
    )


def price_to_product_plan(price: Mapping[str, Any]) -> Plan:
    # Plans looked up by product are keyed by the product id
    return Plan(
        id=ref_id(price.get("product")) or price["id"],
        name=price.get("nickname") or "",
        unit_amount_cents=price.get("unit_amount") or 0,
    )


def price_to_product(price: Mapping[str, Any], name: Optional[str] = None) -> Product:
    return Product(
        id=price["id"],
        name=name if name is not None else (price.get("nickname") or ""),
        unit_amount_cents=price.get("unit_amount") or 0,
    )


def to_customer(customer: Mapping[str, Any]) -> Customer:
    return Customer(
        id=customer["id"],
        default_payment_method_id=ref_id(dig(customer, "invoice_settings", "default_payment_method")),
    )


def subscription_period_end(sub: Mapping[str, Any]) -> Optional[int]:
    # Newer API versions carry the billing period on the item instead
    end = sub.get("current_period_end")
    if end is None:
        end = dig(sub, "items", "data", 0, "current_period_end")
    return end


def subscription_plan_product_id(sub: Mapping[str, Any]) -> Optional[str]:
    item = dig(sub, "items", "data", 0)
    product = dig(item, "plan", "product")
    if product is None:
        product = dig(item, "price", "product")
    return ref_id(product)


def to_subscription(sub: Mapping[str, Any], *, with_plan: bool = False) -> Subscription:
    return Subscription(
        id=sub["id"],
        status=sub["status"],
        current_period_end_epoch=subscription_period_end(sub),
        plan_product_id=subscription_plan_product_id(sub) if with_plan else None,
    )


def to_payment_intent(intent: Mapping[str, Any]) -> PaymentIntent:
    return PaymentIntent(
        id=intent.get("client_secret") or intent["id"],
        status=intent["status"],
        payment_intent_id=intent["id"],
        payment_method_id=ref_id(intent.get("payment_method")),
        customer_id=ref_id(intent.get("customer")),
    )


def to_order(order: Mapping[str, Any]) -> Order:
    return Order(id=order["id"], status=order["status"])


def to_charge(charge: Mapping[str, Any]) -> Charge:
    return Charge(
        id=charge["id"],
        status=charge["status"],
        failure_code=charge.get("failure_code"),
        failure_message=charge.get("failure_message"),
    )


def to_payment_method_info(payment_method: Optional[Mapping[str, Any]]) -> PaymentMethodInfo:
    if payment_method is None:
        return PaymentMethodInfo(added=False)
    return PaymentMethodInfo(
        added=True,
        last_four_digits=dig(payment_method, "card", "last4"),
        brand=dig(payment_method, "card", "brand"),
    )


def to_coupon(coupon: Mapping[str, Any]) -> Coupon:
    products = dig(coupon, "applies_to", "products")
    percent_off = coupon.get("percent_off")
    return Coupon(
        id=coupon["id"],
        name=coupon.get("name") or "",
        amount_off_cents=coupon.get("amount_off") or 0,
        percent_off=int(percent_off) if percent_off is not None else 0,
        applicable_product_ids=tuple(products) if products is not None else None,
    )


def to_promotion_code(promotion: Mapping[str, Any], coupon: Coupon) -> PromotionCode:
    return PromotionCode(
        code=promotion["code"],
        coupon=coupon,
        customer_id=ref_id(promotion.get("customer")),
        first_time_transaction_only=dig(promotion, "restrictions", "first_time_transaction"),
    )
