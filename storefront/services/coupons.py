# storefront/services/coupons.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from .. import db
from ..errors import ConflictError, CouponError, CouponRejection, NotFoundError, ValidationError
from ..models import Coupon, DiscountType, check_discount_bounds, money

logger = logging.getLogger(__name__)


@dataclass
class CouponCartItem:
    """A cart line as the coupon evaluator sees it."""
    product_id: Optional[str]
    price: Decimal
    quantity: int = 1
    category_id: Optional[str] = None


@dataclass
class CouponEvaluation:
    coupon: Coupon
    discount_amount: Decimal
    applicable_amount: Decimal
    is_valid: bool = True


def _now():
    return datetime.now(timezone.utc)


def _applicable_amount(coupon: Coupon, order_total: Decimal,
                       cart_items: Optional[Sequence[CouponCartItem]]) -> Decimal:
    """
    Amount the coupon may discount.

    Unrestricted coupons (or restricted ones with no cart to inspect) apply to
    the whole order; restricted ones apply to matching lines only.
    """
    if not coupon.is_restricted or not cart_items:
        return order_total
    product_ids = {str(p) for p in coupon.product_ids}
    category_ids = {str(c) for c in coupon.category_ids}
    total = Decimal("0")
    for item in cart_items:
        matches_product = item.product_id is not None and str(item.product_id) in product_ids
        matches_category = item.category_id is not None and str(item.category_id) in category_ids
        if matches_product or matches_category:
            total += Decimal(item.price) * item.quantity
    return total


def evaluate_coupon(
    coupon: Optional[Coupon],
    order_total: Decimal,
    cart_items: Optional[Sequence[CouponCartItem]] = None,
    now: Optional[datetime] = None,
) -> CouponEvaluation:
    """
    Check a coupon against an order and compute its discount.

    Pure: nothing is written, so validating the same code twice is harmless.
    Usage is only counted when an order actually commits.
    Raises CouponError naming the first check that failed.
    """
    if coupon is None:
        raise CouponError(CouponRejection.NOT_FOUND)

    now = now or _now()
    if not coupon.is_active:
        raise CouponError(CouponRejection.INACTIVE)
    if coupon.valid_from and coupon.valid_from > now:
        raise CouponError(CouponRejection.NOT_YET_VALID)
    if coupon.valid_until and coupon.valid_until < now:
        raise CouponError(CouponRejection.EXPIRED)
    if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
        raise CouponError(CouponRejection.USAGE_LIMIT_REACHED)

    order_total = Decimal(order_total)
    applicable = _applicable_amount(coupon, order_total, cart_items)
    if coupon.is_restricted and cart_items and applicable == 0:
        raise CouponError(CouponRejection.NOT_APPLICABLE)

    if coupon.min_order_amount is not None and applicable < coupon.min_order_amount:
        raise CouponError(
            CouponRejection.MIN_ORDER_NOT_MET,
            f"Minimum order amount of {money(coupon.min_order_amount)} required",
        )

    if coupon.discount_type is DiscountType.PERCENTAGE:
        discount = applicable * Decimal(coupon.discount_value) / 100
    else:
        discount = Decimal(coupon.discount_value)

    if coupon.max_discount_amount is not None and discount > coupon.max_discount_amount:
        discount = Decimal(coupon.max_discount_amount)
    # never more than what is being paid for
    if discount > applicable:
        discount = applicable
    if discount < 0:
        discount = Decimal("0")

    return CouponEvaluation(
        coupon=coupon,
        discount_amount=money(discount),
        applicable_amount=money(applicable),
    )


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


async def check_coupon(repo, code: str, order_total: Decimal,
                       cart_items: Optional[Sequence[CouponCartItem]] = None,
                       user_id: Optional[str] = None, lock: bool = False) -> CouponEvaluation:
    """Load a coupon by code, enforce the per-user limit and evaluate it."""
    coupon = await repo.get_coupon_by_code(normalize_code(code), lock=lock)
    evaluation = evaluate_coupon(coupon, order_total, cart_items)
    if user_id and coupon.per_user_limit is not None:
        used = await repo.count_coupon_usage(coupon.id, user_id)
        if used >= coupon.per_user_limit:
            raise CouponError(CouponRejection.USER_LIMIT_REACHED)
    return evaluation


async def validate_coupon(code: str, order_total: Decimal,
                          cart_items: Optional[Sequence[CouponCartItem]] = None,
                          user_id: Optional[str] = None) -> CouponEvaluation:
    async with db.unit_of_work() as repo:
        return await check_coupon(repo, code, order_total, cart_items, user_id)


# --- Admin --------------------------------------------------------------------
async def list_coupons() -> List[Coupon]:
    async with db.unit_of_work() as repo:
        return await repo.list_coupons()


async def list_available_coupons() -> List[Coupon]:
    async with db.unit_of_work() as repo:
        return await repo.list_available_coupons(_now())


async def get_coupon(coupon_id: int) -> Coupon:
    async with db.unit_of_work() as repo:
        coupon = await repo.get_coupon(coupon_id)
    if not coupon:
        raise NotFoundError("Coupon not found", field="id")
    return coupon


async def create_coupon(coupon: Coupon) -> Coupon:
    coupon.code = normalize_code(coupon.code)
    async with db.unit_of_work() as repo:
        if await repo.get_coupon_by_code(coupon.code):
            raise ConflictError("Coupon code already exists", field="code")
        created = await repo.insert_coupon(coupon)
    logger.info("coupon %s created (id=%s)", created.code, created.id)
    return created


async def update_coupon(coupon_id: int, fields: Dict[str, Any],
                        product_ids: Optional[List[str]] = None,
                        category_ids: Optional[List[str]] = None) -> Coupon:
    if "code" in fields:
        fields["code"] = normalize_code(fields["code"])
    async with db.unit_of_work() as repo:
        current = await repo.get_coupon(coupon_id)
        if not current:
            raise NotFoundError("Coupon not found", field="id")
        if "code" in fields and fields["code"] != current.code:
            if await repo.get_coupon_by_code(fields["code"]):
                raise ConflictError("Coupon code already exists", field="code")
        discount_type = DiscountType(fields.get("discount_type", current.discount_type))
        try:
            check_discount_bounds(discount_type, fields.get("discount_value", current.discount_value))
        except ValueError as e:
            raise ValidationError(str(e), field="discountValue")
        # one side of the window may come from the stored coupon
        valid_from = fields.get("valid_from", current.valid_from)
        valid_until = fields.get("valid_until", current.valid_until)
        if valid_from and valid_until and valid_until <= valid_from:
            raise ValidationError("validUntil must be after validFrom", field="validUntil")
        updated = await repo.update_coupon(coupon_id, fields, product_ids, category_ids)
    logger.info("coupon %s updated", updated.code)
    return updated


async def delete_coupon(coupon_id: int) -> None:
    async with db.unit_of_work() as repo:
        if not await repo.delete_coupon(coupon_id):
            raise NotFoundError("Coupon not found", field="id")
    logger.info("coupon id=%s deleted", coupon_id)
