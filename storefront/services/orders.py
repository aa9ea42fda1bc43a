# storefront/services/orders.py
from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .. import db
from ..errors import (
    AppError,
    BusinessRuleError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from ..models import (
    CartLine,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    TERMINAL_STATUSES,
)
from ..settings import Settings
from .cart import merge_cart_lines
from .coupons import CouponCartItem, check_coupon
from .pricing import compute_totals, reprice_lines, validate_declared_total

logger = logging.getLogger(__name__)


def _now():
    return datetime.now(timezone.utc)


def _oid():
    return str(uuid.uuid4())


def format_order_number(prefix: str, when: datetime, sequence: int) -> str:
    """ORD-20261019-000042: readable, unique through the database sequence."""
    return f"{prefix}-{when:%Y%m%d}-{sequence:06d}"


async def _resolve_lines(repo, user_id: Optional[str], items: Optional[List[CartLine]]) -> List[CartLine]:
    """Request items win; without them the persisted cart is the source of truth."""
    if items:
        return merge_cart_lines([], items)
    if not user_id:
        raise ValidationError("Items are required for guest checkout", field="items")
    lines = await repo.get_cart_lines(user_id)
    if not lines:
        raise ValidationError("Cart is empty", field="items")
    return lines


async def create_order(
    settings: Settings,
    *,
    user_id: Optional[str],
    items: Optional[List[CartLine]],
    shipping_address: Dict[str, Any],
    payment_method: PaymentMethod,
    declared_total: Decimal,
    coupon_code: Optional[str] = None,
    notes: Optional[str] = None,
) -> Order:
    """
    Turn a cart into a persisted order inside a single transaction.

    Steps: re-price lines against locked catalog rows, check stock and the
    declared total, evaluate the coupon, insert order and items, decrement
    stock, count the coupon use, clear the user's cart. Any failure rolls
    every write back.
    """
    try:
        async with db.unit_of_work() as repo:
            lines = await _resolve_lines(repo, user_id, items)

            catalog = await repo.fetch_catalog([l.key for l in lines], lock=True)
            priced = reprice_lines(lines, catalog)

            for p in priced:
                if p.entry.stock_quantity < p.quantity:
                    raise BusinessRuleError(
                        f"Insufficient stock for {p.entry.name}", field="items.quantity"
                    )

            subtotal = validate_declared_total(priced, declared_total, settings.total_tolerance)

            evaluation = None
            discount = Decimal("0")
            if coupon_code:
                coupon_items = [
                    CouponCartItem(
                        product_id=p.entry.product_id,
                        category_id=p.entry.category_id,
                        price=p.unit_price,
                        quantity=p.quantity,
                    )
                    for p in priced
                ]
                evaluation = await check_coupon(
                    repo, coupon_code, subtotal, coupon_items, user_id, lock=True
                )
                discount = evaluation.discount_amount

            totals = compute_totals(subtotal, discount, settings)

            now = _now()
            sequence = await repo.next_order_sequence()
            order = Order(
                id=_oid(),
                order_number=format_order_number(settings.order_number_prefix, now, sequence),
                user_id=user_id,
                items=[
                    OrderItem(
                        product_id=p.entry.product_id,
                        variant_id=p.entry.variant_id,
                        product_name=p.entry.name,
                        variant_name=p.entry.variant_name,
                        sku=p.entry.sku,
                        unit_price=p.unit_price,
                        quantity=p.quantity,
                        subtotal=p.line_total,
                    )
                    for p in priced
                ],
                shipping_address=shipping_address,
                payment_method=payment_method,
                subtotal=totals.subtotal,
                discount=totals.discount,
                shipping=totals.shipping,
                tax=totals.tax,
                total=totals.total,
                coupon_code=evaluation.coupon.code if evaluation else None,
                currency=settings.currency,
                notes=notes,
                created_at=now,
                updated_at=now,
            )
            await repo.insert_order(order)

            for p in priced:
                if not await repo.decrement_stock(p.entry.product_id, p.entry.variant_id, p.quantity):
                    raise ConflictError(
                        f"{p.entry.name} sold out while placing the order", field="items.quantity"
                    )

            if evaluation:
                if not await repo.increment_coupon_usage(evaluation.coupon.id):
                    raise ConflictError("Coupon usage limit reached", field="couponCode")
                await repo.record_coupon_usage(
                    evaluation.coupon.id, user_id, order.id, totals.discount
                )

            if user_id:
                await repo.clear_cart(user_id)
    except AppError as e:
        logger.warning("checkout rejected for user %s: %s (%s)", user_id or "guest", e.message, e.kind.value)
        raise

    logger.info("order %s placed by %s: total=%s discount=%s",
                order.order_number, user_id or "guest", order.total, order.discount)
    return order


async def get_order(order_id: str, user_id: Optional[str] = None, is_admin: bool = False) -> Order:
    async with db.unit_of_work() as repo:
        order = await repo.get_order(order_id)
    if not order:
        raise NotFoundError("Order not found", field="id")
    if not is_admin and order.user_id != user_id:
        raise ForbiddenError("Not authorized to view this order")
    return order


async def list_orders(user_id: Optional[str] = None, status: Optional[OrderStatus] = None,
                      page: int = 1, limit: int = 20) -> Dict[str, Any]:
    page = max(page, 1)
    async with db.unit_of_work() as repo:
        orders, total = await repo.list_orders(
            user_id=user_id, status=status, limit=limit, offset=(page - 1) * limit
        )
    return {
        "orders": orders,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if limit else 0,
        },
    }


async def _release(repo, order: Order) -> None:
    """Give back what a live order holds: stock and its coupon use."""
    for item in order.items:
        await repo.restore_stock(item.product_id, item.variant_id, item.quantity)
    if order.coupon_code:
        await repo.release_coupon_usage(order.coupon_code, order.id)


async def cancel_order(order_id: str, user_id: Optional[str]) -> Order:
    async with db.unit_of_work() as repo:
        order = await repo.get_order(order_id, lock=True)
        if not order:
            raise NotFoundError("Order not found", field="id")
        if order.user_id is None or order.user_id != user_id:
            raise ForbiddenError("Not authorized to cancel this order")
        if order.status is not OrderStatus.PENDING:
            raise BusinessRuleError("Only pending orders can be cancelled", field="status")

        await repo.update_order_status(order_id, OrderStatus.CANCELLED)
        await _release(repo, order)
        order = await repo.get_order(order_id)
    logger.info("order %s cancelled by user %s", order.order_number, user_id)
    return order


async def update_order_status(order_id: str, status: OrderStatus,
                              tracking_number: Optional[str] = None) -> Order:
    """Admin-driven status change; cancelling from here also restocks."""
    async with db.unit_of_work() as repo:
        order = await repo.get_order(order_id, lock=True)
        if not order:
            raise NotFoundError("Order not found", field="id")
        if order.status in TERMINAL_STATUSES and status is not order.status:
            raise BusinessRuleError(
                f"Order is {order.status.value} and can no longer change status", field="status"
            )
        await repo.update_order_status(order_id, status, tracking_number)
        if status is OrderStatus.CANCELLED and order.status is not OrderStatus.CANCELLED:
            await _release(repo, order)
        previous = order.status
        order = await repo.get_order(order_id)
    logger.info("order %s status %s -> %s", order.order_number, previous.value, status.value)
    return order
