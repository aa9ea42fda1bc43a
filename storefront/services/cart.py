# storefront/services/cart.py
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from .. import db
from ..errors import NotFoundError, ValidationError
from ..models import CartLine, LineKey, money

logger = logging.getLogger(__name__)


def merge_cart_lines(existing: Iterable[CartLine], incoming: Iterable[CartLine]) -> List[CartLine]:
    """
    Merge a guest cart into a persisted one.

    Lines with the same (product, variant) key are summed, never replaced:
    moving 2 units from a guest cart into an account holding 1 yields 3.
    Unmatched incoming lines are appended in the order first seen.
    Inputs are not mutated.
    """
    merged: Dict[LineKey, CartLine] = {}
    for line in list(existing) + list(incoming):
        current = merged.get(line.key)
        if current is None:
            merged[line.key] = CartLine(line.product_id, line.variant_id, line.quantity, line.unit_price)
        else:
            current.quantity += line.quantity
    return list(merged.values())


async def _cart_view(repo, user_id: str) -> Dict[str, Any]:
    """Persisted lines priced from the live catalog; inactive products are hidden."""
    lines = await repo.get_cart_lines(user_id)
    catalog = await repo.fetch_catalog([l.key for l in lines])

    items, subtotal, total_items = [], Decimal("0"), 0
    for line in lines:
        entry = catalog.get(line.key)
        if entry is None or not entry.is_active:
            continue
        line_total = money(entry.price * line.quantity)
        items.append({
            "productId": line.product_id,
            "variantId": line.variant_id,
            "productName": entry.name,
            "variantName": entry.variant_name,
            "sku": entry.sku,
            "categoryId": entry.category_id,
            "price": money(entry.price),
            "quantity": line.quantity,
            "lineTotal": line_total,
            "inStock": entry.stock_quantity >= line.quantity,
        })
        subtotal += line_total
        total_items += line.quantity
    return {"items": items, "summary": {"subtotal": money(subtotal), "totalItems": total_items}}


async def _ensure_known(repo, lines: List[CartLine]) -> None:
    catalog = await repo.fetch_catalog([l.key for l in lines])
    errors = []
    for line in lines:
        entry = catalog.get(line.key)
        if entry is None or not entry.is_active:
            errors.append(line)
    if errors:
        first = errors[0]
        label = first.product_id if first.variant_id is None else f"{first.product_id}/{first.variant_id}"
        raise NotFoundError(f"Product not found: {label}", field="productId")


async def get_cart(user_id: str) -> Dict[str, Any]:
    async with db.unit_of_work() as repo:
        return await _cart_view(repo, user_id)


async def add_to_cart(user_id: str, line: CartLine) -> Dict[str, Any]:
    if line.quantity <= 0:
        raise ValidationError("Quantity must be at least 1", field="quantity")
    async with db.unit_of_work() as repo:
        await _ensure_known(repo, [line])
        existing = await repo.get_cart_lines(user_id, lock=True)
        await repo.replace_cart(user_id, merge_cart_lines(existing, [line]))
        return await _cart_view(repo, user_id)


async def update_cart_item(user_id: str, product_id: str, variant_id: Optional[str],
                           quantity: int) -> Dict[str, Any]:
    if quantity <= 0:
        raise ValidationError("Quantity must be at least 1", field="quantity")
    key = (product_id, variant_id)
    async with db.unit_of_work() as repo:
        lines = await repo.get_cart_lines(user_id, lock=True)
        target = next((l for l in lines if l.key == key), None)
        if target is None:
            raise NotFoundError("Cart item not found", field="productId")
        target.quantity = quantity
        await repo.replace_cart(user_id, lines)
        return await _cart_view(repo, user_id)


async def remove_from_cart(user_id: str, product_id: str, variant_id: Optional[str]) -> Dict[str, Any]:
    key = (product_id, variant_id)
    async with db.unit_of_work() as repo:
        lines = await repo.get_cart_lines(user_id, lock=True)
        remaining = [l for l in lines if l.key != key]
        if len(remaining) == len(lines):
            raise NotFoundError("Cart item not found", field="productId")
        await repo.replace_cart(user_id, remaining)
        return await _cart_view(repo, user_id)


async def clear_cart(user_id: str) -> Dict[str, Any]:
    async with db.unit_of_work() as repo:
        await repo.clear_cart(user_id)
        return await _cart_view(repo, user_id)


async def merge_into_user_cart(user_id: str, items: List[CartLine]) -> Dict[str, Any]:
    """
    Fold a guest cart into the user's persisted cart.

    Runs in one transaction: an unknown product rejects the whole batch
    and the stored cart is left untouched.
    """
    for line in items:
        if line.quantity <= 0:
            raise ValidationError("Quantity must be at least 1", field="items.quantity")
    async with db.unit_of_work() as repo:
        if items:
            await _ensure_known(repo, items)
        existing = await repo.get_cart_lines(user_id, lock=True)
        merged = merge_cart_lines(existing, items)
        await repo.replace_cart(user_id, merged)
        view = await _cart_view(repo, user_id)
    logger.info("merged %d guest line(s) into cart of user %s (%d line(s) now)",
                len(items), user_id, len(merged))
    return view
