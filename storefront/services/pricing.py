# storefront/services/pricing.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from ..errors import BusinessRuleError, NotFoundError
from ..models import CartLine, CatalogEntry, LineKey, money
from ..settings import Settings


@dataclass
class PricedLine:
    """A cart line carrying the catalog's price, never the client's."""
    entry: CatalogEntry
    quantity: int

    @property
    def unit_price(self) -> Decimal:
        return money(self.entry.price)

    @property
    def line_total(self) -> Decimal:
        return money(self.entry.price * self.quantity)


@dataclass
class OrderTotals:
    subtotal: Decimal
    discount: Decimal
    shipping: Decimal
    tax: Decimal
    total: Decimal


def reprice_lines(lines: Iterable[CartLine], catalog: Dict[LineKey, CatalogEntry]) -> List[PricedLine]:
    """Swap every client-declared price for the current catalog price."""
    priced = []
    for line in lines:
        entry = catalog.get(line.key)
        if entry is None:
            raise NotFoundError(f"Product not found: {line.product_id}", field="items.productId")
        if not entry.is_active:
            raise BusinessRuleError(f"{entry.name} is no longer available", field="items.productId")
        if entry.price is None or entry.price <= 0:
            raise BusinessRuleError(f"{entry.name} has no price", field="items.productId")
        priced.append(PricedLine(entry=entry, quantity=line.quantity))
    return priced


def lines_subtotal(items: Iterable[PricedLine]) -> Decimal:
    return money(sum((i.line_total for i in items), Decimal("0")))


def validate_declared_total(items: List[PricedLine], declared_total: Decimal,
                            tolerance: Decimal = Decimal("0.01")) -> Decimal:
    """
    Recompute sum(price * quantity) from re-priced items and compare.

    The tolerance only absorbs sub-cent noise from clients doing float
    arithmetic; a declared total a full cent off is a mismatch.
    Returns the computed subtotal.
    """
    computed = lines_subtotal(items)
    if abs(computed - Decimal(declared_total)) >= tolerance:
        raise BusinessRuleError(
            f"Total amount mismatch. Expected: {computed}, Received: {declared_total}",
            field="totalAmount",
        )
    return computed


def compute_totals(subtotal: Decimal, discount: Decimal, settings: Settings) -> OrderTotals:
    """Apply shipping and tax; total = subtotal - discount + shipping + tax."""
    subtotal = money(subtotal)
    discount = money(min(discount, subtotal))
    taxable = subtotal - discount

    shipping = money(settings.shipping_fee)
    threshold: Optional[Decimal] = settings.free_shipping_threshold
    if threshold is not None and taxable >= threshold:
        shipping = money(0)

    tax = money(taxable * settings.tax_rate)
    total = money(taxable + shipping + tax)
    return OrderTotals(subtotal=subtotal, discount=discount, shipping=shipping, tax=tax, total=total)
