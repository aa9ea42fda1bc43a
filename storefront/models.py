# storefront/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

CENT = Decimal("0.01")

# (product_id, variant_id); a None variant is its own key
LineKey = Tuple[str, Optional[str]]


def money(value: Any) -> Decimal:
    """Quantize anything numeric to cents, half-up."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


TERMINAL_STATUSES = {OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}


class PaymentMethod(str, Enum):
    COD = "cod"
    RAZORPAY = "razorpay"
    STRIPE = "stripe"
    PAYPAL = "paypal"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


@dataclass
class CartLine:
    product_id: str
    variant_id: Optional[str]
    quantity: int
    unit_price: Optional[Decimal] = None

    @property
    def key(self) -> LineKey:
        return (self.product_id, self.variant_id)


@dataclass
class CatalogEntry:
    """Server-trusted price and stock for one product or product variant."""
    product_id: str
    variant_id: Optional[str]
    name: str
    price: Decimal
    stock_quantity: int
    is_active: bool = True
    variant_name: Optional[str] = None
    sku: Optional[str] = None
    category_id: Optional[str] = None

    @property
    def key(self) -> LineKey:
        return (self.product_id, self.variant_id)


@dataclass
class Coupon:
    code: str
    discount_type: DiscountType
    discount_value: Decimal
    id: Optional[int] = None
    description: Optional[str] = None
    min_order_amount: Optional[Decimal] = None
    max_discount_amount: Optional[Decimal] = None
    usage_limit: Optional[int] = None
    per_user_limit: Optional[int] = None
    used_count: int = 0
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: bool = True
    product_ids: List[str] = field(default_factory=list)
    category_ids: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None

    @property
    def is_restricted(self) -> bool:
        return bool(self.product_ids or self.category_ids)


@dataclass
class OrderItem:
    product_id: str
    variant_id: Optional[str]
    product_name: str
    unit_price: Decimal
    quantity: int
    subtotal: Decimal
    variant_name: Optional[str] = None
    sku: Optional[str] = None


@dataclass
class Order:
    id: str
    order_number: str
    user_id: Optional[str]
    items: List[OrderItem]
    shipping_address: Dict[str, Any]
    payment_method: PaymentMethod
    subtotal: Decimal
    discount: Decimal
    shipping: Decimal
    tax: Decimal
    total: Decimal
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    coupon_code: Optional[str] = None
    currency: str = "INR"
    notes: Optional[str] = None
    payment_intent_id: Optional[str] = None
    tracking_number: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


MAX_FIXED_DISCOUNT = Decimal("10000")


def check_discount_bounds(discount_type: DiscountType, value: Decimal) -> None:
    """0 < value; percentages stop at 100, fixed amounts at MAX_FIXED_DISCOUNT."""
    if value <= 0:
        raise ValueError("Discount value must be a positive number")
    if discount_type is DiscountType.PERCENTAGE and value > 100:
        raise ValueError("Percentage discount cannot exceed 100%")
    if discount_type is DiscountType.FIXED and value > MAX_FIXED_DISCOUNT:
        raise ValueError(f"Fixed discount cannot exceed {MAX_FIXED_DISCOUNT}")
