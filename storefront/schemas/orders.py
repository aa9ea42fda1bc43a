# storefront/schemas/orders.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from ..models import CartLine, Order, OrderStatus, PaymentMethod, PaymentStatus
from .cart import CartItemKeyIn

PHONE_PATTERN = r"^[+]?[(]?[0-9]{1,4}[)]?[-\s.]?[(]?[0-9]{1,4}[)]?[-\s.]?[0-9]{1,9}$"


# ---- Requests ----------------------------------------------------------------
class ShippingAddressIn(BaseModel):
    fullName: str = Field(..., min_length=2, max_length=100)
    phone: str = Field(..., pattern=PHONE_PATTERN)
    addressLine1: str = Field(..., min_length=5, max_length=200)
    addressLine2: Optional[str] = Field(None, max_length=200)
    city: str = Field(..., min_length=2, max_length=100)
    state: str = Field(..., min_length=2, max_length=100)
    postalCode: str = Field(..., pattern=r"^[0-9]{5,10}$")
    country: str = Field("India", min_length=2, max_length=100)

    @field_validator("fullName", "phone", "addressLine1", "city", "state", "postalCode", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("country", mode="before")
    @classmethod
    def _country(cls, v):
        # may be omitted or blank from the checkout form
        if v is None or (isinstance(v, str) and not v.strip()):
            return "India"
        return v.strip() if isinstance(v, str) else v


class OrderItemIn(CartItemKeyIn):
    quantity: int = Field(..., ge=1)
    # what the client believes the price is; ignored for pricing
    price: Optional[Decimal] = Field(None, gt=0)

    def to_line(self) -> CartLine:
        return CartLine(self.productId, self.variantId, self.quantity, self.price)


class CreateOrderIn(BaseModel):
    items: Optional[List[OrderItemIn]] = None
    shippingAddress: ShippingAddressIn
    paymentMethod: PaymentMethod
    totalAmount: Decimal = Field(..., gt=0)
    couponCode: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("couponCode", mode="before")
    @classmethod
    def _coupon(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator("couponCode")
    @classmethod
    def _coupon_format(cls, v):
        if v is None:
            return v
        if len(v) < 3:
            raise ValueError("Coupon code must be between 3 and 50 characters")
        if not all(ch.isalnum() or ch == "-" for ch in v):
            raise ValueError("Coupon code can only contain letters, numbers, and hyphens")
        return v.upper()


class UpdateStatusIn(BaseModel):
    status: OrderStatus
    trackingNumber: Optional[str] = Field(None, min_length=5, max_length=100)


# ---- Responses ---------------------------------------------------------------
class OrderCreatedOut(BaseModel):
    orderId: str
    orderNumber: str
    totalAmount: float
    status: OrderStatus


class OrderLineOut(BaseModel):
    productId: str
    variantId: Optional[str] = None
    productName: str
    variantName: Optional[str] = None
    quantity: int
    price: float
    subtotal: float


class AmountsOut(BaseModel):
    subtotal: float
    discount: float
    shipping: float
    tax: float
    total: float
    currency: str


class OrderView(str, Enum):
    """Which projection of an order a caller gets."""
    LIST = "list"
    DETAIL = "detail"
    ADMIN = "admin"


class OrderListView(BaseModel):
    id: str
    orderNumber: str
    totalAmount: float
    status: OrderStatus
    createdAt: Optional[datetime] = None


class OrderDetailView(OrderListView):
    paymentMethod: PaymentMethod
    paymentStatus: PaymentStatus
    couponCode: Optional[str] = None
    items: List[OrderLineOut]
    address: dict
    summary: AmountsOut
    trackingNumber: Optional[str] = None
    deliveredAt: Optional[datetime] = None


class OrderAdminView(OrderDetailView):
    userId: Optional[str] = None
    paymentIntentId: Optional[str] = None
    notes: Optional[str] = None
    updatedAt: Optional[datetime] = None
    shippedAt: Optional[datetime] = None
    cancelledAt: Optional[datetime] = None


def _list_fields(o: Order) -> dict:
    return {
        "id": o.id,
        "orderNumber": o.order_number,
        "totalAmount": float(o.total),
        "status": o.status,
        "createdAt": o.created_at,
    }


def _detail_fields(o: Order) -> dict:
    return {
        **_list_fields(o),
        "paymentMethod": o.payment_method,
        "paymentStatus": o.payment_status,
        "couponCode": o.coupon_code,
        "items": [
            OrderLineOut(
                productId=i.product_id,
                variantId=i.variant_id,
                productName=i.product_name,
                variantName=i.variant_name,
                quantity=i.quantity,
                price=float(i.unit_price),
                subtotal=float(i.subtotal),
            )
            for i in o.items
        ],
        "address": o.shipping_address,
        "summary": AmountsOut(
            subtotal=float(o.subtotal),
            discount=float(o.discount),
            shipping=float(o.shipping),
            tax=float(o.tax),
            total=float(o.total),
            currency=o.currency,
        ),
        "trackingNumber": o.tracking_number,
        "deliveredAt": o.delivered_at,
    }


def project_order(o: Order, view: OrderView) -> Union[OrderListView, OrderDetailView, OrderAdminView]:
    if view is OrderView.LIST:
        return OrderListView(**_list_fields(o))
    if view is OrderView.DETAIL:
        return OrderDetailView(**_detail_fields(o))
    return OrderAdminView(
        **_detail_fields(o),
        userId=o.user_id,
        paymentIntentId=o.payment_intent_id,
        notes=o.notes,
        updatedAt=o.updated_at,
        shippedAt=o.shipped_at,
        cancelledAt=o.cancelled_at,
    )


class PaginationOut(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class OrderListOut(BaseModel):
    orders: List[OrderListView]
    pagination: PaginationOut


class AdminOrderListOut(BaseModel):
    orders: List[OrderAdminView]
    pagination: PaginationOut
