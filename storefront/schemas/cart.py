# storefront/schemas/cart.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models import CartLine


def _blank_variant(v):
    # clients send "", "null" or "undefined" for "no variant"
    if v in (None, "", "null", "undefined"):
        return None
    return v


class CartItemKeyIn(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    productId: str = Field(..., min_length=1)
    variantId: Optional[str] = None

    @field_validator("variantId", mode="before")
    @classmethod
    def _variant(cls, v):
        return _blank_variant(v)


class CartLineIn(CartItemKeyIn):
    quantity: int = Field(1, ge=1)

    def to_line(self) -> CartLine:
        return CartLine(self.productId, self.variantId, self.quantity)


class CartQuantityIn(CartItemKeyIn):
    quantity: int = Field(..., ge=1)


class CartMergeIn(BaseModel):
    items: List[CartLineIn]


class CartItemOut(BaseModel):
    productId: str
    variantId: Optional[str] = None
    productName: str
    variantName: Optional[str] = None
    sku: Optional[str] = None
    categoryId: Optional[str] = None
    price: float
    quantity: int
    lineTotal: float
    inStock: bool


class CartSummaryOut(BaseModel):
    subtotal: float
    totalItems: int


class CartOut(BaseModel):
    items: List[CartItemOut]
    summary: CartSummaryOut

    @classmethod
    def from_view(cls, view: Dict[str, Any]) -> "CartOut":
        return cls(
            items=[CartItemOut(**{**i, "price": float(i["price"]), "lineTotal": float(i["lineTotal"])})
                   for i in view["items"]],
            summary=CartSummaryOut(
                subtotal=float(view["summary"]["subtotal"]),
                totalItems=view["summary"]["totalItems"],
            ),
        )
