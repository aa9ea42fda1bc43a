# storefront/schemas/coupons.py
from __future__ import annotations

import re
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..models import Coupon, DiscountType, check_discount_bounds

_CODE_RE = re.compile(r"^[A-Z0-9-]+$")


def _aware(v: Optional[datetime]) -> Optional[datetime]:
    # naive timestamps from the admin UI are taken as UTC
    if v is not None and v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v


def _check_code(v: str) -> str:
    v = v.strip().upper()
    if not 3 <= len(v) <= 50:
        raise ValueError("Coupon code must be between 3 and 50 characters")
    if not _CODE_RE.match(v):
        raise ValueError("Coupon code must be letters, numbers, and hyphens only")
    if "--" in v:
        raise ValueError("Coupon code cannot contain consecutive hyphens")
    if v.startswith("-") or v.endswith("-"):
        raise ValueError("Coupon code cannot start or end with a hyphen")
    return v


# ---- Validation --------------------------------------------------------------
class CouponCartItemIn(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    productId: Optional[str] = None
    categoryId: Optional[str] = None
    price: Decimal = Field(..., ge=0)
    quantity: int = Field(1, ge=1)


class CouponValidateIn(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    orderTotal: Decimal = Field(..., ge=0)
    cartItems: Optional[List[CouponCartItemIn]] = None


class CouponValidateOut(BaseModel):
    isValid: bool
    code: str
    discountAmount: float
    applicableAmount: float


# ---- Admin -------------------------------------------------------------------
class _CouponFields(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    description: Optional[str] = Field(None, max_length=500)
    minOrderAmount: Optional[Decimal] = Field(None, ge=0)
    maxDiscountAmount: Optional[Decimal] = Field(None, gt=0)
    usageLimit: Optional[int] = Field(None, ge=1)
    perUserLimit: Optional[int] = Field(None, ge=1)
    validFrom: Optional[datetime] = None
    validUntil: Optional[datetime] = None
    productIds: Optional[List[str]] = None
    categoryIds: Optional[List[str]] = None

    @field_validator("validFrom", "validUntil")
    @classmethod
    def _tz(cls, v):
        return _aware(v)

    @model_validator(mode="after")
    def _window(self):
        if self.validFrom and self.validUntil and self.validUntil <= self.validFrom:
            raise ValueError("validUntil must be after validFrom")
        return self


class CouponIn(_CouponFields):
    code: str
    discountType: DiscountType
    discountValue: Decimal
    isActive: bool = True

    @field_validator("code")
    @classmethod
    def _code(cls, v):
        return _check_code(v)

    @model_validator(mode="after")
    def _bounds(self):
        check_discount_bounds(self.discountType, self.discountValue)
        return self

    def to_coupon(self) -> Coupon:
        return Coupon(
            code=self.code,
            description=self.description,
            discount_type=self.discountType,
            discount_value=self.discountValue,
            min_order_amount=self.minOrderAmount,
            max_discount_amount=self.maxDiscountAmount,
            usage_limit=self.usageLimit,
            per_user_limit=self.perUserLimit,
            valid_from=self.validFrom,
            valid_until=self.validUntil,
            is_active=self.isActive,
            product_ids=self.productIds or [],
            category_ids=self.categoryIds or [],
        )


class CouponUpdateIn(_CouponFields):
    code: Optional[str] = None
    discountType: Optional[DiscountType] = None
    discountValue: Optional[Decimal] = None
    isActive: Optional[bool] = None

    # may be omitted, but never sent as null: the columns are NOT NULL
    @field_validator("code", "discountType", "discountValue", "isActive", mode="before")
    @classmethod
    def _not_null(cls, v, info):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v

    @field_validator("code")
    @classmethod
    def _code(cls, v):
        return _check_code(v)

    def to_fields(self) -> dict:
        """Only what the admin actually sent, keyed by column name."""
        names = {
            "code": "code",
            "description": "description",
            "discountType": "discount_type",
            "discountValue": "discount_value",
            "minOrderAmount": "min_order_amount",
            "maxDiscountAmount": "max_discount_amount",
            "usageLimit": "usage_limit",
            "perUserLimit": "per_user_limit",
            "validFrom": "valid_from",
            "validUntil": "valid_until",
            "isActive": "is_active",
        }
        sent = self.model_dump(exclude_unset=True)
        return {column: sent[attr] for attr, column in names.items() if attr in sent}


class CouponOut(BaseModel):
    id: int
    code: str
    description: Optional[str] = None
    discountType: DiscountType
    discountValue: float
    minOrderAmount: Optional[float] = None
    maxDiscountAmount: Optional[float] = None
    usageLimit: Optional[int] = None
    perUserLimit: Optional[int] = None
    usedCount: int
    validFrom: Optional[datetime] = None
    validUntil: Optional[datetime] = None
    isActive: bool
    productIds: List[str] = []
    categoryIds: List[str] = []

    @classmethod
    def from_coupon(cls, c: Coupon) -> "CouponOut":
        return cls(
            id=c.id,
            code=c.code,
            description=c.description,
            discountType=c.discount_type,
            discountValue=float(c.discount_value),
            minOrderAmount=float(c.min_order_amount) if c.min_order_amount is not None else None,
            maxDiscountAmount=float(c.max_discount_amount) if c.max_discount_amount is not None else None,
            usageLimit=c.usage_limit,
            perUserLimit=c.per_user_limit,
            usedCount=c.used_count,
            validFrom=c.valid_from,
            validUntil=c.valid_until,
            isActive=c.is_active,
            productIds=[str(p) for p in c.product_ids],
            categoryIds=[str(x) for x in c.category_ids],
        )
