# storefront/routes/coupons.py
from __future__ import annotations
from typing import List, Optional
from fastapi import APIRouter, Depends

from ..schemas.coupons import (
    CouponIn,
    CouponOut,
    CouponUpdateIn,
    CouponValidateIn,
    CouponValidateOut,
)
from ..services import coupons as coupon_service
from ..services.coupons import CouponCartItem
from .deps import current_user_id, require_admin

router = APIRouter(prefix="/coupons", tags=["coupons"])


# ---- Storefront --------------------------------------------------------------
@router.post("/validate", response_model=CouponValidateOut)
async def validate_coupon_endpoint(body: CouponValidateIn, user_id: Optional[str] = Depends(current_user_id)):
    cart_items = None
    if body.cartItems:
        cart_items = [
            CouponCartItem(product_id=i.productId, category_id=i.categoryId, price=i.price, quantity=i.quantity)
            for i in body.cartItems
        ]
    result = await coupon_service.validate_coupon(body.code, body.orderTotal, cart_items, user_id)
    return CouponValidateOut(
        isValid=result.is_valid,
        code=result.coupon.code,
        discountAmount=float(result.discount_amount),
        applicableAmount=float(result.applicable_amount),
    )


@router.get("/available", response_model=List[CouponOut])
async def available_coupons_endpoint():
    return [CouponOut.from_coupon(c) for c in await coupon_service.list_available_coupons()]


# ---- Admin -------------------------------------------------------------------
@router.get("", response_model=List[CouponOut], dependencies=[Depends(require_admin)])
async def list_coupons_endpoint():
    return [CouponOut.from_coupon(c) for c in await coupon_service.list_coupons()]


@router.get("/{coupon_id}", response_model=CouponOut, dependencies=[Depends(require_admin)])
async def get_coupon_endpoint(coupon_id: int):
    return CouponOut.from_coupon(await coupon_service.get_coupon(coupon_id))


@router.post("", response_model=CouponOut, status_code=201, dependencies=[Depends(require_admin)])
async def create_coupon_endpoint(body: CouponIn):
    return CouponOut.from_coupon(await coupon_service.create_coupon(body.to_coupon()))


@router.put("/{coupon_id}", response_model=CouponOut, dependencies=[Depends(require_admin)])
async def update_coupon_endpoint(coupon_id: int, body: CouponUpdateIn):
    updated = await coupon_service.update_coupon(
        coupon_id, body.to_fields(), body.productIds, body.categoryIds
    )
    return CouponOut.from_coupon(updated)


@router.delete("/{coupon_id}", dependencies=[Depends(require_admin)])
async def delete_coupon_endpoint(coupon_id: int):
    await coupon_service.delete_coupon(coupon_id)
    return {"ok": True}
