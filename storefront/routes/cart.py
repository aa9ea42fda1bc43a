# storefront/routes/cart.py
from __future__ import annotations
from fastapi import APIRouter, Depends

from ..schemas.cart import CartItemKeyIn, CartLineIn, CartMergeIn, CartOut, CartQuantityIn
from ..services import cart as cart_service
from .deps import require_user

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("", response_model=CartOut)
async def get_cart_endpoint(user_id: str = Depends(require_user)):
    return CartOut.from_view(await cart_service.get_cart(user_id))


@router.post("", response_model=CartOut)
async def add_to_cart_endpoint(body: CartLineIn, user_id: str = Depends(require_user)):
    return CartOut.from_view(await cart_service.add_to_cart(user_id, body.to_line()))


@router.put("/items", response_model=CartOut)
async def update_cart_item_endpoint(body: CartQuantityIn, user_id: str = Depends(require_user)):
    view = await cart_service.update_cart_item(user_id, body.productId, body.variantId, body.quantity)
    return CartOut.from_view(view)


@router.delete("/items", response_model=CartOut)
async def remove_cart_item_endpoint(body: CartItemKeyIn, user_id: str = Depends(require_user)):
    view = await cart_service.remove_from_cart(user_id, body.productId, body.variantId)
    return CartOut.from_view(view)


@router.delete("", response_model=CartOut)
async def clear_cart_endpoint(user_id: str = Depends(require_user)):
    return CartOut.from_view(await cart_service.clear_cart(user_id))


@router.post("/merge", response_model=CartOut)
async def merge_cart_endpoint(body: CartMergeIn, user_id: str = Depends(require_user)):
    """Fold the guest (local) cart into the signed-in user's cart."""
    view = await cart_service.merge_into_user_cart(user_id, [i.to_line() for i in body.items])
    return CartOut.from_view(view)
