# storefront/routes/orders.py
from __future__ import annotations
from typing import Optional
from fastapi import APIRouter, Depends, Query

from ..models import OrderStatus
from ..schemas.orders import (
    CreateOrderIn,
    OrderCreatedOut,
    OrderDetailView,
    OrderListOut,
    OrderView,
    project_order,
)
from ..services import orders as order_service
from ..services import payments as payment_service
from ..settings import Settings, get_settings
from .deps import current_user_id, is_admin, require_user

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderCreatedOut, status_code=201)
async def create_order_endpoint(
    body: CreateOrderIn,
    user_id: Optional[str] = Depends(current_user_id),
    settings: Settings = Depends(get_settings),
):
    order = await order_service.create_order(
        settings,
        user_id=user_id,
        items=[i.to_line() for i in body.items] if body.items else None,
        shipping_address=body.shippingAddress.model_dump(),
        payment_method=body.paymentMethod,
        declared_total=body.totalAmount,
        coupon_code=body.couponCode,
        notes=body.notes,
    )
    return OrderCreatedOut(
        orderId=order.id,
        orderNumber=order.order_number,
        totalAmount=float(order.total),
        status=order.status,
    )


@router.get("", response_model=OrderListOut)
async def my_orders_endpoint(
    status: Optional[OrderStatus] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user_id: str = Depends(require_user),
):
    result = await order_service.list_orders(user_id=user_id, status=status, page=page, limit=limit)
    return OrderListOut(
        orders=[project_order(o, OrderView.LIST) for o in result["orders"]],
        pagination=result["pagination"],
    )


@router.get("/{order_id}", response_model=OrderDetailView)
async def get_order_endpoint(
    order_id: str,
    user_id: Optional[str] = Depends(current_user_id),
    admin: bool = Depends(is_admin),
):
    order = await order_service.get_order(order_id, user_id=user_id, is_admin=admin)
    return project_order(order, OrderView.DETAIL)


@router.post("/{order_id}/cancel", response_model=OrderDetailView)
async def cancel_order_endpoint(order_id: str, user_id: str = Depends(require_user)):
    order = await order_service.cancel_order(order_id, user_id)
    return project_order(order, OrderView.DETAIL)


@router.post("/{order_id}/payment-intent")
async def payment_intent_endpoint(
    order_id: str,
    user_id: Optional[str] = Depends(current_user_id),
    settings: Settings = Depends(get_settings),
):
    result = await payment_service.create_payment_intent(settings, order_id, user_id)
    return {**result, "total": float(result["total"])}
