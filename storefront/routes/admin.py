from __future__ import annotations
from typing import Optional
from fastapi import APIRouter, Depends, Query

from ..models import OrderStatus
from ..schemas.orders import AdminOrderListOut, OrderAdminView, OrderView, UpdateStatusIn, project_order
from ..services import orders as order_service
from .deps import require_admin

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("/orders", response_model=AdminOrderListOut)
async def admin_orders(
    status: Optional[OrderStatus] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    """All orders, newest first, for the admin UI."""
    result = await order_service.list_orders(status=status, page=page, limit=limit)
    return AdminOrderListOut(
        orders=[project_order(o, OrderView.ADMIN) for o in result["orders"]],
        pagination=result["pagination"],
    )


@router.get("/orders/{order_id}", response_model=OrderAdminView)
async def admin_order(order_id: str):
    order = await order_service.get_order(order_id, is_admin=True)
    return project_order(order, OrderView.ADMIN)


@router.patch("/orders/{order_id}/status", response_model=OrderAdminView)
async def admin_update_status(order_id: str, body: UpdateStatusIn):
    order = await order_service.update_order_status(order_id, body.status, body.trackingNumber)
    return project_order(order, OrderView.ADMIN)
