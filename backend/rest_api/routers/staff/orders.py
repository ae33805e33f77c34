"""
Staff order router.
Store-wide order list and the forward-only status machine.
"""

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from shared.config.constants import ALL_STAFF_ROLES
from shared.infrastructure.db import get_db
from shared.security.auth import current_staff_context, require_roles
from shared.utils.schemas import OrderOutput, OrderStatusUpdateRequest
from rest_api.services.domain import OrderService
from rest_api.services.domain.views import order_output
from rest_api.services.events import broadcast_order_status_changed


router = APIRouter(prefix="/api/staff/orders", tags=["staff"])


@router.get("", response_model=list[OrderOutput])
def list_store_orders(
    status: str | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_staff_context),
) -> list[OrderOutput]:
    """
    Orders of the staff member's store, newest first.

    Optional ``status`` filter (PLACED, ACCEPTED, ...).
    """
    require_roles(ctx, ALL_STAFF_ROLES)
    orders = OrderService(db).list_store_orders(ctx["store_id"], status=status, limit=limit)
    return [order_output(o) for o in orders]


@router.patch("/{order_id}/status", response_model=OrderOutput)
def update_order_status(
    order_id: str,
    body: OrderStatusUpdateRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_staff_context),
) -> OrderOutput:
    """
    Advance an order (PLACED -> ACCEPTED -> PREPARING -> READY -> SERVED)
    or cancel it. Cancelling requires a floor role.
    """
    require_roles(ctx, ALL_STAFF_ROLES)
    order = OrderService(db).advance_status(order_id, body.status, ctx)
    output = order_output(order)

    broadcast_order_status_changed(
        background_tasks,
        output.model_dump(mode="json"),
        actor_user_id=ctx["user_id"],
    )
    return output


@router.patch("/{order_id}/items/{item_id}/status", response_model=OrderOutput)
def update_order_item_status(
    order_id: str,
    item_id: str,
    body: OrderStatusUpdateRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_staff_context),
) -> OrderOutput:
    """Advance a single item; the order follows when all its items agree."""
    require_roles(ctx, ALL_STAFF_ROLES)
    order = OrderService(db).advance_item_status(order_id, item_id, body.status, ctx)
    output = order_output(order)

    broadcast_order_status_changed(
        background_tasks,
        output.model_dump(mode="json"),
        actor_user_id=ctx["user_id"],
    )
    return output
