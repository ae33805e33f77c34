"""
Diner order router.
Exactly-once order placement from the shared cart, and the session's orders.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Response, status
from sqlalchemy.orm import Session

from shared.infrastructure.db import get_db
from shared.security.auth import current_session_context
from shared.utils.schemas import OrderOutput, PlaceOrderRequest
from rest_api.services.domain import OrderService
from rest_api.services.domain.views import order_output
from rest_api.services.events import broadcast_order_placed
from .sessions import require_session_scope


router = APIRouter(prefix="/api/sessions", tags=["orders"])


@router.post(
    "/{session_id}/orders",
    response_model=OrderOutput,
    status_code=status.HTTP_201_CREATED,
)
def place_order(
    session_id: str,
    body: PlaceOrderRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: dict[str, str] = Depends(current_session_context),
) -> OrderOutput:
    """
    Place the current cart as an order.

    Retrying with the same ``idempotency_key`` returns the original order
    with status 200 and ``Idempotent-Replayed: true``; nothing is created
    or broadcast again.
    """
    require_session_scope(ctx, session_id)
    result = OrderService(db).place(
        session_id=session_id,
        participant_id=ctx["participant_id"],
        cart_version=body.cart_version,
        idempotency_key=body.idempotency_key,
    )
    output = order_output(result.order)

    if result.replayed:
        response.status_code = status.HTTP_200_OK
        response.headers["Idempotent-Replayed"] = "true"
        return output

    broadcast_order_placed(
        background_tasks,
        output.model_dump(mode="json"),
        actor_participant_id=ctx["participant_id"],
    )
    return output


@router.get("/{session_id}/orders", response_model=list[OrderOutput])
def list_session_orders(
    session_id: str,
    db: Session = Depends(get_db),
    ctx: dict[str, str] = Depends(current_session_context),
) -> list[OrderOutput]:
    """Every order of the session, by round."""
    require_session_scope(ctx, session_id)
    return [order_output(o) for o in OrderService(db).list_session_orders(session_id)]
