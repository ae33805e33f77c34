"""
Shared Cart Router.
Versioned cart mutations for every participant of a table session.
Uses session token authentication (X-Session-Token).
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from shared.config.settings import settings
from shared.infrastructure.db import get_db
from shared.security.auth import current_session_context
from shared.security.rate_limit import limiter
from shared.utils.schemas import CartMutationRequest, CartOutput, ClearCartRequest
from rest_api.services.domain import CartResult, CartService
from rest_api.services.domain.cart_service import mutation_from_payload
from rest_api.services.events import broadcast_cart_updated


router = APIRouter(prefix="/api/carts", tags=["cart"])


def _broadcast(background_tasks: BackgroundTasks, result: CartResult, participant_id: str) -> CartOutput:
    """Schedule CART_UPDATED for the other devices; return the direct response."""
    broadcast_cart_updated(
        background_tasks,
        store_id=result.session.store_id,
        session_id=result.session.id,
        cart=result.output.model_dump(mode="json"),
        actor_participant_id=participant_id,
    )
    return result.output


@router.get("/{cart_id}", response_model=CartOutput)
def get_cart(
    cart_id: str,
    db: Session = Depends(get_db),
    ctx: dict[str, str] = Depends(current_session_context),
) -> CartOutput:
    """Authoritative cart state; clients resynchronize from here after missed events."""
    return CartService(db).get_cart(cart_id, ctx["session_id"]).output


@router.post("/{cart_id}/mutations", response_model=CartOutput)
@limiter.limit(settings.cart_rate_limit)
def mutate_cart(
    request: Request,
    cart_id: str,
    body: CartMutationRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: dict[str, str] = Depends(current_session_context),
) -> CartOutput:
    """
    Apply one ADD / UPDATE / REMOVE at ``expected_version``.

    409 CART_VERSION_MISMATCH carries ``current_version`` and ``latest_cart``;
    the client rebases its change on it and retries.
    """
    result = CartService(db).apply(
        cart_id=cart_id,
        session_id=ctx["session_id"],
        participant_id=ctx["participant_id"],
        expected_version=body.expected_version,
        mutation=mutation_from_payload(body.model_dump()),
    )
    return _broadcast(background_tasks, result, ctx["participant_id"])


@router.post("/{cart_id}/clear", response_model=CartOutput)
@limiter.limit(settings.cart_rate_limit)
def clear_cart(
    request: Request,
    cart_id: str,
    body: ClearCartRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: dict[str, str] = Depends(current_session_context),
) -> CartOutput:
    """Empty the cart in one versioned mutation to start a new round."""
    result = CartService(db).clear(
        cart_id=cart_id,
        session_id=ctx["session_id"],
        participant_id=ctx["participant_id"],
        expected_version=body.expected_version,
    )
    return _broadcast(background_tasks, result, ctx["participant_id"])
