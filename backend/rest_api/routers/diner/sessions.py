"""
Table session router.
Join by QR token / short code, session reads and leave.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from shared.config.settings import settings
from shared.config.logging import session_logger as logger
from shared.infrastructure.db import get_db
from shared.security.auth import current_session_context
from shared.security.rate_limit import limiter
from shared.utils.exceptions import ForbiddenError
from shared.utils.schemas import (
    CartOutput,
    JoinRequest,
    JoinResponse,
    ParticipantOutput,
    SessionOutput,
)
from rest_api.services.domain import (
    CartService,
    SessionService,
    effective_status,
    get_store_settings,
)
from rest_api.services.domain.views import (
    cart_output,
    participant_output,
    session_output,
)
from rest_api.services.events import (
    broadcast_participant_joined,
    broadcast_participant_left,
    broadcast_session_closed,
)


router = APIRouter(prefix="/api/sessions", tags=["sessions"])


def require_session_scope(ctx: dict[str, str], session_id: str) -> None:
    """A session credential only reaches its own session."""
    if ctx["session_id"] != session_id:
        raise ForbiddenError("access another session", code="SESSION_MISMATCH")


@router.post("/join", response_model=JoinResponse)
@limiter.limit(settings.join_rate_limit)
def join_session(
    request: Request,
    body: JoinRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
) -> JoinResponse:
    """
    Join the table's OPEN session (creating it on first join).

    Returns the session, the acting participant, its session token
    (send it as X-Session-Token) and the current cart.
    """
    service = SessionService(db)
    result = service.join(
        nickname=body.nickname,
        qr_token=body.qr_token,
        short_code=body.short_code,
        device_fingerprint=body.device_fingerprint,
        language=body.language,
    )
    session = result.session
    participant = participant_output(result.participant)

    for expired in result.expired_sessions:
        broadcast_session_closed(background_tasks, expired.store_id, expired.id, expired.status)

    if result.participant_joined:
        broadcast_participant_joined(
            background_tasks,
            session.store_id,
            session.id,
            participant.model_dump(mode="json"),
        )

    return JoinResponse(
        session=session_output(session, participants=service.list_participants(session.id)),
        participant=participant,
        session_token=result.session_token,
        cart=cart_output(result.cart, result.settings.pricing),
    )


@router.get("/{session_id}", response_model=SessionOutput)
def get_session(
    session_id: str,
    db: Session = Depends(get_db),
    ctx: dict[str, str] = Depends(current_session_context),
) -> SessionOutput:
    """Session with its active participants. An idle-too-long session reads as EXPIRED."""
    require_session_scope(ctx, session_id)
    service = SessionService(db)
    session = service.get_session(session_id)
    settings_ = get_store_settings(db, session.store_id)
    return session_output(
        session,
        status=effective_status(session, settings_),
        participants=service.list_participants(session.id),
    )


@router.get("/{session_id}/participants", response_model=list[ParticipantOutput])
def list_participants(
    session_id: str,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    ctx: dict[str, str] = Depends(current_session_context),
) -> list[ParticipantOutput]:
    require_session_scope(ctx, session_id)
    participants = SessionService(db).list_participants(session_id, include_inactive=include_inactive)
    return [participant_output(p) for p in participants]


@router.get("/{session_id}/cart", response_model=CartOutput)
def get_session_cart(
    session_id: str,
    db: Session = Depends(get_db),
    ctx: dict[str, str] = Depends(current_session_context),
) -> CartOutput:
    require_session_scope(ctx, session_id)
    return CartService(db).get_cart_for_session(session_id).output


@router.post("/{session_id}/leave", response_model=ParticipantOutput)
def leave_session(
    session_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: dict[str, str] = Depends(current_session_context),
) -> ParticipantOutput:
    """
    Leave the session. Cart lines added by the participant stay in the cart.
    A leaving HOST hands the role to the earliest remaining participant.
    """
    require_session_scope(ctx, session_id)
    result = SessionService(db).leave(session_id, ctx["participant_id"])

    broadcast_participant_left(
        background_tasks,
        result.session.store_id,
        result.session.id,
        result.participant.id,
        new_host_participant_id=result.new_host.id if result.new_host else None,
    )
    logger.debug("Leave broadcast scheduled", session_id=session_id)
    return participant_output(result.participant)
