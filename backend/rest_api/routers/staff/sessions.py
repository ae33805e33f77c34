"""
Staff session router.
Floor staff close table sessions (bill settled, table freed).
"""

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from shared.config.constants import FLOOR_ROLES
from shared.infrastructure.db import get_db
from shared.security.auth import current_staff_context, require_roles
from shared.utils.schemas import SessionOutput
from rest_api.services.domain import SessionService
from rest_api.services.domain.views import session_output
from rest_api.services.events import broadcast_session_closed


router = APIRouter(prefix="/api/staff/sessions", tags=["staff"])


@router.post("/{session_id}/close", response_model=SessionOutput)
def close_session(
    session_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_staff_context),
) -> SessionOutput:
    """
    Close an OPEN session. Connected diners receive SESSION_CLOSED and
    every later cart or order call for the session is rejected.

    Requires WAITER, MANAGER, or ADMIN role.
    """
    require_roles(ctx, FLOOR_ROLES)
    service = SessionService(db)
    session = service.close(session_id, store_id=ctx["store_id"], staff_user_id=ctx["user_id"])

    broadcast_session_closed(
        background_tasks,
        session.store_id,
        session.id,
        session.status,
        actor_user_id=ctx["user_id"],
    )
    return session_output(session, participants=service.list_participants(session.id))
