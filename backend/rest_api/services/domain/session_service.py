"""
Session & Participant Lifecycle Service.

Joins, leaves, staff close and the lazy TTL expiry guard used by every
session-touching operation.

Status flow: OPEN -> CLOSED (staff) | OPEN -> EXPIRED (TTL, detected on access).
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shared.config.constants import (
    AVATAR_COLORS,
    DEFAULT_LANGUAGE,
    ParticipantRole,
    SessionStatus,
)
from shared.config.logging import session_logger as logger
from shared.infrastructure.db import safe_commit
from shared.security.auth import sign_session_token
from shared.utils.exceptions import (
    AuthError,
    ForbiddenError,
    NotFoundError,
    SessionNotActiveError,
    ValidationError,
)
from rest_api.models import (
    Participant,
    SharedCart,
    Table,
    TableSession,
    as_utc,
    utcnow,
)
from .settings_provider import StoreSettings, get_store_settings
from .table_locator import TableLocator


def hash_fingerprint(device_fingerprint: str | None) -> str | None:
    if not device_fingerprint:
        return None
    return hashlib.sha256(device_fingerprint.encode("utf-8")).hexdigest()


def is_overdue(session: TableSession, settings: StoreSettings) -> bool:
    """True if an OPEN session has been idle longer than the store TTL."""
    if session.status != SessionStatus.OPEN:
        return False
    return utcnow() - as_utc(session.last_activity_at) > settings.session_ttl


def effective_status(session: TableSession, settings: StoreSettings) -> str:
    """Status a reader should see, counting an overdue OPEN session as EXPIRED."""
    return SessionStatus.EXPIRED if is_overdue(session, settings) else session.status


def open_session_query(table_id: str):
    """
    The table's OPEN session, row-locked so that concurrent joiners take the
    HOST decision one at a time.
    """
    return (
        select(TableSession)
        .where(
            TableSession.table_id == table_id,
            TableSession.status == SessionStatus.OPEN,
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    )


@dataclass
class JoinResult:
    session: TableSession
    participant: Participant
    session_token: str
    cart: SharedCart
    settings: StoreSettings
    # True when a participant row was created or re-activated
    participant_joined: bool = True
    # Sessions found overdue while joining; announced as closed by the caller
    expired_sessions: list[TableSession] = field(default_factory=list)


@dataclass
class LeaveResult:
    session: TableSession
    participant: Participant
    new_host: Participant | None = None


class SessionService:
    """
    Domain service for table sessions and their participants.

    Every method that writes commits before returning so that the caller can
    broadcast strictly after the state is durable.
    """

    def __init__(self, db: Session):
        self._db = db

    # =========================================================================
    # Guards
    # =========================================================================

    def ensure_open(self, session: TableSession, settings: StoreSettings | None = None) -> None:
        """
        Lazy-expiry guard.

        An overdue OPEN session is persisted as EXPIRED (committing whatever
        the caller has pending, which must be nothing yet) and rejected.

        Raises:
            SessionNotActiveError: If the session is not OPEN. ``expired_now``
                is True only for the call that performed the expiry.
        """
        if session.status != SessionStatus.OPEN:
            raise SessionNotActiveError(session.id, session.status, store_id=session.store_id)

        settings = settings or get_store_settings(self._db, session.store_id)
        if is_overdue(session, settings):
            self._expire(session)
            safe_commit(self._db)
            raise SessionNotActiveError(
                session.id,
                SessionStatus.EXPIRED,
                store_id=session.store_id,
                expired_now=True,
            )

    def get_active_participant(self, session: TableSession, participant_id: str) -> Participant:
        """
        Resolve the acting participant inside a session.

        Raises:
            AuthError: If the participant is unknown to this session or has left.
        """
        participant = self._db.scalar(
            select(Participant).where(
                Participant.id == participant_id,
                Participant.session_id == session.id,
            )
        )
        if not participant or not participant.is_active:
            raise AuthError("Participant is not active in this session", code="PARTICIPANT_INACTIVE")
        return participant

    def touch(self, session: TableSession) -> None:
        """Record activity; the TTL is measured from this timestamp."""
        session.last_activity_at = utcnow()

    def _expire(self, session: TableSession) -> None:
        session.status = SessionStatus.EXPIRED
        session.open_table_id = None
        session.closed_at = utcnow()
        logger.info("Session expired", session_id=session.id, table_id=session.table_id)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_session(self, session_id: str) -> TableSession:
        session = self._db.scalar(select(TableSession).where(TableSession.id == session_id))
        if not session:
            raise NotFoundError("Session", session_id, code="SESSION_NOT_FOUND")
        return session

    def list_participants(self, session_id: str, include_inactive: bool = False) -> list[Participant]:
        query = select(Participant).where(Participant.session_id == session_id)
        if not include_inactive:
            query = query.where(Participant.is_active.is_(True))
        return list(self._db.scalars(query.order_by(Participant.joined_at)).all())

    # =========================================================================
    # Join
    # =========================================================================

    def join(
        self,
        nickname: str,
        qr_token: str | None = None,
        short_code: str | None = None,
        device_fingerprint: str | None = None,
        language: str | None = None,
    ) -> JoinResult:
        """
        Join the table's OPEN session, creating it (and its cart) if needed.

        A device whose fingerprint matches a participant of the session gets
        that participant back (re-activated if it had left) instead of a new
        one. The first active participant of a session is HOST.

        Raises:
            AuthError / NotFoundError / ValidationError: From the table locator.
            ValidationError: Blank nickname.
        """
        nickname = (nickname or "").strip()
        if not nickname:
            raise ValidationError("Nickname is required", code="NICKNAME_REQUIRED")

        table = TableLocator(self._db).resolve(qr_token=qr_token, short_code=short_code)
        settings = get_store_settings(self._db, table.store_id)

        expired: list[TableSession] = []
        session = self._find_open_session(table, settings, expired)
        if session is None:
            session = self._open_session(table, settings, expired)

        fingerprint_hash = hash_fingerprint(device_fingerprint)
        participant, joined = self._admit(session, nickname, fingerprint_hash, language)

        self.touch(session)
        safe_commit(self._db)

        token = sign_session_token(
            session_id=session.id,
            participant_id=participant.id,
            store_id=session.store_id,
            table_id=session.table_id,
        )

        logger.info(
            "Participant joined",
            session_id=session.id,
            participant_id=participant.id,
            role=participant.role,
            rejoined=not joined,
        )

        return JoinResult(
            session=session,
            participant=participant,
            session_token=token,
            cart=session.cart,
            settings=settings,
            participant_joined=joined,
            expired_sessions=expired,
        )

    def _find_open_session(
        self,
        table: Table,
        settings: StoreSettings,
        expired: list[TableSession],
    ) -> TableSession | None:
        session = self._db.scalar(open_session_query(table.id))
        if session is not None and is_overdue(session, settings):
            self._expire(session)
            # Release open_table_id before a replacement claims it
            self._db.flush()
            expired.append(session)
            return None
        return session

    def _open_session(
        self,
        table: Table,
        settings: StoreSettings,
        expired: list[TableSession],
    ) -> TableSession:
        """
        Create a session and its empty cart.

        Two first-joiners racing on one table both try to claim
        ``open_table_id``; the loser re-reads and joins the winner's session.
        """
        session = TableSession(
            store_id=table.store_id,
            table_id=table.id,
            open_table_id=table.id,
            status=SessionStatus.OPEN,
        )
        session.cart = SharedCart(version=0)
        self._db.add(session)
        try:
            self._db.flush()
        except IntegrityError:
            self._db.rollback()
            logger.info("Concurrent session open detected, joining existing", table_id=table.id)
            expired.clear()
            existing = self._find_open_session(table, settings, expired)
            if existing is None:
                raise
            return existing

        logger.info("Session opened", session_id=session.id, table_id=table.id, store_id=table.store_id)
        return session

    def _admit(
        self,
        session: TableSession,
        nickname: str,
        fingerprint_hash: str | None,
        language: str | None,
    ) -> tuple[Participant, bool]:
        """Return (participant, joined) where joined is False for a plain reconnect."""
        has_active = self._db.scalar(
            select(Participant.id).where(
                Participant.session_id == session.id,
                Participant.is_active.is_(True),
            )
        ) is not None

        if fingerprint_hash:
            existing = self._db.scalar(
                select(Participant).where(
                    Participant.session_id == session.id,
                    Participant.device_fingerprint_hash == fingerprint_hash,
                )
            )
            if existing is not None:
                existing.nickname = nickname
                if language:
                    existing.language = language
                if existing.is_active:
                    return existing, False
                existing.is_active = True
                existing.left_at = None
                existing.role = ParticipantRole.GUEST if has_active else ParticipantRole.HOST
                return existing, True

        participant = Participant(
            session_id=session.id,
            nickname=nickname,
            role=ParticipantRole.GUEST if has_active else ParticipantRole.HOST,
            is_active=True,
            avatar_color=AVATAR_COLORS[session.participants_count % len(AVATAR_COLORS)],
            language=language or DEFAULT_LANGUAGE,
            device_fingerprint_hash=fingerprint_hash,
            joined_at=utcnow(),
        )
        session.participants_count += 1
        self._db.add(participant)
        self._db.flush()
        return participant, True

    # =========================================================================
    # Leave / Close
    # =========================================================================

    def leave(self, session_id: str, participant_id: str) -> LeaveResult:
        """
        Deactivate a participant. Their cart lines stay in the cart.

        When the HOST leaves, the earliest-joined remaining active participant
        becomes HOST.

        Raises:
            SessionNotActiveError: Session is CLOSED, EXPIRED or overdue.
            AuthError: Participant is not active in this session.
        """
        session = self.get_session(session_id)
        self.ensure_open(session)
        participant = self.get_active_participant(session, participant_id)

        participant.is_active = False
        participant.left_at = utcnow()

        new_host = None
        if participant.is_host:
            participant.role = ParticipantRole.GUEST
            new_host = self._db.scalar(
                select(Participant)
                .where(
                    Participant.session_id == session.id,
                    Participant.is_active.is_(True),
                    Participant.id != participant.id,
                )
                .order_by(Participant.joined_at)
                .limit(1)
            )
            if new_host is not None:
                new_host.role = ParticipantRole.HOST

        safe_commit(self._db)

        logger.info(
            "Participant left",
            session_id=session.id,
            participant_id=participant.id,
            new_host_id=new_host.id if new_host else None,
        )
        return LeaveResult(session=session, participant=participant, new_host=new_host)

    def close(self, session_id: str, store_id: str, staff_user_id: str | None = None) -> TableSession:
        """
        Staff close. CLOSED is terminal.

        Raises:
            NotFoundError: Unknown session.
            ForbiddenError: Session belongs to another store.
            SessionNotActiveError: Session is already CLOSED or EXPIRED, or
                is overdue (persisted as EXPIRED, not CLOSED).
        """
        session = self.get_session(session_id)
        if session.store_id != store_id:
            raise ForbiddenError("close a session of another store", code="STORE_MISMATCH")
        self.ensure_open(session)

        session.status = SessionStatus.CLOSED
        session.open_table_id = None
        session.closed_at = utcnow()
        safe_commit(self._db)

        logger.info("Session closed", session_id=session.id, staff_user_id=staff_user_id)
        return session
