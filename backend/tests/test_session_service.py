"""
Tests for SessionService: join, lazy expiry, leave and staff close.
"""

from datetime import timedelta

import pytest
from sqlalchemy.dialects import postgresql

from shared.config.constants import AVATAR_COLORS, ParticipantRole, SessionStatus
from shared.security.auth import verify_session_token
from shared.utils.exceptions import (
    AuthError,
    ForbiddenError,
    NotFoundError,
    SessionNotActiveError,
    ValidationError,
)
from rest_api.models import TableSession, utcnow
from rest_api.services.domain import SessionService, effective_status, get_store_settings
from rest_api.services.domain.session_service import open_session_query


def make_overdue(db_session, session: TableSession, minutes: int = 181) -> None:
    session.last_activity_at = utcnow() - timedelta(minutes=minutes)
    db_session.commit()


class TestJoin:
    """Joining a table by short code or QR token."""

    def test_first_join_opens_session_and_empty_cart(self, db_session, seed_table):
        """The first joiner opens an OPEN session with a version 0 cart."""
        result = SessionService(db_session).join("Ana", short_code=seed_table.short_code)

        assert result.session.status == SessionStatus.OPEN
        assert result.session.table_id == seed_table.id
        assert result.session.open_table_id == seed_table.id
        assert result.cart.version == 0
        assert result.cart.items == []
        assert result.participant.role == ParticipantRole.HOST
        assert result.participant_joined is True
        assert result.expired_sessions == []

    def test_second_join_is_guest_in_same_session(self, db_session, seed_table):
        """A second device joins the existing session as GUEST."""
        service = SessionService(db_session)
        host = service.join("Ana", short_code=seed_table.short_code)
        guest = service.join("Ben", short_code=seed_table.short_code)

        assert guest.session.id == host.session.id
        assert guest.cart.id == host.cart.id
        assert guest.participant.role == ParticipantRole.GUEST
        assert guest.participant.id != host.participant.id

    def test_short_code_is_case_insensitive(self, db_session, seed_table):
        result = SessionService(db_session).join("Ana", short_code=" abc234 ")
        assert result.session.table_id == seed_table.id

    def test_token_carries_session_scope(self, db_session, seed_table):
        """The issued token authorizes exactly this session and participant."""
        result = SessionService(db_session).join("Ana", short_code=seed_table.short_code)
        ctx = verify_session_token(result.session_token)

        assert ctx["session_id"] == result.session.id
        assert ctx["participant_id"] == result.participant.id
        assert ctx["store_id"] == seed_table.store_id
        assert ctx["table_id"] == seed_table.id

    def test_avatar_colors_rotate(self, db_session, seed_table):
        service = SessionService(db_session)
        colors = [
            service.join(f"Diner {i}", short_code=seed_table.short_code).participant.avatar_color
            for i in range(3)
        ]
        assert colors == AVATAR_COLORS[:3]

    def test_blank_nickname_rejected(self, db_session, seed_table):
        with pytest.raises(ValidationError) as exc_info:
            SessionService(db_session).join("   ", short_code=seed_table.short_code)
        assert exc_info.value.code == "NICKNAME_REQUIRED"

    def test_unknown_short_code(self, db_session, seed_table):
        with pytest.raises(NotFoundError) as exc_info:
            SessionService(db_session).join("Ana", short_code="ZZZ999")
        assert exc_info.value.code == "TABLE_NOT_FOUND"


class TestRejoin:
    """Same device fingerprint returns the same participant."""

    def test_rejoin_with_fingerprint_returns_same_participant(self, db_session, seed_table):
        service = SessionService(db_session)
        first = service.join("Ana", short_code=seed_table.short_code, device_fingerprint="device-1")
        again = service.join("Ana B.", short_code=seed_table.short_code, device_fingerprint="device-1")

        assert again.participant.id == first.participant.id
        assert again.participant.nickname == "Ana B."
        assert again.participant_joined is False
        assert len(service.list_participants(first.session.id)) == 1

    def test_rejoin_after_leave_reactivates(self, db_session, seed_table):
        """A participant that left comes back active, as GUEST if a host exists."""
        service = SessionService(db_session)
        first = service.join("Ana", short_code=seed_table.short_code, device_fingerprint="device-1")
        service.join("Ben", short_code=seed_table.short_code)
        service.leave(first.session.id, first.participant.id)

        back = service.join("Ana", short_code=seed_table.short_code, device_fingerprint="device-1")

        assert back.participant.id == first.participant.id
        assert back.participant.is_active is True
        assert back.participant.left_at is None
        assert back.participant.role == ParticipantRole.GUEST
        assert back.participant_joined is True

    def test_fingerprint_is_stored_hashed(self, db_session, seed_table):
        result = SessionService(db_session).join(
            "Ana", short_code=seed_table.short_code, device_fingerprint="device-1"
        )
        assert result.participant.device_fingerprint_hash != "device-1"
        assert len(result.participant.device_fingerprint_hash) == 64

    def test_open_session_lookup_locks_row(self):
        """The HOST decision runs under a row lock on the session."""
        sql = str(open_session_query("table-1").compile(dialect=postgresql.dialect()))
        assert "FOR UPDATE" in sql


class TestLazyExpiry:
    """An idle OPEN session expires the first time it is touched."""

    def test_effective_status_reports_expired_without_writing(self, db_session, seed_table):
        service = SessionService(db_session)
        joined = service.join("Ana", short_code=seed_table.short_code)
        make_overdue(db_session, joined.session)

        settings = get_store_settings(db_session, seed_table.store_id)
        assert effective_status(joined.session, settings) == SessionStatus.EXPIRED
        assert joined.session.status == SessionStatus.OPEN

    def test_ensure_open_persists_expiry_once(self, db_session, seed_table):
        """The first guard call expires and flags it; later calls see a plain EXPIRED."""
        service = SessionService(db_session)
        joined = service.join("Ana", short_code=seed_table.short_code)
        make_overdue(db_session, joined.session)

        with pytest.raises(SessionNotActiveError) as first:
            service.ensure_open(joined.session)
        assert first.value.expired_now is True
        assert first.value.session_status == SessionStatus.EXPIRED
        assert joined.session.status == SessionStatus.EXPIRED
        assert joined.session.open_table_id is None

        with pytest.raises(SessionNotActiveError) as second:
            service.ensure_open(joined.session)
        assert second.value.expired_now is False

    def test_join_replaces_overdue_session(self, db_session, seed_table):
        """Joining a table whose session went idle opens a new session and cart."""
        service = SessionService(db_session)
        old = service.join("Ana", short_code=seed_table.short_code)
        make_overdue(db_session, old.session)

        new = service.join("Ben", short_code=seed_table.short_code)

        assert new.session.id != old.session.id
        assert new.cart.id != old.cart.id
        assert new.participant.role == ParticipantRole.HOST
        assert [s.id for s in new.expired_sessions] == [old.session.id]
        assert old.session.status == SessionStatus.EXPIRED

    def test_short_ttl_from_store_settings(self, db_session, seed_store, seed_table):
        seed_store.settings = {**seed_store.settings, "session_ttl_minutes": 5}
        db_session.commit()

        service = SessionService(db_session)
        joined = service.join("Ana", short_code=seed_table.short_code)
        make_overdue(db_session, joined.session, minutes=6)

        with pytest.raises(SessionNotActiveError):
            service.ensure_open(joined.session)

    def test_leave_of_overdue_session_expires_it(self, db_session, seed_table):
        """Leaving an idle session changes nobody's role; the session expires instead."""
        service = SessionService(db_session)
        host = service.join("Ana", short_code=seed_table.short_code)
        ben = service.join("Ben", short_code=seed_table.short_code)
        make_overdue(db_session, host.session)

        with pytest.raises(SessionNotActiveError) as exc_info:
            service.leave(host.session.id, host.participant.id)

        assert exc_info.value.expired_now is True
        assert host.session.status == SessionStatus.EXPIRED
        assert host.participant.is_active is True
        assert host.participant.role == ParticipantRole.HOST
        assert ben.participant.role == ParticipantRole.GUEST

    def test_close_of_overdue_session_records_expired(self, db_session, seed_table):
        service = SessionService(db_session)
        joined = service.join("Ana", short_code=seed_table.short_code)
        make_overdue(db_session, joined.session)

        with pytest.raises(SessionNotActiveError) as exc_info:
            service.close(joined.session.id, store_id=seed_table.store_id)

        assert exc_info.value.expired_now is True
        assert exc_info.value.session_status == SessionStatus.EXPIRED
        assert joined.session.status == SessionStatus.EXPIRED
        assert joined.session.open_table_id is None


class TestLeave:
    """Leaving deactivates the participant and hands over HOST."""

    def test_host_leave_promotes_earliest_guest(self, db_session, seed_table):
        service = SessionService(db_session)
        host = service.join("Ana", short_code=seed_table.short_code)
        ben = service.join("Ben", short_code=seed_table.short_code)
        service.join("Cleo", short_code=seed_table.short_code)

        result = service.leave(host.session.id, host.participant.id)

        assert result.participant.is_active is False
        assert result.participant.left_at is not None
        assert result.participant.role == ParticipantRole.GUEST
        assert result.new_host.id == ben.participant.id
        assert result.new_host.role == ParticipantRole.HOST

    def test_guest_leave_keeps_host(self, db_session, seed_table):
        service = SessionService(db_session)
        host = service.join("Ana", short_code=seed_table.short_code)
        guest = service.join("Ben", short_code=seed_table.short_code)

        result = service.leave(guest.session.id, guest.participant.id)

        assert result.new_host is None
        assert host.participant.role == ParticipantRole.HOST

    def test_leave_twice_rejected(self, db_session, seed_table):
        service = SessionService(db_session)
        joined = service.join("Ana", short_code=seed_table.short_code)
        service.leave(joined.session.id, joined.participant.id)

        with pytest.raises(AuthError) as exc_info:
            service.leave(joined.session.id, joined.participant.id)
        assert exc_info.value.code == "PARTICIPANT_INACTIVE"

    def test_inactive_participants_listed_on_request(self, db_session, seed_table):
        service = SessionService(db_session)
        joined = service.join("Ana", short_code=seed_table.short_code)
        service.join("Ben", short_code=seed_table.short_code)
        service.leave(joined.session.id, joined.participant.id)

        assert len(service.list_participants(joined.session.id)) == 1
        assert len(service.list_participants(joined.session.id, include_inactive=True)) == 2


class TestClose:
    """Staff close is terminal."""

    def test_close_open_session(self, db_session, seed_table):
        service = SessionService(db_session)
        joined = service.join("Ana", short_code=seed_table.short_code)

        session = service.close(joined.session.id, store_id=seed_table.store_id, staff_user_id="w-1")

        assert session.status == SessionStatus.CLOSED
        assert session.closed_at is not None
        assert session.open_table_id is None

    def test_close_twice_rejected(self, db_session, seed_table):
        service = SessionService(db_session)
        joined = service.join("Ana", short_code=seed_table.short_code)
        service.close(joined.session.id, store_id=seed_table.store_id)

        with pytest.raises(SessionNotActiveError):
            service.close(joined.session.id, store_id=seed_table.store_id)

    def test_close_other_store_rejected(self, db_session, seed_table):
        service = SessionService(db_session)
        joined = service.join("Ana", short_code=seed_table.short_code)

        with pytest.raises(ForbiddenError) as exc_info:
            service.close(joined.session.id, store_id="other-store")
        assert exc_info.value.code == "STORE_MISMATCH"

    def test_join_after_close_opens_new_session(self, db_session, seed_table):
        service = SessionService(db_session)
        first = service.join("Ana", short_code=seed_table.short_code)
        service.close(first.session.id, store_id=seed_table.store_id)

        second = service.join("Ana", short_code=seed_table.short_code)

        assert second.session.id != first.session.id
        assert second.session.status == SessionStatus.OPEN

    def test_close_unknown_session(self, db_session, seed_table):
        with pytest.raises(NotFoundError) as exc_info:
            SessionService(db_session).close("missing", store_id=seed_table.store_id)
        assert exc_info.value.code == "SESSION_NOT_FOUND"
