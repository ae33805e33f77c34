"""
Tests for session / staff credentials and the QR table token.
"""

import pytest

from shared.security.auth import (
    require_roles,
    require_store,
    sign_session_token,
    sign_staff_token,
    verify_session_token,
    verify_staff_token,
)
from shared.security.qr_token import (
    generate_short_code,
    normalize_short_code,
    sign_qr_token,
    verify_qr_token,
)
from shared.config.constants import SHORT_CODE_CHARSET
from shared.utils.exceptions import AuthError, ForbiddenError, ValidationError


class TestSessionToken:
    """Session-scoped credential issued by join()."""

    def test_round_trip_claims(self):
        """Verification returns the identity the token was signed with."""
        token = sign_session_token("s-1", "p-1", "store-1", "t-1")

        ctx = verify_session_token(token)

        assert ctx == {
            "session_id": "s-1",
            "participant_id": "p-1",
            "store_id": "store-1",
            "table_id": "t-1",
        }

    def test_expired_token_rejected(self):
        """An expired session token is an AuthError with TOKEN_EXPIRED."""
        token = sign_session_token("s-1", "p-1", "store-1", "t-1", ttl_seconds=-10)

        with pytest.raises(AuthError) as exc_info:
            verify_session_token(token)

        assert exc_info.value.code == "TOKEN_EXPIRED"
        assert exc_info.value.status_code == 401

    def test_staff_token_not_accepted_as_session_token(self):
        """Token types are not interchangeable."""
        token = sign_staff_token("u-1", "store-1", ["WAITER"])

        with pytest.raises(AuthError) as exc_info:
            verify_session_token(token)

        assert exc_info.value.code == "TOKEN_INVALID"

    def test_garbage_token_rejected(self):
        with pytest.raises(AuthError):
            verify_session_token("not-a-jwt")


class TestStaffToken:
    """Store-scoped staff credential."""

    def test_round_trip_claims(self):
        token = sign_staff_token("u-1", "store-1", ["WAITER", "KITCHEN"])

        ctx = verify_staff_token(token)

        assert ctx == {"user_id": "u-1", "store_id": "store-1", "roles": ["WAITER", "KITCHEN"]}

    def test_session_token_not_accepted_as_staff_token(self):
        token = sign_session_token("s-1", "p-1", "store-1", "t-1")

        with pytest.raises(AuthError):
            verify_staff_token(token)

    def test_require_roles(self):
        """At least one allowed role must be present."""
        ctx = {"user_id": "u-1", "roles": ["KITCHEN"]}

        require_roles(ctx, ["KITCHEN", "ADMIN"])
        with pytest.raises(ForbiddenError) as exc_info:
            require_roles(ctx, ["WAITER"])
        assert exc_info.value.code == "INSUFFICIENT_ROLE"

    def test_require_store(self):
        ctx = {"user_id": "u-1", "store_id": "store-1", "roles": ["ADMIN"]}

        require_store(ctx, "store-1")
        with pytest.raises(ForbiddenError) as exc_info:
            require_store(ctx, "store-2")
        assert exc_info.value.code == "STORE_MISMATCH"


class TestQrToken:
    """Signed QR table tokens."""

    def test_round_trip(self):
        token = sign_qr_token("store-1", "table-1", 3)

        claims = verify_qr_token(token)

        assert (claims.store_id, claims.table_id, claims.version) == ("store-1", "table-1", 3)

    def test_wrong_secret_rejected(self):
        """A token signed with another secret fails verification."""
        token = sign_qr_token("store-1", "table-1", 1, secret="another-secret")

        with pytest.raises(AuthError) as exc_info:
            verify_qr_token(token)

        assert exc_info.value.code == "QR_INVALID"

    def test_tampered_payload_rejected(self):
        """Changing the table id invalidates the signature."""
        forged = sign_qr_token("store-1", "table-1", 1, secret="x")
        genuine = sign_qr_token("store-1", "table-2", 1)

        with pytest.raises(AuthError):
            verify_qr_token(forged)
        assert verify_qr_token(genuine).table_id == "table-2"

    @pytest.mark.parametrize("token", ["", "%%%", "bm90LWEtdG9rZW4"])
    def test_malformed_rejected(self, token):
        with pytest.raises(AuthError):
            verify_qr_token(token)


class TestShortCode:
    """Typed short codes."""

    def test_generated_codes_use_alphabet(self):
        for _ in range(20):
            code = generate_short_code()
            assert len(code) == 6
            assert all(c in SHORT_CODE_CHARSET for c in code)

    def test_normalize_strips_spaces_dashes_and_case(self):
        assert normalize_short_code(" abc-234 ") == "ABC234"
        assert normalize_short_code("ab c2 34") == "ABC234"

    @pytest.mark.parametrize("raw", ["ABC23", "ABC2345", "ABC10O", ""])
    def test_invalid_format_rejected(self, raw):
        """Wrong length, or ambiguous glyphs (0, 1, O) outside the alphabet."""
        with pytest.raises(ValidationError) as exc_info:
            normalize_short_code(raw)
        assert exc_info.value.code == "SHORT_CODE_INVALID"
