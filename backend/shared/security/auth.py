"""
Authentication and authorization utilities.

Two JWT credentials are verified here:
- session token: issued by join(), binds a participant to one table session
  (type "session"); presented by diners in the X-Session-Token header or the
  WebSocket ``token`` query parameter.
- staff token: issued by the admin collaborators (type "staff"), carries the
  store id and roles; presented as "Authorization: Bearer <token>".

Every token carries a "jti" so log lines can be correlated without the token.
"""

from __future__ import annotations

import hashlib
import time
import uuid
from typing import Any

import jwt
from fastapi import Header

from shared.config.settings import JWT_SECRET, JWT_ISSUER, JWT_AUDIENCE, settings
from shared.config.logging import get_logger
from shared.utils.exceptions import AuthError, ForbiddenError, InsufficientRoleError

logger = get_logger(__name__)

SESSION_TOKEN_TYPE = "session"
STAFF_TOKEN_TYPE = "staff"

_REQUIRED_CLAIMS = {
    SESSION_TOKEN_TYPE: ("sub", "session_id", "store_id", "table_id"),
    STAFF_TOKEN_TYPE: ("sub", "store_id", "roles"),
}


def _hash_jti(jti: str) -> str:
    """Short hash of a token id for logging."""
    return hashlib.sha256(jti.encode()).hexdigest()[:8]


# =============================================================================
# Signing
# =============================================================================


def sign_jwt(
    payload: dict[str, Any],
    token_type: str,
    ttl_seconds: int,
) -> str:
    """
    Sign a JWT with the standard claims (iss, aud, iat, exp, type, jti).

    Args:
        payload: Domain claims.
        token_type: "session" or "staff".
        ttl_seconds: Token lifetime in seconds.

    Returns:
        Signed JWT token string.
    """
    now = int(time.time())
    data = {
        **payload,
        "iss": JWT_ISSUER,
        "aud": JWT_AUDIENCE,
        "iat": now,
        "exp": now + ttl_seconds,
        "type": token_type,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(data, JWT_SECRET, algorithm="HS256")


def sign_session_token(
    session_id: str,
    participant_id: str,
    store_id: str,
    table_id: str,
    ttl_seconds: int | None = None,
) -> str:
    """Create the session-scoped credential returned by join()."""
    if ttl_seconds is None:
        ttl_seconds = settings.session_token_expire_hours * 60 * 60
    return sign_jwt(
        {
            "sub": participant_id,
            "session_id": session_id,
            "store_id": store_id,
            "table_id": table_id,
        },
        token_type=SESSION_TOKEN_TYPE,
        ttl_seconds=ttl_seconds,
    )


def sign_staff_token(
    user_id: str,
    store_id: str,
    roles: list[str],
    ttl_seconds: int | None = None,
) -> str:
    """
    Create a staff credential. Issuance belongs to the admin auth flow;
    this is used by the CLI and tests.
    """
    if ttl_seconds is None:
        ttl_seconds = settings.staff_token_expire_minutes * 60
    return sign_jwt(
        {"sub": user_id, "store_id": store_id, "roles": list(roles)},
        token_type=STAFF_TOKEN_TYPE,
        ttl_seconds=ttl_seconds,
    )


# =============================================================================
# Verification
# =============================================================================


def verify_jwt(token: str, expected_type: str) -> dict[str, Any]:
    """
    Verify and decode a JWT of the expected type.

    Raises:
        AuthError: If the token is invalid, expired, of the wrong type,
            or missing required claims.
    """
    try:
        payload = jwt.decode(
            token,
            JWT_SECRET,
            algorithms=["HS256"],
            audience=JWT_AUDIENCE,
            issuer=JWT_ISSUER,
        )
    except jwt.ExpiredSignatureError:
        raise AuthError("Token has expired", code="TOKEN_EXPIRED")
    except jwt.InvalidTokenError as e:
        # Generic message to the client, detail only in the log
        logger.warning("JWT validation failed", error=str(e))
        raise AuthError("Invalid token", code="TOKEN_INVALID")

    if payload.get("type") != expected_type:
        raise AuthError(
            "Invalid token type",
            code="TOKEN_INVALID",
            expected_type=expected_type,
            jti_hash=_hash_jti(str(payload.get("jti", ""))),
        )

    missing = [claim for claim in _REQUIRED_CLAIMS[expected_type] if not payload.get(claim)]
    if missing:
        raise AuthError(
            "Invalid token: missing claims",
            code="TOKEN_INVALID",
            missing=missing,
        )

    return payload


def verify_session_token(token: str) -> dict[str, str]:
    """
    Verify a session credential.

    Returns:
        Dict with: session_id, participant_id, store_id, table_id
    """
    payload = verify_jwt(token, SESSION_TOKEN_TYPE)
    return {
        "session_id": str(payload["session_id"]),
        "participant_id": str(payload["sub"]),
        "store_id": str(payload["store_id"]),
        "table_id": str(payload["table_id"]),
    }


def verify_staff_token(token: str) -> dict[str, Any]:
    """
    Verify a staff credential.

    Returns:
        Dict with: user_id, store_id, roles
    """
    payload = verify_jwt(token, STAFF_TOKEN_TYPE)
    roles = payload["roles"]
    if not isinstance(roles, list):
        raise AuthError("Invalid token: malformed roles claim", code="TOKEN_INVALID")
    return {
        "user_id": str(payload["sub"]),
        "store_id": str(payload["store_id"]),
        "roles": [str(role) for role in roles],
    }


def get_bearer_token(authorization: str | None) -> str:
    """
    Extract bearer token from an Authorization header.

    Raises:
        AuthError: If header is missing or malformed.
    """
    if not authorization:
        raise AuthError("Missing Authorization header", code="TOKEN_MISSING")
    if not authorization.startswith("Bearer "):
        raise AuthError(
            "Invalid Authorization header format. Expected: Bearer <token>",
            code="TOKEN_INVALID",
        )
    return authorization.split(" ", 1)[1].strip()


# =============================================================================
# FastAPI dependencies
# =============================================================================


def current_session_context(
    x_session_token: str | None = Header(default=None, alias="X-Session-Token"),
) -> dict[str, str]:
    """
    FastAPI dependency to get the acting participant from X-Session-Token.

    Usage:
        @router.post("/carts/{cart_id}/mutations")
        def mutate(ctx = Depends(current_session_context)):
            participant_id = ctx["participant_id"]

    Returns:
        Dict with: session_id, participant_id, store_id, table_id
    """
    if not x_session_token:
        raise AuthError("Missing X-Session-Token header", code="TOKEN_MISSING")
    return verify_session_token(x_session_token)


def current_staff_context(
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, Any]:
    """
    FastAPI dependency to get the staff member from the bearer token.

    Returns:
        Dict with: user_id, store_id, roles
    """
    token = get_bearer_token(authorization)
    return verify_staff_token(token)


def require_roles(ctx: dict[str, Any], allowed: frozenset[str] | list[str]) -> None:
    """
    Verify that the staff member has at least one of the allowed roles.

    Raises:
        InsufficientRoleError: If no allowed role is present.
    """
    if not set(ctx.get("roles", [])).intersection(allowed):
        raise InsufficientRoleError(list(allowed), user_id=ctx.get("user_id"))


def require_store(ctx: dict[str, Any], store_id: str) -> None:
    """
    Verify that a staff credential belongs to the given store.

    Raises:
        ForbiddenError: On store mismatch.
    """
    if ctx.get("store_id") != store_id:
        raise ForbiddenError(
            "access another store",
            code="STORE_MISMATCH",
            user_id=ctx.get("user_id"),
            store_id=store_id,
        )
