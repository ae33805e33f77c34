"""
Security module: credential verification, QR tokens, rate limiting.
"""

from shared.security.auth import (
    sign_session_token,
    sign_staff_token,
    verify_session_token,
    verify_staff_token,
    get_bearer_token,
    current_session_context,
    current_staff_context,
    require_roles,
    require_store,
)
from shared.security.qr_token import (
    QrTokenClaims,
    sign_qr_token,
    verify_qr_token,
    generate_short_code,
    normalize_short_code,
)
from shared.security.rate_limit import limiter, rate_limit_exceeded_handler

__all__ = [
    # auth
    "sign_session_token",
    "sign_staff_token",
    "verify_session_token",
    "verify_staff_token",
    "get_bearer_token",
    "current_session_context",
    "current_staff_context",
    "require_roles",
    "require_store",
    # qr tokens
    "QrTokenClaims",
    "sign_qr_token",
    "verify_qr_token",
    "generate_short_code",
    "normalize_short_code",
    # rate_limit
    "limiter",
    "rate_limit_exceeded_handler",
]
