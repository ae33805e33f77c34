"""
QR table tokens and short codes.

A QR token is printed on the table and identifies it without a lookup key:

    base64url("{store_id}:{table_id}:{version}.{signature}")

where ``signature`` is base64url(HMAC-SHA256(secret, "{store_id}:{table_id}:{version}")).
``version`` must equal the table's current ``qr_token_version`` so that
rotating it invalidates every printed code.

Short codes are the typed fallback: 6 characters from an alphabet without
ambiguous glyphs.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import re
import secrets
from dataclasses import dataclass

from shared.config.constants import SHORT_CODE_CHARSET
from shared.config.settings import QR_TOKEN_SECRET, settings
from shared.config.logging import get_logger
from shared.utils.exceptions import AuthError, ValidationError

logger = get_logger(__name__)

_SHORT_CODE_STRIP = re.compile(r"[\s\-]+")


@dataclass(frozen=True)
class QrTokenClaims:
    """Decoded contents of a verified QR token."""

    store_id: str
    table_id: str
    version: int


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(text: str) -> bytes:
    padding = "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(text + padding)


def _sign(payload: str, secret: str) -> str:
    digest = hmac.new(secret.encode(), payload.encode(), hashlib.sha256).digest()
    return _b64url_encode(digest)


def sign_qr_token(store_id: str, table_id: str, version: int, secret: str = QR_TOKEN_SECRET) -> str:
    """Create the printable QR token for a table."""
    payload = f"{store_id}:{table_id}:{version}"
    return _b64url_encode(f"{payload}.{_sign(payload, secret)}".encode())


def verify_qr_token(token: str, secret: str = QR_TOKEN_SECRET) -> QrTokenClaims:
    """
    Verify a QR token's signature and decode it.

    The caller still has to compare ``version`` against the table.

    Raises:
        AuthError: If the token is malformed or the signature does not match.
    """
    try:
        decoded = _b64url_decode(token.strip()).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        raise AuthError("Invalid QR code", code="QR_INVALID")

    payload, sep, signature = decoded.rpartition(".")
    if not sep:
        raise AuthError("Invalid QR code", code="QR_INVALID")

    if not hmac.compare_digest(signature, _sign(payload, secret)):
        logger.warning("QR token signature mismatch")
        raise AuthError("Invalid QR code", code="QR_INVALID")

    parts = payload.split(":")
    if len(parts) != 3 or not parts[0] or not parts[1]:
        raise AuthError("Invalid QR code", code="QR_INVALID")

    try:
        version = int(parts[2])
    except ValueError:
        raise AuthError("Invalid QR code", code="QR_INVALID")

    return QrTokenClaims(store_id=parts[0], table_id=parts[1], version=version)


# =============================================================================
# Short codes
# =============================================================================


def generate_short_code(length: int | None = None) -> str:
    """Random short code drawn from SHORT_CODE_CHARSET."""
    length = length or settings.short_code_length
    return "".join(secrets.choice(SHORT_CODE_CHARSET) for _ in range(length))


def normalize_short_code(raw: str) -> str:
    """
    Normalize user input: upper-case, drop spaces and dashes.

    Raises:
        ValidationError: If the result has the wrong length or characters
            outside the alphabet.
    """
    code = _SHORT_CODE_STRIP.sub("", raw or "").upper()
    if len(code) != settings.short_code_length or any(c not in SHORT_CODE_CHARSET for c in code):
        raise ValidationError("Invalid short code format", code="SHORT_CODE_INVALID")
    return code
