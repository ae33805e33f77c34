"""
Table Locator.

Resolves a join credential (signed QR token or typed short code) to a table.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from shared.config.constants import TableStatus
from shared.config.logging import get_logger
from shared.security.qr_token import (
    generate_short_code,
    normalize_short_code,
    sign_qr_token,
    verify_qr_token,
)
from shared.utils.exceptions import AuthError, NotFoundError, ValidationError
from rest_api.models import Table

logger = get_logger(__name__)


def issue_qr_token(table: Table) -> str:
    """Printable QR token for the table's current token version."""
    return sign_qr_token(table.store_id, table.id, table.qr_token_version)


class TableLocator:
    def __init__(self, db: Session):
        self._db = db

    def resolve(self, qr_token: str | None = None, short_code: str | None = None) -> Table:
        """
        Resolve exactly one of ``qr_token`` / ``short_code`` to an ACTIVE table.

        Raises:
            AuthError: Bad QR signature, or a QR printed before the last rotation.
            NotFoundError: Unknown table or short code.
            ValidationError: Malformed short code, missing locator, or the table
                is not accepting guests.
        """
        if qr_token:
            table = self._resolve_qr(qr_token)
        elif short_code:
            table = self._resolve_short_code(short_code)
        else:
            raise ValidationError("qr_token or short_code is required", code="LOCATOR_REQUIRED")

        if table.status != TableStatus.ACTIVE:
            raise ValidationError("Table is not available", code="TABLE_INACTIVE", table_id=table.id)
        return table

    def _resolve_qr(self, qr_token: str) -> Table:
        claims = verify_qr_token(qr_token)
        table = self._db.scalar(
            select(Table).where(
                Table.id == claims.table_id,
                Table.store_id == claims.store_id,
            )
        )
        if not table:
            raise NotFoundError("Table", claims.table_id, code="TABLE_NOT_FOUND")
        if table.qr_token_version != claims.version:
            logger.info(
                "Rejected rotated QR token",
                table_id=table.id,
                token_version=claims.version,
                current_version=table.qr_token_version,
            )
            raise AuthError("QR code is no longer valid", code="QR_REVOKED")
        return table

    def _resolve_short_code(self, short_code: str) -> Table:
        code = normalize_short_code(short_code)
        table = self._db.scalar(select(Table).where(Table.short_code == code))
        if not table:
            raise NotFoundError("Table", code="TABLE_NOT_FOUND", short_code=code)
        return table

    def unique_short_code(self, attempts: int = 10) -> str:
        """Generate a short code not yet used by any table."""
        for _ in range(attempts):
            code = generate_short_code()
            taken = self._db.scalar(select(Table.id).where(Table.short_code == code))
            if not taken:
                return code
        raise ValidationError("Could not allocate a unique short code", code="SHORT_CODE_EXHAUSTED")
