"""
Staff table router.
Printable join credentials (QR token + short code) and QR rotation.
"""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from shared.config.constants import MANAGEMENT_ROLES
from shared.config.logging import security_audit_logger
from shared.infrastructure.db import get_db, safe_commit
from shared.security.auth import current_staff_context, require_roles, require_store
from shared.utils.exceptions import NotFoundError
from rest_api.models import Table
from rest_api.services.domain import issue_qr_token


router = APIRouter(prefix="/api/staff/tables", tags=["staff"])


class TableCredentialsOutput(BaseModel):
    table_id: str
    label: str
    short_code: str
    qr_token: str
    qr_token_version: int


def _load_table(db: Session, table_id: str, ctx: dict[str, Any]) -> Table:
    table = db.scalar(select(Table).where(Table.id == table_id))
    if not table:
        raise NotFoundError("Table", table_id, code="TABLE_NOT_FOUND")
    require_store(ctx, table.store_id)
    return table


def _credentials(table: Table) -> TableCredentialsOutput:
    return TableCredentialsOutput(
        table_id=table.id,
        label=table.label,
        short_code=table.short_code,
        qr_token=issue_qr_token(table),
        qr_token_version=table.qr_token_version,
    )


@router.get("/{table_id}/credentials", response_model=TableCredentialsOutput)
def get_table_credentials(
    table_id: str,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_staff_context),
) -> TableCredentialsOutput:
    """Requires MANAGER or ADMIN role."""
    require_roles(ctx, MANAGEMENT_ROLES)
    return _credentials(_load_table(db, table_id, ctx))


@router.post("/{table_id}/rotate-qr", response_model=TableCredentialsOutput)
def rotate_table_qr(
    table_id: str,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_staff_context),
) -> TableCredentialsOutput:
    """
    Invalidate every printed QR code of the table and return the new one.
    Sessions already joined are not affected.
    """
    require_roles(ctx, MANAGEMENT_ROLES)
    table = _load_table(db, table_id, ctx)
    table.qr_token_version += 1
    safe_commit(db)

    security_audit_logger.info(
        "QR token rotated",
        table_id=table.id,
        store_id=table.store_id,
        qr_token_version=table.qr_token_version,
        user_id=ctx["user_id"],
    )
    return _credentials(table)
