"""
Session Models: TableSession, Participant.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.config.constants import ParticipantRole, SessionStatus
from .base import Base, new_id, utcnow

if TYPE_CHECKING:
    from .store import Table
    from .cart import SharedCart


class TableSession(Base):
    """
    One seating occasion at one table.

    Status flow: OPEN -> CLOSED (staff) | OPEN -> EXPIRED (TTL, detected lazily).
    CLOSED and EXPIRED are terminal.

    ``open_table_id`` mirrors ``table_id`` only while the session is OPEN; its
    unique constraint lets the database enforce a single OPEN session per table.
    """

    __tablename__ = "table_session"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    store_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("store.id"), nullable=False, index=True
    )
    table_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("dining_table.id"), nullable=False, index=True
    )
    open_table_id: Mapped[Optional[str]] = mapped_column(
        String(36), nullable=True, unique=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SessionStatus.OPEN)
    current_round_no: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    participants_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    last_activity_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    table: Mapped["Table"] = relationship(back_populates="sessions")
    participants: Mapped[list["Participant"]] = relationship(
        back_populates="session",
        order_by="Participant.joined_at",
        cascade="all, delete-orphan",
    )
    cart: Mapped["SharedCart"] = relationship(
        back_populates="session", uselist=False, cascade="all, delete-orphan"
    )

    @property
    def is_open(self) -> bool:
        return self.status == SessionStatus.OPEN

    def __repr__(self) -> str:
        return f"<TableSession(id={self.id}, table_id={self.table_id}, status={self.status})>"


class Participant(Base):
    """
    A device/person inside a session.

    The first participant becomes HOST. Leaving deactivates the participant;
    rows are never deleted while the session exists, so cart items and
    orders keep a valid owner.
    """

    __tablename__ = "participant"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    session_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("table_session.id"), nullable=False, index=True
    )
    nickname: Mapped[str] = mapped_column(String(30), nullable=False)
    role: Mapped[str] = mapped_column(String(10), nullable=False, default=ParticipantRole.GUEST)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    avatar_color: Mapped[str] = mapped_column(String(7), nullable=False)
    language: Mapped[str] = mapped_column(String(10), nullable=False, default="en")
    # SHA-256 of the client fingerprint; the raw value is never stored
    device_fingerprint_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    left_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    session: Mapped["TableSession"] = relationship(back_populates="participants")

    __table_args__ = (
        Index("ix_participant_session_fingerprint", "session_id", "device_fingerprint_hash"),
    )

    @property
    def is_host(self) -> bool:
        return self.role == ParticipantRole.HOST

    def __repr__(self) -> str:
        return f"<Participant(id={self.id}, nickname={self.nickname}, role={self.role})>"
