"""
Order Models: Order, OrderItem and IdempotencyRecord.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.config.constants import OrderStatus
from .base import Base, new_id, utcnow

if TYPE_CHECKING:
    from .session import TableSession


class Order(Base):
    """
    Immutable snapshot of a cart at placement time.

    Item snapshots and totals never change after creation; only ``status``
    (and each item's ``status``) advance forward. The pricing settings used
    are recorded next to the totals.
    """

    __tablename__ = "cart_order"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    store_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("store.id"), nullable=False, index=True
    )
    table_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("dining_table.id"), nullable=False
    )
    session_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("table_session.id"), nullable=False, index=True
    )
    placed_by_participant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("participant.id"), nullable=False
    )
    round_no: Mapped[int] = mapped_column(Integer, nullable=False)
    cart_version: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=OrderStatus.PLACED)

    subtotal: Mapped[int] = mapped_column(Integer, nullable=False)
    tax: Mapped[int] = mapped_column(Integer, nullable=False)
    service_charge: Mapped[int] = mapped_column(Integer, nullable=False)
    grand_total: Mapped[int] = mapped_column(Integer, nullable=False)
    tax_rate: Mapped[float] = mapped_column(Float, nullable=False)
    service_charge_rate: Mapped[float] = mapped_column(Float, nullable=False)
    tax_included: Mapped[bool] = mapped_column(Boolean, nullable=False)

    placed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    status_changed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    session: Mapped["TableSession"] = relationship()
    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order",
        order_by="OrderItem.position",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_order_store_status", "store_id", "status"),
        Index("ix_order_session_cart_version", "session_id", "cart_version"),
    )

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, session_id={self.session_id}, round={self.round_no}, status={self.status})>"


class OrderItem(Base):
    """A snapshotted order line with its own kitchen status."""

    __tablename__ = "order_item"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("cart_order.id"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    menu_item_id: Mapped[str] = mapped_column(String(36), nullable=False)
    menu_name: Mapped[str] = mapped_column(String(200), nullable=False)
    participant_id: Mapped[str] = mapped_column(String(36), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[int] = mapped_column(Integer, nullable=False)
    selected_options: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    item_total: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=OrderStatus.PLACED)

    order: Mapped["Order"] = relationship(back_populates="items")

    def __repr__(self) -> str:
        return f"<OrderItem(id={self.id}, order_id={self.order_id}, status={self.status})>"


class IdempotencyRecord(Base):
    """
    Maps a client idempotency key, scoped to a session, to the order it
    produced. Written in the same transaction as the order; the unique
    constraint makes a concurrent duplicate placement fail at commit.
    """

    __tablename__ = "idempotency_record"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    session_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("table_session.id"), nullable=False
    )
    key: Mapped[str] = mapped_column(String(128), nullable=False)
    order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("cart_order.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("session_id", "key", name="uq_idempotency_session_key"),
    )
