"""
Order Placement Coordinator.

Turns the current cart into an immutable order exactly once per
idempotency key, and advances order / item status for staff.

Placement leaves the cart untouched. An order remembers the cart version it
was placed against; placing the same version twice under different keys is
rejected so one round of contents cannot be ordered twice.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from shared.config.constants import (
    ORDER_CANCEL_ROLES,
    ORDER_STATUS_FLOW,
    ORDER_TERMINAL_STATUSES,
    OrderConfirmMode,
    OrderStatus,
)
from shared.config.logging import order_logger as logger
from shared.infrastructure.db import safe_commit
from shared.security.auth import require_roles
from shared.utils.exceptions import (
    CartVersionConflictError,
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from rest_api.models import (
    IdempotencyRecord,
    Order,
    OrderItem,
    SharedCart,
    TableSession,
    utcnow,
)
from .pricing import compute_totals
from .session_service import SessionService
from .settings_provider import get_store_settings
from .views import cart_output


@dataclass
class PlacementResult:
    order: Order
    # True when the order came from an earlier request with the same key
    replayed: bool = False


def can_transition(current: str, target: str) -> bool:
    """
    Forward-only status machine.

    PLACED -> ACCEPTED -> PREPARING -> READY -> SERVED; any later state may be
    reached directly. CANCELLED is reachable from every non-terminal state.
    """
    if current in ORDER_TERMINAL_STATUSES or current == target:
        return False
    if target == OrderStatus.CANCELLED:
        return True
    if target not in ORDER_STATUS_FLOW or current not in ORDER_STATUS_FLOW:
        return False
    return ORDER_STATUS_FLOW.index(target) > ORDER_STATUS_FLOW.index(current)


class OrderService:
    """Domain service for order placement and status tracking."""

    def __init__(self, db: Session):
        self._db = db
        self._sessions = SessionService(db)

    # =========================================================================
    # Placement
    # =========================================================================

    def find_by_idempotency_key(self, session_id: str, idempotency_key: str) -> Order | None:
        return self._db.scalar(
            select(Order)
            .join(IdempotencyRecord, IdempotencyRecord.order_id == Order.id)
            .where(
                IdempotencyRecord.session_id == session_id,
                IdempotencyRecord.key == idempotency_key,
            )
        )

    def place(
        self,
        session_id: str,
        participant_id: str,
        cart_version: int,
        idempotency_key: str,
    ) -> PlacementResult:
        """
        Place the session's cart as an order.

        A key that already produced an order returns that order unchanged,
        even if the session has been closed since.

        Raises:
            SessionNotActiveError: Session CLOSED / EXPIRED.
            AuthError: Participant inactive.
            ForbiddenError: HOST_ONLY store and the caller is not HOST.
            ValidationError: Empty cart, or additional orders disabled.
            CartVersionConflictError: ``cart_version`` is stale.
            ConflictError: This cart version was already ordered.
        """
        idempotency_key = idempotency_key.strip()
        if not idempotency_key:
            raise ValidationError("idempotency_key is required", code="IDEMPOTENCY_KEY_REQUIRED")

        existing = self.find_by_idempotency_key(session_id, idempotency_key)
        if existing is not None:
            logger.info("Idempotent placement replayed", order_id=existing.id, session_id=session_id)
            return PlacementResult(order=existing, replayed=True)

        try:
            session = self._sessions.get_session(session_id)
            settings = get_store_settings(self._db, session.store_id)
            self._sessions.ensure_open(session, settings)
            participant = self._sessions.get_active_participant(session, participant_id)

            if settings.order_confirm_mode == OrderConfirmMode.HOST_ONLY and not participant.is_host:
                raise ForbiddenError("place orders (host only)", code="HOST_ONLY")

            if not settings.allow_additional_orders and self._has_live_order(session.id):
                raise ValidationError(
                    "This table has already ordered",
                    code="ADDITIONAL_ORDERS_DISABLED",
                )

            cart = self._db.scalar(
                select(SharedCart)
                .where(SharedCart.session_id == session.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            if cart is None:
                raise NotFoundError("Cart for session", session.id, code="CART_NOT_FOUND")

            # A concurrent retry may have committed while we waited for the lock
            existing = self.find_by_idempotency_key(session_id, idempotency_key)
            if existing is not None:
                self._db.rollback()
                return PlacementResult(order=existing, replayed=True)

            if cart.version != cart_version:
                raise CartVersionConflictError(
                    cart_id=cart.id,
                    expected_version=cart_version,
                    current_version=cart.version,
                    latest_cart=cart_output(cart, settings.pricing).model_dump(mode="json"),
                )

            if self._version_already_ordered(session.id, cart.version):
                raise ConflictError(
                    "This cart has already been ordered. Change or clear the cart first.",
                    code="CART_ALREADY_ORDERED",
                    extra={"cart_version": cart.version},
                )

            if not cart.items:
                raise ValidationError("Cart is empty", code="EMPTY_CART")

            order = self._snapshot(session, cart, participant.id, settings)
            self._db.add(order)
            self._db.flush()
            self._db.add(
                IdempotencyRecord(session_id=session.id, key=idempotency_key, order_id=order.id)
            )
            self._sessions.touch(session)
        except Exception:
            self._db.rollback()
            raise

        try:
            safe_commit(self._db)
        except IntegrityError:
            # Same key committed by a concurrent request between our checks
            winner = self.find_by_idempotency_key(session_id, idempotency_key)
            if winner is None:
                raise
            logger.info("Concurrent placement resolved to existing order", order_id=winner.id)
            return PlacementResult(order=winner, replayed=True)

        logger.info(
            "Order placed",
            order_id=order.id,
            session_id=session.id,
            round_no=order.round_no,
            cart_version=order.cart_version,
            items_count=len(order.items),
            grand_total=order.grand_total,
        )
        return PlacementResult(order=order)

    def _snapshot(self, session: TableSession, cart: SharedCart, participant_id: str, settings) -> Order:
        pricing = settings.pricing
        totals = compute_totals(((i.unit_price, i.quantity) for i in cart.items), pricing)

        session.current_round_no += 1
        order = Order(
            store_id=session.store_id,
            table_id=session.table_id,
            session_id=session.id,
            placed_by_participant_id=participant_id,
            round_no=session.current_round_no,
            cart_version=cart.version,
            status=OrderStatus.PLACED,
            tax_rate=pricing.tax_rate,
            service_charge_rate=pricing.service_charge_rate,
            tax_included=pricing.tax_included,
            placed_at=utcnow(),
            **totals.as_dict(),
        )
        order.items = [
            OrderItem(
                position=position,
                menu_item_id=item.menu_item_id,
                menu_name=item.menu_name,
                participant_id=item.participant_id,
                quantity=item.quantity,
                unit_price=item.unit_price,
                selected_options=[dict(o) for o in item.selected_options or []],
                item_total=item.line_total,
                status=OrderStatus.PLACED,
            )
            for position, item in enumerate(cart.items)
        ]
        return order

    def _has_live_order(self, session_id: str) -> bool:
        return self._db.scalar(
            select(Order.id).where(
                Order.session_id == session_id,
                Order.status != OrderStatus.CANCELLED,
            ).limit(1)
        ) is not None

    def _version_already_ordered(self, session_id: str, cart_version: int) -> bool:
        return self._db.scalar(
            select(Order.id).where(
                Order.session_id == session_id,
                Order.cart_version == cart_version,
                Order.status != OrderStatus.CANCELLED,
            ).limit(1)
        ) is not None

    # =========================================================================
    # Reads
    # =========================================================================

    def get_order(self, order_id: str) -> Order:
        order = self._db.scalar(
            select(Order).options(selectinload(Order.items)).where(Order.id == order_id)
        )
        if not order:
            raise NotFoundError("Order", order_id, code="ORDER_NOT_FOUND")
        return order

    def list_session_orders(self, session_id: str) -> list[Order]:
        return list(
            self._db.scalars(
                select(Order)
                .options(selectinload(Order.items))
                .where(Order.session_id == session_id)
                .order_by(Order.round_no)
            ).all()
        )

    def list_store_orders(self, store_id: str, status: str | None = None, limit: int = 100) -> list[Order]:
        query = (
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.store_id == store_id)
        )
        if status:
            if status not in OrderStatus.ALL:
                raise ValidationError(f"Unknown order status '{status}'", code="STATUS_INVALID")
            query = query.where(Order.status == status)
        return list(self._db.scalars(query.order_by(Order.placed_at.desc()).limit(limit)).all())

    # =========================================================================
    # Status machine (staff)
    # =========================================================================

    def advance_status(self, order_id: str, new_status: str, staff_ctx: dict) -> Order:
        """
        Move an order forward (or cancel it).

        Items behind the new status move with it; cancelling cancels every
        item that is not already terminal.

        Raises:
            NotFoundError: Unknown order.
            ForbiddenError: Order of another store, or cancel without a floor role.
            InvalidTransitionError: Backward move, no-op, or terminal order.
        """
        order = self._load_for_staff(order_id, staff_ctx)
        self._check_transition("Order", order.status, new_status, staff_ctx)

        now = utcnow()
        for item in order.items:
            if item.status in ORDER_TERMINAL_STATUSES:
                continue
            if new_status == OrderStatus.CANCELLED or can_transition(item.status, new_status):
                item.status = new_status

        previous = order.status
        order.status = new_status
        order.status_changed_at = now
        safe_commit(self._db)

        logger.info(
            "Order status changed",
            order_id=order.id,
            from_status=previous,
            to_status=new_status,
            staff_user_id=staff_ctx.get("user_id"),
        )
        return order

    def advance_item_status(self, order_id: str, item_id: str, new_status: str, staff_ctx: dict) -> Order:
        """
        Move a single order item forward (or cancel it).

        When every item is cancelled the order is cancelled; when every
        remaining item is served the order is served.
        """
        order = self._load_for_staff(order_id, staff_ctx)
        item = next((i for i in order.items if i.id == item_id), None)
        if item is None:
            raise NotFoundError("Order item", item_id, code="ORDER_ITEM_NOT_FOUND")

        self._check_transition("Order item", item.status, new_status, staff_ctx)
        item.status = new_status

        statuses = {i.status for i in order.items}
        if statuses == {OrderStatus.CANCELLED}:
            order.status = OrderStatus.CANCELLED
        elif statuses <= {OrderStatus.SERVED, OrderStatus.CANCELLED}:
            order.status = OrderStatus.SERVED
        elif order.status == OrderStatus.PLACED and new_status != OrderStatus.CANCELLED:
            # Kitchen started working on the order through one of its items
            order.status = OrderStatus.ACCEPTED
        order.status_changed_at = utcnow()
        safe_commit(self._db)

        logger.info(
            "Order item status changed",
            order_id=order.id,
            item_id=item.id,
            to_status=new_status,
            order_status=order.status,
        )
        return order

    def _load_for_staff(self, order_id: str, staff_ctx: dict) -> Order:
        order = self.get_order(order_id)
        if order.store_id != staff_ctx.get("store_id"):
            raise ForbiddenError("access an order of another store", code="STORE_MISMATCH")
        return order

    def _check_transition(self, entity: str, current: str, target: str, staff_ctx: dict) -> None:
        if target not in OrderStatus.ALL:
            raise ValidationError(f"Unknown order status '{target}'", code="STATUS_INVALID")
        if target == OrderStatus.CANCELLED:
            require_roles(staff_ctx, ORDER_CANCEL_ROLES)
        if not can_transition(current, target):
            raise InvalidTransitionError(entity, current, target)
