"""
Cart Mutation Engine.

Applies ADD / UPDATE / REMOVE (and clear) to a session's shared cart under
optimistic concurrency:

1. Load the cart row (FOR UPDATE where the database supports it).
2. Reject a stale ``expected_version`` with a conflict carrying the latest cart.
3. Run the session guard (lazy expiry) and resolve the acting participant.
4. Apply the single mutation to the item sequence.
5. Compare-and-swap ``version`` -> ``version + 1`` in the same transaction.
6. Commit; the caller broadcasts the returned cart afterwards.

Exactly one mutation can advance a given version. Everything else loses
with CartVersionConflictError and must retry against the fresh version.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from shared.config.constants import CartAction, Limits
from shared.config.logging import cart_logger as logger
from shared.infrastructure.db import safe_commit
from shared.utils.exceptions import (
    CartVersionConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from shared.utils.schemas import CartOutput
from rest_api.models import CartItem, Participant, SharedCart, TableSession, utcnow
from .menu_catalog import MenuCatalog, options_key, unit_price
from .session_service import SessionService
from .settings_provider import StoreSettings, get_store_settings
from .views import cart_output


@dataclass
class CartMutation:
    """
    One mutation.

    ADD uses menu_item_id, quantity (default 1) and selected_options.
    UPDATE uses item_id plus quantity and/or selected_options; quantity 0 removes.
    REMOVE uses item_id.
    """

    action: str
    menu_item_id: str | None = None
    item_id: str | None = None
    quantity: int | None = None
    selected_options: list[dict[str, str]] | None = None


@dataclass
class CartResult:
    cart: SharedCart
    session: TableSession
    settings: StoreSettings
    output: CartOutput


class CartService:
    """Domain service for the shared cart."""

    def __init__(self, db: Session):
        self._db = db
        self._sessions = SessionService(db)
        self._catalog = MenuCatalog(db)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_cart(self, cart_id: str, session_id: str) -> CartResult:
        """
        Current cart with recomputed totals.

        Raises:
            NotFoundError: Unknown cart.
            ForbiddenError: Cart belongs to another session than the credential.
        """
        cart = self._load_cart(cart_id)
        self._check_scope(cart, session_id)
        return self._result(cart)

    def get_cart_for_session(self, session_id: str) -> CartResult:
        cart = self._db.scalar(select(SharedCart).where(SharedCart.session_id == session_id))
        if not cart:
            raise NotFoundError("Cart for session", session_id, code="CART_NOT_FOUND")
        return self._result(cart)

    # =========================================================================
    # Mutations
    # =========================================================================

    def apply(
        self,
        cart_id: str,
        session_id: str,
        participant_id: str,
        expected_version: int,
        mutation: CartMutation,
    ) -> CartResult:
        """
        Apply one mutation at ``expected_version``.

        Raises:
            CartVersionConflictError: Stale version (409, with latest cart).
            SessionNotActiveError: Session CLOSED / EXPIRED.
            AuthError: Participant inactive.
            NotFoundError: Unknown cart item or menu item.
            ValidationError: Bad payload, sold-out item, invalid options.
        """
        if mutation.action not in CartAction.ALL:
            raise ValidationError(f"Unknown cart action '{mutation.action}'", code="ACTION_INVALID")

        try:
            cart, session, settings, participant = self._begin(
                cart_id, session_id, participant_id, expected_version
            )

            if mutation.action == CartAction.ADD:
                self._add(cart, session, participant, mutation)
            elif mutation.action == CartAction.UPDATE:
                self._update(cart, session, mutation)
            else:
                self._remove(cart, self._find_item(cart, mutation.item_id))
        except Exception:
            # Nothing of a rejected mutation may survive in the unit of work
            self._db.rollback()
            raise

        result = self._commit(cart, session, settings, expected_version)
        logger.info(
            "Cart mutation applied",
            cart_id=cart.id,
            session_id=session.id,
            participant_id=participant.id,
            action=mutation.action,
            version=result.cart.version,
        )
        return result

    def clear(
        self,
        cart_id: str,
        session_id: str,
        participant_id: str,
        expected_version: int,
    ) -> CartResult:
        """Remove every line in one versioned mutation (starts a new round)."""
        try:
            cart, session, settings, participant = self._begin(
                cart_id, session_id, participant_id, expected_version
            )
        except Exception:
            self._db.rollback()
            raise
        cart.items.clear()

        result = self._commit(cart, session, settings, expected_version)
        logger.info(
            "Cart cleared",
            cart_id=cart.id,
            session_id=session.id,
            participant_id=participant.id,
            version=result.cart.version,
        )
        return result

    # =========================================================================
    # Transaction steps
    # =========================================================================

    def _begin(
        self,
        cart_id: str,
        session_id: str,
        participant_id: str,
        expected_version: int,
    ) -> tuple[SharedCart, TableSession, StoreSettings, Participant]:
        cart = self._load_cart(cart_id, lock=True)
        self._check_scope(cart, session_id)

        session = cart.session
        settings = get_store_settings(self._db, session.store_id)

        if cart.version != expected_version:
            latest = cart_output(cart, settings.pricing).model_dump(mode="json")
            current_version = cart.version
            self._db.rollback()
            raise CartVersionConflictError(
                cart_id=cart_id,
                expected_version=expected_version,
                current_version=current_version,
                latest_cart=latest,
            )

        self._sessions.ensure_open(session, settings)
        participant = self._sessions.get_active_participant(session, participant_id)
        return cart, session, settings, participant

    def _commit(
        self,
        cart: SharedCart,
        session: TableSession,
        settings: StoreSettings,
        expected_version: int,
    ) -> CartResult:
        """Compare-and-swap the version, touch the session, commit."""
        now = utcnow()
        self._db.flush()
        swapped = self._db.execute(
            update(SharedCart)
            .where(SharedCart.id == cart.id, SharedCart.version == expected_version)
            .values(version=SharedCart.version + 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if swapped.rowcount != 1:
            self._db.rollback()
            current_version = self._db.scalar(
                select(SharedCart.version).where(SharedCart.id == cart.id)
            )
            raise CartVersionConflictError(
                cart_id=cart.id,
                expected_version=expected_version,
                current_version=current_version,
            )

        self._sessions.touch(session)
        safe_commit(self._db)
        # The UPDATE bypassed the identity map; mirror its result
        set_committed_value(cart, "version", expected_version + 1)
        set_committed_value(cart, "updated_at", now)
        return self._result(cart, settings=settings)

    # =========================================================================
    # Mutation bodies
    # =========================================================================

    def _add(
        self,
        cart: SharedCart,
        session: TableSession,
        participant: Participant,
        mutation: CartMutation,
    ) -> None:
        if not mutation.menu_item_id:
            raise ValidationError("menu_item_id is required for ADD", code="MENU_ITEM_REQUIRED")
        quantity = Limits.MIN_QUANTITY if mutation.quantity is None else mutation.quantity
        self._check_quantity(quantity)

        menu_item = self._catalog.get_orderable_item(session.store_id, mutation.menu_item_id)
        resolved = self._catalog.resolve_options(menu_item, mutation.selected_options)
        key = options_key(resolved)

        existing = next(
            (
                item for item in cart.items
                if item.menu_item_id == menu_item.id
                and item.participant_id == participant.id
                and item.options_key == key
            ),
            None,
        )
        if existing is not None:
            merged = existing.quantity + quantity
            self._check_quantity(merged)
            existing.quantity = merged
            return

        if len(cart.items) >= Limits.MAX_CART_LINES:
            raise ValidationError("Cart is full", code="CART_FULL")

        cart.items.append(
            CartItem(
                participant_id=participant.id,
                menu_item_id=menu_item.id,
                menu_name=menu_item.name,
                position=max((i.position for i in cart.items), default=-1) + 1,
                quantity=quantity,
                unit_price=unit_price(menu_item, resolved),
                selected_options=resolved,
                options_key=key,
            )
        )

    def _update(self, cart: SharedCart, session: TableSession, mutation: CartMutation) -> None:
        item = self._find_item(cart, mutation.item_id)
        if mutation.quantity is None and mutation.selected_options is None:
            raise ValidationError("UPDATE needs quantity or selected_options", code="NOTHING_TO_UPDATE")

        if mutation.quantity == 0:
            self._remove(cart, item)
            return

        if mutation.selected_options is not None:
            menu_item = self._catalog.get_item(session.store_id, item.menu_item_id)
            resolved = self._catalog.resolve_options(menu_item, mutation.selected_options)
            item.selected_options = resolved
            item.options_key = options_key(resolved)
            item.unit_price = unit_price(menu_item, resolved)

        if mutation.quantity is not None:
            self._check_quantity(mutation.quantity)
            item.quantity = mutation.quantity

    def _remove(self, cart: SharedCart, item: CartItem) -> None:
        cart.items.remove(item)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load_cart(self, cart_id: str, lock: bool = False) -> SharedCart:
        query = select(SharedCart).where(SharedCart.id == cart_id)
        if lock:
            # Refresh any identity-mapped copy with the locked row
            query = query.with_for_update().execution_options(populate_existing=True)
        cart = self._db.scalar(query)
        if not cart:
            raise NotFoundError("Cart", cart_id, code="CART_NOT_FOUND")
        return cart

    def _check_scope(self, cart: SharedCart, session_id: str) -> None:
        if cart.session_id != session_id:
            raise ForbiddenError("access the cart of another session", code="SESSION_MISMATCH")

    def _find_item(self, cart: SharedCart, item_id: str | None) -> CartItem:
        if not item_id:
            raise ValidationError("item_id is required", code="ITEM_ID_REQUIRED")
        item = next((i for i in cart.items if i.id == item_id), None)
        if item is None:
            raise NotFoundError("Cart item", item_id, code="CART_ITEM_NOT_FOUND")
        return item

    @staticmethod
    def _check_quantity(quantity: int) -> None:
        if not Limits.MIN_QUANTITY <= quantity <= Limits.MAX_QUANTITY:
            raise ValidationError(
                f"Quantity must be between {Limits.MIN_QUANTITY} and {Limits.MAX_QUANTITY}",
                code="QUANTITY_INVALID",
            )

    def _result(self, cart: SharedCart, settings: StoreSettings | None = None) -> CartResult:
        session = cart.session
        settings = settings or get_store_settings(self._db, session.store_id)
        return CartResult(
            cart=cart,
            session=session,
            settings=settings,
            output=cart_output(cart, settings.pricing),
        )


def mutation_from_payload(payload: dict[str, Any]) -> CartMutation:
    """Build a CartMutation from a request body dict."""
    return CartMutation(
        action=payload["action"],
        menu_item_id=payload.get("menu_item_id"),
        item_id=payload.get("item_id"),
        quantity=payload.get("quantity"),
        selected_options=payload.get("selected_options"),
    )
