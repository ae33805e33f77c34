"""
Centralized HTTP exceptions for consistent error handling.

Every exception logs itself on construction and carries a machine-readable
``code`` plus optional ``extra`` fields that the API exception handler merges
into the response body:

    {"detail": "...", "code": "CART_VERSION_MISMATCH", "current_version": 4, ...}

Usage:
    from shared.utils.exceptions import NotFoundError, ConflictError

    raise NotFoundError("Cart item", item_id)
    raise ConflictError("Cart was modified", code="CART_VERSION_MISMATCH", extra={...})
"""

from typing import Any

from fastapi import HTTPException, status

from shared.config.logging import get_logger

logger = get_logger(__name__)


class AppException(HTTPException):
    """
    Base exception with automatic logging.

    All custom exceptions should inherit from this class
    to ensure consistent logging and response format.
    """

    default_code = "ERROR"

    def __init__(
        self,
        status_code: int,
        detail: str,
        code: str | None = None,
        extra: dict[str, Any] | None = None,
        log_level: str = "warning",
        headers: dict[str, str] | None = None,
        **log_context: Any,
    ):
        self.code = code or self.default_code
        self.extra = extra or {}

        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(detail, status_code=status_code, code=self.code, **log_context)

        super().__init__(status_code=status_code, detail=detail, headers=headers)

    def to_dict(self) -> dict[str, Any]:
        """Response body for this error."""
        return {"detail": self.detail, "code": self.code, **self.extra}


# =============================================================================
# 401 Unauthorized
# =============================================================================


class AuthError(AppException):
    """
    Invalid, expired or missing credential (401).
    Terminal for the current attempt; the client must re-authenticate.
    """

    default_code = "AUTH_FAILED"

    def __init__(self, detail: str = "Invalid credential", code: str | None = None, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            code=code,
            log_level="warning",
            **log_context,
        )


# =============================================================================
# 404 Not Found Errors
# =============================================================================


class NotFoundError(AppException):
    """
    Entity not found error (404).

    Usage:
        raise NotFoundError("Menu item", menu_item_id)
        raise NotFoundError("Cart item", item_id, cart_id=cart_id)
    """

    default_code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: int | str | None = None, code: str | None = None, **log_context: Any):
        if entity_id is not None:
            detail = f"{entity} {entity_id} not found"
        else:
            detail = f"{entity} not found"

        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            code=code,
            log_level="warning",
            entity=entity,
            entity_id=entity_id,
            **log_context,
        )


# =============================================================================
# 403 Forbidden Errors
# =============================================================================


class ForbiddenError(AppException):
    """
    Authorization/permission error (403).

    Usage:
        raise ForbiddenError("place orders for this table", code="HOST_ONLY")
    """

    default_code = "FORBIDDEN"

    def __init__(self, action: str | None = None, code: str | None = None, **log_context: Any):
        if action:
            detail = f"Not allowed to {action}"
        else:
            detail = "Access denied"

        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            code=code,
            log_level="warning",
            action=action,
            **log_context,
        )


class InsufficientRoleError(ForbiddenError):
    """Staff member doesn't have the required role."""

    def __init__(self, required_roles: list[str], **log_context: Any):
        roles_str = ", ".join(sorted(required_roles))
        super().__init__(
            f"perform this action (requires role: {roles_str})",
            code="INSUFFICIENT_ROLE",
            required_roles=required_roles,
            **log_context,
        )


class SessionNotActiveError(AppException):
    """
    The table session is CLOSED or EXPIRED (403).

    Terminal: nothing can be mutated or placed against the session again.
    ``expired_now`` is set when this call was the one that observed the TTL
    lapse, so the caller can announce the closure exactly once.
    """

    default_code = "SESSION_NOT_ACTIVE"

    def __init__(
        self,
        session_id: str,
        session_status: str,
        store_id: str | None = None,
        expired_now: bool = False,
        **log_context: Any,
    ):
        self.session_id = session_id
        self.session_status = session_status
        self.store_id = store_id
        self.expired_now = expired_now
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Session is not active ({session_status})",
            extra={"session_id": session_id, "session_status": session_status},
            log_level="info",
            session_id=session_id,
            session_status=session_status,
            **log_context,
        )


# =============================================================================
# 400 Bad Request Errors
# =============================================================================


class ValidationError(AppException):
    """
    Input validation error (400).
    Reported to the caller, never retried automatically.

    Usage:
        raise ValidationError("Cart is empty", code="EMPTY_CART")
    """

    default_code = "VALIDATION_ERROR"

    def __init__(self, detail: str, code: str | None = None, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            code=code,
            log_level="warning",
            **log_context,
        )


class InvalidTransitionError(ValidationError):
    """Invalid status transition."""

    def __init__(self, entity: str, from_status: str, to_status: str, **log_context: Any):
        detail = f"Invalid transition from '{from_status}' to '{to_status}' for {entity}"
        super().__init__(
            detail,
            code="INVALID_TRANSITION",
            entity=entity,
            from_status=from_status,
            to_status=to_status,
            **log_context,
        )


# =============================================================================
# 409 Conflict Errors
# =============================================================================


class ConflictError(AppException):
    """
    Resource conflict error (409).

    Carries enough state (``extra``) for the caller to refresh and retry.
    """

    default_code = "CONFLICT"

    def __init__(
        self,
        detail: str,
        code: str | None = None,
        extra: dict[str, Any] | None = None,
        **log_context: Any,
    ):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            code=code,
            extra=extra,
            log_level="info",
            **log_context,
        )


class CartVersionConflictError(ConflictError):
    """The caller's cart version is stale."""

    def __init__(
        self,
        cart_id: str,
        expected_version: int,
        current_version: int,
        latest_cart: dict[str, Any] | None = None,
        **log_context: Any,
    ):
        self.current_version = current_version
        extra: dict[str, Any] = {"cart_id": cart_id, "current_version": current_version}
        if latest_cart is not None:
            extra["latest_cart"] = latest_cart
        super().__init__(
            "Cart has been modified by another participant. Refresh and retry.",
            code="CART_VERSION_MISMATCH",
            extra=extra,
            cart_id=cart_id,
            expected_version=expected_version,
            current_version=current_version,
            **log_context,
        )


# =============================================================================
# 500 Internal Server Errors
# =============================================================================


class InternalError(AppException):
    """
    Internal server error (500).
    Storage or transport failure surfaced as a generic failure.
    """

    default_code = "INTERNAL_ERROR"

    def __init__(self, detail: str = "Internal server error", **log_context: Any):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            log_level="error",
            **log_context,
        )


class DatabaseError(InternalError):
    """Database operation failed."""

    def __init__(self, operation: str, **log_context: Any):
        detail = f"Database error during {operation}. Please try again."
        super().__init__(detail, operation=operation, **log_context)
