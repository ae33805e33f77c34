"""
Utilities module: Exceptions, schemas.
"""

from shared.utils.exceptions import (
    AppException,
    AuthError,
    NotFoundError,
    ForbiddenError,
    ValidationError,
    ConflictError,
    CartVersionConflictError,
    SessionNotActiveError,
    InvalidTransitionError,
    InternalError,
)
from shared.utils.schemas import ErrorResponse

__all__ = [
    # exceptions
    "AppException",
    "AuthError",
    "NotFoundError",
    "ForbiddenError",
    "ValidationError",
    "ConflictError",
    "CartVersionConflictError",
    "SessionNotActiveError",
    "InvalidTransitionError",
    "InternalError",
    # schemas
    "ErrorResponse",
]
