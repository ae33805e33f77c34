"""
Shared module for common code across the REST API and the WS Gateway.

STRUCTURE:
- shared.security: Credentials and rate limiting
  - auth.py: Session / staff JWTs, FastAPI context dependencies, role checks
  - qr_token.py: Signed table QR tokens and short codes
  - rate_limit.py: slowapi limiter

- shared.infrastructure: Database and messaging
  - db.py: SQLAlchemy engine and sessions, safe_commit()
  - correlation.py: X-Request-ID propagation
  - events/: Redis pub/sub, event publishing

- shared.config: Configuration
  - settings.py: Environment config (pydantic-settings)
  - logging.py: Structured logging
  - constants.py: Statuses, roles, store defaults

- shared.utils: Utilities
  - exceptions.py: HTTP exceptions with auto-logging
  - schemas.py: Pydantic request / response schemas
  - health.py: Health check decorators

IMPORT EXAMPLES:
    from shared.security.auth import verify_session_token, current_session_context
    from shared.infrastructure.db import get_db, safe_commit
    from shared.config.settings import settings
    from shared.config.constants import SessionStatus, OrderStatus
    from shared.utils.exceptions import NotFoundError, ConflictError
"""
