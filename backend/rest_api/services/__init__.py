"""
Services module for business logic.

- domain/: Application services (sessions, cart engine, order placement)
- events/: Post-commit broadcasting through Redis
"""
