"""
Shared module for code used by the relay and the services around it.

STRUCTURE:
- shared.config: Configuration
  - settings.py: Environment config (pydantic-settings)
  - logging.py: Structured logging and security audit helpers

- shared.security: Authentication
  - auth.py: JWT signing/verification, identity extraction
  - api_keys.py: Internal API key check for service routes

- shared.infrastructure: Database and messaging
  - db.py: SQLAlchemy engine and sessions for the group store
  - correlation.py: Correlation ids for logs
  - events/: Redis pool and membership-change events

- shared.models: Group and GroupMember ORM models

IMPORT EXAMPLES:
    from shared.config.settings import settings
    from shared.config.logging import get_logger
    from shared.security.auth import verify_jwt, identity_from_claims
    from shared.infrastructure.db import SessionLocal
    from shared.infrastructure.events import publish_member_removed
"""
