"""
Infrastructure module: group store database and Redis events.

Provides:
- Database sessions (db.py)
- Redis pool and membership-change events (events/)
- Correlation ids for logs (correlation.py)
"""

from shared.infrastructure.db import (
    engine,
    SessionLocal,
    create_db_engine,
    get_db_context,
    safe_commit,
)

__all__ = [
    "engine",
    "SessionLocal",
    "create_db_engine",
    "get_db_context",
    "safe_commit",
]
