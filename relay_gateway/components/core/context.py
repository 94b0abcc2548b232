"""
Connection context for audit logging, and log sanitization.

Keeps the audit fields of a connection together so lifecycle events are
logged with the same shape everywhere.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, TYPE_CHECKING

from shared.config.logging import audit_ws_connection

if TYPE_CHECKING:
    from fastapi import WebSocket


# Control characters and Unicode direction overrides
_CONTROL_CHAR_PATTERN = re.compile(
    r'[\x00-\x1f\x7f-\x9f'  # ASCII control characters
    r'\u200b-\u200f'  # Zero-width and direction marks
    r'\u202a-\u202e'  # Bidirectional text formatting (RTL override, etc.)
    r'\u2066-\u2069'  # Isolate formatting characters
    r'\ufeff]'  # BOM / Zero-width no-break space
)


def sanitize_log_data(data: Any, max_length: int = 100) -> str:
    """
    Sanitize user-provided data before logging.

    Truncates first so escaping cannot push the output past max_length,
    then strips control characters and escapes JSON-dangerous ones.

    Args:
        data: Raw user data (non-strings are converted with str()).
        max_length: Maximum length to include in logs.

    Returns:
        Sanitized, truncated string safe for structured logging.
    """
    if not isinstance(data, str):
        data = str(data)
    was_truncated = len(data) > max_length
    truncated = data[:max_length] if was_truncated else data

    sanitized = _CONTROL_CHAR_PATTERN.sub('', truncated)

    # Replace backslashes first to avoid double-escaping
    sanitized = sanitized.replace('\\', '\\\\')
    sanitized = sanitized.replace('"', '\\"')

    if was_truncated:
        return sanitized + "..."
    return sanitized


@dataclass
class ConnectionContext:
    """
    Audit metadata for one WebSocket connection.

    Usage:
        ctx = ConnectionContext.from_websocket(websocket, "/ws")
        ctx.audit("AUTH_FAILED", reason="missing_credential")
        ctx.identity = "42"
        ctx.audit("CONNECT")
    """

    endpoint: str
    origin: str | None = None
    client: str | None = None
    handle: str | None = None
    identity: str | None = None
    group_id: str | None = None

    @classmethod
    def from_websocket(cls, websocket: "WebSocket", endpoint: str) -> "ConnectionContext":
        client = websocket.client
        return cls(
            endpoint=endpoint,
            origin=websocket.headers.get("origin"),
            client=f"{client.host}:{client.port}" if client else None,
        )

    @property
    def identifier(self) -> str:
        """Short label for log lines."""
        if self.identity:
            return f"user:{self.identity}"
        return self.client or "unknown"

    def to_audit_dict(self, event_type: str, **extra: Any) -> dict[str, Any]:
        """
        Dictionary for structured logging. Only non-None fields are included.
        """
        result: dict[str, Any] = {
            "event_type": event_type,
            "endpoint": self.endpoint,
        }
        for key in ("origin", "client", "handle", "identity", "group_id"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        result.update({k: v for k, v in extra.items() if v is not None})
        return result

    def audit(self, event_type: str, reason: str | None = None, **extra: Any) -> None:
        """Write an entry to the security audit log."""
        audit_ws_connection(
            event_type=event_type,
            endpoint=self.endpoint,
            identity=self.identity,
            group_id=self.group_id,
            origin=self.origin,
            reason=reason,
            handle=self.handle,
            client=self.client,
            **extra,
        )
