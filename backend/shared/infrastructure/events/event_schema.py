"""
Membership Event Schema.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, asdict
from datetime import datetime, timezone

from .event_types import MEMBERSHIP_EVENT_TYPES


@dataclass
class MembershipEvent:
    """
    Membership change announced by group management.

    Identities are normalized to strings so numeric ids published by other
    services compare equal to the identities held by connections.
    """

    type: str
    group_id: str
    user_id: str
    actor_id: str | None = None
    ts: str | None = None
    v: int = 1  # Schema version for future compatibility

    def __post_init__(self) -> None:
        if self.type not in MEMBERSHIP_EVENT_TYPES:
            raise ValueError(f"Unknown membership event type: {self.type!r}")

        if self.group_id is None or self.user_id is None:
            raise ValueError("Membership event requires group_id and user_id")

        self.group_id = str(self.group_id)
        self.user_id = str(self.user_id)
        if not self.group_id or not self.user_id:
            raise ValueError("Membership event group_id and user_id must be non-empty")

        if self.actor_id is not None:
            self.actor_id = str(self.actor_id)

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        data = asdict(self)
        data["ts"] = data["ts"] or datetime.now(timezone.utc).isoformat()
        return json.dumps(data, ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: dict) -> "MembershipEvent":
        """Build an event from decoded JSON, ignoring unknown keys."""
        return cls(
            type=data.get("type"),
            group_id=data.get("group_id"),
            user_id=data.get("user_id"),
            actor_id=data.get("actor_id"),
            ts=data.get("ts"),
            v=data.get("v", 1),
        )

    @classmethod
    def from_json(cls, json_str: str) -> "MembershipEvent":
        """
        Deserialize event from JSON string.

        Raises ValueError (json.JSONDecodeError included) for malformed input.
        """
        data = json.loads(json_str)
        if not isinstance(data, dict):
            raise ValueError("Membership event must be a JSON object")
        return cls.from_dict(data)
