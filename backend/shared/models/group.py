"""
Study group and membership models.

Group ids are opaque strings (group management mints them), user ids are
the identity strings carried in access tokens. The relay only ever reads
these tables; they are written by the group-management service.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.models.base import Base


class GroupRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


def _new_group_id() -> str:
    return uuid.uuid4().hex


class Group(Base):
    """A study group. Its admin is also listed in members with role admin."""

    __tablename__ = "study_group"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_group_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text)
    is_private: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    admin_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )

    members: Mapped[list["GroupMember"]] = relationship(
        back_populates="group",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Group id={self.id!r} name={self.name!r}>"


class GroupMember(Base):
    """Membership of one user in one group."""

    __tablename__ = "study_group_member"
    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_group_member"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("study_group.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    role: Mapped[str] = mapped_column(
        String(16), default=GroupRole.MEMBER.value, nullable=False
    )
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    group: Mapped["Group"] = relationship(back_populates="members")

    def __repr__(self) -> str:
        return f"<GroupMember group_id={self.group_id!r} user_id={self.user_id!r} role={self.role!r}>"
