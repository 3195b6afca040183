"""SQLAlchemy models for relational credential storage."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from sessiongate.db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuthStateEntry(Base):
    __tablename__ = "auth_state"
    __table_args__ = (
        Index("ix_auth_state_updated", "session_id", "updated_at"),
    )

    session_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    key: Mapped[str] = mapped_column(String(512), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )
