"""SQLModel models for the local persistent store."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlmodel import Field, SQLModel


class LocalEntry(SQLModel, table=True):
    """One key of the client-side key-value store."""

    __tablename__ = "local_entries"

    key: str = Field(primary_key=True, max_length=100)
    value: bytes
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
