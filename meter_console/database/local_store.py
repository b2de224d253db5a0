"""Synchronous key-value byte store scoped to this client."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, select

from meter_console.core.logging_config import get_logger
from meter_console.database.models import LocalEntry

logger = get_logger(__name__)

# Slot holding the live settings record
CURRENT_SETTINGS_KEY = "current-settings"
# Slot holding the operator's saved snapshot; b"" means "enabled but empty"
SAVED_SETTINGS_KEY = "saved-settings-snapshot"


class LocalStore:
    """Byte-string values keyed by name, persisted in a single table.

    Calls block the caller; they are short single-row statements.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        SQLModel.metadata.create_all(engine, tables=[LocalEntry.__table__])

    def get(self, key: str) -> Optional[bytes]:
        """Return the stored bytes, or None when the key is absent."""
        with Session(self._engine) as session:
            entry = session.get(LocalEntry, key)
            return bytes(entry.value) if entry is not None else None

    def contains(self, key: str) -> bool:
        return self.get(key) is not None

    def set(self, key: str, value: bytes) -> None:
        with Session(self._engine) as session:
            try:
                entry = session.get(LocalEntry, key)
                if entry is None:
                    entry = LocalEntry(key=key, value=value)
                else:
                    entry.value = value
                    entry.updated_at = datetime.now(timezone.utc)
                session.add(entry)
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                logger.error(
                    "local_store_write_failed",
                    key=key,
                    error=str(e),
                    error_type=type(e).__name__,
                    message="Failed to write local store entry",
                )
                raise
        logger.debug("local_store_written", key=key, size=len(value))

    def remove(self, key: str) -> bool:
        """Delete a key. Returns True if it existed."""
        with Session(self._engine) as session:
            entry = session.get(LocalEntry, key)
            if entry is None:
                return False
            session.delete(entry)
            session.commit()
        logger.debug("local_store_removed", key=key)
        return True

    def keys(self) -> List[str]:
        with Session(self._engine) as session:
            return list(session.exec(select(LocalEntry.key)).all())

    def close(self) -> None:
        self._engine.dispose()


def create_local_store(url: str, echo: bool = False) -> LocalStore:
    """Build a LocalStore for a SQLAlchemy URL.

    File-backed SQLite URLs get their parent directory created; in-memory
    SQLite shares a single connection so every session sees the same data.
    """
    parsed = make_url(url)
    kwargs: dict = {"echo": echo}
    if parsed.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
        database = parsed.database
        if not database or database == ":memory:":
            kwargs["poolclass"] = StaticPool
        else:
            Path(database).parent.mkdir(parents=True, exist_ok=True)
    return LocalStore(create_engine(url, **kwargs))
