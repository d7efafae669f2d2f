"""
Persistence store.

Thin owner of the SQLAlchemy engine and the four record tables. All
methods are synchronous; async callers hop through asyncio.to_thread.
SQLite engines serialize access behind a process lock so writer threads
and analytics threads never share the connection concurrently.
"""

import threading
from contextlib import contextmanager, nullcontext
from typing import Any, ContextManager, Dict, Iterator, Optional

import structlog
from sqlalchemy import text
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from ..models.records import ConfigEntry, utcnow
from .exceptions import StorageError

logger = structlog.get_logger(__name__)


class PersistenceStore:
    """
    Durable append-only tables for captured traffic.

    Features:
    - Request log, credential attempt and admin access inserts
    - Config key/value lookup and provisioning
    - Connectivity check for /health
    """

    def __init__(self, database_url: str, echo: bool = False) -> None:
        self.database_url = database_url
        self.is_sqlite = database_url.startswith("sqlite")

        connect_args = {"check_same_thread": False} if self.is_sqlite else {}
        # In-memory SQLite: a single shared connection so every session sees the tables
        in_memory = self.is_sqlite and (":memory:" in database_url or database_url.rstrip("/") == "sqlite:")
        engine_kwargs: Dict[str, Any] = {"echo": echo, "connect_args": connect_args}
        if in_memory:
            engine_kwargs["poolclass"] = StaticPool
        self.engine = create_engine(database_url, **engine_kwargs)
        self._lock = threading.Lock() if self.is_sqlite else None

        logger.info("Persistence store initialized", dialect=self.engine.dialect.name)

    def _guard(self) -> ContextManager[Any]:
        return self._lock if self._lock is not None else nullcontext()

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Open a session, serialized on SQLite."""
        with self._guard():
            with Session(self.engine) as session:
                yield session

    def create_all(self) -> None:
        """Create missing tables. Schema migrations are handled elsewhere."""
        with self._guard():
            SQLModel.metadata.create_all(self.engine)

    def add(self, record: SQLModel) -> SQLModel:
        """
        Insert a single record.

        Raises StorageError on any database failure.
        """
        try:
            with self.session() as session:
                session.add(record)
                session.commit()
                session.refresh(record)
                return record
        except Exception as e:
            raise StorageError(
                f"Failed to store {type(record).__name__}",
                details={"error": str(e), "error_type": type(e).__name__},
            ) from e

    def get_config(self, key: str) -> Optional[ConfigEntry]:
        try:
            with self.session() as session:
                return session.get(ConfigEntry, key)
        except Exception as e:
            raise StorageError(
                "Failed to read configuration",
                details={"key": key, "error": str(e)},
            ) from e

    def set_config(self, key: str, value: str, description: Optional[str] = None) -> ConfigEntry:
        """Insert or overwrite a config entry."""
        try:
            with self.session() as session:
                entry = session.get(ConfigEntry, key)
                if entry is None:
                    entry = ConfigEntry(config_key=key, config_value=value, description=description)
                else:
                    entry.config_value = value
                    if description is not None:
                        entry.description = description
                    entry.updated_at = utcnow()
                session.add(entry)
                session.commit()
                session.refresh(entry)
                return entry
        except Exception as e:
            raise StorageError(
                "Failed to write configuration",
                details={"key": key, "error": str(e)},
            ) from e

    def ensure_config(self, key: str, value: str, description: Optional[str] = None) -> bool:
        """
        Insert a config entry only if the key is absent.

        Returns True when a row was created.
        """
        if self.get_config(key) is not None:
            return False
        self.set_config(key, value, description)
        logger.info("Provisioned configuration entry", key=key)
        return True

    def delete_config(self, key: str) -> None:
        try:
            with self.session() as session:
                entry = session.get(ConfigEntry, key)
                if entry is not None:
                    session.delete(entry)
                    session.commit()
        except Exception as e:
            raise StorageError(
                "Failed to delete configuration",
                details={"key": key, "error": str(e)},
            ) from e

    def ping(self) -> None:
        """Round-trip a trivial query. Raises StorageError when unreachable."""
        try:
            with self._guard():
                with self.engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
        except Exception as e:
            raise StorageError("Database unreachable", details={"error": str(e)}) from e

    def dispose(self) -> None:
        self.engine.dispose()
