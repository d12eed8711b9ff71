import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, Session, declarative_base

from triage.config import settings

logger = logging.getLogger(__name__)

# check_same_thread=False lets SQLite connections cross the request threadpool
engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {},
    echo=False,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db() -> None:
    """
    Initialize the database by creating all tables.
    Called during application startup.
    """
    logger.debug(f"Initializing database with URL: {settings.DATABASE_URL}")
    try:
        # Import models to register them with Base.metadata
        from triage.models import KeyValueEntry  # noqa: F401

        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def check_db_health() -> bool:
    """
    Check if the database is reachable and the kv_store table exists.

    Returns:
        True if DB is healthy and schema exists, False otherwise.
    """
    logger.debug("Checking database health...")
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
            result = db.execute(text(
                "SELECT COUNT(*) FROM sqlite_master WHERE type='table' AND name='kv_store'"
            )).scalar()
            if result == 0:
                logger.error("Database schema not applied: 'kv_store' table not found")
                return False
        logger.debug("Database health check passed")
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


# =============================================================================
# Persistence Media
# =============================================================================

class KeyValueMedium(Protocol):
    """A single opaque text slot. load() returns None when nothing is stored."""

    def load(self) -> Optional[str]: ...

    def store(self, data: str) -> None: ...


class SqlKeyValueMedium:
    """
    Medium backed by one row of the kv_store table.

    Write errors are logged and re-raised; retry policy belongs to the caller.
    """

    def __init__(self, key: str, session_factory: Callable[[], Session] = SessionLocal):
        self.key = key
        self._session_factory = session_factory

    def load(self) -> Optional[str]:
        from triage.models import KeyValueEntry

        with self._session_factory() as db:
            entry = db.get(KeyValueEntry, self.key)
            return entry.value if entry is not None else None

    def store(self, data: str) -> None:
        from triage.models import KeyValueEntry

        updated_at = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        with self._session_factory() as db:
            try:
                entry = db.get(KeyValueEntry, self.key)
                if entry is None:
                    db.add(KeyValueEntry(key=self.key, value=data, updated_at=updated_at))
                else:
                    entry.value = data
                    entry.updated_at = updated_at
                db.commit()
                logger.debug(f"Stored {len(data)} chars under key '{self.key}'")
            except Exception as e:
                db.rollback()
                logger.error(f"Failed to store key '{self.key}': {e}")
                raise


class MemoryMedium:
    """In-process medium; contents are lost with the process."""

    def __init__(self, initial: Optional[str] = None):
        self._data = initial
        self._lock = threading.Lock()

    def load(self) -> Optional[str]:
        with self._lock:
            return self._data

    def store(self, data: str) -> None:
        with self._lock:
            self._data = data
