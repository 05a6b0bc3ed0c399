"""
Persistence Gateway.

Serializes the full state map into a versioned snapshot document and
writes it to a key-value backend. Writes requested during rapid typing are
coalesced by a single-slot DeferredTask: every request cancels the pending
write and reschedules it, so at most one write happens per debounce window
and the last write always reflects the latest state.

Loading never raises: a missing, unreadable or structurally invalid
document yields an empty state map.
"""

from __future__ import annotations

import json
import os
import re
import threading
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from loguru import logger
from pydantic import ValidationError
from sqlalchemy import DateTime, String, Text, create_engine, func
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from src.proficiency.engine_config import EngineConfig
from src.proficiency.models import KeyState
from src.proficiency.schema import SCHEMA_VERSION, KeyStateRecord, SnapshotDocument

if TYPE_CHECKING:
    from config import Settings

StateSnapshot = Iterable[tuple[str, KeyState]]


# =============================================================================
# Key-value backends
# =============================================================================


class KeyValueStore(Protocol):
    """Minimal string key-value backend."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryKeyValueStore:
    """Process-local backend, mostly for tests and dry runs."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileKeyValueStore:
    """
    One JSON file per key inside a directory.

    Files are written to a temporary name and renamed into place so a
    crash mid-write never leaves a truncated document behind.
    """

    DEFAULT_DIR = Path.home() / ".proficiency"
    _UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")

    def __init__(self, directory: Path | None = None):
        self.directory = Path(directory or self.DEFAULT_DIR).expanduser()
        self.directory.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        return self.directory / f"{self._UNSAFE.sub('_', key)}.json"

    def get(self, key: str) -> str | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        path = self.path_for(key)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(value, encoding="utf-8")
        os.replace(tmp, path)

    def delete(self, key: str) -> None:
        path = self.path_for(key)
        if path.exists():
            path.unlink()


class Base(DeclarativeBase):
    pass


class KeyValueEntry(Base):
    """Row of the SQL key-value table."""

    __tablename__ = "kv_store"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class SqlKeyValueStore:
    """Key-value table on any SQLAlchemy database (SQLite by default)."""

    def __init__(self, url: str = "sqlite:///proficiency.db", engine: Engine | None = None):
        self.engine = engine or create_engine(url, pool_pre_ping=True)
        Base.metadata.create_all(bind=self.engine)
        self._session_factory = sessionmaker(bind=self.engine, autoflush=False)

    def get(self, key: str) -> str | None:
        with self._session_factory() as session:
            entry = session.get(KeyValueEntry, key)
            return entry.value if entry is not None else None

    def set(self, key: str, value: str) -> None:
        with self._session_factory.begin() as session:
            session.merge(KeyValueEntry(key=key, value=value))

    def delete(self, key: str) -> None:
        with self._session_factory.begin() as session:
            entry = session.get(KeyValueEntry, key)
            if entry is not None:
                session.delete(entry)

    def dispose(self) -> None:
        self.engine.dispose()


def create_store(settings: Settings) -> KeyValueStore:
    """Build the backend selected in settings."""
    if settings.persistence_backend == "memory":
        return MemoryKeyValueStore()
    if settings.persistence_backend == "sql":
        return SqlKeyValueStore(settings.database_url)
    return JsonFileKeyValueStore(Path(settings.state_dir))


# =============================================================================
# Deferred task
# =============================================================================


class DeferredTask:
    """
    Single-slot cancel-and-reschedule timer.

    ``schedule()`` replaces any pending run; ``flush()`` runs a pending
    action immediately; ``cancel()`` drops it. A generation counter makes a
    timer that already fired before being cancelled a no-op.
    """

    def __init__(
        self,
        delay_seconds: float,
        action: Callable[[], Any],
        timer_factory: Callable[[float, Callable[[], None]], Any] = threading.Timer,
        name: str = "deferred-task",
    ):
        self.delay_seconds = delay_seconds
        self.action = action
        self.timer_factory = timer_factory
        self.name = name
        self._lock = threading.Lock()
        self._timer: Any = None
        self._generation = 0

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def schedule(self) -> None:
        with self._lock:
            self._cancel_locked()
            self._generation += 1
            generation = self._generation
            timer = self.timer_factory(self.delay_seconds, lambda: self._fire(generation))
            if hasattr(timer, "daemon"):
                timer.daemon = True
            if hasattr(timer, "name"):
                timer.name = self.name
            self._timer = timer
            timer.start()

    def cancel(self) -> bool:
        with self._lock:
            return self._cancel_locked()

    def flush(self) -> bool:
        """Run the pending action now. Returns False if nothing was pending."""
        with self._lock:
            if not self._cancel_locked():
                return False
        self.action()
        return True

    def _cancel_locked(self) -> bool:
        if self._timer is None:
            return False
        self._timer.cancel()
        self._timer = None
        self._generation += 1
        return True

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._timer = None
        self.action()


# =============================================================================
# Gateway
# =============================================================================


class PersistenceGateway:
    """Snapshot (de)serialization with debounced writes."""

    def __init__(
        self,
        store: KeyValueStore,
        config: EngineConfig | None = None,
        storage_key: str = "proficiency-engine",
        timer_factory: Callable[[float, Callable[[], None]], Any] = threading.Timer,
    ):
        self.store = store
        self.config = config or EngineConfig()
        self.storage_key = storage_key
        self._snapshot: Callable[[], StateSnapshot] | None = None
        self._writer = DeferredTask(
            self.config.save_debounce_seconds,
            self._write_pending,
            timer_factory=timer_factory,
            name="proficiency-save",
        )

    @property
    def save_pending(self) -> bool:
        return self._writer.pending

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_document(self, states: StateSnapshot) -> SnapshotDocument:
        return SnapshotDocument(
            version=SCHEMA_VERSION,
            saved_at=datetime.now(UTC),
            global_priors={
                "alpha": self.config.alpha_prior,
                "beta": self.config.beta_prior,
                "shape": self.config.shape_prior,
                "rate": self.config.rate_prior,
            },
            ensemble_weights=dict(self.config.ensemble_weights),
            key_states=[(unit, KeyStateRecord.from_state(state)) for unit, state in states],
        )

    def serialize(self, states: StateSnapshot) -> str:
        return self.to_document(states).model_dump_json()

    @staticmethod
    def deserialize(raw: str) -> dict[str, KeyState]:
        """Parse a document; raises on any structural problem."""
        document = SnapshotDocument.model_validate_json(raw)
        return {unit: record.to_state() for unit, record in document.key_states}

    # -------------------------------------------------------------------------
    # Save / load
    # -------------------------------------------------------------------------

    def save(self, states: StateSnapshot) -> bool:
        """Write a snapshot now. Failures are logged, never raised."""
        try:
            payload = self.serialize(states)
            self.store.set(self.storage_key, payload)
        except (OSError, SQLAlchemyError, ValueError, TypeError, RuntimeError) as exc:
            logger.warning("Failed to save proficiency state: {}", exc)
            return False

        logger.debug("Saved proficiency state ({} bytes)", len(payload))
        return True

    def request_save(self, snapshot: Callable[[], StateSnapshot]) -> None:
        """Schedule a debounced save of whatever ``snapshot()`` returns when it fires."""
        self._snapshot = snapshot
        if self.config.save_debounce_seconds <= 0:
            self._write_pending()
            return
        self._writer.schedule()

    def _write_pending(self) -> None:
        if self._snapshot is not None:
            self.save(self._snapshot())

    def flush(self) -> bool:
        return self._writer.flush()

    def load(self) -> dict[str, KeyState]:
        """Read the snapshot; any corruption falls back to an empty map."""
        try:
            raw = self.store.get(self.storage_key)
        except (OSError, SQLAlchemyError, UnicodeDecodeError) as exc:
            logger.warning("Failed to read proficiency state, starting empty: {}", exc)
            return {}

        if raw is None:
            return {}

        try:
            states = self.deserialize(raw)
        except (ValidationError, json.JSONDecodeError, ValueError, TypeError) as exc:
            logger.warning("Discarding malformed proficiency state: {}", exc)
            return {}

        logger.info("Loaded proficiency state for {} units", len(states))
        return states

    def clear(self) -> None:
        self._writer.cancel()
        self._snapshot = None
        try:
            self.store.delete(self.storage_key)
        except (OSError, SQLAlchemyError) as exc:
            logger.warning("Failed to delete proficiency state: {}", exc)

    def close(self) -> None:
        """Flush any pending write and release the timer."""
        self.flush()
        self._writer.cancel()
