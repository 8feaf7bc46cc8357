"""Persistent global state backends for the package bundler."""
import fcntl
import json
import os
import sqlite3
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any


class StateBackend(ABC):
    """Key/value store for application-scoped state blobs."""

    @abstractmethod
    def load(self, key: str) -> dict[str, Any]:
        """Read the blob stored under key.

        Args:
            key: Application-scoped state key

        Returns:
            Stored dict, or an empty dict if nothing is stored
        """
        pass

    @abstractmethod
    def save(self, key: str, value: dict[str, Any]) -> None:
        """Write the blob for key. Must be durable when this returns.

        Args:
            key: Application-scoped state key
            value: JSON-serializable dict
        """
        pass


class JsonStateBackend(StateBackend):
    """All keys in one JSON document on disk."""

    def __init__(self, path: str):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def _locked(self) -> Iterator[None]:
        """Hold an exclusive lock on a sidecar file for read-modify-write."""
        lock_path = self.path.with_suffix(self.path.suffix + ".lock")
        with lock_path.open("a+", encoding="utf-8") as lock_handle:
            fcntl.flock(lock_handle.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_handle.fileno(), fcntl.LOCK_UN)

    def _read_all(self) -> dict[str, Any]:
        if not self.path.is_file():
            return {}
        text = self.path.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        return json.loads(text)

    def _write_all(self, data: dict[str, Any]) -> None:
        """Atomically replace the state file."""
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self.path.parent),
            prefix=f".{self.path.name}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp_handle:
                json.dump(data, tmp_handle, indent=2, sort_keys=True)
                tmp_handle.flush()
                os.fsync(tmp_handle.fileno())
            os.replace(tmp_path, str(self.path))
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def load(self, key: str) -> dict[str, Any]:
        return self._read_all().get(key, {})

    def save(self, key: str, value: dict[str, Any]) -> None:
        with self._locked():
            data = self._read_all()
            data[key] = value
            self._write_all(data)


class SqliteStateBackend(StateBackend):
    """SQLite storage for state blobs."""

    def __init__(self, db_path: str):
        """Initialize storage with database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get database connection with automatic cleanup.

        Yields:
            SQLite connection with row factory configured
        """
        conn = sqlite3.connect(str(self.db_path), timeout=30.0, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _init_database(self) -> None:
        """Initialize database schema."""
        with self._get_connection() as conn:
            cursor = conn.cursor()

            # Enable WAL mode for better concurrent access
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=30000")

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS global_state (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            conn.commit()

    def load(self, key: str) -> dict[str, Any]:
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT value FROM global_state WHERE key = ?", (key,))
            row = cursor.fetchone()
            return json.loads(row["value"]) if row else {}

    def save(self, key: str, value: dict[str, Any]) -> None:
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO global_state (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE
                SET value = excluded.value, updated_at = CURRENT_TIMESTAMP
                """,
                (key, json.dumps(value)),
            )
            conn.commit()


def create_backend(backend: str, path: str) -> StateBackend:
    """Create the configured state backend.

    Args:
        backend: Either 'json' or 'sqlite'
        path: Path of the state file or database

    Returns:
        StateBackend instance
    """
    if backend == "sqlite":
        return SqliteStateBackend(path)
    return JsonStateBackend(path)
