"""
Board persistence: one JSON blob under one key in a durable key-value slot.

A slot is any object with ``read(key) -> Optional[str]`` and
``write(key, value) -> None``. Slots raise PersistenceUnavailable when the
underlying store fails.

Backends:
  SqliteSlot   - kv_store table in a SQLite file (default)
  JsonFileSlot - one <key>.json file per key
  MemorySlot   - in-process dict (tests, throwaway sessions)
"""
import json
import logging
import os
import sqlite3
import tempfile
from pathlib import Path
from typing import Optional, Dict
from datetime import datetime, timezone

from .schema import Board, NoteBoardError

logger = logging.getLogger(__name__)

DEFAULT_KEY = "cards"


class PersistenceUnavailable(NoteBoardError):
    """Raised when the underlying store rejects a read or write."""
    pass


def _connect(db_path: str) -> sqlite3.Connection:
    """Open a connection in WAL mode."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


class SqliteSlot:
    """Key-value slot backed by a single SQLite table."""

    def __init__(self, db_path: str):
        self.db_path = str(Path(db_path).expanduser())
        try:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            with _connect(self.db_path) as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS kv_store (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                """)
                conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise PersistenceUnavailable(f"Cannot open {self.db_path}: {e}") from e

    def read(self, key: str) -> Optional[str]:
        try:
            with _connect(self.db_path) as conn:
                row = conn.execute(
                    "SELECT value FROM kv_store WHERE key = ? LIMIT 1", (key,)
                ).fetchone()
        except sqlite3.Error as e:
            raise PersistenceUnavailable(f"Read of '{key}' failed: {e}") from e
        return row["value"] if row else None

    def write(self, key: str, value: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        try:
            with _connect(self.db_path) as conn:
                conn.execute("""
                    INSERT INTO kv_store (key, value, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
                """, (key, value, now))
                conn.commit()
        except sqlite3.Error as e:
            raise PersistenceUnavailable(f"Write of '{key}' failed: {e}") from e

    def __repr__(self) -> str:
        return f"SqliteSlot({self.db_path!r})"


class JsonFileSlot:
    """Key-value slot storing each key as ``<directory>/<key>.json``."""

    def __init__(self, directory: str):
        self.directory = Path(directory).expanduser()

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def read(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise PersistenceUnavailable(f"Read of {path} failed: {e}") from e

    def write(self, key: str, value: str) -> None:
        path = self._path(key)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            # temp file + replace: readers never see a partial blob
            fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
        except OSError as e:
            raise PersistenceUnavailable(f"Write of {path} failed: {e}") from e
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp, path)
        except (OSError, UnicodeError) as e:
            try:
                os.unlink(tmp)
            except FileNotFoundError:
                pass
            raise PersistenceUnavailable(f"Write of {path} failed: {e}") from e

    def __repr__(self) -> str:
        return f"JsonFileSlot({str(self.directory)!r})"


class MemorySlot:
    """In-process slot. ``fail_writes`` simulates a store that rejects writes."""

    def __init__(self, fail_writes: bool = False):
        self.data: Dict[str, str] = {}
        self.fail_writes = fail_writes

    def read(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def write(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise PersistenceUnavailable(f"Write of '{key}' rejected (quota exceeded)")
        self.data[key] = value

    def __repr__(self) -> str:
        return f"MemorySlot(keys={sorted(self.data)})"


class PersistenceAdapter:
    """Serializes the whole board to a single slot entry and reads it back."""

    def __init__(self, slot, key: str = DEFAULT_KEY):
        self.slot = slot
        self.key = key

    def save(self, board: Board) -> None:
        """Write the full board. Raises PersistenceUnavailable on failure."""
        blob = json.dumps(board.to_dict())
        try:
            self.slot.write(self.key, blob)
        except (OSError, UnicodeError, sqlite3.Error) as e:
            raise PersistenceUnavailable(f"Write to {self.slot!r} failed: {e}") from e
        logger.debug(f"Saved board to {self.slot!r} under '{self.key}' ({len(blob)} bytes)")

    def load(self) -> Board:
        """
        Return the saved board, or a fresh default board.

        Missing state, an unreadable slot, unparseable JSON and a record with
        the wrong shape all count as "no state".
        """
        try:
            blob = self.slot.read(self.key)
        except PersistenceUnavailable as e:
            logger.warning(f"Could not read saved board, starting empty: {e}")
            return Board()
        if blob is None:
            return Board()
        try:
            board = Board.from_dict(json.loads(blob))
        except (ValueError, TypeError, AttributeError) as e:
            # json.JSONDecodeError is a ValueError
            logger.warning(f"Saved board under '{self.key}' is malformed, starting empty: {e}")
            return Board()
        logger.info(
            f"Loaded board: {len(board.all_cards())} cards, next id {board.next_card_id}"
        )
        return board
