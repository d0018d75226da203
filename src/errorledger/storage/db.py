from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, TypeVar

from ..config import StorageSettings
from ..errors import StoreUnavailable

T = TypeVar("T")


def guard_store(fn: Callable[[], T]) -> T:
    """Run a store call, surfacing locked or unreachable databases as StoreUnavailable.

    ``sqlite3.ProgrammingError`` is a bug in the caller and propagates as is.
    """
    try:
        return fn()
    except sqlite3.ProgrammingError:
        raise
    except sqlite3.DatabaseError as exc:
        raise StoreUnavailable(f"error store unavailable: {exc}") from exc


class Database:
    """SQLite file holding the error ledger.

    Connections run in autocommit mode; writers open their own transaction
    with ``transaction(immediate=True)`` so the write lock is taken before
    the row is read.
    """

    def __init__(self, path: Path, *, wal: bool = True, busy_timeout_ms: int = 5000) -> None:
        self.path = Path(path)
        self.wal = wal
        self.busy_timeout_ms = busy_timeout_ms
        self.path.parent.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_settings(cls, cfg: StorageSettings) -> "Database":
        return cls(cfg.db_path, wal=cfg.wal, busy_timeout_ms=cfg.busy_timeout_ms)

    def connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.path,
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        conn.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)};")
        conn.execute("PRAGMA foreign_keys = ON;")
        if self.wal:
            conn.execute("PRAGMA journal_mode = WAL;")
            conn.execute("PRAGMA synchronous = NORMAL;")
        return conn

    @contextmanager
    def transaction(self, *, immediate: bool = False) -> Iterator[sqlite3.Connection]:
        conn = self.connect()
        try:
            conn.execute("BEGIN IMMEDIATE;" if immediate else "BEGIN;")
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def read_only(self) -> Iterator[sqlite3.Connection]:
        conn = self.connect()
        try:
            yield conn
        finally:
            conn.close()
