# src/loomra/storage/db.py
from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from loomra.domain.errors import LoomraError, ResourceUnavailableError, TransactionError


@dataclass(frozen=True)
class SQLiteDB:
    """
    SQLite connection factory, passed explicitly to every component that needs
    the store.

    Notes:
    - One connection per logical operation; never shared between operations.
    - Apply pragmas on each connection.
    - timeout_s bounds how long a connection waits for another writer's lock.
    """
    db_path: Path
    timeout_s: float = 5.0

    def connect(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.timeout_s,
            isolation_level=None,          # we manage transactions manually (BEGIN/COMMIT)
            check_same_thread=False,       # FastAPI may resolve deps and run the handler on different pool threads
        )
        conn.row_factory = sqlite3.Row
        self._apply_pragmas(conn)
        return conn

    def _apply_pragmas(self, conn: sqlite3.Connection) -> None:
        cur = conn.cursor()
        cur.execute("PRAGMA journal_mode=WAL;")
        # Enforce FK constraints
        cur.execute("PRAGMA foreign_keys=ON;")
        cur.execute(f"PRAGMA busy_timeout={int(self.timeout_s * 1000)};")
        cur.execute("PRAGMA synchronous=NORMAL;")
        cur.execute("PRAGMA temp_store=MEMORY;")
        cur.close()


def is_locked_error(err: BaseException) -> bool:
    if not isinstance(err, sqlite3.OperationalError):
        return False
    text = str(err).lower()
    return "database is locked" in text or "database is busy" in text


def begin_immediate(conn: sqlite3.Connection) -> None:
    """
    Begins a transaction that acquires a RESERVED lock immediately, so every
    write of the operation happens under one lock on one connection.

    Raises ResourceUnavailableError when the lock is still held by another
    writer after the busy timeout.
    """
    try:
        conn.execute("BEGIN IMMEDIATE;")
    except sqlite3.OperationalError as e:
        if is_locked_error(e):
            raise ResourceUnavailableError(
                "Database is busy; could not acquire the write lock in time",
                details={"cause": str(e)},
            ) from e
        raise


def begin_deferred(conn: sqlite3.Connection) -> None:
    """
    Begins a transaction in DEFERRED mode. Under WAL, the first read pins a
    snapshot that all later reads of the transaction see.
    """
    conn.execute("BEGIN;")


def commit(conn: sqlite3.Connection) -> None:
    conn.execute("COMMIT;")


def rollback(conn: sqlite3.Connection) -> None:
    # A failed COMMIT or a constraint error may already have ended the transaction.
    if conn.in_transaction:
        conn.execute("ROLLBACK;")


@contextmanager
def transaction_step(step: str) -> Iterator[None]:
    """
    Names one step of a multi-statement operation. A storage error or
    constraint violation inside it becomes a TransactionError carrying the
    step name; the caller is still responsible for rolling back.
    """
    try:
        yield
    except (ResourceUnavailableError, TransactionError):
        raise
    except sqlite3.OperationalError as e:
        if is_locked_error(e):
            raise ResourceUnavailableError(
                f"Database is busy during step '{step}'",
                details={"step": step, "cause": str(e)},
            ) from e
        raise TransactionError(f"Step '{step}' failed: {e}", details={"step": step, "cause": str(e)}) from e
    except sqlite3.Error as e:
        raise TransactionError(f"Step '{step}' failed: {e}", details={"step": step, "cause": str(e)}) from e
    except LoomraError as e:
        raise TransactionError(
            f"Step '{step}' failed: {e.message}",
            details={**(e.details or {}), "step": step, "cause": e.message, "cause_code": e.code},
        ) from e
