# src/loomra/api/deps.py
from __future__ import annotations

import sqlite3
from typing import Generator

from fastapi import Depends, Request

from loomra.engine import BulkTransfer, IntegrityCoordinator, StreakEngine
from loomra.storage import (
    GoalRepo,
    HabitCompletionRepo,
    HabitRepo,
    SettingsRepo,
    SQLiteDB,
    TaskRepo,
)


def get_db(request: Request) -> SQLiteDB:
    """
    Per-request access to SQLiteDB stored on app.state during startup.
    """
    return request.app.state.db  # type: ignore[attr-defined]


def get_conn(
    db: SQLiteDB = Depends(get_db),
) -> Generator[sqlite3.Connection, None, None]:
    """
    Provides a per-request SQLite connection for the plain CRUD routes.
    """
    conn = db.connect()
    try:
        yield conn
    finally:
        conn.close()


def get_goal_repo(conn: sqlite3.Connection = Depends(get_conn)) -> GoalRepo:
    return GoalRepo(conn)


def get_task_repo(conn: sqlite3.Connection = Depends(get_conn)) -> TaskRepo:
    return TaskRepo(conn)


def get_habit_repo(conn: sqlite3.Connection = Depends(get_conn)) -> HabitRepo:
    return HabitRepo(conn)


def get_completion_repo(conn: sqlite3.Connection = Depends(get_conn)) -> HabitCompletionRepo:
    return HabitCompletionRepo(conn)


def get_settings_repo(conn: sqlite3.Connection = Depends(get_conn)) -> SettingsRepo:
    return SettingsRepo(conn)


# The engines open their own connections per operation.


def get_coordinator(db: SQLiteDB = Depends(get_db)) -> IntegrityCoordinator:
    return IntegrityCoordinator(db)


def get_streaks(db: SQLiteDB = Depends(get_db)) -> StreakEngine:
    return StreakEngine(db)


def get_transfer(db: SQLiteDB = Depends(get_db)) -> BulkTransfer:
    return BulkTransfer(db)
