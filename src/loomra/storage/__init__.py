# src/loomra/storage/__init__.py
"""
Storage layer for Loomra (SQLite).

- db: connection factory + pragmas + transaction helpers
- schema: idempotent schema bootstrap
- repo: per-entity data access and the settings singleton
"""

from .db import SQLiteDB
from .schema import apply_schema
from .repo import GoalRepo, HabitCompletionRepo, HabitRepo, SettingsRepo, TaskRepo

__all__ = [
    "SQLiteDB",
    "apply_schema",
    "GoalRepo",
    "TaskRepo",
    "HabitRepo",
    "HabitCompletionRepo",
    "SettingsRepo",
]
