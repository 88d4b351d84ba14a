# tests/conftest.py
import importlib
import itertools
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

import pytest
from fastapi.testclient import TestClient

from loomra.domain.models import AppSettings, Goal, Habit, HabitCompletion, Task
from loomra.storage import (
    GoalRepo,
    HabitCompletionRepo,
    HabitRepo,
    SettingsRepo,
    SQLiteDB,
    TaskRepo,
    apply_schema,
)

_counter = itertools.count(1)

DEFAULT_ENV = {
    "LOOMRA_DB_TIMEOUT_MS": "2000",
    "LOOMRA_LOG_LEVEL": "warning",
}

STAMP = "2024-03-01T08:00:00.000Z"


# -------------------------
# Payload builders
# -------------------------


def goal_payload(goal_id: str, **overrides: Any) -> dict[str, Any]:
    data = {
        "id": goal_id,
        "title": f"Goal {goal_id}",
        "description": "",
        "notes": "",
        "category": "health",
        "priority": "high",
        "status": "active",
        "color": "#22c55e",
        "icon": "target",
        "deadline": None,
        "createdAt": STAMP,
        "updatedAt": STAMP,
    }
    data.update(overrides)
    return data


def task_payload(task_id: str, **overrides: Any) -> dict[str, Any]:
    data = {
        "id": task_id,
        "title": f"Task {task_id}",
        "done": False,
        "goalId": None,
        "parentTaskId": None,
        "dueDate": None,
        "priority": "medium",
        "createdAt": STAMP,
        "updatedAt": STAMP,
    }
    data.update(overrides)
    return data


def habit_payload(habit_id: str, **overrides: Any) -> dict[str, Any]:
    data = {
        "id": habit_id,
        "name": f"Habit {habit_id}",
        "category": "health",
        "icon": "droplet",
        "color": "#3b82f6",
        "targetAmount": 1.0,
        "unit": "times",
        "frequency": {"type": "daily", "value": None},
        "priority": "medium",
        "notes": "",
        "linkedGoals": [],
        "startDate": "2024-03-01",
        "reminder": {"enabled": False, "time": "09:00"},
        "createdAt": STAMP,
        "updatedAt": STAMP,
    }
    data.update(overrides)
    return data


def completion_payload(habit_id: str, date: str, completed: bool = True, **overrides: Any) -> dict[str, Any]:
    data = {
        "id": f"{habit_id}-{date}",
        "habitId": habit_id,
        "date": date,
        "completed": completed,
        "actualAmount": 1.0 if completed else 0.0,
        "targetAmount": 1.0,
        "completedAt": f"{date}T20:00:00.000Z" if completed else None,
        "note": "",
        "mood": None,
        "difficulty": None,
        "skipped": False,
        "createdAt": STAMP,
        "updatedAt": STAMP,
    }
    data.update(overrides)
    return data


def settings_payload(**section_overrides: Any) -> dict[str, Any]:
    data = {
        "appearance": {"theme": "dark", "weekStartsOn": "monday", "timezone": "UTC"},
        "habits": {"defaultReminder": False, "defaultReminderTime": "09:00", "defaultPriority": "medium"},
        "goals": {"deadlineWarningDays": 7, "defaultCategory": "personal", "showProgressPercentage": True},
        "notifications": {
            "habitReminders": True,
            "goalDeadlines": True,
            "streakMilestones": True,
            "dailySummary": False,
            "weeklySummary": False,
            "motivationalQuotes": False,
        },
        "data": {"autoBackup": False, "backupFrequency": "weekly"},
    }
    data.update(section_overrides)
    return data


# -------------------------
# Direct store access
# -------------------------


class Seeder:
    """Writes entities straight through the repositories, one autocommit statement each."""

    def __init__(self, db: SQLiteDB) -> None:
        self.db = db

    def _run(self, fn):
        conn = self.db.connect()
        try:
            return fn(conn)
        finally:
            conn.close()

    def goal(self, goal_id: str, **overrides: Any) -> Goal:
        goal = Goal.model_validate(goal_payload(goal_id, **overrides))
        return self._run(lambda c: GoalRepo(c).create(goal))

    def task(self, task_id: str, **overrides: Any) -> Task:
        task = Task.model_validate(task_payload(task_id, **overrides))
        return self._run(lambda c: TaskRepo(c).create(task))

    def habit(self, habit_id: str, **overrides: Any) -> Habit:
        habit = Habit.model_validate(habit_payload(habit_id, **overrides))
        return self._run(lambda c: HabitRepo(c).create(habit))

    def completion(self, habit_id: str, date: str, completed: bool = True, **overrides: Any) -> HabitCompletion:
        completion = HabitCompletion.model_validate(completion_payload(habit_id, date, completed, **overrides))
        return self._run(lambda c: HabitCompletionRepo(c).insert(completion))

    def settings(self, **section_overrides: Any) -> AppSettings:
        settings = AppSettings.model_validate(settings_payload(**section_overrides))
        return self._run(lambda c: SettingsRepo(c).save(settings))

    def query(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        return self._run(lambda c: [dict(r) for r in c.execute(sql, params).fetchall()])

    def table_dump(self) -> dict[str, list[dict[str, Any]]]:
        """Every row of every table, in a stable order, for before/after comparisons."""
        return {
            "goals": self.query("SELECT * FROM goals ORDER BY id;"),
            "tasks": self.query("SELECT * FROM tasks ORDER BY id;"),
            "habits": self.query("SELECT * FROM habits ORDER BY id;"),
            "habit_completions": self.query("SELECT * FROM habit_completions ORDER BY id;"),
            "settings": self.query("SELECT id, data FROM settings;"),
        }


@pytest.fixture()
def db(tmp_path: Path) -> SQLiteDB:
    """A fresh database file with the schema applied."""
    database = SQLiteDB(tmp_path / f"loomra_{next(_counter)}.db", timeout_s=2.0)
    conn = database.connect()
    try:
        apply_schema(conn)
    finally:
        conn.close()
    return database


@pytest.fixture()
def seed(db: SQLiteDB) -> Seeder:
    return Seeder(db)


# -------------------------
# API client
# -------------------------


def _apply_env(monkeypatch: pytest.MonkeyPatch, db_path: Path, overrides: Optional[dict[str, str]] = None) -> None:
    monkeypatch.setenv("LOOMRA_DB_PATH", str(db_path))
    for k, v in DEFAULT_ENV.items():
        monkeypatch.setenv(k, v)
    if overrides:
        for k, v in overrides.items():
            monkeypatch.setenv(k, v)


@contextmanager
def _client_ctx(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, *, overrides: Optional[dict[str, str]] = None,
                db_path: Optional[Path] = None) -> Iterator[TestClient]:
    # Unique DB per client instance unless one is provided
    if db_path is None:
        db_path = tmp_path / f"api_{next(_counter)}.db"

    _apply_env(monkeypatch, db_path, overrides)

    # Import after env is set; reload to avoid cross-test state
    app_mod = importlib.import_module("loomra.api.app")
    importlib.reload(app_mod)

    with TestClient(app_mod.app) as client:
        yield client


@pytest.fixture()
def client(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[TestClient]:
    """
    Default integration test client.
    Uses DEFAULT_ENV and a fresh sqlite db per test.
    """
    with _client_ctx(monkeypatch, tmp_path) as c:
        yield c


@pytest.fixture()
def client_factory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """
    Factory for tests that need custom settings or a pre-populated DB.

    Usage:
      with client_factory(db_path=some_existing_db_path) as client:
          ...
    """

    def _make(*, overrides: Optional[dict[str, str]] = None, db_path: Optional[Path] = None):
        return _client_ctx(monkeypatch, tmp_path, overrides=overrides, db_path=db_path)

    return _make
