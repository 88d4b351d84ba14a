# src/loomra/storage/repo.py
from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from loomra.domain.errors import (
    ConstraintViolationError,
    MalformedInputError,
    NotFoundError,
    ValidationError,
)
from loomra.domain.models import (
    SECTION_MODELS,
    AppSettings,
    Goal,
    Habit,
    HabitCompletion,
    Task,
    validation_details,
)
from loomra.logging import get_logger

from .db import begin_immediate, commit, rollback

_LOG = get_logger(__name__)

MAX_COMPLETIONS_PAGE = 1000

_GOAL_COLUMNS = (
    "id, title, description, notes, category, priority, status, color, icon, "
    "deadline, created_at, updated_at"
)
_TASK_COLUMNS = "id, title, done, goal_id, parent_task_id, due_date, priority, created_at, updated_at"
_HABIT_COLUMNS = (
    "id, name, category, icon, color, target_amount, unit, frequency_type, frequency_value, "
    "priority, notes, linked_goals, start_date, reminder_enabled, reminder_time, created_at, updated_at"
)
_COMPLETION_COLUMNS = (
    "id, habit_id, date, completed, actual_amount, target_amount, completed_at, note, "
    "mood, difficulty, skipped, created_at, updated_at"
)


def _placeholders(values: Sequence[Any]) -> str:
    return ",".join("?" for _ in values)


def _constraint_error(e: sqlite3.IntegrityError, entity: str, entity_id: str) -> ConstraintViolationError:
    return ConstraintViolationError(
        f"Failed to write {entity} '{entity_id}': {e}",
        details={"entity": entity, "id": entity_id, "cause": str(e)},
    )


# -------------------------
# Goals
# -------------------------


@dataclass
class GoalRepo:
    conn: sqlite3.Connection

    def create(self, goal: Goal) -> Goal:
        try:
            self.conn.execute(
                f"INSERT INTO goals ({_GOAL_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);",
                (
                    goal.id,
                    goal.title,
                    goal.description,
                    goal.notes,
                    goal.category,
                    goal.priority,
                    goal.status,
                    goal.color,
                    goal.icon,
                    goal.deadline,
                    goal.created_at,
                    goal.updated_at,
                ),
            )
        except sqlite3.IntegrityError as e:
            raise _constraint_error(e, "goal", goal.id) from e
        return goal

    def update(self, goal: Goal) -> Goal:
        updated = self.conn.execute(
            """
            UPDATE goals
            SET title = ?, description = ?, notes = ?, category = ?,
                priority = ?, status = ?, color = ?, icon = ?,
                deadline = ?, updated_at = ?
            WHERE id = ?;
            """,
            (
                goal.title,
                goal.description,
                goal.notes,
                goal.category,
                goal.priority,
                goal.status,
                goal.color,
                goal.icon,
                goal.deadline,
                goal.updated_at,
                goal.id,
            ),
        ).rowcount
        if updated == 0:
            raise NotFoundError(f"Goal with id '{goal.id}' not found", details={"id": goal.id})
        return goal

    def get(self, goal_id: str) -> Optional[Goal]:
        row = self.conn.execute(f"SELECT {_GOAL_COLUMNS} FROM goals WHERE id = ?;", (goal_id,)).fetchone()
        return Goal.model_validate(dict(row)) if row else None

    def exists(self, goal_id: str) -> bool:
        return self.conn.execute("SELECT 1 FROM goals WHERE id = ?;", (goal_id,)).fetchone() is not None

    def list_all(self) -> list[Goal]:
        rows = self.conn.execute(f"SELECT {_GOAL_COLUMNS} FROM goals ORDER BY created_at DESC;").fetchall()
        return [Goal.model_validate(dict(r)) for r in rows]

    def list_by_status(self, status: str) -> list[Goal]:
        rows = self.conn.execute(
            f"SELECT {_GOAL_COLUMNS} FROM goals WHERE status = ? ORDER BY created_at DESC;",
            (status,),
        ).fetchall()
        return [Goal.model_validate(dict(r)) for r in rows]

    def delete(self, goal_id: str) -> bool:
        return self.conn.execute("DELETE FROM goals WHERE id = ?;", (goal_id,)).rowcount > 0

    def delete_all(self) -> int:
        return self.conn.execute("DELETE FROM goals;").rowcount


# -------------------------
# Tasks
# -------------------------


@dataclass
class TaskRepo:
    """
    Tasks form a tree through parent_task_id; removing a task removes its
    subtasks through the store's ON DELETE CASCADE.
    """
    conn: sqlite3.Connection

    def create(self, task: Task) -> Task:
        try:
            self.conn.execute(
                f"INSERT INTO tasks ({_TASK_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);",
                (
                    task.id,
                    task.title,
                    int(task.done),
                    task.goal_id,
                    task.parent_task_id,
                    task.due_date,
                    task.priority,
                    task.created_at,
                    task.updated_at,
                ),
            )
        except sqlite3.IntegrityError as e:
            raise _constraint_error(e, "task", task.id) from e
        return task

    def update(self, task: Task) -> Task:
        try:
            updated = self.conn.execute(
                """
                UPDATE tasks
                SET title = ?, done = ?, goal_id = ?, parent_task_id = ?,
                    due_date = ?, priority = ?, updated_at = ?
                WHERE id = ?;
                """,
                (
                    task.title,
                    int(task.done),
                    task.goal_id,
                    task.parent_task_id,
                    task.due_date,
                    task.priority,
                    task.updated_at,
                    task.id,
                ),
            ).rowcount
        except sqlite3.IntegrityError as e:
            raise _constraint_error(e, "task", task.id) from e
        if updated == 0:
            raise NotFoundError(f"Task with id '{task.id}' not found", details={"id": task.id})
        return task

    def get(self, task_id: str) -> Optional[Task]:
        row = self.conn.execute(f"SELECT {_TASK_COLUMNS} FROM tasks WHERE id = ?;", (task_id,)).fetchone()
        return Task.model_validate(dict(row)) if row else None

    def list_all(self) -> list[Task]:
        rows = self.conn.execute(f"SELECT {_TASK_COLUMNS} FROM tasks ORDER BY created_at DESC;").fetchall()
        return [Task.model_validate(dict(r)) for r in rows]

    def list_by_goal(self, goal_id: str) -> list[Task]:
        rows = self.conn.execute(
            f"SELECT {_TASK_COLUMNS} FROM tasks WHERE goal_id = ? ORDER BY created_at DESC;",
            (goal_id,),
        ).fetchall()
        return [Task.model_validate(dict(r)) for r in rows]

    def list_by_done(self, done: bool) -> list[Task]:
        rows = self.conn.execute(
            f"SELECT {_TASK_COLUMNS} FROM tasks WHERE done = ? ORDER BY created_at DESC;",
            (int(done),),
        ).fetchall()
        return [Task.model_validate(dict(r)) for r in rows]

    def list_subtasks(self, parent_task_id: str) -> list[Task]:
        rows = self.conn.execute(
            f"SELECT {_TASK_COLUMNS} FROM tasks WHERE parent_task_id = ? ORDER BY created_at ASC;",
            (parent_task_id,),
        ).fetchall()
        return [Task.model_validate(dict(r)) for r in rows]

    def toggle_done(self, task_id: str) -> bool:
        updated = self.conn.execute("UPDATE tasks SET done = NOT done WHERE id = ?;", (task_id,)).rowcount
        if updated == 0:
            raise NotFoundError(f"Task with id '{task_id}' not found", details={"id": task_id})
        row = self.conn.execute("SELECT done FROM tasks WHERE id = ?;", (task_id,)).fetchone()
        return bool(row["done"])

    def delete(self, task_id: str) -> bool:
        return self.conn.execute("DELETE FROM tasks WHERE id = ?;", (task_id,)).rowcount > 0

    def delete_all(self) -> int:
        return self.conn.execute("DELETE FROM tasks;").rowcount

    # Helpers for the integrity coordinator

    def ids_by_goal(self, goal_id: str) -> list[str]:
        rows = self.conn.execute("SELECT id FROM tasks WHERE goal_id = ?;", (goal_id,)).fetchall()
        return [r["id"] for r in rows]

    def child_ids(self, parent_ids: Sequence[str]) -> list[str]:
        if not parent_ids:
            return []
        rows = self.conn.execute(
            f"SELECT id FROM tasks WHERE parent_task_id IN ({_placeholders(parent_ids)});",
            tuple(parent_ids),
        ).fetchall()
        return [r["id"] for r in rows]

    def delete_many(self, task_ids: Sequence[str]) -> int:
        if not task_ids:
            return 0
        return self.conn.execute(
            f"DELETE FROM tasks WHERE id IN ({_placeholders(task_ids)});",
            tuple(task_ids),
        ).rowcount

    def clear_goal(self, goal_id: str, updated_at: str) -> int:
        return self.conn.execute(
            "UPDATE tasks SET goal_id = NULL, updated_at = ? WHERE goal_id = ?;",
            (updated_at, goal_id),
        ).rowcount


# -------------------------
# Habits
# -------------------------


def _habit_from_row(row: sqlite3.Row) -> Habit:
    try:
        frequency_value = json.loads(row["frequency_value"])
    except ValueError:
        frequency_value = None
    try:
        linked_goals = json.loads(row["linked_goals"])
    except ValueError:
        linked_goals = []

    return Habit(
        id=row["id"],
        name=row["name"],
        category=row["category"],
        icon=row["icon"],
        color=row["color"],
        target_amount=row["target_amount"],
        unit=row["unit"],
        frequency={"type": row["frequency_type"], "value": frequency_value},
        priority=row["priority"],
        notes=row["notes"],
        linked_goals=linked_goals if isinstance(linked_goals, list) else [],
        start_date=row["start_date"],
        reminder={"enabled": bool(row["reminder_enabled"]), "time": row["reminder_time"]},
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


@dataclass
class HabitRepo:
    """
    linked_goals is stored as an opaque JSON list; the store does not know it
    references goals, so nothing here keeps it consistent on goal deletion.
    """
    conn: sqlite3.Connection

    def create(self, habit: Habit) -> Habit:
        try:
            self.conn.execute(
                f"""
                INSERT INTO habits ({_HABIT_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    habit.id,
                    habit.name,
                    habit.category,
                    habit.icon,
                    habit.color,
                    habit.target_amount,
                    habit.unit,
                    habit.frequency.type,
                    json.dumps(habit.frequency.value),
                    habit.priority,
                    habit.notes,
                    json.dumps(habit.linked_goals),
                    habit.start_date,
                    int(habit.reminder.enabled),
                    habit.reminder.time,
                    habit.created_at,
                    habit.updated_at,
                ),
            )
        except sqlite3.IntegrityError as e:
            raise _constraint_error(e, "habit", habit.id) from e
        return habit

    def update(self, habit: Habit) -> Habit:
        updated = self.conn.execute(
            """
            UPDATE habits
            SET name = ?, category = ?, icon = ?, color = ?,
                target_amount = ?, unit = ?, frequency_type = ?, frequency_value = ?,
                priority = ?, notes = ?, linked_goals = ?, start_date = ?,
                reminder_enabled = ?, reminder_time = ?, updated_at = ?
            WHERE id = ?;
            """,
            (
                habit.name,
                habit.category,
                habit.icon,
                habit.color,
                habit.target_amount,
                habit.unit,
                habit.frequency.type,
                json.dumps(habit.frequency.value),
                habit.priority,
                habit.notes,
                json.dumps(habit.linked_goals),
                habit.start_date,
                int(habit.reminder.enabled),
                habit.reminder.time,
                habit.updated_at,
                habit.id,
            ),
        ).rowcount
        if updated == 0:
            raise NotFoundError(f"Habit with id '{habit.id}' not found", details={"id": habit.id})
        return habit

    def get(self, habit_id: str) -> Optional[Habit]:
        row = self.conn.execute(f"SELECT {_HABIT_COLUMNS} FROM habits WHERE id = ?;", (habit_id,)).fetchone()
        return _habit_from_row(row) if row else None

    def exists(self, habit_id: str) -> bool:
        return self.conn.execute("SELECT 1 FROM habits WHERE id = ?;", (habit_id,)).fetchone() is not None

    def list_all(self) -> list[Habit]:
        rows = self.conn.execute(f"SELECT {_HABIT_COLUMNS} FROM habits ORDER BY created_at DESC;").fetchall()
        return [_habit_from_row(r) for r in rows]

    def list_by_category(self, category: str) -> list[Habit]:
        rows = self.conn.execute(
            f"SELECT {_HABIT_COLUMNS} FROM habits WHERE category = ? ORDER BY created_at DESC;",
            (category,),
        ).fetchall()
        return [_habit_from_row(r) for r in rows]

    def delete(self, habit_id: str) -> bool:
        return self.conn.execute("DELETE FROM habits WHERE id = ?;", (habit_id,)).rowcount > 0

    def delete_all(self) -> int:
        return self.conn.execute("DELETE FROM habits;").rowcount

    # Helpers for the integrity coordinator

    def raw_linked_goals(self) -> list[tuple[str, str]]:
        rows = self.conn.execute("SELECT id, linked_goals FROM habits;").fetchall()
        return [(r["id"], r["linked_goals"]) for r in rows]

    def set_linked_goals(self, habit_id: str, goal_ids: Iterable[str], updated_at: str) -> None:
        self.conn.execute(
            "UPDATE habits SET linked_goals = ?, updated_at = ? WHERE id = ?;",
            (json.dumps(list(goal_ids)), updated_at, habit_id),
        )


# -------------------------
# Habit completions
# -------------------------


def _completion_params(c: HabitCompletion) -> tuple:
    return (
        c.id,
        c.habit_id,
        c.date,
        int(c.completed),
        c.actual_amount,
        c.target_amount,
        c.completed_at,
        c.note,
        c.mood,
        c.difficulty,
        int(c.skipped),
        c.created_at,
        c.updated_at,
    )


@dataclass
class HabitCompletionRepo:
    """At most one completion per (habit_id, date); the store enforces it."""
    conn: sqlite3.Connection

    def insert(self, completion: HabitCompletion) -> HabitCompletion:
        """Plain insert: a second record for the same habit and date is a constraint violation."""
        try:
            self.conn.execute(
                f"""
                INSERT INTO habit_completions ({_COMPLETION_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                """,
                _completion_params(completion),
            )
        except sqlite3.IntegrityError as e:
            raise _constraint_error(e, "habit completion", completion.id) from e
        return completion

    def upsert(self, completion: HabitCompletion) -> HabitCompletion:
        """
        Records the completion for (habit_id, date), overwriting the values of
        an existing record for that day. The existing record keeps its id.
        """
        try:
            rows = self.conn.execute(
                f"""
                INSERT INTO habit_completions ({_COMPLETION_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(habit_id, date) DO UPDATE SET
                  completed = excluded.completed,
                  actual_amount = excluded.actual_amount,
                  target_amount = excluded.target_amount,
                  completed_at = excluded.completed_at,
                  note = excluded.note,
                  mood = excluded.mood,
                  difficulty = excluded.difficulty,
                  skipped = excluded.skipped,
                  updated_at = excluded.updated_at
                RETURNING {_COMPLETION_COLUMNS};
                """,
                _completion_params(completion),
            ).fetchall()
        except sqlite3.IntegrityError as e:
            raise _constraint_error(e, "habit completion", completion.id) from e
        return HabitCompletion.model_validate(dict(rows[0]))

    def update(self, completion: HabitCompletion) -> HabitCompletion:
        updated = self.conn.execute(
            """
            UPDATE habit_completions
            SET completed = ?, actual_amount = ?, target_amount = ?,
                completed_at = ?, note = ?, mood = ?, difficulty = ?,
                skipped = ?, updated_at = ?
            WHERE id = ?;
            """,
            (
                int(completion.completed),
                completion.actual_amount,
                completion.target_amount,
                completion.completed_at,
                completion.note,
                completion.mood,
                completion.difficulty,
                int(completion.skipped),
                completion.updated_at,
                completion.id,
            ),
        ).rowcount
        if updated == 0:
            raise NotFoundError(
                f"Habit completion with id '{completion.id}' not found",
                details={"id": completion.id},
            )
        return completion

    def delete(self, completion_id: str) -> bool:
        return self.conn.execute("DELETE FROM habit_completions WHERE id = ?;", (completion_id,)).rowcount > 0

    def delete_for_habit(self, habit_id: str) -> int:
        return self.conn.execute("DELETE FROM habit_completions WHERE habit_id = ?;", (habit_id,)).rowcount

    def delete_all(self) -> int:
        return self.conn.execute("DELETE FROM habit_completions;").rowcount

    def get_by_date(self, habit_id: str, date: str) -> Optional[HabitCompletion]:
        row = self.conn.execute(
            f"SELECT {_COMPLETION_COLUMNS} FROM habit_completions WHERE habit_id = ? AND date = ?;",
            (habit_id, date),
        ).fetchone()
        return HabitCompletion.model_validate(dict(row)) if row else None

    def list_all(self) -> list[HabitCompletion]:
        rows = self.conn.execute(
            f"SELECT {_COMPLETION_COLUMNS} FROM habit_completions ORDER BY habit_id ASC, date ASC;"
        ).fetchall()
        return [HabitCompletion.model_validate(dict(r)) for r in rows]

    def list_for_habit(
        self,
        habit_id: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[HabitCompletion]:
        """Newest first, optionally bounded by an inclusive date range. limit is capped at 1000."""
        clauses = ["habit_id = ?"]
        params: list[Any] = [habit_id]
        if start_date is not None:
            clauses.append("date >= ?")
            params.append(start_date)
        if end_date is not None:
            clauses.append("date <= ?")
            params.append(end_date)

        query = (
            f"SELECT {_COMPLETION_COLUMNS} FROM habit_completions "
            f"WHERE {' AND '.join(clauses)} ORDER BY date DESC"
        )
        if limit is not None:
            query += " LIMIT ?"
            params.append(max(0, min(limit, MAX_COMPLETIONS_PAGE)))

        rows = self.conn.execute(query + ";", tuple(params)).fetchall()
        return [HabitCompletion.model_validate(dict(r)) for r in rows]

    def history(self, habit_id: str) -> list[tuple[str, bool]]:
        """(date, completed) pairs for the whole history, newest first."""
        rows = self.conn.execute(
            "SELECT date, completed FROM habit_completions WHERE habit_id = ? ORDER BY date DESC;",
            (habit_id,),
        ).fetchall()
        return [(r["date"], bool(r["completed"])) for r in rows]


# -------------------------
# Settings (singleton row id = 1)
# -------------------------


@dataclass
class SettingsRepo:
    conn: sqlite3.Connection

    def load(self) -> Optional[AppSettings]:
        """Returns None until settings are saved for the first time."""
        row = self.conn.execute("SELECT data FROM settings WHERE id = 1;").fetchone()
        if row is None:
            return None
        try:
            return AppSettings.model_validate_json(row["data"])
        except PydanticValidationError as e:
            raise MalformedInputError(
                f"Failed to deserialize settings: {e}",
                details={"errors": validation_details(e)},
            ) from e

    def require(self) -> AppSettings:
        settings = self.load()
        if settings is None:
            raise NotFoundError("Settings not initialized")
        return settings

    def save(self, settings: AppSettings) -> AppSettings:
        self.conn.execute(
            """
            INSERT INTO settings (id, data, updated_at)
            VALUES (1, ?, datetime('now'))
            ON CONFLICT(id) DO UPDATE SET
              data = excluded.data,
              updated_at = datetime('now');
            """,
            (settings.model_dump_json(by_alias=True),),
        )
        return settings

    def update_section(self, section: str, value: dict[str, Any]) -> AppSettings:
        """
        Replaces one section of the stored settings document. Requires settings
        to have been saved before.
        """
        section_model = SECTION_MODELS.get(section)
        if section_model is None:
            raise ValidationError(
                f"Unknown settings section: {section}",
                details={"section": section, "allowed": sorted(SECTION_MODELS)},
            )
        try:
            parsed = section_model.model_validate(value)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid {section} settings",
                details={"errors": validation_details(e)},
            ) from e

        try:
            begin_immediate(self.conn)
            current = self.require()
            updated = current.model_copy(update={section: parsed})
            self.save(updated)
            commit(self.conn)
        except Exception:
            rollback(self.conn)
            raise

        _LOG.info("Updated settings section %s", section)
        return updated
