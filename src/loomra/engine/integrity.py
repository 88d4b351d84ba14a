# src/loomra/engine/integrity.py
from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Union

from loomra.domain.states import DeleteStrategy
from loomra.logging import get_logger
from loomra.storage import GoalRepo, HabitCompletionRepo, HabitRepo, SQLiteDB, TaskRepo
from loomra.storage.db import begin_immediate, commit, rollback, transaction_step

_LOG = get_logger(__name__)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class IntegrityCoordinator:
    """
    Deletes goals and habits together with everything that depends on them.

    Dependents come in two kinds:
    - hard references, enforced by SQLite foreign keys (tasks.goal_id,
      tasks.parent_task_id, habit_completions.habit_id)
    - soft references, invisible to SQLite (habits.linked_goals, a JSON list)

    Every deletion runs as one BEGIN IMMEDIATE transaction on its own
    connection. The first failing step rolls the whole deletion back and is
    reported as a TransactionError naming the step.
    """

    def __init__(self, db: SQLiteDB) -> None:
        self._db = db

    def delete_goal(
        self,
        goal_id: str,
        strategy: Union[DeleteStrategy, str, None] = None,
    ) -> bool:
        """
        Deletes a goal.

        1. unlinks the goal from every habit's linked_goals (always)
        2. deletes its tasks and their subtasks (CASCADE) or clears their
           goal_id (NULLIFY, the default for missing/unknown strategies)
        3. deletes the goal row

        Returns False, changing nothing, when the goal does not exist.
        """
        if not isinstance(strategy, DeleteStrategy):
            strategy = DeleteStrategy.parse(strategy)

        conn = self._db.connect()
        try:
            return self._delete_goal(conn, goal_id, strategy)
        finally:
            conn.close()

    def delete_habit(self, habit_id: str) -> bool:
        """
        Deletes a habit and all of its completions. Completions are removed
        explicitly, so the result holds even where ON DELETE CASCADE is off.
        """
        conn = self._db.connect()
        try:
            begin_immediate(conn)
            try:
                with transaction_step("delete_completions"):
                    removed = HabitCompletionRepo(conn).delete_for_habit(habit_id)
                with transaction_step("delete_habit"):
                    deleted = HabitRepo(conn).delete(habit_id)
                with transaction_step("commit"):
                    commit(conn)
            except Exception:
                rollback(conn)
                _LOG.warning("Deleting habit %s failed; rolled back.", habit_id)
                raise
        finally:
            conn.close()

        if deleted:
            _LOG.info("Deleted habit %s and %d completion(s).", habit_id, removed)
        return deleted

    # -------------------------
    # Helpers
    # -------------------------

    def _delete_goal(self, conn: sqlite3.Connection, goal_id: str, strategy: DeleteStrategy) -> bool:
        begin_immediate(conn)
        try:
            goals = GoalRepo(conn)
            with transaction_step("lookup_goal"):
                exists = goals.exists(goal_id)
            if not exists:
                commit(conn)
                return False

            stamp = now_iso()
            with transaction_step("unlink_habits"):
                unlinked = self._unlink_goal_from_habits(HabitRepo(conn), goal_id, stamp)

            tasks = TaskRepo(conn)
            if strategy is DeleteStrategy.CASCADE:
                with transaction_step("delete_tasks"):
                    affected = tasks.delete_many(self._task_tree_ids(tasks, goal_id))
            else:
                with transaction_step("nullify_tasks"):
                    affected = tasks.clear_goal(goal_id, stamp)

            with transaction_step("delete_goal"):
                deleted = goals.delete(goal_id)

            with transaction_step("commit"):
                commit(conn)
        except Exception:
            rollback(conn)
            _LOG.warning("Deleting goal %s failed; rolled back.", goal_id)
            raise

        _LOG.info(
            "Deleted goal %s (strategy=%s): unlinked from %d habit(s), %d task(s) %s.",
            goal_id,
            strategy.value,
            unlinked,
            affected,
            "deleted" if strategy is DeleteStrategy.CASCADE else "detached",
        )
        return deleted

    def _unlink_goal_from_habits(self, habits: HabitRepo, goal_id: str, stamp: str) -> int:
        """
        Full scan: linked_goals is opaque JSON, so there is no index to narrow
        the candidates. Habits whose list does not parse are left as they are.
        """
        changed = 0
        for habit_id, raw in habits.raw_linked_goals():
            try:
                linked = json.loads(raw)
            except ValueError:
                _LOG.warning("Habit %s has unreadable linked_goals; skipping.", habit_id)
                continue
            if not isinstance(linked, list) or goal_id not in linked:
                continue
            habits.set_linked_goals(habit_id, [g for g in linked if g != goal_id], stamp)
            changed += 1
        return changed

    def _task_tree_ids(self, tasks: TaskRepo, goal_id: str) -> list[str]:
        """
        The goal's tasks plus every descendant subtask, whichever goal the
        subtasks themselves point at. Breadth-first over parent_task_id.
        """
        seen: set[str] = set()
        ordered: list[str] = []
        frontier = tasks.ids_by_goal(goal_id)
        while frontier:
            fresh = [t for t in frontier if t not in seen]
            seen.update(fresh)
            ordered.extend(fresh)
            frontier = tasks.child_ids(fresh)
        return ordered
