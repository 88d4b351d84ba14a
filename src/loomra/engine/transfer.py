# src/loomra/engine/transfer.py
from __future__ import annotations

import json
from collections import defaultdict, deque
from typing import Any, Union

from pydantic import ValidationError as PydanticValidationError

from loomra.domain.errors import MalformedInputError
from loomra.domain.models import (
    AppSettings,
    ExportDocument,
    ExportMetadata,
    Habit,
    ImportSummary,
    Task,
    validation_details,
)
from loomra.logging import get_logger
from loomra.storage import (
    GoalRepo,
    HabitCompletionRepo,
    HabitRepo,
    SettingsRepo,
    SQLiteDB,
    TaskRepo,
)
from loomra.storage.db import begin_deferred, begin_immediate, commit, rollback, transaction_step

from .integrity import now_iso

_LOG = get_logger(__name__)

FORMAT_VERSION = "1.0.0"

Document = Union[str, bytes, dict[str, Any], ExportDocument]


def parse_document(document: Document) -> ExportDocument:
    """
    Parses and validates an export document without touching the store.

    Accepts JSON text, an already-decoded mapping, or a parsed document.
    Raises MalformedInputError for unparseable input, missing sections and
    unsupported format versions.
    """
    if isinstance(document, ExportDocument):
        doc = document
    else:
        try:
            if isinstance(document, (str, bytes)):
                doc = ExportDocument.model_validate_json(document)
            elif isinstance(document, dict):
                doc = ExportDocument.model_validate(document)
            else:
                raise MalformedInputError(
                    f"Unsupported import payload type: {type(document).__name__}",
                )
        except PydanticValidationError as e:
            raise MalformedInputError(
                f"Failed to parse import data: {e.error_count()} problem(s) found",
                details={"errors": validation_details(e)},
            ) from e

    _check_version(doc.export_metadata.version)
    return doc


def _check_version(version: str) -> None:
    major = version.split(".", 1)[0].strip()
    if major != FORMAT_VERSION.split(".", 1)[0]:
        raise MalformedInputError(
            f"Unsupported export format version: {version}",
            details={"version": version, "supported": FORMAT_VERSION},
        )


def order_tasks(tasks: list[Task]) -> list[Task]:
    """
    Orders tasks so every parent precedes its subtasks (Kahn's algorithm over
    parent_task_id edges). Raises MalformedInputError when a parent is not
    part of the document or the parent links form a cycle.
    """
    by_id = {t.id: t for t in tasks}
    if len(by_id) != len(tasks):
        raise MalformedInputError("Import data contains duplicate task ids")

    missing = sorted({t.parent_task_id for t in tasks if t.parent_task_id and t.parent_task_id not in by_id})
    if missing:
        raise MalformedInputError(
            "One or more tasks reference a parent task that is not in the import data",
            details={"missing": missing},
        )

    children: dict[str, list[str]] = defaultdict(list)
    indegree: dict[str, int] = {t.id: 0 for t in tasks}
    for t in tasks:
        if t.parent_task_id:
            children[t.parent_task_id].append(t.id)
            indegree[t.id] += 1

    q = deque([t.id for t in tasks if indegree[t.id] == 0])
    ordered: list[Task] = []
    while q:
        node = q.popleft()
        ordered.append(by_id[node])
        for child in children.get(node, []):
            indegree[child] -= 1
            if indegree[child] == 0:
                q.append(child)

    if len(ordered) != len(tasks):
        raise MalformedInputError(
            "Import data contains a parent task cycle",
            details={"task_ids": sorted(tid for tid, deg in indegree.items() if deg > 0)},
        )
    return ordered


def prune_goal_links(habits: list[Habit], goal_ids: set[str]) -> list[Habit]:
    """
    Drops linked_goals entries naming goals the document does not carry, so
    the replaced data set holds no dangling soft references.
    """
    pruned: list[Habit] = []
    for habit in habits:
        kept = [g for g in habit.linked_goals if g in goal_ids]
        if len(kept) != len(habit.linked_goals):
            _LOG.warning(
                "Habit %s links unknown goal(s) %s; dropping the link(s).",
                habit.id,
                sorted(set(habit.linked_goals) - goal_ids),
            )
            habit = habit.model_copy(update={"linked_goals": kept})
        pruned.append(habit)
    return pruned


class BulkTransfer:
    """
    Whole-database export and import.

    Export reads every table inside one read transaction, so the document is
    a consistent snapshot. Import replaces every table inside one write
    transaction: either the whole document lands or nothing changes.
    """

    def __init__(self, db: SQLiteDB) -> None:
        self._db = db

    # -------------------------
    # Export
    # -------------------------

    def snapshot(self) -> ExportDocument:
        """Reads settings and all entities. Fails with NotFoundError before the first settings save."""
        conn = self._db.connect()
        try:
            begin_deferred(conn)
            try:
                settings = SettingsRepo(conn).require()
                with transaction_step("read_goals"):
                    goals = GoalRepo(conn).list_all()
                with transaction_step("read_tasks"):
                    tasks = TaskRepo(conn).list_all()
                with transaction_step("read_habits"):
                    habits = HabitRepo(conn).list_all()
                with transaction_step("read_habit_completions"):
                    completions = HabitCompletionRepo(conn).list_all()
                commit(conn)
            except Exception:
                rollback(conn)
                raise
        finally:
            conn.close()

        return ExportDocument(
            settings=settings,
            goals=goals,
            tasks=tasks,
            habits=habits,
            habit_completions=completions,
            export_metadata=ExportMetadata(
                export_date=now_iso(),
                version=FORMAT_VERSION,
                total_records=len(goals) + len(tasks) + len(habits) + len(completions),
            ),
        )

    def export_all(self) -> str:
        doc = self.snapshot()
        _LOG.info("Exported %d record(s).", doc.export_metadata.total_records)
        return json.dumps(doc.to_wire(), indent=2, ensure_ascii=False)

    # -------------------------
    # Import
    # -------------------------

    def import_all(self, document: Document) -> ImportSummary:
        """
        Replaces the entire data set with the document's contents.

        Validation happens before the transaction starts. Inside it, children
        are cleared before parents and parents are inserted before children,
        so foreign keys hold at every statement.
        """
        doc = parse_document(document)
        tasks = order_tasks(doc.tasks)
        habits = prune_goal_links(doc.habits, {g.id for g in doc.goals})

        if doc.export_metadata.total_records != doc.entity_count:
            _LOG.warning(
                "Import metadata claims %d record(s) but the document holds %d.",
                doc.export_metadata.total_records,
                doc.entity_count,
            )

        conn = self._db.connect()
        try:
            begin_immediate(conn)
            try:
                goal_repo = GoalRepo(conn)
                task_repo = TaskRepo(conn)
                habit_repo = HabitRepo(conn)
                completion_repo = HabitCompletionRepo(conn)

                with transaction_step("clear_tasks"):
                    task_repo.delete_all()
                with transaction_step("clear_goals"):
                    goal_repo.delete_all()
                with transaction_step("clear_habit_completions"):
                    completion_repo.delete_all()
                with transaction_step("clear_habits"):
                    habit_repo.delete_all()

                with transaction_step("insert_goals"):
                    for goal in doc.goals:
                        goal_repo.create(goal)
                with transaction_step("insert_tasks"):
                    for task in tasks:
                        task_repo.create(task)
                with transaction_step("insert_habits"):
                    for habit in habits:
                        habit_repo.create(habit)
                with transaction_step("insert_habit_completions"):
                    for completion in doc.habit_completions:
                        completion_repo.insert(completion)
                with transaction_step("save_settings"):
                    SettingsRepo(conn).save(doc.settings)

                with transaction_step("commit"):
                    commit(conn)
            except Exception:
                rollback(conn)
                _LOG.warning("Import failed; previous data left intact.")
                raise
        finally:
            conn.close()

        summary = ImportSummary(
            goals=len(doc.goals),
            tasks=len(doc.tasks),
            habits=len(doc.habits),
            habit_completions=len(doc.habit_completions),
        )
        _LOG.info(summary.message)
        return summary

    # -------------------------
    # Settings only
    # -------------------------

    def export_settings(self) -> str:
        conn = self._db.connect()
        try:
            settings = SettingsRepo(conn).require()
        finally:
            conn.close()
        return json.dumps(settings.to_wire(), indent=2, ensure_ascii=False)

    def import_settings(self, document: Union[str, bytes, dict[str, Any]]) -> AppSettings:
        try:
            if isinstance(document, (str, bytes)):
                settings = AppSettings.model_validate_json(document)
            else:
                settings = AppSettings.model_validate(document)
        except PydanticValidationError as e:
            raise MalformedInputError(
                "Failed to parse settings",
                details={"errors": validation_details(e)},
            ) from e

        conn = self._db.connect()
        try:
            SettingsRepo(conn).save(settings)
        finally:
            conn.close()
        _LOG.info("Imported settings.")
        return settings
