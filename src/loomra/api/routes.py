# src/loomra/api/routes.py
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse, Response

from loomra.domain.errors import (
    ConstraintViolationError,
    LoomraError,
    MalformedInputError,
    NotFoundError,
    ResourceUnavailableError,
    TransactionError,
    ValidationError,
)
from loomra.domain.models import (
    AppSettings,
    DeleteResult,
    ErrorResponse,
    Goal,
    Habit,
    HabitCompletion,
    StreakSummary,
    Task,
)
from loomra.engine import BulkTransfer, IntegrityCoordinator, StreakEngine
from loomra.logging import get_logger
from loomra.storage import GoalRepo, HabitCompletionRepo, HabitRepo, SettingsRepo, TaskRepo

from .deps import (
    get_completion_repo,
    get_coordinator,
    get_goal_repo,
    get_habit_repo,
    get_settings_repo,
    get_streaks,
    get_task_repo,
    get_transfer,
)

_LOG = get_logger(__name__)
router = APIRouter()

_HTTP_STATUS: dict[type[LoomraError], int] = {
    NotFoundError: 404,
    ConstraintViolationError: 409,
    ValidationError: 400,
    MalformedInputError: 400,
    ResourceUnavailableError: 503,
    TransactionError: 500,
}


def _error_response(err: LoomraError) -> JSONResponse:
    http_status = _HTTP_STATUS.get(type(err), 400)
    if http_status >= 500:
        _LOG.error("%s: %s", err.code, err.message)
    payload = ErrorResponse(
        error=err.message,
        code=err.code,
        details=err.details or {},
    ).model_dump()
    return JSONResponse(status_code=http_status, content=payload)


def _check_path_id(path_id: str, body_id: str) -> None:
    if path_id != body_id:
        raise ValidationError(
            "Path id and body id differ",
            details={"path_id": path_id, "body_id": body_id},
        )


@router.get("/healthz")
def healthz() -> dict:
    return {"ok": True}


# -------------------------
# Goals
# -------------------------


@router.post("/goals", response_model=Goal, status_code=201)
def create_goal(goal: Goal, repo: GoalRepo = Depends(get_goal_repo)):
    try:
        return repo.create(goal)
    except LoomraError as e:
        return _error_response(e)


@router.get("/goals", response_model=list[Goal])
def list_goals(
    status: Optional[str] = Query(default=None),
    repo: GoalRepo = Depends(get_goal_repo),
):
    return repo.list_by_status(status) if status is not None else repo.list_all()


@router.get("/goals/{goal_id}", response_model=Goal)
def get_goal(goal_id: str, repo: GoalRepo = Depends(get_goal_repo)):
    goal = repo.get(goal_id)
    if goal is None:
        return _error_response(NotFoundError(f"Goal with id '{goal_id}' not found", details={"id": goal_id}))
    return goal


@router.put("/goals/{goal_id}", response_model=Goal)
def update_goal(goal_id: str, goal: Goal, repo: GoalRepo = Depends(get_goal_repo)):
    try:
        _check_path_id(goal_id, goal.id)
        return repo.update(goal)
    except LoomraError as e:
        return _error_response(e)


@router.delete("/goals/{goal_id}", response_model=DeleteResult)
def delete_goal(
    goal_id: str,
    strategy: Optional[str] = Query(default=None, description="cascade | nullify (default)"),
    coordinator: IntegrityCoordinator = Depends(get_coordinator),
):
    """
    Deletes a goal. Habits always drop the goal from linked_goals; its tasks
    are deleted (cascade) or detached (nullify).
    """
    try:
        return DeleteResult(deleted=coordinator.delete_goal(goal_id, strategy))
    except LoomraError as e:
        return _error_response(e)


# -------------------------
# Tasks
# -------------------------


@router.post("/tasks", response_model=Task, status_code=201)
def create_task(task: Task, repo: TaskRepo = Depends(get_task_repo)):
    try:
        return repo.create(task)
    except LoomraError as e:
        return _error_response(e)


@router.get("/tasks", response_model=list[Task])
def list_tasks(
    goal_id: Optional[str] = Query(default=None),
    done: Optional[bool] = Query(default=None),
    repo: TaskRepo = Depends(get_task_repo),
):
    if goal_id is not None:
        tasks = repo.list_by_goal(goal_id)
        return [t for t in tasks if done is None or t.done == done]
    if done is not None:
        return repo.list_by_done(done)
    return repo.list_all()


@router.get("/tasks/{task_id}", response_model=Task)
def get_task(task_id: str, repo: TaskRepo = Depends(get_task_repo)):
    task = repo.get(task_id)
    if task is None:
        return _error_response(NotFoundError(f"Task with id '{task_id}' not found", details={"id": task_id}))
    return task


@router.get("/tasks/{task_id}/subtasks", response_model=list[Task])
def list_subtasks(task_id: str, repo: TaskRepo = Depends(get_task_repo)):
    return repo.list_subtasks(task_id)


@router.put("/tasks/{task_id}", response_model=Task)
def update_task(task_id: str, task: Task, repo: TaskRepo = Depends(get_task_repo)):
    try:
        _check_path_id(task_id, task.id)
        return repo.update(task)
    except LoomraError as e:
        return _error_response(e)


@router.post("/tasks/{task_id}/toggle")
def toggle_task(task_id: str, repo: TaskRepo = Depends(get_task_repo)):
    try:
        return {"id": task_id, "done": repo.toggle_done(task_id)}
    except LoomraError as e:
        return _error_response(e)


@router.delete("/tasks/{task_id}", response_model=DeleteResult)
def delete_task(task_id: str, repo: TaskRepo = Depends(get_task_repo)):
    return DeleteResult(deleted=repo.delete(task_id))


# -------------------------
# Habits & completions
# -------------------------


@router.post("/habits", response_model=Habit, status_code=201)
def create_habit(habit: Habit, repo: HabitRepo = Depends(get_habit_repo)):
    try:
        return repo.create(habit)
    except LoomraError as e:
        return _error_response(e)


@router.get("/habits", response_model=list[Habit])
def list_habits(
    category: Optional[str] = Query(default=None),
    repo: HabitRepo = Depends(get_habit_repo),
):
    return repo.list_by_category(category) if category is not None else repo.list_all()


@router.get("/habits/{habit_id}", response_model=Habit)
def get_habit(habit_id: str, repo: HabitRepo = Depends(get_habit_repo)):
    habit = repo.get(habit_id)
    if habit is None:
        return _error_response(NotFoundError(f"Habit with id '{habit_id}' not found", details={"id": habit_id}))
    return habit


@router.put("/habits/{habit_id}", response_model=Habit)
def update_habit(habit_id: str, habit: Habit, repo: HabitRepo = Depends(get_habit_repo)):
    try:
        _check_path_id(habit_id, habit.id)
        return repo.update(habit)
    except LoomraError as e:
        return _error_response(e)


@router.delete("/habits/{habit_id}", response_model=DeleteResult)
def delete_habit(habit_id: str, coordinator: IntegrityCoordinator = Depends(get_coordinator)):
    try:
        return DeleteResult(deleted=coordinator.delete_habit(habit_id))
    except LoomraError as e:
        return _error_response(e)


@router.get("/habits/{habit_id}/streak", response_model=StreakSummary)
def get_streak(habit_id: str, streaks: StreakEngine = Depends(get_streaks)):
    try:
        return streaks.summary(habit_id)
    except LoomraError as e:
        return _error_response(e)


@router.put("/habits/{habit_id}/completions", response_model=HabitCompletion)
def record_completion(
    habit_id: str,
    completion: HabitCompletion,
    habits: HabitRepo = Depends(get_habit_repo),
    repo: HabitCompletionRepo = Depends(get_completion_repo),
):
    """Creates the completion for its date, or overwrites the one already recorded that day."""
    try:
        _check_path_id(habit_id, completion.habit_id)
        if not habits.exists(habit_id):
            raise NotFoundError(f"Habit with id '{habit_id}' not found", details={"id": habit_id})
        return repo.upsert(completion)
    except LoomraError as e:
        return _error_response(e)


@router.get("/habits/{habit_id}/completions", response_model=list[HabitCompletion])
def list_completions(
    habit_id: str,
    start_date: Optional[str] = Query(default=None),
    end_date: Optional[str] = Query(default=None),
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    repo: HabitCompletionRepo = Depends(get_completion_repo),
):
    return repo.list_for_habit(habit_id, start_date=start_date, end_date=end_date, limit=limit)


@router.get("/habits/{habit_id}/completions/{date}", response_model=HabitCompletion)
def get_completion(habit_id: str, date: str, repo: HabitCompletionRepo = Depends(get_completion_repo)):
    completion = repo.get_by_date(habit_id, date)
    if completion is None:
        return _error_response(
            NotFoundError(
                f"No completion for habit '{habit_id}' on {date}",
                details={"habit_id": habit_id, "date": date},
            )
        )
    return completion


@router.delete("/completions/{completion_id}", response_model=DeleteResult)
def delete_completion(completion_id: str, repo: HabitCompletionRepo = Depends(get_completion_repo)):
    return DeleteResult(deleted=repo.delete(completion_id))


# -------------------------
# Settings
# -------------------------


@router.get("/settings", response_model=Optional[AppSettings])
def get_app_settings(repo: SettingsRepo = Depends(get_settings_repo)):
    """null until settings are saved for the first time."""
    try:
        return repo.load()
    except LoomraError as e:
        return _error_response(e)


@router.put("/settings", response_model=AppSettings)
def save_app_settings(settings: AppSettings, repo: SettingsRepo = Depends(get_settings_repo)):
    return repo.save(settings)


@router.patch("/settings/{section}", response_model=AppSettings)
def update_settings_section(
    section: str,
    value: dict[str, Any] = Body(...),
    repo: SettingsRepo = Depends(get_settings_repo),
):
    try:
        return repo.update_section(section, value)
    except LoomraError as e:
        return _error_response(e)


@router.get("/settings/export")
def export_settings(transfer: BulkTransfer = Depends(get_transfer)):
    try:
        return Response(content=transfer.export_settings(), media_type="application/json")
    except LoomraError as e:
        return _error_response(e)


@router.post("/settings/import", response_model=AppSettings)
def import_settings(
    document: dict[str, Any] = Body(...),
    transfer: BulkTransfer = Depends(get_transfer),
):
    try:
        return transfer.import_settings(document)
    except LoomraError as e:
        return _error_response(e)


# -------------------------
# Whole-database transfer
# -------------------------


@router.get("/export")
def export_all(transfer: BulkTransfer = Depends(get_transfer)):
    try:
        return Response(content=transfer.export_all(), media_type="application/json")
    except LoomraError as e:
        return _error_response(e)


@router.post("/import")
def import_all(
    document: dict[str, Any] = Body(...),
    transfer: BulkTransfer = Depends(get_transfer),
):
    """Replaces everything with the document. All or nothing."""
    try:
        summary = transfer.import_all(document)
    except LoomraError as e:
        return _error_response(e)
    return {**summary.to_wire(), "message": summary.message}
