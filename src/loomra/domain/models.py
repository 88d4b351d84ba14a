from __future__ import annotations

import json
from datetime import date
from typing import Annotated, Any, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from .states import SettingsSection


EntityId = Annotated[str, Field(min_length=1, max_length=256)]


def _calendar_date(value: str) -> str:
    # The pattern alone admits days like 2024-02-30.
    date.fromisoformat(value)
    return value


IsoDate = Annotated[str, Field(pattern=r"^\d{4}-\d{2}-\d{2}$"), AfterValidator(_calendar_date)]


def validation_details(err: PydanticValidationError) -> list[dict[str, Any]]:
    """JSON-safe view of a pydantic error list, for error details."""
    return [
        {"loc": [str(p) for p in e["loc"]], "msg": e["msg"], "type": e["type"]}
        for e in err.errors()
    ]


class _Model(BaseModel):
    """
    Wire models speak camelCase; snake_case field names are accepted on input
    as well, which is what older export files use.
    """
    model_config = ConfigDict(
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# -------------------------
# Entities
# -------------------------


class Goal(_Model):
    id: EntityId
    title: Annotated[str, Field(min_length=1)]
    description: str = ""
    notes: str = ""
    category: str
    priority: str
    status: str
    color: str
    icon: str
    deadline: Optional[str] = None
    created_at: str
    updated_at: str


class Task(_Model):
    """
    A task optionally belongs to a goal and optionally sits under a parent task.
    updated_at falls back to created_at when a client (or an old export) omits it.
    """
    id: EntityId
    title: Annotated[str, Field(min_length=1)]
    done: bool = False
    goal_id: Optional[EntityId] = None
    parent_task_id: Optional[EntityId] = None
    due_date: Optional[str] = None
    priority: str = "medium"
    created_at: str
    updated_at: Optional[str] = None

    @model_validator(mode="after")
    def _validate_tree(self):
        if self.parent_task_id is not None and self.parent_task_id == self.id:
            raise ValueError("task cannot be its own parent")
        if self.updated_at is None:
            self.updated_at = self.created_at
        return self


class Frequency(_Model):
    type: str
    value: Any = None


class Reminder(_Model):
    enabled: bool = False
    time: str = "09:00"


class Habit(_Model):
    id: EntityId
    name: Annotated[str, Field(min_length=1)]
    category: str
    icon: str
    color: str
    target_amount: float = 1.0
    unit: str = "times"
    frequency: Frequency
    priority: str = "medium"
    notes: str = ""
    linked_goals: list[EntityId] = Field(default_factory=list)
    start_date: str
    reminder: Reminder = Field(default_factory=Reminder)
    created_at: str
    updated_at: str

    @model_validator(mode="before")
    @classmethod
    def _accept_flat_columns(cls, data: Any) -> Any:
        """
        Accepts the column-shaped habit records of older exports:
        frequency_type/frequency_value, reminder_enabled/reminder_time and
        linked_goals as a JSON string.
        """
        if not isinstance(data, dict):
            return data
        data = dict(data)

        if "frequency" not in data and "frequency_type" in data:
            raw_value = data.pop("frequency_value", None)
            if isinstance(raw_value, str):
                try:
                    raw_value = json.loads(raw_value)
                except ValueError:
                    raw_value = None
            data["frequency"] = {"type": data.pop("frequency_type"), "value": raw_value}

        if "reminder" not in data and ("reminder_enabled" in data or "reminder_time" in data):
            reminder: dict[str, Any] = {}
            if "reminder_enabled" in data:
                reminder["enabled"] = data.pop("reminder_enabled")
            if "reminder_time" in data:
                reminder["time"] = data.pop("reminder_time")
            data["reminder"] = reminder

        for key in ("linked_goals", "linkedGoals"):
            if isinstance(data.get(key), str):
                try:
                    data[key] = json.loads(data[key])
                except ValueError as e:
                    raise ValueError(f"{key} is not a JSON list") from e
        return data


class HabitCompletion(_Model):
    id: EntityId
    habit_id: EntityId
    date: IsoDate
    completed: bool = False
    actual_amount: float = 0.0
    target_amount: float = 1.0
    completed_at: Optional[str] = None
    note: str = ""
    mood: Optional[str] = None
    difficulty: Optional[str] = None
    skipped: bool = False
    created_at: str
    updated_at: str


# -------------------------
# Settings document
# -------------------------


class AppearanceSettings(_Model):
    theme: str
    week_starts_on: str
    timezone: str


class HabitSettings(_Model):
    default_reminder: bool
    default_reminder_time: str
    default_priority: str


class GoalSettings(_Model):
    deadline_warning_days: Annotated[int, Field(ge=0)]
    default_category: str
    show_progress_percentage: bool


class NotificationSettings(_Model):
    habit_reminders: bool
    goal_deadlines: bool
    streak_milestones: bool
    daily_summary: bool
    weekly_summary: bool
    motivational_quotes: bool


class DataSettings(_Model):
    auto_backup: bool
    backup_frequency: str


class AppSettings(_Model):
    appearance: AppearanceSettings
    habits: HabitSettings
    goals: GoalSettings
    notifications: NotificationSettings
    data: DataSettings


SECTION_MODELS: dict[str, type[_Model]] = {
    SettingsSection.APPEARANCE: AppearanceSettings,
    SettingsSection.HABITS: HabitSettings,
    SettingsSection.GOALS: GoalSettings,
    SettingsSection.NOTIFICATIONS: NotificationSettings,
    SettingsSection.DATA: DataSettings,
}


# -------------------------
# Export / import
# -------------------------


class ExportMetadata(_Model):
    export_date: str
    version: str
    total_records: Annotated[int, Field(ge=0)]


class ExportDocument(_Model):
    """Complete snapshot of the data set: settings plus every entity table."""
    model_config = ConfigDict(extra="ignore")

    settings: AppSettings
    goals: list[Goal]
    tasks: list[Task]
    habits: list[Habit]
    habit_completions: list[HabitCompletion]
    export_metadata: ExportMetadata

    @property
    def entity_count(self) -> int:
        return len(self.goals) + len(self.tasks) + len(self.habits) + len(self.habit_completions)


class ImportSummary(_Model):
    goals: int
    tasks: int
    habits: int
    habit_completions: int

    @property
    def message(self) -> str:
        return (
            f"Successfully imported {self.goals} goals, {self.tasks} tasks, "
            f"{self.habits} habits, and {self.habit_completions} habit completions"
        )


class StreakSummary(_Model):
    habit_id: str
    current: int
    best: int
    completed_count: int


class DeleteResult(_Model):
    deleted: bool


class ErrorResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    error: str
    code: str
    details: dict = Field(default_factory=dict)
