"""
Domain layer for Loomra.

- states: DeleteStrategy and settings section enums
- models: Pydantic models for entities, settings and the export document
- errors: domain-level exceptions
"""

from .states import DeleteStrategy, SettingsSection
from .models import (
    AppSettings,
    DeleteResult,
    ErrorResponse,
    ExportDocument,
    ExportMetadata,
    Goal,
    Habit,
    HabitCompletion,
    ImportSummary,
    StreakSummary,
    Task,
)
from .errors import (
    LoomraError,
    ValidationError,
    NotFoundError,
    ConstraintViolationError,
    TransactionError,
    MalformedInputError,
    ResourceUnavailableError,
)

__all__ = [
    "DeleteStrategy",
    "SettingsSection",
    "AppSettings",
    "DeleteResult",
    "ErrorResponse",
    "ExportDocument",
    "ExportMetadata",
    "Goal",
    "Habit",
    "HabitCompletion",
    "ImportSummary",
    "StreakSummary",
    "Task",
    "LoomraError",
    "ValidationError",
    "NotFoundError",
    "ConstraintViolationError",
    "TransactionError",
    "MalformedInputError",
    "ResourceUnavailableError",
]
