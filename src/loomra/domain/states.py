# src/loomra/domain/states.py
from __future__ import annotations

from enum import StrEnum
from typing import Optional


class DeleteStrategy(StrEnum):
    """
    Disposition of a goal's tasks when the goal is deleted.

      - CASCADE: tasks (and their subtasks) are deleted with the goal
      - NULLIFY: tasks survive with goal_id cleared

    Habits that link the goal are always unlinked, whatever the strategy.
    """

    CASCADE = "cascade"
    NULLIFY = "nullify"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "DeleteStrategy":
        # Missing or unrecognized values fall back to NULLIFY.
        if raw is not None and raw.strip().lower() == cls.CASCADE.value:
            return cls.CASCADE
        return cls.NULLIFY


class SettingsSection(StrEnum):
    APPEARANCE = "appearance"
    HABITS = "habits"
    GOALS = "goals"
    NOTIFICATIONS = "notifications"
    DATA = "data"
