# src/loomra/engine/streaks.py
from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable, Optional, Sequence

from loomra.domain.errors import NotFoundError
from loomra.domain.models import StreakSummary
from loomra.storage import HabitCompletionRepo, HabitRepo, SQLiteDB

_ONE_DAY = timedelta(days=1)

History = Sequence[tuple[str, bool]]


def _day(raw: str) -> date:
    return date.fromisoformat(raw[:10])


def current_streak(history: Iterable[tuple[str, bool]]) -> int:
    """
    Folds a completion history, newest first, into the current streak.

    Counts completed entries, each exactly one calendar day before the last
    counted one. Stops at the first entry that is not completed or that leaves
    a gap. The newest entry does not have to be today.
    """
    streak = 0
    last: Optional[date] = None
    for raw, completed in history:
        if not completed:
            break
        day = _day(raw)
        if last is not None and day != last - _ONE_DAY:
            break
        streak += 1
        last = day
    return streak


def best_streak(history: Iterable[tuple[str, bool]]) -> int:
    """Longest run anywhere in the history, under the same rule as current_streak."""
    best = 0
    run = 0
    prev: Optional[date] = None
    for raw, completed in sorted(history, key=lambda item: item[0]):
        if not completed:
            run = 0
            prev = None
            continue
        day = _day(raw)
        run = run + 1 if prev is not None and day == prev + _ONE_DAY else 1
        prev = day
        best = max(best, run)
    return best


class StreakEngine:
    """Read-only statistics over a habit's completion history."""

    def __init__(self, db: SQLiteDB) -> None:
        self._db = db

    def compute_streak(self, habit_id: str) -> int:
        return current_streak(self._history(habit_id))

    def best_streak(self, habit_id: str) -> int:
        return best_streak(self._history(habit_id))

    def summary(self, habit_id: str) -> StreakSummary:
        conn = self._db.connect()
        try:
            if not HabitRepo(conn).exists(habit_id):
                raise NotFoundError(f"Habit with id '{habit_id}' not found", details={"id": habit_id})
            history = HabitCompletionRepo(conn).history(habit_id)
        finally:
            conn.close()

        return StreakSummary(
            habit_id=habit_id,
            current=current_streak(history),
            best=best_streak(history),
            completed_count=sum(1 for _, completed in history if completed),
        )

    def _history(self, habit_id: str) -> History:
        conn = self._db.connect()
        try:
            return HabitCompletionRepo(conn).history(habit_id)
        finally:
            conn.close()
