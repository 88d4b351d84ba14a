# tests/test_streaks.py
import pytest

from loomra.domain.errors import NotFoundError
from loomra.engine import StreakEngine
from loomra.engine.streaks import best_streak, current_streak
from loomra.storage import SQLiteDB


@pytest.mark.parametrize(
    "history, expected",
    [
        ([], 0),
        ([("2024-03-07", True)], 1),
        ([("2024-03-07", False)], 0),
        # newest first: Thu done, Wed missed, Tue and Mon done
        ([("2024-03-07", True), ("2024-03-06", False), ("2024-03-05", True), ("2024-03-04", True)], 1),
        ([("2024-03-07", True), ("2024-03-06", True), ("2024-03-05", True)], 3),
        # a missing day breaks the run even without an explicit miss
        ([("2024-03-07", True), ("2024-03-06", True), ("2024-03-04", True)], 2),
        ([("2024-03-07", False), ("2024-03-06", True), ("2024-03-05", True)], 0),
        # across a month boundary
        ([("2024-03-01", True), ("2024-02-29", True), ("2024-02-28", True)], 3),
    ],
)
def test_current_streak(history, expected):
    assert current_streak(history) == expected


def test_current_streak_does_not_require_today():
    history = [("2020-01-02", True), ("2020-01-01", True)]
    assert current_streak(history) == 2


@pytest.mark.parametrize(
    "history, expected",
    [
        ([], 0),
        ([("2024-03-01", False)], 0),
        ([("2024-03-01", True), ("2024-03-02", True), ("2024-03-04", True)], 2),
        (
            [
                ("2024-03-01", True),
                ("2024-03-02", True),
                ("2024-03-03", True),
                ("2024-03-04", False),
                ("2024-03-05", True),
            ],
            3,
        ),
        # order of the input does not matter
        ([("2024-03-03", True), ("2024-03-01", True), ("2024-03-02", True)], 3),
    ],
)
def test_best_streak(history, expected):
    assert best_streak(history) == expected


def test_compute_streak_reads_history_from_store(db: SQLiteDB, seed):
    seed.habit("h1")
    seed.completion("h1", "2024-03-04")
    seed.completion("h1", "2024-03-05")
    seed.completion("h1", "2024-03-06", completed=False)
    seed.completion("h1", "2024-03-07")

    engine = StreakEngine(db)
    assert engine.compute_streak("h1") == 1
    assert engine.best_streak("h1") == 2


def test_compute_streak_ignores_other_habits(db: SQLiteDB, seed):
    seed.habit("h1")
    seed.habit("h2")
    seed.completion("h1", "2024-03-06")
    seed.completion("h1", "2024-03-07")
    seed.completion("h2", "2024-03-08")

    assert StreakEngine(db).compute_streak("h1") == 2


def test_compute_streak_without_completions_is_zero(db: SQLiteDB, seed):
    seed.habit("h1")
    assert StreakEngine(db).compute_streak("h1") == 0
    # unknown habits have no history either
    assert StreakEngine(db).compute_streak("ghost") == 0


def test_summary(db: SQLiteDB, seed):
    seed.habit("h1")
    for day in ("2024-03-01", "2024-03-02", "2024-03-03"):
        seed.completion("h1", day)
    seed.completion("h1", "2024-03-04", completed=False)
    seed.completion("h1", "2024-03-05")

    summary = StreakEngine(db).summary("h1")

    assert summary.habit_id == "h1"
    assert summary.current == 1
    assert summary.best == 3
    assert summary.completed_count == 4


def test_summary_unknown_habit(db: SQLiteDB):
    with pytest.raises(NotFoundError):
        StreakEngine(db).summary("ghost")
