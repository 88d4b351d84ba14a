# tests/test_integrity.py
import json

import pytest

from loomra.domain.errors import ResourceUnavailableError, TransactionError
from loomra.domain.states import DeleteStrategy
from loomra.engine import IntegrityCoordinator
from loomra.storage import SQLiteDB


def _linked_goals(seed, habit_id: str) -> list[str]:
    row = seed.query("SELECT linked_goals FROM habits WHERE id = ?;", (habit_id,))[0]
    return json.loads(row["linked_goals"])


@pytest.fixture()
def populated(seed):
    """
    g1 owns t1 (with subtask t1a, itself with subtask t1b) and t2.
    g2 owns t3. h1 links both goals, h2 links g2 only, h3 links nothing.
    """
    seed.goal("g1")
    seed.goal("g2")
    seed.task("t1", goalId="g1")
    seed.task("t1a", parentTaskId="t1")
    seed.task("t1b", parentTaskId="t1a")
    seed.task("t2", goalId="g1")
    seed.task("t3", goalId="g2")
    seed.habit("h1", linkedGoals=["g1", "g2"])
    seed.habit("h2", linkedGoals=["g2"])
    seed.habit("h3")
    return seed


def test_delete_goal_cascade_removes_tasks_and_unlinks_habits(db: SQLiteDB, populated):
    assert IntegrityCoordinator(db).delete_goal("g1", DeleteStrategy.CASCADE) is True

    assert populated.query("SELECT id FROM goals;") == [{"id": "g2"}]
    assert populated.query("SELECT id FROM tasks WHERE goal_id = 'g1';") == []
    # Subtasks go with their parents
    assert [r["id"] for r in populated.query("SELECT id FROM tasks ORDER BY id;")] == ["t3"]

    assert _linked_goals(populated, "h1") == ["g2"]
    assert _linked_goals(populated, "h2") == ["g2"]
    assert _linked_goals(populated, "h3") == []


def test_delete_goal_nullify_keeps_tasks(db: SQLiteDB, populated):
    assert IntegrityCoordinator(db).delete_goal("g1", "nullify") is True

    rows = {r["id"]: r for r in populated.query("SELECT id, goal_id, parent_task_id FROM tasks;")}
    assert set(rows) == {"t1", "t1a", "t1b", "t2", "t3"}
    assert rows["t1"]["goal_id"] is None
    assert rows["t2"]["goal_id"] is None
    assert rows["t3"]["goal_id"] == "g2"
    assert rows["t1a"]["parent_task_id"] == "t1"

    assert _linked_goals(populated, "h1") == ["g2"]


@pytest.mark.parametrize("strategy", [None, "", "unlink", "CASCADE-ish"])
def test_missing_or_unknown_strategy_means_nullify(db: SQLiteDB, populated, strategy):
    assert IntegrityCoordinator(db).delete_goal("g1", strategy) is True
    assert len(populated.query("SELECT id FROM tasks;")) == 5


def test_strategy_parsing_is_case_insensitive(db: SQLiteDB, populated):
    assert IntegrityCoordinator(db).delete_goal("g1", " Cascade ") is True
    assert populated.query("SELECT id FROM tasks WHERE id IN ('t1', 't2');") == []


def test_delete_missing_goal_returns_false_and_changes_nothing(db: SQLiteDB, populated):
    before = populated.table_dump()

    assert IntegrityCoordinator(db).delete_goal("nope", "cascade") is False

    assert populated.table_dump() == before


def test_delete_goal_keeps_link_order_of_other_goals(db: SQLiteDB, seed):
    seed.goal("a")
    seed.goal("b")
    seed.goal("c")
    seed.habit("h", linkedGoals=["c", "b", "a"])

    IntegrityCoordinator(db).delete_goal("b")

    assert _linked_goals(seed, "h") == ["c", "a"]


def test_delete_goal_skips_habits_with_unreadable_links(db: SQLiteDB, seed):
    seed.goal("g")
    seed.habit("h-bad")
    seed.habit("h-ok", linkedGoals=["g"])
    conn = db.connect()
    try:
        conn.execute("UPDATE habits SET linked_goals = 'not json' WHERE id = 'h-bad';")
    finally:
        conn.close()

    assert IntegrityCoordinator(db).delete_goal("g") is True

    assert seed.query("SELECT linked_goals FROM habits WHERE id = 'h-bad';")[0]["linked_goals"] == "not json"
    assert _linked_goals(seed, "h-ok") == []


def test_failed_goal_delete_rolls_back_every_step(db: SQLiteDB, populated):
    # Make the final step (deleting the goal row) fail after habits and tasks were touched.
    conn = db.connect()
    try:
        conn.execute(
            """
            CREATE TRIGGER block_goal_delete BEFORE DELETE ON goals
            BEGIN
              SELECT RAISE(ABORT, 'goal deletion blocked');
            END;
            """
        )
    finally:
        conn.close()
    before = populated.table_dump()

    with pytest.raises(TransactionError) as exc:
        IntegrityCoordinator(db).delete_goal("g1", "cascade")

    assert exc.value.details["step"] == "delete_goal"
    assert "goal deletion blocked" in exc.value.message
    assert populated.table_dump() == before


def test_delete_habit_removes_its_completions_only(db: SQLiteDB, seed):
    seed.habit("h1")
    seed.habit("h2")
    for day in ("2024-03-01", "2024-03-02", "2024-03-03"):
        seed.completion("h1", day)
    seed.completion("h2", "2024-03-01")

    assert IntegrityCoordinator(db).delete_habit("h1") is True

    assert seed.query("SELECT id FROM habits;") == [{"id": "h2"}]
    assert seed.query("SELECT habit_id FROM habit_completions;") == [{"habit_id": "h2"}]


def test_delete_habit_without_native_cascade(db: SQLiteDB, seed):
    seed.habit("h1")
    seed.completion("h1", "2024-03-01")
    seed.completion("h1", "2024-03-02")

    # Drop the store-level cascade: the coordinator must still clean up.
    conn = db.connect()
    try:
        conn.executescript(
            """
            PRAGMA foreign_keys=OFF;
            ALTER TABLE habit_completions RENAME TO hc_old;
            CREATE TABLE habit_completions AS SELECT * FROM hc_old;
            DROP TABLE hc_old;
            """
        )
    finally:
        conn.close()

    assert IntegrityCoordinator(db).delete_habit("h1") is True
    assert seed.query("SELECT COUNT(*) AS c FROM habit_completions WHERE habit_id = 'h1';") == [{"c": 0}]


def test_delete_missing_habit_returns_false(db: SQLiteDB, seed):
    seed.habit("h1")
    assert IntegrityCoordinator(db).delete_habit("ghost") is False
    assert seed.query("SELECT id FROM habits;") == [{"id": "h1"}]


def test_busy_database_is_reported_and_nothing_changes(db: SQLiteDB, populated):
    before = populated.table_dump()
    impatient = SQLiteDB(db.db_path, timeout_s=0.1)

    blocker = db.connect()
    try:
        blocker.execute("BEGIN IMMEDIATE;")
        with pytest.raises(ResourceUnavailableError) as exc:
            IntegrityCoordinator(impatient).delete_goal("g1", "cascade")
        with pytest.raises(ResourceUnavailableError):
            IntegrityCoordinator(impatient).delete_habit("h1")
    finally:
        blocker.execute("ROLLBACK;")
        blocker.close()

    assert exc.value.code == "RESOURCE_UNAVAILABLE"
    assert populated.table_dump() == before
