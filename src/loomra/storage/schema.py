# src/loomra/storage/schema.py
from __future__ import annotations

import re
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from loomra.logging import get_logger

_LOG = get_logger(__name__)


_SCRIPT_RE = re.compile(r"^(?P<order>\d+)_.*\.sql$")

SQL_DIR = Path(__file__).resolve().parent / "sql"


@dataclass(frozen=True)
class SchemaScript:
    order: int
    filename: str
    path: Path


def apply_schema(conn: sqlite3.Connection, sql_dir: Optional[Path] = None) -> None:
    """
    Runs the schema scripts in ascending numeric order.

    Every script is written with CREATE ... IF NOT EXISTS, so running the whole
    set against an existing database is a no-op; there is no version table.

    Expected filenames:
      001_tables.sql
      002_indexes.sql
    """
    sql_dir = (sql_dir or SQL_DIR).resolve()
    if not sql_dir.exists():
        raise FileNotFoundError(f"Schema dir not found: {sql_dir}")

    scripts = _load_scripts(sql_dir)
    for s in scripts:
        _LOG.debug("Applying schema script %03d (%s)", s.order, s.filename)
        conn.executescript(s.path.read_text(encoding="utf-8"))
    _LOG.info("Schema ready (%d script(s)).", len(scripts))


def _load_scripts(sql_dir: Path) -> list[SchemaScript]:
    scripts: list[SchemaScript] = []
    for path in sorted(sql_dir.glob("*.sql")):
        m = _SCRIPT_RE.match(path.name)
        if not m:
            # ignore files that don't match the naming convention
            continue
        scripts.append(SchemaScript(order=int(m.group("order")), filename=path.name, path=path))

    scripts.sort(key=lambda x: x.order)
    return scripts
