#!/usr/bin/env python3
from __future__ import annotations

import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = REPO_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from loomra.config import load_settings
from loomra.logging import configure_logging, get_logger
from loomra.storage import SQLiteDB, apply_schema


def main() -> int:
    settings = load_settings()
    configure_logging(settings.log_level)
    log = get_logger(__name__)

    db = SQLiteDB(settings.db_path, timeout_s=settings.db_timeout_s)
    conn = db.connect()
    try:
        apply_schema(conn)
    finally:
        conn.close()

    log.info("DB initialized at %s", settings.db_path)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
