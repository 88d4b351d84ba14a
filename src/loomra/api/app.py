# src/loomra/api/app.py
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from loomra.config import load_settings
from loomra.logging import configure_logging, get_logger
from loomra.storage import SQLiteDB, apply_schema

from .routes import router

_LOG = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Responsible for:
    - loading configuration
    - configuring logging
    - bootstrapping the schema (idempotent)
    - exposing the SQLiteDB capability on app.state
    """
    config = load_settings()
    configure_logging(config.log_level)

    db = SQLiteDB(config.db_path, timeout_s=config.db_timeout_s)

    conn = db.connect()
    try:
        apply_schema(conn)
    finally:
        conn.close()

    # Store on app.state for DI
    app.state.db = db

    _LOG.info("Startup complete (db=%s).", config.db_path)
    try:
        yield
    finally:
        _LOG.info("Shutdown complete.")


app = FastAPI(
    title="Loomra",
    version="0.1.0",
    lifespan=lifespan,
)
app.include_router(router)
