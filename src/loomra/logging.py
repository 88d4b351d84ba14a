from __future__ import annotations

import logging
import sys
from typing import Optional, TextIO

PACKAGE_LOGGER = "loomra"

# Names uvicorn also accepts, so one LOOMRA_LOG_LEVEL drives both.
LEVELS: dict[str, int] = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": logging.DEBUG,
}

_HANDLER_NAME = "loomra-stdout"


def configure_logging(log_level: str = "info", stream: Optional[TextIO] = None) -> None:
    """
    Configures the "loomra" logger tree.

    Engines log every goal/habit deletion, import and export at INFO and each
    rolled-back operation at WARNING; storage logs schema bootstrap. All of it
    goes to one stdout handler on the package logger. Calling this again (the
    app module is reloaded per test) replaces that handler; handlers installed
    on the root logger by the host process are left alone.
    """
    level = parse_level(log_level)

    pkg = logging.getLogger(PACKAGE_LOGGER)
    pkg.setLevel(level)
    pkg.propagate = False
    for h in list(pkg.handlers):
        if h.get_name() == _HANDLER_NAME:
            pkg.removeHandler(h)

    handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s %(levelname)s %(name)s - %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )
    )
    pkg.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(max(level, logging.INFO))
    logging.getLogger("uvicorn.error").setLevel(level)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Loggers live under "loomra" so configure_logging reaches them."""
    if not name or name == "__main__":
        return logging.getLogger(PACKAGE_LOGGER)
    if name == PACKAGE_LOGGER or name.startswith(PACKAGE_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")


def parse_level(log_level: str) -> int:
    key = log_level.lower().strip()
    if key not in LEVELS:
        raise ValueError(f"Unknown log level {log_level!r}; expected one of {sorted(LEVELS)}")
    return LEVELS[key]
