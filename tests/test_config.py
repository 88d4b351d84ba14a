# tests/test_config.py
import io
import logging
from pathlib import Path

import pytest

from loomra.config import load_settings
from loomra.logging import configure_logging, get_logger, parse_level


@pytest.fixture()
def restore_package_logger():
    pkg = logging.getLogger("loomra")
    saved = (list(pkg.handlers), pkg.level, pkg.propagate)
    yield pkg
    pkg.handlers[:] = saved[0]
    pkg.setLevel(saved[1])
    pkg.propagate = saved[2]


def test_load_settings_defaults(monkeypatch: pytest.MonkeyPatch):
    for name in ("LOOMRA_DB_PATH", "LOOMRA_DB_TIMEOUT_MS", "LOOMRA_HOST", "LOOMRA_PORT", "LOOMRA_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)

    settings = load_settings()

    assert settings.db_path == Path("./var/loomra.db")
    assert settings.db_timeout_s == 5.0
    assert (settings.host, settings.port, settings.log_level) == ("127.0.0.1", 8000, "info")


@pytest.mark.parametrize(
    "name, value",
    [
        ("LOOMRA_DB_TIMEOUT_MS", "0"),
        ("LOOMRA_DB_TIMEOUT_MS", "soon"),
        ("LOOMRA_PORT", "70000"),
        ("LOOMRA_LOG_LEVEL", "chatty"),
    ],
)
def test_load_settings_rejects_bad_values(monkeypatch: pytest.MonkeyPatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError):
        load_settings()


def test_parse_level():
    assert parse_level(" WARNING ") == logging.WARNING
    assert parse_level("trace") == logging.DEBUG
    with pytest.raises(ValueError):
        parse_level("verbose")


def test_get_logger_stays_under_package():
    assert get_logger().name == "loomra"
    assert get_logger("loomra.engine.integrity").name == "loomra.engine.integrity"
    assert get_logger("__main__").name == "loomra"
    assert get_logger("init_db").name == "loomra.init_db"


def test_configure_logging_replaces_its_own_handler(restore_package_logger):
    first, second = io.StringIO(), io.StringIO()
    configure_logging("info", stream=first)
    configure_logging("warning", stream=second)

    pkg = restore_package_logger
    assert len([h for h in pkg.handlers if h.get_name() == "loomra-stdout"]) == 1

    log = get_logger("loomra.engine.transfer")
    log.info("hidden")
    log.warning("Import failed; previous data left intact.")

    assert first.getvalue() == ""
    assert "hidden" not in second.getvalue()
    assert "WARNING loomra.engine.transfer - Import failed" in second.getvalue()
