from __future__ import annotations

from loomra.config import load_settings
from loomra.logging import configure_logging, get_logger


def main() -> int:
    """
    Programmatic entrypoint.

    Recommended dev command:
      uvicorn loomra.api.app:app --reload

    This entrypoint exists so you can also do:
      python -m loomra.main
    """
    settings = load_settings()
    configure_logging(settings.log_level)
    log = get_logger(__name__)

    settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    log.info("Starting Loomra with DB path: %s", settings.db_path)

    import uvicorn

    uvicorn.run(
        "loomra.api.app:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
        reload=False,  # prefer `uvicorn ... --reload` in dev
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
