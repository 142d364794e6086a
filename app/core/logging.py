from __future__ import annotations

import logging

from app.core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def configure_logging(level: str | None = None) -> None:
    resolved = (level or settings.log_level or "INFO").upper()
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    # uvicorn installs its own handlers; keep its access log on the same level.
    logging.getLogger("uvicorn.access").setLevel(resolved)
    # SQL statements are only worth the noise when debugging.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if resolved == "DEBUG" else logging.WARNING)
