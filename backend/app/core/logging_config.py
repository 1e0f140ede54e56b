from __future__ import annotations

import logging

from app.core.config import Settings

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(settings: Settings) -> None:
    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    if not isinstance(level, int):
        level = logging.INFO
    if settings.DEBUG:
        level = logging.DEBUG
    logging.basicConfig(level=level, format=_FORMAT)
    # Azure SDK logs every HTTP round trip at INFO
    logging.getLogger("azure").setLevel(max(level, logging.WARNING))
