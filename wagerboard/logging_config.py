# logging_config.py – logs du service sur stdout (uvicorn lancé avec log_config=None)

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s: %(message)s"

# Bibliothèques trop bavardes : accès HTTP, pool aiohttp, client redis
QUIET_LOGGERS = ("aiohttp", "uvicorn.access", "redis")


def setup_logging(level: Optional[str] = None, debug: bool = False) -> int:
    """
    Route every log line to stdout and return the level of ``wagerboard.*``.

    ``DEBUG=1`` traces each served leaderboard request whatever ``LOG_LEVEL``
    says. Fetches and upstream failures under ``wagerboard.sources`` stay
    visible at INFO even with a stricter ``LOG_LEVEL``.
    """
    log_level = logging.getLevelName((level or "INFO").upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    app_level = logging.DEBUG if debug else log_level
    logging.getLogger("wagerboard").setLevel(app_level)
    logging.getLogger("wagerboard.sources").setLevel(min(app_level, logging.INFO))

    logging.getLogger(__name__).info(f"Logging initialized at level: {logging.getLevelName(app_level)}")
    return app_level
