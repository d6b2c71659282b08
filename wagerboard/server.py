# server.py – Point d'entrée du service leaderboard
# -----------------------------------------------------------------------------
#  • Configure le logging (LOG_LEVEL, DEBUG=1 pour tracer chaque requête).
#  • Lance uvicorn sur HOST:PORT ; la config des sites est validée au
#    démarrage de l'app, une erreur de config empêche le service de démarrer.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging

import uvicorn

from wagerboard.config import settings
from wagerboard.logging_config import setup_logging


def run() -> None:
    setup_logging(level=settings.LOG_LEVEL, debug=settings.DEBUG)
    log = logging.getLogger(__name__)
    log.info("Starting leaderboard API on http://%s:%s", settings.HOST, settings.PORT)
    uvicorn.run(
        "wagerboard.web.app:app",
        host=settings.HOST,
        port=settings.PORT,
        log_config=None,
    )


if __name__ == "__main__":
    run()
