# wagerboard/web/app.py
# API leaderboard + sondes de santé (FastAPI)
# Lancement :
#   python -m uvicorn wagerboard.web.app:app --host 0.0.0.0 --port 3000

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Query, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from wagerboard.config import Settings, settings
from wagerboard.errors import ConfigError, UpstreamError, ValidationError
from wagerboard.services.leaderboard import LeaderboardService

log = logging.getLogger(__name__)

APP_TITLE = "Wager Leaderboard"


def _fail(status: int, message: str, details: Any = None) -> JSONResponse:
    body: Dict[str, Any] = {"success": False, "message": message}
    if details is not None:
        body["details"] = details
    return JSONResponse(body, status_code=status)


def create_app(service: Optional[LeaderboardService] = None, cfg: Settings = settings) -> FastAPI:
    """
    Build the app. Without an injected service, one is built from ``cfg`` at
    startup; a ConfigError there stops the server before it accepts traffic.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.service is None:
            app.state.service = LeaderboardService.from_settings(cfg)
            log.info("Serving sites: %s", ", ".join(sorted(app.state.service.sites)))
        try:
            yield
        finally:
            await app.state.service.close()

    app = FastAPI(title=APP_TITLE, lifespan=lifespan)
    app.state.service = service
    app.state.start_time = time.time()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.CORS_ORIGINS,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def bad_query(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _fail(400, "Invalid query parameters", jsonable_encoder(exc.errors()))

    @app.get("/api/leaderboard")
    async def leaderboard(
        request: Request,
        site: Optional[str] = Query(default=None, max_length=64),
        period: str = Query(default="current", max_length=32),
    ) -> JSONResponse:
        svc: LeaderboardService = request.app.state.service
        try:
            result = await svc.get_leaderboard(site or cfg.DEFAULT_SITE, period)
        except ValidationError as e:
            return _fail(400, str(e))
        except UpstreamError as e:
            return _fail(500, "Failed to fetch leaderboard", e.details)
        except ConfigError as e:
            log.error(f"Configuration error for site={site!r} period={period!r}: {e}")
            return _fail(500, "Failed to fetch leaderboard", str(e))
        return JSONResponse(result.to_dict())

    @app.get("/health")
    async def health_check() -> JSONResponse:
        uptime = int(time.time() - app.state.start_time)
        return JSONResponse({
            "status": "healthy",
            "uptime_seconds": uptime,
            "service": "wagerboard"
        })

    @app.get("/readiness")
    async def readiness_check(request: Request) -> Response:
        if request.app.state.service is None:
            return Response(status_code=503, content="Not ready")
        return Response(status_code=200, content="Ready")

    @app.get("/liveness")
    async def liveness_check() -> Response:
        return Response(status_code=200, content="Alive")

    @app.get("/metrics")
    async def metrics(request: Request) -> Dict[str, Any]:
        svc: Optional[LeaderboardService] = request.app.state.service
        return {
            "uptime_seconds": int(time.time() - app.state.start_time),
            "start_time": app.state.start_time,
            "cache": svc.cache.snapshot() if svc is not None else {},
        }

    return app


app = create_app()
