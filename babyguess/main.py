# babyguess/main.py
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.asyncio import Redis

from babyguess.settings import get_settings
from babyguess.store.kv import StoreUnavailable
from babyguess.transport.admin import router as admin_router
from babyguess.transport.api import router as api_router
from babyguess.transport.protocols import OutError
from babyguess.transport.ws import router as ws_router
from babyguess.transport.ws_manager import WSManager
from babyguess.util.logs import setup_logging
from babyguess.wiring import build_game

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.APP_NAME)
    allowed_origins = [o.strip() for o in settings.WS_ALLOWED_ORIGINS.split(",") if o.strip()]
    if "null" not in allowed_origins:
        allowed_origins.append("null")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def _startup() -> None:
        setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
        r = Redis.from_url(settings.REDIS_URL, decode_responses=False)
        app.state.redis = r
        app.state.wsman = WSManager()
        services = build_game(r, app.state.wsman, settings)
        app.state.kv = services.kv
        app.state.keys = services.keys
        app.state.gateway = services.gateway
        app.state.archive = services.archive
        app.state.timers = services.timers
        app.state.game = services.game
        await services.kv.ping()
        logger.info("%s started", settings.APP_NAME)

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await app.state.timers.shutdown()
        r: Redis = app.state.redis
        await r.aclose()

    @app.exception_handler(StoreUnavailable)
    async def _store_unavailable(request: Request, exc: StoreUnavailable):
        logger.error("store unavailable on %s: %s", request.url.path, exc, extra={"error_code": "STORE_UNAVAILABLE"})
        err = OutError(code="STORE_UNAVAILABLE", message="Game state store unavailable, try again")
        return JSONResponse(status_code=503, content=err.model_dump())

    @app.get("/health")
    async def health():
        r: Redis = app.state.redis
        pong = await r.ping()
        return {"ok": True, "redis": str(pong)}

    app.include_router(ws_router)
    app.include_router(api_router)
    app.include_router(admin_router)
    return app


app = create_app()
