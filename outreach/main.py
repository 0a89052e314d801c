from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api.resources import router as resources_router
from .config import settings
from .database import engine, init_db

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(title="Bacenta Outreach API", version=settings.app_version)

    # Browser clients call /rest cross-origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    def _startup() -> None:
        init_db()
        logger.info("%s %s started (%s)", settings.app_name, settings.app_version, settings.env)

    # --- error envelope: every failure is {"detail": ...} ---
    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    # --- meta ---
    @app.get("/health", tags=["meta"])
    def health() -> Dict[str, Any]:
        return {"ok": True, "env": settings.env, "database": engine.url.get_backend_name()}

    @app.get("/version", tags=["meta"])
    def version() -> Dict[str, Any]:
        return {"name": settings.app_name, "version": settings.app_version}

    app.include_router(resources_router)
    return app


app = create_app()


def run() -> None:
    import uvicorn

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # Tables are created by the startup hook, not here
    uvicorn.run("outreach.main:app", host=settings.host, port=settings.port, reload=settings.reload)
