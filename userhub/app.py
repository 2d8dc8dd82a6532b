from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from userhub.api.error_handling import register_exception_handlers
from userhub.api.routes import router
from userhub.config import Settings
from userhub.logging import get_logger, set_correlation_id
from userhub.service.runtime import Runtime

logger = get_logger(__name__)

__version__ = "0.1.0"

HEALTH_CHECK_TIMEOUT_SECONDS = 3


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the store on startup and release it on shutdown."""
    runtime: Runtime = app.state.runtime
    await runtime.open()
    logger.info("runtime_started")
    try:
        yield
    finally:
        try:
            await runtime.close()
            logger.info("runtime_cleanup_complete")
        except Exception as exc:
            logger.error("shutdown_failed", error=str(exc))


def create_app(
    settings: Optional[Settings] = None, runtime: Optional[Runtime] = None
) -> FastAPI:
    """Build the HTTP app around an explicit runtime.

    Settings come from the environment when neither argument is given; a
    supplied ``runtime`` wins over ``settings``.
    """
    if runtime is None:
        runtime = Runtime.from_settings(settings or Settings.from_env())
    settings = runtime.settings

    app = FastAPI(title="userhub", version=__version__, lifespan=lifespan)
    app.state.runtime = runtime

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
        max_age=3600,
    )

    @app.middleware("http")
    async def add_correlation_id(request: Request, call_next):
        """Tag logs with the caller's ``X-Request-ID`` (or a fresh one) and echo it."""
        correlation_id = set_correlation_id(request.headers.get("X-Request-ID"))
        response = await call_next(request)
        response.headers["X-Request-ID"] = correlation_id
        return response

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        # Responses carry tokens and profile data
        if request.url.path.startswith("/api/"):
            response.headers.setdefault(
                "Cache-Control", "no-store, no-cache, must-revalidate, private"
            )
        return response

    register_exception_handlers(app)
    app.include_router(router)

    @app.get("/healthz")
    async def health() -> JSONResponse:
        checks: Dict[str, Any] = {}
        try:
            await asyncio.wait_for(
                runtime.store.verify_connection(), HEALTH_CHECK_TIMEOUT_SECONDS
            )
            db_ok = True
        except asyncio.TimeoutError:
            logger.error(
                "health_check_timeout",
                component="store",
                timeout=HEALTH_CHECK_TIMEOUT_SECONDS,
            )
            db_ok = False
        except Exception as exc:
            logger.error("health_check_store_failed", error=str(exc))
            db_ok = False
        checks["store"] = {
            "status": "healthy" if db_ok else "unhealthy",
            "type": "memory" if settings.use_memory_store else "postgres",
        }
        return JSONResponse(
            status_code=200 if db_ok else 503,
            content={
                "status": "healthy" if db_ok else "unhealthy",
                "checks": checks,
                "version": __version__,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )

    return app
