from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Dict, List

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from internboard import __version__
from internboard.api.error_handling import register_exception_handlers
from internboard.api.routes import router
from internboard.config import Settings
from internboard.logging import get_logger, set_correlation_id
from internboard.service.authenticator import AuthOutcome

logger = get_logger(__name__)

_settings = Settings.from_env()

__build__ = _settings.build_sha


@asynccontextmanager
async def lifespan(app: FastAPI):
    from internboard.service.runtime import get_runtime

    try:
        runtime = get_runtime()
    except Exception as exc:
        logger.error("startup_failed", error_type=type(exc).__name__, error=str(exc))
        raise
    logger.info("startup_complete", version=__version__, build=__build__)

    yield

    close = getattr(runtime.store, "close", None)
    if close:
        close()
    logger.info("shutdown_complete")


app = FastAPI(title="Internboard Auth", version=__version__, lifespan=lifespan)


def _allowed_origins() -> List[str]:
    if _settings.cors_allow_origins:
        return _settings.cors_allow_origins
    # Credentials are allowed, so never fall back to a wildcard.
    return [
        "http://localhost",
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ]


app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    # Lets browser clients pick up a transparently refreshed access token.
    expose_headers=["Authorization", "X-Request-ID", "API-Version"],
    max_age=3600,
)


@app.middleware("http")
async def authenticate_request(request: Request, call_next):
    """Attach ``request.state.identity`` and forward a refreshed access token.

    Authentication never rejects a request here; guards on each route decide.
    """
    outcome = AuthOutcome(reason="not_attempted")
    try:
        from internboard.service.runtime import get_runtime

        runtime = get_runtime()
        outcome = await runtime.authenticator.authenticate(
            request.headers.get("Authorization"),
            request.cookies.get(runtime.settings.refresh_cookie_name),
        )
    except Exception as exc:
        logger.error("request_authentication_failed", error=str(exc))
    finally:
        request.state.identity = outcome.identity

    response = await call_next(request)
    if outcome.refreshed_access_token:
        response.headers["authorization"] = f"Bearer {outcome.refreshed_access_token}"
    return response


@app.middleware("http")
async def add_security_headers(request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    if request.url.path.startswith("/api/") or request.url.path == "/healthz":
        response.headers.setdefault("Cache-Control", "no-store, no-cache, must-revalidate, private")
    response.headers.setdefault("API-Version", __version__)
    return response


@app.middleware("http")
async def add_correlation_id(request, call_next):
    """Tag the request with ``X-Request-ID`` for log correlation.

    Registered last so it wraps every other middleware.
    """
    correlation_id = set_correlation_id(request.headers.get("X-Request-ID"))
    response = await call_next(request)
    response.headers["X-Request-ID"] = correlation_id
    return response


register_exception_handlers(app)
app.include_router(router)


HEALTH_CHECK_TIMEOUT_SECONDS = 3


@app.get("/healthz")
async def health() -> JSONResponse:
    """Report store reachability plus version and build."""
    from internboard.service.runtime import get_runtime

    runtime = get_runtime()
    store_type = type(runtime.store).__name__
    checks: Dict[str, Any] = {}
    try:
        await asyncio.wait_for(
            asyncio.to_thread(runtime.store.verify_connection),
            HEALTH_CHECK_TIMEOUT_SECONDS,
        )
        checks["database"] = {"status": "healthy", "store": store_type}
    except asyncio.TimeoutError:
        logger.error("health_check_timeout", component="database")
        checks["database"] = {"status": "unhealthy", "error": "timeout"}
    except Exception as exc:
        logger.error("health_check_database_failed", error=str(exc))
        checks["database"] = {"status": "unhealthy", "error": type(exc).__name__}

    healthy = all(check["status"] == "healthy" for check in checks.values())
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "healthy" if healthy else "unhealthy",
            "version": __version__,
            "build": __build__,
            "checks": checks,
        },
    )
