"""
Secret Santa API entrypoint.

Wires the v1 router, request context middleware, the error envelope
shared by every handler and the counter sweeper lifecycle.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy import text
import time
import uuid
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional
from app.api.v1 import api_router
from app.api.deps import governor
from app.utils import setup_logging, get_logger
from app.jobs.counter_sweep import CounterSweeper
from app import database
from app.database import Base
from app.governance import GovernanceRejected

SERVICE_NAME = "secret-santa-api"
API_VERSION = "1.0.0"

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
}

setup_logging(
    log_level=os.getenv("LOG_LEVEL", "INFO"),
    log_file=os.getenv("LOG_FILE", "logs/app.log"),
    enable_console=True
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, then keep the counter sweeper running until shutdown."""
    Base.metadata.create_all(bind=database.engine)
    logger.info("Database schema ready")

    sweeper = CounterSweeper(governor.rate_limiter.store)
    app.state.counter_sweeper = sweeper  # type: ignore[attr-defined]
    sweeper.start()
    logger.info("Startup complete", service=SERVICE_NAME, version=API_VERSION)
    try:
        yield
    finally:
        await sweeper.stop()
        logger.info("Shutdown complete")


app = FastAPI(
    title="Secret Santa API",
    description="""
    Backend for organizing Secret Santa gift exchanges.

    ## Features
    * **Groups** - create a group, invite participants by link, manage the roster
    * **Passwordless sign in** - emailed verification codes, server-side sessions
    * **Lottery** - random derangement draw with emailed assignments
    * **Delivery tracking** - email provider webhooks update assignment status

    ## CSRF
    State-changing requests must send the session token from
    `GET /api/v1/csrf/token` in the `X-CSRF-Token` header.

    ## Rate Limiting
    Sensitive actions are limited per IP, email, group or participant.
    Rejections are `429` with `X-RateLimit-Limit`, `X-RateLimit-Remaining`,
    `X-RateLimit-Reset` and `Retry-After` headers.
    """,
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/api/v1/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["*"],
)
app.add_middleware(GZipMiddleware, minimum_size=1000)


@app.middleware("http")
async def request_context(request: Request, call_next):
    """Tag each request with an id, time it and log the outcome."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    request.state.request_id = request_id
    started = time.perf_counter()

    response = await call_next(request)

    elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
    response.headers["X-Request-ID"] = request_id
    response.headers["X-Process-Time"] = str(elapsed_ms)
    response.headers.update(SECURITY_HEADERS)

    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code}",
        status_code=response.status_code,
        duration_ms=elapsed_ms,
        client=request.client.host if request.client else None,
        request_id=request_id
    )
    return response


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def _error_response(
    request: Request,
    status_code: int,
    message: Any,
    headers: Optional[Dict[str, str]] = None,
    **extra
) -> JSONResponse:
    body = {"success": False, "message": message, **extra, "request_id": _request_id(request)}
    return JSONResponse(status_code=status_code, content=body, headers=headers)


@app.exception_handler(GovernanceRejected)
async def governance_rejection_handler(request: Request, exc: GovernanceRejected):
    """CSRF and rate limit rejections carry their own body and headers."""
    return exc.rejection.to_response()


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = jsonable_encoder(exc.errors())
    logger.warning("Invalid request payload", path=request.url.path, errors=errors,
                   request_id=_request_id(request))
    return _error_response(request, 422, "Request validation failed", details=errors)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code >= 500:
        logger.error("Request failed", path=request.url.path, status_code=exc.status_code,
                     detail=exc.detail, request_id=_request_id(request))
    return _error_response(request, exc.status_code, exc.detail, headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception",
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        request_id=_request_id(request),
        exc_info=True
    )
    return _error_response(request, 500, "Internal server error")


def _service_info() -> Dict[str, Any]:
    return {"service": SERVICE_NAME, "version": API_VERSION, "timestamp": time.time()}


@app.get("/health", tags=["health"], summary="Liveness check")
async def health_check():
    """Liveness plus rate limiter bookkeeping."""
    sweeper = getattr(app.state, "counter_sweeper", None)
    return {
        "status": "healthy",
        **_service_info(),
        "rate_limit_counters": len(governor.rate_limiter.store),
        "sweeper_running": bool(sweeper and sweeper.running),
    }


@app.get("/health/detailed", tags=["health"], summary="Readiness check")
async def detailed_health_check():
    checks: Dict[str, str] = {}
    try:
        with database.SessionLocal() as db:
            db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except Exception as e:
        logger.warning("Database health check failed", error=str(e))
        checks["database"] = f"unhealthy: {e}"
    status = "healthy" if all(v == "healthy" for v in checks.values()) else "degraded"
    return {"status": status, **_service_info(), "checks": checks}


@app.get("/", tags=["root"])
async def root():
    return {
        "message": "Secret Santa API",
        "version": API_VERSION,
        "documentation": "/docs",
        "health_check": "/health",
        "api_base": "/api/v1"
    }


app.include_router(api_router, prefix="/api/v1")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")), reload=True)
