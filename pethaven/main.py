"""PetHaven verification FastAPI application."""
import logging
import os
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.authentication import AuthenticationMiddleware

from pethaven import __version__
from pethaven.api import admin, health, pets, verification
from pethaven.auth.admins import get_admin_registry
from pethaven.auth.api_key import APIKeyBackend, get_api_key_store
from pethaven.config import (
    ADMIN_ENDPOINT_ENABLED,
    AUTH_ENABLED,
    get_auth_exempt_paths,
)
from pethaven.exceptions import PetHavenError, Unauthenticated
from pethaven.logging_config import configure_logging

configure_logging()
log = logging.getLogger("pethaven")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    log.info("Starting PetHaven verification service...")

    try:
        from pethaven.db.session import init_database
        init_database()

        if AUTH_ENABLED:
            store = get_api_key_store()
            log.info(f"Auth enabled: loaded {store.key_count} API keys")
        else:
            log.warning("Auth disabled: trusting gateway principal headers (PETHAVEN_AUTH_ENABLED=false)")

        admins = get_admin_registry()
        log.info(f"Admin allow-list loaded: {admins.count} entries")

        log.info("PetHaven verification service started")
    except Exception as e:
        log.error(f"Failed to initialize service: {e}")
        raise

    yield

    log.info("PetHaven verification service stopped")


app = FastAPI(
    title="PetHaven Verification",
    version=__version__,
    description="Pet ownership verification service",
    lifespan=lifespan,
)


# -----------------------------------------------------------------------------
# Authentication Middleware
# -----------------------------------------------------------------------------

def on_auth_error(conn, exc):
    """Handle authentication errors."""
    return JSONResponse(
        status_code=401,
        content={"detail": str(exc), "kind": Unauthenticated.kind},
        headers={"WWW-Authenticate": "ApiKey"},
    )


if AUTH_ENABLED:
    app.add_middleware(
        AuthenticationMiddleware,
        backend=APIKeyBackend(exempt_paths=get_auth_exempt_paths()),
        on_error=on_auth_error,
    )


# -----------------------------------------------------------------------------
# Error handling
# -----------------------------------------------------------------------------

@app.exception_handler(PetHavenError)
async def pethaven_error_handler(request: Request, exc: PetHavenError):
    """Render domain errors as {"detail", "kind"} with their status code."""
    content = {"detail": exc.message, "kind": exc.kind}
    field = getattr(exc, "field", None)
    if field:
        content["field"] = field

    headers = {"WWW-Authenticate": "ApiKey"} if exc.status_code == 401 else None
    level = logging.WARNING if exc.status_code >= 500 else logging.INFO
    log.log(
        level,
        f"request_error kind={exc.kind} detail={exc.message}",
        extra={
            "route": request.url.path,
            "method": request.method,
            "status": exc.status_code,
            "kind": exc.kind,
        },
    )
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Keep FastAPI's 422 body and add the machine-readable kind."""
    log.info(
        f"request_error kind=request_validation_error errors={len(exc.errors())}",
        extra={"route": request.url.path, "method": request.method, "status": 422},
    )
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_encoder(exc.errors()), "kind": "request_validation_error"},
    )


# -----------------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------------

@app.get("/version")
def version():
    """Return service version and build commit."""
    git_sha = os.getenv("GIT_SHA", "unknown")

    result = {"version": __version__, "git_sha": git_sha}
    if git_sha != "unknown":
        result["short_sha"] = git_sha[:7]

    return result


app.include_router(health.router)
app.include_router(pets.router)
app.include_router(verification.router)
if ADMIN_ENDPOINT_ENABLED:
    app.include_router(admin.router)


@app.middleware("http")
async def request_logging(request: Request, call_next):
    """Log all requests with timing."""
    start = time.time()
    response = await call_next(request)
    duration_ms = int((time.time() - start) * 1000)
    log.info(
        f"request_complete status={response.status_code} duration_ms={duration_ms}",
        extra={
            "route": request.url.path,
            "method": request.method,
            "status": response.status_code,
            "duration_ms": duration_ms,
            "request_id": request.headers.get("X-Request-ID"),
        },
    )
    return response


if __name__ == "__main__":
    import uvicorn

    from pethaven.config import SERVICE_PORT

    uvicorn.run("pethaven.main:app", host="0.0.0.0", port=SERVICE_PORT)
