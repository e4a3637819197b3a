"""
viwo.api.main — FastAPI application entry point
================================================

Run with::

    uvicorn viwo.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from viwo.api.deps import get_services  # noqa: E402
from viwo.api.routes.admin import router as admin_router  # noqa: E402
from viwo.api.routes.rewards import router as rewards_router  # noqa: E402
from viwo.api.routes.scores import router as scores_router  # noqa: E402
from viwo.api.routes.staking import router as staking_router  # noqa: E402
from viwo.api.routes.vcoin import router as vcoin_router  # noqa: E402
from viwo.errors import (  # noqa: E402
    ContentNotFoundError,
    FlagNotFoundError,
    NotStakeOwnerError,
    StakeNotActiveError,
    StakeNotFoundError,
    StakeStillLockedError,
    UserNotFoundError,
    VCoinError,
)

logger = logging.getLogger(__name__)

# Anything not listed maps to 400.
_ERROR_STATUS: dict[type[VCoinError], int] = {
    UserNotFoundError: status.HTTP_404_NOT_FOUND,
    ContentNotFoundError: status.HTTP_404_NOT_FOUND,
    FlagNotFoundError: status.HTTP_404_NOT_FOUND,
    StakeNotFoundError: status.HTTP_404_NOT_FOUND,
    NotStakeOwnerError: status.HTTP_403_FORBIDDEN,
    StakeNotActiveError: status.HTTP_409_CONFLICT,
    StakeStillLockedError: status.HTTP_409_CONFLICT,
}


def status_for(exc: VCoinError) -> int:
    for exc_type, code in _ERROR_STATUS.items():
        if isinstance(exc, exc_type):
            return code
    return status.HTTP_400_BAD_REQUEST


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — build the service graph once."""
    services = get_services()
    logger.info("ViWo rewards API started — engine ready (%s)", services.engine.url.database)
    yield
    logger.info("ViWo rewards API shutting down")


app = FastAPI(
    title="ViWo Rewards API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(VCoinError)
async def vcoin_error_handler(request: Request, exc: VCoinError) -> JSONResponse:
    code = status_for(exc)
    logger.info("%s %s → %d %s: %s", request.method, request.url.path, code, type(exc).__name__, exc)
    return JSONResponse(
        status_code=code,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


# Mount routers
app.include_router(vcoin_router, prefix="/api")
app.include_router(rewards_router, prefix="/api")
app.include_router(staking_router, prefix="/api")
app.include_router(scores_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
