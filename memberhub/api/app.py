"""
FastAPI application for memberhub.

Serves the access-control routes: the caller's resolved role and tabs,
role administration, and secondary role store sync.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from memberhub.access.routes import router as access_router
from memberhub.access.routes import session_router
from memberhub.access.runtime import create_runtime
from memberhub.config import get_settings
from memberhub.integrations.sentry import init_sentry

logger = logging.getLogger(__name__)


# =============================================================================
# Lifespan
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize and cleanup app resources."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if init_sentry():
        logger.info("Sentry error tracking enabled")

    # Tests may attach their own runtime before startup
    runtime = getattr(app.state, "access", None)
    if runtime is None:
        runtime = create_runtime(settings)
        app.state.access = runtime
    await runtime.startup()

    logger.info(f"memberhub API starting in {settings.environment} mode")

    yield

    await runtime.shutdown()
    logger.info("memberhub API shutting down")


# =============================================================================
# App Setup
# =============================================================================


app = FastAPI(
    title="memberhub API",
    description="Role resolution and access control for the member registry",
    version="0.1.0",
    lifespan=lifespan,
)


# CORS
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(session_router)
app.include_router(access_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "memberhub-api"}
