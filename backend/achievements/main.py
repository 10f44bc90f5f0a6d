"""FastAPI application entry point.

This module wires together the API routers, configures middleware and
startup tasks, and exposes the ASGI application object used by the
server.
"""

import os
import logging
import asyncio
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.openapi.utils import get_openapi
from achievements.routes import (
    auth,
    users,
    students,
    attempts,
    badges,
    rankings,
    settings,
)
from achievements.database import create_db_and_tables, async_session
from achievements.badges import ensure_default_badges
from achievements.crud import get_settings
from achievements.errors import (
    AttemptLimitReached,
    EngineError,
    PersistenceFailure,
    ReferenceNotFound,
)
from achievements.ranking import recompute_all_rankings

# Basic logging configuration.  The log level can be controlled with an
# environment variable so deployments can adjust verbosity without code
# changes.
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=getattr(logging, LOG_LEVEL))
logger = logging.getLogger(__name__)

RANKING_TASK_ENABLED = os.getenv("RANKING_TASK_ENABLED", "true").lower() == "true"

app = FastAPI(title="Quiz Achievements", docs_url=None)


def custom_openapi():
    """Generate an OpenAPI schema that is aware of our `/api` proxy prefix."""

    if app.openapi_schema:
        return app.openapi_schema
    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )
    # The reverse proxy serves the API under `/api`.
    openapi_schema["servers"] = [{"url": "/api"}]
    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi

# CORS setup
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def on_startup():
    """Initialize the database and kick off background tasks."""

    await create_db_and_tables()
    async with async_session() as session:
        # Insert any built-in badges that are missing.
        await ensure_default_badges(session)
    if RANKING_TASK_ENABLED:
        asyncio.create_task(periodic_ranking_task())


async def periodic_ranking_task():
    """Background coroutine that refreshes global and institutional positions."""

    logger.info("Starting periodic ranking task")
    while True:
        interval_minutes = 60
        try:
            async with async_session() as session:
                interval_minutes = (await get_settings(session)).ranking_refresh_minutes
                await recompute_all_rankings(session)
        except Exception as exc:
            logger.exception("Periodic ranking task failed: %s", exc)
        await asyncio.sleep(60 * interval_minutes)


app.include_router(auth.router)
app.include_router(users.router)
app.include_router(students.router)
app.include_router(attempts.router)
app.include_router(badges.router)
app.include_router(rankings.router)
app.include_router(settings.router)


@app.get("/docs", include_in_schema=False)
async def custom_swagger_ui_html():
    """Serve the interactive docs with the correct API prefix."""

    # The API is served behind a `/api` prefix by the reverse proxy, so the
    # schema lives at `/api/openapi.json`.
    return get_swagger_ui_html(openapi_url="/api/openapi.json", title="API Docs")


@app.get("/")
async def read_root():
    async with async_session() as session:
        s = await get_settings(session)
        name = s.site_name
    return {"message": f"Welcome to {name} API"}


def _error_response(status_code: int, exc: EngineError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"code": exc.code, "message": str(exc)},
    )


@app.exception_handler(ReferenceNotFound)
async def reference_not_found_handler(request: Request, exc: ReferenceNotFound):
    return _error_response(404, exc)


@app.exception_handler(AttemptLimitReached)
async def attempt_limit_handler(request: Request, exc: AttemptLimitReached):
    return _error_response(403, exc)


@app.exception_handler(PersistenceFailure)
async def persistence_failure_handler(request: Request, exc: PersistenceFailure):
    logger.error("Storage failure during request %s: %s", request.url.path, exc)
    return _error_response(503, exc)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all exception handler that logs the stack trace once."""
    logger.exception("Unhandled error during request %s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "code": "internal_server_error",
            "message": "An unexpected error occurred",
        },
    )
