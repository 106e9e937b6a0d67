"""FastAPI application factory for the pipeline trigger surface."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from catalog_sync import __version__
from catalog_sync.api.deps import get_settings
from catalog_sync.api.routes import admin_router, cron_router, health_router
from catalog_sync.config import Settings
from catalog_sync.errors import AuthorizationError, PipelineError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    yield
    steps = getattr(app.state, "steps", None)
    if steps is not None:
        steps.close()
        app.state.steps = None


async def authorization_error_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=401, content={"error": "Unauthorized"})


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Step %s failed: %s", request.url.path, exc, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": str(exc) or type(exc).__name__})


def create_app(
    settings: Settings | None = None,
    *,
    catalog_transport: httpx.BaseTransport | None = None,
) -> FastAPI:
    """Build the app; ``settings`` and ``catalog_transport`` override the environment for tests."""

    settings = settings or get_settings()

    app = FastAPI(title="catalog-sync", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.catalog_transport = catalog_transport
    app.state.steps = None
    app.dependency_overrides[get_settings] = lambda: settings

    app.add_exception_handler(AuthorizationError, authorization_error_handler)
    app.add_exception_handler(PipelineError, unhandled_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(health_router, tags=["Health"])
    app.include_router(admin_router, tags=["Admin"])
    app.include_router(cron_router, tags=["Cron"])
    return app
