from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from taskpilot.api.admin import router as admin_router
from taskpilot.api.ai import router as ai_router
from taskpilot.api.auth import router as auth_router
from taskpilot.api.categories import router as categories_router
from taskpilot.api.errors import register_exception_handlers
from taskpilot.api.health import router as health_router
from taskpilot.api.tasks import router as tasks_router
from taskpilot.core.config import get_settings
from taskpilot.core.logging import TraceContextMiddleware, configure_logging
from taskpilot.db.bootstrap import initialize_database
from taskpilot.db.engine import dispose_engine, get_engine


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if settings.db_auto_init:
            initialize_database(
                database_url=settings.database_url,
                seed=settings.db_auto_seed,
            )
        get_engine()
        try:
            yield
        finally:
            dispose_engine()

    app = FastAPI(
        title=settings.app_name,
        debug=settings.debug,
        lifespan=lifespan,
    )

    register_exception_handlers(app)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Trace-ID"],
    )
    app.add_middleware(TraceContextMiddleware)
    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(tasks_router)
    app.include_router(categories_router)
    app.include_router(ai_router)
    app.include_router(admin_router)
    return app


app = create_app()
