"""
WorkMate Agent Core - Main Application Entry Point
"""

import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import async_sessionmaker

from workmate import __version__
from workmate.api import (
    agents_router,
    ai_router,
    businesses_router,
    channels_router,
    conversations_router,
    training_router,
)
from workmate.config import settings
from workmate.db import async_session_maker, init_db
from workmate.errors import WorkmateError
from workmate.services.history_store import ConversationLocks
from workmate.services.llm_service import LanguageModel, build_language_model
from workmate.services.notification_service import Notifier, ResendNotifier
from workmate.services.web_fetch import WebFetcher
from workmate.structured_logging import (
    Subsystem, configure_logging, get_subsystem_logger, request_id_var,
)

log = get_subsystem_logger(Subsystem.API)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler - runs on startup and shutdown"""
    app.state.started_at = time.time()
    await init_db()
    log.info("Database initialized", {"provider": settings.llm_provider, "model": settings.chat_model})
    yield
    log.info("Shutting down")


def create_app(
    language_model: Optional[LanguageModel] = None,
    web_fetcher: Optional[WebFetcher] = None,
    notifier: Optional[Notifier] = None,
    session_factory: Optional[async_sessionmaker] = None,
) -> FastAPI:
    """
    Build the application with its collaborators.

    Every collaborator can be replaced, which is how tests run without a
    real language model, network or database server.
    """
    configure_logging(settings.log_level, json_output=settings.log_json)

    app = FastAPI(
        title=settings.app_name,
        description="Conversational agent core: reply generation under pilot-mode oversight",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.language_model = language_model or build_language_model(settings)
    app.state.web_fetcher = web_fetcher or WebFetcher(settings)
    app.state.notifier = notifier or ResendNotifier(settings)
    app.state.session_factory = session_factory or async_session_maker
    app.state.conversation_locks = ConversationLocks()
    app.state.started_at = time.time()

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        token = request_id_var.set(request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12])
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        return response

    @app.exception_handler(WorkmateError)
    async def workmate_error_handler(request: Request, exc: WorkmateError):
        log.warning("Request failed", {
            "path": request.url.path,
            "error": type(exc).__name__,
            "detail": exc.message,
            **exc.context,
        })
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    # Include routers
    app.include_router(businesses_router, prefix=settings.api_prefix)
    app.include_router(agents_router, prefix=settings.api_prefix)
    app.include_router(conversations_router, prefix=settings.api_prefix)
    app.include_router(ai_router, prefix=settings.api_prefix)
    app.include_router(training_router, prefix=settings.api_prefix)
    app.include_router(channels_router, prefix=settings.api_prefix)

    @app.get("/health")
    async def health():
        """Health check with a database probe."""
        db_status = "connected"
        try:
            async with app.state.session_factory() as db:
                await db.execute(text("SELECT 1"))
        except Exception as e:
            db_status = f"error: {e}"

        return {
            "status": "healthy" if db_status == "connected" else "degraded",
            "version": __version__,
            "uptime_seconds": round(time.time() - app.state.started_at, 1),
            "database": db_status,
            "llm_provider": settings.llm_provider,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "workmate.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
