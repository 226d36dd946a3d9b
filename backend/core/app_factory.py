"""
Application factory for creating FastAPI app instances.

This module provides functions for creating and configuring the FastAPI application
with all necessary middleware, routers, and dependencies.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from core import get_logger, get_settings, setup_logging
from core.settings import Settings

logger = get_logger("AppFactory")


def _register_exception_handlers(app: FastAPI) -> None:
    from exceptions import ConversationNotFoundError, ParticipantNotFoundError, PersistenceError

    @app.exception_handler(ConversationNotFoundError)
    async def conversation_not_found(request: Request, exc: ConversationNotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ParticipantNotFoundError)
    async def participant_not_found(request: Request, exc: ParticipantNotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(PersistenceError)
    async def persistence_failed(request: Request, exc: PersistenceError):
        logger.error(f"💾 Store failure on {request.url.path}: {exc}")
        return JSONResponse(status_code=503, content={"detail": "Conversation store unavailable"})

    @app.exception_handler(ValueError)
    async def invalid_value(request: Request, exc: ValueError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})


def create_app(
    settings: Optional[Settings] = None,
    provider=None,
    store=None,
    db_engine=None,
    rng=None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Settings to use (defaults to the global singleton)
        provider: Provider function replacing the HTTP ProviderManager
        store: Conversation store replacing the SQL store
        db_engine: Engine for the SQL store (defaults to database.engine)
        rng: Random source for speaking-order shuffles

    Returns:
        Configured FastAPI application instance
    """
    from fastapi.middleware.cors import CORSMiddleware
    from routers import conversations, events, health, participants

    settings = settings or get_settings()
    setup_logging(settings.log_level)

    # Create lifespan context manager
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for application startup and shutdown."""
        import database
        from config import log_config_validation
        from orchestration import ConversationOrchestrator, ConversationReaper, ParticipantRegistry
        from persistence import SqlConversationStore
        from providers import ProviderManager

        # Startup
        logger.info("🚀 Application startup...")

        # Validate configuration files
        log_config_validation()

        conversation_store = store
        sql_engine = None
        if conversation_store is None:
            sql_engine = db_engine or database.engine
            await database.init_db(sql_engine)
            conversation_store = SqlConversationStore(database.build_session_maker(sql_engine))

        provider_manager = None
        provider_fn = provider
        if provider_fn is None:
            provider_manager = ProviderManager.from_settings(settings)
            provider_fn = provider_manager

        # Create singleton instances
        registry = ParticipantRegistry.from_config()
        orchestrator = ConversationOrchestrator.from_settings(settings, registry, provider_fn, conversation_store)
        if rng is not None:
            orchestrator.rng = rng
        reaper = ConversationReaper(
            orchestrator,
            interval_seconds=settings.reaper_interval_seconds,
            idle_minutes=settings.idle_eviction_minutes,
        )

        # Store in app state for dependency injection
        app.state.settings = settings
        app.state.registry = registry
        app.state.orchestrator = orchestrator
        app.state.reaper = reaper

        reaper.start()
        logger.info("✅ Application startup complete")

        yield

        # Shutdown
        logger.info("🛑 Application shutdown...")
        reaper.stop()
        await orchestrator.shutdown()
        if provider_manager is not None:
            await provider_manager.close()
        if sql_engine is not None:
            await sql_engine.dispose()
        logger.info("✅ Application shutdown complete")

    app = FastAPI(title="Roundtable Conversation API", lifespan=lifespan)

    # CORS middleware
    allowed_origins = settings.get_cors_origins()
    logger.info("🔒 CORS Configuration:")
    logger.info(f"   Allowed origins: {allowed_origins}")
    logger.info("   💡 To add more origins, set FRONTEND_URL in .env")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_exception_handlers(app)

    # Register routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(participants.router, prefix="/participants", tags=["Participants"])
    app.include_router(conversations.router, prefix="/conversations", tags=["Conversations"])
    app.include_router(events.router, prefix="/conversations", tags=["Events"])

    return app
