"""
Gamehall Terminal - Main Application Entry Point
Table, session and billing terminal for a gaming venue
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from typing import Optional
import structlog

from gamehall import __version__
from gamehall.core.clock import Clock, utcnow
from gamehall.core.config import Settings, get_settings
from gamehall.core.context import build_context
from gamehall.core.websocket_manager import manager
from gamehall.api import (
    tables, table_sessions, promotions, payments,
    customers, reservations, operators, websockets,
)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = structlog.get_logger(__name__)


def create_app(settings: Optional[Settings] = None, clock: Clock = utcnow) -> FastAPI:
    """Build the API around a fresh terminal context"""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager"""
        # Startup
        logger.info(f"Initializing {settings.APP_NAME} ({settings.TERMINAL_ID})")
        context = build_context(settings, clock=clock)
        await context.start()
        manager.attach(context.event_bus)
        app.state.context = context

        yield

        # Shutdown
        logger.info(f"Shutting down {settings.APP_NAME}")
        manager.detach(context.event_bus)
        await context.stop()

    app = FastAPI(
        title=f"{settings.APP_NAME} API",
        description="Table sessions, billing and cross-terminal replication for a gaming venue",
        version=__version__,
        lifespan=lifespan,
    )

    # Configure middleware stack
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    prefix = settings.API_V1_PREFIX
    app.include_router(tables.router, prefix=f"{prefix}/tables", tags=["tables"])
    app.include_router(table_sessions.router, prefix=f"{prefix}/table-sessions", tags=["table-sessions"])
    app.include_router(promotions.router, prefix=f"{prefix}/promotions", tags=["promotions"])
    app.include_router(payments.router, prefix=f"{prefix}/payments", tags=["payments"])
    app.include_router(customers.router, prefix=f"{prefix}/customers", tags=["customers"])
    app.include_router(reservations.router, prefix=f"{prefix}/reservations", tags=["reservations"])
    app.include_router(operators.router, prefix=f"{prefix}/operators", tags=["operators"])
    app.include_router(websockets.router, prefix=f"{prefix}/ws", tags=["websockets"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        context = app.state.context
        return {
            "status": "healthy",
            "service": "gamehall-terminal",
            "terminal_id": settings.TERMINAL_ID,
            "peers": len(context.broadcaster.peers()),
            "screens": manager.get_connection_count(),
        }

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "message": f"{settings.APP_NAME} API",
            "version": __version__,
            "docs": "/docs",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "gamehall.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENVIRONMENT == "development",
        log_level="info",
    )
