"""
Caption Gallery API - Main Application Entry Point.

This module initializes and configures the FastAPI application for the Caption
Gallery API. It sets up logging, the database, the authentication service,
middleware and routes.

The service lists captions paired with images, paginates them, and gates a
protected route and the caption creation form behind third-party sign-in.

Key Responsibilities:
- Configure and launch the FastAPI application.
- Set up middleware for correlation, error handling, timing, security headers
  and session resolution.
- Create the `captions` and `images` tables and the authentication service at
  startup.
- Mount the health, authentication, gallery and WebSocket routers.
"""

import os
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from core.database import create_db_and_tables, engine
from api.endpoints import router, websocket_router
from api.auth_endpoints import router as auth_router
from api.health_router import health_router, monitoring_router
from core.logging_config import setup_logging, get_logger
from core.middleware import (
    CorrelationMiddleware,
    ErrorHandlingMiddleware,
    PerformanceMiddleware,
)
from core.security_middleware import SessionAuthMiddleware, SecurityHeadersMiddleware
from core.auth import init_auth_service


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging()
    logger = get_logger("api.startup")
    try:
        await create_db_and_tables()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")

    init_auth_service()
    logger.info("Authentication service initialized")

    logger.info("Service startup completed")
    yield

    # Cleanup on shutdown
    logger.info("Shutting down Caption Gallery API")
    await engine.dispose()
    logger.info("Cleanup completed")


app = FastAPI(
    title="Caption Gallery API",
    description="Paginated caption gallery with third-party sign-in",
    version="1.0.0",
    lifespan=lifespan,
)


def _cors_origins():
    configured = os.getenv("CORS_ORIGINS")
    if configured:
        return [origin.strip() for origin in configured.split(",") if origin.strip()]
    return ["http://localhost:3000", "http://localhost:3001"]


# Registered innermost first; CorrelationMiddleware ends up outermost
app.add_middleware(ErrorHandlingMiddleware)
app.add_middleware(SessionAuthMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(PerformanceMiddleware)
app.add_middleware(CorrelationMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health routers first (no authentication required for monitoring)
app.include_router(health_router)
app.include_router(monitoring_router)

app.include_router(auth_router)
app.include_router(websocket_router)
app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8002")),
        reload=True,
        log_level="info",
    )
