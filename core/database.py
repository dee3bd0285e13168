"""
Database Management and Configuration.

This module sets up the asynchronous database connection that backs the
caption gallery's tabular store (the `captions` and `images` tables). It uses
SQLAlchemy with `asyncio` support and SQLModel for data modeling.

Key Components:
- `engine`: The SQLAlchemy async engine, configured from the `DATABASE_URL`
  environment variable. SQLite (via `aiosqlite`) is the development default and
  PostgreSQL (via `asyncpg`) is supported for production.
- `async_session`: An asynchronous session factory handed to the caption store.
- `create_db_and_tables`: A startup function that creates all tables from the
  SQLModel metadata.
- `get_database_info` / `health_check`: Diagnostics for the monitoring router.
"""

import os
import logging
from sqlalchemy import text
from sqlmodel import SQLModel
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.pool import AsyncAdaptedQueuePool
from sqlalchemy.ext.asyncio import async_sessionmaker

from core.exceptions import DatabaseConnectionError

# Registers the tables on SQLModel.metadata
from core import models  # noqa: F401

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./caption_gallery.db")

logger = logging.getLogger(__name__)

if DATABASE_URL.startswith("sqlite"):
    engine = create_async_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        echo=False,  # Set to True for SQL debugging
        poolclass=AsyncAdaptedQueuePool,
    )
else:
    engine = create_async_engine(
        DATABASE_URL,
        poolclass=AsyncAdaptedQueuePool,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,  # Validate connections before use
        echo=False,
    )

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def _database_type() -> str:
    return "postgresql" if "postgresql" in DATABASE_URL else "sqlite"


async def create_db_and_tables():
    """
    Initialize the database and create all tables.
    Called during application startup.
    """
    try:
        async with engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        logger.info("Caption gallery database tables created successfully")
    except Exception as e:
        logger.error(f"Failed to create caption gallery database tables: {e}")
        raise DatabaseConnectionError("create_all", str(e)) from e


async def get_database_info():
    """
    Get basic database information for health checks.
    """
    try:
        async with async_session() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
            connection_healthy = True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        connection_healthy = False

    return {
        "database_url": DATABASE_URL.split("@")[1]
        if "@" in DATABASE_URL
        else "masked",  # Hide credentials
        "connection_healthy": connection_healthy,
        "database_type": _database_type(),
        "engine_info": {
            "pool_size": getattr(engine.pool, "size", lambda: "unknown")(),
            "checked_out": getattr(engine.pool, "checkedout", lambda: "unknown")(),
        },
    }


async def health_check():
    """
    Check connectivity and that both gallery tables are readable.
    """
    try:
        async with async_session() as session:
            await session.execute(text("SELECT 1"))
            await session.execute(text("SELECT COUNT(*) FROM captions"))
            await session.execute(text("SELECT COUNT(*) FROM images"))

        return {
            "status": "healthy",
            "database_type": _database_type(),
            "tables_accessible": True,
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
            "database_type": _database_type(),
        }
