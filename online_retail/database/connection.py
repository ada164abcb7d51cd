"""
Database Connection Management

Async SQLAlchemy 2.0 engine lifecycle for the batch pipeline.
Every pipeline step borrows one connection and runs inside one transaction.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

import polars as pl
import structlog
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.sql import Executable
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    create_async_engine,
)

from online_retail.config import get_settings

logger = structlog.get_logger(__name__)

# Global engine
_engine: Optional[AsyncEngine] = None


def _ensure_sqlite_directory(url: str) -> None:
    """Create the parent directory of a file-based SQLite database"""
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite" and parsed.database and parsed.database != ":memory:":
        Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)


async def init_database(url: Optional[str] = None) -> AsyncEngine:
    """
    Initialize the database engine.

    Args:
        url: Override the configured database URL

    Returns:
        AsyncEngine: The initialized database engine
    """
    global _engine

    if _engine is not None:
        logger.warning("Database already initialized")
        return _engine

    settings = get_settings()
    database_url = url or settings.database.url
    _ensure_sqlite_directory(database_url)

    _engine = create_async_engine(
        database_url,
        echo=settings.database.echo,
        future=True,
    )

    # Verify connection
    try:
        async with _engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info(
            "Database connection established",
            backend=_engine.url.get_backend_name(),
            database=_engine.url.database,
        )
    except Exception as e:
        logger.error("Failed to connect to database", error=str(e))
        await _engine.dispose()
        _engine = None
        raise

    return _engine


async def close_database() -> None:
    """
    Close the database engine.

    Disposes of all pooled connections.
    """
    global _engine

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        logger.info("Database connection pool closed")


def get_engine() -> AsyncEngine:
    """
    Get the database engine.

    Returns:
        AsyncEngine: The active database engine

    Raises:
        RuntimeError: If database is not initialized
    """
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _engine


@asynccontextmanager
async def get_connection() -> AsyncGenerator[AsyncConnection, None]:
    """
    Get a connection wrapped in a transaction.

    Commits when the block exits normally and rolls back on error.

    Example:
        async with get_connection() as conn:
            await derive_schema(conn)
    """
    engine = get_engine()
    async with engine.begin() as conn:
        try:
            yield conn
        except Exception as e:
            logger.error("Transaction failed, rolling back", error=str(e), error_type=type(e).__name__)
            raise


async def fetch_frame(conn: AsyncConnection, statement: Executable) -> pl.DataFrame:
    """Execute a statement and collect the rows into a DataFrame"""
    result = await conn.execute(statement)
    columns = list(result.keys())
    rows = [tuple(row) for row in result.fetchall()]
    return pl.DataFrame(
        rows,
        schema=columns,
        orient="row",
        infer_schema_length=None,
        strict=False,
    )
