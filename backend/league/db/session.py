"""
Database Session Management

Builds the async engine and session factory. The application builds one
pair at startup and hands the factory to every service.
"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from league.models.base import Base


# =============================================================================
# Engine
# =============================================================================

def _get_async_url(url: str) -> str:
    """Convert sync database URL to async version."""
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///")
    elif url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://")
    return url


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create async engine for the given URL.

    Args:
        database_url: Sync or async database URL
        echo: Log emitted SQL

    Returns:
        Configured AsyncEngine
    """
    async_url = _get_async_url(database_url)

    if async_url.startswith("sqlite"):
        engine = create_async_engine(
            async_url,
            echo=echo,
            connect_args={"check_same_thread": False}
        )
        # SQLite ignores ON DELETE CASCADE unless asked per connection
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return engine
    elif async_url.startswith("postgresql"):
        # PostgreSQL with connection pool settings
        return create_async_engine(
            async_url,
            echo=echo,
            pool_size=5,
            max_overflow=10,
            pool_timeout=30,
            pool_recycle=1800,  # 30 minutes
        )
    return create_async_engine(async_url, echo=echo)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Async session factory bound to engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


# =============================================================================
# Initialization
# =============================================================================

async def init_db(engine: AsyncEngine) -> None:
    """Initialize database tables."""
    # Import all models to register them
    import league.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
