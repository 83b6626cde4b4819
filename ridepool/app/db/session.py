"""
Database session configuration.

One async engine per process. Ride and request writes go through the
request session handed out by ``get_db``; collaborators that must write
after that session has committed (the in-app notification sink, the
database ride-id allocator) open their own from ``get_session_factory``.
"""

from typing import Any, Dict

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from ridepool.app.core.config import settings


def engine_options(database_url: str) -> Dict[str, Any]:
    """Engine keyword arguments for ``database_url``.

    Pool sizing only applies to server databases; SQLite (local runs) keeps
    SQLAlchemy's default pool for its driver.
    """
    options: Dict[str, Any] = {"echo": settings.db_echo}
    if make_url(database_url).get_backend_name() != "sqlite":
        options["pool_size"] = settings.db_pool_size
        options["max_overflow"] = settings.db_max_overflow
        options["pool_pre_ping"] = True
    return options


engine = create_async_engine(settings.database_url, **engine_options(settings.database_url))

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

Base = declarative_base()


async def get_db():
    """
    FastAPI dependency for database sessions.

    The ride engine commits its own transactions; anything left open when the
    request ends is rolled back on close.
    """
    async with AsyncSessionLocal() as session:
        yield session


def get_session_factory() -> async_sessionmaker:
    """Session factory used by collaborators that write outside the request session."""
    return AsyncSessionLocal
