"""Database engine and session management."""
from typing import Any, Dict

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from event_payments.database.models import Base


def build_engine(database_url: str, echo: bool = False, **pool_options: Any) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    Pool sizing options are only passed to server databases; SQLite uses
    its own pool class.
    """
    kwargs: Dict[str, Any] = {"echo": echo}
    if not make_url(database_url).get_backend_name().startswith("sqlite"):
        kwargs.update(pool_options)
        kwargs["pool_pre_ping"] = True
        kwargs["pool_recycle"] = 3600
    return create_async_engine(database_url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """
    Initialize database tables.

    Creates all tables defined in models if they don't exist.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
