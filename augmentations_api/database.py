"""
Database context for the Augmentations API (SQLAlchemy async).

ApplicationDbContext owns the async engine and the session factory. It is
registered as a singleton; each request receives its own AsyncSession created
from it (scoped lifetime).
"""

from typing import Optional

import structlog
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def resolve_database_url(connection_string: str, provider: str) -> URL:
    """
    Apply the configured provider driver to a connection string.

    DSNs that name a driver ("sqlite+aiosqlite://...") are kept as they are.
    DSNs that only name a dialect get the provider's driver when the dialects
    match ("postgresql://" -> "postgresql+asyncpg://"); "postgres://" is
    accepted as an alias of "postgresql://".

    Args:
        connection_string: Database DSN
        provider: Dialect and driver, e.g. "postgresql+asyncpg"

    Returns:
        SQLAlchemy URL
    """
    url = make_url(connection_string)

    if url.drivername == "postgres":
        url = url.set(drivername="postgresql")

    if "+" not in url.drivername:
        provider_dialect = provider.split("+", 1)[0]
        if url.drivername == provider_dialect:
            url = url.set(drivername=provider)

    return url


class ApplicationDbContext:
    """Owns the engine and hands out sessions."""

    def __init__(
        self,
        connection_string: str,
        provider: str = "postgresql+asyncpg",
        pool_size: int = 10,
        max_overflow: int = 10,
        pool_timeout: int = 30,
        echo: bool = False,
    ):
        """
        Initialize the database context.

        The engine connects lazily; no connection is opened here.

        Args:
            connection_string: Database DSN
            provider: Dialect and driver applied to DSNs without a driver
            pool_size: Connection pool size (ignored by SQLite)
            max_overflow: Max connections above pool size (ignored by SQLite)
            pool_timeout: Pool connection timeout in seconds (ignored by SQLite)
            echo: Echo SQL statements to logs
        """
        self.url = resolve_database_url(connection_string, provider)

        engine_options = {"echo": echo, "pool_pre_ping": True}
        if self.url.get_backend_name() != "sqlite":
            engine_options.update(
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=pool_timeout,
            )

        self.engine: AsyncEngine = create_async_engine(self.url, **engine_options)
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        logger.info(
            "database_context_created",
            url=self.url.render_as_string(hide_password=True),
        )

    def create_session(self) -> AsyncSession:
        """Create a new session; the caller (the request scope) closes it."""
        return self.session_factory()

    async def create_schema(self) -> None:
        """Create all tables that don't exist yet."""
        # Importing the models registers their tables on Base.metadata.
        from augmentations_api.models import augmentation, identity  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info("database_schema_created", tables=sorted(Base.metadata.tables))

    async def check_connection(self) -> Optional[str]:
        """Return None when the database answers, otherwise the error text."""
        try:
            async with self.engine.connect() as conn:
                await conn.exec_driver_sql("SELECT 1")
            return None
        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            return str(e)

    async def aclose(self) -> None:
        """Dispose the engine and its pooled connections."""
        await self.engine.dispose()
        logger.info("database_engine_disposed")
