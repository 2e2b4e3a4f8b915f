"""
Database Configuration for TimeTrack Billing

Async SQLAlchemy engine and session management for the Supabase Postgres
database that holds ``user_subscriptions`` and ``stripe_customers``.
"""

import re
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional
from urllib.parse import quote_plus

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
    AsyncEngine,
)
from sqlalchemy import text

from app.config.settings import get_settings
from app.infrastructure.exceptions import ConfigurationError


def resolve_database_url() -> str:
    """
    Get the asyncpg connection URL.

    Uses DATABASE_URL when set, otherwise derives it from
    SUPABASE_URL + SUPABASE_PASSWORD.
    """
    settings = get_settings()

    if settings.database_url:
        database_url = settings.database_url
        if database_url.startswith("postgresql://"):
            database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
        elif database_url.startswith("postgres://"):
            database_url = database_url.replace("postgres://", "postgresql+asyncpg://", 1)
        return database_url

    if not settings.supabase_url or not settings.supabase_password:
        raise ConfigurationError(
            "Either DATABASE_URL or (SUPABASE_URL + SUPABASE_PASSWORD) is required",
            missing_keys=["DATABASE_URL", "SUPABASE_PASSWORD"],
        )

    match = re.match(r'https?://([^.]+)\.supabase\.co', settings.supabase_url)
    if not match:
        raise ConfigurationError(f"Invalid SUPABASE_URL format: {settings.supabase_url}")

    project_ref = match.group(1)
    password = quote_plus(settings.supabase_password)

    return (
        f"postgresql+asyncpg://postgres:{password}"
        f"@db.{project_ref}.supabase.co:5432/postgres"
    )


class DatabaseManager:
    """
    Owns the async engine and session factory.

    The engine is created lazily on first use so importing the app never
    opens a connection.
    """

    def __init__(self, database_url: Optional[str] = None):
        self._database_url = database_url
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def engine(self) -> AsyncEngine:
        """Get or create async engine with connection pooling."""
        if self._engine is None:
            self._initialize_engine()
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Get or create session factory."""
        if self._session_factory is None:
            self._initialize_engine()
        return self._session_factory

    def _initialize_engine(self) -> None:
        settings = get_settings()

        self._engine = create_async_engine(
            self._database_url or resolve_database_url(),
            echo=settings.database_echo,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
            pool_pre_ping=True,
        )

        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    async def close(self) -> None:
        """Close engine and dispose of connection pool."""
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None


# Global instance (lazy initialization)
_db_manager: Optional[DatabaseManager] = None


def get_db_manager() -> DatabaseManager:
    """Get or create the database manager instance."""
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Context manager for database sessions.

    Commits on clean exit, rolls back on any exception.

    Usage:
        async with get_session_context() as session:
            result = await session.execute(query)
    """
    db = get_db_manager()
    async with db.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Verify the connection pool works (called on app startup)."""
    db = get_db_manager()
    async with db.session_factory() as session:
        await session.execute(text("SELECT 1"))


async def close_db() -> None:
    """Close database connection pool (called on app shutdown)."""
    db = get_db_manager()
    await db.close()
