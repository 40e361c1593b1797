"""Infrastructure resources: database engine and sessions.

This module is part of the infra layer and must not import from application features.
"""
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase


class DatabaseResource:
    """Database resource for dependency injection."""

    def __init__(self, database_url: str):
        self.database_url = database_url
        self.engine = None
        self.session_factory = None

    @property
    def initialized(self) -> bool:
        return self.engine is not None

    async def init(self):
        """Initialize database connection."""
        if self.initialized:
            return self
        self.engine = create_async_engine(
            self.database_url,
            echo=False,
            pool_pre_ping=True,
            pool_recycle=3600,
        )
        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        return self

    async def create_schema(self, base: type[DeclarativeBase]) -> None:
        """Create missing tables for every entity registered on `base`."""
        if self.engine is None:
            raise RuntimeError("Database not initialized. Call init() first.")
        async with self.engine.begin() as conn:
            await conn.run_sync(base.metadata.create_all)

    def get_session(self) -> AsyncSession:
        """Get database session (synchronous accessor)."""
        if self.session_factory is None:
            raise RuntimeError("Database not initialized. Call init() first.")
        return self.session_factory()

    async def shutdown(self):
        """Shutdown database connection."""
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self.session_factory = None
