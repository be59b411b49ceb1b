"""
Quiz Assessment Platform
Database connection and session management
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy import event, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
    AsyncEngine
)
from sqlalchemy.pool import StaticPool

from .models import Base, Admin
from ...config import Settings

# Configure logging
logger = logging.getLogger(__name__)

# Closes the guard/write race: a second attempt for the same pair fails on insert
ATTEMPT_UNIQUE_INDEX_DDL = (
    "CREATE UNIQUE INDEX IF NOT EXISTS uq_quiz_attempts_student_quiz "
    "ON quiz_attempts (student_id, quiz_id)"
)


def is_memory_database(database_url: str) -> bool:
    return ":memory:" in database_url or "mode=memory" in database_url


def create_async_engine_instance(settings: Settings) -> AsyncEngine:
    """Create asynchronous SQLAlchemy engine"""
    database_url = settings.database_url

    engine_kwargs = {
        "echo": settings.DB_ECHO,
    }

    if database_url.startswith("sqlite"):
        # SQLite specific configuration
        engine_kwargs["connect_args"] = {
            "check_same_thread": False,
            "timeout": 20
        }
        # An in-memory database lives only as long as its single connection.
        # File databases keep the default pool: one connection per session.
        if is_memory_database(database_url):
            engine_kwargs["poolclass"] = StaticPool
    else:
        # PostgreSQL specific configuration
        engine_kwargs.update({
            "pool_size": settings.DB_POOL_SIZE,
            "max_overflow": settings.DB_MAX_OVERFLOW,
            "pool_timeout": 30,
            "pool_recycle": 3600,
            "pool_pre_ping": True
        })

    return create_async_engine(database_url, **engine_kwargs)


def setup_event_listeners(engine: AsyncEngine) -> None:
    """Set up per-connection pragmas for SQLite"""
    if engine.dialect.name != "sqlite":
        return

    in_memory = is_memory_database(str(engine.url))

    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        # Enable foreign keys
        cursor.execute("PRAGMA foreign_keys=ON")
        if not in_memory:
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()


class Database:
    """Engine and session factory, built once per application"""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine = create_async_engine_instance(settings)
        setup_event_listeners(self.engine)

        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=True
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get async database session with automatic cleanup"""
        async with self.session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    async def create_tables(self, enforce_unique_attempts: bool = True) -> None:
        """Create database tables and, optionally, the attempt uniqueness index"""
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
                if enforce_unique_attempts:
                    await conn.execute(text(ATTEMPT_UNIQUE_INDEX_DDL))

            logger.info("✅ Database tables created successfully")

        except SQLAlchemyError as e:
            logger.error(f"❌ Table creation failed: {e}")
            raise

    async def initialize_default_data(self) -> None:
        """Create the bootstrap admin account when configured and missing"""
        username = self.settings.BOOTSTRAP_ADMIN_USERNAME
        password = self.settings.BOOTSTRAP_ADMIN_PASSWORD
        if not username or not password:
            return

        from ..api.auth import hash_password

        async with self.session() as session:
            result = await session.execute(
                select(Admin).where(Admin.username == username)
            )
            if result.scalar_one_or_none():
                return

            session.add(Admin(
                username=username,
                password_hash=hash_password(password, self.settings.BCRYPT_ROUNDS)
            ))
            await session.commit()
            logger.info(f"Created bootstrap admin '{username}'")

    async def check_health(self) -> dict:
        """Check database connection health"""
        try:
            async with self.session() as session:
                result = await session.execute(text("SELECT 1"))
                healthy = result.scalar() == 1
        except SQLAlchemyError as e:
            logger.warning(f"⚠️ Database health check failed: {e}")
            healthy = False

        return {"database": "connected" if healthy else "unavailable"}

    async def dispose(self) -> None:
        """Close all database connections"""
        await self.engine.dispose()
        logger.info("✅ Database engine disposed")


async def init_database(database: Database) -> None:
    """Create schema and default data at startup"""
    logger.info("Initializing database...")
    await database.create_tables(database.settings.ENFORCE_UNIQUE_ATTEMPTS)
    await database.initialize_default_data()
    logger.info("✅ Database initialized successfully")


# Dependency for FastAPI
async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions"""
    database: Database = request.app.state.database
    async with database.session() as session:
        yield session


# Export main functions
__all__ = [
    "ATTEMPT_UNIQUE_INDEX_DDL",
    "Database",
    "is_memory_database",
    "create_async_engine_instance",
    "init_database",
    "get_db",
]
