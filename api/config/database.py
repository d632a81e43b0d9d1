"""
Database configuration with SQLAlchemy async support
Local store for the whitelist, activation codes and their audit trail
"""
import asyncio
from typing import AsyncGenerator, Optional
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy import event, text
from sqlalchemy.exc import DisconnectionError, OperationalError

from config.settings import get_settings
from utils.logging import get_logger
from models.database.base import Base

logger = get_logger(__name__)
settings = get_settings()


def to_async_url(url: str) -> str:
    """Map a plain database URL to its async driver"""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite://") and not url.startswith("sqlite+aiosqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


class DatabaseManager:
    """Async database manager with proper connection handling and cancellation support"""

    def __init__(self):
        self.engine = None
        self.async_session_factory = None
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self, database_url: Optional[str] = None):
        """Initialize database engine and session factory"""
        if self._initialized:
            return

        try:
            url = to_async_url(database_url or settings.database_url)

            if url.startswith("sqlite"):
                self.engine = create_async_engine(url, echo=False, future=True)

                @event.listens_for(self.engine.sync_engine, "connect")
                def set_sqlite_pragmas(dbapi_connection, connection_record):
                    cursor = dbapi_connection.cursor()
                    try:
                        cursor.execute("PRAGMA foreign_keys=ON")
                    finally:
                        cursor.close()
            else:
                self.engine = create_async_engine(
                    url,
                    pool_pre_ping=True,
                    echo=False,
                    future=True,
                    pool_size=5,
                    max_overflow=0,
                    pool_recycle=3600,
                    pool_timeout=30,
                    pool_use_lifo=True,
                    connect_args={
                        "server_settings": {
                            "application_name": "field_survey_console",
                            "timezone": "UTC",
                            "statement_timeout": "30000",
                        },
                        "command_timeout": 30
                    }
                )

                @event.listens_for(self.engine.sync_engine, "invalidate")
                def receive_invalidate(dbapi_connection, connection_record, exception):
                    """Handle connection invalidation"""
                    logger.warning(f"Connection invalidated: {exception}")

            self.async_session_factory = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,
            )

            self._initialized = True
            logger.info("Database initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")
            raise

    async def test_connection(self) -> bool:
        """Test database connection"""
        if not self.engine:
            return False
        try:
            async with self.engine.begin() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database connection test failed: {e}")
            return False

    async def create_tables(self):
        """Create all database tables"""
        import models.database  # noqa: F401  registers every mapped table

        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables created successfully")
        except Exception as e:
            logger.error(f"Failed to create tables: {e}")
            raise

    async def close(self):
        """Close database connections properly"""
        if self.engine:
            try:
                await asyncio.wait_for(self.engine.dispose(), timeout=30.0)
                logger.info("Database connections closed")
            except asyncio.TimeoutError:
                logger.warning("Database close operation timed out")
            finally:
                self.engine = None
                self.async_session_factory = None
                self._initialized = False


db_manager = DatabaseManager()


async def init_db():
    """Initialize database on application startup"""
    await db_manager.initialize()
    await db_manager.create_tables()


async def close_db():
    """Close database on application shutdown"""
    await db_manager.close()


@asynccontextmanager
async def get_db_context():
    """Context manager for database session with proper cancellation handling"""
    if not db_manager.is_initialized:
        await db_manager.initialize()

    session = db_manager.async_session_factory()
    try:
        yield session

        if session.in_transaction():
            await session.commit()

    except asyncio.CancelledError:
        logger.warning("Database session cancelled")
        if session.in_transaction():
            await session.rollback()
        raise

    except (DisconnectionError, OperationalError) as e:
        logger.error(f"Database connection error: {e}")
        if session.in_transaction():
            await session.rollback()
        raise

    except Exception:
        if session.in_transaction():
            await session.rollback()
        raise

    finally:
        try:
            await asyncio.wait_for(session.close(), timeout=10.0)
        except asyncio.TimeoutError:
            logger.warning("Session close operation timed out")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting database session"""
    async with get_db_context() as session:
        yield session


async def test_connection() -> bool:
    """Test database connection health"""
    return await db_manager.test_connection()
