"""
Initialize database schema from models
"""
import asyncio

from config.database import db_manager
from models.database import Base, User, WhitelistEntry, ActivationCode, ActivationAuditLog  # noqa: F401
from utils.logging import get_logger

logger = get_logger(__name__)


async def init_db():
    """Initialize database schema"""
    try:
        logger.info("Initializing database manager...")
        await db_manager.initialize()

        logger.info("Creating database schema...")
        async with db_manager.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info(f"Database schema initialized: {', '.join(sorted(Base.metadata.tables))}")
    finally:
        await db_manager.close()


if __name__ == "__main__":
    asyncio.run(init_db())
