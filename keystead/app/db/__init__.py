import asyncio
import logging
import sys

from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)


async def init_models(engine: AsyncEngine, drop: bool = False) -> None:
    """Create every table registered on Base.metadata."""
    from keystead.app.db.base import Base
    # Register the tables on Base.metadata
    import keystead.app.models  # noqa: F401

    try:
        async with engine.begin() as conn:
            if drop:
                await conn.run_sync(Base.metadata.drop_all)

            logger.info("Creating database tables...")
            await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables ready.")
    except Exception as e:
        logger.error(f"Table creation failed: {e}")
        raise


if __name__ == "__main__":
    from keystead.app.db.session import engine

    logging.basicConfig(level=logging.INFO)
    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    asyncio.run(init_models(engine))
