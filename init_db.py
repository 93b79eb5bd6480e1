import asyncio
import logging

from keystead.app.db import init_models
from keystead.app.db.base import engine


async def reset_models():
    # Drops every table first - DEV MODE ONLY
    await init_models(engine, drop=True)
    await engine.dispose()
    print(">>> Tables Created Successfully!")

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(reset_models())
