"""
Cosmofy主入口
初始化获取管线、维护调度器，并演示网关各入口
"""

import asyncio
import sys

from loguru import logger

from cosmofy.datastore.engine import close_db, init_db
from cosmofy.datastore.store import SqlRecordStore
from cosmofy.gateway import Gateway
from cosmofy.scheduler import maintenance_scheduler
from cosmofy.services.pipeline import build_pipeline, close_pipeline, set_pipeline
from cosmofy.settings import global_settings


async def main() -> None:
    """主函数"""
    logger.remove()
    logger.add(sys.stderr, level=global_settings.log_level)
    logger.info("Starting Cosmofy...")

    try:
        if global_settings.use_database:
            logger.info("Initializing database...")
            session_factory = await init_db()
            set_pipeline(build_pipeline(store=SqlRecordStore(session_factory)))
            logger.info("Database initialized successfully")

        logger.info("Starting maintenance scheduler...")
        maintenance_scheduler.start()

        gateway = Gateway()
        logger.info("Performing initial acquisitions...")
        for name, result in [
            ("apod", await gateway.apod()),
            ("iss_position", await gateway.iss_position()),
            ("iss_crew", await gateway.iss_crew()),
            ("panchang", await gateway.panchang_day()),
            ("news", await gateway.news(limit=5)),
        ]:
            logger.info(
                f"{name}: {len(result.data)} records "
                f"(origin={result.origin}, stale={result.is_stale})"
            )

        logger.info("Cosmofy is running. Press Ctrl+C to stop.")
        while True:
            await asyncio.sleep(60)

    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down...")
    except Exception as e:
        logger.error(f"Error in main loop: {e}")
    finally:
        logger.info("Stopping maintenance scheduler...")
        if maintenance_scheduler.is_running():
            maintenance_scheduler.stop()

        await close_pipeline()

        if global_settings.use_database:
            logger.info("Closing database connections...")
            await close_db()

        logger.info("Cosmofy stopped")


if __name__ == "__main__":
    asyncio.run(main())
