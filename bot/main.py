import asyncio
import logging

import structlog
from aiogram import Bot, Dispatcher
from aiogram.fsm.storage.memory import MemoryStorage
from aiogram.fsm.storage.redis import RedisStorage
from redis.asyncio import Redis

import config
from bot.handlers_checkin import create_checkin_router
from checkin_engine.logging import configure_logging
from checkin_engine.settings import CheckinSettings
from connectors.checkin_api import CheckinApiConnector
from schemas.checkin_api_models import ApiCredentials

logger = structlog.get_logger("checkin.bot")


async def main() -> None:
    if not config.TELEGRAM_TOKEN:
        raise ValueError("TELEGRAM_TOKEN is not set. Fill .env file first.")

    configure_logging(logging.INFO)

    storage = MemoryStorage()
    redis_client = None
    if config.USE_REDIS:
        redis_client = Redis.from_url(config.REDIS_URL)
        storage = RedisStorage(redis=redis_client)

    connector = CheckinApiConnector(
        ApiCredentials(
            base_url=config.CHECKIN_API_BASE_URL,
            token=config.CHECKIN_API_TOKEN or None,
            operator_code=config.CHECKIN_OPERATOR_CODE or None,
        ),
        timeout_seconds=config.CHECKIN_API_TIMEOUT_SECONDS,
        max_retries=config.CHECKIN_API_MAX_RETRIES,
    )

    bot = Bot(token=config.TELEGRAM_TOKEN)
    dp = Dispatcher(storage=storage)
    dp.include_router(
        create_checkin_router(
            connector,
            settings=CheckinSettings(),
            capture_dir=config.CHECKIN_CAPTURE_DIR or None,
        )
    )

    logger.info("bot_starting", storage="redis" if redis_client is not None else "memory")
    try:
        await dp.start_polling(bot)
    finally:
        await connector.aclose()
        if redis_client is not None:
            await redis_client.aclose()


if __name__ == "__main__":
    asyncio.run(main())
