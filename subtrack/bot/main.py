from __future__ import annotations

import asyncio

from aiogram import Bot
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from subtrack.bot.notifier import TelegramReminderSender
from subtrack.bot.scheduler import ApschedulerNotifier, ReminderSyncService
from subtrack.core import get_settings
from subtrack.core.logging import configure_logging
from subtrack.db import get_api_client
from subtrack.engine.reminders import ReminderScheduler
from subtrack.engine.service import SubscriptionService


async def _run() -> None:
    settings = get_settings()
    logger = configure_logging()

    bot: Bot | None = None
    sender = None
    if settings.bot_token and settings.reminder_chat_id is not None:
        bot = Bot(
            token=settings.bot_token,
            default=DefaultBotProperties(parse_mode=ParseMode.HTML),
        )
        sender = TelegramReminderSender(bot, settings.reminder_chat_id)
    else:
        logger.warning("BOT_TOKEN or REMINDER_CHAT_ID not set; reminders will not be delivered")

    client = get_api_client()
    scheduler = AsyncIOScheduler(timezone=settings.timezone)
    notifier = ApschedulerNotifier(scheduler, sender)
    reminders = ReminderScheduler(notifier, settings.preferences())
    service = SubscriptionService(client, reminders)
    sync = ReminderSyncService(
        service,
        scheduler,
        notifier=notifier,
        interval_minutes=settings.resync_interval_minutes,
        timezone=settings.timezone,
    )

    logger.info("Starting reminder runner in %s environment", settings.environment)
    await sync.start()

    try:
        await asyncio.Event().wait()
    finally:
        # Graceful shutdown
        await sync.stop()
        await client.close()
        if bot is not None:
            await bot.session.close()


def main() -> None:
    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
