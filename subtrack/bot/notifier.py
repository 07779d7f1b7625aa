from __future__ import annotations

import logging

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError

from subtrack.engine.reminders import Notice

logger = logging.getLogger(__name__)


class TelegramReminderSender:
    """
    Delivers fired reminders and digest notices as Telegram messages to one chat.
    """

    def __init__(self, bot: Bot, chat_id: int) -> None:
        self.bot = bot
        self.chat_id = chat_id

    async def __call__(self, trigger: Notice) -> None:
        text = f"<b>{trigger.title}</b>\n{trigger.body}"
        try:
            await self.bot.send_message(chat_id=self.chat_id, text=text, parse_mode="HTML")
        except TelegramAPIError as exc:
            # A lost reminder must not take the scheduler down
            logger.error("Failed to deliver reminder %s: %s", trigger.trigger_id, exc)
            return
        logger.debug("Delivered %s", trigger.trigger_id)
