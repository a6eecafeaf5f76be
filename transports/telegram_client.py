# Telegram transport client
from typing import List

from telegram import Bot


class TelegramClient:
    def __init__(self, bot: Bot, chat_ids: List[int], logger):
        self.bot = bot
        self.chat_ids = list(chat_ids)
        self.logger = logger

    @classmethod
    def from_token(cls, token: str, chat_ids: List[int], logger) -> "TelegramClient":
        return cls(Bot(token=token), chat_ids, logger)

    async def start(self):
        self.logger.info("Starting Telegram bot")
        await self.bot.initialize()

    async def stop(self):
        await self.bot.shutdown()

    async def send_message(self, content: str):
        if not content:
            return
        for chat_id in self.chat_ids:
            try:
                await self.bot.send_message(chat_id=chat_id, text=content)
            except Exception as exc:
                self.logger.error(f"Failed to send alert to Telegram chat {chat_id}: {exc}", exc_info=True)
