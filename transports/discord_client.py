# Discord transport client (webhook delivery)
from typing import List, Optional

import aiohttp
import discord


class DiscordClient:
    def __init__(self, webhooks: List[str], logger, username: str = "Tiltify"):
        self.webhooks = list(webhooks)
        self.logger = logger
        self.username = username

    async def send_message(self, content: str, avatar_url: Optional[str] = None):
        if not content:
            self.logger.warning("No content for Discord alert, skipping")
            return
        async with aiohttp.ClientSession() as session:
            for webhook_url in self.webhooks:
                try:
                    await self.send_webhook(webhook_url, content, avatar_url=avatar_url, session=session)
                except Exception as exc:
                    self.logger.error(f"Failed to send alert to Discord webhook: {exc}", exc_info=True)

    async def send_webhook(self, webhook_url: str, content: str, username: Optional[str] = None,
                           avatar_url: Optional[str] = None, session: Optional[aiohttp.ClientSession] = None):
        """Send a message via Discord webhook, using aiohttp session if provided."""
        close_session = False
        if session is None:
            session = aiohttp.ClientSession()
            close_session = True
        try:
            webhook = discord.Webhook.from_url(webhook_url, session=session)
            await webhook.send(
                content,
                username=username or self.username,
                avatar_url=avatar_url,
            )
            self.logger.info("Sent donation alert via Discord webhook")
        finally:
            if close_session:
                await session.close()
