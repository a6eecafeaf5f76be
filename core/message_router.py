# Routes donation events from the event bus to the chat transports
from typing import Any, Dict, Optional, Sequence, Tuple

from core import variables
from core.config import DEFAULT_ALERT_TEMPLATE
from core.event_bus import EventBus, TriggeredEvent
from core.events import DONATION_EVENT_ID, EVENT_SOURCE_ID


class MessageRouter:
    def __init__(self, logger, discord_client=None, telegram_client=None, template: str = DEFAULT_ALERT_TEMPLATE):
        self.logger = logger
        self.discord_client = discord_client
        self.telegram_client = telegram_client
        self.template = template

    def attach(self, bus: EventBus, filters: Sequence[Tuple[Any, Any]] = ()):
        bus.subscribe(EVENT_SOURCE_ID, DONATION_EVENT_ID, self.on_donation, filters)

    async def on_donation(self, event: TriggeredEvent):
        await self.relay_donation_alert(event.meta)

    def format_alert(self, meta: Optional[Dict[str, Any]]) -> str:
        return variables.render(self.template, meta)

    async def relay_donation_alert(self, meta: Dict[str, Any]) -> str:
        message = self.format_alert(meta)
        if self.discord_client is not None:
            try:
                await self.discord_client.send_message(message)
            except Exception as exc:
                self.logger.error(f"Failed to relay donation alert to Discord: {exc}", exc_info=True)
        if self.telegram_client is not None:
            try:
                await self.telegram_client.send_message(message)
            except Exception as exc:
                self.logger.error(f"Failed to relay donation alert to Telegram: {exc}", exc_info=True)
        self.logger.info(f"Donation alert sent: {message}")
        return message
