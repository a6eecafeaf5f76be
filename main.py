# Main entrypoint for the Tiltify donation relay
from core.config import AppConfig, load_config
from core.errors import ConfigError
from core.event_bus import EventBus
from core.events import DONATION_EVENT_ID, EVENT_SOURCE_ID, TILTIFY_EVENT_SOURCE
from core.filters import ALL_FILTERS, build_filter
from core.message_router import MessageRouter
from services.connection import ConnectionController, validate_config
from storage.state_repository import StateRepository
from transports.discord_client import DiscordClient
from transports.telegram_client import TelegramClient
from transports.tiltify_client import TiltifyClient
from typing import List, Optional
import argparse
import logging
import asyncio
import json
import sys
import os


class RelayApp:
    def __init__(self, config: AppConfig):
        self.config = config
        # Main logger for app-wide events
        self.logger = logging.getLogger("TiltifyRelay")
        self.discord_logger = self.logger.getChild("Discord")
        self.telegram_logger = self.logger.getChild("Telegram")

        self.state_repo = StateRepository(config.storage.db_path)
        self.bus = EventBus(self.logger.getChild("EventBus"))
        self.bus.register_event_source(TILTIFY_EVENT_SOURCE)

        self.discord = None
        if config.discord.enabled:
            self.discord = DiscordClient(config.discord.webhooks, self.discord_logger, config.discord.username)
        self.telegram = None
        if config.telegram.enabled:
            self.telegram = TelegramClient.from_token(config.telegram.token, config.telegram.chat_ids, self.telegram_logger)

        self.router = MessageRouter(self.logger.getChild("Router"), self.discord, self.telegram, config.alerts.template)
        self.router.attach(self.bus, [build_filter(entry) for entry in config.alerts.filters])
        self.connection = ConnectionController(self.state_repo, self.bus, self.logger.getChild("Tiltify"))

    async def start(self):
        if self.telegram is not None:
            await self.telegram.start()
        try:
            if not await self.connection.connect(self.config.tiltify):
                return False
            await self.connection.wait()
            return True
        finally:
            await self.connection.disconnect()
            if self.telegram is not None:
                await self.telegram.stop()

    async def test_alert(self):
        if self.telegram is not None:
            await self.telegram.start()
        try:
            return await self.bus.trigger_manual(EVENT_SOURCE_ID, DONATION_EVENT_ID)
        finally:
            if self.telegram is not None:
                await self.telegram.stop()


def _tiltify_client(config: AppConfig, need_campaign: bool = True) -> TiltifyClient:
    tiltify = config.tiltify
    if need_campaign:
        validate_config(tiltify)
    elif not tiltify.token:
        raise ConfigError("Missing Tiltify access token")
    return TiltifyClient(tiltify.token, tiltify.campaign_id, logging.getLogger("TiltifyRelay.Client"),
                         api_url=tiltify.api_url, timeout=tiltify.request_timeout)


async def list_campaigns(config: AppConfig):
    client = _tiltify_client(config, need_campaign=False)
    try:
        campaigns = await client.fetch_campaigns()
    finally:
        await client.close()
    for campaign in campaigns:
        print(f"{campaign.get('id')} | {campaign.get('name')}")


async def list_presets(config: AppConfig):
    client = _tiltify_client(config)
    try:
        presets = {event_filter.id: await event_filter.preset_values(client) for event_filter in ALL_FILTERS}
    finally:
        await client.close()
    print(json.dumps(presets, indent=2))


def _configure_logging(level_name: str):
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    # Suppress noisy INFO logs from third-party libraries
    logging.getLogger("discord").setLevel(logging.CRITICAL)
    logging.getLogger("httpx").setLevel(logging.CRITICAL)
    logging.getLogger("telegram").setLevel(logging.CRITICAL)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(prog="tiltify-relay")
    parser.add_argument("--config", default=os.environ.get("RELAY_CONFIG", "config.json"))
    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("run", help="Poll Tiltify and relay donation alerts")
    subparsers.add_parser("campaigns", help="List the campaigns of the configured Tiltify account")
    subparsers.add_parser("presets", help="Show reward, poll option and challenge filter values")
    subparsers.add_parser("test-alert", help="Send the sample donation through the alert pipeline")
    args = parser.parse_args(argv)

    config = load_config(args.config)
    _configure_logging(config.log_level)

    if args.command == "campaigns":
        asyncio.run(list_campaigns(config))
        return
    if args.command == "presets":
        asyncio.run(list_presets(config))
        return

    app = RelayApp(config)
    if args.command == "test-alert":
        asyncio.run(app.test_alert())
        return
    try:
        if not asyncio.run(app.start()):
            sys.exit(1)
    except KeyboardInterrupt:
        logging.getLogger("TiltifyRelay").info("Shutting down")


if __name__ == "__main__":
    main()
