import asyncio
import enum
import logging
from typing import Callable, Dict, List, Optional

from core.config import TiltifyConfig
from core.errors import ConfigError
from core.events import DONATION_EVENT_ID, EVENT_SOURCE_ID
from core.models import DonationEvent
from services.campaign_context import CampaignContextCache
from services.donation_poller import DonationPoller
from storage.state_repository import DeliveryStateRepository
from transports.tiltify_client import TiltifyClient

CONNECTED = "connected"
DISCONNECTED = "disconnected"


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def validate_config(config: Optional[TiltifyConfig]) -> TiltifyConfig:
    if config is None:
        raise ConfigError("Tiltify is not configured")
    if not config.token:
        raise ConfigError("Missing Tiltify access token")
    if not config.campaign_id:
        raise ConfigError("Missing Tiltify campaign id")
    if not config.poll_interval or config.poll_interval <= 0:
        raise ConfigError("Poll interval must be a positive number of seconds")
    return config


class ConnectionController:
    """Owns the poll loop for one configured campaign.

    Collaborators are injected so the same controller runs against the real
    Tiltify API, the sqlite store and the event bus, or against fakes in tests.
    """

    def __init__(self, store, bus, logger: logging.Logger,
                 client_factory: Optional[Callable[[TiltifyConfig, logging.Logger], object]] = None):
        self.store = store
        self.bus = bus
        self.logger = logger
        self.client_factory = client_factory or self._default_client
        self.state = ConnectionState.DISCONNECTED
        self.client = None
        self.poller: Optional[DonationPoller] = None
        self._task: Optional[asyncio.Task] = None
        self._listeners: Dict[str, List[Callable[[str], None]]] = {CONNECTED: [], DISCONNECTED: []}

    @staticmethod
    def _default_client(config: TiltifyConfig, logger: logging.Logger) -> TiltifyClient:
        return TiltifyClient(config.token, config.campaign_id, logger,
                             api_url=config.api_url, timeout=config.request_timeout)

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    def on(self, signal: str, callback: Callable[[str], None]):
        self._listeners.setdefault(signal, []).append(callback)

    def _emit(self, signal: str):
        for callback in self._listeners.get(signal, []):
            try:
                callback(EVENT_SOURCE_ID)
            except Exception as exc:
                self.logger.error(f"Listener for '{signal}' failed: {exc}", exc_info=True)

    async def _publish(self, event: DonationEvent):
        await self.bus.trigger_event(EVENT_SOURCE_ID, DONATION_EVENT_ID, event.to_payload())

    async def connect(self, config: Optional[TiltifyConfig]) -> bool:
        # Only one poll loop per controller
        if self.state is not ConnectionState.DISCONNECTED:
            await self.disconnect()

        try:
            config = validate_config(config)
        except ConfigError as exc:
            self.logger.error(f"Cannot connect to Tiltify: {exc}")
            self.state = ConnectionState.DISCONNECTED
            self._emit(DISCONNECTED)
            return False

        self.state = ConnectionState.CONNECTING
        client = self.client_factory(config, self.logger.getChild("Client"))
        poller = DonationPoller(
            client,
            CampaignContextCache(client, self.logger.getChild("Campaign")),
            DeliveryStateRepository(self.store),
            self._publish,
            self.logger.getChild("Poller"),
            poll_interval=config.poll_interval,
            dedup_window=config.dedup_window,
        )
        self.client = client
        self.poller = poller
        # The loop retries the context load on every tick if this first attempt fails
        await poller.prime()
        if self.poller is not poller or self.state is not ConnectionState.CONNECTING:
            self.logger.info(f"Connection to campaign {config.campaign_id} abandoned while loading")
            return False
        self._task = asyncio.create_task(poller.start())

        self.state = ConnectionState.CONNECTED
        self.logger.info(f"Connected to Tiltify campaign {config.campaign_id}")
        self._emit(CONNECTED)
        return True

    async def disconnect(self):
        if self.poller is not None:
            self.poller.stop()
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self.client is not None:
            close = getattr(self.client, "close", None)
            if close is not None:
                await close()
        self.client = None
        self.poller = None
        self.state = ConnectionState.DISCONNECTED
        self.logger.info("Disconnected from Tiltify")
        self._emit(DISCONNECTED)

    async def reconfigure(self, config: Optional[TiltifyConfig]) -> bool:
        if self.state is not ConnectionState.DISCONNECTED:
            await self.disconnect()
        return await self.connect(config)

    async def wait(self):
        """Block until the poll loop ends (it only ends when disconnected)."""
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass
