import asyncio
from typing import Awaitable, Callable, List

from core.errors import StorageError, UpstreamError
from core.models import DeliveryState, DonationEvent


class DonationPoller:
    """Polls one campaign and emits each new donation exactly once.

    Each tick reads the persisted delivery state, asks Tiltify for donations
    after the last delivered id, emits the unseen ones in completion order and
    writes the new state back in a single transaction. Ticks never overlap: the
    loop sleeps ``poll_interval`` seconds after a tick finishes, and a tick
    requested while another is running is skipped.
    """

    def __init__(self, client, context_cache, state_repo, emit: Callable[[DonationEvent], Awaitable[None]],
                 logger, poll_interval: int = 5, dedup_window: int = 0):
        self.client = client
        self.context_cache = context_cache
        self.state_repo = state_repo
        self.emit = emit
        self.logger = logger
        self.poll_interval = poll_interval
        self.dedup_window = dedup_window
        self._lock = asyncio.Lock()
        self._running = False
        self.tick_count = 0

    @property
    def campaign_id(self) -> str:
        return self.client.campaign_id

    async def prime(self) -> bool:
        """Load the campaign context up front; False if Tiltify is not reachable yet."""
        try:
            await self.context_cache.load()
            return True
        except UpstreamError as exc:
            self.logger.warning(f"Campaign context for {self.campaign_id} not loaded yet: {exc}")
            return False

    async def run_tick(self) -> List[DonationEvent]:
        if self._lock.locked():
            self.logger.warning("Previous poll still in flight, skipping this tick")
            return []
        async with self._lock:
            self.tick_count += 1
            return await self._tick()

    async def _tick(self) -> List[DonationEvent]:
        if self.context_cache.context is None:
            try:
                await self.context_cache.load()
            except UpstreamError as exc:
                self.logger.warning(f"[Poll #{self.tick_count}] Campaign context not ready, skipping: {exc}")
                return []
        campaign = self.context_cache.context

        # Store calls are synchronous sqlite; the tick lock covers read, fetch, emit and save
        state = self.state_repo.load(self.campaign_id)
        donations = await self.client.fetch_donations(after=state.last_id)
        self.logger.debug(f"[Poll #{self.tick_count}] Fetched {len(donations)} donations after {state.last_id}")

        # sorted() is stable, so equal timestamps keep response order
        ordered = sorted(donations, key=lambda donation: donation.completed_at)

        last_id = state.last_id
        delivered_ids = list(state.delivered_ids)
        seen = set(delivered_ids)
        events: List[DonationEvent] = []
        for donation in ordered:
            if donation.id in seen:
                continue
            event = DonationEvent.build(donation, campaign)
            self.logger.info(f"Donation from {donation.name} for ${donation.amount}. Reward: {donation.reward_id}")
            await self.emit(event)
            events.append(event)
            last_id = donation.id
            delivered_ids.append(donation.id)
            seen.add(donation.id)

        if self.dedup_window > 0:
            delivered_ids = delivered_ids[-self.dedup_window:]
        self.state_repo.save(DeliveryState(self.campaign_id, last_id, delivered_ids))
        return events

    async def start(self):
        self._running = True
        self.logger.info(f"Polling Tiltify campaign {self.campaign_id} every {self.poll_interval}s")
        while self._running:
            try:
                await self.run_tick()
            except asyncio.CancelledError:
                self.logger.info("Polling task cancelled")
                self._running = False
                raise
            except UpstreamError as exc:
                self.logger.warning(f"Error fetching donations, retrying next tick: {exc}")
            except StorageError as exc:
                self.logger.error(f"State store failure, tick aborted: {exc}", exc_info=True)
            except Exception as exc:
                self.logger.error(f"Unexpected error in polling loop: {exc}", exc_info=True)
            await asyncio.sleep(self.poll_interval)

    def stop(self):
        self._running = False
