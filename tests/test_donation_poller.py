from __future__ import annotations

import asyncio

import pytest

from conftest import FakeTiltifyClient
from core.errors import NotFoundError, StorageError, UpstreamError
from core.models import DonationEvent
from services.campaign_context import CampaignContextCache
from services.donation_poller import DonationPoller
from storage.state_repository import DeliveryStateRepository, StateRepository


class FlakyStore(StateRepository):
    """Sqlite store whose next few reads or writes fail."""

    def __init__(self, db_path: str, fail_reads: int = 0, fail_writes: int = 0) -> None:
        super().__init__(db_path)
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes

    def get(self, path: str):
        if self.fail_reads:
            self.fail_reads -= 1
            raise StorageError(f"cannot read {path}")
        return super().get(path)

    def set_many(self, values: dict) -> None:
        if self.fail_writes:
            self.fail_writes -= 1
            raise StorageError("disk full")
        super().set_many(values)


def _donation(donation_id: int, completed_at: int, amount: float = 5) -> dict:
    return {"id": donation_id, "amount": amount, "name": f"donor{donation_id}", "completedAt": completed_at}


def _make_poller(client, store, logger, emitted: list, dedup_window: int = 0) -> DonationPoller:
    async def emit(event: DonationEvent) -> None:
        emitted.append(event)

    return DonationPoller(
        client,
        CampaignContextCache(client, logger),
        DeliveryStateRepository(store),
        emit,
        logger,
        poll_interval=0,
        dedup_window=dedup_window,
    )


def _seed(store, campaign_id: str, last_id: int, ids: list[int]) -> None:
    store.set(f"/tiltify/{campaign_id}/lastId", last_id)
    store.set(f"/tiltify/{campaign_id}/ids", ids)


def test_first_tick_fetches_everything_and_orders_by_completion(store, logger) -> None:
    client = FakeTiltifyClient(responses=[[
        {"id": 1, "amount": 5, "name": "a", "completedAt": 100},
        {"id": 2, "amount": 10, "name": "b", "completedAt": 50},
    ]])
    emitted: list[DonationEvent] = []
    poller = _make_poller(client, store, logger, emitted)

    asyncio.run(poller.run_tick())

    assert client.after_calls == [None]
    assert [event.donation_id for event in emitted] == [2, 1]
    state = DeliveryStateRepository(store).load("42")
    assert state.last_id == 1
    assert set(state.delivered_ids) == {1, 2}


def test_emission_order_follows_completion_time(store, logger) -> None:
    client = FakeTiltifyClient(responses=[[_donation(10, 3), _donation(11, 1), _donation(12, 2)]])
    emitted: list[DonationEvent] = []
    poller = _make_poller(client, store, logger, emitted)

    asyncio.run(poller.run_tick())

    assert [event.donation_id for event in emitted] == [11, 12, 10]


def test_equal_timestamps_keep_response_order(store, logger) -> None:
    client = FakeTiltifyClient(responses=[[_donation(3, 5), _donation(1, 5), _donation(2, 5)]])
    emitted: list[DonationEvent] = []
    poller = _make_poller(client, store, logger, emitted)

    asyncio.run(poller.run_tick())

    assert [event.donation_id for event in emitted] == [3, 1, 2]


def test_same_response_twice_delivers_each_donation_once(store, logger) -> None:
    batch = [_donation(5, 1), _donation(6, 2)]
    client = FakeTiltifyClient(responses=[batch, batch])
    emitted: list[DonationEvent] = []
    poller = _make_poller(client, store, logger, emitted)

    asyncio.run(poller.run_tick())
    asyncio.run(poller.run_tick())

    assert [event.donation_id for event in emitted] == [5, 6]
    assert client.after_calls == [None, 6]


def test_marker_advances_to_last_emitted_donation(store, logger) -> None:
    client = FakeTiltifyClient(responses=[[_donation(5, 1), _donation(7, 2), _donation(9, 3)]])
    emitted: list[DonationEvent] = []
    poller = _make_poller(client, store, logger, emitted)

    asyncio.run(poller.run_tick())

    state = DeliveryStateRepository(store).load("42")
    assert state.last_id == 9
    assert {5, 7, 9} <= set(state.delivered_ids)


def test_resume_requests_only_donations_after_marker(store, logger) -> None:
    _seed(store, "42", 9, [5, 7, 9])
    client = FakeTiltifyClient(responses=[[]])
    emitted: list[DonationEvent] = []
    poller = _make_poller(client, store, logger, emitted)

    asyncio.run(poller.run_tick())

    assert client.after_calls == [9]
    assert emitted == []
    assert store.get("/tiltify/42/lastId") == 9
    assert store.get("/tiltify/42/ids") == [5, 7, 9]


def test_upstream_failure_leaves_state_untouched(store, logger) -> None:
    _seed(store, "42", 2, [1, 2])
    before = (store.get("/tiltify/42/lastId"), store.get("/tiltify/42/ids"))
    client = FakeTiltifyClient(responses=[UpstreamError("boom", status=500)])
    emitted: list[DonationEvent] = []
    poller = _make_poller(client, store, logger, emitted)

    with pytest.raises(UpstreamError):
        asyncio.run(poller.run_tick())

    assert emitted == []
    assert (store.get("/tiltify/42/lastId"), store.get("/tiltify/42/ids")) == before


def test_upstream_failure_on_first_tick_writes_nothing(store, logger) -> None:
    client = FakeTiltifyClient(responses=[UpstreamError("boom", status=502)])
    poller = _make_poller(client, store, logger, [])

    with pytest.raises(UpstreamError):
        asyncio.run(poller.run_tick())

    with pytest.raises(NotFoundError):
        store.get("/tiltify/42/ids")


def test_redelivered_donation_is_skipped(store, logger) -> None:
    _seed(store, "42", 2, [1, 2])
    client = FakeTiltifyClient(responses=[[_donation(1, 10)]])
    emitted: list[DonationEvent] = []
    poller = _make_poller(client, store, logger, emitted)

    asyncio.run(poller.run_tick())

    assert emitted == []
    assert store.get("/tiltify/42/lastId") == 2
    assert store.get("/tiltify/42/ids") == [1, 2]


def test_empty_first_tick_initialises_state(store, logger) -> None:
    client = FakeTiltifyClient(responses=[[]])
    poller = _make_poller(client, store, logger, [])

    asyncio.run(poller.run_tick())

    assert store.get("/tiltify/42/lastId") == -1
    assert store.get("/tiltify/42/ids") == []


def test_events_carry_campaign_snapshot(store, logger) -> None:
    client = FakeTiltifyClient(responses=[[
        {"id": 3, "amount": 12.5, "name": "Sam", "comment": "gl!", "rewardId": 4, "completedAt": 1},
    ]])
    emitted: list[DonationEvent] = []
    poller = _make_poller(client, store, logger, emitted)

    asyncio.run(poller.run_tick())

    payload = emitted[0].to_payload()
    assert payload["from"] == "Sam"
    assert payload["donationAmount"] == 12.5
    assert payload["comment"] == "gl!"
    assert payload["rewardId"] == 4
    assert payload["pollOptionId"] is None
    assert payload["campaignInfo"]["name"] == "Charity Stream"
    assert payload["campaignInfo"]["cause"] == "Save the Children"
    assert payload["campaignInfo"]["totalRaised"] == 300
    assert client.cause_ids == [7]


def test_tick_skips_until_campaign_context_loads(store, logger) -> None:
    client = FakeTiltifyClient(responses=[[_donation(1, 1)]])
    client.fail_campaign = True
    emitted: list[DonationEvent] = []
    poller = _make_poller(client, store, logger, emitted)

    assert asyncio.run(poller.run_tick()) == []
    assert client.after_calls == []

    client.fail_campaign = False
    asyncio.run(poller.run_tick())
    assert [event.donation_id for event in emitted] == [1]


def test_dedup_window_keeps_most_recent_ids(store, logger) -> None:
    client = FakeTiltifyClient(responses=[[_donation(1, 1), _donation(2, 2), _donation(3, 3)]])
    poller = _make_poller(client, store, logger, [], dedup_window=2)

    asyncio.run(poller.run_tick())

    assert store.get("/tiltify/42/ids") == [2, 3]
    assert store.get("/tiltify/42/lastId") == 3


def test_tick_is_skipped_while_another_is_running(store, logger) -> None:
    client = FakeTiltifyClient(responses=[[_donation(1, 1)]])
    emitted: list[DonationEvent] = []
    poller = _make_poller(client, store, logger, emitted)

    async def scenario() -> list:
        async with poller._lock:
            return await poller.run_tick()

    assert asyncio.run(scenario()) == []
    assert client.after_calls == []


def test_loop_keeps_polling_after_a_failed_tick(store, logger) -> None:
    client = FakeTiltifyClient(responses=[UpstreamError("down", status=503), [_donation(8, 1)]])
    emitted: list[DonationEvent] = []
    poller = _make_poller(client, store, logger, emitted)

    async def scenario() -> None:
        task = asyncio.create_task(poller.start())
        for _ in range(50):
            if emitted:
                break
            await asyncio.sleep(0)
        poller.stop()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())

    assert [event.donation_id for event in emitted] == [8]
    assert client.after_calls[:2] == [None, None]


def test_state_read_failure_aborts_before_fetching(tmp_path, logger) -> None:
    store = FlakyStore(str(tmp_path / "state.db"), fail_reads=1)
    client = FakeTiltifyClient(responses=[[_donation(1, 1)]])
    emitted: list[DonationEvent] = []
    poller = _make_poller(client, store, logger, emitted)

    with pytest.raises(StorageError):
        asyncio.run(poller.run_tick())

    assert client.after_calls == []
    assert emitted == []


def test_state_write_failure_keeps_previous_state(tmp_path, logger) -> None:
    store = FlakyStore(str(tmp_path / "state.db"))
    _seed(store, "42", 2, [1, 2])
    store.fail_writes = 1
    client = FakeTiltifyClient(responses=[[_donation(3, 1)]])
    poller = _make_poller(client, store, logger, [])

    with pytest.raises(StorageError):
        asyncio.run(poller.run_tick())

    assert store.get("/tiltify/42/lastId") == 2
    assert store.get("/tiltify/42/ids") == [1, 2]


def test_loop_keeps_polling_after_a_storage_failure(tmp_path, logger) -> None:
    store = FlakyStore(str(tmp_path / "state.db"), fail_reads=1)
    client = FakeTiltifyClient(responses=[[_donation(4, 1)]])
    emitted: list[DonationEvent] = []
    poller = _make_poller(client, store, logger, emitted)

    async def scenario() -> None:
        task = asyncio.create_task(poller.start())
        for _ in range(50):
            if emitted:
                break
            await asyncio.sleep(0)
        poller.stop()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())

    assert [event.donation_id for event in emitted] == [4]
    assert client.after_calls == [None]
    assert store.get("/tiltify/42/lastId") == 4
