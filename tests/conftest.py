from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import pytest

from core.errors import UpstreamError
from core.models import Donation
from storage.state_repository import StateRepository

CAMPAIGN = {
    "data": {
        "id": 42,
        "name": "Charity Stream",
        "causeId": 7,
        "fundraiserGoalAmount": 1000,
        "originalFundraiserGoal": 500,
        "amountRaised": 250,
        "supportingAmountRaised": 50,
        "totalAmountRaised": 300,
    }
}

CAUSE = {"data": {"id": 7, "name": "Save the Children", "legalName": "Save the Children Inc"}}


class FakeTiltifyClient:
    """Scripted stand-in for TiltifyClient.

    Each fetch_donations call pops the next scripted response: a list of raw
    donation dicts, or an exception to raise.
    """

    def __init__(self, campaign_id: str = "42", responses: Optional[list] = None) -> None:
        self.campaign_id = campaign_id
        self.responses: list[Any] = list(responses or [])
        self.after_calls: list[Optional[int]] = []
        self.cause_ids: list[Any] = []
        self.fail_campaign = False
        self.closed = False
        self.gate: Optional[asyncio.Event] = None

    async def fetch_campaign(self) -> dict:
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_campaign:
            raise UpstreamError("campaign unavailable", status=503)
        return CAMPAIGN

    async def fetch_cause(self, cause_id: Any) -> dict:
        self.cause_ids.append(cause_id)
        return CAUSE

    async def fetch_donations(self, after: Optional[int] = None) -> list[Donation]:
        self.after_calls.append(after)
        response = self.responses.pop(0) if self.responses else []
        if isinstance(response, Exception):
            raise response
        return [Donation.from_api(raw) for raw in response]

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def store(tmp_path) -> StateRepository:
    return StateRepository(str(tmp_path / "state.db"))


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("tests")
