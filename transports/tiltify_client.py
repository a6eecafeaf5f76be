# Tiltify v3 REST client
import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from core.config import DEFAULT_API_URL
from core.errors import UpstreamError
from core.models import Donation


class TiltifyClient:
    def __init__(self, token: str, campaign_id: str, logger: Optional[logging.Logger] = None,
                 api_url: str = DEFAULT_API_URL, timeout: float = 10.0):
        self.token = token
        self.campaign_id = str(campaign_id)
        self.logger = logger or logging.getLogger(__name__)
        self.api_url = api_url if api_url.endswith("/") else api_url + "/"
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                headers={"Authorization": f"Bearer {self.token}"},
                timeout=self.timeout,
            )
        return self.session

    async def close(self):
        if self.session is not None and not self.session.closed:
            await self.session.close()
        self.session = None

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        session = await self._get_session()
        url = self.api_url + path
        try:
            async with session.get(url, params=params) as response:
                if response.status != 200:
                    raise UpstreamError(f"GET {path} returned HTTP {response.status}", status=response.status)
                try:
                    payload = await response.json(content_type=None)
                except ValueError as exc:
                    raise UpstreamError(f"GET {path} returned invalid JSON") from exc
        except asyncio.TimeoutError as exc:
            raise UpstreamError(f"GET {path} timed out") from exc
        except aiohttp.ClientError as exc:
            raise UpstreamError(f"GET {path} failed: {exc}") from exc
        if not isinstance(payload, dict) or "data" not in payload:
            raise UpstreamError(f"GET {path} returned a payload without data")
        return payload

    async def fetch_campaign(self) -> Dict[str, Any]:
        return await self._get(f"campaigns/{self.campaign_id}")

    async def fetch_cause(self, cause_id: Any) -> Dict[str, Any]:
        return await self._get(f"causes/{cause_id}")

    async def fetch_donations(self, after: Optional[int] = None) -> List[Donation]:
        """Fetch donations for the campaign, optionally only those after ``after``."""
        params = {"after": after} if after is not None else None
        payload = await self._get(f"campaigns/{self.campaign_id}/donations", params)
        records = payload["data"]
        if not isinstance(records, list):
            raise UpstreamError("Donation list payload is not a list")
        return [Donation.from_api(record) for record in records]

    # Lookups used for filter presets. A failed lookup yields an empty list.

    async def _lookup(self, path: str) -> List[Dict[str, Any]]:
        try:
            payload = await self._get(path)
        except UpstreamError as exc:
            self.logger.warning(f"Lookup {path} failed: {exc}")
            return []
        data = payload["data"]
        return data if isinstance(data, list) else []

    async def fetch_rewards(self) -> List[Dict[str, Any]]:
        return await self._lookup(f"campaigns/{self.campaign_id}/rewards")

    async def fetch_poll_options(self) -> List[Dict[str, Any]]:
        options: List[Dict[str, Any]] = []
        for poll in await self._lookup(f"campaigns/{self.campaign_id}/polls"):
            options.extend(poll.get("options", []) or [])
        return options

    async def fetch_challenges(self) -> List[Dict[str, Any]]:
        return await self._lookup(f"campaigns/{self.campaign_id}/challenges")

    async def fetch_campaigns(self) -> List[Dict[str, Any]]:
        try:
            user = await self._get("user")
            user_id = user["data"]["id"]
        except (UpstreamError, KeyError, TypeError) as exc:
            self.logger.warning(f"Could not resolve Tiltify user: {exc}")
            return []
        return await self._lookup(f"users/{user_id}/campaigns")
