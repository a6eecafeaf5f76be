import logging
from typing import Optional

from core.errors import UpstreamError
from core.models import CampaignContext


class CampaignContextCache:
    """Campaign and cause metadata, fetched once per connection."""

    def __init__(self, client, logger: logging.Logger):
        self.client = client
        self.logger = logger
        self._context: Optional[CampaignContext] = None

    @property
    def context(self) -> Optional[CampaignContext]:
        return self._context

    async def load(self) -> CampaignContext:
        if self._context is not None:
            return self._context
        campaign = await self.client.fetch_campaign()
        try:
            cause_id = campaign["data"]["causeId"]
        except (KeyError, TypeError) as exc:
            raise UpstreamError("Campaign payload has no causeId") from exc
        cause = await self.client.fetch_cause(cause_id)
        self._context = CampaignContext.from_api(self.client.campaign_id, campaign, cause)
        self.logger.info(f"Loaded campaign '{self._context.name}' for cause '{self._context.cause}'")
        return self._context
