# Event filters matching donation events on reward, poll option or challenge
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from core.errors import ConfigError
from core.events import DONATION_EVENT_ID, EVENT_SOURCE_ID

IS = "is"
IS_NOT = "is not"


@dataclass(frozen=True)
class FilterSettings:
    comparison_type: str
    value: Any


def _same(left: Any, right: Any) -> bool:
    # Preset values arrive as strings from config, ids as ints from Tiltify
    if left is None or right is None:
        return left is right
    return str(left) == str(right)


@dataclass(frozen=True)
class EventFilter:
    id: str
    name: str
    description: str
    meta_key: str
    lookup: str
    comparison_types: Tuple[str, ...] = (IS, IS_NOT)
    events: Tuple[Tuple[str, str], ...] = ((EVENT_SOURCE_ID, DONATION_EVENT_ID),)

    def applies_to(self, source_id: str, event_id: str) -> bool:
        return (source_id, event_id) in self.events

    async def predicate(self, settings: FilterSettings, meta: Dict[str, Any]) -> bool:
        actual = meta.get(self.meta_key)
        if settings.comparison_type == IS:
            return _same(actual, settings.value)
        if settings.comparison_type == IS_NOT:
            return not _same(actual, settings.value)
        return False

    async def preset_values(self, client) -> List[Dict[str, Any]]:
        fetch: Callable[[], Awaitable[List[Dict[str, Any]]]] = getattr(client, self.lookup)
        return [{"value": item.get("id"), "display": item.get("name")} for item in await fetch()]


RewardFilter = EventFilter(
    id="tcu:reward-id",
    name="Tiltify Reward",
    description="Filter by the Tiltify reward.",
    meta_key="rewardId",
    lookup="fetch_rewards",
)

PollOptionFilter = EventFilter(
    id="tcu:poll-option-id",
    name="Tiltify Poll Option",
    description="Filter by the Tiltify poll option.",
    meta_key="pollOptionId",
    lookup="fetch_poll_options",
)

ChallengeFilter = EventFilter(
    id="tcu:challenge-id",
    name="Tiltify Challenge",
    description="Filter by the Tiltify challenge.",
    meta_key="challengeId",
    lookup="fetch_challenges",
)

ALL_FILTERS = (RewardFilter, PollOptionFilter, ChallengeFilter)

_BY_TYPE = {
    "reward": RewardFilter,
    "poll_option": PollOptionFilter,
    "challenge": ChallengeFilter,
}


def get_filter(filter_id: str) -> Optional[EventFilter]:
    for event_filter in ALL_FILTERS:
        if event_filter.id == filter_id:
            return event_filter
    return None


def build_filter(entry: Dict[str, Any]) -> Tuple[EventFilter, FilterSettings]:
    """Turn a config entry like ``{"type": "reward", "comparison": "is", "value": 12}`` into a filter pair."""
    kind = entry.get("type")
    event_filter = _BY_TYPE.get(kind) or get_filter(str(kind))
    if event_filter is None:
        raise ConfigError(f"Unknown alert filter type: {kind!r}")
    comparison = entry.get("comparison", IS)
    if comparison not in event_filter.comparison_types:
        raise ConfigError(f"Unsupported comparison {comparison!r} for {event_filter.id}")
    return event_filter, FilterSettings(comparison_type=comparison, value=entry.get("value"))
