"""In-process event bus standing in for the host automation framework.

Sources register their event definitions, consumers subscribe to
``(source_id, event_id)`` pairs with optional filters, and producers trigger
events with a metadata dict.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from core.errors import ConfigError

Handler = Callable[["TriggeredEvent"], Awaitable[None]]


@dataclass(frozen=True)
class EventDefinition:
    id: str
    name: str
    description: str
    manual_metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class EventSourceDefinition:
    id: str
    name: str
    events: List[EventDefinition]

    def get_event(self, event_id: str) -> Optional[EventDefinition]:
        for event in self.events:
            if event.id == event_id:
                return event
        return None


@dataclass(frozen=True)
class TriggeredEvent:
    source_id: str
    event_id: str
    meta: Dict[str, Any]
    is_manual: bool = False


@dataclass
class _Subscription:
    handler: Handler
    filters: Sequence[Tuple[Any, Any]]


class EventBus:
    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._sources: Dict[str, EventSourceDefinition] = {}
        self._subscriptions: Dict[Tuple[str, str], List[_Subscription]] = {}

    def register_event_source(self, definition: EventSourceDefinition):
        self._sources[definition.id] = definition
        self.logger.debug(f"Registered event source {definition.id}")

    def subscribe(self, source_id: str, event_id: str, handler: Handler, filters: Sequence[Tuple[Any, Any]] = ()):
        """Call ``handler`` for matching events that pass every ``(filter, settings)`` pair."""
        key = (source_id, event_id)
        self._subscriptions.setdefault(key, []).append(_Subscription(handler, list(filters)))

    async def _passes(self, subscription: _Subscription, event: TriggeredEvent) -> bool:
        for event_filter, settings in subscription.filters:
            if not event_filter.applies_to(event.source_id, event.event_id):
                continue
            if not await event_filter.predicate(settings, event.meta):
                return False
        return True

    async def trigger_event(self, source_id: str, event_id: str, meta: Dict[str, Any], is_manual: bool = False) -> int:
        """Deliver an event to subscribers; returns how many handlers ran."""
        event = TriggeredEvent(source_id, event_id, meta, is_manual)
        delivered = 0
        for subscription in self._subscriptions.get((source_id, event_id), []):
            try:
                if not await self._passes(subscription, event):
                    continue
                await subscription.handler(event)
                delivered += 1
            except Exception as exc:
                self.logger.error(f"Handler for {source_id}:{event_id} failed: {exc}", exc_info=True)
        return delivered

    async def trigger_manual(self, source_id: str, event_id: str) -> int:
        source = self._sources.get(source_id)
        definition = source.get_event(event_id) if source else None
        if definition is None:
            raise ConfigError(f"Unknown event {source_id}:{event_id}")
        return await self.trigger_event(source_id, event_id, dict(definition.manual_metadata), is_manual=True)
