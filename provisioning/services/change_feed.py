# provisioning/services/change_feed.py
"""
In-process change feed for store mutations.

Every committed write to the configuration, association or freelancer tables
is published as a ChangeEvent. Observers subscribe by organization, optionally
narrowed to one table, and receive events as they happen instead of polling.
Events from other processes arrive through RedisChangeRelay, which calls
deliver() so they reach the same subscribers without being forwarded again.

Usage:
    feed = ChangeFeed()
    subscription = feed.subscribe(org_id, on_change, table="platforms")
    ...
    subscription.unsubscribe()

    async for event in feed.stream(org_id):
        ...
"""

import asyncio
import inspect
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, Field

logger = logging.getLogger("provisioning.change_feed")

PLATFORMS_TABLE = "platforms"
ASSOCIATIONS_TABLE = "freelancer_platforms"
FREELANCERS_TABLE = "freelancers"
PROGRESS_TABLE = "onboarding_progress"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChangeEvent(BaseModel):
    """A committed change to one record."""

    table: str
    action: str = Field(..., description="insert, update or delete")
    organization_id: str
    key: str = Field(..., description="Natural key of the record within its table")
    record: Dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=_utcnow)
    origin: Optional[str] = Field(None, description="Id of the process that made the change")


ChangeCallback = Callable[[ChangeEvent], Union[None, Awaitable[None]]]
Forwarder = Callable[[ChangeEvent], Awaitable[Any]]


@dataclass
class _Subscriber:
    organization_id: Optional[str]
    callback: ChangeCallback
    table: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def matches(self, event: ChangeEvent) -> bool:
        if self.organization_id is not None and self.organization_id != event.organization_id:
            return False
        return self.table is None or self.table == event.table


class Subscription:
    """Handle returned by ChangeFeed.subscribe()."""

    def __init__(self, feed: "ChangeFeed", subscriber_id: str):
        self._feed = feed
        self._subscriber_id = subscriber_id

    def unsubscribe(self) -> None:
        self._feed._remove(self._subscriber_id)


class ChangeFeed:
    """Scoped publish/subscribe for store changes within one process."""

    def __init__(self, origin: Optional[str] = None):
        self.origin = origin or uuid.uuid4().hex
        self._subscribers: Dict[str, _Subscriber] = {}
        self._forwarders: List[Forwarder] = []

    def subscribe(
        self,
        organization_id: Any,
        callback: ChangeCallback,
        table: Optional[str] = None,
    ) -> Subscription:
        return self._add(str(organization_id), callback, table)

    def subscribe_all(self, callback: ChangeCallback, table: Optional[str] = None) -> Subscription:
        """Subscribe to changes of every organization."""
        return self._add(None, callback, table)

    def _add(self, organization_id: Optional[str], callback: ChangeCallback, table: Optional[str]) -> Subscription:
        subscriber = _Subscriber(organization_id, callback, table)
        self._subscribers[subscriber.id] = subscriber
        logger.debug(f"Subscribed {subscriber.id} to org {organization_id or '*'} table={table or '*'}")
        return Subscription(self, subscriber.id)

    def _remove(self, subscriber_id: str) -> None:
        self._subscribers.pop(subscriber_id, None)

    def add_forwarder(self, forwarder: Forwarder) -> None:
        """Register a coroutine that receives every locally published event."""
        self._forwarders.append(forwarder)

    def remove_forwarder(self, forwarder: Forwarder) -> None:
        if forwarder in self._forwarders:
            self._forwarders.remove(forwarder)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def publish(self, event: ChangeEvent) -> None:
        """Dispatch a locally made change and forward it to other processes."""
        if event.origin is None:
            event = event.model_copy(update={"origin": self.origin})
        await self.deliver(event)
        for forwarder in list(self._forwarders):
            try:
                await forwarder(event)
            except Exception as e:
                logger.warning(f"Failed to forward {event.table} change: {e}")

    async def deliver(self, event: ChangeEvent) -> None:
        """Dispatch an event to matching subscribers without forwarding it."""
        for subscriber in list(self._subscribers.values()):
            if not subscriber.matches(event):
                continue
            try:
                result = subscriber.callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    f"Change subscriber {subscriber.id} failed on {event.table}:{event.key}"
                )

    async def stream(
        self,
        organization_id: Any,
        table: Optional[str] = None,
        max_queue: int = 1000,
    ) -> AsyncIterator[ChangeEvent]:
        """
        Yield events for an organization until the consumer stops iterating.

        Events beyond max_queue pending items are dropped for this consumer
        with a warning; other subscribers are unaffected.
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue)

        def _enqueue(event: ChangeEvent) -> None:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(f"Dropping {event.table} change for slow consumer")

        subscription = self.subscribe(organization_id, _enqueue, table)
        try:
            while True:
                yield await queue.get()
        finally:
            subscription.unsubscribe()
