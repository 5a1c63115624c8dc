"""
Local status cache with optimistic updates and timestamp-ordered merging.

Two layers feed the cache:

    apply_local()   called synchronously by the service that made a change, so
                    readers see it immediately
    apply_remote()  called for every ChangeEvent (including the echo of our own
                    changes); applied only if the event's record is strictly
                    newer than what the cache holds

Because an echo carries the same updated_at as the optimistic write, applying
it again changes nothing, and a late notification can never regress a newer
local update.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from .change_feed import (
    ASSOCIATIONS_TABLE,
    FREELANCERS_TABLE,
    PLATFORMS_TABLE,
    ChangeEvent,
    ChangeFeed,
    Subscription,
)

logger = logging.getLogger("provisioning.status_cache")

# Fields forming the cache key of a record, per table
KEY_FIELDS: Dict[str, Tuple[str, str]] = {
    PLATFORMS_TABLE: ("organization_id", "platform_id"),
    ASSOCIATIONS_TABLE: ("freelancer_id", "platform_id"),
    FREELANCERS_TABLE: ("organization_id", "id"),
}

CacheKey = Tuple[str, str, str]


def as_utc(value: Any) -> Optional[datetime]:
    """Normalize datetimes (or ISO strings) to aware UTC; naive values are UTC."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass
class CacheEntry:
    record: Dict[str, Any]
    updated_at: datetime
    deleted: bool = False


class StatusCache:
    """Last-write-wins cache of platform configuration and association rows."""

    def __init__(self):
        self._entries: Dict[CacheKey, CacheEntry] = {}

    @staticmethod
    def key_for(table: str, record: Dict[str, Any]) -> CacheKey:
        first, second = KEY_FIELDS[table]
        return (table, str(record[first]), str(record[second]))

    def _merge(self, table: str, record: Dict[str, Any], deleted: bool, force: bool) -> bool:
        key = self.key_for(table, record)
        updated_at = as_utc(record.get("updated_at")) or datetime.now(timezone.utc)
        current = self._entries.get(key)
        if current is not None and not force and updated_at <= current.updated_at:
            return False
        if current is not None and force and updated_at < current.updated_at:
            return False
        self._entries[key] = CacheEntry(dict(record), updated_at, deleted)
        return True

    def apply_local(self, table: str, record: Dict[str, Any]) -> bool:
        """Record a change made by this process (optimistic)."""
        return self._merge(table, record, deleted=False, force=True)

    def apply_remote(self, event: ChangeEvent) -> bool:
        """Merge a change notification; returns True if the cache changed."""
        if event.table not in KEY_FIELDS:
            return False
        record = dict(event.record)
        if "updated_at" not in record or record["updated_at"] is None:
            record["updated_at"] = event.occurred_at
        try:
            applied = self._merge(event.table, record, deleted=event.action == "delete", force=False)
        except KeyError:
            logger.warning(f"Ignoring {event.table} change without key fields")
            return False
        if applied:
            logger.debug(f"Applied {event.action} for {event.table}:{event.key}")
        return applied

    def seed(self, table: str, record: Dict[str, Any]) -> bool:
        """Merge a snapshot read from the store; never overrides a newer entry."""
        return self._merge(table, record, deleted=False, force=False)

    def bind(self, feed: ChangeFeed, organization_id: Any) -> Subscription:
        """Keep the cache current with every change for an organization."""
        return feed.subscribe(organization_id, self.apply_remote)

    def attach(self, feed: ChangeFeed) -> Subscription:
        """Keep the cache current with every change on the feed, relayed ones included."""
        return feed.subscribe_all(self.apply_remote)

    def get(self, table: str, first: Any, second: Any) -> Optional[Dict[str, Any]]:
        entry = self._entries.get((table, str(first), str(second)))
        if entry is None or entry.deleted:
            return None
        return dict(entry.record)

    def association(self, freelancer_id: Any, platform_id: str) -> Optional[Dict[str, Any]]:
        return self.get(ASSOCIATIONS_TABLE, freelancer_id, platform_id)

    def configuration(self, organization_id: Any, platform_id: str) -> Optional[Dict[str, Any]]:
        return self.get(PLATFORMS_TABLE, organization_id, platform_id)

    def associations_for(self, freelancer_id: Any) -> List[Dict[str, Any]]:
        freelancer_id = str(freelancer_id)
        return [
            dict(entry.record)
            for (table, first, _), entry in self._entries.items()
            if table == ASSOCIATIONS_TABLE and first == freelancer_id and not entry.deleted
        ]

    def forget_associations(self, freelancer_id: Any) -> None:
        freelancer_id = str(freelancer_id)
        for key in [k for k in self._entries if k[0] == ASSOCIATIONS_TABLE and k[1] == freelancer_id]:
            del self._entries[key]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return sum(1 for entry in self._entries.values() if not entry.deleted)
