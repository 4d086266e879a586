"""
Response cache for fetched usage payloads.

Entries are keyed by the fetch window and organization scope. Freshness is
decided by a predicate passed in by the owner, and every operation takes the
current instant as an argument, so the cache never reads the clock itself.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, NamedTuple, Optional

from models import UsagePayload

logger = logging.getLogger(__name__)


class CacheKey(NamedTuple):
    start_time: str
    end_time: str
    org_scope: str = ""


class CacheEntry(NamedTuple):
    payload: UsagePayload
    fetched_at: datetime


FreshnessPredicate = Callable[[CacheEntry, datetime, timedelta], bool]


def is_fresh(entry: CacheEntry, now: datetime, ttl: timedelta) -> bool:
    """True while less than ``ttl`` has passed since the entry was fetched."""
    return now - entry.fetched_at < ttl


class UsageCache:
    """In-process cache of usage payloads with an injected freshness rule."""

    def __init__(self, ttl: timedelta = timedelta(minutes=5), freshness: FreshnessPredicate = is_fresh):
        self.ttl = ttl
        self.freshness = freshness
        self._entries: Dict[CacheKey, CacheEntry] = {}

    @staticmethod
    def make_key(start_time: str, end_time: str, org_scope: Optional[str] = None) -> CacheKey:
        return CacheKey(start_time, end_time, org_scope or "")

    def get(self, key: CacheKey, now: datetime) -> Optional[UsagePayload]:
        """Return the cached payload for ``key`` if it is still fresh at ``now``."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not self.freshness(entry, now, self.ttl):
            logger.debug("[CACHE] Stale entry for %s", key)
            del self._entries[key]
            return None
        logger.debug("[CACHE] Hit for %s", key)
        return entry.payload

    def put(self, key: CacheKey, payload: UsagePayload, now: datetime) -> CacheEntry:
        """Store ``payload`` under ``key``, dropping entries that are stale at ``now``."""
        self.evict_stale(now)
        entry = CacheEntry(payload=payload, fetched_at=now)
        self._entries[key] = entry
        return entry

    def evict_stale(self, now: datetime) -> int:
        stale = [k for k, entry in self._entries.items() if not self.freshness(entry, now, self.ttl)]
        for k in stale:
            del self._entries[k]
        if stale:
            logger.debug("[CACHE] Evicted %d stale entries", len(stale))
        return len(stale)

    def invalidate(self, key: Optional[CacheKey] = None) -> None:
        """Drop one entry, or every entry when no key is given."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
