"""
Keyed query cache shared by every dashboard view.

Entries are keyed by tuples such as ("/api/shipments/my",) or
("/api/shipments/track", 7). Invalidating a prefix marks every child key
stale. Values are treated as immutable: updaters must return new objects.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

CacheKey = Tuple[Any, ...]
Fetcher = Callable[[], Any]

# Stale times in seconds
DEFAULT_STALE_TIME = 10 * 60
STATIC_STALE_TIME = 30 * 60

# User-specific endpoints must never serve cached data across reruns
USER_SPECIFIC_ENDPOINTS = [
    "/api/user",
    "/api/shipments",
    "/api/shipments/my",
    "/api/shipments/all",
    "/api/admin/shipments",
    "/api/admin/shipments/paginated",
    "/api/balance",
    "/api/transactions",
    "/api/notifications",
    "/api/users",
    "/api/packages",
    "/api/addresses",
    "/api/statistics",
]

STATIC_ENDPOINTS = [
    "/api/marketing-banners",
    "/api/products",
    "/api/package-templates",
]


def normalize_key(key: Any) -> CacheKey:
    """Turn a string or list key into a tuple key."""
    if isinstance(key, tuple):
        return key
    if isinstance(key, list):
        return tuple(key)
    return (key,)


def key_matches(key: CacheKey, prefix: CacheKey) -> bool:
    return key[:len(prefix)] == prefix


@dataclass(eq=False)
class Subscription:
    callback: Callable[[Any], None]
    fetcher: Optional[Fetcher] = None


@dataclass
class CacheEntry:
    value: Any = None
    has_value: bool = False
    updated_at: float = 0.0
    stale: bool = False
    fetcher: Optional[Fetcher] = None
    refetch_interval: Optional[float] = None
    last_ticket: int = 0


class QueryCache:
    """Per-key store of the last fetched server state with subscriber notification."""

    def __init__(self, clock: Callable[[], float] = time.monotonic, apply_defaults: bool = True):
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._subscribers: Dict[CacheKey, List[Subscription]] = {}
        self._defaults: List[Tuple[CacheKey, float]] = []
        self._ticket = 0
        self.logger = logging.getLogger(__name__)

        if apply_defaults:
            for endpoint in USER_SPECIFIC_ENDPOINTS:
                self.set_query_defaults(endpoint, stale_time=0)
            for endpoint in STATIC_ENDPOINTS:
                self.set_query_defaults(endpoint, stale_time=STATIC_STALE_TIME)

    def set_query_defaults(self, prefix: Any, stale_time: float):
        """Register a default stale time (seconds) for every key under prefix."""
        prefix = normalize_key(prefix)
        with self._lock:
            self._defaults = [(p, t) for p, t in self._defaults if p != prefix]
            self._defaults.append((prefix, stale_time))
            # Longest prefix wins
            self._defaults.sort(key=lambda item: len(item[0]), reverse=True)

    def default_stale_time(self, key: Any) -> float:
        key = normalize_key(key)
        for prefix, stale_time in self._defaults:
            if key_matches(key, prefix):
                return stale_time
        return DEFAULT_STALE_TIME

    def read(self, key: Any, fetcher: Fetcher, stale_time: Optional[float] = None,
             refetch_interval: Optional[float] = None) -> Any:
        """Return the cached value if fresh, otherwise fetch, store and notify."""
        key = normalize_key(key)
        with self._lock:
            entry = self._entries.setdefault(key, CacheEntry())
            entry.fetcher = fetcher
            if refetch_interval is not None:
                entry.refetch_interval = refetch_interval

            ttl = stale_time if stale_time is not None else self.default_stale_time(key)
            age = self._clock() - entry.updated_at
            if entry.has_value and not entry.stale and age < ttl:
                return entry.value

        return self._fetch(key, fetcher)

    def get(self, key: Any, default: Any = None) -> Any:
        """Return the cached value without fetching."""
        with self._lock:
            entry = self._entries.get(normalize_key(key))
            if entry is None or not entry.has_value:
                return default
            return entry.value

    def is_stale(self, key: Any) -> bool:
        with self._lock:
            entry = self._entries.get(normalize_key(key))
            return entry is None or not entry.has_value or entry.stale

    def write(self, key: Any, updater: Callable[[Any], Any]) -> Any:
        """Apply updater(old) -> new to a cached entry. No-op when nothing is cached."""
        key = normalize_key(key)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or not entry.has_value:
                return None
            new_value = updater(entry.value)
            entry.value = new_value
            callbacks = list(self._subscribers.get(key, []))

        self._notify(key, new_value, callbacks)
        return new_value

    def set_data(self, key: Any, value: Any) -> Any:
        """Seed or replace a cached value directly."""
        key = normalize_key(key)
        with self._lock:
            entry = self._entries.setdefault(key, CacheEntry())
            entry.value = value
            entry.has_value = True
            entry.stale = False
            entry.updated_at = self._clock()
            callbacks = list(self._subscribers.get(key, []))

        self._notify(key, value, callbacks)
        return value

    def invalidate(self, key_or_prefix: Any) -> List[CacheKey]:
        """Mark matching entries stale and refetch those with active subscribers."""
        prefix = normalize_key(key_or_prefix)
        to_refetch = []

        with self._lock:
            matched = [key for key in self._entries if key_matches(key, prefix)]
            for key in matched:
                self._entries[key].stale = True
                if self._subscribers.get(key):
                    fetcher = self._active_fetcher(key)
                    if fetcher:
                        to_refetch.append((key, fetcher))

        for key, fetcher in to_refetch:
            try:
                self._fetch(key, fetcher)
            except Exception as e:
                # Entry stays stale; the next read surfaces the error
                self.logger.error(f"Refetch of {key} after invalidation failed: {str(e)}")

        if matched:
            self.logger.info(f"Invalidated {len(matched)} cache entries under {prefix}")
        return matched

    def subscribe(self, key: Any, callback: Callable[[Any], None],
                  fetcher: Optional[Fetcher] = None) -> Callable[[], None]:
        """Register a change callback. Returns a function that unsubscribes."""
        key = normalize_key(key)
        subscription = Subscription(callback, fetcher)
        with self._lock:
            self._subscribers.setdefault(key, []).append(subscription)

        def unsubscribe():
            with self._lock:
                subscriptions = self._subscribers.get(key, [])
                if subscription in subscriptions:
                    subscriptions.remove(subscription)
                if not subscriptions:
                    self._subscribers.pop(key, None)

        return unsubscribe

    def subscriber_count(self, key: Any) -> int:
        with self._lock:
            return len(self._subscribers.get(normalize_key(key), []))

    def refresh_due(self) -> List[CacheKey]:
        """Refetch every entry whose refetch interval has elapsed."""
        now = self._clock()
        due = []
        with self._lock:
            for key, entry in self._entries.items():
                if not entry.refetch_interval or not entry.fetcher:
                    continue
                if now - entry.updated_at >= entry.refetch_interval:
                    due.append((key, entry.fetcher))

        refreshed = []
        for key, fetcher in due:
            try:
                self._fetch(key, fetcher)
                refreshed.append(key)
            except Exception as e:
                self.logger.error(f"Scheduled refresh of {key} failed: {str(e)}")
        return refreshed

    def remove(self, key_or_prefix: Any) -> int:
        prefix = normalize_key(key_or_prefix)
        with self._lock:
            matched = [key for key in self._entries if key_matches(key, prefix)]
            for key in matched:
                del self._entries[key]
        return len(matched)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def keys(self) -> List[CacheKey]:
        with self._lock:
            return list(self._entries)

    def _active_fetcher(self, key: CacheKey) -> Optional[Fetcher]:
        for subscription in self._subscribers.get(key, []):
            if subscription.fetcher:
                return subscription.fetcher
        entry = self._entries.get(key)
        return entry.fetcher if entry else None

    def _fetch(self, key: CacheKey, fetcher: Fetcher) -> Any:
        with self._lock:
            self._ticket += 1
            ticket = self._ticket

        try:
            value = fetcher()
        except Exception:
            with self._lock:
                entry = self._entries.get(key)
                if entry is not None:
                    entry.stale = True
            raise

        with self._lock:
            entry = self._entries.setdefault(key, CacheEntry())
            if ticket < entry.last_ticket:
                # A fetch issued later has already stored its result
                return entry.value
            entry.last_ticket = ticket
            entry.value = value
            entry.has_value = True
            entry.stale = False
            entry.updated_at = self._clock()
            if entry.fetcher is None:
                entry.fetcher = fetcher
            callbacks = list(self._subscribers.get(key, []))

        self._notify(key, value, callbacks)
        return value

    def _notify(self, key: CacheKey, value: Any, subscriptions: List[Subscription]):
        for subscription in subscriptions:
            try:
                subscription.callback(value)
            except Exception as e:
                self.logger.error(f"Subscriber for {key} raised: {str(e)}")


def replace_in_list(items: Optional[List[Any]], item_id: Any, **changes) -> Optional[List[Any]]:
    """Return a new list where the item with item_id carries the given changes."""
    if items is None:
        return None

    updated = []
    for item in items:
        if _item_id(item) == item_id:
            updated.append(_copy_with(item, changes))
        else:
            updated.append(item)
    return updated


def remove_from_list(items: Optional[List[Any]], item_id: Any) -> Optional[List[Any]]:
    if items is None:
        return None
    return [item for item in items if _item_id(item) != item_id]


def _item_id(item: Any) -> Any:
    if isinstance(item, dict):
        return item.get("id")
    return getattr(item, "id", None)


def _copy_with(item: Any, changes: Dict[str, Any]) -> Any:
    if isinstance(item, dict):
        return {**item, **changes}
    return item.model_copy(update=changes)
