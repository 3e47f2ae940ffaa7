"""
Optimistic mutation protocol shared by shipment, user and pricing actions.

Every action runs through the same steps: precondition check, optimistic
cache patch, network call, then invalidation of the touched keys on both
success and failure. Rollback is a refetch, never a reversed patch.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Tuple, Union

import requests

from api_client import ApiError
from query_cache import QueryCache, normalize_key


class MutationState(str, Enum):
    IDLE = "idle"
    REJECTED = "rejected"
    OPTIMISTIC = "optimistic"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class PreconditionFailed(Exception):
    """Raised by a precondition check; no network call is made."""

    def __init__(self, title: str, description: str):
        super().__init__(description)
        self.title = title
        self.description = description


@dataclass
class Notification:
    title: str
    description: str = ""
    variant: str = "default"

    @property
    def is_error(self) -> bool:
        return self.variant == "destructive"


class Notifier:
    """Collects transient user-visible notifications until the view drains them."""

    def __init__(self):
        self._lock = threading.Lock()
        self.notifications: List[Notification] = []

    def notify(self, title: str, description: str = "", variant: str = "default") -> Notification:
        notification = Notification(title, description, variant)
        with self._lock:
            self.notifications.append(notification)
        return notification

    def success(self, title: str, description: str = "") -> Notification:
        return self.notify(title, description)

    def error(self, title: str, description: str = "") -> Notification:
        return self.notify(title, description, variant="destructive")

    def drain(self) -> List[Notification]:
        with self._lock:
            drained = self.notifications
            self.notifications = []
        return drained

    @property
    def last(self) -> Optional[Notification]:
        with self._lock:
            return self.notifications[-1] if self.notifications else None


class PendingTracker:
    """In-flight operations keyed by (operation, entity id) for per-row spinners."""

    def __init__(self):
        self._lock = threading.Lock()
        self._pending = set()

    @contextmanager
    def track(self, operation: str, entity_id: Any = None):
        token = (operation, entity_id)
        with self._lock:
            self._pending.add(token)
        try:
            yield
        finally:
            with self._lock:
                self._pending.discard(token)

    def is_pending(self, operation: str, entity_id: Any = None) -> bool:
        with self._lock:
            return (operation, entity_id) in self._pending

    def active(self) -> List[Tuple[str, Any]]:
        with self._lock:
            return sorted(self._pending, key=str)


@dataclass
class MutationResult:
    state: MutationState
    data: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.state == MutationState.COMMITTED


Message = Union[str, Callable[[Any], str]]


class OptimisticMutation:
    """One user action: idle -> optimistic -> committed | rolled_back."""

    def __init__(self, cache: QueryCache, notifier: Notifier, name: str, mutate: Callable[[], Any],
                 patches: Iterable[Tuple[Any, Callable[[Any], Any]]] = (),
                 invalidate: Iterable[Any] = (),
                 precondition: Optional[Callable[[], None]] = None,
                 success_title: str = "Success", success_message: Message = "",
                 error_title: str = "Error", error_fallback: str = "An unknown error occurred",
                 pending: Optional[PendingTracker] = None, entity_id: Any = None):
        self.cache = cache
        self.notifier = notifier
        self.name = name
        self.mutate = mutate
        self.patches = list(patches)
        self.precondition = precondition
        self.success_title = success_title
        self.success_message = success_message
        self.error_title = error_title
        self.error_fallback = error_fallback
        self.pending = pending
        self.entity_id = entity_id
        self.state = MutationState.IDLE
        self.logger = logging.getLogger(__name__)

        # Every patched key is invalidated afterwards, plus any extras
        keys = [normalize_key(key) for key, _ in self.patches]
        for key in invalidate:
            key = normalize_key(key)
            if key not in keys:
                keys.append(key)
        self.invalidate_keys = keys

    def run(self) -> MutationResult:
        if self.precondition is not None:
            try:
                self.precondition()
            except PreconditionFailed as e:
                self.state = MutationState.REJECTED
                self.notifier.error(e.title, e.description)
                self.logger.info(f"{self.name} rejected: {e.description}")
                return MutationResult(self.state, error=e.description)

        for key, updater in self.patches:
            self.cache.write(key, updater)
        self.state = MutationState.OPTIMISTIC

        try:
            if self.pending is not None:
                with self.pending.track(self.name, self.entity_id):
                    data = self.mutate()
            else:
                data = self.mutate()
        except (ApiError, requests.RequestException, ValueError) as e:
            message = getattr(e, "message", None) or str(e) or self.error_fallback
            self.logger.error(f"{self.name} failed: {message}")
            self._reconcile()
            self.state = MutationState.ROLLED_BACK
            self.notifier.error(self.error_title, message)
            return MutationResult(self.state, error=message)

        self._reconcile()
        self.state = MutationState.COMMITTED
        self.notifier.success(self.success_title, self._render_success(data))
        self.logger.info(f"{self.name} committed")
        return MutationResult(self.state, data=data)

    def _reconcile(self):
        for key in self.invalidate_keys:
            self.cache.invalidate(key)

    def _render_success(self, data: Any) -> str:
        if callable(self.success_message):
            return self.success_message(data)
        return self.success_message
