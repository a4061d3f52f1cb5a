"""
Realtime Change Feed — push-based query subscriptions.

Every read the dashboard keeps open is a subscription: a loader (a query
returning a snapshot of plain dicts) bound to a collection name. After a
service commits a write it calls ``notify_change(collection, ...)``; each
live subscription on that collection re-runs its loader and receives the
new snapshot.

Subscriptions are individually revocable. A cancelled subscription never
receives another snapshot, even if a notification was already in flight.

Usage:
    from sitetrack.services.realtime import feed, PROJECTS

    sub = feed.subscribe(PROJECTS, load_my_projects, on_snapshot)
    ...
    sub.cancel()
"""

import itertools
import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)

USERS = "users"
PROJECTS = "projects"
REPORTS = "reports"

COLLECTIONS = frozenset({USERS, PROJECTS, REPORTS})


class Subscription:
    """Handle for one live query. ``cancel()`` is idempotent."""

    _ids = itertools.count(1)

    def __init__(self, feed, collection: str, loader: Callable, callback: Callable,
                 on_error: Callable | None = None, name: str = ""):
        self.id = next(self._ids)
        self.collection = collection
        self.name = name or f"{collection}#{self.id}"
        self._feed = feed
        self._loader = loader
        self._callback = callback
        self._on_error = on_error
        self._active = True
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
        self._feed._remove(self)
        logger.debug("Subscription %s cancelled", self.name)

    def refresh(self) -> None:
        """Re-run the loader and deliver the snapshot if still active."""
        if not self._active:
            return
        try:
            snapshot = self._loader()
        except Exception as exc:
            logger.error("Subscription %s loader failed: %s", self.name, exc, exc_info=True)
            if self._on_error is not None and self._active:
                self._on_error(exc)
            return
        if self._active:
            self._callback(snapshot)


class ChangeFeed:
    """In-process registry of query subscriptions keyed by collection."""

    def __init__(self):
        self._subs: dict[str, dict[int, Subscription]] = {c: {} for c in COLLECTIONS}
        self._lock = threading.Lock()

    def subscribe(
        self,
        collection: str,
        loader: Callable,
        callback: Callable,
        *,
        on_error: Callable | None = None,
        name: str = "",
        deliver_initial: bool = True,
    ) -> Subscription:
        """Register a live query; the current snapshot is delivered immediately."""
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection '{collection}'")
        sub = Subscription(self, collection, loader, callback, on_error=on_error, name=name)
        with self._lock:
            self._subs[collection][sub.id] = sub
        logger.debug("Subscription %s opened", sub.name)
        if deliver_initial:
            sub.refresh()
        return sub

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            self._subs[sub.collection].pop(sub.id, None)

    def notify(self, *collections: str) -> None:
        """Push fresh snapshots to every live subscription on ``collections``."""
        with self._lock:
            targets = [
                sub
                for c in dict.fromkeys(collections)
                for sub in self._subs.get(c, {}).values()
            ]
        for sub in targets:
            try:
                sub.refresh()
            except Exception as exc:
                logger.error("Subscriber %s failed on notify: %s", sub.name, exc, exc_info=True)

    def active_count(self, collection: str | None = None) -> int:
        with self._lock:
            if collection is not None:
                return len(self._subs.get(collection, {}))
            return sum(len(s) for s in self._subs.values())

    def reset(self) -> None:
        """Drop every subscription (test isolation)."""
        with self._lock:
            subs = [s for group in self._subs.values() for s in group.values()]
        for sub in subs:
            sub.cancel()


feed = ChangeFeed()


def notify_change(*collections: str) -> None:
    """Fan out a committed write to subscribers. Subscriber failures are logged, not raised."""
    feed.notify(*collections)
