"""
Change notifications for the document store.

Every write to a collection pushes the full, freshly read snapshot of that
collection to its subscribers. Collections are independent streams: nothing
orders a snapshot of `orders` relative to one of `app_settings`.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional

from pymongo.collection import Collection
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)

Snapshot = List[dict]
Listener = Callable[[Snapshot], None]
SnapshotLoader = Callable[[str], Snapshot]


class Subscription:
    """Handle returned by `ChangeFeed.subscribe`; usable as a context manager."""

    def __init__(self, feed: "ChangeFeed", collection: str, listener: Listener):
        self._feed = feed
        self.collection = collection
        self.listener = listener
        self.closed = False

    def close(self) -> None:
        if self.closed:
            return
        self._feed._remove(self)
        self.closed = True

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class ChangeFeed:
    def __init__(self, loader: Optional[SnapshotLoader] = None):
        self._loader = loader
        self._lock = threading.Lock()
        self._subscriptions: Dict[str, List[Subscription]] = {}

    def bind(self, loader: SnapshotLoader) -> None:
        self._loader = loader

    def subscribe(self, collection: str, listener: Listener) -> Subscription:
        sub = Subscription(self, collection, listener)
        with self._lock:
            self._subscriptions.setdefault(collection, []).append(sub)
        # First event is the current state
        self._deliver([sub], self._load(collection))
        return sub

    def notify(self, collection: str) -> None:
        with self._lock:
            subs = list(self._subscriptions.get(collection, []))
        if not subs:
            return
        try:
            snapshot = self._load(collection)
        except Exception:
            # The write itself went through; subscribers catch up on the next one
            logger.exception("Could not read %s snapshot", collection)
            return
        self._deliver(subs, snapshot)

    def subscriber_count(self, collection: str) -> int:
        with self._lock:
            return len(self._subscriptions.get(collection, []))

    def _load(self, collection: str) -> Snapshot:
        if self._loader is None:
            return []
        return self._loader(collection)

    def _deliver(self, subs: List[Subscription], snapshot: Snapshot) -> None:
        for sub in subs:
            try:
                sub.listener(list(snapshot))
            except Exception:
                # One broken listener must not starve the others
                logger.exception("Listener on %s failed", sub.collection)

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            subs = self._subscriptions.get(sub.collection, [])
            if sub in subs:
                subs.remove(sub)


class ChangeWatcher:
    """Forwards MongoDB change-stream events for one collection to a ChangeFeed.

    This is how writes made outside this process (the customer app, other
    workers) reach subscribers. Change streams need a replica set; on a
    standalone server the watcher logs the failure and exits, and only
    writes made through this process are seen.
    """

    def __init__(self, collection: Collection, feed: ChangeFeed, max_await_ms: int = 1000):
        self.collection = collection
        self.feed = feed
        self.max_await_ms = max_await_ms
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> "ChangeWatcher":
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=f"watch-{self.collection.name}", daemon=True)
        self._thread.start()
        return self

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        name = self.collection.name
        try:
            with self.collection.watch(max_await_time_ms=self.max_await_ms) as stream:
                logger.info("Watching %s for changes", name)
                while not self._stop.is_set() and stream.alive:
                    if stream.try_next() is not None:
                        self.feed.notify(name)
        except PyMongoError:
            logger.exception("Change stream on %s unavailable, only local writes will refresh it", name)
