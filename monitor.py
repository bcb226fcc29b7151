import logging
import threading
from typing import Dict, List, Optional

import reporting
from app_settings import SHOP_CONTROLS
from database import CUSTOMERS, ORDERS, PRODUCTS, SETTINGS, DocumentStore
from feed import ChangeWatcher, Subscription

logger = logging.getLogger(__name__)

WATCHED = (ORDERS, PRODUCTS, CUSTOMERS, SETTINGS)


class DashboardMonitor:
    """Keeps the dashboard summary current by recomputing it on every snapshot."""

    def __init__(self, store: DocumentStore, delivered_only: bool = True, valuation_active_only: bool = False,
                 watch: bool = False):
        self.store = store
        self.watch = watch
        self.delivered_only = delivered_only
        self.valuation_active_only = valuation_active_only
        self._lock = threading.Lock()
        self._snapshots: Dict[str, List[dict]] = {}
        self._subscriptions: List[Subscription] = []
        self._watchers: List[ChangeWatcher] = []
        self.summary: Optional[dict] = None

    def start(self) -> "DashboardMonitor":
        for collection in WATCHED:
            self._subscriptions.append(self.store.feed.subscribe(collection, self._listener(collection)))
        if self.watch:
            self._watchers = [self.store.watch(collection).start() for collection in WATCHED]
        return self

    def stop(self) -> None:
        for watcher in self._watchers:
            watcher.stop()
        self._watchers = []
        for sub in self._subscriptions:
            sub.close()
        self._subscriptions = []

    def __enter__(self) -> "DashboardMonitor":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def _listener(self, collection: str):
        def on_snapshot(snapshot: List[dict]) -> None:
            with self._lock:
                self._snapshots[collection] = snapshot
                self.summary = self._compute()
        return on_snapshot

    def _compute(self) -> dict:
        settings = {d.get("id"): d for d in self._snapshots.get(SETTINGS, [])}
        controls = settings.get(SHOP_CONTROLS)
        if controls is not None:
            controls = {k: v for k, v in controls.items() if k != "id"}
        return reporting.dashboard_summary(
            self._snapshots.get(ORDERS, []),
            self._snapshots.get(PRODUCTS, []),
            len(self._snapshots.get(CUSTOMERS, [])),
            shop_controls=controls,
            delivered_only=self.delivered_only,
            valuation_active_only=self.valuation_active_only,
        )
