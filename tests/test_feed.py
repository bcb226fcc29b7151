import time
from datetime import datetime

import mongomock
from pymongo.errors import OperationFailure

from database import ORDERS, SETTINGS, DocumentStore
from feed import ChangeFeed, ChangeWatcher
from monitor import DashboardMonitor


def test_subscribe_gets_current_state_then_every_change():
    store = DocumentStore(mongomock.MongoClient().db)
    store.create_document("categories", {"name": "Snacks"})
    seen = []

    with store.feed.subscribe("categories", seen.append):
        store.create_document("categories", {"name": "Sweets"})
    store.create_document("categories", {"name": "Namkeen"})

    # initial snapshot + one change; nothing after the subscription closed
    assert [len(s) for s in seen] == [1, 2]
    assert {c["name"] for c in seen[-1]} == {"Snacks", "Sweets"}
    assert store.feed.subscriber_count("categories") == 0


def test_streams_are_independent():
    store = DocumentStore(mongomock.MongoClient().db)
    orders, settings = [], []
    store.feed.subscribe(ORDERS, orders.append)
    store.feed.subscribe(SETTINGS, settings.append)

    store.create_document(ORDERS, {"status": "placed"})
    assert len(orders) == 2
    assert len(settings) == 1


def test_close_is_idempotent_and_broken_listeners_are_isolated():
    feed = ChangeFeed(lambda collection: [{"id": "1"}])
    calls = []

    def broken(snapshot):
        raise RuntimeError("boom")

    feed.subscribe("orders", broken)
    sub = feed.subscribe("orders", calls.append)
    feed.notify("orders")
    assert len(calls) == 2

    sub.close()
    sub.close()
    feed.notify("orders")
    assert len(calls) == 2


def test_monitor_recomputes_on_every_snapshot():
    store = DocumentStore(mongomock.MongoClient().db)
    with DashboardMonitor(store) as monitor:
        assert monitor.summary["totalEarnings"] == 0

        oid = store.create_document(ORDERS, {
            "status": "out_for_delivery", "totalAmount": 450,
            "createdAt": datetime(2025, 3, 2, 12), "items": [{"category": "Snacks", "qty": 3}],
        })
        assert monitor.summary["activeOrders"] == 1
        assert monitor.summary["categoryShare"] == []

        store.update_document(ORDERS, oid, {"status": "delivered"})
        assert monitor.summary["totalEarnings"] == 450
        assert monitor.summary["completedOrders"] == 1
        assert monitor.summary["categoryShare"] == [{"name": "Snacks", "value": 3}]

        store.set_document(SETTINGS, "shop_controls", {"isOpen": False, "onlineOrders": True})
        assert monitor.summary["shopControls"] == {"isOpen": False, "onlineOrders": True}

    store.update_document(ORDERS, oid, {"totalAmount": 1})
    assert monitor.summary["totalEarnings"] == 450


class FakeStream:
    def __init__(self, changes):
        self.changes = changes
        self.alive = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.alive = False

    def try_next(self):
        if self.changes:
            return self.changes.pop(0)
        time.sleep(0.01)
        return None


class WatchedCollection:
    """Collection stand-in whose change stream replays `changes`, or fails like a standalone server."""

    def __init__(self, name, changes=(), error=None):
        self.name = name
        self.changes = list(changes)
        self.error = error

    def watch(self, **kwargs):
        if self.error:
            raise self.error
        return FakeStream(self.changes)


def wait_for(condition, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return condition()


def test_outside_writes_reach_the_monitor_through_the_change_stream():
    store = DocumentStore(mongomock.MongoClient().db)
    store.create_document(ORDERS, {"status": "delivered", "totalAmount": 500, "createdAt": datetime(2025, 3, 2, 12)})

    with DashboardMonitor(store) as monitor:
        # Written by another process: the local feed never hears about it
        store.db[ORDERS].insert_one({"status": "delivered", "totalAmount": 300, "createdAt": datetime(2025, 3, 3, 12)})
        assert monitor.summary["totalEarnings"] == 500

        watcher = ChangeWatcher(WatchedCollection(ORDERS, [{"operationType": "insert"}]), store.feed).start()
        try:
            assert wait_for(lambda: monitor.summary["totalEarnings"] == 800)
        finally:
            watcher.stop()
        assert not watcher.running


def test_monitor_starts_and_stops_a_watcher_per_collection(monkeypatch):
    store = DocumentStore(mongomock.MongoClient().db)
    watchers = []

    def watch(collection):
        watcher = ChangeWatcher(WatchedCollection(collection), store.feed)
        watchers.append(watcher)
        return watcher

    monkeypatch.setattr(store, "watch", watch)
    with DashboardMonitor(store, watch=True):
        assert sorted(w.collection.name for w in watchers) == sorted([ORDERS, "products", "users", SETTINGS])
        assert all(w.running for w in watchers)
    assert not any(w.running for w in watchers)


def test_watcher_exits_quietly_without_change_streams():
    feed = ChangeFeed(lambda collection: [])
    error = OperationFailure("The $changeStream stage is only supported on replica sets")
    watcher = ChangeWatcher(WatchedCollection(ORDERS, error=error), feed).start()
    assert wait_for(lambda: not watcher.running)
    watcher.stop()
