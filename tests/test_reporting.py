from datetime import datetime

import pytest

from reporting import (
    category_share, dashboard_summary, effective_timestamp, inventory_valuation,
    monthly_revenue, order_counts, revenue_timeline, today_revenue,
)


def order(status, total, when, **extra):
    return {"status": status, "totalAmount": total, "createdAt": when.isoformat(), **extra}


def test_only_delivered_orders_count_as_revenue():
    orders = [
        order("delivered", 500, datetime(2025, 3, 2, 12)),
        order("placed", 300, datetime(2025, 3, 5, 12)),
    ]
    march = revenue_timeline(orders, 2025)[2]
    assert march["name"] == "Mar"
    assert march["totalEarnings"] == 500
    assert march["orders"] == 1


def test_yearly_buckets_sum_to_delivered_total():
    orders = [
        order("delivered", 120, datetime(2025, 1, 10, 12)),
        order("DELIVERED", 80.5, datetime(2025, 7, 4, 12)),
        order("cancelled", 999, datetime(2025, 7, 4, 12)),
        order("out_for_delivery", 45, datetime(2025, 2, 1, 12)),
        order("picked_up", 60, datetime(2025, 2, 1, 12)),
        order("delivered", 70, datetime(2024, 12, 31, 12)),
    ]
    buckets = revenue_timeline(orders, 2025)
    assert [b["name"] for b in buckets][:3] == ["Jan", "Feb", "Mar"]
    assert len(buckets) == 12
    assert sum(b["totalEarnings"] for b in buckets) == pytest.approx(200.5)
    assert sum(b["orders"] for b in buckets) == 2


def test_daily_buckets_cover_the_whole_month():
    orders = [
        order("delivered", 100, datetime(2024, 2, 29, 12)),
        order("delivered", 50, datetime(2024, 2, 3, 12)),
        order("delivered", 25, datetime(2024, 3, 3, 12)),
    ]
    days = revenue_timeline(orders, 2024, "Feb")
    # 2024 is a leap year
    assert len(days) == 29
    assert days[0]["name"] == "Feb 01"
    assert days[2]["totalEarnings"] == 50
    assert days[28]["name"] == "Feb 29"
    assert days[28]["totalEarnings"] == 100
    assert [d["sortIdx"] for d in days] == list(range(1, 30))


def test_invalid_month_filter():
    with pytest.raises(ValueError):
        revenue_timeline([], 2025, "March")


def test_monthly_revenue_shape():
    rows = monthly_revenue([order("delivered", 10, datetime(2025, 5, 5, 12))], 2025)
    assert rows[4] == {"name": "May", "totalEarnings": 10}
    assert all(set(r) == {"name", "totalEarnings"} for r in rows)


def test_server_timestamp_wins_over_created_at():
    o = {"serverTimestamp": datetime(2025, 6, 1, 12), "createdAt": "2024-01-01T00:00:00"}
    assert effective_timestamp(o).year == 2025
    assert effective_timestamp({"createdAt": {"seconds": 0}}) == datetime.fromtimestamp(0)


def test_bad_timestamp_falls_back_to_now():
    now = datetime(2025, 8, 15, 9)
    assert effective_timestamp({"createdAt": "not a date"}, now) == now
    assert effective_timestamp({}, now) == now


def test_today_revenue_ignores_filters_and_old_orders():
    now = datetime(2025, 8, 15, 18)
    orders = [
        order("delivered", 200, datetime(2025, 8, 15, 9), serverTimestamp=None),
        order("delivered", 300, datetime(2025, 8, 14, 23)),
        order("processing", 400, datetime(2025, 8, 15, 10)),
        {"status": "delivered", "totalAmount": 50},  # no timestamp: counted as now
    ]
    orders[0]["createdAt"] = datetime(2025, 8, 15, 9).astimezone().isoformat()
    orders[1]["createdAt"] = datetime(2025, 8, 14, 23).astimezone().isoformat()
    assert today_revenue(orders, now) == 250


def test_category_share_delivered_only():
    orders = [
        {"status": "delivered", "items": [
            {"category": "Snacks", "qty": 2},
            {"category": "Snacks", "qty": 3},
            {"category": "Sweets", "qty": 1},
        ]},
        {"status": "cancelled", "items": [{"category": "Snacks", "qty": 10}]},
    ]
    shares = {s["name"]: s["value"] for s in category_share(orders)}
    assert shares == {"Snacks": 5, "Sweets": 1}


def test_category_share_all_orders_and_other_bucket():
    orders = [
        {"status": "placed", "items": [{"qty": 4}]},
        {"status": "delivered", "items": [{"category": "Sweets", "qty": "2"}]},
    ]
    shares = {s["name"]: s["value"] for s in category_share(orders, delivered_only=False)}
    assert shares == {"Other": 4, "Sweets": 2}


def test_inventory_valuation_counts_every_variant_by_default():
    products = [
        {"name": "Mixture", "variants": [
            {"price": 120, "stock": 10, "isActive": True},
            {"price": 220, "stock": 5, "isActive": False},
        ]},
        {"name": "Old item", "price": 50, "stockCount": 99},
    ]
    assert inventory_valuation(products) == {"totalItems": 2, "totalStock": 15, "totalWorth": 2300}
    assert inventory_valuation(products, active_only=True)["totalWorth"] == 1200


def test_order_counts():
    orders = [{"status": s} for s in ["placed", "packed", "ready_for_pickup", "delivered", "picked_up", "cancelled"]]
    assert order_counts(orders) == {"activeOrders": 3, "completedOrders": 1}


def test_dashboard_summary():
    now = datetime(2025, 3, 2, 18)
    orders = [order("delivered", 500, datetime(2025, 3, 2, 12).astimezone())]
    summary = dashboard_summary(orders, [], 7, shop_controls={"isOpen": False}, now=now)
    assert summary["todayRevenue"] == 500
    assert summary["totalEarnings"] == 500
    assert summary["totalUsers"] == 7
    assert summary["completedOrders"] == 1
    assert summary["shopControls"] == {"isOpen": False}


def test_numeric_created_at_is_epoch_milliseconds():
    # 2025-03-02T00:00:00Z as written by Date.now()
    orders = [{"status": "delivered", "totalAmount": 500, "createdAt": 1740873600000}]
    assert revenue_timeline(orders, 2025)[2]["totalEarnings"] == 500
    assert effective_timestamp(orders[0]).year == 2025


def test_out_of_range_timestamp_falls_back_to_now():
    now = datetime(2025, 8, 15, 9)
    assert effective_timestamp({"createdAt": 10 ** 20}, now) == now
    assert effective_timestamp({"createdAt": {"seconds": 10 ** 20}}, now) == now
    summary = dashboard_summary([{"status": "delivered", "totalAmount": 80, "createdAt": 10 ** 20}], [], 0, now=now)
    assert summary["todayRevenue"] == 80
