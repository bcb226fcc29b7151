"""
Dashboard figures derived from the raw order and product collections.

Everything is recomputed from the whole snapshot each time; there is no
incremental state. Only delivered orders count as revenue.
"""
import calendar
import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Union

from lifecycle import ACTIVE, current_status, OrderTransitionError
from schemas import OrderStatus
from variants import is_active, to_number

logger = logging.getLogger(__name__)

MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
ALL = "All"


def _local(dt: datetime) -> datetime:
    # Naive values from pymongo are UTC
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone().replace(tzinfo=None)


def _parse(value) -> Optional[datetime]:
    if isinstance(value, datetime):
        return _local(value)
    try:
        if isinstance(value, dict) and "seconds" in value:
            return datetime.fromtimestamp(value["seconds"])
        # Bare numbers are epoch milliseconds, as the customer app writes Date.now()
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return datetime.fromtimestamp(value / 1000)
    except (TypeError, ValueError, OverflowError, OSError):
        return None
    if isinstance(value, str) and value:
        try:
            return _local(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            return None
    return None


def effective_timestamp(order: dict, now: Optional[datetime] = None) -> datetime:
    """Local, naive order time: serverTimestamp first, then createdAt, else now."""
    for key in ("serverTimestamp", "createdAt"):
        value = order.get(key)
        if value is None:
            continue
        parsed = _parse(value)
        if parsed is not None:
            return parsed
    logger.warning("Order %s has no usable timestamp, counting it as now", order.get("id"))
    return now or datetime.now()


def is_delivered(order: dict) -> bool:
    return (order.get("status") or "").lower() == OrderStatus.delivered.value


def order_total(order: dict) -> float:
    return float(to_number(order.get("totalAmount")) or 0)


def _month_index(month: Union[str, int, None]) -> Optional[int]:
    if month in (None, "", ALL):
        return None
    if isinstance(month, int):
        if not 1 <= month <= 12:
            raise ValueError(f"Invalid month: {month}")
        return month
    if month not in MONTHS:
        raise ValueError(f"Invalid month: {month}")
    return MONTHS.index(month) + 1


def revenue_timeline(orders: Iterable[dict], year: int, month: Union[str, int, None] = ALL,
                     now: Optional[datetime] = None) -> List[dict]:
    """Revenue and order count per month of `year`, or per day when `month` is given.

    Buckets are pre-seeded with zeros so quiet periods still show up.
    """
    month_idx = _month_index(month)
    buckets: Dict[int, dict] = {}
    if month_idx is None:
        for idx, name in enumerate(MONTHS):
            buckets[idx + 1] = {"name": name, "totalEarnings": 0.0, "orders": 0, "sortIdx": idx}
    else:
        label = MONTHS[month_idx - 1]
        for day in range(1, calendar.monthrange(year, month_idx)[1] + 1):
            buckets[day] = {"name": f"{label} {day:02d}", "totalEarnings": 0.0, "orders": 0, "sortIdx": day}

    for order in orders:
        if not is_delivered(order):
            continue
        date = effective_timestamp(order, now)
        if date.year != year:
            continue
        if month_idx is None:
            key = date.month
        elif date.month == month_idx:
            key = date.day
        else:
            continue
        buckets[key]["totalEarnings"] += order_total(order)
        buckets[key]["orders"] += 1

    return sorted(buckets.values(), key=lambda b: b["sortIdx"])


def monthly_revenue(orders: Iterable[dict], year: int, now: Optional[datetime] = None) -> List[dict]:
    return [
        {"name": b["name"], "totalEarnings": b["totalEarnings"]}
        for b in revenue_timeline(orders, year, ALL, now)
    ]


def today_revenue(orders: Iterable[dict], now: Optional[datetime] = None) -> float:
    now = now or datetime.now()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return sum(
        order_total(o) for o in orders
        if is_delivered(o) and effective_timestamp(o, now) >= midnight
    )


def total_earnings(orders: Iterable[dict]) -> float:
    return sum(order_total(o) for o in orders if is_delivered(o))


def category_share(orders: Iterable[dict], delivered_only: bool = True) -> List[dict]:
    totals: Dict[str, float] = {}
    for order in orders:
        if delivered_only and not is_delivered(order):
            continue
        for item in order.get("items") or []:
            cat = item.get("category") or "Other"
            qty = to_number(item.get("qty"))
            totals[cat] = totals.get(cat, 0) + qty
    return [{"name": name, "value": value} for name, value in totals.items()]


def inventory_valuation(products: Iterable[dict], active_only: bool = False) -> dict:
    products = list(products)
    stock = 0
    worth = 0.0
    for product in products:
        variants = product.get("variants")
        if not isinstance(variants, list):
            continue
        for v in variants:
            if active_only and not is_active(v):
                continue
            units = to_number(v.get("stock"))
            price = to_number(v.get("price"))
            stock += units
            worth += price * units
    return {"totalItems": len(products), "totalStock": stock, "totalWorth": worth}


def order_counts(orders: Iterable[dict]) -> dict:
    active = completed = 0
    for order in orders:
        try:
            status = current_status(order)
        except OrderTransitionError:
            continue
        if status in ACTIVE:
            active += 1
        elif status == OrderStatus.delivered:
            completed += 1
    return {"activeOrders": active, "completedOrders": completed}


def dashboard_summary(orders: List[dict], products: List[dict], customer_count: int,
                      shop_controls: Optional[dict] = None, delivered_only: bool = True,
                      valuation_active_only: bool = False, now: Optional[datetime] = None) -> dict:
    summary = {
        "todayRevenue": today_revenue(orders, now),
        "totalEarnings": total_earnings(orders),
        "totalUsers": customer_count,
        "totalProducts": len(products),
        "categoryShare": category_share(orders, delivered_only),
        "inventory": inventory_valuation(products, valuation_active_only),
    }
    summary.update(order_counts(orders))
    if shop_controls is not None:
        summary["shopControls"] = shop_controls
    return summary
