"""
Order lifecycle.

    placed -> processing -> packed -> out_for_delivery -> delivered   (Home Delivery)
                                   -> ready_for_pickup -> picked_up   (Store Pickup)

Any non-terminal order can be cancelled. Every function here takes the stored
order document and returns the `$set` fields of a single update, or raises
OrderTransitionError. Nothing here talks to the database.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from schemas import DeliveryMethod, OrderStatus, PaymentMethod, RiderStatus

logger = logging.getLogger(__name__)

TERMINAL = {OrderStatus.delivered, OrderStatus.picked_up, OrderStatus.cancelled}
ACTIVE = [
    OrderStatus.placed,
    OrderStatus.processing,
    OrderStatus.packed,
    OrderStatus.out_for_delivery,
    OrderStatus.ready_for_pickup,
]

TRANSITIONS: Dict[OrderStatus, List[OrderStatus]] = {
    OrderStatus.placed: [OrderStatus.processing, OrderStatus.cancelled],
    OrderStatus.processing: [OrderStatus.packed, OrderStatus.cancelled],
    OrderStatus.packed: [OrderStatus.out_for_delivery, OrderStatus.ready_for_pickup, OrderStatus.cancelled],
    OrderStatus.out_for_delivery: [OrderStatus.delivered, OrderStatus.cancelled],
    OrderStatus.ready_for_pickup: [OrderStatus.picked_up, OrderStatus.cancelled],
    OrderStatus.delivered: [],
    OrderStatus.picked_up: [],
    OrderStatus.cancelled: [],
}

# Staff-facing actions, each a fixed target status
ACTIONS = {
    "accept": OrderStatus.processing,
    "pack": OrderStatus.packed,
    "ready": OrderStatus.ready_for_pickup,
    "complete": OrderStatus.delivered,
    "handover": OrderStatus.picked_up,
    "cancel": OrderStatus.cancelled,
}


class OrderTransitionError(Exception):
    """Raised when an order cannot move to the requested state."""
    pass


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def current_status(order: dict) -> OrderStatus:
    raw = (order.get("status") or "placed").lower()
    try:
        return OrderStatus(raw)
    except ValueError:
        raise OrderTransitionError(f"Order {order.get('id')} has unknown status {order.get('status')!r}")


def is_home_delivery(order: dict) -> bool:
    return order.get("deliveryMethod") == DeliveryMethod.home_delivery.value


def is_store_pickup(order: dict) -> bool:
    return order.get("deliveryMethod") == DeliveryMethod.store_pickup.value


def is_paid(order: dict) -> bool:
    return order.get("paymentStatus") == "Paid"


def allowed_transitions(order: dict) -> List[OrderStatus]:
    """Next states reachable from the order's current state, with the packed branch resolved."""
    status = current_status(order)
    allowed = []
    for target in TRANSITIONS[status]:
        if target in (OrderStatus.out_for_delivery, OrderStatus.delivered) and not is_home_delivery(order):
            continue
        if target in (OrderStatus.ready_for_pickup, OrderStatus.picked_up) and not is_store_pickup(order):
            continue
        allowed.append(target)
    return allowed


def transition(order: dict, target: OrderStatus, now: Optional[datetime] = None) -> dict:
    target = OrderStatus(target)
    status = current_status(order)
    if status in TERMINAL:
        raise OrderTransitionError(f"Order is already {status.value}")
    if target == OrderStatus.out_for_delivery:
        raise OrderTransitionError("Assign a rider to send the order out for delivery")
    if target not in allowed_transitions(order):
        raise OrderTransitionError(f"Cannot move order from {status.value} to {target.value}")
    logger.info("Order %s: %s -> %s", order.get("id"), status.value, target.value)
    return {"status": target.value, "updatedAt": _now(now)}


def apply_action(order: dict, action: str, now: Optional[datetime] = None) -> dict:
    if action not in ACTIONS:
        raise OrderTransitionError(f"Unknown action: {action}")
    return transition(order, ACTIONS[action], now)


def cancel(order: dict, now: Optional[datetime] = None) -> dict:
    return transition(order, OrderStatus.cancelled, now)


def assign_rider(order: dict, rider: dict, now: Optional[datetime] = None) -> dict:
    """Rider fields and the out_for_delivery status, written together.

    Allowed on packed home-delivery orders, and again while out for delivery to
    swap the rider. The rider's own record is not touched.
    """
    status = current_status(order)
    if not is_home_delivery(order):
        raise OrderTransitionError("Only home delivery orders take a rider")
    if status not in (OrderStatus.packed, OrderStatus.out_for_delivery):
        raise OrderTransitionError(f"Cannot assign a rider to a {status.value} order")
    if rider.get("status") != RiderStatus.active.value:
        raise OrderTransitionError(f"Rider {rider.get('name')} is not active")
    if status == OrderStatus.out_for_delivery:
        logger.info("Order %s: rider %s -> %s", order.get("id"), order.get("riderId"), rider.get("id"))
    else:
        logger.info("Order %s: assigned to rider %s", order.get("id"), rider.get("id"))
    return {
        "status": OrderStatus.out_for_delivery.value,
        "riderId": rider["id"],
        "riderUid": rider["id"],
        "riderName": rider.get("name"),
        "riderPhone": rider.get("phone"),
        "updatedAt": _now(now),
    }


def record_payment(order: dict, method: PaymentMethod, now: Optional[datetime] = None) -> dict:
    """Mark a store-pickup order paid. Repeating it just overwrites the method."""
    method = PaymentMethod(method)
    if not is_store_pickup(order):
        raise OrderTransitionError("Payment is collected at the counter for store pickup orders only")
    if current_status(order) == OrderStatus.cancelled:
        raise OrderTransitionError("Order is cancelled")
    logger.info("Order %s: paid via %s", order.get("id"), method.value)
    return {
        "paymentStatus": "Paid",
        "paymentMethod": method.value,
        "paidAt": _now(now).isoformat(),
    }


def matches_search(order: dict, term: str) -> bool:
    term = term.lower()
    address = order.get("shippingAddress") or {}
    fields = [
        order.get("orderId"),
        order.get("userName"),
        order.get("userEmail"),
        order.get("userPhone"),
        order.get("phone"),
        address.get("phone"),
    ]
    return any(term in str(f).lower() for f in fields if f)
