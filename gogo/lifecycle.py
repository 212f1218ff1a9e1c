"""
Status lifecycles for rides and orders.

Every status write in the services goes through ``ensure_*_transition`` so a
booking can never skip or repeat a step, and ``*_transition_changes`` stamps
the timestamp field that belongs to the new status.
"""

from __future__ import annotations

from typing import Optional

from gogo.errors import FailedPrecondition
from gogo.records import now_ts
from gogo.types import CancelledBy, OrderStatus, RideStatus

RIDE_TRANSITIONS: dict[RideStatus, frozenset[RideStatus]] = {
    RideStatus.SCHEDULED: frozenset({RideStatus.PENDING, RideStatus.CANCELLED}),
    RideStatus.PENDING: frozenset({RideStatus.ACCEPTED, RideStatus.CANCELLED}),
    RideStatus.ACCEPTED: frozenset(
        {
            RideStatus.ARRIVING,
            RideStatus.ARRIVED,
            RideStatus.IN_PROGRESS,
            RideStatus.CANCELLED,
        }
    ),
    RideStatus.ARRIVING: frozenset(
        {RideStatus.ARRIVED, RideStatus.IN_PROGRESS, RideStatus.CANCELLED}
    ),
    RideStatus.ARRIVED: frozenset({RideStatus.IN_PROGRESS, RideStatus.CANCELLED}),
    RideStatus.IN_PROGRESS: frozenset({RideStatus.COMPLETED}),
    RideStatus.COMPLETED: frozenset(),
    RideStatus.CANCELLED: frozenset(),
}

ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.PICKED_UP, OrderStatus.CANCELLED}),
    # Back to READY only when the driver abandons the delivery.
    OrderStatus.PICKED_UP: frozenset(
        {OrderStatus.ON_THE_WAY, OrderStatus.DELIVERED, OrderStatus.READY}
    ),
    OrderStatus.ON_THE_WAY: frozenset({OrderStatus.DELIVERED, OrderStatus.READY}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.COMPLETED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

RIDE_TIMESTAMP_FIELDS = {
    RideStatus.ACCEPTED: "accepted_at",
    RideStatus.ARRIVING: "arriving_at",
    RideStatus.ARRIVED: "arrived_at",
    RideStatus.IN_PROGRESS: "started_at",
    RideStatus.COMPLETED: "completed_at",
    RideStatus.CANCELLED: "cancelled_at",
}

ORDER_TIMESTAMP_FIELDS = {
    OrderStatus.CONFIRMED: "confirmed_at",
    OrderStatus.PREPARING: "preparing_at",
    OrderStatus.READY: "ready_at",
    OrderStatus.PICKED_UP: "picked_up_at",
    OrderStatus.ON_THE_WAY: "on_the_way_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.COMPLETED: "completed_at",
    OrderStatus.CANCELLED: "cancelled_at",
}

ACTIVE_RIDE_STATUSES = frozenset(
    {
        RideStatus.PENDING,
        RideStatus.ACCEPTED,
        RideStatus.ARRIVING,
        RideStatus.ARRIVED,
        RideStatus.IN_PROGRESS,
    }
)

# Statuses in which a driver is attached to the ride.
DRIVER_RIDE_STATUSES = frozenset(
    {
        RideStatus.ACCEPTED,
        RideStatus.ARRIVING,
        RideStatus.ARRIVED,
        RideStatus.IN_PROGRESS,
    }
)

ACTIVE_ORDER_STATUSES = frozenset(
    {
        OrderStatus.PENDING,
        OrderStatus.CONFIRMED,
        OrderStatus.PREPARING,
        OrderStatus.READY,
        OrderStatus.PICKED_UP,
        OrderStatus.ON_THE_WAY,
    }
)

DELIVERY_STATUSES = frozenset({OrderStatus.PICKED_UP, OrderStatus.ON_THE_WAY})

_ORDER_CANCEL_WINDOWS = {
    CancelledBy.CUSTOMER: frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED}),
    CancelledBy.MERCHANT: frozenset(
        {
            OrderStatus.PENDING,
            OrderStatus.CONFIRMED,
            OrderStatus.PREPARING,
            OrderStatus.READY,
        }
    ),
    CancelledBy.SYSTEM: frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED}),
}

_RIDE_CANCEL_WINDOWS = {
    CancelledBy.PASSENGER: frozenset(
        {
            RideStatus.SCHEDULED,
            RideStatus.PENDING,
            RideStatus.ACCEPTED,
            RideStatus.ARRIVING,
            RideStatus.ARRIVED,
        }
    ),
    CancelledBy.DRIVER: frozenset(
        {RideStatus.ACCEPTED, RideStatus.ARRIVING, RideStatus.ARRIVED}
    ),
    CancelledBy.SYSTEM: frozenset({RideStatus.SCHEDULED, RideStatus.PENDING}),
}


def can_transition_ride(current: RideStatus, target: RideStatus) -> bool:
    return target in RIDE_TRANSITIONS.get(current, frozenset())


def can_transition_order(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ORDER_TRANSITIONS.get(current, frozenset())


def ensure_ride_transition(current: RideStatus, target: RideStatus) -> None:
    if not can_transition_ride(current, target):
        raise FailedPrecondition(f"Cannot change ride from {current} to {target}")


def ensure_order_transition(current: OrderStatus, target: OrderStatus) -> None:
    if not can_transition_order(current, target):
        raise FailedPrecondition(f"Cannot change order from {current} to {target}")


def can_cancel_ride(status: RideStatus, by: CancelledBy) -> bool:
    return status in _RIDE_CANCEL_WINDOWS.get(by, frozenset())


def can_cancel_order(status: OrderStatus, by: CancelledBy) -> bool:
    return status in _ORDER_CANCEL_WINDOWS.get(by, frozenset())


def ride_transition_changes(
    current: RideStatus, target: RideStatus, at: Optional[float] = None, **extra
) -> dict:
    """Validate a ride move and build the update for it."""
    ensure_ride_transition(current, target)
    changes = {"status": target, **extra}
    field_name = RIDE_TIMESTAMP_FIELDS.get(target)
    if field_name:
        changes[field_name] = at or now_ts()
    return changes


def order_transition_changes(
    current: OrderStatus, target: OrderStatus, at: Optional[float] = None, **extra
) -> dict:
    """Validate an order move and build the update for it."""
    ensure_order_transition(current, target)
    changes = {"status": target, **extra}
    field_name = ORDER_TIMESTAMP_FIELDS.get(target)
    # Returning to READY keeps the first ready_at.
    if field_name and not (
        target == OrderStatus.READY and current in DELIVERY_STATUSES
    ):
        changes[field_name] = at or now_ts()
    return changes
