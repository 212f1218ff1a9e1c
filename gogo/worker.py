"""
Background worker: fans out notifications for ride/order events and runs the
periodic housekeeping (scheduled ride release, request expiry, inbox cleanup).

Run with ``python -m gogo.worker``.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from gogo import db as collections
from gogo import lifecycle
from gogo.chats import close_chats
from gogo.config import Settings, get_settings
from gogo.db import DbClient
from gogo.dependencies import get_db_client, get_queue_client
from gogo.notifications import notify, purge_old_notifications
from gogo.pricing import haversine_m
from gogo.queue import (
    ORDER_CREATED,
    ORDER_STATUS_CHANGED,
    RIDE_CREATED,
    RIDE_STATUS_CHANGED,
    EventQueue,
    ride_event,
)
from gogo.records import DriverRecord, GeoPoint, OrderRecord, RideRecord, now_ts
from gogo.rides import expire_ride, release_scheduled_ride
from gogo.types import (
    ORDER_STATUS_LABELS,
    CancelledBy,
    ChatType,
    DriverStatus,
    NotificationType,
    OrderStatus,
    RideStatus,
)

logger = logging.getLogger(__name__)

RIDE_UPDATES = {
    RideStatus.ACCEPTED: ("Driver Found", "Your driver is on the way to pick you up."),
    RideStatus.ARRIVING: ("Driver Arriving", "Your driver is almost at the pickup point."),
    RideStatus.ARRIVED: ("Driver Arrived", "Your driver has arrived at the pickup location."),
    RideStatus.IN_PROGRESS: ("Ride Started", "Enjoy your ride!"),
}

ORDER_UPDATES = {
    OrderStatus.CONFIRMED: "The store has confirmed your order.",
    OrderStatus.PREPARING: "Your order is being prepared.",
    OrderStatus.READY: "Your order is ready and waiting for a rider.",
    OrderStatus.PICKED_UP: "A rider has picked up your order.",
    OrderStatus.ON_THE_WAY: "Your order is on the way.",
    OrderStatus.DELIVERED: "Your order has been delivered. Enjoy!",
}

NO_DRIVER_REASON = "No drivers available"

CLOSED_CHAT_ORDER_STATUSES = frozenset(
    {OrderStatus.DELIVERED, OrderStatus.COMPLETED, OrderStatus.CANCELLED}
)


def _nearest_drivers(
    drivers: list[DriverRecord],
    origin: GeoPoint,
    radius_km: float,
    limit: int,
) -> list[DriverRecord]:
    located = []
    unlocated = []
    for driver in drivers:
        if driver.is_suspended() or driver.current_ride_id or driver.current_order_id:
            continue
        if driver.current_location is None:
            unlocated.append(driver)
            continue
        distance_km = haversine_m(origin, driver.current_location) / 1000
        if distance_km <= radius_km:
            located.append((distance_km, driver))
    located.sort(key=lambda pair: pair[0])
    return ([d for _, d in located] + unlocated)[:limit]


def notify_drivers_of_ride(db: DbClient, ride: RideRecord, settings: Settings) -> int:
    drivers = db.find(
        collections.DRIVERS,
        {
            "status": DriverStatus.ONLINE,
            "verified": True,
            "vehicle_type": ride.vehicle_type,
        },
    )
    chosen = _nearest_drivers(
        drivers,
        ride.pickup.coordinates,
        settings.dispatch_radius_km,
        settings.driver_notify_limit,
    )
    if not chosen:
        logger.info("[%s] No online drivers available", ride.ride_id)
        return 0
    pickup = ride.pickup.address[:50] or "Pickup location"
    for driver in chosen:
        notify(
            db,
            driver.driver_id,
            NotificationType.RIDE_REQUEST,
            "New Ride Request",
            f"₱{ride.fare.total:.2f} - {pickup}",
            {
                "ride_id": ride.ride_id,
                "vehicle_type": ride.vehicle_type.value,
                "fare": ride.fare.total,
                "pickup_address": ride.pickup.address,
                "dropoff_address": ride.dropoff.address,
            },
        )
    logger.info("[%s] Notified %d drivers", ride.ride_id, len(chosen))
    return len(chosen)


def notify_drivers_of_delivery(db: DbClient, order: OrderRecord, settings: Settings) -> int:
    merchant = db.get(collections.MERCHANTS, order.merchant_id)
    if merchant is None:
        return 0
    drivers = db.find(
        collections.DRIVERS, {"status": DriverStatus.ONLINE, "verified": True}
    )
    chosen = _nearest_drivers(
        drivers,
        merchant.coordinates,
        settings.dispatch_radius_km,
        settings.driver_notify_limit,
    )
    for driver in chosen:
        notify(
            db,
            driver.driver_id,
            NotificationType.DELIVERY_REQUEST,
            "New Delivery Request",
            f"₱{order.delivery_fee:.2f} - {merchant.name}",
            {"order_id": order.order_id, "merchant_id": merchant.merchant_id},
        )
    logger.info("[%s] Notified %d drivers of delivery", order.order_id, len(chosen))
    return len(chosen)


def _status_after(event: dict, enum, current):
    """The status an event moved to; older events without ``after`` use the document's."""
    after = event.get("after")
    if not after:
        return current
    try:
        return enum(after)
    except ValueError:
        logger.warning("Event %r carries an unknown status %r", event.get("type"), after)
        return None


def _on_ride_changed(
    db: DbClient, ride: RideRecord, status: RideStatus, settings: Settings
) -> None:
    data = {"ride_id": ride.ride_id, "status": status.value}
    if status in (RideStatus.COMPLETED, RideStatus.CANCELLED):
        close_chats(db, ChatType.RIDE, ride.ride_id)
    if status == RideStatus.PENDING:
        # Released from the schedule; skip if a driver already took it.
        if ride.status == RideStatus.PENDING:
            notify_drivers_of_ride(db, ride, settings)
    elif status in RIDE_UPDATES:
        title, body = RIDE_UPDATES[status]
        notify(db, ride.passenger_id, NotificationType.RIDE_UPDATE, title, body, data)
    elif status == RideStatus.COMPLETED:
        notify(
            db,
            ride.passenger_id,
            NotificationType.RIDE_UPDATE,
            "Ride Completed",
            f"Thanks for riding with GOGO! Total fare: ₱{ride.fare.total:.2f}",
            data,
        )
    elif status == RideStatus.CANCELLED:
        if ride.cancelled_by == CancelledBy.PASSENGER:
            if ride.driver_id:
                notify(
                    db,
                    ride.driver_id,
                    NotificationType.RIDE_CANCELLED,
                    "Ride Cancelled",
                    "The passenger has cancelled the ride.",
                    data,
                )
        elif ride.cancelled_by == CancelledBy.SYSTEM:
            notify(
                db,
                ride.passenger_id,
                NotificationType.RIDE_CANCELLED,
                "Ride Cancelled",
                "No drivers were available for your ride. Please try again.",
                data,
            )
        else:
            notify(
                db,
                ride.passenger_id,
                NotificationType.RIDE_CANCELLED,
                "Ride Cancelled",
                "The ride has been cancelled.",
                data,
            )


def _on_order_changed(
    db: DbClient,
    order: OrderRecord,
    status: OrderStatus,
    before: Optional[str],
    settings: Settings,
) -> None:
    data = {"order_id": order.order_id, "status": status.value}
    if status in CLOSED_CHAT_ORDER_STATUSES:
        close_chats(db, ChatType.ORDER, order.order_id)
    if status == OrderStatus.CANCELLED:
        if order.cancelled_by == CancelledBy.CUSTOMER:
            merchant = db.get(collections.MERCHANTS, order.merchant_id)
            if merchant is not None:
                notify(
                    db,
                    merchant.owner_id,
                    NotificationType.ORDER_UPDATE,
                    "Order Cancelled",
                    f"Order {order.order_id} was cancelled by the customer.",
                    data,
                )
        else:
            reason = f" Reason: {order.cancellation_reason}" if order.cancellation_reason else ""
            notify(
                db,
                order.customer_id,
                NotificationType.ORDER_UPDATE,
                ORDER_STATUS_LABELS[OrderStatus.CANCELLED],
                f"Your order has been cancelled.{reason}",
                data,
            )
        return

    if status == OrderStatus.READY:
        # Only still-unclaimed orders go out to drivers.
        if order.status == OrderStatus.READY and not order.driver_id:
            notify_drivers_of_delivery(db, order, settings)
        if before and OrderStatus(before) in lifecycle.DELIVERY_STATUSES:
            # A driver dropped it; the customer already heard "ready".
            close_chats(db, ChatType.ORDER, order.order_id, keep_driver_id=order.driver_id)
            return
    body = ORDER_UPDATES.get(status)
    if body:
        notify(
            db,
            order.customer_id,
            NotificationType.ORDER_UPDATE,
            ORDER_STATUS_LABELS[status],
            body,
            data,
        )


def handle_event(event: dict, db: DbClient, settings: Optional[Settings] = None) -> None:
    """
    Notify the people affected by one queued event.

    Events can pile up behind a slow worker, so each one is reported for the
    status it moved to; the document is reloaded only for its current details.
    """
    settings = settings or get_settings()
    event_type = event.get("type")

    if event_type in (RIDE_CREATED, RIDE_STATUS_CHANGED):
        ride = db.get(collections.RIDES, event.get("ride_id", ""))
        if ride is None:
            logger.warning("Received %s for unknown ride %s", event_type, event.get("ride_id"))
            return
        status = _status_after(event, RideStatus, ride.status)
        if status is None:
            return
        if event_type == RIDE_CREATED:
            if status == RideStatus.PENDING and ride.status == RideStatus.PENDING:
                notify_drivers_of_ride(db, ride, settings)
            return
        _on_ride_changed(db, ride, status, settings)
        return

    if event_type in (ORDER_CREATED, ORDER_STATUS_CHANGED):
        order = db.get(collections.ORDERS, event.get("order_id", ""))
        if order is None:
            logger.warning("Received %s for unknown order %s", event_type, event.get("order_id"))
            return
        if event_type == ORDER_CREATED:
            merchant = db.get(collections.MERCHANTS, order.merchant_id)
            if merchant is not None:
                count = sum(item.quantity for item in order.items)
                notify(
                    db,
                    merchant.owner_id,
                    NotificationType.ORDER_NEW,
                    "New Order",
                    f"₱{order.total:.2f} - {count} item(s)",
                    {"order_id": order.order_id},
                )
            return
        status = _status_after(event, OrderStatus, order.status)
        if status is None:
            return
        _on_order_changed(db, order, status, event.get("before"), settings)
        return

    logger.warning("Dropping event with unknown type: %r", event_type)


def run_maintenance(
    db: DbClient,
    queue: EventQueue,
    settings: Optional[Settings] = None,
    now: Optional[float] = None,
) -> dict:
    """Release due scheduled rides, expire stale requests and purge old notifications."""
    settings = settings or get_settings()
    now = now or now_ts()

    released = 0
    for ride in db.find(collections.RIDES, {"status": RideStatus.SCHEDULED}):
        if ride.scheduled_at and ride.scheduled_at - now <= settings.scheduled_ride_lead_seconds:
            if release_scheduled_ride(db, ride.ride_id) is not None:
                queue.enqueue(
                    ride_event(
                        RIDE_STATUS_CHANGED,
                        ride.ride_id,
                        RideStatus.SCHEDULED.value,
                        RideStatus.PENDING.value,
                    )
                )
                released += 1

    expired = 0
    cutoff = now - settings.ride_request_timeout_seconds
    for ride in db.find(collections.RIDES, {"status": RideStatus.PENDING}, oldest_first=True):
        # Released scheduled rides wait from their pickup time, not booking time.
        waiting_since = max(ride.created_at, ride.scheduled_at or 0)
        if waiting_since >= cutoff:
            continue
        if expire_ride(db, ride.ride_id, NO_DRIVER_REASON) is not None:
            queue.enqueue(
                ride_event(
                    RIDE_STATUS_CHANGED,
                    ride.ride_id,
                    RideStatus.PENDING.value,
                    RideStatus.CANCELLED.value,
                )
            )
            logger.info("[%s] Expired after %ds without a driver", ride.ride_id, settings.ride_request_timeout_seconds)
            expired += 1

    purged = purge_old_notifications(
        db, settings.notification_retention_days, now=now
    )
    return {"released": released, "expired": expired, "purged": purged}


def process_next(
    *,
    db: Optional[DbClient] = None,
    queue: Optional[EventQueue] = None,
    block: bool = True,
    timeout: Optional[int] = None,
) -> bool:
    """
    Fetch and handle one event from the queue. Returns True if an event was consumed.
    """
    db = db or get_db_client()
    queue = queue or get_queue_client()

    event = queue.dequeue(block=block, timeout=timeout)
    if not event:
        return False
    try:
        handle_event(event, db)
    except Exception:
        logger.exception("Failed to handle event %r", event)
    return True


def run_loop(poll_interval_seconds: float = 2.0) -> None:
    """
    Blocking loop intended to be run under systemd/supervisor.
    """
    settings = get_settings()
    db = get_db_client()
    queue = get_queue_client()
    last_maintenance = 0.0
    while True:
        if time.monotonic() - last_maintenance >= settings.maintenance_interval_seconds:
            try:
                run_maintenance(db, queue, settings)
            except Exception:
                logger.exception("Maintenance pass failed")
            last_maintenance = time.monotonic()
        processed = process_next(db=db, queue=queue, block=True, timeout=int(poll_interval_seconds))
        if not processed:
            time.sleep(poll_interval_seconds)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_loop()
