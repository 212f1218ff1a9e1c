"""
Live view of the driver assigned to a customer's ride or delivery.

Customers never read driver documents directly; they get the public part of
the profile (name, vehicle, rating, location) and an ETA for as long as the
booking is in the driver's hands.
"""

from __future__ import annotations

import math
from typing import Optional

from gogo import db as collections
from gogo.db import DbClient
from gogo.errors import FailedPrecondition, NotFound, PermissionDenied
from gogo.lifecycle import DELIVERY_STATUSES
from gogo.pricing import estimate_route
from gogo.records import DriverRecord, GeoPoint, OrderRecord, RideRecord, UserRecord
from gogo.types import RideStatus
from gogo.watch import wait_for_change

TRACKED_RIDE_STATUSES = frozenset(
    {
        RideStatus.ACCEPTED,
        RideStatus.ARRIVING,
        RideStatus.ARRIVED,
        RideStatus.IN_PROGRESS,
    }
)


def eta_minutes(origin: Optional[GeoPoint], target: GeoPoint) -> Optional[int]:
    if origin is None:
        return None
    return math.ceil(estimate_route(origin, target).duration / 60)


def public_driver(driver: DriverRecord, target: Optional[GeoPoint] = None) -> dict:
    """The part of a driver profile their customer may see."""
    location = driver.current_location
    return {
        "driver_id": driver.driver_id,
        "first_name": driver.first_name,
        "last_name": driver.last_name,
        "phone": driver.phone,
        "profile_image": driver.profile_image,
        "vehicle_type": driver.vehicle_type.value,
        "vehicle": {
            "make": driver.vehicle.make,
            "model": driver.vehicle.model,
            "color": driver.vehicle.color,
            "plate_number": driver.vehicle.plate_number,
        },
        "rating": driver.rating,
        "total_rides": driver.total_rides,
        "current_location": (
            {"latitude": location.latitude, "longitude": location.longitude}
            if location
            else None
        ),
        "eta_minutes": eta_minutes(location, target) if target else None,
        "version": driver.version,
    }


def _load_driver(db: DbClient, driver_id: str) -> DriverRecord:
    driver = db.get(collections.DRIVERS, driver_id)
    if driver is None:
        raise NotFound("Driver profile not found")
    return driver


def ride_target(ride: RideRecord) -> GeoPoint:
    """Where the driver is heading: the pickup, then the dropoff once on board."""
    if ride.status == RideStatus.IN_PROGRESS:
        return ride.dropoff.coordinates
    return ride.pickup.coordinates


def tracked_ride(db: DbClient, ride_id: str, user: UserRecord) -> RideRecord:
    ride = db.get(collections.RIDES, ride_id)
    if ride is None:
        raise NotFound("Ride not found")
    if user.user_id != ride.passenger_id:
        raise PermissionDenied("Only the passenger can track this ride")
    if ride.status not in TRACKED_RIDE_STATUSES or not ride.driver_id:
        raise FailedPrecondition("No driver is assigned to this ride")
    return ride


def tracked_order(db: DbClient, order_id: str, user: UserRecord) -> OrderRecord:
    order = db.get(collections.ORDERS, order_id)
    if order is None:
        raise NotFound("Order not found")
    if user.user_id != order.customer_id:
        raise PermissionDenied("Only the customer can track this order")
    if order.status not in DELIVERY_STATUSES or not order.driver_id:
        raise FailedPrecondition("No rider is delivering this order")
    return order


def ride_driver(db: DbClient, ride_id: str, user: UserRecord) -> tuple[RideRecord, DriverRecord]:
    ride = tracked_ride(db, ride_id, user)
    return ride, _load_driver(db, ride.driver_id)


def order_driver(
    db: DbClient, order_id: str, user: UserRecord
) -> tuple[OrderRecord, DriverRecord]:
    order = tracked_order(db, order_id, user)
    return order, _load_driver(db, order.driver_id)


def watch_ride_driver(
    db: DbClient,
    ride_id: str,
    user: UserRecord,
    *,
    since_version: int,
    timeout: float = 25.0,
) -> tuple[RideRecord, DriverRecord, bool]:
    """Long-poll the assigned driver's document (location pings bump its version)."""
    ride = tracked_ride(db, ride_id, user)
    driver, changed = wait_for_change(
        lambda: db.get(collections.DRIVERS, ride.driver_id), since_version, timeout
    )
    return ride, driver, changed


def watch_order_driver(
    db: DbClient,
    order_id: str,
    user: UserRecord,
    *,
    since_version: int,
    timeout: float = 25.0,
) -> tuple[OrderRecord, DriverRecord, bool]:
    order = tracked_order(db, order_id, user)
    driver, changed = wait_for_change(
        lambda: db.get(collections.DRIVERS, order.driver_id), since_version, timeout
    )
    return order, driver, changed
