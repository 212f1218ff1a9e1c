"""
Ride hailing: quotes and bookings for passengers, dispatch and trip progress
for drivers.

Every write that another actor can race (accepting, cancelling, completing)
re-reads the ride and driver inside ``db.transaction()`` before checking and
writing, so two drivers can never both hold the same ride.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from gogo import db as collections
from gogo import lifecycle
from gogo.accounts import get_driver
from gogo.db import DbClient
from gogo.errors import (
    Aborted,
    FailedPrecondition,
    InvalidArgument,
    NotFound,
    PermissionDenied,
)
from gogo.pricing import (
    VEHICLE_TYPES,
    calculate_fare,
    estimate_route,
    haversine_m,
    surge_multiplier,
)
from gogo.promos import redeem_promo, require_promo
from gogo.queue import RIDE_CREATED, RIDE_STATUS_CHANGED, EventQueue, ride_event
from gogo.records import (
    DriverRecord,
    GeoPoint,
    Place,
    PromoRecord,
    RideFare,
    RideRecord,
    RouteInfo,
    UserRecord,
    new_id,
    now_ts,
)
from gogo.types import (
    AccountStatus,
    CancelledBy,
    DriverStatus,
    PaymentMethod,
    RideStatus,
    ServiceType,
    UserRole,
    VehicleType,
)
from gogo.wallet import ensure_wallet_covers, refund_if_paid, settle_on_completion
from gogo.watch import wait_for_change

logger = logging.getLogger(__name__)


@dataclass
class RideQuote:
    vehicle_type: VehicleType
    route: RouteInfo
    fare: RideFare
    surge_multiplier: float
    promo: Optional[PromoRecord] = None

    def as_dict(self) -> dict:
        return {
            "vehicle_type": self.vehicle_type.value,
            "vehicle": VEHICLE_TYPES[self.vehicle_type].as_dict(),
            "route": {
                "distance": self.route.distance,
                "duration": self.route.duration,
                "polyline": self.route.polyline,
                "estimated": self.route.estimated,
            },
            "fare": {
                "base": self.fare.base,
                "distance": self.fare.distance,
                "time": self.fare.time,
                "surge": self.fare.surge,
                "discount": self.fare.discount,
                "total": self.fare.total,
            },
            "surge_multiplier": self.surge_multiplier,
            "promo_code": self.promo.code if self.promo else None,
        }


def local_now(timezone: str) -> datetime:
    return datetime.now(ZoneInfo(timezone))


def _emit(queue: EventQueue, ride: RideRecord, before: Optional[RideStatus]) -> None:
    if before is None:
        queue.enqueue(ride_event(RIDE_CREATED, ride.ride_id, None, ride.status.value))
    else:
        queue.enqueue(
            ride_event(RIDE_STATUS_CHANGED, ride.ride_id, before.value, ride.status.value)
        )


# Passenger -------------------------------------------------------------------


def quote_ride(
    db: DbClient,
    *,
    pickup: GeoPoint,
    dropoff: GeoPoint,
    vehicle_type: VehicleType,
    route: Optional[RouteInfo] = None,
    promo_code: Optional[str] = None,
    now: Optional[datetime] = None,
    timezone: str = "Asia/Manila",
) -> RideQuote:
    now = now or local_now(timezone)
    if route is None or route.distance <= 0:
        route = estimate_route(pickup, dropoff)
    surge = surge_multiplier(now)
    fare = calculate_fare(vehicle_type, route, surge)
    promo = None
    if promo_code:
        promo = require_promo(db, promo_code, fare.total, ServiceType.RIDES)
        fare = calculate_fare(vehicle_type, route, surge, promo)
    return RideQuote(
        vehicle_type=vehicle_type,
        route=route,
        fare=fare,
        surge_multiplier=surge,
        promo=promo,
    )


def passenger_active_ride(db: DbClient, user_id: str) -> Optional[RideRecord]:
    rides = db.find(
        collections.RIDES,
        {"passenger_id": user_id, "status": list(lifecycle.ACTIVE_RIDE_STATUSES)},
        limit=1,
    )
    return rides[0] if rides else None


def book_ride(
    db: DbClient,
    queue: EventQueue,
    user: UserRecord,
    *,
    pickup: Place,
    dropoff: Place,
    vehicle_type: VehicleType,
    payment_method: PaymentMethod,
    route: Optional[RouteInfo] = None,
    promo_code: Optional[str] = None,
    scheduled_at: Optional[float] = None,
    now: Optional[datetime] = None,
    timezone: str = "Asia/Manila",
) -> RideRecord:
    if user.status != AccountStatus.ACTIVE:
        raise PermissionDenied("Your account is not active")
    if passenger_active_ride(db, user.user_id) is not None:
        raise FailedPrecondition("You already have an active ride")

    quote = quote_ride(
        db,
        pickup=pickup.coordinates,
        dropoff=dropoff.coordinates,
        vehicle_type=vehicle_type,
        route=route,
        promo_code=promo_code,
        now=now,
        timezone=timezone,
    )
    if payment_method == PaymentMethod.WALLET:
        ensure_wallet_covers(db, user.user_id, quote.fare.total)

    scheduled = scheduled_at is not None and scheduled_at > now_ts()
    ride = RideRecord(
        ride_id=new_id("ride"),
        passenger_id=user.user_id,
        vehicle_type=vehicle_type,
        pickup=pickup,
        dropoff=dropoff,
        fare=quote.fare,
        payment_method=payment_method,
        status=RideStatus.SCHEDULED if scheduled else RideStatus.PENDING,
        route=quote.route,
        promo_code=quote.promo.code if quote.promo else None,
        surge_multiplier=quote.surge_multiplier,
        scheduled_at=scheduled_at if scheduled else None,
    )
    with db.transaction() as tx:
        # Locks the passenger so two bookings cannot both pass the check below.
        if tx.get(collections.USERS, user.user_id) is None:
            raise NotFound("User profile not found")
        if passenger_active_ride(tx, user.user_id) is not None:
            raise FailedPrecondition("You already have an active ride")
        if quote.promo is not None:
            redeem_promo(tx, quote.promo.promo_id)
        tx.add(collections.RIDES, ride)

    logger.info(
        "[%s] Booked %s ride for %s, fare %.2f",
        ride.ride_id,
        vehicle_type,
        user.user_id,
        ride.fare.total,
    )
    _emit(queue, ride, None)
    return ride


def get_ride(db: DbClient, ride_id: str, user: UserRecord) -> RideRecord:
    """A ride as seen by its passenger, its driver or an admin."""
    ride = db.get(collections.RIDES, ride_id)
    if ride is None:
        raise NotFound("Ride not found")
    if user.user_id not in (ride.passenger_id, ride.driver_id) and user.role != UserRole.ADMIN:
        raise PermissionDenied("Not your ride")
    return ride


def watch_ride(
    db: DbClient,
    ride_id: str,
    user: UserRecord,
    *,
    since_version: int,
    timeout: float = 25.0,
) -> tuple[RideRecord, bool]:
    get_ride(db, ride_id, user)
    return wait_for_change(
        lambda: db.get(collections.RIDES, ride_id), since_version, timeout
    )


def _free_driver(tx: DbClient, driver_id: Optional[str], **counters) -> None:
    if not driver_id:
        return
    driver = tx.get(collections.DRIVERS, driver_id)
    if driver is None:
        return
    changes = {"current_ride_id": None}
    if driver.status == DriverStatus.BUSY and not driver.current_order_id:
        changes["status"] = DriverStatus.ONLINE
    for field_name, amount in counters.items():
        changes[field_name] = getattr(driver, field_name) + amount
    tx.update(collections.DRIVERS, driver_id, changes)


def cancel_ride_as_passenger(
    db: DbClient,
    queue: EventQueue,
    ride_id: str,
    user: UserRecord,
    reason: Optional[str] = None,
) -> RideRecord:
    with db.transaction() as tx:
        ride = tx.get(collections.RIDES, ride_id)
        if ride is None:
            raise NotFound("Ride not found")
        if ride.passenger_id != user.user_id:
            raise PermissionDenied("Not your ride")
        if not lifecycle.can_cancel_ride(ride.status, CancelledBy.PASSENGER):
            raise FailedPrecondition("This ride can no longer be cancelled")
        before = ride.status
        changes = lifecycle.ride_transition_changes(
            ride.status,
            RideStatus.CANCELLED,
            cancelled_by=CancelledBy.PASSENGER,
            cancellation_reason=reason,
        )
        changes.update(refund_if_paid(tx, ride))
        ride = tx.update(collections.RIDES, ride_id, changes)
        _free_driver(tx, ride.driver_id)

    logger.info("[%s] Cancelled by passenger", ride_id)
    _emit(queue, ride, before)
    return ride


def rate_ride(
    db: DbClient,
    ride_id: str,
    user: UserRecord,
    rating: int,
    review: Optional[str] = None,
) -> RideRecord:
    if not 1 <= rating <= 5:
        raise InvalidArgument("Rating must be between 1 and 5")
    with db.transaction() as tx:
        ride = tx.get(collections.RIDES, ride_id)
        if ride is None:
            raise NotFound("Ride not found")
        if ride.passenger_id != user.user_id:
            raise PermissionDenied("Not your ride")
        if ride.status != RideStatus.COMPLETED:
            raise FailedPrecondition("Only completed rides can be rated")
        if ride.rating is not None:
            raise FailedPrecondition("This ride has already been rated")
        ride = tx.update(collections.RIDES, ride_id, {"rating": rating, "review": review})
        if ride.driver_id:
            driver = tx.get(collections.DRIVERS, ride.driver_id)
            if driver is not None:
                count = driver.rating_count + 1
                average = (driver.rating * driver.rating_count + rating) / count
                tx.update(
                    collections.DRIVERS,
                    driver.driver_id,
                    {"rating": round(average, 2), "rating_count": count},
                )
    return ride


def ride_history(db: DbClient, user_id: str, *, limit: int = 20) -> list[RideRecord]:
    return db.find(collections.RIDES, {"passenger_id": user_id}, limit=limit)


# Driver ----------------------------------------------------------------------


def _ensure_can_drive(driver: DriverRecord) -> None:
    if not driver.verified:
        raise FailedPrecondition("Your driver account has not been approved yet")
    if driver.is_suspended():
        raise PermissionDenied("Your driver account is suspended")


def go_online(
    db: DbClient, driver_id: str, location: Optional[GeoPoint] = None
) -> DriverRecord:
    driver = get_driver(db, driver_id)
    _ensure_can_drive(driver)
    changes: dict = {}
    if driver.status == DriverStatus.OFFLINE:
        changes["status"] = DriverStatus.ONLINE
    if location is not None:
        changes["current_location"] = location
    if not changes:
        return driver
    logger.info("[%s] Driver online", driver_id)
    return db.update(collections.DRIVERS, driver_id, changes)


def go_offline(db: DbClient, driver_id: str) -> DriverRecord:
    driver = get_driver(db, driver_id)
    if driver.status == DriverStatus.BUSY or driver.current_ride_id or driver.current_order_id:
        raise FailedPrecondition("Finish your current trip before going offline")
    if driver.status == DriverStatus.OFFLINE:
        return driver
    logger.info("[%s] Driver offline", driver_id)
    return db.update(collections.DRIVERS, driver_id, {"status": DriverStatus.OFFLINE})


def update_location(
    db: DbClient, driver_id: str, latitude: float, longitude: float
) -> DriverRecord:
    if not (-90 <= latitude <= 90 and -180 <= longitude <= 180):
        raise InvalidArgument("Invalid coordinates")
    get_driver(db, driver_id)
    return db.update(
        collections.DRIVERS,
        driver_id,
        {"current_location": GeoPoint(latitude=latitude, longitude=longitude)},
    )


def ride_requests(
    db: DbClient,
    driver: DriverRecord,
    *,
    radius_km: float = 10.0,
    limit: int = 20,
) -> list[tuple[RideRecord, Optional[float]]]:
    """Open requests for the driver's vehicle, nearest pickup first."""
    pending = db.find(
        collections.RIDES,
        {"status": RideStatus.PENDING, "vehicle_type": driver.vehicle_type, "driver_id": None},
        oldest_first=True,
    )
    pending = [r for r in pending if driver.driver_id not in r.declined_by]
    if driver.current_location is None:
        return [(ride, None) for ride in pending[:limit]]

    nearby = []
    for ride in pending:
        distance_km = haversine_m(driver.current_location, ride.pickup.coordinates) / 1000
        if distance_km <= radius_km:
            nearby.append((ride, round(distance_km, 2)))
    nearby.sort(key=lambda pair: pair[1])
    return nearby[:limit]


def accept_ride(
    db: DbClient, queue: EventQueue, driver_id: str, ride_id: str
) -> RideRecord:
    with db.transaction() as tx:
        driver = tx.get(collections.DRIVERS, driver_id)
        if driver is None:
            raise NotFound("Driver profile not found")
        _ensure_can_drive(driver)
        if (
            driver.status != DriverStatus.ONLINE
            or driver.current_ride_id
            or driver.current_order_id
        ):
            raise FailedPrecondition("Go online and finish your current trip first")
        ride = tx.get(collections.RIDES, ride_id)
        if ride is None:
            raise NotFound("Ride not found")
        if ride.status != RideStatus.PENDING or ride.driver_id:
            raise Aborted("This ride is no longer available")
        if ride.vehicle_type != driver.vehicle_type:
            raise FailedPrecondition(f"This ride needs a {ride.vehicle_type} driver")

        ride = tx.update(
            collections.RIDES,
            ride_id,
            lifecycle.ride_transition_changes(
                ride.status, RideStatus.ACCEPTED, driver_id=driver_id
            ),
        )
        tx.update(
            collections.DRIVERS,
            driver_id,
            {
                "status": DriverStatus.BUSY,
                "current_ride_id": ride_id,
                "requests_seen": driver.requests_seen + 1,
                "requests_accepted": driver.requests_accepted + 1,
            },
        )

    logger.info("[%s] Accepted by driver %s", ride_id, driver_id)
    _emit(queue, ride, RideStatus.PENDING)
    return ride


def decline_ride(db: DbClient, driver_id: str, ride_id: str) -> RideRecord:
    with db.transaction() as tx:
        driver = tx.get(collections.DRIVERS, driver_id)
        if driver is None:
            raise NotFound("Driver profile not found")
        ride = tx.get(collections.RIDES, ride_id)
        if ride is None:
            raise NotFound("Ride not found")
        if ride.status != RideStatus.PENDING:
            raise FailedPrecondition("This ride is no longer waiting for a driver")
        if driver_id in ride.declined_by:
            return ride
        ride = tx.update(
            collections.RIDES, ride_id, {"declined_by": [*ride.declined_by, driver_id]}
        )
        tx.update(
            collections.DRIVERS, driver_id, {"requests_seen": driver.requests_seen + 1}
        )
    return ride


def _assigned_ride(tx: DbClient, driver_id: str, ride_id: str) -> RideRecord:
    ride = tx.get(collections.RIDES, ride_id)
    if ride is None:
        raise NotFound("Ride not found")
    if ride.driver_id != driver_id:
        raise PermissionDenied("This ride is not assigned to you")
    return ride


def _advance(
    db: DbClient, queue: EventQueue, driver_id: str, ride_id: str, target: RideStatus
) -> RideRecord:
    with db.transaction() as tx:
        ride = _assigned_ride(tx, driver_id, ride_id)
        before = ride.status
        ride = tx.update(
            collections.RIDES,
            ride_id,
            lifecycle.ride_transition_changes(ride.status, target),
        )
    logger.info("[%s] %s -> %s", ride_id, before, target)
    _emit(queue, ride, before)
    return ride


def update_ride_status(
    db: DbClient, queue: EventQueue, driver_id: str, ride_id: str, status: RideStatus
) -> RideRecord:
    """Driver progress on the way to pickup (arriving / arrived)."""
    if status not in (RideStatus.ARRIVING, RideStatus.ARRIVED):
        raise InvalidArgument(f"Use the dedicated action to set status {status}")
    return _advance(db, queue, driver_id, ride_id, status)


def start_ride(db: DbClient, queue: EventQueue, driver_id: str, ride_id: str) -> RideRecord:
    return _advance(db, queue, driver_id, ride_id, RideStatus.IN_PROGRESS)


def complete_ride(
    db: DbClient, queue: EventQueue, driver_id: str, ride_id: str
) -> RideRecord:
    with db.transaction() as tx:
        ride = _assigned_ride(tx, driver_id, ride_id)
        before = ride.status
        changes = lifecycle.ride_transition_changes(ride.status, RideStatus.COMPLETED)
        changes.update(settle_on_completion(tx, ride))
        ride = tx.update(collections.RIDES, ride_id, changes)
        driver = tx.get(collections.DRIVERS, driver_id)
        tx.update(
            collections.DRIVERS,
            driver_id,
            {"total_earnings": round(driver.total_earnings + ride.fare.total, 2)},
        )
        _free_driver(tx, driver_id, total_rides=1)

    logger.info(
        "[%s] Completed, fare %.2f, payment %s",
        ride_id,
        ride.fare.total,
        ride.payment_status,
    )
    _emit(queue, ride, before)
    return ride


def cancel_ride_as_driver(
    db: DbClient,
    queue: EventQueue,
    driver_id: str,
    ride_id: str,
    reason: Optional[str] = None,
) -> RideRecord:
    with db.transaction() as tx:
        ride = _assigned_ride(tx, driver_id, ride_id)
        if not lifecycle.can_cancel_ride(ride.status, CancelledBy.DRIVER):
            raise FailedPrecondition("This ride can no longer be cancelled")
        before = ride.status
        changes = lifecycle.ride_transition_changes(
            ride.status,
            RideStatus.CANCELLED,
            cancelled_by=CancelledBy.DRIVER,
            cancellation_reason=reason,
        )
        changes.update(refund_if_paid(tx, ride))
        ride = tx.update(collections.RIDES, ride_id, changes)
        _free_driver(tx, driver_id, cancellations=1)

    logger.info("[%s] Cancelled by driver %s", ride_id, driver_id)
    _emit(queue, ride, before)
    return ride


def expire_ride(db: DbClient, ride_id: str, reason: str) -> Optional[RideRecord]:
    """Cancel a ride nobody accepted. Returns None if it moved on meanwhile."""
    with db.transaction() as tx:
        ride = tx.get(collections.RIDES, ride_id)
        if ride is None or not lifecycle.can_cancel_ride(ride.status, CancelledBy.SYSTEM):
            return None
        changes = lifecycle.ride_transition_changes(
            ride.status,
            RideStatus.CANCELLED,
            cancelled_by=CancelledBy.SYSTEM,
            cancellation_reason=reason,
        )
        changes.update(refund_if_paid(tx, ride))
        return tx.update(collections.RIDES, ride_id, changes)


def release_scheduled_ride(db: DbClient, ride_id: str) -> Optional[RideRecord]:
    """Open a scheduled ride to drivers. Returns None if it was cancelled meanwhile."""
    with db.transaction() as tx:
        ride = tx.get(collections.RIDES, ride_id)
        if ride is None or ride.status != RideStatus.SCHEDULED:
            return None
        return tx.update(
            collections.RIDES,
            ride_id,
            lifecycle.ride_transition_changes(ride.status, RideStatus.PENDING),
        )


def active_ride(db: DbClient, driver_id: str) -> Optional[RideRecord]:
    driver = get_driver(db, driver_id)
    if not driver.current_ride_id:
        return None
    return db.get(collections.RIDES, driver.current_ride_id)


def driver_history(db: DbClient, driver_id: str, *, limit: int = 20) -> list[RideRecord]:
    return db.find(
        collections.RIDES,
        {"driver_id": driver_id, "status": [RideStatus.COMPLETED, RideStatus.CANCELLED]},
        limit=limit,
    )


def driver_stats(
    db: DbClient, driver: DriverRecord, *, now: Optional[datetime] = None, timezone: str = "Asia/Manila"
) -> dict:
    now = now or local_now(timezone)
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    week_start = day_start - timedelta(days=day_start.weekday())
    month_start = day_start.replace(day=1)

    completed = db.find(
        collections.RIDES,
        {"driver_id": driver.driver_id, "status": RideStatus.COMPLETED},
    )

    def window(start: datetime) -> dict:
        rides = [r for r in completed if (r.completed_at or 0) >= start.timestamp()]
        return {
            "rides": len(rides),
            "earnings": round(sum(r.fare.total for r in rides), 2),
        }

    acceptance = (
        round(driver.requests_accepted / driver.requests_seen * 100, 1)
        if driver.requests_seen
        else 0.0
    )
    return {
        "today": window(day_start),
        "week": window(week_start),
        "month": window(month_start),
        "total_rides": driver.total_rides,
        "total_deliveries": driver.total_deliveries,
        "total_earnings": driver.total_earnings,
        "rating": driver.rating,
        "rating_count": driver.rating_count,
        "acceptance_rate": acceptance,
        "cancellations": driver.cancellations,
    }
