"""
Ride endpoints for passengers and drivers.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from gogo import rides, tracking, wallet
from gogo.config import get_settings
from gogo.db import DbClient
from gogo.dependencies import (
    get_current_driver,
    get_current_user,
    get_db_client,
    get_queue_client,
    get_watch_timeout,
)
from gogo.pricing import VEHICLE_TYPES
from gogo.queue import EventQueue
from gogo.records import DriverRecord, GeoPoint, Place, RouteInfo, UserRecord, load_record
from gogo.schemas import (
    AssignedDriverResponse,
    CancelRequest,
    PaymentResponse,
    QuoteResponse,
    RatingRequest,
    RideBookRequest,
    RideListResponse,
    RideQuoteRequest,
    RideRequestsResponse,
    RideResponse,
    RideStatusRequest,
    VehicleTypesResponse,
    WatchResponse,
)

router = APIRouter(prefix="/rides", tags=["rides"])


def _route(payload) -> RouteInfo | None:
    if payload.route is None:
        return None
    return load_record(RouteInfo, payload.route.model_dump())


@router.get("/vehicle-types", response_model=VehicleTypesResponse)
def vehicle_types():
    return VehicleTypesResponse(vehicle_types=[v.as_dict() for v in VEHICLE_TYPES.values()])


@router.post("/quote", response_model=QuoteResponse)
def quote(
    payload: RideQuoteRequest,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    result = rides.quote_ride(
        db,
        pickup=load_record(GeoPoint, payload.pickup.model_dump()),
        dropoff=load_record(GeoPoint, payload.dropoff.model_dump()),
        vehicle_type=payload.vehicle_type,
        route=_route(payload),
        promo_code=payload.promo_code,
        timezone=get_settings().timezone,
    )
    return QuoteResponse(quote=result.as_dict())


@router.post("", response_model=RideResponse, status_code=201)
def book(
    payload: RideBookRequest,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    queue: EventQueue = Depends(get_queue_client),
):
    ride = rides.book_ride(
        db,
        queue,
        user,
        pickup=load_record(Place, payload.pickup.model_dump()),
        dropoff=load_record(Place, payload.dropoff.model_dump()),
        vehicle_type=payload.vehicle_type,
        payment_method=payload.payment_method,
        route=_route(payload),
        promo_code=payload.promo_code,
        scheduled_at=payload.scheduled_at,
        timezone=get_settings().timezone,
    )
    return RideResponse(ride=ride.as_dict())


@router.get("", response_model=RideListResponse)
def history(
    limit: int = Query(20, ge=1, le=100),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    found = rides.ride_history(db, user.user_id, limit=limit)
    return RideListResponse(rides=[r.as_dict() for r in found])


@router.get("/active", response_model=RideResponse)
def active(
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    ride = rides.passenger_active_ride(db, user.user_id)
    return RideResponse(ride=ride.as_dict() if ride else None)


@router.get("/requests", response_model=RideRequestsResponse)
def ride_requests(
    limit: int = Query(20, ge=1, le=50),
    driver: DriverRecord = Depends(get_current_driver),
    db: DbClient = Depends(get_db_client),
):
    found = rides.ride_requests(
        db, driver, radius_km=get_settings().dispatch_radius_km, limit=limit
    )
    return RideRequestsResponse(
        requests=[
            {"ride": ride.as_dict(), "distance_km": distance} for ride, distance in found
        ]
    )


@router.get("/{ride_id}", response_model=RideResponse)
def get_ride(
    ride_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    return RideResponse(ride=rides.get_ride(db, ride_id, user).as_dict())


@router.get("/{ride_id}/watch", response_model=WatchResponse)
def watch(
    ride_id: str,
    since_version: int = Query(0, ge=0),
    timeout: float = Depends(get_watch_timeout),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    """
    Long-poll until the ride changes past ``since_version``.
    """
    ride, changed = rides.watch_ride(
        db, ride_id, user, since_version=since_version, timeout=timeout
    )
    return WatchResponse(changed=changed, version=ride.version, document=ride.as_dict())


@router.post("/{ride_id}/cancel", response_model=RideResponse)
def cancel(
    ride_id: str,
    payload: CancelRequest,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    queue: EventQueue = Depends(get_queue_client),
):
    ride = rides.cancel_ride_as_passenger(db, queue, ride_id, user, payload.reason)
    return RideResponse(ride=ride.as_dict())


@router.post("/{ride_id}/rate", response_model=RideResponse)
def rate(
    ride_id: str,
    payload: RatingRequest,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    ride = rides.rate_ride(db, ride_id, user, payload.rating, payload.review)
    return RideResponse(ride=ride.as_dict())


@router.post("/{ride_id}/pay", response_model=PaymentResponse)
def pay(
    ride_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    result = wallet.pay_ride(db, ride_id, user.user_id)
    return PaymentResponse(payment=result.as_dict())


@router.post("/{ride_id}/accept", response_model=RideResponse)
def accept(
    ride_id: str,
    driver: DriverRecord = Depends(get_current_driver),
    db: DbClient = Depends(get_db_client),
    queue: EventQueue = Depends(get_queue_client),
):
    ride = rides.accept_ride(db, queue, driver.driver_id, ride_id)
    return RideResponse(ride=ride.as_dict())


@router.post("/{ride_id}/decline", response_model=RideResponse)
def decline(
    ride_id: str,
    driver: DriverRecord = Depends(get_current_driver),
    db: DbClient = Depends(get_db_client),
):
    ride = rides.decline_ride(db, driver.driver_id, ride_id)
    return RideResponse(ride=ride.as_dict())


@router.post("/{ride_id}/status", response_model=RideResponse)
def update_status(
    ride_id: str,
    payload: RideStatusRequest,
    driver: DriverRecord = Depends(get_current_driver),
    db: DbClient = Depends(get_db_client),
    queue: EventQueue = Depends(get_queue_client),
):
    ride = rides.update_ride_status(db, queue, driver.driver_id, ride_id, payload.status)
    return RideResponse(ride=ride.as_dict())


@router.post("/{ride_id}/start", response_model=RideResponse)
def start(
    ride_id: str,
    driver: DriverRecord = Depends(get_current_driver),
    db: DbClient = Depends(get_db_client),
    queue: EventQueue = Depends(get_queue_client),
):
    ride = rides.start_ride(db, queue, driver.driver_id, ride_id)
    return RideResponse(ride=ride.as_dict())


@router.post("/{ride_id}/complete", response_model=RideResponse)
def complete(
    ride_id: str,
    driver: DriverRecord = Depends(get_current_driver),
    db: DbClient = Depends(get_db_client),
    queue: EventQueue = Depends(get_queue_client),
):
    ride = rides.complete_ride(db, queue, driver.driver_id, ride_id)
    return RideResponse(ride=ride.as_dict())


@router.post("/{ride_id}/driver-cancel", response_model=RideResponse)
def driver_cancel(
    ride_id: str,
    payload: CancelRequest,
    driver: DriverRecord = Depends(get_current_driver),
    db: DbClient = Depends(get_db_client),
    queue: EventQueue = Depends(get_queue_client),
):
    ride = rides.cancel_ride_as_driver(db, queue, driver.driver_id, ride_id, payload.reason)
    return RideResponse(ride=ride.as_dict())


@router.get("/{ride_id}/driver", response_model=AssignedDriverResponse)
def assigned_driver(
    ride_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    ride, driver = tracking.ride_driver(db, ride_id, user)
    return AssignedDriverResponse(
        driver=tracking.public_driver(driver, tracking.ride_target(ride)),
        status=ride.status.value,
    )


@router.get("/{ride_id}/driver/watch", response_model=AssignedDriverResponse)
def watch_assigned_driver(
    ride_id: str,
    since_version: int = Query(0, ge=0),
    timeout: float = Depends(get_watch_timeout),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    """
    Long-poll the driver's location until their profile moves past ``since_version``.
    """
    ride, driver, changed = tracking.watch_ride_driver(
        db, ride_id, user, since_version=since_version, timeout=timeout
    )
    return AssignedDriverResponse(
        driver=tracking.public_driver(driver, tracking.ride_target(ride)),
        status=ride.status.value,
        changed=changed,
    )
