"""
Driver profile, availability and earnings endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from gogo import accounts, orders, rides
from gogo.config import get_settings
from gogo.db import DbClient
from gogo.dependencies import get_current_driver, get_current_user, get_db_client
from gogo.records import (
    DriverLicense,
    DriverRecord,
    GeoPoint,
    UserRecord,
    Vehicle,
    load_record,
)
from gogo.schemas import (
    DriverApplicationRequest,
    DriverResponse,
    DriverStatsResponse,
    GoOnlineRequest,
    LocationRequest,
    OrderResponse,
    RideListResponse,
    RideResponse,
)

router = APIRouter(prefix="/drivers", tags=["drivers"])


@router.post("/apply", response_model=DriverResponse, status_code=201)
def apply(
    payload: DriverApplicationRequest,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    driver = accounts.register_driver(
        db,
        user,
        vehicle_type=payload.vehicle_type,
        vehicle=load_record(Vehicle, payload.vehicle.model_dump()),
        license=load_record(DriverLicense, payload.license.model_dump()),
        phone=payload.phone,
        documents=payload.documents,
        auto_approve=get_settings().auto_approve_drivers,
    )
    return DriverResponse(driver=driver.as_dict())


@router.get("/me", response_model=DriverResponse)
def get_me(driver: DriverRecord = Depends(get_current_driver)):
    return DriverResponse(driver=driver.as_dict())


@router.post("/me/online", response_model=DriverResponse)
def go_online(
    payload: GoOnlineRequest,
    driver: DriverRecord = Depends(get_current_driver),
    db: DbClient = Depends(get_db_client),
):
    location = (
        load_record(GeoPoint, payload.location.model_dump()) if payload.location else None
    )
    updated = rides.go_online(db, driver.driver_id, location)
    return DriverResponse(driver=updated.as_dict())


@router.post("/me/offline", response_model=DriverResponse)
def go_offline(
    driver: DriverRecord = Depends(get_current_driver),
    db: DbClient = Depends(get_db_client),
):
    updated = rides.go_offline(db, driver.driver_id)
    return DriverResponse(driver=updated.as_dict())


@router.put("/me/location", response_model=DriverResponse)
def update_location(
    payload: LocationRequest,
    driver: DriverRecord = Depends(get_current_driver),
    db: DbClient = Depends(get_db_client),
):
    updated = rides.update_location(
        db, driver.driver_id, payload.latitude, payload.longitude
    )
    return DriverResponse(driver=updated.as_dict())


@router.get("/me/stats", response_model=DriverStatsResponse)
def stats(
    driver: DriverRecord = Depends(get_current_driver),
    db: DbClient = Depends(get_db_client),
):
    return DriverStatsResponse(
        stats=rides.driver_stats(db, driver, timezone=get_settings().timezone)
    )


@router.get("/me/history", response_model=RideListResponse)
def history(
    limit: int = Query(20, ge=1, le=100),
    driver: DriverRecord = Depends(get_current_driver),
    db: DbClient = Depends(get_db_client),
):
    found = rides.driver_history(db, driver.driver_id, limit=limit)
    return RideListResponse(rides=[r.as_dict() for r in found])


@router.get("/me/ride", response_model=RideResponse)
def current_ride(
    driver: DriverRecord = Depends(get_current_driver),
    db: DbClient = Depends(get_db_client),
):
    ride = rides.active_ride(db, driver.driver_id)
    return RideResponse(ride=ride.as_dict() if ride else None)


@router.get("/me/delivery", response_model=OrderResponse)
def current_delivery(
    driver: DriverRecord = Depends(get_current_driver),
    db: DbClient = Depends(get_db_client),
):
    order = orders.active_delivery(db, driver.driver_id)
    return OrderResponse(order=order.as_dict() if order else None)
