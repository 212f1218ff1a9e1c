"""
Back-office endpoints: application review, suspensions and maintenance.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from gogo import accounts, worker
from gogo.db import DbClient
from gogo.dependencies import get_db_client, get_queue_client, require_role
from gogo.queue import EventQueue
from gogo.records import UserRecord
from gogo.schemas import (
    AccountStatusRequest,
    ApplicationListResponse,
    DriverResponse,
    MaintenanceResponse,
    MerchantResponse,
    MerchantStatusRequest,
    ReviewRequest,
    SuspendRequest,
    UserResponse,
)
from gogo.types import ApplicationStatus, UserRole

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

require_admin = require_role(UserRole.ADMIN)


@router.get("/drivers", response_model=ApplicationListResponse)
def driver_applications(
    status: Optional[ApplicationStatus] = None,
    limit: int = Query(100, ge=1, le=500),
    admin: UserRecord = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    found = accounts.list_driver_applications(db, status, limit=limit)
    return ApplicationListResponse(status=status, applications=[d.as_dict() for d in found])


@router.post("/drivers/{driver_id}/approve", response_model=DriverResponse)
def approve_driver(
    driver_id: str,
    admin: UserRecord = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    driver = accounts.approve_driver(db, driver_id)
    logger.info("[%s] Driver approved by %s", driver_id, admin.user_id)
    return DriverResponse(driver=driver.as_dict())


@router.post("/drivers/{driver_id}/reject", response_model=DriverResponse)
def reject_driver(
    driver_id: str,
    payload: ReviewRequest,
    admin: UserRecord = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    driver = accounts.reject_driver(db, driver_id, payload.reason)
    logger.info("[%s] Driver rejected by %s", driver_id, admin.user_id)
    return DriverResponse(driver=driver.as_dict())


@router.post("/drivers/{driver_id}/suspend", response_model=DriverResponse)
def suspend_driver(
    driver_id: str,
    payload: SuspendRequest,
    admin: UserRecord = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    driver = accounts.suspend_driver(
        db, driver_id, until=payload.until, reason=payload.reason
    )
    logger.info("[%s] Driver suspended by %s", driver_id, admin.user_id)
    return DriverResponse(driver=driver.as_dict())


@router.get("/merchants", response_model=ApplicationListResponse)
def merchant_applications(
    status: Optional[ApplicationStatus] = None,
    limit: int = Query(100, ge=1, le=500),
    admin: UserRecord = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    found = accounts.list_merchant_applications(db, status, limit=limit)
    return ApplicationListResponse(status=status, applications=[m.as_dict() for m in found])


@router.post("/merchants/{merchant_id}/approve", response_model=MerchantResponse)
def approve_merchant(
    merchant_id: str,
    admin: UserRecord = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    merchant = accounts.approve_merchant(db, merchant_id)
    logger.info("[%s] Merchant approved by %s", merchant_id, admin.user_id)
    return MerchantResponse(merchant=merchant.as_dict())


@router.post("/merchants/{merchant_id}/reject", response_model=MerchantResponse)
def reject_merchant(
    merchant_id: str,
    payload: ReviewRequest,
    admin: UserRecord = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    merchant = accounts.reject_merchant(db, merchant_id, payload.reason)
    logger.info("[%s] Merchant rejected by %s", merchant_id, admin.user_id)
    return MerchantResponse(merchant=merchant.as_dict())


@router.put("/merchants/{merchant_id}/status", response_model=MerchantResponse)
def set_merchant_status(
    merchant_id: str,
    payload: MerchantStatusRequest,
    admin: UserRecord = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    merchant = accounts.set_merchant_status(db, merchant_id, payload.status)
    return MerchantResponse(merchant=merchant.as_dict())


@router.put("/users/{user_id}/status", response_model=UserResponse)
def set_account_status(
    user_id: str,
    payload: AccountStatusRequest,
    admin: UserRecord = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    user = accounts.set_account_status(db, user_id, payload.status)
    logger.info("[%s] Account set to %s by %s", user_id, payload.status, admin.user_id)
    return UserResponse(user=user.as_dict())


@router.post("/maintenance", response_model=MaintenanceResponse)
def run_maintenance(
    admin: UserRecord = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
    queue: EventQueue = Depends(get_queue_client),
):
    """
    Run the periodic sweep now instead of waiting for the worker.
    """
    return MaintenanceResponse(**worker.run_maintenance(db, queue))
