"""
Promo code validation for the apps and promo management for admins.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from gogo import promos
from gogo.db import DbClient
from gogo.dependencies import get_current_user, get_db_client, require_role
from gogo.records import UserRecord
from gogo.schemas import (
    PromoCreateRequest,
    PromoListResponse,
    PromoResponse,
    PromoValidateRequest,
    PromoValidateResponse,
)
from gogo.types import UserRole

router = APIRouter(prefix="/promos", tags=["promos"])


@router.post("/validate", response_model=PromoValidateResponse)
def validate(
    payload: PromoValidateRequest,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    """
    Check a code without redeeming it. Invalid codes return ``valid: false``.
    """
    check = promos.validate_promo(
        db,
        payload.code,
        payload.amount,
        payload.service,
        delivery_fee=payload.delivery_fee,
    )
    return PromoValidateResponse(**check.as_dict())


@router.get("", response_model=PromoListResponse)
def active(
    limit: int = Query(10, ge=1, le=50),
    db: DbClient = Depends(get_db_client),
):
    found = promos.list_active_promos(db, limit=limit)
    return PromoListResponse(promos=[p.as_dict() for p in found])


@router.post("", response_model=PromoResponse, status_code=201)
def create(
    payload: PromoCreateRequest,
    admin: UserRecord = Depends(require_role(UserRole.ADMIN)),
    db: DbClient = Depends(get_db_client),
):
    promo = promos.create_promo(db, **payload.model_dump())
    return PromoResponse(promo=promo.as_dict())


@router.post("/{promo_id}/activate", response_model=PromoResponse)
def activate(
    promo_id: str,
    admin: UserRecord = Depends(require_role(UserRole.ADMIN)),
    db: DbClient = Depends(get_db_client),
):
    return PromoResponse(promo=promos.set_promo_active(db, promo_id, True).as_dict())


@router.post("/{promo_id}/deactivate", response_model=PromoResponse)
def deactivate(
    promo_id: str,
    admin: UserRecord = Depends(require_role(UserRole.ADMIN)),
    db: DbClient = Depends(get_db_client),
):
    return PromoResponse(promo=promos.set_promo_active(db, promo_id, False).as_dict())
