"""
Profile, role, address, favorite and push-token endpoints.
"""

from __future__ import annotations

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends

from gogo import accounts
from gogo.config import get_settings
from gogo.db import DbClient
from gogo.dependencies import get_current_user, get_db_client, get_user_id
from gogo.records import GeoPoint, UserRecord, UserSettings, load_record
from gogo.schemas import (
    AddressListResponse,
    AddressRequest,
    AddressResponse,
    AddressUpdateRequest,
    FavoritesResponse,
    MerchantListResponse,
    ProfileCreateRequest,
    ProfileUpdateRequest,
    PushTokenRequest,
    RoleRequest,
    StatusResponse,
    UserResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


@router.post("/me", response_model=UserResponse)
def create_profile(
    payload: ProfileCreateRequest,
    user_id: str = Depends(get_user_id),
    db: DbClient = Depends(get_db_client),
):
    """
    Called after every sign-in; creates the profile the first time.
    """
    user, created = accounts.ensure_user_profile(
        db,
        user_id,
        phone=payload.phone or "",
        email=payload.email or "",
        display_name=payload.display_name,
        photo_url=payload.photo_url,
        referral_code=payload.referral_code,
    )
    return UserResponse(user=user.as_dict(), created=created)


@router.get("/me", response_model=UserResponse)
def get_profile(user: UserRecord = Depends(get_current_user)):
    return UserResponse(user=user.as_dict())


@router.patch("/me", response_model=UserResponse)
def update_profile(
    payload: ProfileUpdateRequest,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    settings = (
        load_record(UserSettings, payload.settings.model_dump())
        if payload.settings
        else None
    )
    updated = accounts.update_profile(
        db,
        user.user_id,
        first_name=payload.first_name,
        last_name=payload.last_name,
        email=payload.email,
        phone=payload.phone,
        profile_image=payload.profile_image,
        settings=settings,
    )
    return UserResponse(user=updated.as_dict())


@router.put("/{user_id}/role", response_model=UserResponse)
def set_role(
    user_id: str,
    payload: RoleRequest,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    settings = get_settings()
    updated = accounts.set_user_role(
        db,
        user,
        user_id,
        payload.role,
        auto_approve_drivers=settings.auto_approve_drivers,
        auto_approve_merchants=settings.auto_approve_merchants,
    )
    return UserResponse(user=updated.as_dict())


@router.put("/me/push-token", response_model=UserResponse)
def register_push_token(
    payload: PushTokenRequest,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    updated = accounts.register_push_token(db, user.user_id, payload.token)
    return UserResponse(user=updated.as_dict())


@router.get("/me/addresses", response_model=AddressListResponse)
def list_addresses(user: UserRecord = Depends(get_current_user)):
    return AddressListResponse(addresses=[asdict(l) for l in user.saved_locations])


@router.post("/me/addresses", response_model=AddressResponse, status_code=201)
def add_address(
    payload: AddressRequest,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    location = accounts.add_address(
        db,
        user.user_id,
        label=payload.label,
        address=payload.address,
        coordinates=load_record(GeoPoint, payload.coordinates.model_dump()),
        type=payload.type,
        details=payload.details,
    )
    return AddressResponse(address=asdict(location))


@router.patch("/me/addresses/{address_id}", response_model=AddressResponse)
def update_address(
    address_id: str,
    payload: AddressUpdateRequest,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    changes = payload.model_dump(exclude_none=True)
    if "coordinates" in changes:
        changes["coordinates"] = load_record(GeoPoint, changes["coordinates"])
    location = accounts.update_address(db, user.user_id, address_id, **changes)
    return AddressResponse(address=asdict(location))


@router.delete("/me/addresses/{address_id}", response_model=StatusResponse)
def delete_address(
    address_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    accounts.delete_address(db, user.user_id, address_id)
    return StatusResponse(status="ok")


@router.post("/me/addresses/{address_id}/default", response_model=AddressListResponse)
def set_default_address(
    address_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    locations = accounts.set_default_address(db, user.user_id, address_id)
    return AddressListResponse(addresses=[asdict(l) for l in locations])


@router.get("/me/favorites", response_model=MerchantListResponse)
def list_favorites(
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    merchants = accounts.list_favorite_merchants(db, user.user_id)
    return MerchantListResponse(merchants=[m.as_dict() for m in merchants])


@router.put("/me/favorites/{merchant_id}", response_model=FavoritesResponse)
def add_favorite(
    merchant_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    favorites = accounts.add_favorite(db, user.user_id, merchant_id)
    return FavoritesResponse(favorite_merchants=favorites)


@router.delete("/me/favorites/{merchant_id}", response_model=FavoritesResponse)
def remove_favorite(
    merchant_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    favorites = accounts.remove_favorite(db, user.user_id, merchant_id)
    return FavoritesResponse(favorite_merchants=favorites)
