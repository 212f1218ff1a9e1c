"""
User profiles, roles, saved addresses, favorites, and driver/merchant
applications with their admin review.
"""

from __future__ import annotations

import logging
import secrets
import string
from dataclasses import replace
from typing import Optional

from gogo import db as collections
from gogo.db import DbClient, DuplicateDocument
from gogo.errors import (
    Aborted,
    FailedPrecondition,
    InvalidArgument,
    NotFound,
    PermissionDenied,
)
from gogo.records import (
    DriverLicense,
    DriverRecord,
    GeoPoint,
    MerchantRecord,
    SavedLocation,
    UserRecord,
    UserSettings,
    Vehicle,
    new_id,
    now_ts,
)
from gogo.types import (
    AccountStatus,
    ApplicationStatus,
    DriverStatus,
    MerchantStatus,
    MerchantType,
    UserRole,
    VehicleType,
    has_minimum_role,
)

logger = logging.getLogger(__name__)

REFERRAL_PREFIX = "GOGO"
REFERRAL_ATTEMPTS = 10
_REFERRAL_ALPHABET = string.ascii_uppercase + string.digits


def generate_referral_code() -> str:
    return REFERRAL_PREFIX + "".join(
        secrets.choice(_REFERRAL_ALPHABET) for _ in range(6)
    )


def unique_referral_code(db: DbClient) -> str:
    """A referral code no other profile holds."""
    for _ in range(REFERRAL_ATTEMPTS):
        code = generate_referral_code()
        if not db.find(collections.USERS, {"referral_code": code}, limit=1):
            return code
    raise Aborted("Could not allocate a referral code, please try again")


def _split_name(display_name: Optional[str]) -> tuple[str, str]:
    parts = (display_name or "").split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def get_user(db: DbClient, user_id: str) -> UserRecord:
    user = db.get(collections.USERS, user_id)
    if user is None:
        raise NotFound("User profile not found")
    return user


def ensure_user_profile(
    db: DbClient,
    user_id: str,
    *,
    phone: str = "",
    email: str = "",
    display_name: Optional[str] = None,
    photo_url: Optional[str] = None,
    referral_code: Optional[str] = None,
) -> tuple[UserRecord, bool]:
    """Return the caller's profile, creating it on first sign-in."""
    existing = db.get(collections.USERS, user_id)
    if existing is not None:
        return existing, False

    referred_by = None
    if referral_code:
        matches = db.find(
            collections.USERS, {"referral_code": referral_code.strip().upper()}, limit=1
        )
        if matches and matches[0].user_id != user_id:
            referred_by = matches[0].user_id

    first_name, last_name = _split_name(display_name)
    user = UserRecord(
        user_id=user_id,
        phone=phone or "",
        email=email or "",
        first_name=first_name,
        last_name=last_name,
        profile_image=photo_url,
        referral_code=unique_referral_code(db),
        referred_by=referred_by,
    )
    try:
        db.add(collections.USERS, user)
    except DuplicateDocument:
        # Two first requests raced; the other one created it.
        return get_user(db, user_id), False
    logger.info("[%s] Created user profile", user_id)
    return user, True


def update_profile(
    db: DbClient,
    user_id: str,
    *,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    profile_image: Optional[str] = None,
    settings: Optional[UserSettings] = None,
) -> UserRecord:
    changes = {
        name: value
        for name, value in (
            ("first_name", first_name),
            ("last_name", last_name),
            ("email", email),
            ("phone", phone),
            ("profile_image", profile_image),
            ("settings", settings),
        )
        if value is not None
    }
    get_user(db, user_id)
    if not changes:
        return get_user(db, user_id)
    return db.update(collections.USERS, user_id, changes)


def set_user_role(
    db: DbClient,
    caller: UserRecord,
    target_id: str,
    role: str,
    *,
    auto_approve_drivers: bool = False,
    auto_approve_merchants: bool = False,
) -> UserRecord:
    try:
        new_role = UserRole(role)
    except ValueError:
        raise InvalidArgument(f"Invalid role: {role}") from None

    if caller.role != UserRole.ADMIN:
        if target_id != caller.user_id:
            raise PermissionDenied("Only admins can change another user's role")
        if new_role == UserRole.ADMIN:
            raise PermissionDenied("Cannot assign the admin role to yourself")
        if new_role == UserRole.DRIVER and not auto_approve_drivers:
            raise PermissionDenied("Driver accounts require an approved application")
        if new_role == UserRole.MERCHANT and not auto_approve_merchants:
            raise PermissionDenied("Merchant accounts require an approved application")

    get_user(db, target_id)
    user = db.update(collections.USERS, target_id, {"role": new_role})
    logger.info("[%s] Role set to %s by %s", target_id, new_role, caller.user_id)
    return user


def set_account_status(db: DbClient, user_id: str, status: AccountStatus) -> UserRecord:
    get_user(db, user_id)
    return db.update(collections.USERS, user_id, {"status": status})


def register_push_token(db: DbClient, user_id: str, token: Optional[str]) -> UserRecord:
    get_user(db, user_id)
    return db.update(
        collections.USERS,
        user_id,
        {"push_token": token, "notifications_enabled": bool(token)},
    )


# Saved addresses -------------------------------------------------------------


def list_addresses(db: DbClient, user_id: str) -> list[SavedLocation]:
    return get_user(db, user_id).saved_locations


def add_address(
    db: DbClient,
    user_id: str,
    *,
    label: str,
    address: str,
    coordinates: GeoPoint,
    type: str = "other",
    details: Optional[str] = None,
) -> SavedLocation:
    with db.transaction() as tx:
        user = tx.get(collections.USERS, user_id)
        if user is None:
            raise NotFound("User profile not found")
        location = SavedLocation(
            id=new_id("addr"),
            label=label,
            address=address,
            coordinates=coordinates,
            type=type,
            details=details,
        )
        tx.update(
            collections.USERS,
            user_id,
            {"saved_locations": [*user.saved_locations, location]},
        )
    return location


def update_address(
    db: DbClient, user_id: str, address_id: str, **changes
) -> SavedLocation:
    allowed = {"label", "address", "coordinates", "type", "details"}
    unknown = set(changes) - allowed
    if unknown:
        raise InvalidArgument(f"Cannot update address fields: {', '.join(sorted(unknown))}")
    with db.transaction() as tx:
        user = tx.get(collections.USERS, user_id)
        if user is None:
            raise NotFound("User profile not found")
        updated = None
        locations = []
        for location in user.saved_locations:
            if location.id == address_id:
                location = replace(
                    location, **{k: v for k, v in changes.items() if v is not None}
                )
                updated = location
            locations.append(location)
        if updated is None:
            raise NotFound("Address not found")
        tx.update(collections.USERS, user_id, {"saved_locations": locations})
    return updated


def delete_address(db: DbClient, user_id: str, address_id: str) -> None:
    with db.transaction() as tx:
        user = tx.get(collections.USERS, user_id)
        if user is None:
            raise NotFound("User profile not found")
        remaining = [l for l in user.saved_locations if l.id != address_id]
        if len(remaining) == len(user.saved_locations):
            raise NotFound("Address not found")
        tx.update(collections.USERS, user_id, {"saved_locations": remaining})


def set_default_address(db: DbClient, user_id: str, address_id: str) -> list[SavedLocation]:
    """The default address is the first saved location."""
    with db.transaction() as tx:
        user = tx.get(collections.USERS, user_id)
        if user is None:
            raise NotFound("User profile not found")
        chosen = [l for l in user.saved_locations if l.id == address_id]
        if not chosen:
            raise NotFound("Address not found")
        locations = chosen + [l for l in user.saved_locations if l.id != address_id]
        tx.update(collections.USERS, user_id, {"saved_locations": locations})
    return locations


# Favorites -------------------------------------------------------------------


def add_favorite(db: DbClient, user_id: str, merchant_id: str) -> list[str]:
    if db.get(collections.MERCHANTS, merchant_id) is None:
        raise NotFound("Merchant not found")
    with db.transaction() as tx:
        user = tx.get(collections.USERS, user_id)
        if user is None:
            raise NotFound("User profile not found")
        favorites = list(user.favorite_merchants)
        if merchant_id not in favorites:
            favorites.append(merchant_id)
            tx.update(collections.USERS, user_id, {"favorite_merchants": favorites})
    return favorites


def remove_favorite(db: DbClient, user_id: str, merchant_id: str) -> list[str]:
    with db.transaction() as tx:
        user = tx.get(collections.USERS, user_id)
        if user is None:
            raise NotFound("User profile not found")
        favorites = [m for m in user.favorite_merchants if m != merchant_id]
        if len(favorites) != len(user.favorite_merchants):
            tx.update(collections.USERS, user_id, {"favorite_merchants": favorites})
    return favorites


def list_favorite_merchants(db: DbClient, user_id: str) -> list[MerchantRecord]:
    user = get_user(db, user_id)
    merchants = []
    for merchant_id in user.favorite_merchants:
        merchant = db.get(collections.MERCHANTS, merchant_id)
        if merchant is not None:
            merchants.append(merchant)
    return merchants


# Driver applications ---------------------------------------------------------


def get_driver(db: DbClient, driver_id: str) -> DriverRecord:
    driver = db.get(collections.DRIVERS, driver_id)
    if driver is None:
        raise NotFound("Driver profile not found")
    return driver


def register_driver(
    db: DbClient,
    user: UserRecord,
    *,
    vehicle_type: VehicleType,
    vehicle: Vehicle,
    license: DriverLicense,
    phone: Optional[str] = None,
    documents: Optional[dict] = None,
    auto_approve: bool = False,
) -> DriverRecord:
    """Create the caller's driver profile. Driver ids are the user's id."""
    if not vehicle.plate_number.strip():
        raise InvalidArgument("Plate number is required")
    if not license.number.strip():
        raise InvalidArgument("License number is required")

    driver = DriverRecord(
        driver_id=user.user_id,
        user_id=user.user_id,
        first_name=user.first_name,
        last_name=user.last_name,
        phone=phone or user.phone,
        email=user.email or None,
        profile_image=user.profile_image,
        vehicle_type=vehicle_type,
        vehicle=vehicle,
        license=license,
        documents=dict(documents or {}),
    )
    try:
        db.add(collections.DRIVERS, driver)
    except DuplicateDocument:
        raise FailedPrecondition("You already have a driver application") from None
    logger.info("[%s] Driver application submitted", driver.driver_id)
    if auto_approve:
        return approve_driver(db, driver.driver_id)
    return driver


def approve_driver(db: DbClient, driver_id: str) -> DriverRecord:
    get_driver(db, driver_id)
    with db.transaction() as tx:
        driver = tx.update(
            collections.DRIVERS,
            driver_id,
            {
                "verified": True,
                "application_status": ApplicationStatus.APPROVED,
                "rejection_reason": None,
                "verified_at": now_ts(),
            },
        )
        user = tx.get(collections.USERS, driver.user_id)
        if user is not None and not has_minimum_role(user.role, UserRole.DRIVER):
            tx.update(collections.USERS, user.user_id, {"role": UserRole.DRIVER})
    logger.info("[%s] Driver approved", driver_id)
    return driver


def reject_driver(db: DbClient, driver_id: str, reason: str) -> DriverRecord:
    get_driver(db, driver_id)
    return db.update(
        collections.DRIVERS,
        driver_id,
        {
            "verified": False,
            "application_status": ApplicationStatus.REJECTED,
            "rejection_reason": reason,
        },
    )


def suspend_driver(
    db: DbClient, driver_id: str, *, until: float, reason: str
) -> DriverRecord:
    with db.transaction() as tx:
        driver = tx.get(collections.DRIVERS, driver_id)
        if driver is None:
            raise NotFound("Driver profile not found")
        changes = {"suspended_until": until, "suspension_reason": reason}
        if driver.status == DriverStatus.ONLINE:
            changes["status"] = DriverStatus.OFFLINE
        driver = tx.update(collections.DRIVERS, driver_id, changes)
    logger.info("[%s] Driver suspended until %s", driver_id, until)
    return driver


def list_driver_applications(
    db: DbClient, status: Optional[ApplicationStatus] = None, *, limit: int = 100
) -> list[DriverRecord]:
    where = {"application_status": status} if status else None
    return db.find(collections.DRIVERS, where, limit=limit)


# Merchant applications -------------------------------------------------------


def get_merchant(db: DbClient, merchant_id: str) -> MerchantRecord:
    merchant = db.get(collections.MERCHANTS, merchant_id)
    if merchant is None:
        raise NotFound("Merchant not found")
    return merchant


def merchant_for_owner(db: DbClient, owner_id: str) -> Optional[MerchantRecord]:
    matches = db.find(collections.MERCHANTS, {"owner_id": owner_id}, limit=1)
    return matches[0] if matches else None


def register_merchant(
    db: DbClient,
    user: UserRecord,
    *,
    name: str,
    type: MerchantType,
    address: str,
    coordinates: GeoPoint,
    phone: str,
    email: str = "",
    description: str = "",
    categories: Optional[list[str]] = None,
    delivery_fee: float = 49.0,
    min_order: float = 0.0,
    auto_approve: bool = False,
) -> MerchantRecord:
    if not name.strip():
        raise InvalidArgument("Store name is required")
    if merchant_for_owner(db, user.user_id) is not None:
        raise FailedPrecondition("You already have a merchant application")

    merchant = MerchantRecord(
        merchant_id=new_id("merchant"),
        owner_id=user.user_id,
        name=name.strip(),
        type=type,
        address=address,
        coordinates=coordinates,
        phone=phone,
        email=email or user.email,
        description=description,
        categories=list(categories or []),
        delivery_fee=delivery_fee,
        min_order=min_order,
    )
    db.add(collections.MERCHANTS, merchant)
    logger.info("[%s] Merchant application submitted by %s", merchant.merchant_id, user.user_id)
    if auto_approve:
        return approve_merchant(db, merchant.merchant_id)
    return merchant


def approve_merchant(db: DbClient, merchant_id: str) -> MerchantRecord:
    get_merchant(db, merchant_id)
    with db.transaction() as tx:
        merchant = tx.update(
            collections.MERCHANTS,
            merchant_id,
            {
                "verified": True,
                "application_status": ApplicationStatus.APPROVED,
                "rejection_reason": None,
                "status": MerchantStatus.ACTIVE,
                "verified_at": now_ts(),
            },
        )
        owner = tx.get(collections.USERS, merchant.owner_id)
        if owner is not None and not has_minimum_role(owner.role, UserRole.MERCHANT):
            tx.update(collections.USERS, owner.user_id, {"role": UserRole.MERCHANT})
    logger.info("[%s] Merchant approved", merchant_id)
    return merchant


def reject_merchant(db: DbClient, merchant_id: str, reason: str) -> MerchantRecord:
    get_merchant(db, merchant_id)
    return db.update(
        collections.MERCHANTS,
        merchant_id,
        {
            "verified": False,
            "application_status": ApplicationStatus.REJECTED,
            "rejection_reason": reason,
        },
    )


def set_merchant_status(
    db: DbClient, merchant_id: str, status: MerchantStatus
) -> MerchantRecord:
    get_merchant(db, merchant_id)
    changes = {"status": status}
    if status != MerchantStatus.ACTIVE:
        changes["is_open"] = False
    return db.update(collections.MERCHANTS, merchant_id, changes)


def list_merchant_applications(
    db: DbClient, status: Optional[ApplicationStatus] = None, *, limit: int = 100
) -> list[MerchantRecord]:
    where = {"application_status": status} if status else None
    return db.find(collections.MERCHANTS, where, limit=limit)
