"""
Object paths for user uploads and who may write them.

Layout:
    users/{uid}/profile.{ext}
    drivers/{driver_id}/{document}.{ext}
    merchants/{merchant_id}/{logo|cover}.{ext}
    merchants/{merchant_id}/products/{product_id}.{ext}
"""

from __future__ import annotations

from typing import Optional

from gogo import db as collections
from gogo.db import DbClient
from gogo.errors import InvalidArgument, NotFound, PermissionDenied
from gogo.records import UserRecord
from gogo.types import UserRole

CONTENT_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "application/pdf": "pdf",
}

DRIVER_DOCUMENTS = {
    "license_front",
    "license_back",
    "vehicle_registration",
    "vehicle_photo",
    "profile_photo",
    "nbi_clearance",
}

MERCHANT_IMAGES = {"logo", "cover"}


def _extension(content_type: str, *, images_only: bool = True) -> str:
    ext = CONTENT_TYPES.get(content_type)
    if ext is None or (images_only and ext == "pdf"):
        raise InvalidArgument(f"Unsupported file type: {content_type}")
    return ext


def _check_merchant(db: DbClient, user: UserRecord, merchant_id: Optional[str]) -> None:
    if not merchant_id:
        raise InvalidArgument("merchant_id is required")
    merchant = db.get(collections.MERCHANTS, merchant_id)
    if merchant is None:
        raise NotFound("Merchant not found")
    if merchant.owner_id != user.user_id and user.role != UserRole.ADMIN:
        raise PermissionDenied("You do not manage this merchant")


def upload_path(
    db: DbClient,
    user: UserRecord,
    *,
    target: str,
    content_type: str,
    document: Optional[str] = None,
    merchant_id: Optional[str] = None,
    product_id: Optional[str] = None,
    image: Optional[str] = None,
) -> str:
    """Resolve where the caller may upload, raising if they may not."""
    if target == "profile":
        return f"users/{user.user_id}/profile.{_extension(content_type)}"

    if target == "driver_document":
        if document not in DRIVER_DOCUMENTS:
            raise InvalidArgument(f"Unknown driver document: {document}")
        ext = _extension(content_type, images_only=False)
        return f"drivers/{user.user_id}/{document}.{ext}"

    if target == "merchant_image":
        if image not in MERCHANT_IMAGES:
            raise InvalidArgument("image must be 'logo' or 'cover'")
        _check_merchant(db, user, merchant_id)
        return f"merchants/{merchant_id}/{image}.{_extension(content_type)}"

    if target == "product_image":
        _check_merchant(db, user, merchant_id)
        product = db.get(collections.PRODUCTS, product_id or "")
        if product is None or product.merchant_id != merchant_id:
            raise NotFound("Product not found")
        return f"merchants/{merchant_id}/products/{product_id}.{_extension(content_type)}"

    raise InvalidArgument(f"Unknown upload target: {target}")


def can_delete(db: DbClient, user: UserRecord, path: str) -> bool:
    if user.role == UserRole.ADMIN:
        return True
    parts = path.split("/")
    if len(parts) < 3 or ".." in parts:
        return False
    root, owner = parts[0], parts[1]
    if root in ("users", "drivers"):
        return owner == user.user_id
    if root == "merchants":
        merchant = db.get(collections.MERCHANTS, owner)
        return merchant is not None and merchant.owner_id == user.user_id
    return False
