"""
Presigned URLs for uploads straight to object storage.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query

from gogo import uploads
from gogo.db import DbClient
from gogo.dependencies import get_current_user, get_db_client, get_storage_client
from gogo.errors import PermissionDenied
from gogo.records import UserRecord
from gogo.schemas import SignUrlResponse, StatusResponse, UploadSignRequest
from gogo.storage import StorageClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/uploads", tags=["uploads"])


@router.post("/sign", response_model=SignUrlResponse)
def sign_upload(
    payload: UploadSignRequest,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    path = uploads.upload_path(
        db,
        user,
        target=payload.target,
        content_type=payload.content_type,
        document=payload.document,
        merchant_id=payload.merchant_id,
        product_id=payload.product_id,
        image=payload.image,
    )
    url = storage.presign_put(path, payload.content_type)
    return SignUrlResponse(url=url, path=path)


@router.get("/sign", response_model=SignUrlResponse)
def sign_download(
    path: str = Query(..., min_length=1),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    # Store and product images are public; everything else is owner-only.
    if not (path.startswith("merchants/") and ".." not in path) and not uploads.can_delete(
        db, user, path
    ):
        raise PermissionDenied("You cannot read this file")
    return SignUrlResponse(url=storage.presign_get(path), path=path)


@router.delete("", response_model=StatusResponse)
def delete_upload(
    path: str = Query(..., min_length=1),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    if not uploads.can_delete(db, user, path):
        raise PermissionDenied("You cannot delete this file")
    storage.delete_object(path)
    logger.info("Deleted %s for %s", path, user.user_id)
    return StatusResponse(status="ok")
