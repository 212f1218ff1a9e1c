"""
In-app notification inbox endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from gogo import notifications
from gogo.db import DbClient
from gogo.dependencies import get_current_user, get_db_client
from gogo.records import UserRecord
from gogo.schemas import CountResponse, NotificationListResponse, StatusResponse

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
def inbox(
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    items, unread = notifications.list_notifications(db, user.user_id)
    return NotificationListResponse(
        notifications=[n.as_dict() for n in items], unread_count=unread
    )


@router.post("/read-all", response_model=CountResponse)
def read_all(
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    return CountResponse(count=notifications.mark_all_read(db, user.user_id))


@router.post("/{notification_id}/read", response_model=StatusResponse)
def read(
    notification_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    notifications.mark_read(db, notification_id, user.user_id)
    return StatusResponse(status="ok")


@router.delete("/{notification_id}", response_model=StatusResponse)
def delete(
    notification_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    notifications.delete_notification(db, notification_id, user.user_id)
    return StatusResponse(status="ok")


@router.delete("", response_model=CountResponse)
def clear(
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    return CountResponse(count=notifications.clear_all(db, user.user_id))
