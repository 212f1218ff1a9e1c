"""
In-app notification inbox.
"""

from __future__ import annotations

import logging
from typing import Optional

from gogo import db as collections
from gogo.db import DbClient
from gogo.errors import NotFound, PermissionDenied
from gogo.records import NotificationRecord, new_id, now_ts
from gogo.types import NotificationType

logger = logging.getLogger(__name__)

INBOX_LIMIT = 50


def notify(
    db: DbClient,
    user_id: str,
    type: NotificationType,
    title: str,
    body: str,
    data: Optional[dict] = None,
) -> NotificationRecord:
    record = NotificationRecord(
        notification_id=new_id("notif"),
        user_id=user_id,
        type=type,
        title=title,
        body=body,
        data=dict(data or {}),
    )
    db.add(collections.NOTIFICATIONS, record)
    return record


def list_notifications(
    db: DbClient, user_id: str, *, limit: int = INBOX_LIMIT
) -> tuple[list[NotificationRecord], int]:
    """Newest notifications plus the total unread count."""
    items = db.find(collections.NOTIFICATIONS, {"user_id": user_id}, limit=limit)
    unread = len(
        db.find(collections.NOTIFICATIONS, {"user_id": user_id, "read": False})
    )
    return items, unread


def _owned(db: DbClient, notification_id: str, user_id: str) -> NotificationRecord:
    record = db.get(collections.NOTIFICATIONS, notification_id)
    if record is None:
        raise NotFound("Notification not found")
    if record.user_id != user_id:
        raise PermissionDenied("Not your notification")
    return record


def mark_read(db: DbClient, notification_id: str, user_id: str) -> NotificationRecord:
    record = _owned(db, notification_id, user_id)
    if record.read:
        return record
    return db.update(collections.NOTIFICATIONS, notification_id, {"read": True})


def mark_all_read(db: DbClient, user_id: str) -> int:
    unread = db.find(collections.NOTIFICATIONS, {"user_id": user_id, "read": False})
    for record in unread:
        db.update(collections.NOTIFICATIONS, record.notification_id, {"read": True})
    return len(unread)


def delete_notification(db: DbClient, notification_id: str, user_id: str) -> None:
    _owned(db, notification_id, user_id)
    db.delete(collections.NOTIFICATIONS, notification_id)


def clear_all(db: DbClient, user_id: str) -> int:
    records = db.find(collections.NOTIFICATIONS, {"user_id": user_id})
    for record in records:
        db.delete(collections.NOTIFICATIONS, record.notification_id)
    return len(records)


def purge_old_notifications(
    db: DbClient, retention_days: int, *, now: Optional[float] = None
) -> int:
    cutoff = (now or now_ts()) - retention_days * 86400
    removed = db.purge(collections.NOTIFICATIONS, cutoff)
    if removed:
        logger.info("Purged %d notifications older than %d days", removed, retention_days)
    return removed
