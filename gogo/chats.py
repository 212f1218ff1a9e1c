"""
In-app chat between a customer and the driver handling their ride or delivery.

A booking gets one chat per assigned driver; it is opened on demand by either
side and closed by the worker when the booking ends or the driver drops it.
"""

from __future__ import annotations

import logging
from typing import Optional

from gogo import db as collections
from gogo.db import DbClient, DuplicateDocument
from gogo.errors import FailedPrecondition, InvalidArgument, NotFound, PermissionDenied
from gogo.lifecycle import DELIVERY_STATUSES
from gogo.records import (
    ChatMessageRecord,
    ChatRecord,
    GeoPoint,
    UserRecord,
    new_id,
)
from gogo.tracking import TRACKED_RIDE_STATUSES
from gogo.types import ChatStatus, ChatType, MessageType, UserRole
from gogo.watch import wait_for_change

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 1000
PREVIEW_LENGTH = 100
IMAGE_PREVIEW = "📷 Image"
LOCATION_PREVIEW = "📍 Location shared"


def chat_id_for(chat_type: ChatType, reference_id: str, driver_id: str) -> str:
    return f"{chat_type.value}_{reference_id}_{driver_id}"


def _display_name(db: DbClient, user_id: str, fallback: str) -> str:
    user = db.get(collections.USERS, user_id)
    if user is None:
        return fallback
    return " ".join(p for p in (user.first_name, user.last_name) if p) or fallback


def _driver_name(db: DbClient, driver_id: str) -> str:
    driver = db.get(collections.DRIVERS, driver_id)
    if driver is None:
        return "Driver"
    return f"{driver.first_name} {driver.last_name}".strip() or "Driver"


def _open(
    db: DbClient,
    chat_type: ChatType,
    reference_id: str,
    customer_id: str,
    driver_id: str,
) -> ChatRecord:
    chat_id = chat_id_for(chat_type, reference_id, driver_id)
    existing = db.get(collections.CHATS, chat_id)
    if existing is not None:
        return existing
    chat = ChatRecord(
        chat_id=chat_id,
        type=chat_type,
        reference_id=reference_id,
        customer_id=customer_id,
        driver_id=driver_id,
        participant_names={
            customer_id: _display_name(db, customer_id, "Customer"),
            driver_id: _driver_name(db, driver_id),
        },
        unread_count={customer_id: 0, driver_id: 0},
    )
    try:
        db.add(collections.CHATS, chat)
    except DuplicateDocument:
        # Both sides opened it at once.
        return db.get(collections.CHATS, chat_id)
    logger.info("[%s] Opened %s chat", reference_id, chat_type)
    return chat


def open_ride_chat(db: DbClient, ride_id: str, user: UserRecord) -> ChatRecord:
    ride = db.get(collections.RIDES, ride_id)
    if ride is None:
        raise NotFound("Ride not found")
    if user.user_id not in (ride.passenger_id, ride.driver_id):
        raise PermissionDenied("Not your ride")
    if ride.status not in TRACKED_RIDE_STATUSES or not ride.driver_id:
        raise FailedPrecondition("Chat opens once a driver is on the way")
    return _open(db, ChatType.RIDE, ride.ride_id, ride.passenger_id, ride.driver_id)


def open_order_chat(db: DbClient, order_id: str, user: UserRecord) -> ChatRecord:
    order = db.get(collections.ORDERS, order_id)
    if order is None:
        raise NotFound("Order not found")
    if user.user_id not in (order.customer_id, order.driver_id):
        raise PermissionDenied("Not your order")
    if order.status not in DELIVERY_STATUSES or not order.driver_id:
        raise FailedPrecondition("Chat opens once a rider picks up the order")
    return _open(db, ChatType.ORDER, order.order_id, order.customer_id, order.driver_id)


def get_chat(db: DbClient, chat_id: str, user: UserRecord) -> ChatRecord:
    chat = db.get(collections.CHATS, chat_id)
    if chat is None:
        raise NotFound("Chat not found")
    if user.user_id not in chat.participants:
        raise PermissionDenied("Not your chat")
    return chat


def list_chats(
    db: DbClient, user_id: str, *, active_only: bool = True, limit: int = 50
) -> tuple[list[ChatRecord], int]:
    """The user's chats, most recent activity first, with their total unread count."""
    where: dict = {"status": ChatStatus.ACTIVE} if active_only else {}
    chats = db.find(collections.CHATS, {**where, "customer_id": user_id})
    chats += db.find(collections.CHATS, {**where, "driver_id": user_id})
    chats.sort(key=lambda c: c.last_message_at or c.created_at, reverse=True)
    chats = chats[:limit]
    unread = sum(c.unread_count.get(user_id, 0) for c in chats)
    return chats, unread


def _sender_type(chat: ChatRecord, user_id: str) -> UserRole:
    return UserRole.DRIVER if user_id == chat.driver_id else UserRole.CUSTOMER


def send_message(
    db: DbClient,
    chat_id: str,
    user: UserRecord,
    *,
    message: str = "",
    message_type: MessageType = MessageType.TEXT,
    image_url: Optional[str] = None,
    location: Optional[GeoPoint] = None,
) -> ChatMessageRecord:
    if message_type == MessageType.TEXT:
        message = (message or "").strip()
        if not message:
            raise InvalidArgument("Message cannot be empty")
        if len(message) > MAX_MESSAGE_LENGTH:
            raise InvalidArgument(f"Messages are limited to {MAX_MESSAGE_LENGTH} characters")
    elif message_type == MessageType.IMAGE:
        if not image_url:
            raise InvalidArgument("An image message needs an image_url")
        message = IMAGE_PREVIEW
    elif message_type == MessageType.LOCATION:
        if location is None:
            raise InvalidArgument("A location message needs a location")
        message = LOCATION_PREVIEW
    else:
        raise InvalidArgument(f"Cannot send {message_type} messages")

    with db.transaction() as tx:
        chat = get_chat(tx, chat_id, user)
        if chat.status != ChatStatus.ACTIVE:
            raise FailedPrecondition("This chat has been closed")
        entry = ChatMessageRecord(
            message_id=new_id("msg"),
            chat_id=chat.chat_id,
            sender_id=user.user_id,
            sender_type=_sender_type(chat, user.user_id),
            message=message,
            message_type=message_type,
            image_url=image_url if message_type == MessageType.IMAGE else None,
            location=location if message_type == MessageType.LOCATION else None,
        )
        tx.add(collections.CHAT_MESSAGES, entry)
        recipient = chat.driver_id if user.user_id == chat.customer_id else chat.customer_id
        unread = dict(chat.unread_count)
        unread[recipient] = unread.get(recipient, 0) + 1
        tx.update(
            collections.CHATS,
            chat.chat_id,
            {
                "last_message": message[:PREVIEW_LENGTH],
                "last_message_at": entry.created_at,
                "unread_count": unread,
            },
        )
    return entry


def list_messages(
    db: DbClient,
    chat_id: str,
    user: UserRecord,
    *,
    limit: int = 50,
    before: Optional[float] = None,
) -> tuple[list[ChatMessageRecord], bool]:
    """
    The newest ``limit`` messages (older than ``before`` when paging back),
    oldest first, and whether older ones remain.
    """
    get_chat(db, chat_id, user)
    messages = db.find(collections.CHAT_MESSAGES, {"chat_id": chat_id})
    if before is not None:
        messages = [m for m in messages if m.created_at < before]
    page = messages[:limit]
    page.reverse()
    return page, len(messages) > limit


def mark_read(db: DbClient, chat_id: str, user: UserRecord) -> int:
    """Mark the other side's messages read; returns how many changed."""
    with db.transaction() as tx:
        chat = get_chat(tx, chat_id, user)
        unread = tx.find(collections.CHAT_MESSAGES, {"chat_id": chat_id, "read": False})
        count = 0
        for entry in unread:
            if entry.sender_id == user.user_id:
                continue
            tx.update(collections.CHAT_MESSAGES, entry.message_id, {"read": True})
            count += 1
        if chat.unread_count.get(user.user_id):
            counts = dict(chat.unread_count)
            counts[user.user_id] = 0
            tx.update(collections.CHATS, chat_id, {"unread_count": counts})
    return count


def watch_chat(
    db: DbClient,
    chat_id: str,
    user: UserRecord,
    *,
    since_version: int,
    timeout: float = 25.0,
) -> tuple[ChatRecord, bool]:
    """Every new message bumps the chat's version."""
    get_chat(db, chat_id, user)
    return wait_for_change(
        lambda: db.get(collections.CHATS, chat_id), since_version, timeout
    )


def close_chats(
    db: DbClient,
    chat_type: ChatType,
    reference_id: str,
    *,
    keep_driver_id: Optional[str] = None,
) -> int:
    """Close a booking's open chats, except the one with ``keep_driver_id``."""
    closed = 0
    for chat in db.find(
        collections.CHATS,
        {"type": chat_type, "reference_id": reference_id, "status": ChatStatus.ACTIVE},
    ):
        if keep_driver_id is not None and chat.driver_id == keep_driver_id:
            continue
        db.update(
            collections.CHATS,
            chat.chat_id,
            {"status": ChatStatus.CLOSED},
        )
        closed += 1
    if closed:
        logger.info("[%s] Closed %d chat(s)", reference_id, closed)
    return closed
