"""
Chat between a customer and their driver while a ride or delivery is live.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from gogo import chats
from gogo.db import DbClient
from gogo.dependencies import get_current_user, get_db_client, get_watch_timeout
from gogo.records import GeoPoint, UserRecord, load_record
from gogo.schemas import (
    ChatListResponse,
    ChatResponse,
    CountResponse,
    MessageListResponse,
    MessageRequest,
    MessageResponse,
    WatchResponse,
)

router = APIRouter(prefix="/chats", tags=["chats"])


@router.post("/rides/{ride_id}", response_model=ChatResponse)
def open_ride_chat(
    ride_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    return ChatResponse(chat=chats.open_ride_chat(db, ride_id, user).as_dict())


@router.post("/orders/{order_id}", response_model=ChatResponse)
def open_order_chat(
    order_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    return ChatResponse(chat=chats.open_order_chat(db, order_id, user).as_dict())


@router.get("", response_model=ChatListResponse)
def list_chats(
    active_only: bool = True,
    limit: int = Query(50, ge=1, le=100),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    items, unread = chats.list_chats(
        db, user.user_id, active_only=active_only, limit=limit
    )
    return ChatListResponse(chats=[c.as_dict() for c in items], unread_count=unread)


@router.get("/{chat_id}", response_model=ChatResponse)
def get_chat(
    chat_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    return ChatResponse(chat=chats.get_chat(db, chat_id, user).as_dict())


@router.get("/{chat_id}/messages", response_model=MessageListResponse)
def messages(
    chat_id: str,
    limit: int = Query(50, ge=1, le=100),
    before: Optional[float] = None,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    items, has_more = chats.list_messages(db, chat_id, user, limit=limit, before=before)
    return MessageListResponse(messages=[m.as_dict() for m in items], has_more=has_more)


@router.post("/{chat_id}/messages", response_model=MessageResponse)
def send(
    chat_id: str,
    payload: MessageRequest,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    location = (
        load_record(GeoPoint, payload.location.model_dump()) if payload.location else None
    )
    entry = chats.send_message(
        db,
        chat_id,
        user,
        message=payload.message,
        message_type=payload.message_type,
        image_url=payload.image_url,
        location=location,
    )
    return MessageResponse(message=entry.as_dict())


@router.post("/{chat_id}/read", response_model=CountResponse)
def read(
    chat_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    return CountResponse(count=chats.mark_read(db, chat_id, user))


@router.get("/{chat_id}/watch", response_model=WatchResponse)
def watch(
    chat_id: str,
    since_version: int = Query(0, ge=0),
    timeout: float = Depends(get_watch_timeout),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    """
    Long-poll until a message arrives or the chat is read or closed.
    """
    chat, changed = chats.watch_chat(
        db, chat_id, user, since_version=since_version, timeout=timeout
    )
    return WatchResponse(changed=changed, version=chat.version, document=chat.as_dict())
