"""
Dependency wiring for the FastAPI app and the worker.
"""

from __future__ import annotations

from typing import Callable, Optional

from fastapi import Depends, Header, Query

from gogo.accounts import get_driver, get_user
from gogo.config import get_settings
from gogo.db import DbClient, InMemoryDbClient, PostgresDbClient
from gogo.errors import NotFound, PermissionDenied, Unauthenticated
from gogo.queue import EventQueue, InMemoryEventQueue, RedisEventQueue
from gogo.records import DriverRecord, UserRecord
from gogo.storage import InMemoryStorageClient, S3StorageClient, StorageClient
from gogo.types import AccountStatus, UserRole, has_minimum_role

_db_client: DbClient | None = None
_storage_client: StorageClient | None = None
_queue_client: EventQueue | None = None


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so state persists across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _db_client = InMemoryDbClient()
    else:
        _db_client = PostgresDbClient(settings.database_url)
    return _db_client


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.s3_bucket:
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = S3StorageClient(
            bucket=settings.s3_bucket,
            region=settings.s3_region or "",
            endpoint=settings.s3_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
        )
    return _storage_client


def get_queue_client() -> EventQueue:
    """
    Return a singleton queue client for dispatching events to the worker.
    """
    global _queue_client
    if _queue_client:
        return _queue_client

    settings = get_settings()
    if settings.redis_url and not settings.use_in_memory_backends:
        _queue_client = RedisEventQueue(
            url=settings.redis_url,
            queue_key=settings.redis_queue_key,
        )
    else:
        _queue_client = InMemoryEventQueue()
    return _queue_client


def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """The hosted auth provider's uid for the caller."""
    if not x_user_id or not x_user_id.strip():
        raise Unauthenticated("Please sign in to continue")
    return x_user_id.strip()


def get_current_user(
    user_id: str = Depends(get_user_id),
    db: DbClient = Depends(get_db_client),
) -> UserRecord:
    try:
        user = get_user(db, user_id)
    except NotFound:
        raise NotFound("Profile not found. Complete sign-up first.") from None
    if user.status != AccountStatus.ACTIVE:
        raise PermissionDenied("Your account has been suspended")
    return user


def require_role(role: UserRole) -> Callable[..., UserRecord]:
    def checker(user: UserRecord = Depends(get_current_user)) -> UserRecord:
        if not has_minimum_role(user.role, role):
            raise PermissionDenied(f"This action requires the {role} role")
        return user

    return checker


def get_current_driver(
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
) -> DriverRecord:
    return get_driver(db, user.user_id)


def get_watch_timeout(timeout: float = Query(25.0, ge=0, le=60)) -> float:
    """
    Seconds a watch request may hold its connection.

    Watch handlers are synchronous, so each one holds a threadpool worker for
    the whole wait; ``watch_max_timeout_seconds`` bounds that.
    """
    return min(timeout, get_settings().watch_max_timeout_seconds)
