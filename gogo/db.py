"""
Document database abstraction for Postgres and an in-memory test implementation.

Records live in named collections, the way the apps stored them in the hosted
document database. Every read-check-write on a document that more than one
actor can touch must happen inside ``transaction()``; reads inside it lock the
rows they return so concurrent writers are serialized.
"""

from __future__ import annotations

import copy
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterator, Optional, Protocol

from sqlalchemy import JSON, Column, Float, String, create_engine, delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from gogo.records import (
    ChatMessageRecord,
    ChatRecord,
    DriverRecord,
    MerchantRecord,
    NotificationRecord,
    OrderRecord,
    ProductRecord,
    PromoRecord,
    RideRecord,
    TransactionRecord,
    UserRecord,
    load_record,
    now_ts,
)


USERS = "users"
DRIVERS = "drivers"
MERCHANTS = "merchants"
PRODUCTS = "products"
RIDES = "rides"
ORDERS = "orders"
PROMOS = "promos"
TRANSACTIONS = "transactions"
NOTIFICATIONS = "notifications"
CHATS = "chats"
CHAT_MESSAGES = "chat_messages"


@dataclass(frozen=True)
class Collection:
    name: str
    record_cls: type
    key_field: str


COLLECTIONS: Dict[str, Collection] = {
    c.name: c
    for c in (
        Collection(USERS, UserRecord, "user_id"),
        Collection(DRIVERS, DriverRecord, "driver_id"),
        Collection(MERCHANTS, MerchantRecord, "merchant_id"),
        Collection(PRODUCTS, ProductRecord, "product_id"),
        Collection(RIDES, RideRecord, "ride_id"),
        Collection(ORDERS, OrderRecord, "order_id"),
        Collection(PROMOS, PromoRecord, "promo_id"),
        Collection(TRANSACTIONS, TransactionRecord, "transaction_id"),
        Collection(NOTIFICATIONS, NotificationRecord, "notification_id"),
        Collection(CHATS, ChatRecord, "chat_id"),
        Collection(CHAT_MESSAGES, ChatMessageRecord, "message_id"),
    )
}


class DuplicateDocument(Exception):
    pass


class DbClient(Protocol):
    """Interface for document access.

    ``where`` maps field names to expected values: ``None`` matches a null
    field, a list/tuple/set matches any member, anything else is equality.
    """

    def add(self, kind: str, record: Any) -> Any:
        ...

    def get(self, kind: str, key: str) -> Optional[Any]:
        ...

    def update(self, kind: str, key: str, changes: dict) -> Optional[Any]:
        ...

    def find(
        self,
        kind: str,
        where: Optional[dict] = None,
        *,
        limit: Optional[int] = None,
        oldest_first: bool = False,
    ) -> list:
        ...

    def delete(self, kind: str, key: str) -> bool:
        ...

    def purge(self, kind: str, created_before: float) -> int:
        ...

    def transaction(self) -> Iterator["DbClient"]:
        ...


def _collection(kind: str) -> Collection:
    try:
        return COLLECTIONS[kind]
    except KeyError:
        raise ValueError(f"Unknown collection: {kind}") from None


def _key_of(kind: str, record: Any) -> str:
    return getattr(record, _collection(kind).key_field)


def _apply_changes(record: Any, changes: dict) -> Any:
    return replace(
        record, **changes, version=record.version + 1, updated_at=now_ts()
    )


def _matches(record: Any, where: Optional[dict]) -> bool:
    for field_name, expected in (where or {}).items():
        actual = getattr(record, field_name)
        if expected is None:
            if actual is not None:
                return False
        elif isinstance(expected, (list, tuple, set, frozenset)):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.collections: Dict[str, Dict[str, Any]] = {
            name: {} for name in COLLECTIONS
        }
        self._lock = threading.RLock()

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            for store in self.collections.values():
                store.clear()

    def add(self, kind: str, record: Any) -> Any:
        key = _key_of(kind, record)
        with self._lock:
            store = self.collections[kind]
            if key in store:
                raise DuplicateDocument(f"{kind}/{key} already exists")
            store[key] = copy.deepcopy(record)
        return record

    def get(self, kind: str, key: str) -> Optional[Any]:
        _collection(kind)
        with self._lock:
            record = self.collections[kind].get(key)
            return copy.deepcopy(record) if record is not None else None

    def update(self, kind: str, key: str, changes: dict) -> Optional[Any]:
        _collection(kind)
        with self._lock:
            store = self.collections[kind]
            current = store.get(key)
            if current is None:
                return None
            updated = _apply_changes(current, changes)
            store[key] = updated
            return copy.deepcopy(updated)

    def find(
        self,
        kind: str,
        where: Optional[dict] = None,
        *,
        limit: Optional[int] = None,
        oldest_first: bool = False,
    ) -> list:
        _collection(kind)
        with self._lock:
            matches = [
                r for r in self.collections[kind].values() if _matches(r, where)
            ]
            matches.sort(key=lambda r: r.created_at, reverse=not oldest_first)
            if limit is not None:
                matches = matches[:limit]
            return copy.deepcopy(matches)

    def delete(self, kind: str, key: str) -> bool:
        _collection(kind)
        with self._lock:
            return self.collections[kind].pop(key, None) is not None

    def purge(self, kind: str, created_before: float) -> int:
        _collection(kind)
        with self._lock:
            store = self.collections[kind]
            stale = [k for k, r in store.items() if r.created_at < created_before]
            for key in stale:
                del store[key]
            return len(stale)

    @contextmanager
    def transaction(self) -> Iterator["InMemoryDbClient"]:
        with self._lock:
            snapshot = copy.deepcopy(self.collections)
            try:
                yield self
            except BaseException:
                self.collections = snapshot
                raise


Base = declarative_base()


class DocumentRow(Base):
    __tablename__ = "documents"

    kind = Column(String, primary_key=True)
    doc_id = Column(String, primary_key=True)
    data = Column(JSON, nullable=False)
    created_at = Column(Float, nullable=False, index=True)
    updated_at = Column(Float, nullable=False)


def _condition(field_name: str, expected: Any):
    element = DocumentRow.data[field_name]
    if expected is None:
        return element.as_string().is_(None)
    if isinstance(expected, (list, tuple, set, frozenset)):
        return element.as_string().in_([str(v) for v in expected])
    if isinstance(expected, bool):
        return element.as_boolean() == expected
    if isinstance(expected, (int, float)):
        return element.as_float() == expected
    return element.as_string() == str(expected)


class _SqlUnit:
    """Document operations bound to one SQLAlchemy session (no commit)."""

    def __init__(self, session: Session, *, lock_rows: bool = False):
        self.session = session
        self.lock_rows = lock_rows

    def _load(self, row: DocumentRow) -> Any:
        return load_record(_collection(row.kind).record_cls, row.data)

    def add(self, kind: str, record: Any) -> Any:
        key = _key_of(kind, record)
        if self.session.get(DocumentRow, (kind, key)) is not None:
            raise DuplicateDocument(f"{kind}/{key} already exists")
        self.session.add(
            DocumentRow(
                kind=kind,
                doc_id=key,
                data=record.as_dict(),
                created_at=record.created_at,
                updated_at=record.updated_at,
            )
        )
        try:
            self.session.flush()
        except IntegrityError:
            # Lost an insert race on the primary key.
            raise DuplicateDocument(f"{kind}/{key} already exists") from None
        return record

    def _row(self, kind: str, key: str) -> Optional[DocumentRow]:
        _collection(kind)
        return self.session.get(
            DocumentRow, (kind, key), with_for_update=True if self.lock_rows else None
        )

    def get(self, kind: str, key: str) -> Optional[Any]:
        row = self._row(kind, key)
        return self._load(row) if row is not None else None

    def update(self, kind: str, key: str, changes: dict) -> Optional[Any]:
        row = self._row(kind, key)
        if row is None:
            return None
        updated = _apply_changes(self._load(row), changes)
        row.data = updated.as_dict()
        row.updated_at = updated.updated_at
        self.session.flush()
        return updated

    def find(
        self,
        kind: str,
        where: Optional[dict] = None,
        *,
        limit: Optional[int] = None,
        oldest_first: bool = False,
    ) -> list:
        _collection(kind)
        stmt = select(DocumentRow).where(DocumentRow.kind == kind)
        for field_name, expected in (where or {}).items():
            stmt = stmt.where(_condition(field_name, expected))
        order = DocumentRow.created_at.asc() if oldest_first else DocumentRow.created_at.desc()
        stmt = stmt.order_by(order)
        if limit is not None:
            stmt = stmt.limit(limit)
        if self.lock_rows:
            stmt = stmt.with_for_update()
        return [self._load(row) for row in self.session.execute(stmt).scalars()]

    def delete(self, kind: str, key: str) -> bool:
        row = self._row(kind, key)
        if row is None:
            return False
        self.session.delete(row)
        self.session.flush()
        return True

    def purge(self, kind: str, created_before: float) -> int:
        _collection(kind)
        result = self.session.execute(
            delete(DocumentRow).where(
                DocumentRow.kind == kind, DocumentRow.created_at < created_before
            )
        )
        return result.rowcount or 0

    @contextmanager
    def transaction(self) -> Iterator["_SqlUnit"]:
        yield self


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _run(self, op: str, *args, **kwargs):
        with self.Session() as session:
            result = getattr(_SqlUnit(session), op)(*args, **kwargs)
            session.commit()
            return result

    def add(self, kind: str, record: Any) -> Any:
        return self._run("add", kind, record)

    def get(self, kind: str, key: str) -> Optional[Any]:
        with self.Session() as session:
            return _SqlUnit(session).get(kind, key)

    def update(self, kind: str, key: str, changes: dict) -> Optional[Any]:
        return self._run("update", kind, key, changes)

    def find(
        self,
        kind: str,
        where: Optional[dict] = None,
        *,
        limit: Optional[int] = None,
        oldest_first: bool = False,
    ) -> list:
        with self.Session() as session:
            return _SqlUnit(session).find(
                kind, where, limit=limit, oldest_first=oldest_first
            )

    def delete(self, kind: str, key: str) -> bool:
        return self._run("delete", kind, key)

    def purge(self, kind: str, created_before: float) -> int:
        return self._run("purge", kind, created_before)

    @contextmanager
    def transaction(self) -> Iterator[_SqlUnit]:
        with self.Session() as session:
            unit = _SqlUnit(session, lock_rows=True)
            try:
                yield unit
                session.commit()
            except BaseException:
                session.rollback()
                raise
