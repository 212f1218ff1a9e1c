"""
Wallet balance, the transaction ledger and booking payments.

Balance changes and their ledger rows are always written in one
``transaction()`` so the two never disagree.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Union

from gogo import db as collections
from gogo.db import DbClient
from gogo.errors import FailedPrecondition, InvalidArgument, NotFound, PermissionDenied
from gogo.records import OrderRecord, RideRecord, TransactionRecord, new_id, now_ts
from gogo.types import (
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    RideStatus,
    TransactionType,
)

logger = logging.getLogger(__name__)

Booking = Union[RideRecord, OrderRecord]


@dataclass
class PaymentResult:
    success: bool
    payment_status: PaymentStatus
    transaction_id: Optional[str] = None
    redirect_url: Optional[str] = None
    balance: Optional[float] = None

    def as_dict(self) -> dict:
        return {
            "success": self.success,
            "payment_status": self.payment_status.value,
            "transaction_id": self.transaction_id,
            "redirect_url": self.redirect_url,
            "balance": self.balance,
        }


def get_balance(db: DbClient, user_id: str) -> float:
    user = db.get(collections.USERS, user_id)
    if user is None:
        raise NotFound("User not found")
    return user.wallet_balance


def _write_entry(
    tx: DbClient,
    user_id: str,
    kind: TransactionType,
    amount: float,
    description: str,
    *,
    allow_overdraft: bool = False,
    reference: Optional[str] = None,
    reference_type: Optional[str] = None,
    payment_method: Optional[str] = None,
) -> TransactionRecord:
    user = tx.get(collections.USERS, user_id)
    if user is None:
        raise NotFound("User not found")
    delta = -amount if kind == TransactionType.PAYMENT else amount
    balance = round(user.wallet_balance + delta, 2)
    if balance < 0 and not allow_overdraft:
        raise FailedPrecondition("Insufficient wallet balance")
    tx.update(collections.USERS, user_id, {"wallet_balance": balance})
    entry = TransactionRecord(
        transaction_id=new_id("txn"),
        user_id=user_id,
        type=kind,
        amount=amount,
        balance=balance,
        description=description,
        reference=reference,
        reference_type=reference_type,
        payment_method=payment_method,
    )
    tx.add(collections.TRANSACTIONS, entry)
    return entry


def top_up(
    db: DbClient,
    user_id: str,
    amount: float,
    method: str,
    *,
    minimum: float = 100,
) -> TransactionRecord:
    if amount < minimum:
        raise InvalidArgument(f"Minimum top-up is ₱{minimum:g}")
    with db.transaction() as tx:
        entry = _write_entry(
            tx,
            user_id,
            TransactionType.TOPUP,
            amount,
            f"Wallet top-up via {method}",
            payment_method=method,
        )
    logger.info("[%s] Topped up %.2f for %s", entry.transaction_id, amount, user_id)
    return entry


def debit_for(
    tx: DbClient,
    user_id: str,
    amount: float,
    *,
    reference: str,
    reference_type: str,
    description: str,
    allow_overdraft: bool = False,
) -> TransactionRecord:
    return _write_entry(
        tx,
        user_id,
        TransactionType.PAYMENT,
        amount,
        description,
        allow_overdraft=allow_overdraft,
        reference=reference,
        reference_type=reference_type,
        payment_method=PaymentMethod.WALLET.value,
    )


def refund_to(
    tx: DbClient,
    user_id: str,
    amount: float,
    *,
    reference: str,
    reference_type: str,
    description: str,
) -> TransactionRecord:
    return _write_entry(
        tx,
        user_id,
        TransactionType.REFUND,
        amount,
        description,
        reference=reference,
        reference_type=reference_type,
        payment_method=PaymentMethod.WALLET.value,
    )


def ensure_wallet_covers(db: DbClient, user_id: str, amount: float) -> None:
    if get_balance(db, user_id) < amount:
        raise FailedPrecondition("Insufficient wallet balance")


def _describe(booking: Booking) -> tuple[str, str, str, float]:
    """(reference, reference_type, owner id, amount) of a ride or order."""
    if isinstance(booking, RideRecord):
        return booking.ride_id, "ride", booking.passenger_id, booking.fare.total
    return booking.order_id, "order", booking.customer_id, booking.total


def settle_on_completion(tx: DbClient, booking: Booking) -> dict:
    """
    Collect payment when a ride or delivery finishes.

    Returns the payment fields to write on the booking. A wallet that can no
    longer cover the fare marks the payment failed rather than blocking the
    driver from completing.
    """
    if booking.payment_status == PaymentStatus.PAID:
        return {}
    reference, reference_type, owner_id, amount = _describe(booking)
    if booking.payment_method != PaymentMethod.WALLET:
        return {"payment_status": PaymentStatus.PAID, "paid_at": now_ts()}
    try:
        entry = debit_for(
            tx,
            owner_id,
            amount,
            reference=reference,
            reference_type=reference_type,
            description=f"Payment for {reference_type} {reference}",
        )
    except FailedPrecondition:
        logger.warning(
            "[%s] Wallet payment of %.2f failed for %s", reference, amount, owner_id
        )
        return {"payment_status": PaymentStatus.FAILED}
    return {
        "payment_status": PaymentStatus.PAID,
        "paid_at": now_ts(),
        "payment_transaction_id": entry.transaction_id,
    }


def refund_if_paid(tx: DbClient, booking: Booking) -> dict:
    """Return a wallet payment for a cancelled booking. Returns fields to write."""
    if (
        booking.payment_status != PaymentStatus.PAID
        or booking.payment_method != PaymentMethod.WALLET
    ):
        return {}
    reference, reference_type, owner_id, amount = _describe(booking)
    refund_to(
        tx,
        owner_id,
        amount,
        reference=reference,
        reference_type=reference_type,
        description=f"Refund for cancelled {reference_type} {reference}",
    )
    logger.info("[%s] Refunded %.2f to %s", reference, amount, owner_id)
    return {"payment_status": PaymentStatus.REFUNDED}


def _pay(db: DbClient, kind: str, key: str, user_id: str) -> PaymentResult:
    with db.transaction() as tx:
        booking = tx.get(kind, key)
        label = "Ride" if kind == collections.RIDES else "Order"
        if booking is None:
            raise NotFound(f"{label} not found")
        reference, reference_type, owner_id, amount = _describe(booking)
        if owner_id != user_id:
            raise PermissionDenied(f"Not your {reference_type}")
        if booking.status in (RideStatus.CANCELLED, OrderStatus.CANCELLED):
            raise FailedPrecondition(f"Cannot pay for a cancelled {reference_type}")
        if booking.payment_status in (PaymentStatus.PAID, PaymentStatus.REFUNDED):
            raise FailedPrecondition(f"{label} has already been paid")

        if booking.payment_method == PaymentMethod.WALLET:
            entry = debit_for(
                tx,
                user_id,
                amount,
                reference=reference,
                reference_type=reference_type,
                description=f"Payment for {reference_type} {reference}",
            )
            tx.update(
                kind,
                key,
                {
                    "payment_status": PaymentStatus.PAID,
                    "paid_at": now_ts(),
                    "payment_transaction_id": entry.transaction_id,
                },
            )
            return PaymentResult(
                success=True,
                payment_status=PaymentStatus.PAID,
                transaction_id=entry.transaction_id,
                balance=entry.balance,
            )
        if booking.payment_method == PaymentMethod.CASH:
            tx.update(kind, key, {"payment_status": PaymentStatus.PENDING_CASH})
            return PaymentResult(success=True, payment_status=PaymentStatus.PENDING_CASH)

    # Gateway payments are completed by the provider's hosted checkout.
    return PaymentResult(
        success=False,
        payment_status=booking.payment_status,
        redirect_url=f"/payment/{booking.payment_method.value}?{reference_type}={reference}",
    )


def pay_ride(db: DbClient, ride_id: str, user_id: str) -> PaymentResult:
    return _pay(db, collections.RIDES, ride_id, user_id)


def pay_order(db: DbClient, order_id: str, user_id: str) -> PaymentResult:
    return _pay(db, collections.ORDERS, order_id, user_id)


def list_transactions(
    db: DbClient, user_id: str, *, limit: int = 50
) -> list[TransactionRecord]:
    return db.find(collections.TRANSACTIONS, {"user_id": user_id}, limit=limit)
