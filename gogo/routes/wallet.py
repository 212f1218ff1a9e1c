"""
Wallet balance, top-ups and transaction history.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from gogo import wallet
from gogo.config import get_settings
from gogo.db import DbClient
from gogo.dependencies import get_current_user, get_db_client
from gogo.records import UserRecord
from gogo.schemas import (
    BalanceResponse,
    TopUpRequest,
    TopUpResponse,
    TransactionListResponse,
)

router = APIRouter(prefix="/wallet", tags=["wallet"])


@router.get("", response_model=BalanceResponse)
def balance(
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    return BalanceResponse(
        balance=wallet.get_balance(db, user.user_id),
        currency=user.settings.currency,
    )


@router.post("/top-up", response_model=TopUpResponse)
def top_up(
    payload: TopUpRequest,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    entry = wallet.top_up(
        db,
        user.user_id,
        payload.amount,
        payload.method,
        minimum=get_settings().min_top_up_amount,
    )
    return TopUpResponse(balance=entry.balance, transaction_id=entry.transaction_id)


@router.get("/transactions", response_model=TransactionListResponse)
def transactions(
    limit: int = Query(50, ge=1, le=200),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    found = wallet.list_transactions(db, user.user_id, limit=limit)
    return TransactionListResponse(transactions=[t.as_dict() for t in found])
