"""
Food and grocery order endpoints for customers.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from gogo import orders, tracking, wallet
from gogo.config import get_settings
from gogo.db import DbClient
from gogo.dependencies import (
    get_current_user,
    get_db_client,
    get_queue_client,
    get_watch_timeout,
)
from gogo.pricing import RequestedItem
from gogo.queue import EventQueue
from gogo.records import GeoPoint, UserRecord, load_record
from gogo.schemas import (
    AssignedDriverResponse,
    CancelRequest,
    CartItemModel,
    OrderListResponse,
    OrderPlaceRequest,
    OrderQuoteRequest,
    OrderResponse,
    PaymentResponse,
    QuoteResponse,
    RatingRequest,
    WatchResponse,
)
from gogo.types import OrderStatus

router = APIRouter(prefix="/orders", tags=["orders"])


def _requested(items: list[CartItemModel]) -> list[RequestedItem]:
    return [
        RequestedItem(
            product_id=item.product_id,
            quantity=item.quantity,
            options=dict(item.options),
            addons=list(item.addons),
            special_instructions=item.special_instructions,
        )
        for item in items
    ]


@router.post("/quote", response_model=QuoteResponse)
def quote(
    payload: OrderQuoteRequest,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    result = orders.quote_order(
        db,
        payload.merchant_id,
        _requested(payload.items),
        promo_code=payload.promo_code,
        service_fee_rate=get_settings().service_fee_rate,
    )
    return QuoteResponse(quote=result.as_dict())


@router.post("", response_model=OrderResponse, status_code=201)
def place(
    payload: OrderPlaceRequest,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    queue: EventQueue = Depends(get_queue_client),
):
    order = orders.place_order(
        db,
        queue,
        user,
        merchant_id=payload.merchant_id,
        items=_requested(payload.items),
        address=payload.address,
        coordinates=load_record(GeoPoint, payload.coordinates.model_dump()),
        payment_method=payload.payment_method,
        contact_name=payload.contact_name,
        contact_phone=payload.contact_phone,
        address_details=payload.address_details,
        promo_code=payload.promo_code,
        notes=payload.notes,
        scheduled_at=payload.scheduled_at,
        service_fee_rate=get_settings().service_fee_rate,
    )
    return OrderResponse(order=order.as_dict())


@router.get("", response_model=OrderListResponse)
def list_orders(
    status: Optional[OrderStatus] = None,
    active: bool = False,
    limit: int = Query(20, ge=1, le=100),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    found = orders.list_orders(
        db, user.user_id, status=status, active_only=active, limit=limit
    )
    return OrderListResponse(orders=[o.as_dict() for o in found])


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(
    order_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    return OrderResponse(order=orders.get_order(db, order_id, user).as_dict())


@router.get("/{order_id}/watch", response_model=WatchResponse)
def watch(
    order_id: str,
    since_version: int = Query(0, ge=0),
    timeout: float = Depends(get_watch_timeout),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    order, changed = orders.watch_order(
        db, order_id, user, since_version=since_version, timeout=timeout
    )
    return WatchResponse(changed=changed, version=order.version, document=order.as_dict())


@router.post("/{order_id}/cancel", response_model=OrderResponse)
def cancel(
    order_id: str,
    payload: CancelRequest,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    queue: EventQueue = Depends(get_queue_client),
):
    order = orders.cancel_order(db, queue, order_id, user, payload.reason)
    return OrderResponse(order=order.as_dict())


@router.post("/{order_id}/rate", response_model=OrderResponse)
def rate(
    order_id: str,
    payload: RatingRequest,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    queue: EventQueue = Depends(get_queue_client),
):
    order = orders.rate_order(db, queue, order_id, user, payload.rating, payload.review)
    return OrderResponse(order=order.as_dict())


@router.post("/{order_id}/reorder", response_model=QuoteResponse)
def reorder(
    order_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    """
    Re-price a past order against the current menu.
    """
    result = orders.reorder(
        db, order_id, user, service_fee_rate=get_settings().service_fee_rate
    )
    return QuoteResponse(quote=result.as_dict())


@router.post("/{order_id}/pay", response_model=PaymentResponse)
def pay(
    order_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    result = wallet.pay_order(db, order_id, user.user_id)
    return PaymentResponse(payment=result.as_dict())


@router.get("/{order_id}/driver", response_model=AssignedDriverResponse)
def assigned_driver(
    order_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    order, driver = tracking.order_driver(db, order_id, user)
    return AssignedDriverResponse(
        driver=tracking.public_driver(driver, order.delivery_address.coordinates),
        status=order.status.value,
    )


@router.get("/{order_id}/driver/watch", response_model=AssignedDriverResponse)
def watch_assigned_driver(
    order_id: str,
    since_version: int = Query(0, ge=0),
    timeout: float = Depends(get_watch_timeout),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    order, driver, changed = tracking.watch_order_driver(
        db, order_id, user, since_version=since_version, timeout=timeout
    )
    return AssignedDriverResponse(
        driver=tracking.public_driver(driver, order.delivery_address.coordinates),
        status=order.status.value,
        changed=changed,
    )
