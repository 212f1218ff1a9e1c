"""
Delivery endpoints for drivers picking up ready orders.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from gogo import orders
from gogo.db import DbClient
from gogo.dependencies import get_current_driver, get_db_client, get_queue_client
from gogo.queue import EventQueue
from gogo.records import DriverRecord
from gogo.schemas import CancelRequest, OrderListResponse, OrderResponse

router = APIRouter(prefix="/deliveries", tags=["deliveries"])


@router.get("", response_model=OrderListResponse)
def available(
    limit: int = Query(20, ge=1, le=50),
    driver: DriverRecord = Depends(get_current_driver),
    db: DbClient = Depends(get_db_client),
):
    found = orders.available_deliveries(db, limit=limit)
    return OrderListResponse(orders=[o.as_dict() for o in found])


@router.post("/{order_id}/accept", response_model=OrderResponse)
def accept(
    order_id: str,
    driver: DriverRecord = Depends(get_current_driver),
    db: DbClient = Depends(get_db_client),
    queue: EventQueue = Depends(get_queue_client),
):
    order = orders.accept_delivery(db, queue, driver.driver_id, order_id)
    return OrderResponse(order=order.as_dict())


@router.post("/{order_id}/on-the-way", response_model=OrderResponse)
def on_the_way(
    order_id: str,
    driver: DriverRecord = Depends(get_current_driver),
    db: DbClient = Depends(get_db_client),
    queue: EventQueue = Depends(get_queue_client),
):
    order = orders.mark_on_the_way(db, queue, driver.driver_id, order_id)
    return OrderResponse(order=order.as_dict())


@router.post("/{order_id}/complete", response_model=OrderResponse)
def complete(
    order_id: str,
    driver: DriverRecord = Depends(get_current_driver),
    db: DbClient = Depends(get_db_client),
    queue: EventQueue = Depends(get_queue_client),
):
    order = orders.complete_delivery(db, queue, driver.driver_id, order_id)
    return OrderResponse(order=order.as_dict())


@router.post("/{order_id}/cancel", response_model=OrderResponse)
def cancel(
    order_id: str,
    payload: CancelRequest,
    driver: DriverRecord = Depends(get_current_driver),
    db: DbClient = Depends(get_db_client),
    queue: EventQueue = Depends(get_queue_client),
):
    order = orders.cancel_delivery(db, queue, driver.driver_id, order_id, payload.reason)
    return OrderResponse(order=order.as_dict())
