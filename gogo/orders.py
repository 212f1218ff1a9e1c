"""
Food, grocery and pharmacy orders: the customer checkout, the merchant
kitchen queue and the driver's delivery leg.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable, Optional

from gogo import db as collections
from gogo import lifecycle
from gogo.accounts import get_driver
from gogo.catalog import is_listed
from gogo.db import DbClient
from gogo.errors import (
    Aborted,
    FailedPrecondition,
    InvalidArgument,
    NotFound,
    PermissionDenied,
)
from gogo.pricing import OrderTotals, RequestedItem, order_totals, price_order_items
from gogo.promos import redeem_promo, require_promo
from gogo.queue import ORDER_CREATED, ORDER_STATUS_CHANGED, EventQueue, order_event
from gogo.records import (
    DeliveryAddress,
    GeoPoint,
    MerchantRecord,
    OrderItem,
    OrderRecord,
    PromoRecord,
    UserRecord,
    new_id,
)
from gogo.types import (
    AccountStatus,
    CancelledBy,
    DriverStatus,
    MerchantType,
    OrderStatus,
    OrderType,
    PaymentMethod,
    ServiceType,
    UserRole,
)
from gogo.wallet import ensure_wallet_covers, refund_if_paid, settle_on_completion
from gogo.watch import wait_for_change

logger = logging.getLogger(__name__)

_ORDER_TYPES = {
    MerchantType.RESTAURANT: OrderType.FOOD,
    MerchantType.GROCERY: OrderType.GROCERY,
    MerchantType.CONVENIENCE: OrderType.GROCERY,
    MerchantType.PHARMACY: OrderType.PHARMACY,
}

_SERVICES = {
    OrderType.FOOD: ServiceType.FOOD,
    OrderType.GROCERY: ServiceType.GROCERY,
    OrderType.PHARMACY: ServiceType.PHARMACY,
}


@dataclass
class OrderQuote:
    merchant: MerchantRecord
    order_type: OrderType
    items: list[OrderItem]
    totals: OrderTotals
    promo: Optional[PromoRecord] = None
    unavailable: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "merchant_id": self.merchant.merchant_id,
            "type": self.order_type.value,
            "items": [
                {
                    "product_id": item.product_id,
                    "name": item.name,
                    "quantity": item.quantity,
                    "price": item.price,
                    "total": item.total,
                    "options": [
                        {"name": o.name, "choice": o.choice, "price": o.price}
                        for o in item.options
                    ],
                    "addons": [{"name": a.name, "price": a.price} for a in item.addons],
                    "special_instructions": item.special_instructions,
                }
                for item in self.items
            ],
            **self.totals.as_dict(),
            "promo_code": self.promo.code if self.promo else None,
            "unavailable": list(self.unavailable),
        }


def _emit(queue: EventQueue, order: OrderRecord, before: Optional[OrderStatus]) -> None:
    if before is None:
        queue.enqueue(order_event(ORDER_CREATED, order.order_id, None, order.status.value))
    else:
        queue.enqueue(
            order_event(
                ORDER_STATUS_CHANGED, order.order_id, before.value, order.status.value
            )
        )


def _listed_merchant(db: DbClient, merchant_id: str) -> MerchantRecord:
    merchant = db.get(collections.MERCHANTS, merchant_id)
    if merchant is None or not is_listed(merchant):
        raise NotFound("Restaurant not found")
    return merchant


def _menu(db: DbClient, merchant_id: str) -> dict:
    return {
        p.product_id: p
        for p in db.find(collections.PRODUCTS, {"merchant_id": merchant_id})
    }


def _quote(
    db: DbClient,
    merchant: MerchantRecord,
    items: list[OrderItem],
    promo_code: Optional[str],
    service_fee_rate: float,
) -> OrderQuote:
    order_type = _ORDER_TYPES[merchant.type]
    promo = None
    if promo_code:
        subtotal = sum(item.total for item in items)
        promo = require_promo(
            db,
            promo_code,
            subtotal,
            _SERVICES[order_type],
            delivery_fee=merchant.delivery_fee,
        )
        if promo.merchant_id and promo.merchant_id != merchant.merchant_id:
            raise InvalidArgument("This promo is not valid for this store")
    totals = order_totals(items, merchant.delivery_fee, service_fee_rate, promo)
    return OrderQuote(
        merchant=merchant, order_type=order_type, items=items, totals=totals, promo=promo
    )


def quote_order(
    db: DbClient,
    merchant_id: str,
    requested: Iterable[RequestedItem],
    *,
    promo_code: Optional[str] = None,
    service_fee_rate: float = 0.05,
) -> OrderQuote:
    merchant = _listed_merchant(db, merchant_id)
    items = price_order_items(merchant.merchant_id, _menu(db, merchant_id), requested)
    return _quote(db, merchant, items, promo_code, service_fee_rate)


def place_order(
    db: DbClient,
    queue: EventQueue,
    user: UserRecord,
    *,
    merchant_id: str,
    items: list[RequestedItem],
    address: str,
    coordinates: GeoPoint,
    payment_method: PaymentMethod,
    contact_name: Optional[str] = None,
    contact_phone: Optional[str] = None,
    address_details: Optional[str] = None,
    promo_code: Optional[str] = None,
    notes: Optional[str] = None,
    scheduled_at: Optional[float] = None,
    service_fee_rate: float = 0.05,
) -> OrderRecord:
    if user.status != AccountStatus.ACTIVE:
        raise PermissionDenied("Your account is not active")
    if not items:
        raise InvalidArgument("Your cart is empty")
    merchant = _listed_merchant(db, merchant_id)
    if not merchant.is_open:
        raise FailedPrecondition("This store is currently closed")

    quote = quote_order(
        db, merchant_id, items, promo_code=promo_code, service_fee_rate=service_fee_rate
    )
    if merchant.min_order and quote.totals.subtotal < merchant.min_order:
        raise InvalidArgument(f"Minimum order of ₱{merchant.min_order:g} required")
    if payment_method == PaymentMethod.WALLET:
        ensure_wallet_covers(db, user.user_id, quote.totals.total)

    contact_name = contact_name or user.display_name
    contact_phone = contact_phone or user.phone
    if not contact_phone:
        raise InvalidArgument("A contact phone number is required for delivery")

    order = OrderRecord(
        order_id=new_id("order"),
        customer_id=user.user_id,
        merchant_id=merchant.merchant_id,
        type=quote.order_type,
        items=quote.items,
        subtotal=quote.totals.subtotal,
        delivery_fee=quote.totals.delivery_fee,
        service_fee=quote.totals.service_fee,
        discount=quote.totals.discount,
        total=quote.totals.total,
        delivery_address=DeliveryAddress(
            address=address,
            coordinates=coordinates,
            contact_name=contact_name,
            contact_phone=contact_phone,
            details=address_details,
        ),
        payment_method=payment_method,
        notes=notes,
        promo_code=quote.promo.code if quote.promo else None,
        scheduled_at=scheduled_at,
    )
    with db.transaction() as tx:
        if quote.promo is not None:
            redeem_promo(tx, quote.promo.promo_id)
        tx.add(collections.ORDERS, order)

    logger.info(
        "[%s] Placed %s order at %s for %s, total %.2f",
        order.order_id,
        order.type,
        merchant.merchant_id,
        user.user_id,
        order.total,
    )
    _emit(queue, order, None)
    return order


def get_order(db: DbClient, order_id: str, user: UserRecord) -> OrderRecord:
    """An order as seen by its customer, its driver, the store owner or an admin."""
    order = db.get(collections.ORDERS, order_id)
    if order is None:
        raise NotFound("Order not found")
    if user.user_id in (order.customer_id, order.driver_id) or user.role == UserRole.ADMIN:
        return order
    merchant = db.get(collections.MERCHANTS, order.merchant_id)
    if merchant is not None and merchant.owner_id == user.user_id:
        return order
    raise PermissionDenied("Not your order")


def watch_order(
    db: DbClient,
    order_id: str,
    user: UserRecord,
    *,
    since_version: int,
    timeout: float = 25.0,
) -> tuple[OrderRecord, bool]:
    get_order(db, order_id, user)
    return wait_for_change(
        lambda: db.get(collections.ORDERS, order_id), since_version, timeout
    )


def list_orders(
    db: DbClient,
    user_id: str,
    *,
    status: Optional[OrderStatus] = None,
    active_only: bool = False,
    limit: int = 20,
) -> list[OrderRecord]:
    where: dict = {"customer_id": user_id}
    if status is not None:
        where["status"] = status
    elif active_only:
        where["status"] = list(lifecycle.ACTIVE_ORDER_STATUSES)
    return db.find(collections.ORDERS, where, limit=limit)


def cancel_order(
    db: DbClient,
    queue: EventQueue,
    order_id: str,
    user: UserRecord,
    reason: Optional[str] = None,
) -> OrderRecord:
    with db.transaction() as tx:
        order = tx.get(collections.ORDERS, order_id)
        if order is None:
            raise NotFound("Order not found")
        if order.customer_id != user.user_id:
            raise PermissionDenied("Not your order")
        if not lifecycle.can_cancel_order(order.status, CancelledBy.CUSTOMER):
            raise FailedPrecondition("This order cannot be cancelled")
        before = order.status
        changes = lifecycle.order_transition_changes(
            order.status,
            OrderStatus.CANCELLED,
            cancelled_by=CancelledBy.CUSTOMER,
            cancellation_reason=reason,
        )
        changes.update(refund_if_paid(tx, order))
        order = tx.update(collections.ORDERS, order_id, changes)

    logger.info("[%s] Cancelled by customer", order_id)
    _emit(queue, order, before)
    return order


def rate_order(
    db: DbClient,
    queue: EventQueue,
    order_id: str,
    user: UserRecord,
    rating: int,
    review: Optional[str] = None,
) -> OrderRecord:
    if not 1 <= rating <= 5:
        raise InvalidArgument("Rating must be between 1 and 5")
    with db.transaction() as tx:
        order = tx.get(collections.ORDERS, order_id)
        if order is None:
            raise NotFound("Order not found")
        if order.customer_id != user.user_id:
            raise PermissionDenied("Not your order")
        if order.status != OrderStatus.DELIVERED:
            raise FailedPrecondition("Only delivered orders can be rated")
        before = order.status
        order = tx.update(
            collections.ORDERS,
            order_id,
            lifecycle.order_transition_changes(
                order.status, OrderStatus.COMPLETED, rating=rating, review=review
            ),
        )
        merchant = tx.get(collections.MERCHANTS, order.merchant_id)
        if merchant is not None:
            count = merchant.review_count + 1
            average = (merchant.rating * merchant.review_count + rating) / count
            tx.update(
                collections.MERCHANTS,
                merchant.merchant_id,
                {"rating": round(average, 2), "review_count": count},
            )
    _emit(queue, order, before)
    return order


def _requested_from(item: OrderItem) -> RequestedItem:
    options: dict = defaultdict(list)
    for option in item.options:
        options[option.name].append(option.choice)
    return RequestedItem(
        product_id=item.product_id,
        quantity=item.quantity,
        options={
            name: choices[0] if len(choices) == 1 else choices
            for name, choices in options.items()
        },
        addons=[addon.name for addon in item.addons],
        special_instructions=item.special_instructions,
    )


def reorder(
    db: DbClient,
    order_id: str,
    user: UserRecord,
    *,
    service_fee_rate: float = 0.05,
) -> OrderQuote:
    """Price a past order's items against today's menu, dropping what is gone."""
    previous = db.get(collections.ORDERS, order_id)
    if previous is None:
        raise NotFound("Order not found")
    if previous.customer_id != user.user_id:
        raise PermissionDenied("Not your order")
    merchant = _listed_merchant(db, previous.merchant_id)
    menu = _menu(db, merchant.merchant_id)

    items: list[OrderItem] = []
    unavailable: list[str] = []
    for old in previous.items:
        try:
            items.extend(
                price_order_items(merchant.merchant_id, menu, [_requested_from(old)])
            )
        except InvalidArgument:
            unavailable.append(old.name)
    if not items:
        raise FailedPrecondition("None of the items from this order are available")

    quote = _quote(db, merchant, items, None, service_fee_rate)
    quote.unavailable = unavailable
    return quote


# Merchant --------------------------------------------------------------------


def merchant_orders(
    db: DbClient,
    merchant: MerchantRecord,
    *,
    statuses: Optional[list[OrderStatus]] = None,
    limit: int = 50,
) -> list[OrderRecord]:
    where: dict = {"merchant_id": merchant.merchant_id}
    if statuses:
        where["status"] = list(statuses)
    return db.find(collections.ORDERS, where, limit=limit)


def pending_order_count(db: DbClient, merchant: MerchantRecord) -> int:
    return len(
        db.find(
            collections.ORDERS,
            {"merchant_id": merchant.merchant_id, "status": OrderStatus.PENDING},
        )
    )


def _merchant_move(
    db: DbClient,
    queue: EventQueue,
    merchant: MerchantRecord,
    order_id: str,
    target: OrderStatus,
    **extra,
) -> OrderRecord:
    with db.transaction() as tx:
        order = tx.get(collections.ORDERS, order_id)
        if order is None:
            raise NotFound("Order not found")
        if order.merchant_id != merchant.merchant_id:
            raise PermissionDenied("This order belongs to another store")
        if target == OrderStatus.CANCELLED and not lifecycle.can_cancel_order(
            order.status, CancelledBy.MERCHANT
        ):
            raise FailedPrecondition("This order cannot be cancelled")
        before = order.status
        changes = lifecycle.order_transition_changes(order.status, target, **extra)
        if target == OrderStatus.CANCELLED:
            changes.update(refund_if_paid(tx, order))
        order = tx.update(collections.ORDERS, order_id, changes)

    logger.info("[%s] %s -> %s by merchant %s", order_id, before, target, merchant.merchant_id)
    _emit(queue, order, before)
    return order


def accept_order(db: DbClient, queue: EventQueue, merchant: MerchantRecord, order_id: str) -> OrderRecord:
    return _merchant_move(db, queue, merchant, order_id, OrderStatus.CONFIRMED)


def reject_order(
    db: DbClient,
    queue: EventQueue,
    merchant: MerchantRecord,
    order_id: str,
    reason: str,
) -> OrderRecord:
    return _merchant_move(
        db,
        queue,
        merchant,
        order_id,
        OrderStatus.CANCELLED,
        cancelled_by=CancelledBy.MERCHANT,
        cancellation_reason=reason,
    )


def start_preparing(db: DbClient, queue: EventQueue, merchant: MerchantRecord, order_id: str) -> OrderRecord:
    return _merchant_move(db, queue, merchant, order_id, OrderStatus.PREPARING)


def mark_ready(db: DbClient, queue: EventQueue, merchant: MerchantRecord, order_id: str) -> OrderRecord:
    return _merchant_move(db, queue, merchant, order_id, OrderStatus.READY)


# Driver delivery -------------------------------------------------------------


def available_deliveries(db: DbClient, *, limit: int = 20) -> list[OrderRecord]:
    """Ready orders waiting for a driver, longest waiting first."""
    return db.find(
        collections.ORDERS,
        {"status": OrderStatus.READY, "driver_id": None},
        limit=limit,
        oldest_first=True,
    )


def _release_driver(tx: DbClient, driver_id: str, **counters) -> None:
    driver = tx.get(collections.DRIVERS, driver_id)
    if driver is None:
        return
    changes = {"current_order_id": None}
    if driver.status == DriverStatus.BUSY and not driver.current_ride_id:
        changes["status"] = DriverStatus.ONLINE
    for field_name, amount in counters.items():
        changes[field_name] = round(getattr(driver, field_name) + amount, 2)
    tx.update(collections.DRIVERS, driver_id, changes)


def accept_delivery(db: DbClient, queue: EventQueue, driver_id: str, order_id: str) -> OrderRecord:
    with db.transaction() as tx:
        driver = tx.get(collections.DRIVERS, driver_id)
        if driver is None:
            raise NotFound("Driver profile not found")
        if not driver.verified:
            raise FailedPrecondition("Your driver account has not been approved yet")
        if driver.is_suspended():
            raise PermissionDenied("Your driver account is suspended")
        if (
            driver.status != DriverStatus.ONLINE
            or driver.current_ride_id
            or driver.current_order_id
        ):
            raise FailedPrecondition("Go online and finish your current trip first")
        order = tx.get(collections.ORDERS, order_id)
        if order is None:
            raise NotFound("Order not found")
        if order.status != OrderStatus.READY or order.driver_id:
            raise Aborted("This delivery is no longer available")

        order = tx.update(
            collections.ORDERS,
            order_id,
            lifecycle.order_transition_changes(
                order.status, OrderStatus.PICKED_UP, driver_id=driver_id
            ),
        )
        tx.update(
            collections.DRIVERS,
            driver_id,
            {
                "status": DriverStatus.BUSY,
                "current_order_id": order_id,
                "requests_seen": driver.requests_seen + 1,
                "requests_accepted": driver.requests_accepted + 1,
            },
        )

    logger.info("[%s] Picked up by driver %s", order_id, driver_id)
    _emit(queue, order, OrderStatus.READY)
    return order


def _assigned_order(tx: DbClient, driver_id: str, order_id: str) -> OrderRecord:
    order = tx.get(collections.ORDERS, order_id)
    if order is None:
        raise NotFound("Order not found")
    if order.driver_id != driver_id:
        raise PermissionDenied("This delivery is not assigned to you")
    return order


def mark_on_the_way(db: DbClient, queue: EventQueue, driver_id: str, order_id: str) -> OrderRecord:
    with db.transaction() as tx:
        order = _assigned_order(tx, driver_id, order_id)
        before = order.status
        order = tx.update(
            collections.ORDERS,
            order_id,
            lifecycle.order_transition_changes(order.status, OrderStatus.ON_THE_WAY),
        )
    _emit(queue, order, before)
    return order


def complete_delivery(db: DbClient, queue: EventQueue, driver_id: str, order_id: str) -> OrderRecord:
    with db.transaction() as tx:
        order = _assigned_order(tx, driver_id, order_id)
        before = order.status
        changes = lifecycle.order_transition_changes(order.status, OrderStatus.DELIVERED)
        changes.update(settle_on_completion(tx, order))
        order = tx.update(collections.ORDERS, order_id, changes)
        merchant = tx.get(collections.MERCHANTS, order.merchant_id)
        if merchant is not None:
            tx.update(
                collections.MERCHANTS,
                merchant.merchant_id,
                {"total_orders": merchant.total_orders + 1},
            )
        _release_driver(
            tx, driver_id, total_deliveries=1, total_earnings=order.delivery_fee
        )

    logger.info(
        "[%s] Delivered by %s, payment %s", order_id, driver_id, order.payment_status
    )
    _emit(queue, order, before)
    return order


def cancel_delivery(
    db: DbClient,
    queue: EventQueue,
    driver_id: str,
    order_id: str,
    reason: Optional[str] = None,
) -> OrderRecord:
    """The driver gives the order back; it returns to ``ready`` for another driver."""
    with db.transaction() as tx:
        order = _assigned_order(tx, driver_id, order_id)
        if order.status not in lifecycle.DELIVERY_STATUSES:
            raise FailedPrecondition("This delivery can no longer be cancelled")
        before = order.status
        order = tx.update(
            collections.ORDERS,
            order_id,
            lifecycle.order_transition_changes(
                order.status,
                OrderStatus.READY,
                driver_id=None,
                driver_cancel_reason=reason,
            ),
        )
        _release_driver(tx, driver_id, cancellations=1)

    logger.info("[%s] Delivery dropped by driver %s", order_id, driver_id)
    _emit(queue, order, before)
    return order


def active_delivery(db: DbClient, driver_id: str) -> Optional[OrderRecord]:
    driver = get_driver(db, driver_id)
    if not driver.current_order_id:
        return None
    return db.get(collections.ORDERS, driver.current_order_id)
