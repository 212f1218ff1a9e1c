"""
Merchant discovery for customers and the store/menu portal for merchants.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from typing import Optional

from gogo import db as collections
from gogo.accounts import get_merchant, merchant_for_owner
from gogo.db import DbClient
from gogo.errors import FailedPrecondition, InvalidArgument, NotFound, PermissionDenied
from gogo.pricing import haversine_m
from gogo.records import (
    GeoPoint,
    MerchantRecord,
    OperatingHours,
    ProductAddon,
    ProductOption,
    ProductRecord,
    UserRecord,
    new_id,
    now_ts,
)
from gogo.types import MerchantStatus, MerchantType, OrderStatus, UserRole

logger = logging.getLogger(__name__)

_STORE_FIELDS = {
    "is_open",
    "name",
    "description",
    "phone",
    "email",
    "address",
    "coordinates",
    "logo",
    "cover_image",
    "categories",
    "operating_hours",
    "delivery_fee",
    "min_order",
    "estimated_delivery",
}

_PRODUCT_FIELDS = {
    "name",
    "description",
    "price",
    "sale_price",
    "image",
    "category",
    "subcategory",
    "options",
    "addons",
    "is_available",
    "is_featured",
    "preparation_time",
    "tags",
}


def is_listed(merchant: MerchantRecord) -> bool:
    return merchant.verified and merchant.status == MerchantStatus.ACTIVE


def list_merchants(
    db: DbClient,
    *,
    type: Optional[MerchantType] = None,
    category: Optional[str] = None,
    is_open: Optional[bool] = None,
    is_featured: Optional[bool] = None,
    limit: int = 50,
) -> list[MerchantRecord]:
    where: dict = {"status": MerchantStatus.ACTIVE, "verified": True}
    if type is not None:
        where["type"] = type
    if is_open is not None:
        where["is_open"] = is_open
    if is_featured is not None:
        where["is_featured"] = is_featured
    merchants = db.find(collections.MERCHANTS, where)
    if category:
        wanted = category.lower()
        merchants = [
            m for m in merchants if wanted in (c.lower() for c in m.categories)
        ]
    merchants.sort(key=lambda m: m.rating, reverse=True)
    return merchants[:limit]


def search_merchants(
    db: DbClient,
    query: str,
    *,
    type: Optional[MerchantType] = None,
    limit: int = 20,
) -> list[MerchantRecord]:
    needle = query.strip().lower()
    if not needle:
        return []
    results = []
    for merchant in list_merchants(db, type=type, limit=1000):
        haystack = [merchant.name, merchant.description, *merchant.categories]
        if any(needle in text.lower() for text in haystack):
            results.append(merchant)
    return results[:limit]


def nearby_merchants(
    db: DbClient,
    latitude: float,
    longitude: float,
    *,
    radius_km: float = 5.0,
    type: Optional[MerchantType] = None,
    limit: int = 20,
) -> list[tuple[MerchantRecord, float]]:
    """Open merchants within ``radius_km``, nearest first, with distance in km."""
    origin = GeoPoint(latitude=latitude, longitude=longitude)
    found = []
    for merchant in list_merchants(db, type=type, is_open=True, limit=1000):
        distance_km = haversine_m(origin, merchant.coordinates) / 1000
        if distance_km <= radius_km:
            found.append((merchant, round(distance_km, 2)))
    found.sort(key=lambda pair: pair[1])
    return found[:limit]


def list_products(
    db: DbClient, merchant_id: str, *, include_unavailable: bool = False
) -> list[ProductRecord]:
    where: dict = {"merchant_id": merchant_id}
    if not include_unavailable:
        where["is_available"] = True
    products = db.find(collections.PRODUCTS, where, oldest_first=True)
    products.sort(key=lambda p: (p.category.lower(), p.name.lower()))
    return products


def merchant_detail(
    db: DbClient, merchant_id: str
) -> tuple[MerchantRecord, dict[str, list[ProductRecord]]]:
    """A listed merchant and its available menu grouped by category."""
    merchant = db.get(collections.MERCHANTS, merchant_id)
    if merchant is None or not is_listed(merchant):
        raise NotFound("Merchant not found")
    menu: dict[str, list[ProductRecord]] = {}
    for product in list_products(db, merchant_id):
        menu.setdefault(product.category, []).append(product)
    return merchant, menu


def get_product(db: DbClient, product_id: str) -> ProductRecord:
    product = db.get(collections.PRODUCTS, product_id)
    if product is None:
        raise NotFound("Product not found")
    return product


# Merchant portal -------------------------------------------------------------


def owned_merchant(db: DbClient, user: UserRecord, merchant_id: Optional[str] = None) -> MerchantRecord:
    """The merchant the caller manages. Admins may act on any merchant."""
    if merchant_id is None:
        merchant = merchant_for_owner(db, user.user_id)
        if merchant is None:
            raise NotFound("No merchant profile for this account")
        return merchant
    merchant = get_merchant(db, merchant_id)
    if merchant.owner_id != user.user_id and user.role != UserRole.ADMIN:
        raise PermissionDenied("You do not manage this merchant")
    return merchant


def _check_hours(hours: list[OperatingHours]) -> None:
    for entry in hours:
        if not 0 <= entry.day <= 6:
            raise InvalidArgument("Operating hours day must be 0-6")
        if not entry.is_closed:
            try:
                opening = time.strptime(entry.open, "%H:%M")
                closing = time.strptime(entry.close, "%H:%M")
            except ValueError:
                raise InvalidArgument("Operating hours must be HH:MM") from None
            if opening == closing:
                raise InvalidArgument("Opening and closing times cannot match")


def update_store(db: DbClient, merchant: MerchantRecord, **changes) -> MerchantRecord:
    unknown = set(changes) - _STORE_FIELDS
    if unknown:
        raise InvalidArgument(f"Cannot update store fields: {', '.join(sorted(unknown))}")
    changes = {k: v for k, v in changes.items() if v is not None}
    if changes.get("is_open") and not is_listed(merchant):
        raise FailedPrecondition("Your store has not been approved yet")
    if changes.get("delivery_fee", 0) < 0 or changes.get("min_order", 0) < 0:
        raise InvalidArgument("Fees cannot be negative")
    if "operating_hours" in changes:
        _check_hours(changes["operating_hours"])
    if not changes:
        return merchant
    updated = db.update(collections.MERCHANTS, merchant.merchant_id, changes)
    if "is_open" in changes:
        logger.info(
            "[%s] Store is now %s",
            merchant.merchant_id,
            "open" if updated.is_open else "closed",
        )
    return updated


def _check_price(price: Optional[float], sale_price: Optional[float]) -> None:
    if price is not None and price < 0:
        raise InvalidArgument("Price cannot be negative")
    if sale_price is not None and sale_price < 0:
        raise InvalidArgument("Sale price cannot be negative")


def add_product(
    db: DbClient,
    merchant: MerchantRecord,
    *,
    name: str,
    price: float,
    category: str,
    description: str = "",
    sale_price: Optional[float] = None,
    image: str = "",
    subcategory: Optional[str] = None,
    options: Optional[list[ProductOption]] = None,
    addons: Optional[list[ProductAddon]] = None,
    is_available: bool = True,
    is_featured: bool = False,
    preparation_time: Optional[int] = None,
    tags: Optional[list[str]] = None,
) -> ProductRecord:
    if not name.strip():
        raise InvalidArgument("Product name is required")
    _check_price(price, sale_price)
    product = ProductRecord(
        product_id=new_id("product"),
        merchant_id=merchant.merchant_id,
        name=name.strip(),
        price=price,
        category=category,
        description=description,
        sale_price=sale_price,
        image=image,
        subcategory=subcategory,
        options=list(options or []),
        addons=list(addons or []),
        is_available=is_available,
        is_featured=is_featured,
        preparation_time=preparation_time,
        tags=list(tags or []),
    )
    db.add(collections.PRODUCTS, product)
    return product


def _owned_product(db: DbClient, merchant: MerchantRecord, product_id: str) -> ProductRecord:
    product = get_product(db, product_id)
    if product.merchant_id != merchant.merchant_id:
        raise PermissionDenied("This product belongs to another merchant")
    return product


def update_product(
    db: DbClient, merchant: MerchantRecord, product_id: str, **changes
) -> ProductRecord:
    unknown = set(changes) - _PRODUCT_FIELDS
    if unknown:
        raise InvalidArgument(f"Cannot update product fields: {', '.join(sorted(unknown))}")
    _owned_product(db, merchant, product_id)
    changes = {k: v for k, v in changes.items() if v is not None}
    _check_price(changes.get("price"), changes.get("sale_price"))
    if not changes:
        return get_product(db, product_id)
    return db.update(collections.PRODUCTS, product_id, changes)


def toggle_product(db: DbClient, merchant: MerchantRecord, product_id: str) -> ProductRecord:
    product = _owned_product(db, merchant, product_id)
    return db.update(
        collections.PRODUCTS, product_id, {"is_available": not product.is_available}
    )


def delete_product(db: DbClient, merchant: MerchantRecord, product_id: str) -> None:
    _owned_product(db, merchant, product_id)
    db.delete(collections.PRODUCTS, product_id)


def merchant_stats(
    db: DbClient, merchant: MerchantRecord, *, since: Optional[float] = None
) -> dict:
    """Order counts by status and revenue, optionally limited to orders since ``since``."""
    orders = db.find(collections.ORDERS, {"merchant_id": merchant.merchant_id})
    if since is not None:
        orders = [o for o in orders if o.created_at >= since]
    counts = Counter(o.status.value for o in orders)
    fulfilled = [
        o for o in orders if o.status in (OrderStatus.DELIVERED, OrderStatus.COMPLETED)
    ]
    revenue = sum(o.subtotal for o in fulfilled)
    rated = [o.rating for o in orders if o.rating]
    return {
        "total_orders": len(orders),
        "orders_by_status": dict(counts),
        "pending_orders": counts.get(OrderStatus.PENDING.value, 0),
        "completed_orders": len(fulfilled),
        "revenue": revenue,
        "average_order_value": round(revenue / len(fulfilled), 2) if fulfilled else 0.0,
        "average_rating": round(sum(rated) / len(rated), 2) if rated else merchant.rating,
        "generated_at": now_ts(),
    }
