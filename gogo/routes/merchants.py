"""
Merchant discovery and the merchant portal.

Portal endpoints act on the caller's own store; admins pass ``merchant_id``
to act on any store.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from gogo import accounts, catalog, orders
from gogo.config import get_settings
from gogo.db import DbClient
from gogo.dependencies import get_current_user, get_db_client, get_queue_client
from gogo.errors import NotFound
from gogo.queue import EventQueue
from gogo.records import (
    GeoPoint,
    MerchantRecord,
    OperatingHours,
    ProductAddon,
    ProductOption,
    UserRecord,
    load_record,
)
from gogo.schemas import (
    CountResponse,
    MerchantApplicationRequest,
    MerchantDetailResponse,
    MerchantListResponse,
    MerchantResponse,
    OrderListResponse,
    OrderResponse,
    ProductListResponse,
    ProductRequest,
    ProductResponse,
    ProductUpdateRequest,
    RejectRequest,
    StatsResponse,
    StatusResponse,
    StoreUpdateRequest,
)
from gogo.types import MerchantType, OrderStatus

router = APIRouter(prefix="/merchants", tags=["merchants"])


def get_portal_merchant(
    merchant_id: Optional[str] = Query(None),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
) -> MerchantRecord:
    return catalog.owned_merchant(db, user, merchant_id)


def _product_fields(data: dict) -> dict:
    if data.get("options") is not None:
        data["options"] = [load_record(ProductOption, o) for o in data["options"]]
    if data.get("addons") is not None:
        data["addons"] = [load_record(ProductAddon, a) for a in data["addons"]]
    return data


# Discovery -------------------------------------------------------------------


@router.get("", response_model=MerchantListResponse)
def list_merchants(
    type: Optional[MerchantType] = None,
    category: Optional[str] = None,
    is_open: Optional[bool] = None,
    is_featured: Optional[bool] = None,
    limit: int = Query(50, ge=1, le=100),
    db: DbClient = Depends(get_db_client),
):
    found = catalog.list_merchants(
        db,
        type=type,
        category=category,
        is_open=is_open,
        is_featured=is_featured,
        limit=limit,
    )
    return MerchantListResponse(merchants=[m.as_dict() for m in found])


@router.get("/search", response_model=MerchantListResponse)
def search(
    q: str = Query(..., min_length=1, max_length=100),
    type: Optional[MerchantType] = None,
    limit: int = Query(20, ge=1, le=100),
    db: DbClient = Depends(get_db_client),
):
    found = catalog.search_merchants(db, q, type=type, limit=limit)
    return MerchantListResponse(merchants=[m.as_dict() for m in found])


@router.get("/nearby", response_model=MerchantListResponse)
def nearby(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    radius_km: float = Query(5.0, gt=0, le=50),
    type: Optional[MerchantType] = None,
    limit: int = Query(20, ge=1, le=100),
    db: DbClient = Depends(get_db_client),
):
    found = catalog.nearby_merchants(
        db, latitude, longitude, radius_km=radius_km, type=type, limit=limit
    )
    return MerchantListResponse(
        merchants=[{**m.as_dict(), "distance_km": km} for m, km in found]
    )


@router.post("/apply", response_model=MerchantResponse, status_code=201)
def apply(
    payload: MerchantApplicationRequest,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    optional = {}
    if payload.delivery_fee is not None:
        optional["delivery_fee"] = payload.delivery_fee
    merchant = accounts.register_merchant(
        db,
        user,
        name=payload.name,
        type=payload.type,
        address=payload.address,
        coordinates=load_record(GeoPoint, payload.coordinates.model_dump()),
        phone=payload.phone,
        email=payload.email,
        description=payload.description,
        categories=payload.categories,
        min_order=payload.min_order,
        auto_approve=get_settings().auto_approve_merchants,
        **optional,
    )
    return MerchantResponse(merchant=merchant.as_dict())


# Portal ----------------------------------------------------------------------


@router.get("/me", response_model=MerchantResponse)
def get_mine(merchant: MerchantRecord = Depends(get_portal_merchant)):
    return MerchantResponse(merchant=merchant.as_dict())


@router.patch("/me", response_model=MerchantResponse)
def update_store(
    payload: StoreUpdateRequest,
    merchant: MerchantRecord = Depends(get_portal_merchant),
    db: DbClient = Depends(get_db_client),
):
    changes = payload.model_dump(exclude_none=True)
    if "coordinates" in changes:
        changes["coordinates"] = load_record(GeoPoint, changes["coordinates"])
    if "operating_hours" in changes:
        changes["operating_hours"] = [
            load_record(OperatingHours, h) for h in changes["operating_hours"]
        ]
    updated = catalog.update_store(db, merchant, **changes)
    return MerchantResponse(merchant=updated.as_dict())


@router.get("/me/products", response_model=ProductListResponse)
def my_products(
    merchant: MerchantRecord = Depends(get_portal_merchant),
    db: DbClient = Depends(get_db_client),
):
    found = catalog.list_products(db, merchant.merchant_id, include_unavailable=True)
    return ProductListResponse(products=[p.as_dict() for p in found])


@router.post("/me/products", response_model=ProductResponse, status_code=201)
def add_product(
    payload: ProductRequest,
    merchant: MerchantRecord = Depends(get_portal_merchant),
    db: DbClient = Depends(get_db_client),
):
    product = catalog.add_product(db, merchant, **_product_fields(payload.model_dump()))
    return ProductResponse(product=product.as_dict())


@router.patch("/me/products/{product_id}", response_model=ProductResponse)
def update_product(
    product_id: str,
    payload: ProductUpdateRequest,
    merchant: MerchantRecord = Depends(get_portal_merchant),
    db: DbClient = Depends(get_db_client),
):
    changes = _product_fields(payload.model_dump(exclude_none=True))
    product = catalog.update_product(db, merchant, product_id, **changes)
    return ProductResponse(product=product.as_dict())


@router.post("/me/products/{product_id}/toggle", response_model=ProductResponse)
def toggle_product(
    product_id: str,
    merchant: MerchantRecord = Depends(get_portal_merchant),
    db: DbClient = Depends(get_db_client),
):
    product = catalog.toggle_product(db, merchant, product_id)
    return ProductResponse(product=product.as_dict())


@router.delete("/me/products/{product_id}", response_model=StatusResponse)
def delete_product(
    product_id: str,
    merchant: MerchantRecord = Depends(get_portal_merchant),
    db: DbClient = Depends(get_db_client),
):
    catalog.delete_product(db, merchant, product_id)
    return StatusResponse(status="ok")


@router.get("/me/orders", response_model=OrderListResponse)
def my_orders(
    status: Optional[list[OrderStatus]] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    merchant: MerchantRecord = Depends(get_portal_merchant),
    db: DbClient = Depends(get_db_client),
):
    found = orders.merchant_orders(db, merchant, statuses=status, limit=limit)
    return OrderListResponse(orders=[o.as_dict() for o in found])


@router.get("/me/orders/pending-count", response_model=CountResponse)
def pending_count(
    merchant: MerchantRecord = Depends(get_portal_merchant),
    db: DbClient = Depends(get_db_client),
):
    return CountResponse(count=orders.pending_order_count(db, merchant))


@router.post("/me/orders/{order_id}/accept", response_model=OrderResponse)
def accept_order(
    order_id: str,
    merchant: MerchantRecord = Depends(get_portal_merchant),
    db: DbClient = Depends(get_db_client),
    queue: EventQueue = Depends(get_queue_client),
):
    order = orders.accept_order(db, queue, merchant, order_id)
    return OrderResponse(order=order.as_dict())


@router.post("/me/orders/{order_id}/reject", response_model=OrderResponse)
def reject_order(
    order_id: str,
    payload: RejectRequest,
    merchant: MerchantRecord = Depends(get_portal_merchant),
    db: DbClient = Depends(get_db_client),
    queue: EventQueue = Depends(get_queue_client),
):
    order = orders.reject_order(db, queue, merchant, order_id, payload.reason)
    return OrderResponse(order=order.as_dict())


@router.post("/me/orders/{order_id}/preparing", response_model=OrderResponse)
def start_preparing(
    order_id: str,
    merchant: MerchantRecord = Depends(get_portal_merchant),
    db: DbClient = Depends(get_db_client),
    queue: EventQueue = Depends(get_queue_client),
):
    order = orders.start_preparing(db, queue, merchant, order_id)
    return OrderResponse(order=order.as_dict())


@router.post("/me/orders/{order_id}/ready", response_model=OrderResponse)
def mark_ready(
    order_id: str,
    merchant: MerchantRecord = Depends(get_portal_merchant),
    db: DbClient = Depends(get_db_client),
    queue: EventQueue = Depends(get_queue_client),
):
    order = orders.mark_ready(db, queue, merchant, order_id)
    return OrderResponse(order=order.as_dict())


@router.get("/me/stats", response_model=StatsResponse)
def stats(
    since: Optional[float] = None,
    merchant: MerchantRecord = Depends(get_portal_merchant),
    db: DbClient = Depends(get_db_client),
):
    return StatsResponse(stats=catalog.merchant_stats(db, merchant, since=since))


# Storefront ------------------------------------------------------------------


@router.get("/{merchant_id}", response_model=MerchantDetailResponse)
def detail(merchant_id: str, db: DbClient = Depends(get_db_client)):
    merchant, menu = catalog.merchant_detail(db, merchant_id)
    return MerchantDetailResponse(
        merchant=merchant.as_dict(),
        menu={
            category: [p.as_dict() for p in products]
            for category, products in menu.items()
        },
    )


@router.get("/{merchant_id}/products/{product_id}", response_model=ProductResponse)
def get_product(
    merchant_id: str, product_id: str, db: DbClient = Depends(get_db_client)
):
    product = catalog.get_product(db, product_id)
    if product.merchant_id != merchant_id:
        raise NotFound("Product not found")
    return ProductResponse(product=product.as_dict())
