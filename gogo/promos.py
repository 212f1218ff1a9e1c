"""
Promo codes: lookup, validation and redemption.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from gogo import db as collections
from gogo.db import DbClient
from gogo.errors import Aborted, InvalidArgument, NotFound
from gogo.pricing import calculate_discount
from gogo.records import PromoRecord, new_id, now_ts
from gogo.types import PromoType, ServiceType

logger = logging.getLogger(__name__)


@dataclass
class PromoCheck:
    valid: bool
    discount: float = 0.0
    promo_id: Optional[str] = None
    message: Optional[str] = None
    promo: Optional[PromoRecord] = None

    def as_dict(self) -> dict:
        return {
            "valid": self.valid,
            "discount": self.discount,
            "promo_id": self.promo_id,
            "message": self.message,
        }


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def find_promo(db: DbClient, code: str) -> Optional[PromoRecord]:
    normalized = normalize_code(code)
    if not normalized:
        return None
    matches = db.find(collections.PROMOS, {"code": normalized}, limit=1)
    return matches[0] if matches else None


def validate_promo(
    db: DbClient,
    code: str,
    amount: float,
    service: ServiceType,
    *,
    delivery_fee: float = 0.0,
    now: Optional[float] = None,
) -> PromoCheck:
    """Check a code against an order amount. Never raises for a bad code."""
    now = now or now_ts()
    promo = find_promo(db, code)
    if promo is None or not promo.is_active:
        return PromoCheck(valid=False, message="Invalid promo code")
    if now < promo.valid_from or now > promo.valid_to:
        return PromoCheck(valid=False, message="This promo code has expired")
    if promo.applicable_services and service not in promo.applicable_services:
        return PromoCheck(valid=False, message="This promo is not valid for this service")
    if promo.min_order and amount < promo.min_order:
        return PromoCheck(
            valid=False, message=f"Minimum order of ₱{promo.min_order:g} required"
        )
    if promo.usage_limit is not None and promo.used_count >= promo.usage_limit:
        return PromoCheck(
            valid=False, message="This promo code has reached its usage limit"
        )
    return PromoCheck(
        valid=True,
        discount=calculate_discount(promo, amount, delivery_fee),
        promo_id=promo.promo_id,
        promo=promo,
    )


def require_promo(
    db: DbClient,
    code: str,
    amount: float,
    service: ServiceType,
    *,
    delivery_fee: float = 0.0,
    now: Optional[float] = None,
) -> PromoRecord:
    check = validate_promo(
        db, code, amount, service, delivery_fee=delivery_fee, now=now
    )
    if not check.valid:
        raise InvalidArgument(check.message or "Invalid promo code")
    return check.promo


def redeem_promo(tx: DbClient, promo_id: str) -> PromoRecord:
    """Count one use of a promo. Call inside the booking's transaction."""
    promo = tx.get(collections.PROMOS, promo_id)
    if promo is None:
        raise NotFound("Promo not found")
    if promo.usage_limit is not None and promo.used_count >= promo.usage_limit:
        raise Aborted("This promo code has reached its usage limit")
    return tx.update(
        collections.PROMOS, promo_id, {"used_count": promo.used_count + 1}
    )


def list_active_promos(
    db: DbClient, *, limit: int = 10, now: Optional[float] = None
) -> list[PromoRecord]:
    now = now or now_ts()
    promos = db.find(collections.PROMOS, {"is_active": True})
    current = [p for p in promos if p.valid_from <= now <= p.valid_to]
    return current[:limit]


def create_promo(
    db: DbClient,
    *,
    code: str,
    type: PromoType,
    value: float,
    valid_from: float,
    valid_to: float,
    title: str = "",
    description: str = "",
    max_discount: Optional[float] = None,
    min_order: Optional[float] = None,
    usage_limit: Optional[int] = None,
    applicable_services: Optional[list[ServiceType]] = None,
    merchant_id: Optional[str] = None,
    image: Optional[str] = None,
) -> PromoRecord:
    normalized = normalize_code(code)
    if not normalized:
        raise InvalidArgument("Promo code is required")
    if value <= 0:
        raise InvalidArgument("Promo value must be positive")
    if type == PromoType.PERCENTAGE and value > 100:
        raise InvalidArgument("Percentage promos cannot exceed 100%")
    if valid_to <= valid_from:
        raise InvalidArgument("Promo must end after it starts")
    if find_promo(db, normalized) is not None:
        raise InvalidArgument(f"Promo code {normalized} already exists")

    promo = PromoRecord(
        promo_id=new_id("promo"),
        code=normalized,
        type=type,
        value=value,
        valid_from=valid_from,
        valid_to=valid_to,
        title=title,
        description=description,
        max_discount=max_discount,
        min_order=min_order,
        usage_limit=usage_limit,
        applicable_services=list(applicable_services or []),
        merchant_id=merchant_id,
        image=image,
    )
    db.add(collections.PROMOS, promo)
    logger.info("[%s] Created promo %s", promo.promo_id, normalized)
    return promo


def set_promo_active(db: DbClient, promo_id: str, is_active: bool) -> PromoRecord:
    promo = db.update(collections.PROMOS, promo_id, {"is_active": is_active})
    if promo is None:
        raise NotFound("Promo not found")
    return promo
