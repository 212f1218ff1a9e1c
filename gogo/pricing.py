"""
Fares, surge, discounts and cart totals.

All amounts are pesos. Rounding is half-up to whole pesos, matching what the
apps display.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from gogo.errors import InvalidArgument
from gogo.records import (
    GeoPoint,
    OrderItem,
    ProductRecord,
    PromoRecord,
    RideFare,
    RouteInfo,
    SelectedAddon,
    SelectedOption,
)
from gogo.types import PromoType, VehicleType

EARTH_RADIUS_M = 6371e3
ROAD_DISTANCE_FACTOR = 1.3
AVERAGE_SPEED_KPH = 25.0

PEAK_HOURS = ((6, 9), (17, 20))
PEAK_MULTIPLIER = 1.25
WEEKEND_MULTIPLIER = 1.1


@dataclass(frozen=True)
class VehicleTypeInfo:
    type: VehicleType
    name: str
    description: str
    base_fare: float
    per_km: float
    per_minute: float
    min_fare: float
    capacity: int
    estimated_arrival: str

    def as_dict(self) -> dict:
        return {
            "type": self.type.value,
            "name": self.name,
            "description": self.description,
            "base_fare": self.base_fare,
            "per_km": self.per_km,
            "per_minute": self.per_minute,
            "min_fare": self.min_fare,
            "capacity": self.capacity,
            "estimated_arrival": self.estimated_arrival,
        }


VEHICLE_TYPES = {
    info.type: info
    for info in (
        VehicleTypeInfo(VehicleType.MOTORCYCLE, "MC Taxi", "Affordable motorcycle ride", 40, 10, 1, 50, 1, "3-5 min"),
        VehicleTypeInfo(VehicleType.CAR, "Car", "Comfortable 4-seater", 60, 15, 2, 80, 4, "5-8 min"),
        VehicleTypeInfo(VehicleType.VAN, "Van", "Spacious for groups", 100, 20, 3, 150, 8, "8-12 min"),
        VehicleTypeInfo(VehicleType.DELIVERY, "Delivery", "Send packages", 50, 12, 1, 60, 0, "5-10 min"),
        VehicleTypeInfo(VehicleType.HAPPY_MOVE, "Happy Move", "Moving & hauling", 300, 25, 5, 500, 0, "15-25 min"),
        VehicleTypeInfo(VehicleType.AIRPORT, "Airport", "Airport transfer", 500, 0, 0, 500, 4, "10-15 min"),
    )
}


def round_half_up(value: float) -> float:
    return float(math.floor(value + 0.5))


def haversine_m(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance between two points in meters."""
    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    d_phi = math.radians(b.latitude - a.latitude)
    d_lambda = math.radians(b.longitude - a.longitude)
    h = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def estimate_route(pickup: GeoPoint, dropoff: GeoPoint) -> RouteInfo:
    """Rough road route for when the app did not send directions."""
    distance = haversine_m(pickup, dropoff) * ROAD_DISTANCE_FACTOR
    duration = distance / (AVERAGE_SPEED_KPH * 1000 / 3600)
    return RouteInfo(distance=round(distance), duration=round(duration), estimated=True)


def surge_multiplier(now: datetime) -> float:
    """Current surge multiplier for a local wall-clock time."""
    multiplier = 1.0
    if any(start <= now.hour < end for start, end in PEAK_HOURS):
        multiplier *= PEAK_MULTIPLIER
    # Saturday and Sunday
    if now.weekday() >= 5:
        multiplier *= WEEKEND_MULTIPLIER
    return round(multiplier, 2)


def calculate_discount(
    promo: Optional[PromoRecord], amount: float, delivery_fee: float = 0.0
) -> float:
    if promo is None:
        return 0.0
    if promo.type == PromoType.PERCENTAGE:
        discount = amount * (promo.value / 100)
        if promo.max_discount:
            discount = min(discount, promo.max_discount)
    elif promo.type == PromoType.FIXED:
        discount = promo.value
    else:
        discount = delivery_fee
    return round_half_up(max(0.0, min(discount, amount + delivery_fee)))


def calculate_fare(
    vehicle_type: VehicleType,
    route: RouteInfo,
    surge: float = 1.0,
    promo: Optional[PromoRecord] = None,
) -> RideFare:
    info = VEHICLE_TYPES[vehicle_type]
    distance_km = route.distance / 1000
    duration_min = route.duration / 60

    distance_fare = distance_km * info.per_km
    time_fare = duration_min * info.per_minute
    subtotal = max(info.base_fare + distance_fare + time_fare, info.min_fare)

    surge_amount = round_half_up(subtotal * (surge - 1)) if surge > 1 else 0.0
    subtotal = round_half_up(subtotal * surge)

    discount = min(calculate_discount(promo, subtotal), subtotal)
    return RideFare(
        base=info.base_fare,
        distance=round(distance_fare, 2),
        time=round(time_fare, 2),
        surge=surge_amount,
        discount=discount,
        total=round_half_up(subtotal - discount),
    )


@dataclass
class RequestedItem:
    product_id: str
    quantity: int
    options: dict  # option name -> choice name, or list of choice names
    addons: list  # addon names
    special_instructions: Optional[str] = None


def _price_item(product: ProductRecord, requested: RequestedItem) -> OrderItem:
    if requested.quantity < 1:
        raise InvalidArgument(f"Invalid quantity for {product.name}")

    selected_options: list[SelectedOption] = []
    known = {option.name: option for option in product.options}
    for name in requested.options:
        if name not in known:
            raise InvalidArgument(f"{product.name} has no option '{name}'")
    for option in product.options:
        picked = requested.options.get(option.name)
        if picked is None or picked == []:
            if option.required:
                raise InvalidArgument(f"Please choose {option.name} for {product.name}")
            continue
        picks = picked if isinstance(picked, list) else [picked]
        if len(picks) > option.max_select:
            raise InvalidArgument(
                f"Choose at most {option.max_select} for {option.name}"
            )
        choices = {choice.name: choice for choice in option.choices}
        for pick in picks:
            if pick not in choices:
                raise InvalidArgument(f"'{pick}' is not a choice for {option.name}")
            selected_options.append(
                SelectedOption(name=option.name, choice=pick, price=choices[pick].price)
            )

    selected_addons: list[SelectedAddon] = []
    addons = {addon.name: addon for addon in product.addons}
    for name in requested.addons:
        addon = addons.get(name)
        if addon is None or not addon.is_available:
            raise InvalidArgument(f"Add-on '{name}' is not available")
        selected_addons.append(SelectedAddon(name=addon.name, price=addon.price))

    unit_price = (
        product.effective_price
        + sum(o.price for o in selected_options)
        + sum(a.price for a in selected_addons)
    )
    return OrderItem(
        product_id=product.product_id,
        name=product.name,
        quantity=requested.quantity,
        price=unit_price,
        total=unit_price * requested.quantity,
        options=selected_options,
        addons=selected_addons,
        special_instructions=requested.special_instructions,
    )


def price_order_items(
    merchant_id: str,
    products: dict[str, ProductRecord],
    requested: Iterable[RequestedItem],
) -> list[OrderItem]:
    """Price requested cart lines against the merchant's current menu."""
    items = []
    for line in requested:
        product = products.get(line.product_id)
        if product is None or product.merchant_id != merchant_id:
            raise InvalidArgument("Item is not on this store's menu")
        if not product.is_available:
            raise InvalidArgument(f"{product.name} is currently unavailable")
        items.append(_price_item(product, line))
    if not items:
        raise InvalidArgument("Your cart is empty")
    return items


@dataclass
class OrderTotals:
    subtotal: float
    delivery_fee: float
    service_fee: float
    discount: float
    total: float

    def as_dict(self) -> dict:
        return {
            "subtotal": self.subtotal,
            "delivery_fee": self.delivery_fee,
            "service_fee": self.service_fee,
            "discount": self.discount,
            "total": self.total,
        }


def order_totals(
    items: Iterable[OrderItem],
    delivery_fee: float,
    service_fee_rate: float,
    promo: Optional[PromoRecord] = None,
) -> OrderTotals:
    subtotal = sum(item.total for item in items)
    service_fee = round_half_up(subtotal * service_fee_rate)
    discount = calculate_discount(promo, subtotal, delivery_fee)
    return OrderTotals(
        subtotal=subtotal,
        delivery_fee=delivery_fee,
        service_fee=service_fee,
        discount=discount,
        total=max(0.0, subtotal + delivery_fee + service_fee - discount),
    )
