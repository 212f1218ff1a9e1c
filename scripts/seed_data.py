"""
Seed sample merchants, menus, test drivers and promo codes for local development.

Runs against whatever database the API is configured for (DATABASE_URL or the
in-memory fallback), so point it at a dev database, never production.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from gogo import db as collections
from gogo.db import DuplicateDocument
from gogo.dependencies import get_db_client
from gogo.records import (
    DriverLicense,
    DriverRecord,
    GeoPoint,
    MerchantRecord,
    OperatingHours,
    ProductAddon,
    ProductChoice,
    ProductOption,
    ProductRecord,
    PromoRecord,
    Vehicle,
    now_ts,
)
from gogo.types import (
    ApplicationStatus,
    DriverStatus,
    MerchantType,
    PromoType,
    ServiceType,
    VehicleType,
)

logger = logging.getLogger(__name__)


def _hours(open_: str, close: str) -> list[OperatingHours]:
    return [OperatingHours(day, open_, close) for day in range(7)]


def sample_merchants() -> list[MerchantRecord]:
    return [
        MerchantRecord(
            merchant_id="merchant-001",
            owner_id="seed-owner-001",
            name="Jollibee - SM Mall of Asia",
            type=MerchantType.RESTAURANT,
            address="SM Mall of Asia, Pasay City",
            coordinates=GeoPoint(14.5351, 120.9821),
            phone="+639171234567",
            email="jollibee.moa@example.com",
            description="The most famous Filipino fast food chain",
            categories=["Fast Food", "Filipino", "Chicken"],
            operating_hours=_hours("06:00", "22:00"),
            delivery_fee=39,
            min_order=99,
            estimated_delivery="20-30 min",
            rating=4.5,
            review_count=2500,
            is_open=True,
            is_featured=True,
            verified=True,
            application_status=ApplicationStatus.APPROVED,
        ),
        MerchantRecord(
            merchant_id="merchant-002",
            owner_id="seed-owner-002",
            name="Mang Inasal - Makati",
            type=MerchantType.RESTAURANT,
            address="Glorietta 4, Makati City",
            coordinates=GeoPoint(14.5514, 121.0245),
            phone="+639181234567",
            email="manginasal.makati@example.com",
            description="Unlimited rice with grilled chicken",
            categories=["Filipino", "BBQ", "Chicken"],
            operating_hours=_hours("10:00", "21:00"),
            delivery_fee=49,
            min_order=150,
            estimated_delivery="25-35 min",
            rating=4.3,
            review_count=1800,
            is_open=True,
            is_featured=True,
            verified=True,
            application_status=ApplicationStatus.APPROVED,
        ),
        MerchantRecord(
            merchant_id="merchant-003",
            owner_id="seed-owner-003",
            name="SM Supermarket - BGC",
            type=MerchantType.GROCERY,
            address="SM Aura Premier, BGC, Taguig",
            coordinates=GeoPoint(14.5454, 121.0541),
            phone="+639191234567",
            description="Fresh groceries and daily essentials",
            categories=["Supermarket"],
            operating_hours=_hours("08:00", "22:00"),
            delivery_fee=59,
            min_order=300,
            estimated_delivery="45-60 min",
            rating=4.4,
            review_count=950,
            is_open=True,
            verified=True,
            application_status=ApplicationStatus.APPROVED,
        ),
        MerchantRecord(
            merchant_id="merchant-004",
            owner_id="seed-owner-004",
            name="Mercury Drug - Ortigas",
            type=MerchantType.PHARMACY,
            address="Robinsons Galleria, Ortigas",
            coordinates=GeoPoint(14.5896, 121.0597),
            phone="+639201234567",
            description="Medicines and health essentials",
            categories=["Pharmacy", "Health"],
            operating_hours=_hours("07:00", "23:00"),
            delivery_fee=49,
            estimated_delivery="30-45 min",
            rating=4.6,
            review_count=600,
            is_open=True,
            verified=True,
            application_status=ApplicationStatus.APPROVED,
        ),
    ]


def sample_products() -> list[ProductRecord]:
    size = ProductOption(
        name="Size",
        choices=[ProductChoice("Regular", 0), ProductChoice("Large", 30)],
        required=True,
    )
    drink = ProductOption(
        name="Drink",
        choices=[ProductChoice("Coke", 0), ProductChoice("Iced Tea", 0), ProductChoice("Pineapple Juice", 15)],
    )
    return [
        ProductRecord(
            product_id="product-001",
            merchant_id="merchant-001",
            name="Chickenjoy 1pc with Rice",
            price=99,
            category="Chicken",
            description="Crispylicious, juicylicious fried chicken",
            options=[drink],
            addons=[ProductAddon("Extra Gravy", 15), ProductAddon("Extra Rice", 25)],
            is_featured=True,
            preparation_time=10,
        ),
        ProductRecord(
            product_id="product-002",
            merchant_id="merchant-001",
            name="Jolly Spaghetti",
            price=65,
            category="Pasta",
            options=[size],
            preparation_time=8,
        ),
        ProductRecord(
            product_id="product-003",
            merchant_id="merchant-001",
            name="Yumburger",
            price=45,
            sale_price=39,
            category="Burgers",
            addons=[ProductAddon("Cheese", 12)],
        ),
        ProductRecord(
            product_id="product-004",
            merchant_id="merchant-002",
            name="Paa Large Meal",
            price=179,
            category="Chicken Inasal",
            description="Grilled chicken leg with unlimited rice",
            addons=[ProductAddon("Java Rice", 20)],
            is_featured=True,
        ),
        ProductRecord(
            product_id="product-005",
            merchant_id="merchant-002",
            name="Pork BBQ 2pcs",
            price=129,
            category="BBQ",
        ),
        ProductRecord(
            product_id="product-006",
            merchant_id="merchant-003",
            name="Fresh Milk 1L",
            price=95,
            category="Dairy",
        ),
        ProductRecord(
            product_id="product-007",
            merchant_id="merchant-003",
            name="Jasmine Rice 5kg",
            price=320,
            category="Rice & Grains",
        ),
        ProductRecord(
            product_id="product-008",
            merchant_id="merchant-004",
            name="Paracetamol 500mg (10 tablets)",
            price=45,
            category="Medicine",
        ),
    ]


def sample_drivers() -> list[DriverRecord]:
    fleet = [
        ("test_driver_motorcycle_001", "Juan", "Dela Cruz", VehicleType.MOTORCYCLE,
         Vehicle("Honda", "Click 125i", 2023, "Red", "ABC 1234"), GeoPoint(14.5995, 120.9842)),
        ("test_driver_car_001", "Maria", "Santos", VehicleType.CAR,
         Vehicle("Toyota", "Vios", 2022, "White", "NCR 5678"), GeoPoint(14.5547, 121.0244)),
        ("test_driver_van_001", "Pedro", "Reyes", VehicleType.VAN,
         Vehicle("Toyota", "Hiace", 2021, "Silver", "VAN 9012"), GeoPoint(14.5764, 121.0851)),
        ("test_driver_delivery_001", "Ana", "Garcia", VehicleType.DELIVERY,
         Vehicle("Yamaha", "Mio", 2023, "Blue", "DLV 3456"), GeoPoint(14.5351, 120.9821)),
    ]
    drivers = []
    for index, (driver_id, first, last, vehicle_type, vehicle, location) in enumerate(fleet, start=1):
        drivers.append(
            DriverRecord(
                driver_id=driver_id,
                user_id=driver_id,
                first_name=first,
                last_name=last,
                phone=f"+63917000{index:04d}",
                vehicle_type=vehicle_type,
                vehicle=vehicle,
                license=DriverLicense(number=f"N01-12-{index:06d}"),
                status=DriverStatus.ONLINE,
                current_location=location,
                rating=4.8,
                verified=True,
                application_status=ApplicationStatus.APPROVED,
                verified_at=now_ts(),
            )
        )
    return drivers


def sample_promos() -> list[PromoRecord]:
    now = now_ts()
    quarter = 90 * 86400
    return [
        PromoRecord(
            promo_id="promo-welcome",
            code="WELCOME50",
            type=PromoType.FIXED,
            value=50,
            valid_from=now,
            valid_to=now + quarter,
            title="Welcome to GOGO",
            description="₱50 off your first booking",
            min_order=150,
        ),
        PromoRecord(
            promo_id="promo-food20",
            code="FOOD20",
            type=PromoType.PERCENTAGE,
            value=20,
            valid_from=now,
            valid_to=now + quarter,
            title="20% off food",
            max_discount=100,
            applicable_services=[ServiceType.FOOD],
        ),
        PromoRecord(
            promo_id="promo-freedel",
            code="FREEDEL",
            type=PromoType.FREE_DELIVERY,
            value=0,
            valid_from=now,
            valid_to=now + quarter,
            title="Free delivery",
            applicable_services=[ServiceType.FOOD, ServiceType.GROCERY, ServiceType.PHARMACY],
            usage_limit=1000,
        ),
    ]


def seed(db, *, reset: bool = False) -> int:
    """Write the sample documents. Existing documents are kept unless ``reset``."""
    batches = (
        (collections.MERCHANTS, sample_merchants()),
        (collections.PRODUCTS, sample_products()),
        (collections.DRIVERS, sample_drivers()),
        (collections.PROMOS, sample_promos()),
    )
    written = 0
    for kind, records in batches:
        key_field = collections.COLLECTIONS[kind].key_field
        for record in records:
            key = getattr(record, key_field)
            if reset:
                db.delete(kind, key)
            try:
                db.add(kind, record)
            except DuplicateDocument:
                logger.info("Skipping existing %s/%s", kind, key)
                continue
            written += 1
        logger.info("Seeded %s", kind)
    return written


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed development data")
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Replace sample documents that already exist",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    written = seed(get_db_client(), reset=args.reset)
    logger.info("Wrote %d documents", written)
    return 0


if __name__ == "__main__":
    sys.exit(main())
