import unittest
from unittest.mock import patch

from gogo import accounts, catalog
from gogo import db as collections
from gogo.db import InMemoryDbClient
from gogo.errors import (
    Aborted,
    FailedPrecondition,
    InvalidArgument,
    NotFound,
    PermissionDenied,
)
from gogo.records import (
    DriverLicense,
    GeoPoint,
    OperatingHours,
    UserRecord,
    Vehicle,
)
from gogo.types import (
    ApplicationStatus,
    MerchantStatus,
    MerchantType,
    UserRole,
    VehicleType,
)

MAKATI = GeoPoint(14.5547, 121.0244)


class ProfileTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()

    def test_referral_links_referrer(self):
        referrer, _ = accounts.ensure_user_profile(self.db, "u1", display_name="Ana Reyes")
        user, created = accounts.ensure_user_profile(
            self.db,
            "u2",
            display_name="Ben",
            referral_code=referrer.referral_code.lower(),
        )
        self.assertTrue(created)
        self.assertEqual(user.referred_by, "u1")
        self.assertEqual((user.first_name, user.last_name), ("Ben", ""))

    def test_referral_codes_are_unique(self):
        first, _ = accounts.ensure_user_profile(self.db, "u1")
        with patch(
            "gogo.accounts.generate_referral_code",
            side_effect=[first.referral_code, "GOGOZZZ999"],
        ):
            second, _ = accounts.ensure_user_profile(self.db, "u2")
        self.assertEqual(second.referral_code, "GOGOZZZ999")

        with patch(
            "gogo.accounts.generate_referral_code", return_value=first.referral_code
        ):
            with self.assertRaises(Aborted):
                accounts.ensure_user_profile(self.db, "u3")
        self.assertIsNone(self.db.get(collections.USERS, "u3"))

    def test_role_changes(self):
        user, _ = accounts.ensure_user_profile(self.db, "u1")
        with self.assertRaises(PermissionDenied):
            accounts.set_user_role(self.db, user, "u1", "admin")
        with self.assertRaises(PermissionDenied):
            accounts.set_user_role(self.db, user, "u1", "driver")
        with self.assertRaises(InvalidArgument):
            accounts.set_user_role(self.db, user, "u1", "pilot")
        updated = accounts.set_user_role(
            self.db, user, "u1", "driver", auto_approve_drivers=True
        )
        self.assertEqual(updated.role, UserRole.DRIVER)

        admin = UserRecord(user_id="root", role=UserRole.ADMIN)
        self.assertEqual(
            accounts.set_user_role(self.db, admin, "u1", "customer").role,
            UserRole.CUSTOMER,
        )

    def test_saved_addresses(self):
        accounts.ensure_user_profile(self.db, "u1")
        home = accounts.add_address(
            self.db, "u1", label="Home", address="Salcedo", coordinates=MAKATI, type="home"
        )
        work = accounts.add_address(
            self.db, "u1", label="Work", address="BGC", coordinates=GeoPoint(14.55, 121.05)
        )
        ordered = accounts.set_default_address(self.db, "u1", work.id)
        self.assertEqual([a.id for a in ordered], [work.id, home.id])

        renamed = accounts.update_address(self.db, "u1", home.id, label="Condo")
        self.assertEqual(renamed.label, "Condo")
        self.assertEqual(renamed.address, "Salcedo")
        with self.assertRaises(InvalidArgument):
            accounts.update_address(self.db, "u1", home.id, owner="someone")

        accounts.delete_address(self.db, "u1", home.id)
        self.assertEqual([a.id for a in accounts.list_addresses(self.db, "u1")], [work.id])
        with self.assertRaises(NotFound):
            accounts.delete_address(self.db, "u1", home.id)

    def test_push_token(self):
        accounts.ensure_user_profile(self.db, "u1")
        user = accounts.register_push_token(self.db, "u1", "expo-token")
        self.assertTrue(user.notifications_enabled)
        user = accounts.register_push_token(self.db, "u1", None)
        self.assertFalse(user.notifications_enabled)


class DriverApplicationTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.user, _ = accounts.ensure_user_profile(
            self.db, "u1", phone="0917", display_name="Pedro Santos"
        )

    def _apply(self, **kwargs):
        return accounts.register_driver(
            self.db,
            self.user,
            vehicle_type=VehicleType.MOTORCYCLE,
            vehicle=Vehicle("Honda", "Click", 2022, "Red", "123 ABC"),
            license=DriverLicense(number="N01-23-456789"),
            **kwargs,
        )

    def test_apply_then_approve(self):
        driver = self._apply()
        self.assertFalse(driver.verified)
        self.assertEqual(driver.first_name, "Pedro")
        with self.assertRaises(FailedPrecondition):
            self._apply()

        approved = accounts.approve_driver(self.db, "u1")
        self.assertTrue(approved.verified)
        self.assertEqual(approved.application_status, ApplicationStatus.APPROVED)
        self.assertEqual(accounts.get_user(self.db, "u1").role, UserRole.DRIVER)

    def test_auto_approve(self):
        self.assertTrue(self._apply(auto_approve=True).verified)

    def test_reject_and_suspend(self):
        self._apply()
        rejected = accounts.reject_driver(self.db, "u1", "Blurry license photo")
        self.assertEqual(rejected.application_status, ApplicationStatus.REJECTED)
        self.assertEqual(
            [d.driver_id for d in accounts.list_driver_applications(self.db, ApplicationStatus.REJECTED)],
            ["u1"],
        )
        suspended = accounts.suspend_driver(self.db, "u1", until=4e9, reason="Complaints")
        self.assertTrue(suspended.is_suspended())


class CatalogTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.owner, _ = accounts.ensure_user_profile(self.db, "owner", email="o@example.com")
        self.merchant = accounts.register_merchant(
            self.db,
            self.owner,
            name="  Lola's Kitchen ",
            type=MerchantType.RESTAURANT,
            address="Poblacion",
            coordinates=MAKATI,
            phone="028",
            description="Home-style Filipino food",
            categories=["Filipino", "Rice Meals"],
        )

    def _approve_and_open(self):
        accounts.approve_merchant(self.db, self.merchant.merchant_id)
        merchant = catalog.owned_merchant(self.db, self.owner)
        return catalog.update_store(self.db, merchant, is_open=True)

    def test_application_flow(self):
        self.assertEqual(self.merchant.name, "Lola's Kitchen")
        self.assertEqual(self.merchant.email, "o@example.com")
        with self.assertRaises(FailedPrecondition):
            accounts.register_merchant(
                self.db,
                self.owner,
                name="Second",
                type=MerchantType.GROCERY,
                address="x",
                coordinates=MAKATI,
                phone="0",
            )
        with self.assertRaises(FailedPrecondition):
            catalog.update_store(self.db, self.merchant, is_open=True)

        merchant = self._approve_and_open()
        self.assertTrue(merchant.is_open)
        self.assertEqual(accounts.get_user(self.db, "owner").role, UserRole.MERCHANT)

        closed = accounts.set_merchant_status(
            self.db, merchant.merchant_id, MerchantStatus.SUSPENDED
        )
        self.assertFalse(closed.is_open)
        self.assertEqual(catalog.list_merchants(self.db), [])

    def test_discovery(self):
        self._approve_and_open()
        self.assertEqual(len(catalog.list_merchants(self.db, category="filipino")), 1)
        self.assertEqual(len(catalog.search_merchants(self.db, "kitchen")), 1)
        self.assertEqual(catalog.search_merchants(self.db, "sushi"), [])
        self.assertEqual(catalog.search_merchants(self.db, "  "), [])

        near = catalog.nearby_merchants(self.db, 14.556, 121.025, radius_km=2)
        self.assertEqual(len(near), 1)
        self.assertLess(near[0][1], 1)
        self.assertEqual(catalog.nearby_merchants(self.db, 16.4, 120.6, radius_km=2), [])

    def test_menu_management(self):
        merchant = self._approve_and_open()
        adobo = catalog.add_product(
            self.db, merchant, name="Adobo", price=180, category="Mains"
        )
        lumpia = catalog.add_product(
            self.db, merchant, name="Lumpia", price=90, category="Appetizers"
        )
        with self.assertRaises(InvalidArgument):
            catalog.add_product(self.db, merchant, name="Free", price=-1, category="x")

        catalog.update_product(self.db, merchant, adobo.product_id, sale_price=150)
        catalog.toggle_product(self.db, merchant, lumpia.product_id)

        _, menu = catalog.merchant_detail(self.db, merchant.merchant_id)
        self.assertEqual(list(menu), ["Mains"])
        self.assertEqual(menu["Mains"][0].effective_price, 150)
        self.assertEqual(
            len(catalog.list_products(self.db, merchant.merchant_id, include_unavailable=True)),
            2,
        )

        stranger = UserRecord(user_id="stranger")
        with self.assertRaises(PermissionDenied):
            catalog.owned_merchant(self.db, stranger, merchant.merchant_id)

        catalog.delete_product(self.db, merchant, lumpia.product_id)
        with self.assertRaises(NotFound):
            catalog.get_product(self.db, lumpia.product_id)

    def test_operating_hours_validation(self):
        merchant = self._approve_and_open()
        with self.assertRaises(InvalidArgument):
            catalog.update_store(
                self.db, merchant, operating_hours=[OperatingHours(1, "9am", "10pm")]
            )
        updated = catalog.update_store(
            self.db, merchant, operating_hours=[OperatingHours(1, "09:00", "22:00")]
        )
        self.assertEqual(updated.operating_hours[0].close, "22:00")
        with self.assertRaises(InvalidArgument):
            catalog.update_store(self.db, merchant, owner_id="someone")


if __name__ == "__main__":
    unittest.main()
