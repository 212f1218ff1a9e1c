import unittest

from gogo import db as collections
from gogo import notifications, uploads
from gogo.db import InMemoryDbClient
from gogo.errors import InvalidArgument, NotFound, PermissionDenied
from gogo.records import GeoPoint, MerchantRecord, ProductRecord, UserRecord
from gogo.types import MerchantType, NotificationType, UserRole
from gogo.watch import wait_for_change


class NotificationTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.first = notifications.notify(
            self.db, "u1", NotificationType.GENERAL, "Welcome", "Hello!"
        )
        self.second = notifications.notify(
            self.db, "u1", NotificationType.WALLET, "Top-up", "₱500 added", {"amount": 500}
        )
        notifications.notify(self.db, "u2", NotificationType.GENERAL, "Hi", "Not yours")

    def test_inbox_and_unread_count(self):
        items, unread = notifications.list_notifications(self.db, "u1")
        self.assertEqual(len(items), 2)
        self.assertEqual(unread, 2)

        notifications.mark_read(self.db, self.first.notification_id, "u1")
        _, unread = notifications.list_notifications(self.db, "u1")
        self.assertEqual(unread, 1)
        self.assertEqual(notifications.mark_all_read(self.db, "u1"), 1)

    def test_only_owner_can_touch(self):
        with self.assertRaises(PermissionDenied):
            notifications.mark_read(self.db, self.first.notification_id, "u2")
        with self.assertRaises(NotFound):
            notifications.delete_notification(self.db, "missing", "u1")

    def test_delete_and_clear(self):
        notifications.delete_notification(self.db, self.second.notification_id, "u1")
        self.assertEqual(notifications.clear_all(self.db, "u1"), 1)
        self.assertEqual(notifications.list_notifications(self.db, "u1"), ([], 0))
        items, _ = notifications.list_notifications(self.db, "u2")
        self.assertEqual(len(items), 1)


class UploadPathTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.owner = UserRecord(user_id="owner", role=UserRole.MERCHANT)
        self.db.add(
            collections.MERCHANTS,
            MerchantRecord(
                merchant_id="m1",
                owner_id="owner",
                name="Store",
                type=MerchantType.GROCERY,
                address="x",
                coordinates=GeoPoint(14.5, 121.0),
                phone="0",
            ),
        )
        self.db.add(
            collections.PRODUCTS,
            ProductRecord(product_id="p1", merchant_id="m1", name="Milk", price=95, category="Dairy"),
        )

    def test_profile_and_driver_documents(self):
        user = UserRecord(user_id="u1")
        self.assertEqual(
            uploads.upload_path(self.db, user, target="profile", content_type="image/jpeg"),
            "users/u1/profile.jpg",
        )
        self.assertEqual(
            uploads.upload_path(
                self.db,
                user,
                target="driver_document",
                content_type="application/pdf",
                document="nbi_clearance",
            ),
            "drivers/u1/nbi_clearance.pdf",
        )
        with self.assertRaises(InvalidArgument):
            uploads.upload_path(self.db, user, target="profile", content_type="application/pdf")
        with self.assertRaises(InvalidArgument):
            uploads.upload_path(
                self.db, user, target="driver_document", content_type="image/png", document="selfie"
            )

    def test_merchant_images(self):
        self.assertEqual(
            uploads.upload_path(
                self.db,
                self.owner,
                target="product_image",
                content_type="image/webp",
                merchant_id="m1",
                product_id="p1",
            ),
            "merchants/m1/products/p1.webp",
        )
        with self.assertRaises(PermissionDenied):
            uploads.upload_path(
                self.db,
                UserRecord(user_id="u1"),
                target="merchant_image",
                content_type="image/png",
                merchant_id="m1",
                image="logo",
            )
        with self.assertRaises(NotFound):
            uploads.upload_path(
                self.db,
                self.owner,
                target="product_image",
                content_type="image/png",
                merchant_id="m1",
                product_id="p2",
            )

    def test_can_delete(self):
        self.assertTrue(uploads.can_delete(self.db, UserRecord(user_id="u1"), "users/u1/profile.png"))
        self.assertFalse(uploads.can_delete(self.db, UserRecord(user_id="u1"), "users/u2/profile.png"))
        self.assertFalse(uploads.can_delete(self.db, UserRecord(user_id="u1"), "users/u1/../u2/x.png"))
        self.assertTrue(uploads.can_delete(self.db, self.owner, "merchants/m1/logo.png"))
        admin = UserRecord(user_id="root", role=UserRole.ADMIN)
        self.assertTrue(uploads.can_delete(self.db, admin, "drivers/d1/license_front.jpg"))


class WatchTests(unittest.TestCase):
    def test_waits_until_version_moves(self):
        db = InMemoryDbClient()
        db.add(collections.USERS, UserRecord(user_id="u1"))
        ticks = []

        def sleep(seconds):
            ticks.append(seconds)
            db.update(collections.USERS, "u1", {"phone": "0917"})

        record, changed = wait_for_change(
            lambda: db.get(collections.USERS, "u1"), 1, timeout=5, sleep=sleep
        )
        self.assertTrue(changed)
        self.assertEqual(record.version, 2)
        self.assertEqual(ticks, [0.5])

    def test_times_out_with_current_record(self):
        clock = iter([0.0, 0.0, 2.0])
        record, changed = wait_for_change(
            lambda: UserRecord(user_id="u1"),
            1,
            timeout=1,
            sleep=lambda seconds: None,
            clock=lambda: next(clock),
        )
        self.assertFalse(changed)
        self.assertEqual(record.user_id, "u1")

    def test_missing_document(self):
        with self.assertRaises(NotFound):
            wait_for_change(lambda: None, 0, timeout=0)


if __name__ == "__main__":
    unittest.main()
