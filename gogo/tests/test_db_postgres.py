import unittest

from gogo import db as collections
from gogo.db import DuplicateDocument, PostgresDbClient
from gogo.errors import FailedPrecondition
from gogo.records import (
    GeoPoint,
    NotificationRecord,
    Place,
    RideFare,
    RideRecord,
    SavedLocation,
    UserRecord,
    now_ts,
)
from gogo.types import (
    NotificationType,
    PaymentMethod,
    RideStatus,
    UserRole,
    VehicleType,
)


def _ride(ride_id: str, **kwargs) -> RideRecord:
    place = Place(address="Somewhere", coordinates=GeoPoint(14.6, 121.0))
    return RideRecord(
        ride_id=ride_id,
        passenger_id="p1",
        vehicle_type=VehicleType.CAR,
        pickup=place,
        dropoff=place,
        fare=RideFare(base=60, distance=10, time=5, total=75),
        payment_method=PaymentMethod.CASH,
        **kwargs,
    )


class PostgresDbClientTests(unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the Postgres client logic.
    """

    def setUp(self):
        self.db = PostgresDbClient("sqlite+pysqlite:///:memory:")

    def test_add_and_get_user(self):
        user = UserRecord(
            user_id="u1",
            phone="0917",
            role=UserRole.DRIVER,
            saved_locations=[
                SavedLocation("home", "Home", "Makati", GeoPoint(14.55, 121.02), "home")
            ],
        )
        self.db.add(collections.USERS, user)
        fetched = self.db.get(collections.USERS, "u1")
        self.assertEqual(fetched.role, UserRole.DRIVER)
        self.assertEqual(fetched.saved_locations[0].coordinates.latitude, 14.55)
        self.assertIsNone(self.db.get(collections.USERS, "missing"))

    def test_duplicate_add(self):
        self.db.add(collections.USERS, UserRecord(user_id="u1"))
        with self.assertRaises(DuplicateDocument):
            self.db.add(collections.USERS, UserRecord(user_id="u1"))

    def test_update_bumps_version(self):
        self.db.add(collections.USERS, UserRecord(user_id="u1"))
        updated = self.db.update(collections.USERS, "u1", {"wallet_balance": 250.0})
        self.assertEqual(updated.version, 2)
        fetched = self.db.get(collections.USERS, "u1")
        self.assertEqual(fetched.wallet_balance, 250.0)
        self.assertEqual(fetched.version, 2)
        self.assertIsNone(self.db.update(collections.USERS, "missing", {"phone": "1"}))

    def test_find_filters(self):
        self.db.add(collections.RIDES, _ride("r1", created_at=100))
        self.db.add(
            collections.RIDES,
            _ride("r2", status=RideStatus.ACCEPTED, driver_id="d1", created_at=200),
        )
        self.db.add(
            collections.RIDES,
            _ride("r3", status=RideStatus.COMPLETED, driver_id="d1", created_at=300),
        )

        pending = self.db.find(collections.RIDES, {"status": RideStatus.PENDING})
        self.assertEqual([r.ride_id for r in pending], ["r1"])

        unassigned = self.db.find(collections.RIDES, {"driver_id": None})
        self.assertEqual([r.ride_id for r in unassigned], ["r1"])

        mine = self.db.find(
            collections.RIDES,
            {"driver_id": "d1", "status": [RideStatus.ACCEPTED, RideStatus.COMPLETED]},
        )
        self.assertEqual([r.ride_id for r in mine], ["r3", "r2"])

        oldest = self.db.find(collections.RIDES, oldest_first=True, limit=2)
        self.assertEqual([r.ride_id for r in oldest], ["r1", "r2"])

    def test_find_bool_filter(self):
        for key, read in (("n1", True), ("n2", False)):
            self.db.add(
                collections.NOTIFICATIONS,
                NotificationRecord(
                    notification_id=key,
                    user_id="u1",
                    type=NotificationType.GENERAL,
                    title="Hello",
                    body="World",
                    read=read,
                ),
            )
        unread = self.db.find(collections.NOTIFICATIONS, {"user_id": "u1", "read": False})
        self.assertEqual([n.notification_id for n in unread], ["n2"])

    def test_transaction_rolls_back(self):
        self.db.add(collections.USERS, UserRecord(user_id="u1", wallet_balance=100))
        with self.assertRaises(FailedPrecondition):
            with self.db.transaction() as tx:
                tx.update(collections.USERS, "u1", {"wallet_balance": 0.0})
                raise FailedPrecondition("abort")
        self.assertEqual(self.db.get(collections.USERS, "u1").wallet_balance, 100)

        with self.db.transaction() as tx:
            user = tx.get(collections.USERS, "u1")
            tx.update(collections.USERS, "u1", {"wallet_balance": user.wallet_balance + 50})
        self.assertEqual(self.db.get(collections.USERS, "u1").wallet_balance, 150)

    def test_delete_and_purge(self):
        now = now_ts()
        for key, created in (("old", now - 90 * 86400), ("new", now)):
            self.db.add(
                collections.NOTIFICATIONS,
                NotificationRecord(
                    notification_id=key,
                    user_id="u1",
                    type=NotificationType.GENERAL,
                    title="Hello",
                    body="World",
                    created_at=created,
                ),
            )
        self.assertEqual(self.db.purge(collections.NOTIFICATIONS, now - 86400), 1)
        self.assertTrue(self.db.delete(collections.NOTIFICATIONS, "new"))
        self.assertFalse(self.db.delete(collections.NOTIFICATIONS, "new"))
        self.assertEqual(self.db.find(collections.NOTIFICATIONS), [])

    def test_unknown_collection(self):
        with self.assertRaises(ValueError):
            self.db.get("parcels", "1")


if __name__ == "__main__":
    unittest.main()
