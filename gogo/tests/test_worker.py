import unittest
from unittest.mock import patch

from gogo import db as collections
from gogo import chats, rides
from gogo.config import Settings
from gogo.db import InMemoryDbClient
from gogo.queue import (
    ORDER_CREATED,
    ORDER_STATUS_CHANGED,
    RIDE_CREATED,
    RIDE_STATUS_CHANGED,
    InMemoryEventQueue,
    order_event,
    ride_event,
)
from gogo.records import (
    DeliveryAddress,
    DriverLicense,
    DriverRecord,
    GeoPoint,
    MerchantRecord,
    NotificationRecord,
    OrderItem,
    OrderRecord,
    Place,
    RideFare,
    RideRecord,
    RouteInfo,
    UserRecord,
    Vehicle,
    now_ts,
)
from gogo.types import (
    CancelledBy,
    ChatStatus,
    DriverStatus,
    MerchantType,
    NotificationType,
    OrderStatus,
    OrderType,
    PaymentMethod,
    RideStatus,
    VehicleType,
)
from gogo.worker import handle_event, process_next, run_maintenance

PICKUP = GeoPoint(14.5849, 121.0563)


def _settings() -> Settings:
    return Settings(_env_file=None, dispatch_radius_km=10, driver_notify_limit=10)


def _driver(driver_id: str, location=None, **kwargs) -> DriverRecord:
    fields = dict(
        driver_id=driver_id,
        user_id=driver_id,
        first_name="Juan",
        last_name="Cruz",
        phone="0917",
        vehicle_type=VehicleType.CAR,
        vehicle=Vehicle("Toyota", "Vios", 2020, "White", f"ABC {driver_id}"),
        license=DriverLicense(number=driver_id),
        verified=True,
        status=DriverStatus.ONLINE,
        current_location=location,
    )
    fields.update(kwargs)
    return DriverRecord(**fields)


def _ride(ride_id: str, **kwargs) -> RideRecord:
    return RideRecord(
        ride_id=ride_id,
        passenger_id="u1",
        vehicle_type=VehicleType.CAR,
        pickup=Place(address="SM Megamall", coordinates=PICKUP),
        dropoff=Place(address="BGC", coordinates=GeoPoint(14.5509, 121.0503)),
        fare=RideFare(base=60, distance=75, time=20, total=155),
        payment_method=PaymentMethod.CASH,
        **kwargs,
    )


def _recipients(db: InMemoryDbClient, type: NotificationType) -> set:
    return {
        n.user_id
        for n in db.find(collections.NOTIFICATIONS, {"type": type})
    }


def _add_order(db: InMemoryDbClient, status: OrderStatus, **kwargs) -> OrderRecord:
    db.add(
        collections.MERCHANTS,
        MerchantRecord(
            merchant_id="m1",
            owner_id="owner",
            name="Jollyburger",
            type=MerchantType.RESTAURANT,
            address="Makati",
            coordinates=PICKUP,
            phone="02",
            verified=True,
        ),
    )
    order = OrderRecord(
        order_id="o1",
        customer_id="u1",
        merchant_id="m1",
        type=OrderType.FOOD,
        items=[OrderItem("p1", "Burger", 2, 100, 200)],
        subtotal=200,
        delivery_fee=49,
        service_fee=10,
        total=259,
        delivery_address=DeliveryAddress("Home", PICKUP, "Ana", "0917"),
        payment_method=PaymentMethod.CASH,
        status=status,
        **kwargs,
    )
    db.add(collections.ORDERS, order)
    return order


class HandleEventTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.settings = _settings()

    def test_new_ride_notifies_nearby_drivers(self):
        self.db.add(collections.DRIVERS, _driver("near", GeoPoint(14.586, 121.056)))
        self.db.add(collections.DRIVERS, _driver("far", GeoPoint(16.40, 120.59)))
        self.db.add(collections.DRIVERS, _driver("unknown"))
        self.db.add(
            collections.DRIVERS, _driver("busy", PICKUP, current_order_id="order_1")
        )
        self.db.add(
            collections.DRIVERS, _driver("moto", PICKUP, vehicle_type=VehicleType.MOTORCYCLE)
        )
        self.db.add(
            collections.DRIVERS, _driver("offline", PICKUP, status=DriverStatus.OFFLINE)
        )
        self.db.add(collections.RIDES, _ride("r1"))

        handle_event(ride_event(RIDE_CREATED, "r1", None, "pending"), self.db, self.settings)

        self.assertEqual(
            _recipients(self.db, NotificationType.RIDE_REQUEST), {"near", "unknown"}
        )
        request = self.db.find(collections.NOTIFICATIONS, {"user_id": "near"})[0]
        self.assertEqual(request.data["ride_id"], "r1")
        self.assertEqual(request.body, "₱155.00 - SM Megamall")

    def test_scheduled_ride_created_is_quiet(self):
        self.db.add(collections.DRIVERS, _driver("near", PICKUP))
        self.db.add(collections.RIDES, _ride("r1", status=RideStatus.SCHEDULED))
        handle_event(ride_event(RIDE_CREATED, "r1", None, "scheduled"), self.db, self.settings)
        self.assertEqual(self.db.find(collections.NOTIFICATIONS), [])

    def test_accepted_ride_notifies_passenger(self):
        self.db.add(collections.RIDES, _ride("r1", status=RideStatus.ACCEPTED, driver_id="d1"))
        handle_event(
            ride_event(RIDE_STATUS_CHANGED, "r1", "pending", "accepted"), self.db, self.settings
        )
        [notice] = self.db.find(collections.NOTIFICATIONS)
        self.assertEqual(notice.user_id, "u1")
        self.assertEqual(notice.title, "Driver Found")

    def test_passenger_cancel_notifies_driver(self):
        self.db.add(
            collections.RIDES,
            _ride(
                "r1",
                status=RideStatus.CANCELLED,
                driver_id="d1",
                cancelled_by=CancelledBy.PASSENGER,
            ),
        )
        handle_event(
            ride_event(RIDE_STATUS_CHANGED, "r1", "accepted", "cancelled"), self.db, self.settings
        )
        self.assertEqual(_recipients(self.db, NotificationType.RIDE_CANCELLED), {"d1"})

    def _order(self, status: OrderStatus) -> OrderRecord:
        return _add_order(self.db, status)

    def test_new_order_notifies_store_owner(self):
        self._order(OrderStatus.PENDING)
        handle_event(order_event(ORDER_CREATED, "o1", None, "pending"), self.db, self.settings)
        [notice] = self.db.find(collections.NOTIFICATIONS)
        self.assertEqual(notice.user_id, "owner")
        self.assertEqual(notice.type, NotificationType.ORDER_NEW)
        self.assertEqual(notice.body, "₱259.00 - 2 item(s)")

    def test_ready_order_notifies_drivers_and_customer(self):
        self.db.add(collections.DRIVERS, _driver("near", PICKUP))
        self._order(OrderStatus.READY)
        handle_event(
            order_event(ORDER_STATUS_CHANGED, "o1", "preparing", "ready"), self.db, self.settings
        )
        self.assertEqual(_recipients(self.db, NotificationType.DELIVERY_REQUEST), {"near"})
        self.assertEqual(_recipients(self.db, NotificationType.ORDER_UPDATE), {"u1"})

    def test_dropped_delivery_only_notifies_drivers(self):
        self.db.add(collections.DRIVERS, _driver("near", PICKUP))
        self._order(OrderStatus.READY)
        handle_event(
            order_event(ORDER_STATUS_CHANGED, "o1", "picked_up", "ready"), self.db, self.settings
        )
        self.assertEqual(_recipients(self.db, NotificationType.DELIVERY_REQUEST), {"near"})
        self.assertEqual(_recipients(self.db, NotificationType.ORDER_UPDATE), set())

    def test_unknown_event_is_ignored(self):
        handle_event({"type": "mystery"}, self.db, self.settings)
        handle_event(ride_event(RIDE_CREATED, "missing"), self.db, self.settings)
        self.assertEqual(self.db.find(collections.NOTIFICATIONS), [])


class ChatClosureTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.settings = _settings()
        self.customer = UserRecord(user_id="u1")

    def test_finished_ride_closes_chat(self):
        self.db.add(collections.RIDES, _ride("r1", status=RideStatus.ARRIVED, driver_id="d1"))
        chat = chats.open_ride_chat(self.db, "r1", self.customer)

        handle_event(
            ride_event(RIDE_STATUS_CHANGED, "r1", "accepted", "arrived"), self.db, self.settings
        )
        self.assertEqual(self.db.get(collections.CHATS, chat.chat_id).status, ChatStatus.ACTIVE)

        self.db.update(collections.RIDES, "r1", {"status": RideStatus.COMPLETED})
        handle_event(
            ride_event(RIDE_STATUS_CHANGED, "r1", "in_progress", "completed"),
            self.db,
            self.settings,
        )
        self.assertEqual(self.db.get(collections.CHATS, chat.chat_id).status, ChatStatus.CLOSED)

    def test_dropped_delivery_closes_old_rider_chat(self):
        _add_order(self.db, OrderStatus.PICKED_UP, driver_id="d1")
        chat = chats.open_order_chat(self.db, "o1", self.customer)
        self.db.update(
            collections.ORDERS, "o1", {"status": OrderStatus.READY, "driver_id": None}
        )
        handle_event(
            order_event(ORDER_STATUS_CHANGED, "o1", "picked_up", "ready"), self.db, self.settings
        )
        self.assertEqual(self.db.get(collections.CHATS, chat.chat_id).status, ChatStatus.CLOSED)


class MaintenanceTests(unittest.TestCase):
    def test_release_expire_and_purge(self):
        db = InMemoryDbClient()
        queue = InMemoryEventQueue()
        now = now_ts()
        db.add(
            collections.RIDES,
            _ride("soon", status=RideStatus.SCHEDULED, scheduled_at=now + 300),
        )
        db.add(
            collections.RIDES,
            _ride("later", status=RideStatus.SCHEDULED, scheduled_at=now + 7200),
        )
        db.add(collections.RIDES, _ride("stale", created_at=now - 1000))
        db.add(collections.RIDES, _ride("fresh", created_at=now - 60))
        db.add(
            collections.NOTIFICATIONS,
            NotificationRecord(
                notification_id="old",
                user_id="u1",
                type=NotificationType.GENERAL,
                title="Hi",
                body="Old news",
                created_at=now - 40 * 86400,
            ),
        )

        result = run_maintenance(db, queue, _settings(), now=now)

        self.assertEqual(result, {"released": 1, "expired": 1, "purged": 1})
        self.assertEqual(db.get(collections.RIDES, "soon").status, RideStatus.PENDING)
        self.assertEqual(db.get(collections.RIDES, "later").status, RideStatus.SCHEDULED)
        stale = db.get(collections.RIDES, "stale")
        self.assertEqual(stale.status, RideStatus.CANCELLED)
        self.assertEqual(stale.cancelled_by, CancelledBy.SYSTEM)
        self.assertEqual(db.get(collections.RIDES, "fresh").status, RideStatus.PENDING)
        self.assertEqual(
            queue.items,
            [
                ride_event(RIDE_STATUS_CHANGED, "soon", "scheduled", "pending"),
                ride_event(RIDE_STATUS_CHANGED, "stale", "pending", "cancelled"),
            ],
        )


class ProcessNextTests(unittest.TestCase):
    @patch("gogo.worker.get_settings")
    def test_process_once_handles_event(self, mock_settings):
        mock_settings.return_value = _settings()
        db = InMemoryDbClient()
        queue = InMemoryEventQueue()
        db.add(collections.DRIVERS, _driver("near", PICKUP))
        db.add(collections.RIDES, _ride("r1"))
        queue.enqueue(ride_event(RIDE_CREATED, "r1", None, "pending"))

        processed = process_next(db=db, queue=queue, block=False)
        self.assertTrue(processed)
        self.assertEqual(_recipients(db, NotificationType.RIDE_REQUEST), {"near"})

    def test_process_once_no_events(self):
        db = InMemoryDbClient()
        queue = InMemoryEventQueue()
        processed = process_next(db=db, queue=queue, block=False)
        self.assertFalse(processed)


class BacklogTests(unittest.TestCase):
    """Events handled after the document has already moved on."""

    def setUp(self):
        self.db = InMemoryDbClient()
        self.queue = InMemoryEventQueue()
        self.db.add(collections.USERS, UserRecord(user_id="u1", phone="0917"))
        self.db.add(collections.DRIVERS, _driver("d1", PICKUP))
        self.db.add(collections.DRIVERS, _driver("d2", PICKUP))

    def _drain(self):
        with patch("gogo.worker.get_settings", return_value=_settings()):
            while process_next(db=self.db, queue=self.queue, block=False):
                pass

    def _titles(self, user_id: str) -> list:
        return [
            n.title
            for n in self.db.find(
                collections.NOTIFICATIONS, {"user_id": user_id}, oldest_first=True
            )
        ]

    def test_each_ride_step_is_reported(self):
        passenger = self.db.get(collections.USERS, "u1")
        ride = rides.book_ride(
            self.db,
            self.queue,
            passenger,
            pickup=Place(address="SM Megamall", coordinates=PICKUP),
            dropoff=Place(address="BGC", coordinates=GeoPoint(14.5509, 121.0503)),
            vehicle_type=VehicleType.CAR,
            payment_method=PaymentMethod.CASH,
            route=RouteInfo(distance=5000, duration=600),
        )
        rides.accept_ride(self.db, self.queue, "d1", ride.ride_id)
        rides.update_ride_status(self.db, self.queue, "d1", ride.ride_id, RideStatus.ARRIVING)
        rides.update_ride_status(self.db, self.queue, "d1", ride.ride_id, RideStatus.ARRIVED)

        self._drain()

        self.assertEqual(
            self._titles("u1"), ["Driver Found", "Driver Arriving", "Driver Arrived"]
        )
        # Already taken by the time the worker saw it.
        self.assertEqual(_recipients(self.db, NotificationType.RIDE_REQUEST), set())

    def test_ready_order_taken_before_fan_out(self):
        _add_order(self.db, OrderStatus.PICKED_UP, driver_id="d1")
        self.queue.enqueue(order_event(ORDER_STATUS_CHANGED, "o1", "preparing", "ready"))
        self.queue.enqueue(order_event(ORDER_STATUS_CHANGED, "o1", "ready", "picked_up"))

        self._drain()

        self.assertEqual(self._titles("u1"), ["Ready for Pickup", "Picked Up"])
        self.assertEqual(_recipients(self.db, NotificationType.DELIVERY_REQUEST), set())


if __name__ == "__main__":
    unittest.main()
