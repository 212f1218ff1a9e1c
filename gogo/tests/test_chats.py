import unittest

from gogo import chats
from gogo import db as collections
from gogo.db import InMemoryDbClient
from gogo.errors import FailedPrecondition, InvalidArgument, NotFound, PermissionDenied
from gogo.records import (
    DeliveryAddress,
    GeoPoint,
    OrderItem,
    OrderRecord,
    Place,
    RideFare,
    RideRecord,
    UserRecord,
)
from gogo.types import (
    ChatStatus,
    ChatType,
    MessageType,
    OrderStatus,
    OrderType,
    PaymentMethod,
    RideStatus,
    UserRole,
    VehicleType,
)

MEGAMALL = GeoPoint(14.5849, 121.0563)
BGC = GeoPoint(14.5509, 121.0503)


class RideChatTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.passenger = UserRecord(user_id="u1", first_name="Ana", last_name="Reyes")
        self.driver = UserRecord(user_id="d1", role=UserRole.DRIVER)
        self.stranger = UserRecord(user_id="u2")
        self.db.add(collections.USERS, self.passenger)
        self.db.add(
            collections.RIDES,
            RideRecord(
                ride_id="r1",
                passenger_id="u1",
                vehicle_type=VehicleType.CAR,
                pickup=Place(address="SM Megamall", coordinates=MEGAMALL),
                dropoff=Place(address="BGC", coordinates=BGC),
                fare=RideFare(base=60, distance=75, time=20, total=155),
                payment_method=PaymentMethod.CASH,
                status=RideStatus.ACCEPTED,
                driver_id="d1",
            ),
        )

    def _chat(self):
        return chats.open_ride_chat(self.db, "r1", self.passenger)

    def test_open_is_idempotent_for_both_sides(self):
        chat = self._chat()
        self.assertEqual(chat.chat_id, "ride_r1_d1")
        self.assertEqual(chat.participant_names, {"u1": "Ana Reyes", "d1": "Driver"})
        self.assertEqual(chat.unread_count, {"u1": 0, "d1": 0})

        again = chats.open_ride_chat(self.db, "r1", self.driver)
        self.assertEqual(again.chat_id, chat.chat_id)
        self.assertEqual(len(self.db.find(collections.CHATS)), 1)

    def test_only_participants_of_a_live_ride(self):
        with self.assertRaises(PermissionDenied):
            chats.open_ride_chat(self.db, "r1", self.stranger)
        with self.assertRaises(NotFound):
            chats.open_ride_chat(self.db, "missing", self.passenger)

        chat = self._chat()
        with self.assertRaises(PermissionDenied):
            chats.send_message(self.db, chat.chat_id, self.stranger, message="hi")
        with self.assertRaises(PermissionDenied):
            chats.list_messages(self.db, chat.chat_id, self.stranger)
        with self.assertRaises(NotFound):
            chats.get_chat(self.db, "ride_r1_d9", self.passenger)

        self.db.update(collections.RIDES, "r1", {"status": RideStatus.COMPLETED})
        with self.assertRaises(FailedPrecondition):
            chats.open_ride_chat(self.db, "r1", self.passenger)

    def test_send_updates_preview_and_unread(self):
        chat = self._chat()
        chats.send_message(self.db, chat.chat_id, self.passenger, message="  Nasa gate 3 ako  ")
        entry = chats.send_message(
            self.db,
            chat.chat_id,
            self.driver,
            message_type=MessageType.LOCATION,
            location=MEGAMALL,
        )
        self.assertEqual(entry.sender_type, UserRole.DRIVER)
        self.assertEqual(entry.message, chats.LOCATION_PREVIEW)

        chat = chats.get_chat(self.db, chat.chat_id, self.passenger)
        self.assertEqual(chat.unread_count, {"u1": 1, "d1": 1})
        self.assertEqual(chat.last_message, chats.LOCATION_PREVIEW)

        chats.send_message(self.db, chat.chat_id, self.passenger, message="x" * 300)
        chat = chats.get_chat(self.db, chat.chat_id, self.passenger)
        self.assertEqual(len(chat.last_message), chats.PREVIEW_LENGTH)

        listed, unread = chats.list_chats(self.db, "d1")
        self.assertEqual([c.chat_id for c in listed], [chat.chat_id])
        self.assertEqual(unread, 2)

    def test_message_validation(self):
        chat = self._chat()
        with self.assertRaises(InvalidArgument):
            chats.send_message(self.db, chat.chat_id, self.passenger, message="   ")
        with self.assertRaises(InvalidArgument):
            chats.send_message(self.db, chat.chat_id, self.passenger, message="x" * 1001)
        with self.assertRaises(InvalidArgument):
            chats.send_message(
                self.db, chat.chat_id, self.passenger, message_type=MessageType.IMAGE
            )
        with self.assertRaises(InvalidArgument):
            chats.send_message(
                self.db, chat.chat_id, self.passenger, message_type=MessageType.SYSTEM
            )
        self.assertEqual(self.db.find(collections.CHAT_MESSAGES), [])

    def test_messages_page_oldest_first(self):
        chat = self._chat()
        for text in ("one", "two", "three"):
            chats.send_message(self.db, chat.chat_id, self.passenger, message=text)
        page, has_more = chats.list_messages(self.db, chat.chat_id, self.driver, limit=2)
        self.assertEqual([m.message for m in page], ["two", "three"])
        self.assertTrue(has_more)

        older, has_more = chats.list_messages(
            self.db, chat.chat_id, self.driver, before=page[0].created_at
        )
        self.assertEqual([m.message for m in older], ["one"])
        self.assertFalse(has_more)

    def test_mark_read_only_touches_incoming(self):
        chat = self._chat()
        chats.send_message(self.db, chat.chat_id, self.passenger, message="hello")
        chats.send_message(self.db, chat.chat_id, self.driver, message="papunta na")

        self.assertEqual(chats.mark_read(self.db, chat.chat_id, self.driver), 1)
        self.assertEqual(chats.mark_read(self.db, chat.chat_id, self.driver), 0)
        chat = chats.get_chat(self.db, chat.chat_id, self.driver)
        self.assertEqual(chat.unread_count, {"u1": 1, "d1": 0})
        unread = self.db.find(collections.CHAT_MESSAGES, {"read": False})
        self.assertEqual([m.sender_id for m in unread], ["d1"])

    def test_closed_chat_rejects_messages(self):
        chat = self._chat()
        self.assertEqual(chats.close_chats(self.db, ChatType.RIDE, "r1"), 1)
        self.assertEqual(chats.close_chats(self.db, ChatType.RIDE, "r1"), 0)
        with self.assertRaises(FailedPrecondition):
            chats.send_message(self.db, chat.chat_id, self.driver, message="hello?")
        self.assertEqual(chats.list_chats(self.db, "u1")[0], [])
        self.assertEqual(len(chats.list_chats(self.db, "u1", active_only=False)[0]), 1)

    def test_watch_sees_new_messages(self):
        chat = self._chat()
        _, changed = chats.watch_chat(
            self.db, chat.chat_id, self.driver, since_version=chat.version, timeout=0
        )
        self.assertFalse(changed)
        chats.send_message(self.db, chat.chat_id, self.passenger, message="andito na ako")
        latest, changed = chats.watch_chat(
            self.db, chat.chat_id, self.driver, since_version=chat.version, timeout=0
        )
        self.assertTrue(changed)
        self.assertEqual(latest.last_message, "andito na ako")


class OrderChatTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.customer = UserRecord(user_id="u1")
        self.db.add(
            collections.ORDERS,
            OrderRecord(
                order_id="o1",
                customer_id="u1",
                merchant_id="m1",
                type=OrderType.FOOD,
                items=[OrderItem("p1", "Burger", 2, 100, 200)],
                subtotal=200,
                delivery_fee=49,
                service_fee=10,
                total=259,
                delivery_address=DeliveryAddress("Home", BGC, "Ana", "0917"),
                payment_method=PaymentMethod.CASH,
                status=OrderStatus.READY,
            ),
        )

    def test_opens_once_rider_has_the_order(self):
        with self.assertRaises(FailedPrecondition):
            chats.open_order_chat(self.db, "o1", self.customer)

        self.db.update(
            collections.ORDERS, "o1", {"status": OrderStatus.PICKED_UP, "driver_id": "d1"}
        )
        chat = chats.open_order_chat(self.db, "o1", UserRecord(user_id="d1"))
        self.assertEqual(chat.type, ChatType.ORDER)
        self.assertEqual(chat.participants, ("u1", "d1"))
        self.assertEqual(chat.participant_names["u1"], "Customer")

    def test_drop_keeps_only_new_rider_chat(self):
        self.db.update(
            collections.ORDERS, "o1", {"status": OrderStatus.PICKED_UP, "driver_id": "d1"}
        )
        first = chats.open_order_chat(self.db, "o1", self.customer)
        self.db.update(collections.ORDERS, "o1", {"driver_id": "d2"})
        second = chats.open_order_chat(self.db, "o1", self.customer)
        self.assertNotEqual(first.chat_id, second.chat_id)

        self.assertEqual(
            chats.close_chats(self.db, ChatType.ORDER, "o1", keep_driver_id="d2"), 1
        )
        self.assertEqual(
            chats.get_chat(self.db, first.chat_id, self.customer).status, ChatStatus.CLOSED
        )
        self.assertEqual(
            chats.get_chat(self.db, second.chat_id, self.customer).status, ChatStatus.ACTIVE
        )


if __name__ == "__main__":
    unittest.main()
