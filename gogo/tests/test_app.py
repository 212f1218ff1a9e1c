import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

from gogo import db as collections
from gogo import dependencies
from gogo.app import create_app
from gogo.config import Settings
from gogo.db import InMemoryDbClient
from gogo.queue import InMemoryEventQueue
from gogo.records import DriverLicense, DriverRecord, GeoPoint, Vehicle
from gogo.storage import InMemoryStorageClient
from gogo.types import DriverStatus, UserRole, VehicleType
from gogo.watch import wait_for_change

PICKUP = {"address": "SM Megamall", "coordinates": {"latitude": 14.5849, "longitude": 121.0563}}
DROPOFF = {"address": "BGC High Street", "coordinates": {"latitude": 14.5509, "longitude": 121.0503}}


def _as(user_id: str) -> dict:
    return {"X-User-Id": user_id}


class BackendApiTests(unittest.TestCase):
    def setUp(self):
        dependencies._db_client = InMemoryDbClient()
        dependencies._queue_client = InMemoryEventQueue()
        dependencies._storage_client = InMemoryStorageClient()
        self.db = dependencies._db_client
        self.client = TestClient(create_app())

    def _sign_up(self, user_id: str, **payload) -> dict:
        payload.setdefault("phone", "09171234567")
        response = self.client.post("/api/users/me", json=payload, headers=_as(user_id))
        self.assertEqual(response.status_code, 200)
        return response.json()

    def test_health(self):
        response = self.client.get("/api/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_requires_user_header(self):
        response = self.client.get("/api/users/me")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "unauthenticated")

    def test_profile_created_once(self):
        first = self._sign_up("u1", display_name="Ana Reyes")
        self.assertTrue(first["created"])
        self.assertEqual(first["user"]["first_name"], "Ana")
        self.assertEqual(first["user"]["role"], "customer")
        self.assertRegex(first["user"]["referral_code"], r"^GOGO[A-Z0-9]{6}$")

        second = self._sign_up("u1", display_name="Someone Else")
        self.assertFalse(second["created"])
        self.assertEqual(second["user"]["first_name"], "Ana")

        response = self.client.get("/api/users/me", headers=_as("nobody"))
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "not-found")

    def test_wallet_top_up(self):
        self._sign_up("u1")
        response = self.client.post(
            "/api/wallet/top-up", json={"amount": 50, "method": "gcash"}, headers=_as("u1")
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.json(),
            {"detail": "Minimum top-up is ₱100", "code": "invalid-argument"},
        )

        response = self.client.post(
            "/api/wallet/top-up", json={"amount": 500, "method": "gcash"}, headers=_as("u1")
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["balance"], 500)

        balance = self.client.get("/api/wallet", headers=_as("u1")).json()
        self.assertEqual(balance, {"balance": 500, "currency": "PHP"})
        history = self.client.get("/api/wallet/transactions", headers=_as("u1")).json()
        self.assertEqual(len(history["transactions"]), 1)

    def test_quote_and_book_ride(self):
        self._sign_up("u1")
        response = self.client.post(
            "/api/rides/quote",
            json={
                "pickup": PICKUP["coordinates"],
                "dropoff": DROPOFF["coordinates"],
                "vehicle_type": "car",
                "route": {"distance": 5000, "duration": 600},
            },
            headers=_as("u1"),
        )
        self.assertEqual(response.status_code, 200)
        quote = response.json()["quote"]
        self.assertEqual(quote["vehicle_type"], "car")
        self.assertGreaterEqual(quote["fare"]["total"], 155)

        booking = {
            "pickup": PICKUP,
            "dropoff": DROPOFF,
            "vehicle_type": "car",
            "payment_method": "cash",
        }
        response = self.client.post("/api/rides", json=booking, headers=_as("u1"))
        self.assertEqual(response.status_code, 201)
        ride = response.json()["ride"]
        self.assertEqual(ride["status"], "pending")
        self.assertEqual(len(dependencies._queue_client.items), 1)

        active = self.client.get("/api/rides/active", headers=_as("u1")).json()
        self.assertEqual(active["ride"]["ride_id"], ride["ride_id"])

        response = self.client.post("/api/rides", json=booking, headers=_as("u1"))
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["detail"], "You already have an active ride")

        response = self.client.get(f"/api/rides/{ride['ride_id']}", headers=_as("u1"))
        self.assertEqual(response.status_code, 200)
        self._sign_up("u2")
        response = self.client.get(f"/api/rides/{ride['ride_id']}", headers=_as("u2"))
        self.assertEqual(response.status_code, 403)

    def test_unknown_promo_is_not_an_error(self):
        self._sign_up("u1")
        response = self.client.post(
            "/api/promos/validate",
            json={"code": "NOPE", "amount": 200, "service": "food"},
            headers=_as("u1"),
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["valid"], False)
        self.assertEqual(response.json()["message"], "Invalid promo code")

    def test_upload_signing(self):
        self._sign_up("u1")
        response = self.client.post(
            "/api/uploads/sign",
            json={"target": "profile", "content_type": "image/png"},
            headers=_as("u1"),
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["path"], "users/u1/profile.png")
        self.assertIn("users/u1/profile.png", response.json()["url"])

        response = self.client.get(
            "/api/uploads/sign", params={"path": "users/u2/profile.png"}, headers=_as("u1")
        )
        self.assertEqual(response.status_code, 403)

        response = self.client.delete(
            "/api/uploads", params={"path": "users/u1/profile.png"}, headers=_as("u1")
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(dependencies._storage_client.deleted, ["users/u1/profile.png"])

    def test_driver_application_approval(self):
        self._sign_up("u2", display_name="Pedro Santos")
        response = self.client.post(
            "/api/drivers/apply",
            json={
                "vehicle_type": "motorcycle",
                "vehicle": {
                    "make": "Honda",
                    "model": "Click",
                    "year": 2022,
                    "color": "Red",
                    "plate_number": "123 ABC",
                },
                "license": {"number": "N01-23-456789"},
            },
            headers=_as("u2"),
        )
        self.assertEqual(response.status_code, 201)
        self.assertFalse(response.json()["driver"]["verified"])

        response = self.client.post("/api/drivers/me/online", json={}, headers=_as("u2"))
        self.assertEqual(response.status_code, 409)

        self._sign_up("boss")
        response = self.client.post("/api/admin/drivers/u2/approve", headers=_as("boss"))
        self.assertEqual(response.status_code, 403)

        self.db.update(collections.USERS, "boss", {"role": UserRole.ADMIN})
        pending = self.client.get(
            "/api/admin/drivers", params={"status": "pending"}, headers=_as("boss")
        ).json()
        self.assertEqual([d["driver_id"] for d in pending["applications"]], ["u2"])

        response = self.client.post("/api/admin/drivers/u2/approve", headers=_as("boss"))
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["driver"]["verified"])

        profile = self.client.get("/api/users/me", headers=_as("u2")).json()
        self.assertEqual(profile["user"]["role"], "driver")
        response = self.client.post("/api/drivers/me/online", json={}, headers=_as("u2"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["driver"]["status"], "online")

    def test_maintenance_requires_admin(self):
        self._sign_up("u1")
        response = self.client.post("/api/admin/maintenance", headers=_as("u1"))
        self.assertEqual(response.status_code, 403)
        self.db.update(collections.USERS, "u1", {"role": UserRole.ADMIN})
        response = self.client.post("/api/admin/maintenance", headers=_as("u1"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"released": 0, "expired": 0, "purged": 0})

    def _book_with_driver(self) -> str:
        self._sign_up("u1", display_name="Ana Reyes")
        self._sign_up("d1", display_name="Juan Cruz")
        self.db.add(
            collections.DRIVERS,
            DriverRecord(
                driver_id="d1",
                user_id="d1",
                first_name="Juan",
                last_name="Cruz",
                phone="09170000000",
                vehicle_type=VehicleType.CAR,
                vehicle=Vehicle("Toyota", "Vios", 2020, "White", "ABC 123"),
                license=DriverLicense(number="N01-00-000001"),
                verified=True,
                status=DriverStatus.ONLINE,
                current_location=GeoPoint(14.5869, 121.0614),
            ),
        )
        booking = {
            "pickup": PICKUP,
            "dropoff": DROPOFF,
            "vehicle_type": "car",
            "payment_method": "cash",
        }
        response = self.client.post("/api/rides", json=booking, headers=_as("u1"))
        self.assertEqual(response.status_code, 201)
        return response.json()["ride"]["ride_id"]

    def test_passenger_tracks_assigned_driver(self):
        ride_id = self._book_with_driver()
        response = self.client.get(f"/api/rides/{ride_id}/driver", headers=_as("u1"))
        self.assertEqual(response.status_code, 409)

        response = self.client.post(f"/api/rides/{ride_id}/accept", headers=_as("d1"))
        self.assertEqual(response.status_code, 200)

        response = self.client.get(f"/api/rides/{ride_id}/driver", headers=_as("u1"))
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["status"], "accepted")
        self.assertEqual(body["driver"]["vehicle"]["plate_number"], "ABC 123")
        self.assertIsNotNone(body["driver"]["eta_minutes"])
        self.assertNotIn("license", body["driver"])

        self._sign_up("u2")
        response = self.client.get(f"/api/rides/{ride_id}/driver", headers=_as("u2"))
        self.assertEqual(response.status_code, 403)

    def test_chat_between_passenger_and_driver(self):
        ride_id = self._book_with_driver()
        response = self.client.post(f"/api/chats/rides/{ride_id}", headers=_as("u1"))
        self.assertEqual(response.status_code, 409)

        self.client.post(f"/api/rides/{ride_id}/accept", headers=_as("d1"))
        chat = self.client.post(f"/api/chats/rides/{ride_id}", headers=_as("u1")).json()["chat"]
        self.assertEqual(chat["participant_names"], {"u1": "Ana Reyes", "d1": "Juan Cruz"})

        response = self.client.post(
            f"/api/chats/{chat['chat_id']}/messages",
            json={"message": "Nasa labas na po ako"},
            headers=_as("d1"),
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["message"]["sender_type"], "driver")

        inbox = self.client.get("/api/chats", headers=_as("u1")).json()
        self.assertEqual(inbox["unread_count"], 1)
        self.assertEqual(inbox["chats"][0]["last_message"], "Nasa labas na po ako")

        response = self.client.post(f"/api/chats/{chat['chat_id']}/read", headers=_as("u1"))
        self.assertEqual(response.json(), {"count": 1})

        self._sign_up("u2")
        response = self.client.get(
            f"/api/chats/{chat['chat_id']}/messages", headers=_as("u2")
        )
        self.assertEqual(response.status_code, 403)

    def test_watch_timeout_is_capped(self):
        self._sign_up("u1")
        booking = {
            "pickup": PICKUP,
            "dropoff": DROPOFF,
            "vehicle_type": "car",
            "payment_method": "cash",
        }
        ride = self.client.post("/api/rides", json=booking, headers=_as("u1")).json()["ride"]

        capped = Settings(_env_file=None, watch_max_timeout_seconds=0)
        with patch("gogo.dependencies.get_settings", return_value=capped), patch(
            "gogo.rides.wait_for_change", wraps=wait_for_change
        ) as waiter:
            response = self.client.get(
                f"/api/rides/{ride['ride_id']}/watch",
                params={"timeout": 60, "since_version": ride["version"]},
                headers=_as("u1"),
            )
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()["changed"])
        self.assertEqual(waiter.call_args.args[2], 0)

        response = self.client.get(
            f"/api/rides/{ride['ride_id']}/watch",
            params={"timeout": 3600},
            headers=_as("u1"),
        )
        self.assertEqual(response.status_code, 422)


if __name__ == "__main__":
    unittest.main()
