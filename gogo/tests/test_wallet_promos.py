import unittest

from gogo import db as collections
from gogo import promos, wallet
from gogo.db import InMemoryDbClient
from gogo.errors import Aborted, FailedPrecondition, InvalidArgument, PermissionDenied
from gogo.records import (
    GeoPoint,
    Place,
    PromoRecord,
    RideFare,
    RideRecord,
    UserRecord,
    now_ts,
)
from gogo.types import (
    PaymentMethod,
    PaymentStatus,
    PromoType,
    RideStatus,
    ServiceType,
    TransactionType,
    VehicleType,
)


def _ride(ride_id: str, method: PaymentMethod, total: float = 150, **kwargs) -> RideRecord:
    place = Place(address="Somewhere", coordinates=GeoPoint(14.6, 121.0))
    return RideRecord(
        ride_id=ride_id,
        passenger_id="u1",
        vehicle_type=VehicleType.CAR,
        pickup=place,
        dropoff=place,
        fare=RideFare(base=60, distance=0, time=0, total=total),
        payment_method=method,
        **kwargs,
    )


class WalletTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.db.add(collections.USERS, UserRecord(user_id="u1", wallet_balance=200))

    def test_top_up_minimum(self):
        with self.assertRaises(InvalidArgument) as ctx:
            wallet.top_up(self.db, "u1", 50, "gcash")
        self.assertEqual(str(ctx.exception), "Minimum top-up is ₱100")
        self.assertEqual(wallet.get_balance(self.db, "u1"), 200)

    def test_top_up_writes_ledger(self):
        entry = wallet.top_up(self.db, "u1", 300, "gcash")
        self.assertEqual(entry.balance, 500)
        self.assertEqual(entry.type, TransactionType.TOPUP)
        self.assertEqual(wallet.get_balance(self.db, "u1"), 500)
        history = wallet.list_transactions(self.db, "u1")
        self.assertEqual([t.transaction_id for t in history], [entry.transaction_id])

    def test_ensure_wallet_covers(self):
        wallet.ensure_wallet_covers(self.db, "u1", 200)
        with self.assertRaises(FailedPrecondition) as ctx:
            wallet.ensure_wallet_covers(self.db, "u1", 201)
        self.assertEqual(str(ctx.exception), "Insufficient wallet balance")

    def test_settle_wallet_ride(self):
        ride = _ride("r1", PaymentMethod.WALLET)
        with self.db.transaction() as tx:
            changes = wallet.settle_on_completion(tx, ride)
        self.assertEqual(changes["payment_status"], PaymentStatus.PAID)
        self.assertIn("payment_transaction_id", changes)
        self.assertEqual(wallet.get_balance(self.db, "u1"), 50)

    def test_settle_wallet_ride_without_funds_marks_failed(self):
        ride = _ride("r1", PaymentMethod.WALLET, total=900)
        with self.db.transaction() as tx:
            changes = wallet.settle_on_completion(tx, ride)
        self.assertEqual(changes, {"payment_status": PaymentStatus.FAILED})
        self.assertEqual(wallet.get_balance(self.db, "u1"), 200)

    def test_settle_cash_ride_marks_paid_without_debit(self):
        ride = _ride("r1", PaymentMethod.CASH)
        with self.db.transaction() as tx:
            changes = wallet.settle_on_completion(tx, ride)
        self.assertEqual(changes["payment_status"], PaymentStatus.PAID)
        self.assertEqual(wallet.get_balance(self.db, "u1"), 200)

    def test_refund_only_for_paid_wallet_bookings(self):
        unpaid = _ride("r1", PaymentMethod.WALLET)
        with self.db.transaction() as tx:
            self.assertEqual(wallet.refund_if_paid(tx, unpaid), {})

        paid = _ride("r2", PaymentMethod.WALLET, payment_status=PaymentStatus.PAID)
        with self.db.transaction() as tx:
            changes = wallet.refund_if_paid(tx, paid)
        self.assertEqual(changes, {"payment_status": PaymentStatus.REFUNDED})
        self.assertEqual(wallet.get_balance(self.db, "u1"), 350)

    def test_pay_ride_with_wallet(self):
        self.db.add(collections.RIDES, _ride("r1", PaymentMethod.WALLET))
        result = wallet.pay_ride(self.db, "r1", "u1")
        self.assertTrue(result.success)
        self.assertEqual(result.balance, 50)
        self.assertEqual(
            self.db.get(collections.RIDES, "r1").payment_status, PaymentStatus.PAID
        )
        with self.assertRaises(FailedPrecondition) as ctx:
            wallet.pay_ride(self.db, "r1", "u1")
        self.assertEqual(str(ctx.exception), "Ride has already been paid")

    def test_pay_ride_checks_owner_and_status(self):
        self.db.add(collections.RIDES, _ride("r1", PaymentMethod.CASH))
        self.db.add(
            collections.RIDES,
            _ride("r2", PaymentMethod.CASH, status=RideStatus.CANCELLED),
        )
        with self.assertRaises(PermissionDenied):
            wallet.pay_ride(self.db, "r1", "someone-else")
        with self.assertRaises(FailedPrecondition):
            wallet.pay_ride(self.db, "r2", "u1")

        result = wallet.pay_ride(self.db, "r1", "u1")
        self.assertEqual(result.payment_status, PaymentStatus.PENDING_CASH)

    def test_gateway_payment_redirects(self):
        self.db.add(collections.RIDES, _ride("r1", PaymentMethod.GCASH))
        result = wallet.pay_ride(self.db, "r1", "u1")
        self.assertFalse(result.success)
        self.assertEqual(result.redirect_url, "/payment/gcash?ride=r1")


class PromoTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.now = now_ts()

    def _add(self, code: str, **kwargs) -> PromoRecord:
        fields = dict(
            promo_id=f"promo_{code}",
            code=code,
            type=PromoType.PERCENTAGE,
            value=20,
            valid_from=self.now - 3600,
            valid_to=self.now + 3600,
        )
        fields.update(kwargs)
        promo = PromoRecord(**fields)
        self.db.add(collections.PROMOS, promo)
        return promo

    def test_valid_code_is_case_insensitive(self):
        self._add("SAVE20", max_discount=30)
        check = promos.validate_promo(self.db, " save20 ", 250, ServiceType.FOOD)
        self.assertTrue(check.valid)
        self.assertEqual(check.discount, 30)
        self.assertEqual(check.promo_id, "promo_SAVE20")

    def test_rejection_messages(self):
        self._add("OLD", valid_to=self.now - 1)
        self._add("RIDEONLY", applicable_services=[ServiceType.RIDES])
        self._add("BIGORDER", min_order=500)
        self._add("USEDUP", usage_limit=2, used_count=2)
        self._add("OFF", is_active=False)

        cases = {
            "NOPE": "Invalid promo code",
            "OFF": "Invalid promo code",
            "OLD": "This promo code has expired",
            "RIDEONLY": "This promo is not valid for this service",
            "BIGORDER": "Minimum order of ₱500 required",
            "USEDUP": "This promo code has reached its usage limit",
        }
        for code, message in cases.items():
            check = promos.validate_promo(self.db, code, 200, ServiceType.FOOD)
            self.assertFalse(check.valid, code)
            self.assertEqual(check.message, message)

    def test_require_promo_raises(self):
        with self.assertRaises(InvalidArgument):
            promos.require_promo(self.db, "NOPE", 100, ServiceType.RIDES)

    def test_redeem_respects_usage_limit(self):
        self._add("ONCE", usage_limit=1)
        with self.db.transaction() as tx:
            promos.redeem_promo(tx, "promo_ONCE")
        self.assertEqual(self.db.get(collections.PROMOS, "promo_ONCE").used_count, 1)
        with self.assertRaises(Aborted):
            with self.db.transaction() as tx:
                promos.redeem_promo(tx, "promo_ONCE")

    def test_create_promo(self):
        promo = promos.create_promo(
            self.db,
            code="welcome",
            type=PromoType.FIXED,
            value=50,
            valid_from=self.now - 10,
            valid_to=self.now + 10,
        )
        self.assertEqual(promo.code, "WELCOME")
        self.assertEqual([p.code for p in promos.list_active_promos(self.db)], ["WELCOME"])
        with self.assertRaises(InvalidArgument):
            promos.create_promo(
                self.db,
                code="WELCOME",
                type=PromoType.FIXED,
                value=50,
                valid_from=self.now,
                valid_to=self.now + 10,
            )
        with self.assertRaises(InvalidArgument):
            promos.create_promo(
                self.db,
                code="HUGE",
                type=PromoType.PERCENTAGE,
                value=150,
                valid_from=self.now,
                valid_to=self.now + 10,
            )

    def test_deactivate_hides_promo(self):
        self._add("GONE")
        promos.set_promo_active(self.db, "promo_GONE", False)
        self.assertEqual(promos.list_active_promos(self.db), [])


if __name__ == "__main__":
    unittest.main()
