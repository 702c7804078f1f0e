"""
Tests for voucher models
"""
from datetime import timedelta
from decimal import Decimal

from django.test import TestCase, override_settings
from django.utils import timezone

from vouchers.exceptions import InvalidVoucherTransition
from vouchers.models import SystemConfig, Transaction, Voucher

from .factories import make_router, make_voucher


class GenerateBatchTest(TestCase):
    """Test Voucher.objects.generate_batch"""

    def setUp(self):
        self.router = make_router()

    def test_generates_requested_quantity(self):
        vouchers = Voucher.objects.generate_batch(
            self.router, "1hour", duration_minutes=60, price=Decimal("50"), quantity=5
        )
        self.assertEqual(len(vouchers), 5)
        self.assertEqual(Voucher.objects.filter(router=self.router).count(), 5)

    def test_codes_and_references(self):
        vouchers = Voucher.objects.generate_batch(
            self.router, "1hour", duration_minutes=60, price=Decimal("50"), quantity=20
        )
        codes = {v.code for v in vouchers}
        references = {v.reference for v in vouchers}
        self.assertEqual(len(codes), 20)
        self.assertEqual(len(references), 20)
        for voucher in vouchers:
            self.assertEqual(len(voucher.code), Voucher.CODE_LENGTH)
            self.assertTrue(set(voucher.code) <= set(Voucher.CODE_ALPHABET))
            self.assertEqual(voucher.password, voucher.code)
            self.assertTrue(voucher.reference.startswith("VCH"))
            self.assertEqual(len(voucher.reference), 12)

    def test_batch_fields(self):
        vouchers = Voucher.objects.generate_batch(
            self.router,
            "1day",
            duration_minutes=1440,
            price=Decimal("100"),
            quantity=3,
            display_name="1 Day",
            timed_on_purchase=True,
        )
        batch_ids = {v.batch_id for v in vouchers}
        self.assertEqual(len(batch_ids), 1)
        self.assertTrue(batch_ids.pop().startswith("BATCH-"))
        voucher = vouchers[0]
        self.assertEqual(voucher.status, Voucher.STATUS_ACTIVE)
        self.assertEqual(voucher.batch_size, 3)
        self.assertEqual(voucher.max_duration_minutes, 1440)
        self.assertEqual(voucher.package_display_name, "1 Day")
        self.assertTrue(voucher.timed_on_purchase)

    @override_settings(VOUCHER_DEFAULT_EXPIRY_DAYS=30)
    def test_auto_expire_sets_activation_deadline(self):
        before = timezone.now()
        voucher = Voucher.objects.generate_batch(
            self.router, "1hour", duration_minutes=60, price=Decimal("50"), quantity=1
        )[0]
        self.assertGreaterEqual(voucher.expires_at, before + timedelta(days=30))
        self.assertLessEqual(voucher.expires_at, timezone.now() + timedelta(days=30))

    def test_no_auto_expire(self):
        voucher = Voucher.objects.generate_batch(
            self.router,
            "1hour",
            duration_minutes=60,
            price=Decimal("50"),
            quantity=1,
            auto_expire=False,
        )[0]
        self.assertIsNone(voucher.expires_at)
        self.assertFalse(voucher.auto_delete)

    def test_quantity_bounds(self):
        with self.assertRaises(ValueError):
            Voucher.objects.generate_batch(
                self.router, "1hour", duration_minutes=60, price=Decimal("50"), quantity=0
            )
        with self.assertRaises(ValueError):
            Voucher.objects.generate_batch(
                self.router, "1hour", duration_minutes=60, price=Decimal("50"), quantity=1001
            )


class VoucherSessionTest(TestCase):
    """Test starting a hotspot session on a voucher"""

    def test_start_session_sets_usage_window(self):
        voucher = make_voucher(max_duration_minutes=90)
        now = timezone.now()

        self.assertTrue(voucher.start_session(device_mac="AA:BB:CC:DD:EE:FF", now=now))

        self.assertTrue(voucher.used)
        self.assertEqual(voucher.status, Voucher.STATUS_USED)
        self.assertEqual(voucher.start_time, now)
        self.assertEqual(voucher.expected_end_time, now + timedelta(minutes=90))
        self.assertEqual(voucher.device_mac, "AA:BB:CC:DD:EE:FF")

    def test_paid_voucher_can_start(self):
        voucher = make_voucher(status=Voucher.STATUS_PAID)
        self.assertTrue(voucher.start_session())
        self.assertEqual(voucher.status, Voucher.STATUS_USED)

    def test_second_start_keeps_first_clock(self):
        voucher = make_voucher()
        first = timezone.now() - timedelta(minutes=10)
        voucher.start_session(now=first)

        stale = Voucher.objects.get(pk=voucher.pk)
        stale.status = Voucher.STATUS_ACTIVE  # in-memory copy from before the first login
        self.assertFalse(stale.start_session())
        self.assertEqual(stale.start_time, first)

    def test_terminal_voucher_cannot_start(self):
        voucher = make_voucher(status=Voucher.STATUS_EXPIRED)
        with self.assertRaises(InvalidVoucherTransition):
            voucher.start_session()


class VoucherTransitionTest(TestCase):
    """Test expiry and cancellation transitions"""

    def test_mark_expired(self):
        voucher = make_voucher()
        now = timezone.now()

        self.assertTrue(voucher.mark_expired(Voucher.EXPIRY_ACTIVATION, now=now))

        self.assertEqual(voucher.status, Voucher.STATUS_EXPIRED)
        self.assertEqual(voucher.expired_by, Voucher.EXPIRY_ACTIVATION)
        self.assertEqual(voucher.end_time, now)

    def test_mark_expired_keeps_existing_end_time(self):
        ended = timezone.now() - timedelta(hours=1)
        voucher = make_voucher(end_time=ended)

        voucher.mark_expired(Voucher.EXPIRY_USAGE_ENDED)

        self.assertEqual(voucher.end_time, ended)

    def test_terminal_status_is_never_left(self):
        for status in Voucher.TERMINAL_STATUSES:
            voucher = make_voucher(status=status)
            self.assertFalse(voucher.mark_expired(Voucher.EXPIRY_PURCHASE))
            self.assertEqual(voucher.status, status)
            self.assertEqual(voucher.expired_by, "")

    def test_cancel(self):
        voucher = make_voucher()
        voucher.cancel()
        self.assertEqual(voucher.status, Voucher.STATUS_CANCELLED)

    def test_cancel_refused_for_used_or_terminal(self):
        used = make_voucher(status=Voucher.STATUS_USED, used=True)
        with self.assertRaises(InvalidVoucherTransition):
            used.cancel()

        expired = make_voucher(status=Voucher.STATUS_EXPIRED)
        with self.assertRaises(InvalidVoucherTransition):
            expired.cancel()
        expired.refresh_from_db()
        self.assertEqual(expired.status, Voucher.STATUS_EXPIRED)


class LedgerTest(TestCase):
    """Test the transaction ledger and system config"""

    def test_transactions_are_immutable(self):
        txn = Transaction.objects.create(
            transaction_id="MPESA1",
            amount=Decimal("100.00"),
            commission=Decimal("20.00"),
            net_amount=Decimal("80.00"),
        )
        txn.amount = Decimal("1.00")
        with self.assertRaises(ValueError):
            txn.save()

    def test_system_config_get_value(self):
        self.assertEqual(SystemConfig.get_value("commission_rates", {}), {})
        SystemConfig.objects.create(key="commission_rates", value={"isp": 10})
        self.assertEqual(SystemConfig.get_value("commission_rates"), {"isp": 10})
