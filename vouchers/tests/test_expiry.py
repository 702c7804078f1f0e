"""
Tests for the voucher expiry sweep
"""
from datetime import timedelta
from io import StringIO
from unittest.mock import patch

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase
from django.utils import timezone

from vouchers.exceptions import RouterConnectionError
from vouchers.models import AuditLog, Voucher
from vouchers.tasks import expire_vouchers, expiry_reason, find_expired_vouchers

from .factories import make_router, make_voucher


@patch("vouchers.tasks.remove_voucher_from_router", return_value=True)
class ExpireVouchersTest(TestCase):
    """Test expire_vouchers selection, reasons and side effects"""

    def setUp(self):
        self.now = timezone.now()
        self.router = make_router()

    def test_activation_expiry(self, mock_remove):
        voucher = make_voucher(self.router, expires_at=self.now - timedelta(minutes=1))

        result = expire_vouchers(now=self.now)

        voucher.refresh_from_db()
        self.assertTrue(result["success"])
        self.assertEqual(result["processed"], 1)
        self.assertEqual(result["removed_on_router"], 1)
        self.assertEqual(voucher.status, Voucher.STATUS_EXPIRED)
        self.assertEqual(voucher.expired_by, Voucher.EXPIRY_ACTIVATION)
        self.assertEqual(voucher.end_time, self.now)
        mock_remove.assert_called_once()

    def test_purchase_expiry(self, mock_remove):
        voucher = make_voucher(
            self.router,
            status=Voucher.STATUS_PAID,
            timed_on_purchase=True,
            purchase_expires_at=self.now - timedelta(seconds=5),
        )

        expire_vouchers(now=self.now)

        voucher.refresh_from_db()
        self.assertEqual(voucher.status, Voucher.STATUS_EXPIRED)
        self.assertEqual(voucher.expired_by, Voucher.EXPIRY_PURCHASE)

    def test_usage_ended(self, mock_remove):
        voucher = make_voucher(
            self.router,
            status=Voucher.STATUS_USED,
            used=True,
            start_time=self.now - timedelta(hours=2),
            expected_end_time=self.now - timedelta(hours=1),
        )

        result = expire_vouchers(now=self.now)

        voucher.refresh_from_db()
        self.assertEqual(voucher.expired_by, Voucher.EXPIRY_USAGE_ENDED)
        self.assertEqual(result["by_reason"][Voucher.EXPIRY_USAGE_ENDED], 1)

    def test_usage_end_without_start_is_ignored(self, mock_remove):
        voucher = make_voucher(
            self.router, expected_end_time=self.now - timedelta(hours=1)
        )

        result = expire_vouchers(now=self.now)

        voucher.refresh_from_db()
        self.assertEqual(result["total_matched"], 0)
        self.assertEqual(voucher.status, Voucher.STATUS_ACTIVE)

    def test_reason_priority(self, mock_remove):
        """A voucher matching every trigger is recorded as usage ended"""
        past = self.now - timedelta(minutes=1)
        voucher = make_voucher(
            self.router,
            status=Voucher.STATUS_USED,
            used=True,
            start_time=self.now - timedelta(hours=1),
            expected_end_time=past,
            purchase_expires_at=past,
            expires_at=past,
        )
        both = make_voucher(
            self.router,
            status=Voucher.STATUS_PAID,
            purchase_expires_at=past,
            expires_at=past,
        )

        result = expire_vouchers(now=self.now)

        voucher.refresh_from_db()
        both.refresh_from_db()
        self.assertEqual(result["total_matched"], 2)
        self.assertEqual(voucher.expired_by, Voucher.EXPIRY_USAGE_ENDED)
        self.assertEqual(both.expired_by, Voucher.EXPIRY_PURCHASE)
        self.assertEqual(mock_remove.call_count, 2)

    def test_terminal_vouchers_are_not_selected(self, mock_remove):
        past = self.now - timedelta(days=1)
        expired = make_voucher(
            self.router,
            status=Voucher.STATUS_EXPIRED,
            expired_by=Voucher.EXPIRY_PURCHASE,
            expires_at=past,
        )
        cancelled = make_voucher(
            self.router, status=Voucher.STATUS_CANCELLED, expires_at=past
        )

        result = expire_vouchers(now=self.now)

        expired.refresh_from_db()
        cancelled.refresh_from_db()
        self.assertEqual(result["total_matched"], 0)
        self.assertEqual(expired.expired_by, Voucher.EXPIRY_PURCHASE)
        self.assertEqual(cancelled.status, Voucher.STATUS_CANCELLED)
        mock_remove.assert_not_called()

    def test_future_deadlines_are_untouched(self, mock_remove):
        voucher = make_voucher(self.router, expires_at=self.now + timedelta(days=1))

        result = expire_vouchers(now=self.now)

        voucher.refresh_from_db()
        self.assertEqual(result["total_matched"], 0)
        self.assertEqual(voucher.status, Voucher.STATUS_ACTIVE)

    def test_second_run_is_a_no_op(self, mock_remove):
        make_voucher(self.router, expires_at=self.now - timedelta(minutes=1))

        first = expire_vouchers(now=self.now)
        second = expire_vouchers(now=self.now + timedelta(minutes=5))

        self.assertEqual(first["processed"], 1)
        self.assertEqual(second["total_matched"], 0)
        self.assertEqual(second["processed"], 0)
        self.assertEqual(AuditLog.objects.filter(action="expire").count(), 1)

    def test_router_failure_does_not_block_expiry(self, mock_remove):
        mock_remove.side_effect = RouterConnectionError("router unreachable")
        voucher = make_voucher(self.router, expires_at=self.now - timedelta(minutes=1))

        result = expire_vouchers(now=self.now)

        voucher.refresh_from_db()
        self.assertEqual(voucher.status, Voucher.STATUS_EXPIRED)
        self.assertEqual(result["processed"], 1)
        self.assertEqual(result["removed_on_router"], 0)
        self.assertEqual(result["failed"], 0)

    def test_audit_log_entry(self, mock_remove):
        voucher = make_voucher(self.router, expires_at=self.now - timedelta(minutes=1))

        expire_vouchers(now=self.now)

        log = AuditLog.objects.get(action="expire")
        self.assertEqual(log.resource_type, "voucher")
        self.assertEqual(log.resource_id, str(voucher.pk))
        self.assertEqual(log.account, self.router.account)
        self.assertEqual(log.details["reason"], Voucher.EXPIRY_ACTIVATION)
        self.assertEqual(log.details["voucher_code"], voucher.code)

    def test_audit_log_attributed_to_generating_user(self, mock_remove):
        operator = self.router.account.owner
        voucher = make_voucher(
            self.router, expires_at=self.now - timedelta(minutes=1), generated_by=operator
        )
        orphan = make_voucher(self.router, expires_at=self.now - timedelta(minutes=1))

        expire_vouchers(now=self.now)

        self.assertEqual(
            AuditLog.objects.get(action="expire", resource_id=str(voucher.pk)).user, operator
        )
        self.assertIsNone(
            AuditLog.objects.get(action="expire", resource_id=str(orphan.pk)).user
        )

    def test_db_failure_is_counted_per_voucher(self, mock_remove):
        first = make_voucher(self.router, expires_at=self.now - timedelta(minutes=2))
        second = make_voucher(self.router, expires_at=self.now - timedelta(minutes=1))

        original = Voucher.mark_expired

        def flaky_mark_expired(voucher, reason, now=None):
            if voucher.pk == first.pk:
                raise RuntimeError("database unavailable")
            return original(voucher, reason, now=now)

        with patch.object(Voucher, "mark_expired", flaky_mark_expired):
            result = expire_vouchers(now=self.now)

        first.refresh_from_db()
        second.refresh_from_db()
        self.assertEqual(result["failed"], 1)
        self.assertEqual(result["processed"], 1)
        self.assertEqual(first.status, Voucher.STATUS_ACTIVE)
        self.assertEqual(second.status, Voucher.STATUS_EXPIRED)

    def test_dry_run_changes_nothing(self, mock_remove):
        voucher = make_voucher(self.router, expires_at=self.now - timedelta(minutes=1))

        result = expire_vouchers(now=self.now, dry_run=True)

        voucher.refresh_from_db()
        self.assertEqual(result["total_matched"], 1)
        self.assertEqual(result["matches"][0]["reference"], voucher.reference)
        self.assertEqual(voucher.status, Voucher.STATUS_ACTIVE)
        mock_remove.assert_not_called()

    def test_selection_failure(self, mock_remove):
        with patch(
            "vouchers.tasks.find_expired_vouchers", side_effect=RuntimeError("db down")
        ):
            result = expire_vouchers(now=self.now)

        self.assertFalse(result["success"])
        self.assertEqual(result["error"], "db down")


class ExpiryReasonTest(TestCase):
    """Test the per-voucher reason used by the admin action"""

    def test_matches_sweep_priority(self):
        now = timezone.now()
        past = now - timedelta(minutes=1)
        voucher = make_voucher(
            start_time=now - timedelta(hours=1),
            expected_end_time=past,
            purchase_expires_at=past,
            expires_at=past,
            status=Voucher.STATUS_USED,
        )

        self.assertEqual(expiry_reason(voucher, now), Voucher.EXPIRY_USAGE_ENDED)
        self.assertEqual(find_expired_vouchers(now)[0][1], Voucher.EXPIRY_USAGE_ENDED)

    def test_not_due(self):
        voucher = make_voucher(expires_at=timezone.now() + timedelta(days=1))
        self.assertIsNone(expiry_reason(voucher))


@patch("vouchers.tasks.remove_voucher_from_router", return_value=False)
class ExpireVouchersCommandTest(TestCase):
    """Test the expire_vouchers management command"""

    def test_command_expires_and_reports(self, mock_remove):
        voucher = make_voucher(expires_at=timezone.now() - timedelta(minutes=1))
        out = StringIO()

        call_command("expire_vouchers", stdout=out)

        voucher.refresh_from_db()
        self.assertEqual(voucher.status, Voucher.STATUS_EXPIRED)
        self.assertIn("Expired 1 of 1 vouchers", out.getvalue())

    def test_command_dry_run(self, mock_remove):
        voucher = make_voucher(expires_at=timezone.now() - timedelta(minutes=1))
        out = StringIO()

        call_command("expire_vouchers", "--dry-run", stdout=out)

        voucher.refresh_from_db()
        self.assertEqual(voucher.status, Voucher.STATUS_ACTIVE)
        self.assertIn(voucher.reference, out.getvalue())
        self.assertIn("1 vouchers would expire", out.getvalue())

    def test_command_fails_when_sweep_fails(self, mock_remove):
        with patch(
            "vouchers.management.commands.expire_vouchers.expire_vouchers",
            return_value={"success": False, "error": "db down"},
        ):
            with self.assertRaises(CommandError):
                call_command("expire_vouchers", stdout=StringIO())
