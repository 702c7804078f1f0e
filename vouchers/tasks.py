"""
Background tasks for the Hotspot Voucher Billing Portal
Handles automatic expiry of vouchers and removal of their hotspot accounts from MikroTik
"""

import logging

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from .mikrotik import remove_voucher_from_router
from .models import AuditLog, Voucher

logger = logging.getLogger(__name__)


def expiry_conditions(now):
    """
    Expiry triggers in priority order.
    A voucher matching several of them is recorded under the first.
    """
    return [
        (
            Voucher.EXPIRY_USAGE_ENDED,
            Q(expected_end_time__lte=now, start_time__isnull=False),
        ),
        (Voucher.EXPIRY_PURCHASE, Q(purchase_expires_at__lte=now)),
        (Voucher.EXPIRY_ACTIVATION, Q(expires_at__lte=now)),
    ]


def expiry_reason(voucher, now=None):
    """Reason a single voucher is due for expiry, or None if nothing has lapsed"""
    now = now or timezone.now()
    if voucher.is_terminal:
        return None
    if voucher.start_time and voucher.expected_end_time and voucher.expected_end_time <= now:
        return Voucher.EXPIRY_USAGE_ENDED
    if voucher.purchase_expires_at and voucher.purchase_expires_at <= now:
        return Voucher.EXPIRY_PURCHASE
    if voucher.expires_at and voucher.expires_at <= now:
        return Voucher.EXPIRY_ACTIVATION
    return None


def find_expired_vouchers(now):
    """
    Return [(voucher, reason), ...] for every non-terminal voucher with at
    least one lapsed expiry trigger. Each voucher appears once.
    """
    matches = {}
    for reason, condition in expiry_conditions(now):
        queryset = (
            Voucher.objects.filter(condition)
            .exclude(status__in=Voucher.TERMINAL_STATUSES)
            .select_related("router__account")
            .order_by("created_at")
        )
        for voucher in queryset:
            matches.setdefault(voucher.pk, (voucher, reason))
    return list(matches.values())


def expire_voucher(voucher, reason, now=None, user=None, source="cron"):
    """
    Expire one voucher.

    1. Removes the hotspot user from its router (best effort)
    2. Sets status to expired, stamps end_time and records the trigger
    3. Appends an audit log entry

    Returns (expired, removed_on_router). expired is False when the voucher
    reached a terminal status in the meantime. Database errors propagate.
    """
    now = now or timezone.now()

    removed = False
    try:
        removed = remove_voucher_from_router(voucher)
    except Exception as e:
        logger.warning(
            f"⚠️  Failed to remove hotspot user for voucher {voucher.pk}: {str(e)}"
        )

    with transaction.atomic():
        if not voucher.mark_expired(reason, now=now):
            logger.info(
                f"Voucher {voucher.reference} became {voucher.status} before expiry, skipping"
            )
            return False, removed

        AuditLog.objects.create(
            account=voucher.router.account,
            user_id=user.pk if user is not None else voucher.generated_by_id,
            action="expire",
            resource_type="voucher",
            resource_id=str(voucher.pk),
            description=f"Voucher expired by {source} ({reason})",
            details={
                "reason": reason,
                "voucher_code": voucher.code,
                "router_id": voucher.router_id,
                "removed_on_router": removed,
            },
            user_agent="expiry-sweep" if source == "cron" else source,
            timestamp=now,
        )

    logger.info(f"⏰ Voucher {voucher.reference} expired ({reason})")
    return True, removed


def expire_vouchers(now=None, dry_run=False):
    """
    Expire vouchers whose activation, purchase or usage window has lapsed.
    This should be run periodically (e.g., every 5 minutes via cron).

    A failure on one voucher is logged and does not stop the others.
    """
    now = now or timezone.now()
    logger.info(f"🔍 Starting voucher expiry check at {now.isoformat()}")

    try:
        candidates = find_expired_vouchers(now)
    except Exception as e:
        logger.error(f"Error selecting vouchers to expire: {str(e)}")
        return {"success": False, "error": str(e)}

    by_reason = {reason: 0 for reason, _ in expiry_conditions(now)}
    result = {
        "success": True,
        "dry_run": dry_run,
        "total_matched": len(candidates),
        "processed": 0,
        "removed_on_router": 0,
        "failed": 0,
        "by_reason": by_reason,
        "matches": [],
    }

    if not candidates:
        logger.info("No vouchers to expire")
        return result

    logger.info(f"Found {len(candidates)} vouchers to expire")

    for voucher, reason in candidates:
        if dry_run:
            result["matches"].append(
                {"id": str(voucher.pk), "reference": voucher.reference, "reason": reason}
            )
            continue

        try:
            expired, removed = expire_voucher(voucher, reason, now=now)
        except Exception as e:
            result["failed"] += 1
            logger.error(f"❌ Failed to expire voucher {voucher.pk}: {str(e)}")
            continue

        if removed:
            result["removed_on_router"] += 1
        if expired:
            result["processed"] += 1
            by_reason[reason] += 1

    logger.info(
        f"🎯 Voucher expiry complete: {result['processed']} expired, "
        f"{result['removed_on_router']} removed on router, {result['failed']} failures"
    )
    return result


def run_expiry_sweep():
    """Cron entry point (see CRONJOBS in settings)"""
    result = expire_vouchers()
    if not result["success"]:
        logger.error(f"Voucher expiry sweep failed: {result.get('error')}")
    return result
