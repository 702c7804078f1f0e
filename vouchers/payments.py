"""
M-Pesa C2B payment confirmation processing for voucher purchases

Customers pay to the operator's paybill quoting the voucher's public
reference as the account number (BillRefNumber). The voucher code is also
the hotspot password, so it never takes part in payment matching.

Every outcome is reported to Safaricom in its own envelope:
    {"ResultCode": 0, "ResultDesc": "..."}  accepted, do not retry
    {"ResultCode": 1, "ResultDesc": "..."}  rejected
"""

import logging
import time
from datetime import timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from .exceptions import VoucherUpdateError
from .models import AuditLog, SystemConfig, Transaction, Voucher, WebhookLog

logger = logging.getLogger(__name__)

RESULT_ACCEPTED = 0
RESULT_REJECTED = 1

PAYMENT_METHOD = "mpesa"
AMOUNT_TOLERANCE = Decimal("0.01")
CENTS = Decimal("0.01")
MAX_TRANS_ID_LENGTH = Voucher._meta.get_field("payment_transaction_id").max_length


def mpesa_response(result_code: int, description: str) -> dict:
    return {"ResultCode": result_code, "ResultDesc": description}


def accepted(description: str) -> dict:
    return mpesa_response(RESULT_ACCEPTED, description)


def rejected(description: str) -> dict:
    return mpesa_response(RESULT_REJECTED, description)


def parse_amount(value):
    """Parse TransAmount ("100", "100.00" or a number). Returns None if invalid."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return amount if amount.is_finite() else None


# ---------------------------------------------------------------------------
# Commission
# ---------------------------------------------------------------------------


def resolve_commission_rate(account) -> Decimal:
    """
    Commission percentage for a router owner.

    Precedence: the account's own rate, then the system config rate for its
    business type, then DEFAULT_COMMISSION_RATE.
    """
    if account is not None and account.commission_rate is not None:
        return Decimal(account.commission_rate)

    business_type = account.business_type if account is not None else "personal"
    rates = SystemConfig.get_value(settings.COMMISSION_RATES_CONFIG_KEY)
    if isinstance(rates, dict) and rates.get(business_type) is not None:
        return Decimal(str(rates[business_type]))

    return Decimal(str(settings.DEFAULT_COMMISSION_RATE))


def compute_commission(amount, rate) -> Decimal:
    """amount x rate / 100, rounded half-up to cents"""
    return (Decimal(amount) * Decimal(rate) / 100).quantize(CENTS, rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------------
# Webhook processing
# ---------------------------------------------------------------------------


def _elapsed_ms(started):
    return int((time.monotonic() - started) * 1000)


def _log_webhook(status, payload, started, request_meta, reason="", voucher=None, metadata=None):
    return WebhookLog.objects.create(
        status=status,
        reason=reason,
        reference=str(payload.get("BillRefNumber") or "")[:100],
        transaction_id=str(payload.get("TransID") or "")[:100],
        voucher=voucher,
        payload=payload,
        metadata=metadata or {},
        processing_time_ms=_elapsed_ms(started),
        source_ip=request_meta.get("source_ip"),
        user_agent=request_meta.get("user_agent", ""),
    )


def _duplicate_response(voucher, trans_id, payload, started, request_meta):
    same_transaction = voucher.payment_transaction_id == trans_id
    reason = "duplicate_transid" if same_transaction else "already_purchased"

    logger.warning(
        f"Duplicate M-Pesa confirmation for {voucher.reference}: "
        f"TransID={trans_id}, existing={voucher.payment_transaction_id}"
    )
    _log_webhook(
        WebhookLog.STATUS_DUPLICATE,
        payload,
        started,
        request_meta,
        reason=reason,
        voucher=voucher,
        metadata={
            "transaction_id": trans_id,
            "existing_transaction_id": voucher.payment_transaction_id,
        },
    )

    # Still accepted, otherwise Safaricom keeps retrying an already processed payment
    if same_transaction:
        return accepted("Duplicate transaction - already processed")
    return accepted("Voucher already purchased")


def process_c2b_confirmation(payload, source_ip=None, user_agent=""):
    """
    Handle one C2B confirmation. Never raises: unexpected errors are logged
    to the webhook log and turned into a rejection.
    """
    started = time.monotonic()
    request_meta = {"source_ip": source_ip, "user_agent": user_agent}

    if not isinstance(payload, dict):
        logger.error(f"M-Pesa confirmation payload is not an object: {type(payload).__name__}")
        return rejected("Missing required fields")

    try:
        return _process_confirmation(payload, started, request_meta)
    except Exception as e:
        logger.exception(f"Error processing M-Pesa confirmation: {str(e)}")
        try:
            _log_webhook(
                WebhookLog.STATUS_ERROR,
                payload,
                started,
                request_meta,
                reason="exception",
                metadata={"error": str(e)},
            )
        except Exception as log_error:
            logger.error(f"Failed to log M-Pesa webhook error: {str(log_error)}")
        return rejected("Failed to process payment")


def _process_confirmation(payload, started, request_meta):
    trans_id = str(payload.get("TransID") or "").strip()
    reference = str(payload.get("BillRefNumber") or "").strip()
    phone_number = str(payload.get("MSISDN") or "").strip()
    raw_amount = payload.get("TransAmount")

    logger.info(
        f"M-Pesa confirmation received: TransID={trans_id} "
        f"TransAmount={raw_amount} BillRefNumber={reference} "
        f"TransTime={payload.get('TransTime')}"
    )

    # 1. Required fields
    if not trans_id or raw_amount in (None, "") or not reference:
        logger.error(f"M-Pesa confirmation missing required fields: {sorted(payload)}")
        return rejected("Missing required fields")

    if len(trans_id) > MAX_TRANS_ID_LENGTH or len(phone_number) > MAX_TRANS_ID_LENGTH:
        logger.error(
            f"M-Pesa confirmation has over-long TransID or MSISDN: "
            f"{len(trans_id)}/{len(phone_number)} chars"
        )
        return rejected("Invalid TransID or MSISDN")

    paid_amount = parse_amount(raw_amount)
    if paid_amount is None:
        logger.error(f"M-Pesa confirmation has invalid TransAmount: {raw_amount!r}")
        return rejected("Invalid transaction amount")

    # 2. Lookup by public payment reference
    voucher = (
        Voucher.objects.select_related("router__account")
        .filter(reference=reference)
        .first()
    )

    # 3. Already paid (provider retry, or a second payment for the same voucher)
    if voucher is not None and voucher.payment_transaction_id:
        return _duplicate_response(voucher, trans_id, payload, started, request_meta)

    if voucher is None or voucher.status not in Voucher.PAYABLE_STATUSES:
        logger.error(f"No payable voucher found for reference: {reference}")
        metadata = {"transaction_id": trans_id, "msisdn": phone_number}
        if voucher is not None:
            metadata["voucher_status"] = voucher.status
        _log_webhook(
            WebhookLog.STATUS_FAILED,
            payload,
            started,
            request_meta,
            reason="voucher_not_found",
            metadata=metadata,
        )
        return rejected(f"No voucher found for reference: {reference}. Please contact support.")

    # 4. Amount must match the package price
    expected_amount = voucher.price
    if abs(paid_amount - expected_amount) > AMOUNT_TOLERANCE:
        logger.error(
            f"Amount mismatch for {reference}. Expected: {expected_amount}, Paid: {paid_amount}"
        )
        _log_webhook(
            WebhookLog.STATUS_FAILED,
            payload,
            started,
            request_meta,
            reason="amount_mismatch",
            voucher=voucher,
            metadata={
                "expected_amount": str(expected_amount),
                "paid_amount": str(paid_amount),
                "transaction_id": trans_id,
            },
        )
        return rejected(f"Amount mismatch. Expected {expected_amount}, received {paid_amount}")

    # 5. Commission
    account = voucher.router.account
    commission_rate = resolve_commission_rate(account)
    commission = compute_commission(paid_amount, commission_rate)

    # 6. Vouchers timed from purchase start their clock now
    purchase_time = timezone.now()
    changes = {
        "payment_method": PAYMENT_METHOD,
        "payment_transaction_id": trans_id,
        "payment_phone_number": phone_number,
        "payment_amount": paid_amount,
        "payment_commission": commission,
        "payment_date": purchase_time,
        "status": Voucher.STATUS_PAID,
        "updated_at": purchase_time,
    }
    purchase_expires_at = None
    if voucher.timed_on_purchase and voucher.max_duration_minutes:
        purchase_expires_at = purchase_time + timedelta(minutes=voucher.max_duration_minutes)
        changes["purchase_expires_at"] = purchase_expires_at

    # 7. Conditional commit plus ledger, audit and webhook rows, all or nothing
    with transaction.atomic():
        updated = Voucher.objects.filter(
            pk=voucher.pk,
            payment_transaction_id__isnull=True,
            status__in=Voucher.PAYABLE_STATUSES,
        ).update(**changes)

        if updated:
            Transaction.objects.create(
                account=account,
                router=voucher.router,
                voucher=voucher,
                transaction_id=trans_id,
                method=PAYMENT_METHOD,
                reference=reference,
                phone_number=phone_number,
                amount=paid_amount,
                commission=commission,
                net_amount=paid_amount - commission,
                currency=voucher.currency,
                created_at=purchase_time,
            )
            AuditLog.objects.create(
                account=account,
                action="voucher_purchased",
                resource_type="voucher",
                resource_id=str(voucher.pk),
                description=f"Voucher {reference} paid via M-Pesa",
                details={
                    "BillRefNumber": reference,
                    "transactionId": trans_id,
                    "amount": str(paid_amount),
                    "commission": str(commission),
                    "commissionRate": str(commission_rate),
                    "phoneNumber": phone_number,
                    "purchaseExpiresAt": (
                        purchase_expires_at.isoformat() if purchase_expires_at else None
                    ),
                    "processingTimeMs": _elapsed_ms(started),
                },
                ip_address=request_meta.get("source_ip") or "mpesa-webhook",
                user_agent="Safaricom M-Pesa",
                timestamp=purchase_time,
            )
            _log_webhook(
                WebhookLog.STATUS_SUCCESS,
                payload,
                started,
                request_meta,
                voucher=voucher,
                metadata={
                    "transaction_id": trans_id,
                    "amount": str(paid_amount),
                    "commission": str(commission),
                },
            )

    if not updated:
        voucher.refresh_from_db()
        if voucher.payment_transaction_id:
            # A concurrent delivery committed first
            return _duplicate_response(voucher, trans_id, payload, started, request_meta)
        raise VoucherUpdateError(
            f"Failed to update voucher {voucher.pk} (status {voucher.status})"
        )

    logger.info(
        f"✅ Voucher purchased successfully. Reference: {reference}, "
        f"Commission: {voucher.currency} {commission}"
    )
    return accepted("Payment processed successfully")
