"""
Database models for the Hotspot Voucher Billing Portal
Multi-tenant: billing accounts own routers, routers own vouchers
"""

import secrets
import string
import time
from datetime import timedelta
import uuid

from django.conf import settings
from django.contrib.auth.models import User as DjangoUser
from django.db import models, transaction
from django.db.models import F, Value
from django.db.models.functions import Coalesce
from django.utils import timezone

from .exceptions import InvalidVoucherTransition


# =============================================================================
# ACCOUNTS & ROUTERS
# =============================================================================


class Account(models.Model):
    """
    Billing account - a hotspot operator (homeowner, small business or ISP)
    Owns routers, and through them, vouchers and payments
    """

    BUSINESS_TYPE_CHOICES = [
        ("homeowner", "Homeowner"),
        ("personal", "Personal"),
        ("isp", "ISP"),
        ("enterprise", "Enterprise"),
    ]

    name = models.CharField(max_length=200)
    owner = models.ForeignKey(
        DjangoUser, on_delete=models.PROTECT, related_name="billing_accounts"
    )
    business_type = models.CharField(
        max_length=20, choices=BUSINESS_TYPE_CHOICES, default="personal"
    )
    # Explicit per-account commission; falls back to system config when empty
    commission_rate = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Platform commission in percent. Leave empty to use the business type rate.",
    )
    email = models.EmailField(blank=True)
    phone_number = models.CharField(max_length=20, blank=True)

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "accounts"
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.name} ({self.business_type})"


class Router(models.Model):
    """
    MikroTik router registered by an account
    Hotspot users for vouchers live on this router
    """

    ROUTER_TYPE_CHOICES = [
        ("mikrotik", "MikroTik"),
    ]

    STATUS_CHOICES = [
        ("online", "Online"),
        ("offline", "Offline"),
        ("configuring", "Configuring"),
        ("error", "Error"),
    ]

    account = models.ForeignKey(
        Account, on_delete=models.CASCADE, related_name="routers"
    )
    name = models.CharField(max_length=100)
    router_type = models.CharField(
        max_length=20, choices=ROUTER_TYPE_CHOICES, default="mikrotik"
    )

    # Connection settings
    host = models.CharField(max_length=255, help_text="Local IP or hostname")
    vpn_ip = models.GenericIPAddressField(
        null=True, blank=True, help_text="Address inside the management VPN tunnel"
    )
    port = models.IntegerField(default=8728)
    username = models.CharField(max_length=100, default="admin")
    password = models.CharField(max_length=255)  # Should be encrypted in production
    use_ssl = models.BooleanField(default=False)

    status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default="configuring"
    )
    last_seen = models.DateTimeField(null=True, blank=True)

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "routers"
        ordering = ["account", "name"]
        unique_together = ["account", "name"]

    def __str__(self):
        return f"{self.account.name} - {self.name} ({self.host})"


# =============================================================================
# VOUCHERS
# =============================================================================


class VoucherManager(models.Manager):
    def generate_batch(
        self,
        router,
        package_type,
        duration_minutes,
        price,
        quantity=10,
        display_name="",
        data_limit_bytes=0,
        upload_kbps=512,
        download_kbps=1024,
        auto_expire=True,
        expiry_days=None,
        timed_on_purchase=False,
        generated_by=None,
    ):
        """
        Create `quantity` vouchers for one router package in a single batch.

        Codes double as hotspot username and password. Each voucher also gets
        a separate public payment reference so the code never has to be
        shared with the payment provider.
        """
        if not 1 <= quantity <= 1000:
            raise ValueError("Quantity must be between 1 and 1000")

        if expiry_days is None:
            expiry_days = settings.VOUCHER_DEFAULT_EXPIRY_DAYS
        if auto_expire and expiry_days < 1:
            raise ValueError("Auto-expiring vouchers need at least 1 expiry day")

        now = timezone.now()
        batch_id = f"BATCH-{int(time.time() * 1000)}"
        expires_at = now + timedelta(days=expiry_days) if auto_expire else None

        codes = set()
        references = set()
        vouchers = []
        for _ in range(quantity):
            code = Voucher.generate_code(router=router, exclude=codes)
            reference = Voucher.generate_reference(exclude=references)
            codes.add(code)
            references.add(reference)

            vouchers.append(
                self.model(
                    router=router,
                    code=code,
                    password=code,
                    reference=reference,
                    package_type=package_type,
                    package_display_name=display_name or package_type,
                    duration_minutes=duration_minutes,
                    data_limit_bytes=data_limit_bytes,
                    upload_kbps=upload_kbps,
                    download_kbps=download_kbps,
                    price=price,
                    currency=settings.VOUCHER_CURRENCY,
                    max_duration_minutes=duration_minutes,
                    timed_on_purchase=timed_on_purchase,
                    expires_at=expires_at,
                    auto_delete=auto_expire,
                    batch_id=batch_id,
                    batch_size=quantity,
                    generated_by=generated_by,
                    status=Voucher.STATUS_ACTIVE,
                )
            )

        with transaction.atomic():
            return self.bulk_create(vouchers)


class Voucher(models.Model):
    """
    Prepaid hotspot voucher.

    The code is the router account username (and password); the reference is
    the public token customers quote when paying. Package attributes are fixed
    at generation time. Usage, payment and expiry details are kept in
    prefixed field groups.
    """

    STATUS_ACTIVE = "active"
    STATUS_PENDING = "pending"
    STATUS_PAID = "paid"
    STATUS_USED = "used"
    STATUS_EXPIRED = "expired"
    STATUS_CANCELLED = "cancelled"

    STATUS_CHOICES = [
        (STATUS_ACTIVE, "Active"),
        (STATUS_PENDING, "Pending payment"),
        (STATUS_PAID, "Paid"),
        (STATUS_USED, "Used"),
        (STATUS_EXPIRED, "Expired"),
        (STATUS_CANCELLED, "Cancelled"),
    ]

    # No status change is allowed once a voucher reaches one of these
    TERMINAL_STATUSES = (STATUS_EXPIRED, STATUS_CANCELLED)
    # Statuses a payment confirmation may be matched against
    PAYABLE_STATUSES = (STATUS_ACTIVE, STATUS_PENDING)

    EXPIRY_ACTIVATION = "activationExpiry"
    EXPIRY_PURCHASE = "purchaseExpiry"
    EXPIRY_USAGE_ENDED = "usageEnded"

    EXPIRY_REASON_CHOICES = [
        (EXPIRY_ACTIVATION, "Activation deadline passed"),
        (EXPIRY_PURCHASE, "Purchase window elapsed"),
        (EXPIRY_USAGE_ENDED, "Usage period ended"),
    ]

    # Unambiguous characters only (no 0/O, 1/I)
    CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
    CODE_LENGTH = 8
    REFERENCE_PREFIX = "VCH"
    REFERENCE_ALPHABET = string.ascii_uppercase + string.digits

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    router = models.ForeignKey(
        Router, on_delete=models.CASCADE, related_name="vouchers"
    )

    # Identity
    code = models.CharField(max_length=32, db_index=True)
    password = models.CharField(max_length=32)
    reference = models.CharField(max_length=20, unique=True)

    # Package (immutable after generation)
    package_type = models.CharField(max_length=100)
    package_display_name = models.CharField(max_length=150, blank=True)
    duration_minutes = models.PositiveIntegerField()
    data_limit_bytes = models.BigIntegerField(default=0, help_text="0 = unlimited")
    upload_kbps = models.PositiveIntegerField(default=512)
    download_kbps = models.PositiveIntegerField(default=1024)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(max_length=3, default="KES")

    # Usage
    used = models.BooleanField(default=False)
    device_mac = models.CharField(max_length=17, blank=True)
    start_time = models.DateTimeField(null=True, blank=True)
    end_time = models.DateTimeField(null=True, blank=True)
    data_used = models.BigIntegerField(default=0)
    time_used = models.PositiveIntegerField(default=0, help_text="Seconds")
    max_duration_minutes = models.PositiveIntegerField(null=True, blank=True)
    expected_end_time = models.DateTimeField(null=True, blank=True)
    timed_on_purchase = models.BooleanField(default=False)
    purchase_expires_at = models.DateTimeField(null=True, blank=True)

    # Payment (written once, by the payment confirmation webhook)
    payment_method = models.CharField(max_length=20, blank=True)
    payment_transaction_id = models.CharField(
        max_length=100, null=True, blank=True, db_index=True
    )
    payment_phone_number = models.CharField(max_length=100, blank=True)
    payment_amount = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True
    )
    payment_commission = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True
    )
    payment_date = models.DateTimeField(null=True, blank=True)

    # Expiry
    expires_at = models.DateTimeField(
        null=True, blank=True, help_text="Activation deadline for unsold vouchers"
    )
    auto_delete = models.BooleanField(default=True)
    expired_by = models.CharField(
        max_length=20, choices=EXPIRY_REASON_CHOICES, blank=True
    )

    # Batch
    batch_id = models.CharField(max_length=50, blank=True, db_index=True)
    batch_size = models.PositiveIntegerField(default=1)
    generated_by = models.ForeignKey(
        DjangoUser,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="generated_vouchers",
    )

    status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default=STATUS_ACTIVE, db_index=True
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = VoucherManager()

    class Meta:
        db_table = "vouchers"
        ordering = ["-created_at"]
        unique_together = ["router", "code"]

    def __str__(self):
        return f"{self.code} ({self.reference}) - {self.package_type} - {self.status}"

    @property
    def account(self):
        return self.router.account

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    @classmethod
    def generate_code(cls, router=None, exclude=()):
        """Generate a voucher code not yet used on the router"""
        while True:
            code = "".join(
                secrets.choice(cls.CODE_ALPHABET) for _ in range(cls.CODE_LENGTH)
            )
            if code in exclude:
                continue
            if router is None or not cls.objects.filter(router=router, code=code).exists():
                return code

    @classmethod
    def generate_reference(cls, exclude=()):
        """Generate a globally unique public payment reference (VCHXXXXXXXXX)"""
        while True:
            reference = cls.REFERENCE_PREFIX + "".join(
                secrets.choice(cls.REFERENCE_ALPHABET) for _ in range(9)
            )
            if reference in exclude:
                continue
            if not cls.objects.filter(reference=reference).exists():
                return reference

    def start_session(self, device_mac="", now=None):
        """
        Record the first hotspot login for this voucher.

        Returns False when another login already set the start time.
        """
        if self.status not in (self.STATUS_ACTIVE, self.STATUS_PAID):
            raise InvalidVoucherTransition(
                f"Voucher {self.reference} cannot be used while {self.status}"
            )

        now = now or timezone.now()
        minutes = self.max_duration_minutes or self.duration_minutes
        expected_end_time = now + timedelta(minutes=minutes)

        updated = Voucher.objects.filter(
            pk=self.pk,
            start_time__isnull=True,
            status__in=[self.STATUS_ACTIVE, self.STATUS_PAID],
        ).update(
            used=True,
            device_mac=device_mac or "",
            start_time=now,
            expected_end_time=expected_end_time,
            status=self.STATUS_USED,
            updated_at=now,
        )
        self.refresh_from_db()
        return bool(updated)

    def mark_expired(self, reason, now=None):
        """
        Move the voucher to expired unless it is already terminal.

        Returns True if this call performed the transition.
        """
        now = now or timezone.now()
        updated = (
            Voucher.objects.filter(pk=self.pk)
            .exclude(status__in=self.TERMINAL_STATUSES)
            .update(
                status=self.STATUS_EXPIRED,
                end_time=Coalesce(
                    F("end_time"), Value(now, output_field=models.DateTimeField())
                ),
                expired_by=reason,
                updated_at=now,
            )
        )
        self.refresh_from_db()
        return bool(updated)

    def cancel(self, now=None):
        """Cancel an unused voucher. Terminal and used vouchers are refused."""
        if self.is_terminal:
            raise InvalidVoucherTransition(f"Voucher is already {self.status}")
        if self.used:
            raise InvalidVoucherTransition("Cannot cancel a used voucher")

        now = now or timezone.now()
        updated = (
            Voucher.objects.filter(pk=self.pk, used=False)
            .exclude(status__in=self.TERMINAL_STATUSES)
            .update(status=self.STATUS_CANCELLED, updated_at=now)
        )
        self.refresh_from_db()
        if not updated:
            raise InvalidVoucherTransition(
                f"Voucher changed to {self.status} before it could be cancelled"
            )


# =============================================================================
# LEDGER, AUDIT & WEBHOOK LOGS
# =============================================================================


class Transaction(models.Model):
    """
    Immutable ledger entry for a confirmed payment
    One row per provider transaction id
    """

    TYPE_CHOICES = [
        ("voucher_purchase", "Voucher Purchase"),
    ]

    account = models.ForeignKey(
        Account,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="transactions",
    )
    router = models.ForeignKey(
        Router,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="transactions",
    )
    voucher = models.ForeignKey(
        Voucher,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="transactions",
    )
    transaction_id = models.CharField(max_length=100, unique=True)
    transaction_type = models.CharField(
        max_length=30, choices=TYPE_CHOICES, default="voucher_purchase"
    )
    method = models.CharField(max_length=20, default="mpesa")
    reference = models.CharField(max_length=100, blank=True)
    phone_number = models.CharField(max_length=100, blank=True)
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    commission = models.DecimalField(max_digits=10, decimal_places=2)
    net_amount = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(max_length=3, default="KES")
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "transactions"
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.transaction_id} - {self.currency} {self.amount}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Ledger transactions are immutable")
        super().save(*args, **kwargs)


class AuditLog(models.Model):
    """Append-only record of state changes made to billing resources"""

    account = models.ForeignKey(
        Account,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_logs",
    )
    user = models.ForeignKey(
        DjangoUser,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="voucher_audit_logs",
    )
    action = models.CharField(max_length=50, db_index=True)
    resource_type = models.CharField(max_length=50)
    resource_id = models.CharField(max_length=64, db_index=True)
    description = models.CharField(max_length=255, blank=True)
    details = models.JSONField(default=dict, blank=True)
    ip_address = models.CharField(max_length=64, blank=True)
    user_agent = models.TextField(blank=True)
    timestamp = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        db_table = "audit_logs"
        ordering = ["-timestamp"]

    def __str__(self):
        return f"{self.action} {self.resource_type}:{self.resource_id}"


class WebhookLog(models.Model):
    """
    Log of payment webhooks received from the payment provider
    Every delivery gets exactly one row describing how it was handled
    """

    STATUS_SUCCESS = "success"
    STATUS_DUPLICATE = "duplicate"
    STATUS_FAILED = "failed"
    STATUS_ERROR = "error"

    STATUS_CHOICES = [
        (STATUS_SUCCESS, "Processed Successfully"),
        (STATUS_DUPLICATE, "Duplicate"),
        (STATUS_FAILED, "Rejected"),
        (STATUS_ERROR, "Error"),
    ]

    source = models.CharField(max_length=50, default="mpesa_confirmation")
    type = models.CharField(max_length=50, default="c2b_confirmation")
    status = models.CharField(max_length=20, choices=STATUS_CHOICES)
    reason = models.CharField(max_length=50, blank=True)

    reference = models.CharField(max_length=100, blank=True, db_index=True)
    transaction_id = models.CharField(max_length=100, blank=True)
    voucher = models.ForeignKey(
        Voucher,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="webhook_logs",
    )

    payload = models.JSONField(default=dict, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    processing_time_ms = models.PositiveIntegerField(null=True, blank=True)

    source_ip = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True)
    timestamp = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "webhook_logs"
        ordering = ["-timestamp"]
        indexes = [
            models.Index(fields=["reference", "-timestamp"], name="webhook_logs_ref_ts_idx"),
            models.Index(fields=["status", "-timestamp"], name="webhook_logs_status_ts_idx"),
        ]

    def __str__(self):
        return f"{self.reference or 'UNKNOWN'} - {self.status} {self.reason}".strip()


class SystemConfig(models.Model):
    """Key/value platform configuration (e.g. commission rates per business type)"""

    key = models.CharField(max_length=100, unique=True)
    value = models.JSONField(default=dict)
    description = models.CharField(max_length=255, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "system_config"
        ordering = ["key"]

    def __str__(self):
        return self.key

    @classmethod
    def get_value(cls, key, default=None):
        config = cls.objects.filter(key=key).first()
        return config.value if config is not None else default
