"""
Django admin configuration for the Hotspot Voucher Billing Portal with Jazzmin
"""

from django.contrib import admin, messages
from django.http import HttpResponse
from django.utils.html import format_html
from django.utils import timezone
import csv
import logging

from .models import (
    Account,
    Router,
    Voucher,
    Transaction,
    AuditLog,
    WebhookLog,
    SystemConfig,
)
from .tasks import expire_voucher, expiry_reason

logger = logging.getLogger(__name__)

BADGE_HTML = '<span style="background: {}; color: white; padding: 2px 8px; border-radius: 4px;">{}</span>'


def badge(color, label):
    return format_html(BADGE_HTML, color, label)


@admin.register(Account)
class AccountAdmin(admin.ModelAdmin):
    list_display = [
        "name",
        "owner",
        "business_type",
        "commission_rate",
        "router_count",
        "is_active",
        "created_at",
    ]
    list_filter = ["business_type", "is_active"]
    search_fields = ["name", "email", "phone_number", "owner__username"]
    readonly_fields = ["created_at", "updated_at"]

    def router_count(self, obj):
        return obj.routers.count()

    router_count.short_description = "Routers"


@admin.register(Router)
class RouterAdmin(admin.ModelAdmin):
    """Manage MikroTik routers"""

    list_display = [
        "name",
        "account",
        "host",
        "vpn_ip",
        "status_badge",
        "last_seen",
        "is_active",
    ]
    list_filter = ["status", "is_active", "account"]
    search_fields = ["name", "host", "vpn_ip", "account__name"]
    readonly_fields = ["last_seen", "created_at", "updated_at"]

    fieldsets = (
        ("Router Info", {"fields": ("account", "name", "router_type")}),
        (
            "Connection",
            {"fields": ("host", "vpn_ip", "port", "username", "password", "use_ssl")},
        ),
        (
            "Status",
            {"fields": ("status", "last_seen", "is_active", "created_at", "updated_at")},
        ),
    )

    def status_badge(self, obj):
        colors = {
            "online": "green",
            "offline": "red",
            "configuring": "orange",
            "error": "red",
        }
        return badge(colors.get(obj.status, "gray"), obj.status.upper())

    status_badge.short_description = "Status"


@admin.register(Voucher)
class VoucherAdmin(admin.ModelAdmin):
    list_display = [
        "code",
        "reference",
        "router",
        "package_display_name",
        "price",
        "status_badge",
        "expired_by",
        "batch_id",
        "created_at",
    ]
    list_filter = ["status", "expired_by", "timed_on_purchase", "router", "created_at"]
    search_fields = [
        "code",
        "reference",
        "batch_id",
        "payment_transaction_id",
        "payment_phone_number",
    ]
    readonly_fields = [
        "id",
        "router",
        "code",
        "password",
        "reference",
        "status",
        # Package
        "package_type",
        "package_display_name",
        "duration_minutes",
        "data_limit_bytes",
        "upload_kbps",
        "download_kbps",
        "price",
        "currency",
        # Usage and expiry windows
        "used",
        "start_time",
        "end_time",
        "max_duration_minutes",
        "expected_end_time",
        "timed_on_purchase",
        "purchase_expires_at",
        "expires_at",
        "payment_method",
        "payment_transaction_id",
        "payment_phone_number",
        "payment_amount",
        "payment_commission",
        "payment_date",
        "expired_by",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]

    actions = ["export_vouchers_csv", "expire_lapsed_now"]

    STATUS_COLORS = {
        Voucher.STATUS_ACTIVE: "green",
        Voucher.STATUS_PENDING: "orange",
        Voucher.STATUS_PAID: "#17a2b8",
        Voucher.STATUS_USED: "#6f42c1",
        Voucher.STATUS_EXPIRED: "gray",
        Voucher.STATUS_CANCELLED: "red",
    }

    def status_badge(self, obj):
        """Display voucher status with badges"""
        return badge(self.STATUS_COLORS.get(obj.status, "gray"), obj.status.upper())

    status_badge.short_description = "Status"

    def export_vouchers_csv(self, request, queryset):  # noqa: ARG002
        """Export selected vouchers to CSV"""
        response = HttpResponse(content_type="text/csv")
        response["Content-Disposition"] = 'attachment; filename="vouchers.csv"'

        writer = csv.writer(response)
        writer.writerow(
            [
                "Router",
                "Code",
                "Reference",
                "Package",
                "Duration (Minutes)",
                "Price",
                "Status",
                "Batch ID",
                "Created At",
                "Paid At",
            ]
        )

        for voucher in queryset:
            writer.writerow(
                [
                    voucher.router.name,
                    voucher.code,
                    voucher.reference,
                    voucher.package_display_name,
                    voucher.duration_minutes,
                    f"{voucher.currency} {voucher.price}",
                    voucher.get_status_display(),
                    voucher.batch_id,
                    voucher.created_at.strftime("%Y-%m-%d %H:%M"),
                    (
                        voucher.payment_date.strftime("%Y-%m-%d %H:%M")
                        if voucher.payment_date
                        else "-"
                    ),
                ]
            )

        return response

    export_vouchers_csv.short_description = "Export selected vouchers to CSV"

    def has_add_permission(self, request):
        # Vouchers are created through batch generation only
        return False

    def get_readonly_fields(self, request, obj=None):
        if obj is not None and obj.is_terminal:
            return [f.name for f in Voucher._meta.fields]
        return self.readonly_fields

    def expire_lapsed_now(self, request, queryset):
        """Run the expiry path now for selected vouchers whose window has lapsed"""
        now = timezone.now()
        expired = skipped = failed = 0
        for voucher in queryset.select_related("router__account"):
            reason = expiry_reason(voucher, now)
            if reason is None:
                skipped += 1
                continue
            try:
                done, _removed = expire_voucher(
                    voucher, reason, now=now, user=request.user, source="admin"
                )
            except Exception as e:
                failed += 1
                logger.error(f"❌ Failed to expire voucher {voucher.pk}: {str(e)}")
                continue
            if done:
                expired += 1
            else:
                skipped += 1

        summary = f"{expired} vouchers expired, {skipped} not due for expiry."
        if failed:
            self.message_user(
                request, f"{summary} {failed} failed, see logs.", level=messages.WARNING
            )
        else:
            self.message_user(request, summary)

    expire_lapsed_now.short_description = "Expire lapsed vouchers now"

    def get_queryset(self, request):
        qs = super().get_queryset(request)
        return qs.select_related("router")


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = [
        "transaction_id",
        "account",
        "reference",
        "amount",
        "commission",
        "net_amount",
        "currency",
        "created_at",
    ]
    list_filter = ["method", "currency", "created_at"]
    search_fields = ["transaction_id", "reference", "phone_number", "account__name"]
    date_hierarchy = "created_at"

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ["timestamp", "action", "resource_type", "resource_id", "account", "user"]
    list_filter = ["action", "resource_type", "timestamp"]
    search_fields = ["resource_id", "description", "account__name"]
    readonly_fields = [f.name for f in AuditLog._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(WebhookLog)
class WebhookLogAdmin(admin.ModelAdmin):
    list_display = [
        "reference",
        "transaction_id",
        "status_badge",
        "reason",
        "processing_time_ms",
        "source_ip",
        "timestamp",
    ]
    list_filter = ["status", "reason", "source", "timestamp"]
    search_fields = ["reference", "transaction_id"]
    readonly_fields = [f.name for f in WebhookLog._meta.fields]

    def status_badge(self, obj):
        colors = {
            WebhookLog.STATUS_SUCCESS: "green",
            WebhookLog.STATUS_DUPLICATE: "orange",
            WebhookLog.STATUS_FAILED: "red",
            WebhookLog.STATUS_ERROR: "darkred",
        }
        return badge(colors.get(obj.status, "gray"), obj.status.upper())

    status_badge.short_description = "Status"

    def has_add_permission(self, request):
        return False


@admin.register(SystemConfig)
class SystemConfigAdmin(admin.ModelAdmin):
    list_display = ["key", "description", "updated_at"]
    search_fields = ["key", "description"]


admin.site.site_header = "Hotspot Voucher Portal - Admin"
admin.site.site_title = "Hotspot Voucher Admin"
