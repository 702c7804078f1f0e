"""
Serializers for the voucher billing API
"""

import re

from rest_framework import serializers

from .models import Voucher

MAC_ADDRESS_RE = re.compile(r"^([0-9A-Fa-f]{2}[:-]){5}[0-9A-Fa-f]{2}$")


class VoucherSerializer(serializers.ModelSerializer):
    class Meta:
        model = Voucher
        fields = [
            "id",
            "code",
            "password",
            "reference",
            "package_type",
            "package_display_name",
            "duration_minutes",
            "data_limit_bytes",
            "upload_kbps",
            "download_kbps",
            "price",
            "currency",
            "status",
            "used",
            "start_time",
            "expected_end_time",
            "timed_on_purchase",
            "purchase_expires_at",
            "expires_at",
            "expired_by",
            "payment_transaction_id",
            "payment_date",
            "batch_id",
            "created_at",
        ]
        read_only_fields = fields


class GenerateVouchersSerializer(serializers.Serializer):
    package_type = serializers.CharField(max_length=100)
    display_name = serializers.CharField(max_length=150, required=False, allow_blank=True)
    duration_minutes = serializers.IntegerField(min_value=1)
    price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)
    quantity = serializers.IntegerField(min_value=1, max_value=1000, default=10)
    data_limit_bytes = serializers.IntegerField(min_value=0, default=0)
    upload_kbps = serializers.IntegerField(min_value=1, default=512)
    download_kbps = serializers.IntegerField(min_value=1, default=1024)
    auto_expire = serializers.BooleanField(default=True)
    expiry_days = serializers.IntegerField(min_value=1, max_value=365, required=False)
    timed_on_purchase = serializers.BooleanField(default=False)


class LoginCallbackSerializer(serializers.Serializer):
    voucher_code = serializers.CharField(max_length=32)
    router_id = serializers.IntegerField()
    mac_address = serializers.CharField(max_length=17, required=False, allow_blank=True)

    def validate_voucher_code(self, value):
        return value.strip().upper()

    def validate_mac_address(self, value):
        value = value.strip()
        if value and not MAC_ADDRESS_RE.match(value):
            raise serializers.ValidationError("Invalid MAC address")
        return value.upper().replace("-", ":")
