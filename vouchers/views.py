"""
API views for the Hotspot Voucher Billing Portal

  1. M-Pesa C2B confirmation webhook (public, called by Safaricom)
  2. Voucher batch generation and cancellation (router owners)
  3. Captive portal login callback (called when a voucher first logs in)
"""

import logging

from django.db import transaction
from django.views.decorators.csrf import csrf_exempt
from rest_framework import status
from rest_framework.authentication import TokenAuthentication
from rest_framework.decorators import (
    api_view,
    authentication_classes,
    permission_classes,
)
from rest_framework.exceptions import ParseError, UnsupportedMediaType
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from .mikrotik import remove_voucher_from_router
from .models import AuditLog, Router, Voucher
from .payments import process_c2b_confirmation, rejected
from .serializers import (
    GenerateVouchersSerializer,
    LoginCallbackSerializer,
    VoucherSerializer,
)

logger = logging.getLogger(__name__)


def get_client_ip(request):
    """Client IP address, honouring X-Forwarded-For from the reverse proxy"""
    x_forwarded_for = request.META.get("HTTP_X_FORWARDED_FOR")
    if x_forwarded_for:
        return x_forwarded_for.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR")


# =========================================================================
# M-Pesa webhook
# =========================================================================


@csrf_exempt
@api_view(["POST"])
@authentication_classes([])
@permission_classes([AllowAny])
def mpesa_confirmation_webhook(request):
    """
    M-Pesa C2B confirmation callback.

    POST /api/webhooks/mpesa/confirmation/
    Body: {"TransID", "TransAmount", "MSISDN", "BillRefNumber", ...}

    Always answers HTTP 200 with {"ResultCode": 0|1, "ResultDesc": "..."};
    the ResultCode tells Safaricom whether the payment was accepted.
    """
    try:
        data = request.data
    except (ParseError, UnsupportedMediaType) as e:
        logger.error(f"Unreadable M-Pesa confirmation body: {str(e)}")
        return Response(rejected("Invalid request body"), status=status.HTTP_200_OK)

    payload = data.dict() if hasattr(data, "dict") else data
    result = process_c2b_confirmation(
        payload,
        source_ip=get_client_ip(request),
        user_agent=request.META.get("HTTP_USER_AGENT", ""),
    )
    return Response(result, status=status.HTTP_200_OK)


# =========================================================================
# Router owner endpoints
# =========================================================================


@api_view(["POST"])
@authentication_classes([TokenAuthentication])
@permission_classes([IsAuthenticated])
def generate_vouchers(request, router_id):
    """
    Generate a batch of vouchers for one of the caller's routers.

    POST /api/routers/<router_id>/vouchers/generate/
    Body: {"package_type", "duration_minutes", "price", "quantity", ...}
    """
    router = (
        Router.objects.select_related("account")
        .filter(pk=router_id, account__owner=request.user, is_active=True)
        .first()
    )
    if router is None:
        return Response(
            {"success": False, "error": "Router not found"},
            status=status.HTTP_404_NOT_FOUND,
        )

    serializer = GenerateVouchersSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    params = serializer.validated_data

    vouchers = Voucher.objects.generate_batch(
        router=router,
        package_type=params["package_type"],
        display_name=params.get("display_name", ""),
        duration_minutes=params["duration_minutes"],
        price=params["price"],
        quantity=params["quantity"],
        data_limit_bytes=params["data_limit_bytes"],
        upload_kbps=params["upload_kbps"],
        download_kbps=params["download_kbps"],
        auto_expire=params["auto_expire"],
        expiry_days=params.get("expiry_days"),
        timed_on_purchase=params["timed_on_purchase"],
        generated_by=request.user,
    )
    batch_id = vouchers[0].batch_id

    AuditLog.objects.create(
        account=router.account,
        user=request.user,
        action="generate",
        resource_type="voucher_batch",
        resource_id=batch_id,
        description=f"Generated {len(vouchers)} {params['package_type']} vouchers",
        details={"router_id": router.pk, "quantity": len(vouchers)},
        ip_address=get_client_ip(request) or "",
        user_agent=request.META.get("HTTP_USER_AGENT", ""),
    )
    logger.info(
        f"Generated {len(vouchers)} vouchers ({batch_id}) for router {router.name}"
    )

    return Response(
        {
            "success": True,
            "batch_id": batch_id,
            "count": len(vouchers),
            "vouchers": VoucherSerializer(vouchers, many=True).data,
        },
        status=status.HTTP_201_CREATED,
    )


@api_view(["POST"])
@authentication_classes([TokenAuthentication])
@permission_classes([IsAuthenticated])
def cancel_voucher(request, voucher_id):
    """
    Cancel an unused voucher and remove its hotspot account.

    POST /api/vouchers/<voucher_id>/cancel/
    """
    voucher = (
        Voucher.objects.select_related("router__account")
        .filter(pk=voucher_id, router__account__owner=request.user)
        .first()
    )
    if voucher is None:
        return Response(
            {"success": False, "error": "Voucher not found"},
            status=status.HTTP_404_NOT_FOUND,
        )

    previous_status = voucher.status
    with transaction.atomic():
        voucher.cancel()
        AuditLog.objects.create(
            account=voucher.router.account,
            user=request.user,
            action="cancel",
            resource_type="voucher",
            resource_id=str(voucher.pk),
            description=f"Voucher {voucher.reference} cancelled",
            details={"voucher_code": voucher.code, "previous_status": previous_status},
            ip_address=get_client_ip(request) or "",
            user_agent=request.META.get("HTTP_USER_AGENT", ""),
        )

    removed_on_router = False
    try:
        removed_on_router = remove_voucher_from_router(voucher)
    except Exception as e:
        logger.warning(
            f"⚠️  Voucher {voucher.reference} cancelled but router removal failed: {str(e)}"
        )

    return Response(
        {
            "success": True,
            "voucher": VoucherSerializer(voucher).data,
            "removed_on_router": removed_on_router,
        }
    )


# =========================================================================
# Captive portal
# =========================================================================


@api_view(["POST"])
@authentication_classes([])
@permission_classes([AllowAny])
def login_callback(request):
    """
    Called by the captive portal after a voucher logs in for the first time.
    Starts the usage clock.

    POST /api/captive/login-callback/
    Body: {"voucher_code": "ABCD2345", "router_id": 1, "mac_address": "AA:BB:..."}
    """
    serializer = LoginCallbackSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    params = serializer.validated_data

    voucher = Voucher.objects.filter(
        router_id=params["router_id"], code=params["voucher_code"]
    ).first()
    if voucher is None:
        return Response(
            {"success": False, "error": "Voucher not found"},
            status=status.HTTP_404_NOT_FOUND,
        )

    # Reconnects of a voucher already in use keep the original clock
    if voucher.status == Voucher.STATUS_USED:
        started = False
    else:
        started = voucher.start_session(device_mac=params.get("mac_address", ""))
    if started:
        logger.info(
            f"Voucher {voucher.reference} session started, ends {voucher.expected_end_time}"
        )

    return Response(
        {
            "success": True,
            "already_started": not started,
            "start_time": voucher.start_time,
            "expected_end_time": voucher.expected_end_time,
        }
    )
