"""
DRF exception handler for the portal API.

Error responses from the operator-facing endpoints share one shape:
{
    "success": false,
    "error": "Human-readable error message",
    "errors": { "field_name": ["..."] }     (validation errors only)
}

The M-Pesa webhook never reaches this handler; it always answers with the
provider's ResultCode envelope.
"""

import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from .exceptions import InvalidVoucherTransition, RouterConnectionError, VoucherError

logger = logging.getLogger(__name__)


def _flatten_field_errors(data):
    messages = []
    for field, msgs in data.items():
        if isinstance(msgs, list):
            messages.extend(f"{field}: {msg}" for msg in msgs)
        else:
            messages.append(f"{field}: {msgs}")
    return messages


def custom_exception_handler(exc, context):
    """
    Map voucher domain errors to HTTP responses and normalise DRF's own
    error payloads to { success, error, errors? }.
    """
    if isinstance(exc, InvalidVoucherTransition):
        return Response(
            {"success": False, "error": str(exc)}, status=status.HTTP_409_CONFLICT
        )
    if isinstance(exc, VoucherError):
        logger.error(f"Voucher update failed: {str(exc)}")
        return Response(
            {"success": False, "error": str(exc)},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    if isinstance(exc, RouterConnectionError):
        logger.warning(f"Router unreachable: {str(exc)}")
        return Response(
            {"success": False, "error": str(exc)}, status=status.HTTP_502_BAD_GATEWAY
        )

    response = drf_exception_handler(exc, context)
    if response is None:
        return response

    data = response.data

    # Auth, permission, throttle and 404 errors come as {"detail": "..."}
    if isinstance(data, dict) and "detail" in data:
        response.data = {"success": False, "error": str(data["detail"])}

    elif isinstance(data, dict) and "success" not in data:
        messages = _flatten_field_errors(data)
        response.data = {
            "success": False,
            "error": "; ".join(messages) if messages else "Validation error",
            "errors": data,
        }

    elif isinstance(data, list):
        response.data = {"success": False, "error": "; ".join(str(e) for e in data)}

    elif isinstance(data, dict) and data.get("success") is False and "error" not in data:
        data["error"] = data.pop("message", "An error occurred")

    return response
