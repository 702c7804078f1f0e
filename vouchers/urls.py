from django.urls import path

from . import views

urlpatterns = [
    # Payment provider callbacks
    path(
        "webhooks/mpesa/confirmation/",
        views.mpesa_confirmation_webhook,
        name="mpesa_confirmation_webhook",
    ),
    # Router owner endpoints
    path(
        "routers/<int:router_id>/vouchers/generate/",
        views.generate_vouchers,
        name="generate_vouchers",
    ),
    path(
        "vouchers/<uuid:voucher_id>/cancel/",
        views.cancel_voucher,
        name="cancel_voucher",
    ),
    # Captive portal
    path("captive/login-callback/", views.login_callback, name="login_callback"),
]
