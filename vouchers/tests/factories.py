"""
Shared fixtures for voucher tests
"""
from decimal import Decimal
import itertools

from django.contrib.auth.models import User as DjangoUser

from vouchers.models import Account, Router, Voucher

_counter = itertools.count(1)


def make_account(commission_rate=None, business_type="personal", owner=None):
    n = next(_counter)
    owner = owner or DjangoUser.objects.create_user(
        username=f"operator{n}", password="secret123"
    )
    return Account.objects.create(
        name=f"Operator {n}",
        owner=owner,
        business_type=business_type,
        commission_rate=commission_rate,
    )


def make_router(account=None, vpn_ip="10.8.0.2", is_active=True):
    account = account or make_account()
    return Router.objects.create(
        account=account,
        name=f"Router {next(_counter)}",
        host="192.168.88.1",
        vpn_ip=vpn_ip,
        username="admin",
        password="routerpass",
        is_active=is_active,
    )


def make_voucher(router=None, reference=None, code=None, price="100.00", **fields):
    router = router or make_router()
    code = code or Voucher.generate_code(router=router)
    defaults = {
        "package_type": "1hour",
        "package_display_name": "1 Hour",
        "duration_minutes": 60,
        "max_duration_minutes": 60,
        "status": Voucher.STATUS_ACTIVE,
    }
    defaults.update(fields)
    return Voucher.objects.create(
        router=router,
        code=code,
        password=code,
        reference=reference or Voucher.generate_reference(),
        price=Decimal(price),
        **defaults,
    )
