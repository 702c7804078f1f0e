"""
MikroTik router integration for the Hotspot Voucher Billing Portal
Voucher codes are provisioned as /ip/hotspot/user accounts on the tenant router
"""

import socket
import logging
import time
from typing import NamedTuple

import routeros_api
from django.conf import settings

from .exceptions import RouterConnectionError

logger = logging.getLogger(__name__)


class RouterConnection(NamedTuple):
    """Everything needed to open a RouterOS API session"""

    host: str
    port: int
    username: str
    password: str
    use_ssl: bool = False


def connection_for_router(router, force_vpn: bool = False) -> RouterConnection:
    """
    Build the connection descriptor for a Router model instance.

    The management VPN address is preferred when present. With force_vpn the
    VPN address is mandatory, since the platform cannot reach the router's
    LAN address directly.
    """
    if force_vpn:
        host = router.vpn_ip
        if not host:
            raise RouterConnectionError(
                f"VPN IP not available for router {router.name} (id={router.pk})"
            )
    else:
        host = router.vpn_ip or router.host

    return RouterConnection(
        host=host,
        port=int(router.port) if router.port else 8728,
        username=router.username or "admin",
        password=router.password,
        use_ssl=bool(router.use_ssl),
    )


def safe_close(pool):
    """Safely disconnect a routeros_api pool if present."""
    try:
        if pool:
            pool.disconnect()
    except Exception as e:
        logger.debug(f"Ignoring error while closing RouterOS pool: {e}")


def open_api_pool(connection: RouterConnection, retries: int = None, timeout: int = None):
    """
    Return a connected RouterOsApiPool for the given connection.
    Caller should close it with safe_close(pool) in a finally block.

    Args:
        connection: RouterConnection descriptor
        retries: Number of connection attempts before giving up
        timeout: Socket timeout in seconds
    """
    if settings.MIKROTIK_MOCK_MODE:
        raise RouterConnectionError(
            "MikroTik router not accessible in this environment (MIKROTIK_MOCK_MODE=true)"
        )

    retries = retries or settings.MIKROTIK_CONNECT_RETRIES
    timeout = timeout or settings.MIKROTIK_CONNECT_TIMEOUT

    original_timeout = socket.getdefaulttimeout()
    socket.setdefaulttimeout(timeout)

    last_error = None
    try:
        for attempt in range(retries):
            pool = routeros_api.RouterOsApiPool(
                connection.host,
                username=connection.username,
                password=connection.password,
                port=connection.port,
                use_ssl=connection.use_ssl,
                ssl_verify=settings.MIKROTIK_SSL_VERIFY,
                plaintext_login=True,
            )
            try:
                pool.get_api()
                logger.debug(
                    f"MikroTik API connected to {connection.host}:{connection.port} "
                    f"on attempt {attempt + 1}"
                )
                return pool
            except Exception as e:
                last_error = e
                logger.warning(
                    f"MikroTik connection attempt {attempt + 1}/{retries} to "
                    f"{connection.host}:{connection.port} failed: {e}"
                )
                if attempt < retries - 1:
                    time.sleep(1)
    finally:
        socket.setdefaulttimeout(original_timeout)

    raise RouterConnectionError(
        f"Failed to connect to router {connection.host}:{connection.port}: {last_error}"
    )


def delete_hotspot_user(connection: RouterConnection, username: str) -> bool:
    """
    Remove a hotspot user account (and any live session) from the router.

    Returns:
        True if the account existed and was removed, False if it was not found.

    Raises:
        RouterConnectionError if the router cannot be reached.
    """
    pool = open_api_pool(connection)
    try:
        api = pool.get_api()
        users = api.get_resource("/ip/hotspot/user")
        matches = users.get(name=username)

        if not matches:
            logger.info(
                f"Hotspot user '{username}' not found on {connection.host}, nothing to remove"
            )
            return False

        # Drop live sessions before removing the account
        active = api.get_resource("/ip/hotspot/active")
        for session in active.get(user=username):
            session_id = session.get("id") or session.get(".id")
            if session_id:
                active.remove(id=session_id)
                logger.info(f"Removed active hotspot session for {username}")

        for user in matches:
            users.remove(id=user.get("id") or user.get(".id"))

        logger.info(f"Removed hotspot user '{username}' from {connection.host}")
        return True
    finally:
        safe_close(pool)


def remove_voucher_from_router(voucher) -> bool:
    """
    Remove the hotspot account for a voucher from its router.
    The router is reached over the management VPN.
    """
    router = voucher.router
    if router is None or not router.is_active:
        logger.debug(f"Voucher {voucher.reference} has no active router, skipping removal")
        return False

    connection = connection_for_router(router, force_vpn=True)
    return delete_hotspot_user(connection, voucher.code)
