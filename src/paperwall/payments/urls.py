"""Outbound URL policy for payment endpoints.

Signed payments are bearer instruments until they expire, so they are only
sent to HTTPS endpoints that do not resolve to loopback, private or
link-local literal addresses.
"""

from __future__ import annotations

import ipaddress
import logging
from collections.abc import Iterable
from urllib.parse import urlsplit

from paperwall.errors import UnsafeUrlError

logger = logging.getLogger("paperwall.payments.urls")

_BLOCKED_V4 = [
    ipaddress.ip_network("0.0.0.0/8"),
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("169.254.0.0/16"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
]
_BLOCKED_V6 = [
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("fe80::/10"),
    ipaddress.ip_network("fc00::/7"),
]


def is_private_host(hostname: str) -> bool:
    """True for ``localhost`` and for literal private/loopback addresses."""
    host = hostname.strip("[]").lower()
    if host == "localhost" or host.endswith(".localhost"):
        return True
    try:
        addr = ipaddress.ip_address(host)
    except ValueError:
        return False

    if isinstance(addr, ipaddress.IPv6Address):
        if addr.ipv4_mapped is not None:
            addr = addr.ipv4_mapped
        else:
            return any(addr in net for net in _BLOCKED_V6)
    return any(addr in net for net in _BLOCKED_V4)


def is_allowed_url(url: str, allow_insecure_hosts: Iterable[str] = ()) -> bool:
    """Return True if *url* may receive a signed payment."""
    try:
        parts = urlsplit(url)
        hostname = parts.hostname
    except ValueError:
        return False
    if not hostname:
        return False

    if hostname.lower() in {h.lower() for h in allow_insecure_hosts}:
        return parts.scheme in ("http", "https")

    if parts.scheme != "https":
        return False
    return not is_private_host(hostname)


def assert_allowed_url(url: str, label: str, allow_insecure_hosts: Iterable[str] = ()) -> None:
    """Raise ``UnsafeUrlError`` unless :func:`is_allowed_url` accepts *url*."""
    if not is_allowed_url(url, allow_insecure_hosts):
        logger.warning(f"Rejected outbound {label}: {url}")
        raise UnsafeUrlError(
            f"{label} must be HTTPS and cannot point to a private IP address: {url}"
        )
