"""Rate limiting configuration for the StableLink backend.

Only trusts X-Forwarded-For from known proxy networks so clients cannot
spoof their way around per-IP limits on the payment endpoints.
"""

import ipaddress
import logging
from typing import Optional

from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import get_settings

logger = logging.getLogger("stablelink.rate_limit")

# Override with TRUSTED_PROXY_CIDRS (comma-separated)
_DEFAULT_TRUSTED_CIDRS = [
    "10.0.0.0/8",
    "172.16.0.0/12",
    "192.168.0.0/16",
    "127.0.0.0/8",
    "::1/128",
]

Network = ipaddress.IPv4Network | ipaddress.IPv6Network


def parse_trusted_cidrs(raw: str | None) -> list[Network]:
    """Parse a comma-separated CIDR list, skipping invalid entries."""
    cidrs = [s.strip() for s in raw.split(",") if s.strip()] if raw else _DEFAULT_TRUSTED_CIDRS
    networks = []
    for cidr in cidrs:
        try:
            networks.append(ipaddress.ip_network(cidr, strict=False))
        except ValueError:
            logger.warning(f"Ignoring invalid trusted proxy CIDR: {cidr!r}")
    return networks


_trusted_networks: Optional[list[Network]] = None


def _get_trusted_networks() -> list[Network]:
    global _trusted_networks
    if _trusted_networks is None:
        _trusted_networks = parse_trusted_cidrs(get_settings().trusted_proxy_cidrs)
    return _trusted_networks


def is_trusted_proxy(ip_str: str, networks: list[Network] | None = None) -> bool:
    """Check if an IP belongs to a trusted proxy network."""
    try:
        addr = ipaddress.ip_address(ip_str)
    except ValueError:
        return False
    if networks is None:
        networks = _get_trusted_networks()
    return any(addr in network for network in networks)


def get_client_ip(request) -> str:
    """Resolve the client IP, honoring X-Forwarded-For only behind a trusted proxy."""
    direct_ip = get_remote_address(request)

    if is_trusted_proxy(direct_ip):
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            client_ip = forwarded_for.split(",")[0].strip()
            if client_ip:
                return client_ip

    return direct_ip


limiter = Limiter(key_func=get_client_ip)
