"""Per-client request limits for the gigboard API.

Limits are keyed by client IP. X-Forwarded-For is honoured only when the
direct peer is one of the reverse proxies listed in ``Settings.trusted_proxies``,
so a caller cannot pick its own rate-limit bucket.
"""

import ipaddress
from functools import lru_cache

from slowapi import Limiter
from slowapi.util import get_remote_address

from gigboard.logging_config import get_logger

from .config import get_settings

logger = get_logger("gigboard.rate_limit")

IPNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network


@lru_cache(maxsize=8)
def parse_networks(cidrs: tuple[str, ...]) -> tuple[IPNetwork, ...]:
    """Parse proxy CIDRs, skipping (and logging) malformed entries."""
    networks = []
    for cidr in cidrs:
        try:
            networks.append(ipaddress.ip_network(cidr.strip(), strict=False))
        except ValueError:
            logger.warning(f"Ignoring invalid trusted proxy CIDR: {cidr}")
    return tuple(networks)


def is_trusted_proxy(ip_str: str, networks: tuple[IPNetwork, ...]) -> bool:
    try:
        addr = ipaddress.ip_address(ip_str)
    except ValueError:
        return False
    return any(addr in network for network in networks)


def get_client_ip(request) -> str:
    """Resolve the caller's IP for rate limiting.

    Behind a trusted proxy the leftmost X-Forwarded-For entry (the original
    client) is used; from anywhere else the header is ignored.
    """
    direct_ip = get_remote_address(request)
    networks = parse_networks(tuple(get_settings().trusted_proxies))

    if is_trusted_proxy(direct_ip, networks):
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            client_ip = forwarded_for.split(",")[0].strip()
            if client_ip:
                return client_ip

    return direct_ip


limiter = Limiter(key_func=get_client_ip)
