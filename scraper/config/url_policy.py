"""Listing URL validation.

The service opens whatever URL it is handed in a real browser, so the URL is
checked against a small policy first: http(s) only, no local hostnames, no
literal private or loopback addresses. DNS is not resolved here.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from urllib.parse import urlparse

from scraper.config.settings import URLPolicyConfig


@dataclass(frozen=True)
class URLValidationResult:
    allowed: bool
    reason: str


def _parse_ip(hostname: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    try:
        return ipaddress.ip_address(hostname)
    except ValueError:
        return None


def validate_listing_url(url: str, policy: URLPolicyConfig) -> URLValidationResult:
    """Validate a listing URL against the policy."""
    parsed = urlparse(url.strip())

    if parsed.scheme.lower() not in policy.allowed_schemes:
        return URLValidationResult(
            allowed=False,
            reason=f"Scheme '{parsed.scheme}' not allowed",
        )

    hostname = (parsed.hostname or "").lower().rstrip(".")
    if not hostname:
        return URLValidationResult(allowed=False, reason="No hostname in URL")

    if policy.block_local_hostnames:
        if hostname == "localhost" or hostname.endswith(".local"):
            return URLValidationResult(
                allowed=False,
                reason=f"Hostname '{hostname}' is blocked",
            )

    if policy.block_private_ips:
        addr = _parse_ip(hostname)
        # Anything that is not globally routable: private, loopback, link-local...
        if addr is not None and not addr.is_global:
            return URLValidationResult(
                allowed=False,
                reason=f"IP {addr} is not a public address",
            )

    return URLValidationResult(allowed=True, reason="OK")
