"""
URL safety gate.

Classifies a URL before any network call. Pure: no DNS lookups, only the
literal host in the URL is inspected. Callers re-run it on every redirect hop.
"""
import ipaddress
import logging
import re
import socket
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

from .errors import SafetyRejection

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = ("http", "https")
_FORBIDDEN_HOSTS = ("localhost", "localhost.localdomain", "ip6-localhost", "ip6-loopback")
_FORBIDDEN_SUFFIXES = (".localhost", ".local")
# inet_aton accepts 127.1, 0x7f.0.0.1, 2130706433 ...
_LEGACY_IPV4 = re.compile(r"^(0x[0-9a-f]+|[0-9]+)(\.(0x[0-9a-f]+|[0-9]+)){0,3}$", re.I)


@dataclass(frozen=True)
class SafetyVerdict:
    allowed: bool
    reason: Optional[str] = None

    @classmethod
    def ok(cls) -> "SafetyVerdict":
        return cls(True)

    @classmethod
    def reject(cls, reason: str) -> "SafetyVerdict":
        return cls(False, reason)


def _parse_ip(host: str):
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        if not _LEGACY_IPV4.match(host):
            return None
        try:
            ip = ipaddress.IPv4Address(socket.inet_aton(host))
        except OSError:
            return None
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return ip.ipv4_mapped
    return ip


def _ip_reason(ip) -> Optional[str]:
    if ip.is_loopback:
        return f"loopback address {ip} is forbidden"
    if ip.is_unspecified:
        return f"unspecified address {ip} is forbidden"
    if ip.is_link_local:
        return f"link-local address {ip} is forbidden"
    if ip.is_private:
        return f"private network address {ip} is forbidden"
    return None


def classify(url: str) -> SafetyVerdict:
    if not url or not isinstance(url, str):
        return SafetyVerdict.reject("empty url is forbidden")
    try:
        parts = urlsplit(url.strip())
        host = parts.hostname
        parts.port  # raises on a garbage port
    except ValueError as e:
        return SafetyVerdict.reject(f"unparseable url is forbidden ({e})")

    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        return SafetyVerdict.reject(f"scheme '{parts.scheme}' is forbidden")
    if not host:
        return SafetyVerdict.reject("url without host is forbidden")

    host = host.rstrip(".").lower()
    if host in _FORBIDDEN_HOSTS or host.endswith(_FORBIDDEN_SUFFIXES):
        return SafetyVerdict.reject(f"local host '{host}' is forbidden")

    ip = _parse_ip(host)
    if ip is not None:
        reason = _ip_reason(ip)
        if reason:
            return SafetyVerdict.reject(reason)
    return SafetyVerdict.ok()


def check(url: str) -> None:
    """Raise SafetyRejection when `url` must not be fetched."""
    verdict = classify(url)
    if not verdict.allowed:
        logger.warning("Blocked %s: %s", url, verdict.reason)
        raise SafetyRejection(url, verdict.reason)
