"""Request fingerprinting for the rate limiter.

Every input here comes from spoofable headers (forwarded IPs, Referer,
User-Agent). Classification shapes traffic; it is never an authentication
signal. Missing or malformed headers fall back to the least-trusted value.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Mapping, Sequence
from urllib.parse import urlsplit

UNKNOWN_IP = "unknown"
DIRECT_REFERER = "direct"

DEFAULT_IP_HEADERS: tuple[str, ...] = ("CF-Connecting-IP", "X-Forwarded-For", "X-Real-IP")
DEFAULT_BOT_PATTERN = r"bot|crawler|spider|scraper"


class TrafficClass(str, Enum):
    TRUSTED = "trusted"
    BOT = "bot"
    GENERIC = "generic"


class KeyStrategy(str, Enum):
    """How a request is turned into a limiter key.

    COMPOSITE keeps one counter per (environment, ip, referer host, bot flag).
    PREFIXED keeps one counter per ip and coarse class (``widget`` or ``api``).
    """

    COMPOSITE = "composite"
    PREFIXED = "prefixed"


def resolve_client_ip(
    headers: Mapping[str, str],
    ip_headers: Sequence[str] = DEFAULT_IP_HEADERS,
) -> str:
    """Return the client IP from the first populated header in ``ip_headers``.

    Forwarded-for style headers may carry a chain; only the first hop is used.
    """
    for name in ip_headers:
        value = headers.get(name)
        if not value:
            continue
        first = value.split(",")[0].strip()
        if first:
            return first
    return UNKNOWN_IP


def referer_hostname(referer: str | None) -> str:
    """Lower-cased hostname of the Referer URL, or ``direct``."""
    if not referer:
        return DIRECT_REFERER
    try:
        hostname = urlsplit(referer.strip()).hostname
    except ValueError:
        return DIRECT_REFERER
    return hostname or DIRECT_REFERER


def is_likely_bot(user_agent: str | None, pattern: re.Pattern[str]) -> bool:
    return bool(user_agent) and pattern.search(user_agent) is not None


def is_trusted_referer(hostname: str, trusted_domain: str) -> bool:
    """True when ``hostname`` is the trusted domain or one of its subdomains."""
    domain = trusted_domain.lower().strip(".")
    if not domain or hostname == DIRECT_REFERER:
        return False
    return hostname == domain or hostname.endswith(f".{domain}")


def compile_bot_pattern(pattern: str = DEFAULT_BOT_PATTERN) -> re.Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


def classify_request(
    headers: Mapping[str, str],
    *,
    trusted_domain: str,
    bot_pattern: re.Pattern[str],
) -> TrafficClass:
    """Bot heuristics win over a trusted Referer; anything unrecognized is generic."""
    if is_likely_bot(headers.get("User-Agent"), bot_pattern):
        return TrafficClass.BOT
    if is_trusted_referer(referer_hostname(headers.get("Referer")), trusted_domain):
        return TrafficClass.TRUSTED
    return TrafficClass.GENERIC


class KeyGenerator:
    """Derive limiter keys and traffic classes from request headers."""

    def __init__(
        self,
        *,
        environment: str,
        strategy: KeyStrategy = KeyStrategy.COMPOSITE,
        trusted_domain: str = "",
        bot_pattern: str = DEFAULT_BOT_PATTERN,
        ip_headers: Sequence[str] = DEFAULT_IP_HEADERS,
    ) -> None:
        self.environment = environment
        self.strategy = KeyStrategy(strategy)
        self.trusted_domain = trusted_domain
        self.bot_pattern = compile_bot_pattern(bot_pattern)
        self.ip_headers = tuple(ip_headers) or DEFAULT_IP_HEADERS

    def classify(self, headers: Mapping[str, str]) -> TrafficClass:
        return classify_request(headers, trusted_domain=self.trusted_domain, bot_pattern=self.bot_pattern)

    def generate(self, headers: Mapping[str, str]) -> str:
        client_ip = resolve_client_ip(headers, self.ip_headers)
        hostname = referer_hostname(headers.get("Referer"))

        if self.strategy is KeyStrategy.PREFIXED:
            prefix = "widget" if is_trusted_referer(hostname, self.trusted_domain) else "api"
            return f"{prefix}:{client_ip}"

        bot_flag = "bot" if is_likely_bot(headers.get("User-Agent"), self.bot_pattern) else "human"
        return f"{self.environment}:{client_ip}:{hostname}:{bot_flag}"
