"""
Action resolution for matched rules.

Redirect URLs may reference ``{{longUrl}}`` and ``{{shortUrl}}``. Expansion
rejects link values that could smuggle a second template, a script URL or
a private-network target, and the expanded URL must be a public http(s)
address.
"""

import ipaddress
import re
from urllib.parse import quote, urlparse

from shared.errors import UnsafeRedirectError
from .models import (
    Action, ActionType, ActionOutcome, Link,
    RedirectSettings, BlockAccessSettings, PasswordGateSettings, NotifySettings
)

DEFAULT_BLOCK_REASON = "Access denied"
MAX_LONG_URL_LENGTH = 2048
MAX_SHORT_URL_LENGTH = 100

LONG_URL_VARIABLE = "{{longUrl}}"
SHORT_URL_VARIABLE = "{{shortUrl}}"

_TEMPLATE_PATTERN = re.compile(r"\{\{.*?\}\}")
_DANGEROUS_PATTERNS = [
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"data:", re.IGNORECASE),
    re.compile(r"vbscript:", re.IGNORECASE),
    re.compile(r"file:", re.IGNORECASE),
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
]
_BLOCKED_HOSTNAMES = {"localhost", "0.0.0.0", "::1", "169.254.169.254"}
_BLOCKED_SUFFIXES = (".local", ".localhost")


def is_safe_redirect_url(url: str) -> bool:
    """True for absolute http(s) URLs that do not target local or private hosts."""
    try:
        parsed = urlparse(url)
        hostname = (parsed.hostname or "").lower()
    except ValueError:
        return False

    if parsed.scheme.lower() not in ("http", "https") or not hostname:
        return False

    if hostname in _BLOCKED_HOSTNAMES or hostname.endswith(_BLOCKED_SUFFIXES):
        return False

    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        return True

    return not (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_unspecified
        or address.is_reserved
    )


def _check_link_values(link: Link) -> None:
    if not is_safe_redirect_url(link.long_url):
        raise UnsafeRedirectError("Invalid longUrl for template replacement")

    for value in (link.long_url, link.short_url):
        if _TEMPLATE_PATTERN.search(value):
            raise UnsafeRedirectError("Template syntax not allowed in link values")
        if any(p.search(value) for p in _DANGEROUS_PATTERNS):
            raise UnsafeRedirectError("Dangerous pattern detected in link values")

    if len(link.long_url) > MAX_LONG_URL_LENGTH or len(link.short_url) > MAX_SHORT_URL_LENGTH:
        raise UnsafeRedirectError("Link values exceed maximum allowed length")


def _substitute(url: str, long_url: str, short_url: str) -> str:
    return url.replace(LONG_URL_VARIABLE, long_url).replace(SHORT_URL_VARIABLE, short_url)


def expand_redirect_template(url: str, link: Link) -> str:
    """Expand link variables in a redirect URL.

    Values are first substituted URL-encoded, which suits variables inside
    a query string. When that does not yield a usable absolute URL (e.g. the
    whole target is ``{{longUrl}}``) the raw values are substituted instead.

    Raises:
        UnsafeRedirectError: if the link values or the final URL are unsafe.
    """
    _check_link_values(link)

    encoded = _substitute(
        url,
        quote(link.long_url, safe="!~*'()"),
        quote(link.short_url, safe="!~*'()")
    )
    if _TEMPLATE_PATTERN.search(encoded):
        raise UnsafeRedirectError("Unknown template variable in redirect URL", {"url": url})
    if is_safe_redirect_url(encoded):
        return encoded

    plain = _substitute(url, link.long_url, link.short_url)
    if not is_safe_redirect_url(plain):
        raise UnsafeRedirectError("Invalid redirect URL after variable replacement", {"url": url})
    return plain


def resolve_action(action: Action, link: Link) -> ActionOutcome:
    """Turn a rule action into the outcome the redirect layer executes."""
    settings = action.settings

    if action.type == ActionType.REDIRECT and isinstance(settings, RedirectSettings):
        return ActionOutcome(
            type=ActionType.REDIRECT,
            url=expand_redirect_template(settings.url, link)
        )

    if action.type == ActionType.BLOCK_ACCESS and isinstance(settings, BlockAccessSettings):
        return ActionOutcome(
            type=ActionType.BLOCK_ACCESS,
            reason=settings.reason or DEFAULT_BLOCK_REASON
        )

    if action.type == ActionType.PASSWORD_GATE and isinstance(settings, PasswordGateSettings):
        return ActionOutcome(
            type=ActionType.PASSWORD_GATE,
            short_url=link.short_url,
            password_hash=settings.password_hash,
            hint=settings.hint
        )

    if action.type == ActionType.NOTIFY and isinstance(settings, NotifySettings):
        return ActionOutcome(
            type=ActionType.NOTIFY,
            webhook_url=settings.webhook_url,
            message=settings.message
        )

    return default_outcome(link)


def default_outcome(link: Link) -> ActionOutcome:
    """Plain redirect to the link's destination."""
    return ActionOutcome(type=ActionType.REDIRECT, url=link.long_url)
