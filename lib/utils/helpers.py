"""General helper utilities."""

import hmac
import ipaddress
import re
import secrets
import string
from typing import List, Optional, Sequence, Tuple
from urllib.parse import urlsplit

_AUTH_KEY_ALPHABET = string.ascii_letters + string.digits
_LANG_RANGE_RE = re.compile(r"^\s*([A-Za-z]{1,8}(?:-[A-Za-z0-9]{1,8})*|\*)\s*(?:;\s*q\s*=\s*([0-9.]+))?\s*$")


def generate_auth_key(length: int = 10) -> str:
    if length < 1:
        raise ValueError("auth key length must be positive")
    return "".join(secrets.choice(_AUTH_KEY_ALPHABET) for _ in range(length))


def tokens_match(received: Optional[str], expected: Optional[str]) -> bool:
    """Constant time comparison; an empty side never matches."""
    if not received or not expected:
        return False
    return hmac.compare_digest(received.encode("utf-8"), expected.encode("utf-8"))


def ensure_trailing_slash(url: str) -> str:
    return url if url.endswith("/") else url + "/"


def is_loopback_url(url: str) -> bool:
    host = (urlsplit(url).hostname or "").lower()
    if host == "localhost":
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


def parse_accept_language(header: Optional[str]) -> List[Tuple[str, float]]:
    """Return ``(range, q)`` pairs sorted by preference.

    Entries with ``q=0`` or unparsable syntax are dropped.  Ties keep the
    order in which the client listed them.
    """
    if not header:
        return []
    ranges: List[Tuple[str, float, int]] = []
    for idx, part in enumerate(header.split(",")):
        m = _LANG_RANGE_RE.match(part)
        if not m:
            continue
        try:
            q = float(m.group(2)) if m.group(2) is not None else 1.0
        except ValueError:
            continue
        if q <= 0:
            continue
        ranges.append((m.group(1).lower(), min(q, 1.0), idx))
    ranges.sort(key=lambda r: (-r[1], r[2]))
    return [(lang, q) for lang, q, _ in ranges]


def _primary(tag: str) -> str:
    return tag.split("-", 1)[0]


def negotiate_language(
    header: Optional[str],
    supported: Sequence[str],
    fallback: str = "en",
) -> str:
    """Pick the response language for a request.

    No header means the client accepts anything, so the first supported
    language wins.  A range matches a supported tag exactly, or by primary
    subtag (``en-US`` against ``en`` and the other way round).
    """
    if not supported:
        return fallback
    if not header or not header.strip():
        return supported[0]
    for lang_range, _q in parse_accept_language(header):
        if lang_range == "*":
            return supported[0]
        for lang in supported:
            if lang.lower() == lang_range:
                return lang
        for lang in supported:
            if _primary(lang.lower()) == _primary(lang_range):
                return lang
    return fallback
