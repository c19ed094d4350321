"""URL discovery and canonicalisation for chat message text."""

from __future__ import annotations

import ipaddress
import re
import socket
from typing import Iterable
from urllib.parse import urlsplit, urlunsplit

_SCHEMES = {"http", "https"}
_DEFAULT_PORTS = {"http": 80, "https": 443}

_DOT_SPACING_RE = re.compile(r"\s*\.\s*")
_PROTOCOL_RE = re.compile(r"\bhttps?://[^\s<>\"')\]]+", re.IGNORECASE)
_WWW_RE = re.compile(r"\bwww\.[^\s<>\"')\]]+", re.IGNORECASE)
_TOKEN_RE = re.compile(r"\S+")
_LABEL = r"[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?"
_BARE_DOMAIN_RE = re.compile(
    rf"(?P<host>{_LABEL}(?:\.{_LABEL})+)(?P<rest>[/?#:]\S*)?",
    re.IGNORECASE,
)
_NUMERIC_LABEL_RE = re.compile(r"0x[0-9a-f]+|[0-9]+", re.IGNORECASE)
_LEADING_PUNCT = "([{<\"'"
_TRAILING_PUNCT = ".,;:!?)]}>\"'"

# Final labels that make a bare "name.label" token worth checking.
RECOGNIZED_SUFFIXES = frozenset(
    {
        "com", "org", "net", "edu", "gov", "mil", "int",
        "tk", "ml", "ga", "cf", "top", "click", "download", "loan", "faith",
        "accountant", "science", "date", "racing",
        "exe", "scr", "bat",
    }
)


def canonical_host(host: str) -> str | None:
    """Lowercase ``host``, drop one trailing root dot and spell numeric IPv4 as a dotted quad.

    ``3232235781``, ``0xC0A80105`` and ``0300.0250.1.5`` all become
    ``192.168.1.5``. An all-numeric host that is not a valid address is
    rejected.
    """

    host = host.lower()
    if host.endswith("."):
        host = host[:-1]
    if not host:
        return None
    if all(_NUMERIC_LABEL_RE.fullmatch(label) for label in host.split(".")):
        try:
            return str(ipaddress.IPv4Address(socket.inet_aton(host)))
        except OSError:
            return None
    return host


def normalize_url(raw: str) -> str | None:
    """Return the canonical matching key for ``raw`` or ``None`` if it is not a URL.

    Scheme and host are lowercased, the host goes through ``canonical_host``,
    default ports and the fragment are dropped and an empty path becomes
    ``/``. Applying it twice changes nothing.
    """

    candidate = (raw or "").strip()
    if not candidate or any(ch.isspace() for ch in candidate):
        return None
    try:
        parts = urlsplit(candidate)
        port = parts.port
    except ValueError:
        return None
    scheme = parts.scheme.lower()
    if scheme not in _SCHEMES or not parts.hostname:
        return None
    host = canonical_host(parts.hostname)
    if host is None:
        return None
    if ":" in host:
        host = f"[{host}]"
    if port is not None and _DEFAULT_PORTS.get(scheme) == port:
        port = None
    netloc = host if port is None else f"{host}:{port}"
    userinfo, sep, _ = parts.netloc.rpartition("@")
    if sep:
        netloc = f"{userinfo}@{netloc}"
    return urlunsplit((scheme, netloc, parts.path or "/", parts.query, ""))


def extract_urls(text: str) -> list[str]:
    """Find candidate URLs in free-form text, deduplicated by normalized form.

    Three scans run over the text after spacing around dots is collapsed:
    explicit ``http(s)://`` links, ``www.`` links and bare ``name.tld``
    tokens. The latter two are upgraded to ``http://``. Results keep the
    order in which they first appear in the message.
    """

    if not text:
        return []
    prepared = _DOT_SPACING_RE.sub(".", text)
    found: list[tuple[int, str]] = []
    claimed: list[tuple[int, int]] = []

    for match in _PROTOCOL_RE.finditer(prepared):
        found.append((match.start(), match.group(0).rstrip(_TRAILING_PUNCT)))
        claimed.append(match.span())

    for match in _WWW_RE.finditer(prepared):
        if _overlaps(match.span(), claimed):
            continue
        found.append((match.start(), f"http://{match.group(0).rstrip(_TRAILING_PUNCT)}"))
        claimed.append(match.span())

    for match in _TOKEN_RE.finditer(prepared):
        if _overlaps(match.span(), claimed):
            continue
        word = match.group(0).lstrip(_LEADING_PUNCT).rstrip(_TRAILING_PUNCT)
        if _is_bare_domain(word):
            found.append((match.start(), f"http://{word}"))

    found.sort(key=lambda item: item[0])
    return _dedupe(candidate for _, candidate in found)


def _is_bare_domain(word: str) -> bool:
    match = _BARE_DOMAIN_RE.fullmatch(word)
    if not match:
        return False
    suffix = match.group("host").rsplit(".", 1)[-1].lower()
    return suffix in RECOGNIZED_SUFFIXES


def _overlaps(span: tuple[int, int], claimed: list[tuple[int, int]]) -> bool:
    start, end = span
    return any(start < other_end and other_start < end for other_start, other_end in claimed)


def _dedupe(candidates: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for candidate in candidates:
        key = normalize_url(candidate) or candidate
        if key in seen:
            continue
        seen.add(key)
        ordered.append(candidate)
    return ordered
