"""Offline URL risk heuristics.

Every rule is a row in ``DEFAULT_RULES``; scores are additive and uncapped so
adding a triggering feature never lowers the total.
"""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass
from typing import Callable, Sequence
from urllib.parse import urlsplit

from chatguard.moderation.domain.url_extract import canonical_host

INVALID_URL_RISK = 80
INVALID_URL_REASON = "invalid URL"

SUSPICIOUS_TLDS = frozenset(
    {"tk", "ml", "ga", "cf", "top", "click", "download", "loan", "faith", "accountant", "science", "date", "racing"}
)
SHORTENER_HOSTS = frozenset({"bit.ly", "tinyurl.com", "t.co", "goo.gl", "ow.ly", "is.gd", "buff.ly", "rebrand.ly"})
DANGEROUS_EXTENSIONS = frozenset({"exe", "scr", "bat", "cmd", "com", "pif", "vbs", "jar", "apk", "dmg"})
STANDARD_PORTS = frozenset({80, 443, 8080, 8443})
# Brand name -> the registrable domain that legitimately carries it.
BRAND_DOMAINS = {
    "paypal": "paypal.com",
    "amazon": "amazon.com",
    "microsoft": "microsoft.com",
    "apple": "apple.com",
    "facebook": "facebook.com",
    "google": "google.com",
}
LURE_WORDS = frozenset({"secure", "login", "bank"})

_KEYWORD_RE = re.compile(r"\b(phishing|malware|virus|hack|crack|keygen|torrent|warez)\b")
_REDIRECT_RE = re.compile(r"[?&](redirect|url|goto|link|redir)=http", re.IGNORECASE)
_HOST_WORD_RE = re.compile(r"[a-z0-9]+")


@dataclass(frozen=True, slots=True)
class UrlFeatures:
    """Parsed view of a normalized URL that the rules inspect."""

    url: str
    host: str
    path: str
    port: int | None

    @property
    def lowered(self) -> str:
        return self.url.lower()

    @property
    def labels(self) -> list[str]:
        return self.host.split(".")

    @property
    def host_words(self) -> set[str]:
        return set(_HOST_WORD_RE.findall(self.host))


@dataclass(frozen=True, slots=True)
class HeuristicRule:
    key: str
    points: int
    reason: str
    applies: Callable[[UrlFeatures], bool]

    def describe(self, features: UrlFeatures) -> str:
        return self.reason.format(port=features.port, host=features.host)


@dataclass(frozen=True, slots=True)
class HeuristicResult:
    risk: int
    reasons: tuple[str, ...]
    rules: tuple[str, ...] = ()


def _is_ip_literal(features: UrlFeatures) -> bool:
    try:
        ipaddress.ip_address(features.host.strip("[]"))
    except ValueError:
        return False
    return True


def _is_brand_impersonation(features: UrlFeatures) -> bool:
    words = features.host_words
    brands = [brand for brand in BRAND_DOMAINS if brand in words]
    if not brands and not words & LURE_WORDS:
        return False
    legit = set(BRAND_DOMAINS.values())
    return not any(features.host == domain or features.host.endswith(f".{domain}") for domain in legit)


def _is_shortener(features: UrlFeatures) -> bool:
    return any(features.host == host or features.host.endswith(f".{host}") for host in SHORTENER_HOSTS)


def _has_dangerous_extension(features: UrlFeatures) -> bool:
    last_segment = features.path.lower().rsplit("/", 1)[-1]
    if "." not in last_segment:
        return False
    return last_segment.rsplit(".", 1)[-1] in DANGEROUS_EXTENSIONS


DEFAULT_RULES: tuple[HeuristicRule, ...] = (
    HeuristicRule("ip_literal", 40, "IP literal host", _is_ip_literal),
    HeuristicRule("subdomain_depth", 30, "too many subdomains", lambda f: len(f.labels) > 4),
    HeuristicRule("suspicious_tld", 35, "suspicious TLD", lambda f: f.labels[-1] in SUSPICIOUS_TLDS),
    HeuristicRule("brand_impersonation", 50, "domain spoofing attempt", _is_brand_impersonation),
    HeuristicRule("shortener", 25, "URL shortener", _is_shortener),
    HeuristicRule("dangerous_extension", 45, "dangerous file extension", _has_dangerous_extension),
    HeuristicRule("suspicious_keyword", 40, "suspicious keywords", lambda f: bool(_KEYWORD_RE.search(f.lowered))),
    HeuristicRule("very_long_url", 20, "very long URL", lambda f: len(f.url) > 200),
    HeuristicRule("long_url", 10, "long URL", lambda f: 100 < len(f.url) <= 200),
    HeuristicRule(
        "nonstandard_port",
        25,
        "suspicious port :{port}",
        lambda f: f.port is not None and f.port not in STANDARD_PORTS,
    ),
    HeuristicRule("many_dashes", 15, "many dashes in domain", lambda f: f.host.count("-") > 3),
    HeuristicRule("many_digits", 20, "many numbers in domain", lambda f: sum(ch.isdigit() for ch in f.host) > 5),
    HeuristicRule("redirect_param", 30, "suspicious redirect parameter", lambda f: bool(_REDIRECT_RE.search(f.url))),
)


def parse_features(url: str) -> UrlFeatures | None:
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return None
    if parts.scheme.lower() not in {"http", "https"} or not parts.hostname:
        return None
    host = canonical_host(parts.hostname)
    if host is None:
        return None
    return UrlFeatures(url=url, host=host, path=parts.path, port=port)


def score_url(url: str, rules: Sequence[HeuristicRule] = DEFAULT_RULES) -> HeuristicResult:
    """Score a normalized URL; unparseable input fails closed."""

    features = parse_features(url)
    if features is None:
        return HeuristicResult(risk=INVALID_URL_RISK, reasons=(INVALID_URL_REASON,), rules=("invalid",))
    risk = 0
    reasons: list[str] = []
    fired: list[str] = []
    for rule in rules:
        if rule.applies(features):
            risk += rule.points
            reasons.append(rule.describe(features))
            fired.append(rule.key)
    return HeuristicResult(risk=risk, reasons=tuple(reasons), rules=tuple(fired))
