"""Clients for the external URL reputation services."""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Protocol

import httpx

from chatguard.moderation.domain.evidence import ReputationListEvidence, ThreatIntelEvidence
from chatguard.moderation.domain.resilience import DependencyGuard, DependencyUnavailable

logger = logging.getLogger(__name__)

_URLHAUS_RAW_KEYS = ("query_status", "id", "url_status", "threat", "date_added")


class ReputationListClient(Protocol):
    """Listed/unlisted lookup against a public block list."""

    async def lookup(self, url: str) -> ReputationListEvidence:
        ...


class ThreatIntelClient(Protocol):
    """Multi-engine lookup returning detection counts and categories."""

    async def lookup(self, url: str) -> ThreatIntelEvidence:
        ...


class DisabledThreatIntelClient(ThreatIntelClient):
    """Stand-in used when no credential is configured; never touches the network."""

    async def lookup(self, url: str) -> ThreatIntelEvidence:  # noqa: ARG002 - interface parity
        return ThreatIntelEvidence(enabled=False)


@dataclass
class UrlhausClient(ReputationListClient):
    """Form-encoded lookup against the URLhaus API; no credential required."""

    http: httpx.AsyncClient
    guard: DependencyGuard
    api_url: str = "https://urlhaus-api.abuse.ch/v1/url/"

    async def lookup(self, url: str) -> ReputationListEvidence:
        return await self.guard.call(lambda: self._query(url), ReputationListEvidence(listed=False))

    async def _query(self, url: str) -> ReputationListEvidence:
        response = await self.http.post(self.api_url, data={"url": url})
        if response.status_code >= 500 or response.status_code == 429:
            raise DependencyUnavailable(f"urlhaus returned {response.status_code}")
        if not response.is_success:
            return ReputationListEvidence(listed=False)
        data = response.json()
        if not isinstance(data, Mapping) or data.get("query_status") != "ok":
            return ReputationListEvidence(listed=False)
        threat = data.get("threat")
        return ReputationListEvidence(
            listed=True,
            status=_optional_str(data.get("url_status")),
            categories=(str(threat),) if threat else (),
            raw={key: data[key] for key in _URLHAUS_RAW_KEYS if key in data},
        )


@dataclass
class VirusTotalClient(ThreatIntelClient):
    """Authenticated VirusTotal v3 lookup.

    The URL is first submitted for (re)analysis; a failed submission is
    tolerated because the URL object may already exist. The object is then
    fetched by its unpadded base64url identifier.
    """

    http: httpx.AsyncClient
    guard: DependencyGuard
    api_key: str
    api_url: str = "https://www.virustotal.com/api/v3"
    submit_timeout: float = 1.0

    async def lookup(self, url: str) -> ThreatIntelEvidence:
        return await self.guard.call(lambda: self._query(url), ThreatIntelEvidence(enabled=True, listed=False))

    async def _query(self, url: str) -> ThreatIntelEvidence:
        headers = {"x-apikey": self.api_key}
        try:
            await self.http.post(
                f"{self.api_url}/urls",
                data={"url": url},
                headers=headers,
                timeout=self.submit_timeout,
            )
        except httpx.HTTPError as exc:
            logger.info("virustotal submission skipped: %s", exc.__class__.__name__)

        response = await self.http.get(f"{self.api_url}/urls/{url_identifier(url)}", headers=headers)
        if response.status_code == 404:
            return ThreatIntelEvidence(enabled=True, listed=False)
        if not response.is_success:
            raise DependencyUnavailable(f"virustotal returned {response.status_code}")
        return parse_url_object(response.json())


def url_identifier(url: str) -> str:
    return base64.urlsafe_b64encode(url.encode("utf-8")).decode("ascii").rstrip("=")


def parse_url_object(payload: Any) -> ThreatIntelEvidence:
    attributes: Mapping[str, Any] = {}
    if isinstance(payload, Mapping):
        data = payload.get("data")
        if isinstance(data, Mapping) and isinstance(data.get("attributes"), Mapping):
            attributes = data["attributes"]
    stats = attributes.get("last_analysis_stats")
    stats = stats if isinstance(stats, Mapping) else {}
    malicious = _as_int(stats.get("malicious"))
    suspicious = _as_int(stats.get("suspicious"))
    raw_categories = attributes.get("categories")
    raw_categories = (
        {str(engine): str(label) for engine, label in raw_categories.items()}
        if isinstance(raw_categories, Mapping)
        else {}
    )
    categories: list[str] = []
    for label in raw_categories.values():
        if label not in categories:
            categories.append(label)
    return ThreatIntelEvidence(
        enabled=True,
        listed=malicious + suspicious > 0,
        malicious=malicious,
        suspicious=suspicious,
        categories=tuple(categories),
        raw_categories=raw_categories,
    )


def _as_int(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


def _optional_str(value: Any) -> str | None:
    return str(value) if value is not None else None
