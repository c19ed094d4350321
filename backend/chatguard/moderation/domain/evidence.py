"""Per-source evidence captured while scoring a URL."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Mapping, Union


@dataclass(frozen=True, slots=True)
class HeuristicEvidence:
    source: ClassVar[str] = "heuristic"

    risk: int
    reasons: tuple[str, ...] = ()
    rules: tuple[str, ...] = ()

    def as_dict(self) -> dict[str, Any]:
        return {"risk": self.risk, "reasons": list(self.reasons), "rules": list(self.rules)}


@dataclass(frozen=True, slots=True)
class ReputationListEvidence:
    """Outcome of the unauthenticated reputation list lookup."""

    source: ClassVar[str] = "urlhaus"

    listed: bool
    status: str | None = None
    categories: tuple[str, ...] = ()
    raw: Mapping[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {"listed": self.listed, "status": self.status, "categories": list(self.categories), "raw": dict(self.raw)}


@dataclass(frozen=True, slots=True)
class ThreatIntelEvidence:
    """Outcome of the authenticated multi-engine lookup."""

    source: ClassVar[str] = "virustotal"

    enabled: bool
    listed: bool = False
    malicious: int = 0
    suspicious: int = 0
    categories: tuple[str, ...] = ()
    raw_categories: Mapping[str, str] = field(default_factory=dict)

    @property
    def detections(self) -> int:
        return self.malicious + self.suspicious

    def as_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "listed": self.listed,
            "detections": self.detections,
            "stats": {"malicious": self.malicious, "suspicious": self.suspicious},
            "categories": list(self.categories),
            "raw_categories": dict(self.raw_categories),
        }


@dataclass(frozen=True, slots=True)
class CacheEvidence:
    """Snapshot of the blocked-URL record that answered a lookup."""

    source: ClassVar[str] = "cache"

    record_id: int
    blocked_count: int
    detection_source: str
    first_detected: datetime
    last_detected: datetime

    def as_dict(self) -> dict[str, Any]:
        return {
            "record_id": self.record_id,
            "blocked_count": self.blocked_count,
            "detection_source": self.detection_source,
            "first_detected": self.first_detected.isoformat(),
            "last_detected": self.last_detected.isoformat(),
        }


Evidence = Union[HeuristicEvidence, ReputationListEvidence, ThreatIntelEvidence, CacheEvidence]


def merge_evidence(*items: Evidence | None) -> dict[str, Evidence]:
    """Key evidence by source; a later item for the same source replaces the earlier one."""

    merged: dict[str, Evidence] = {}
    for item in items:
        if item is not None:
            merged[item.source] = item
    return merged


def evidence_to_json(evidence: Mapping[str, Evidence]) -> dict[str, dict[str, Any]]:
    return {source: item.as_dict() for source, item in evidence.items()}
