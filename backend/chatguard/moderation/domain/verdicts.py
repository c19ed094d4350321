"""Combine heuristic and threat-intel signals into one score and verdict."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from chatguard.moderation.domain.evidence import (
    HeuristicEvidence,
    ReputationListEvidence,
    ThreatIntelEvidence,
)

REPUTATION_LIST_BONUS = 80
THREAT_INTEL_BASE_BONUS = 30
THREAT_INTEL_PER_DETECTION = 5
THREAT_INTEL_MAX_BONUS = 80
MALICIOUS_CATEGORY_BONUS = 15

_MALICIOUS_CATEGORY_RE = re.compile(r"phishing|malware|suspicious|trojan|virus", re.IGNORECASE)


class Verdict(str, Enum):
    CLEAN = "clean"
    LIKELY_CLEAN = "likely_clean"
    POTENTIALLY_RISKY = "potentially_risky"
    SUSPICIOUS = "suspicious"
    MALICIOUS = "malicious"


class DetectionSource(str, Enum):
    HEURISTIC = "heuristic"
    URLHAUS = "urlhaus"
    VIRUSTOTAL = "virustotal"
    COMBINED = "combined"


# Highest threshold first; the first tier the score reaches wins.
VERDICT_TIERS: tuple[tuple[int, Verdict], ...] = (
    (60, Verdict.MALICIOUS),
    (35, Verdict.SUSPICIOUS),
    (15, Verdict.POTENTIALLY_RISKY),
    (5, Verdict.LIKELY_CLEAN),
)


def verdict_from_score(score: int) -> Verdict:
    for threshold, verdict in VERDICT_TIERS:
        if score >= threshold:
            return verdict
    return Verdict.CLEAN


@dataclass(frozen=True, slots=True)
class Aggregate:
    score: int
    verdict: Verdict
    reasons: tuple[str, ...]
    categories: tuple[str, ...]
    detection_source: DetectionSource


def _union(target: list[str], extra: Iterable[str]) -> None:
    for item in extra:
        if item not in target:
            target.append(item)


def malicious_categories(categories: Iterable[str]) -> list[str]:
    return [category for category in categories if _MALICIOUS_CATEGORY_RE.search(category)]


def intel_bonus(intel: ThreatIntelEvidence | None, categories: Iterable[str]) -> int:
    """Single capped contribution from detections and category labels.

    Detection counts and category labels usually describe the same finding,
    so the larger of the two counts rather than both.
    """

    detection_bonus = 0
    if intel is not None and intel.enabled and intel.listed:
        detection_bonus = THREAT_INTEL_BASE_BONUS + intel.detections * THREAT_INTEL_PER_DETECTION
    category_bonus = len(malicious_categories(categories)) * MALICIOUS_CATEGORY_BONUS
    return min(THREAT_INTEL_MAX_BONUS, max(detection_bonus, category_bonus))


def aggregate(
    heuristic: HeuristicEvidence,
    reputation: ReputationListEvidence | None = None,
    intel: ThreatIntelEvidence | None = None,
) -> Aggregate:
    score = heuristic.risk
    reasons = list(heuristic.reasons)
    categories: list[str] = []
    sources: list[DetectionSource] = []
    if heuristic.risk > 0:
        sources.append(DetectionSource.HEURISTIC)

    if reputation is not None:
        if reputation.listed:
            score += REPUTATION_LIST_BONUS
            reasons.append(f"URLHaus: {reputation.status or 'listed'}")
            sources.append(DetectionSource.URLHAUS)
        _union(categories, reputation.categories)

    if intel is not None and intel.enabled:
        if intel.listed:
            reasons.append(f"VirusTotal detections: {intel.detections}")
            sources.append(DetectionSource.VIRUSTOTAL)
        _union(categories, intel.categories)

    flagged = malicious_categories(categories)
    if flagged:
        reasons.append(f"malicious categories: {', '.join(flagged)}")
    score += intel_bonus(intel, categories)

    if len(sources) > 1:
        source = DetectionSource.COMBINED
    elif sources:
        source = sources[0]
    else:
        source = DetectionSource.HEURISTIC
    return Aggregate(
        score=score,
        verdict=verdict_from_score(score),
        reasons=tuple(reasons),
        categories=tuple(categories),
        detection_source=source,
    )
