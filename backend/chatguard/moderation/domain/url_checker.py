"""Per-URL risk checks: cache first, then heuristics plus threat intel."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Protocol

from chatguard.moderation.domain.blocked_urls import BlockedUrlRecord, BlockedUrlRepository, BlockedUrlUpsert
from chatguard.moderation.domain.evidence import (
    CacheEvidence,
    Evidence,
    HeuristicEvidence,
    evidence_to_json,
    merge_evidence,
)
from chatguard.moderation.domain.heuristics import INVALID_URL_REASON, score_url
from chatguard.moderation.domain.threat_intel import (
    DisabledThreatIntelClient,
    ReputationListClient,
    ThreatIntelClient,
)
from chatguard.moderation.domain.url_extract import extract_urls, normalize_url
from chatguard.moderation.domain.verdicts import DetectionSource, Verdict, aggregate, verdict_from_score
from chatguard.obs import metrics

logger = logging.getLogger(__name__)

INVALID_CHECK_SCORE = 90


class BlockWriter(Protocol):
    """Anything that accepts fire-and-forget cache writes."""

    def submit(self, payload: BlockedUrlUpsert) -> bool:
        ...


@dataclass(slots=True)
class UrlCheckResult:
    input: str
    normalized: Optional[str]
    score: int
    verdict: Verdict
    reasons: list[str]
    categories: list[str]
    evidence: Mapping[str, Evidence] = field(default_factory=dict)
    from_cache: bool = False
    detection_source: str = DetectionSource.HEURISTIC.value

    def summary(self) -> dict[str, Any]:
        """Shape handed to the chat transport layer."""

        return {
            "url": self.input,
            "score": self.score,
            "verdict": self.verdict.value,
            "reasons": list(self.reasons),
            "fromCache": self.from_cache,
        }

    def as_dict(self) -> dict[str, Any]:
        payload = self.summary()
        payload.update(
            {
                "normalized": self.normalized,
                "categories": list(self.categories),
                "detectionSource": self.detection_source,
                "evidence": evidence_to_json(self.evidence),
            }
        )
        return payload


@dataclass
class UrlChecker:
    """Scores URLs for one message.

    A cache hit short-circuits both external lookups. A fresh score at or
    above ``block_threshold`` is handed to ``writer`` without waiting for
    the write to finish.
    """

    repository: Optional[BlockedUrlRepository]
    reputation: ReputationListClient
    intel: ThreatIntelClient = field(default_factory=DisabledThreatIntelClient)
    writer: Optional[BlockWriter] = None
    block_threshold: int = 70
    max_urls: int = 5
    cache_enabled: bool = True

    async def check_message(self, text: str) -> list[UrlCheckResult]:
        urls = extract_urls(text)
        if len(urls) > self.max_urls:
            logger.info("message url count capped", extra={"found": len(urls), "checked": self.max_urls})
            urls = urls[: self.max_urls]
        if not urls:
            return []
        return list(await asyncio.gather(*(self.check_url(url) for url in urls)))

    async def check_url(self, raw: str) -> UrlCheckResult:
        started = time.perf_counter()
        normalized = normalize_url(raw)
        if normalized is None:
            metrics.observe_url_check(Verdict.MALICIOUS.value, "invalid", time.perf_counter() - started)
            return UrlCheckResult(
                input=raw,
                normalized=None,
                score=INVALID_CHECK_SCORE,
                verdict=verdict_from_score(INVALID_CHECK_SCORE),
                reasons=[INVALID_URL_REASON],
                categories=[],
            )

        cached = await self._lookup_cache(normalized)
        if cached is not None:
            result = _result_from_cache(raw, normalized, cached)
            metrics.observe_url_check(result.verdict.value, "cache", time.perf_counter() - started)
            return result

        result = await self._score_fresh(raw, normalized)
        metrics.observe_url_check(result.verdict.value, "fresh", time.perf_counter() - started)
        if result.score >= self.block_threshold:
            self._persist(result)
        return result

    async def _lookup_cache(self, normalized: str) -> BlockedUrlRecord | None:
        if not self.cache_enabled or self.repository is None:
            return None
        try:
            return await self.repository.lookup(normalized)
        except Exception as exc:
            logger.warning("blocked url lookup failed; treating as miss", extra={"error": exc.__class__.__name__})
            return None

    async def _score_fresh(self, raw: str, normalized: str) -> UrlCheckResult:
        heuristic_result = score_url(normalized)
        heuristic = HeuristicEvidence(
            risk=heuristic_result.risk,
            reasons=heuristic_result.reasons,
            rules=heuristic_result.rules,
        )
        reputation, intel = await asyncio.gather(
            self.reputation.lookup(normalized),
            self.intel.lookup(normalized),
        )
        combined = aggregate(heuristic, reputation, intel)
        return UrlCheckResult(
            input=raw,
            normalized=normalized,
            score=combined.score,
            verdict=combined.verdict,
            reasons=list(combined.reasons),
            categories=list(combined.categories),
            evidence=merge_evidence(heuristic, reputation, intel if intel.enabled else None),
            from_cache=False,
            detection_source=combined.detection_source.value,
        )

    def _persist(self, result: UrlCheckResult) -> None:
        if not self.cache_enabled or self.writer is None or result.normalized is None:
            return
        payload = BlockedUrlUpsert(
            url=result.input,
            normalized_url=result.normalized,
            risk_score=result.score,
            detection_source=result.detection_source,
            reasons=result.reasons,
            categories=result.categories,
            evidence=evidence_to_json(result.evidence),
        )
        self.writer.submit(payload)


def _result_from_cache(raw: str, normalized: str, record: BlockedUrlRecord) -> UrlCheckResult:
    evidence = CacheEvidence(
        record_id=record.record_id,
        blocked_count=record.blocked_count,
        detection_source=record.detection_source,
        first_detected=record.first_detected,
        last_detected=record.last_detected,
    )
    return UrlCheckResult(
        input=raw,
        normalized=normalized,
        score=record.risk_score,
        verdict=verdict_from_score(record.risk_score),
        reasons=[*record.reasons, f"previously blocked ({record.blocked_count} times)"],
        categories=list(record.categories),
        evidence=merge_evidence(evidence),
        from_cache=True,
        detection_source=record.detection_source,
    )
