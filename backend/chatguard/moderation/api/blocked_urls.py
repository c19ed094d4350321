"""Admin endpoints for inspecting and curating the blocked URL cache."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from chatguard.api.deps import require_admin
from chatguard.moderation.domain.blocked_urls import BlockedUrlRecord, BlockedUrlRepository, BlockedUrlStats
from chatguard.moderation.domain.container import get_repository

router = APIRouter(
    prefix="/api/mod/v1/blocked-urls",
    tags=["moderation-blocked-urls"],
    dependencies=[Depends(require_admin)],
)


class BlockedUrlOut(BaseModel):
    id: int
    url: str
    normalized_url: str
    risk_score: int
    detection_source: str
    reasons: list[str]
    categories: list[str]
    blocked_count: int
    first_detected: datetime
    last_detected: datetime
    is_active: bool
    evidence: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_domain(cls, record: BlockedUrlRecord) -> "BlockedUrlOut":
        return cls(
            id=record.record_id,
            url=record.url,
            normalized_url=record.normalized_url,
            risk_score=record.risk_score,
            detection_source=record.detection_source,
            reasons=list(record.reasons),
            categories=list(record.categories),
            blocked_count=record.blocked_count,
            first_detected=record.first_detected,
            last_detected=record.last_detected,
            is_active=record.is_active,
            evidence=dict(record.evidence),
        )


class BlockedUrlStatsOut(BaseModel):
    total_blocked: int
    total_block_count: int
    avg_risk_score: float
    max_risk_score: int
    sources: list[str]

    @classmethod
    def from_domain(cls, stats: BlockedUrlStats) -> "BlockedUrlStatsOut":
        return cls(
            total_blocked=stats.total_blocked,
            total_block_count=stats.total_block_count,
            avg_risk_score=round(stats.avg_risk_score, 2),
            max_risk_score=stats.max_risk_score,
            sources=list(stats.sources),
        )


def _repo_dep() -> BlockedUrlRepository:
    return get_repository()


@router.get("/stats", response_model=BlockedUrlStatsOut)
async def blocked_url_stats(repo: BlockedUrlRepository = Depends(_repo_dep)) -> BlockedUrlStatsOut:
    return BlockedUrlStatsOut.from_domain(await repo.stats())


@router.get("/recent", response_model=list[BlockedUrlOut])
async def recent_blocked_urls(
    limit: int = Query(default=10, ge=1, le=100),
    repo: BlockedUrlRepository = Depends(_repo_dep),
) -> list[BlockedUrlOut]:
    records = await repo.list_recent(limit)
    return [BlockedUrlOut.from_domain(record) for record in records]


@router.post("/{record_id}/deactivate", response_model=BlockedUrlOut)
async def deactivate_blocked_url(record_id: int, repo: BlockedUrlRepository = Depends(_repo_dep)) -> BlockedUrlOut:
    record = await repo.deactivate(record_id)
    if record is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="blocked_url_not_found")
    return BlockedUrlOut.from_domain(record)
