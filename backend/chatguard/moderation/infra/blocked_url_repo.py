"""PostgreSQL implementation of the blocked URL repository."""

from __future__ import annotations

import json
from typing import Any, Sequence

import asyncpg

from chatguard.moderation.domain.blocked_urls import (
    BlockedUrlRecord,
    BlockedUrlRepository,
    BlockedUrlStats,
    BlockedUrlUpsert,
)

_COLUMNS = """
id, url, normalized_url, risk_score, detection_source, reasons, categories, blocked_count,
first_detected, last_detected, is_active, evidence
"""


class PostgresBlockedUrlRepository(BlockedUrlRepository):
    """Asyncpg-backed repository; each write is a single atomic statement."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def lookup(self, normalized_url: str) -> BlockedUrlRecord | None:
        query = f"""
        UPDATE blocked_urls
        SET blocked_count = blocked_count + 1,
            last_detected = GREATEST(now(), last_detected + interval '1 microsecond')
        WHERE normalized_url = $1 AND is_active
        RETURNING {_COLUMNS}
        """
        record = await self.pool.fetchrow(query, normalized_url)
        return _record_from_row(record) if record else None

    async def upsert(self, payload: BlockedUrlUpsert) -> BlockedUrlRecord:
        query = f"""
        INSERT INTO blocked_urls (url, normalized_url, risk_score, detection_source, reasons, categories, evidence)
        VALUES ($1, $2, $3, $4, $5::text[], $6::text[], $7::jsonb)
        ON CONFLICT (normalized_url)
        DO UPDATE SET url = EXCLUDED.url,
                      risk_score = EXCLUDED.risk_score,
                      detection_source = EXCLUDED.detection_source,
                      reasons = EXCLUDED.reasons,
                      categories = EXCLUDED.categories,
                      evidence = EXCLUDED.evidence,
                      blocked_count = blocked_urls.blocked_count + 1,
                      last_detected = GREATEST(now(), blocked_urls.last_detected + interval '1 microsecond'),
                      is_active = true
        RETURNING {_COLUMNS}
        """
        record = await self.pool.fetchrow(
            query,
            payload.url,
            payload.normalized_url,
            payload.stored_score,
            payload.detection_source,
            list(payload.reasons),
            list(payload.categories),
            json.dumps(payload.evidence),
        )
        if record is None:
            raise RuntimeError(f"upsert of {payload.normalized_url!r} returned no row")
        return _record_from_row(record)

    async def stats(self) -> BlockedUrlStats:
        query = """
        SELECT COUNT(*) AS total_blocked,
               COALESCE(SUM(blocked_count), 0) AS total_block_count,
               COALESCE(AVG(risk_score), 0) AS avg_risk_score,
               COALESCE(MAX(risk_score), 0) AS max_risk_score,
               COALESCE(array_agg(DISTINCT detection_source) FILTER (WHERE detection_source IS NOT NULL), '{}') AS sources
        FROM blocked_urls
        WHERE is_active
        """
        record = await self.pool.fetchrow(query)
        if record is None:
            return BlockedUrlStats.empty()
        return BlockedUrlStats(
            total_blocked=int(record["total_blocked"] or 0),
            total_block_count=int(record["total_block_count"] or 0),
            avg_risk_score=float(record["avg_risk_score"] or 0),
            max_risk_score=int(record["max_risk_score"] or 0),
            sources=tuple(sorted(record["sources"] or ())),
        )

    async def list_recent(self, limit: int) -> Sequence[BlockedUrlRecord]:
        query = f"""
        SELECT {_COLUMNS}
        FROM blocked_urls
        WHERE is_active
        ORDER BY last_detected DESC
        LIMIT $1
        """
        records = await self.pool.fetch(query, limit)
        return [_record_from_row(record) for record in records]

    async def deactivate(self, record_id: int) -> BlockedUrlRecord | None:
        query = f"""
        UPDATE blocked_urls
        SET is_active = false
        WHERE id = $1
        RETURNING {_COLUMNS}
        """
        record = await self.pool.fetchrow(query, record_id)
        return _record_from_row(record) if record else None


def _decode_evidence(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, str):
        try:
            decoded = json.loads(value)
        except ValueError:
            return {}
        return decoded if isinstance(decoded, dict) else {}
    return dict(value)


def _record_from_row(record: asyncpg.Record) -> BlockedUrlRecord:
    return BlockedUrlRecord(
        record_id=int(record["id"]),
        url=str(record["url"]),
        normalized_url=str(record["normalized_url"]),
        risk_score=int(record["risk_score"]),
        detection_source=str(record["detection_source"]),
        reasons=list(record["reasons"] or []),
        categories=list(record["categories"] or []),
        blocked_count=int(record["blocked_count"]),
        first_detected=record["first_detected"],
        last_detected=record["last_detected"],
        is_active=bool(record["is_active"]),
        evidence=_decode_evidence(record["evidence"]),
    )
