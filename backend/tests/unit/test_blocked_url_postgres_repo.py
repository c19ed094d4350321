"""Unit tests for the asyncpg blocked URL repository against an in-process pool."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from chatguard.moderation.domain.blocked_urls import BlockedUrlUpsert
from chatguard.moderation.infra.blocked_url_repo import PostgresBlockedUrlRepository

FROZEN_NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)
TICK = timedelta(microseconds=1)


class FakePool:
    """asyncpg.Pool stand-in that applies the repository's statements to a dict table.

    The clock never advances, so ``last_detected`` only moves forward through
    the ``GREATEST(now(), last_detected + 1us)`` rule.
    """

    def __init__(self) -> None:
        self.rows: dict[str, dict[str, Any]] = {}
        self.queries: list[tuple[str, tuple[Any, ...]]] = []
        self.next_id = 1
        self.return_nothing = False

    async def fetchrow(self, query: str, *params: Any) -> dict[str, Any] | None:
        self.queries.append((query, params))
        await asyncio.sleep(0)
        if self.return_nothing:
            return None
        if "INSERT INTO blocked_urls" in query:
            return self._upsert(*params)
        if "SET blocked_count = blocked_count + 1" in query:
            row = self.rows.get(params[0])
            if row is None or not row["is_active"]:
                return None
            row["blocked_count"] += 1
            row["last_detected"] = max(FROZEN_NOW, row["last_detected"] + TICK)
            return dict(row)
        if "SET is_active = false" in query:
            for row in self.rows.values():
                if row["id"] == params[0]:
                    row["is_active"] = False
                    return dict(row)
            return None
        if "array_agg(DISTINCT detection_source)" in query:
            active = [row for row in self.rows.values() if row["is_active"]]
            return {
                "total_blocked": len(active),
                "total_block_count": sum(row["blocked_count"] for row in active) or None,
                "avg_risk_score": (sum(row["risk_score"] for row in active) / len(active)) if active else None,
                "max_risk_score": max((row["risk_score"] for row in active), default=None),
                "sources": list({row["detection_source"] for row in active}),
            }
        raise NotImplementedError(query)

    async def fetch(self, query: str, *params: Any) -> list[dict[str, Any]]:
        self.queries.append((query, params))
        active = [dict(row) for row in self.rows.values() if row["is_active"]]
        active.sort(key=lambda row: row["last_detected"], reverse=True)
        return active[: params[0]]

    def _upsert(self, url, normalized_url, risk_score, detection_source, reasons, categories, evidence):
        row = self.rows.get(normalized_url)
        if row is None:
            row = {
                "id": self.next_id,
                "normalized_url": normalized_url,
                "blocked_count": 1,
                "first_detected": FROZEN_NOW,
                "last_detected": FROZEN_NOW,
            }
            self.next_id += 1
            self.rows[normalized_url] = row
        else:
            row["blocked_count"] += 1
            row["last_detected"] = max(FROZEN_NOW, row["last_detected"] + TICK)
        row.update(
            url=url,
            risk_score=risk_score,
            detection_source=detection_source,
            reasons=reasons,
            categories=categories,
            evidence=evidence,
            is_active=True,
        )
        return dict(row)


def _payload(normalized: str = "http://192.168.1.5/app.exe", **overrides: Any) -> BlockedUrlUpsert:
    values: dict[str, Any] = {
        "url": normalized,
        "normalized_url": normalized,
        "risk_score": 105,
        "detection_source": "heuristic",
        "reasons": ["IP literal host"],
        "categories": [],
        "evidence": {"heuristic": {"risk": 105}},
    }
    values.update(overrides)
    return BlockedUrlUpsert(**values)


@pytest.fixture()
def pool() -> FakePool:
    return FakePool()


@pytest.mark.asyncio
async def test_upsert_sends_clamped_score_and_json_evidence(pool) -> None:
    repo = PostgresBlockedUrlRepository(pool)
    record = await repo.upsert(_payload(reasons=("a", "b")))

    query, params = pool.queries[0]
    assert "ON CONFLICT (normalized_url)" in query
    assert "blocked_count = blocked_urls.blocked_count + 1" in query
    assert "GREATEST(now(), blocked_urls.last_detected + interval '1 microsecond')" in query
    assert params[2] == 100
    assert params[4] == ["a", "b"]
    assert json.loads(params[6]) == {"heuristic": {"risk": 105}}

    assert record.record_id == 1
    assert record.risk_score == 100
    assert record.blocked_count == 1
    assert record.evidence == {"heuristic": {"risk": 105}}


@pytest.mark.asyncio
async def test_concurrent_upserts_lose_no_counts(pool) -> None:
    repo = PostgresBlockedUrlRepository(pool)
    await asyncio.gather(*(repo.upsert(_payload()) for _ in range(10)))
    record = await repo.lookup("http://192.168.1.5/app.exe")
    assert record is not None
    assert record.blocked_count == 11
    assert record.record_id == 1


@pytest.mark.asyncio
async def test_lookup_hit_increments_and_moves_last_detected_forward(pool) -> None:
    repo = PostgresBlockedUrlRepository(pool)
    created = await repo.upsert(_payload())
    first = await repo.lookup(created.normalized_url)
    second = await repo.lookup(created.normalized_url)

    assert first is not None and second is not None
    assert "WHERE normalized_url = $1 AND is_active" in pool.queries[1][0]
    assert (first.blocked_count, second.blocked_count) == (2, 3)
    assert created.last_detected < first.last_detected < second.last_detected
    assert second.first_detected == created.first_detected


@pytest.mark.asyncio
async def test_lookup_miss_and_deactivated_records(pool) -> None:
    repo = PostgresBlockedUrlRepository(pool)
    assert await repo.lookup("http://nowhere.example/") is None

    created = await repo.upsert(_payload())
    deactivated = await repo.deactivate(created.record_id)
    assert deactivated is not None and deactivated.is_active is False
    assert await repo.lookup(created.normalized_url) is None
    assert await repo.deactivate(999) is None

    revived = await repo.upsert(_payload())
    assert revived.is_active is True
    assert revived.record_id == created.record_id


@pytest.mark.asyncio
async def test_stats_and_recent_listing(pool) -> None:
    repo = PostgresBlockedUrlRepository(pool)
    assert (await repo.stats()).total_blocked == 0

    await repo.upsert(_payload("http://a.tk/", risk_score=90, detection_source="urlhaus"))
    await repo.upsert(_payload("http://b.tk/", risk_score=100, detection_source="heuristic"))
    await repo.lookup("http://a.tk/")

    stats = await repo.stats()
    assert stats.total_blocked == 2
    assert stats.total_block_count == 3
    assert stats.avg_risk_score == pytest.approx(95.0)
    assert stats.max_risk_score == 100
    assert stats.sources == ("heuristic", "urlhaus")

    recent = await repo.list_recent(1)
    assert [record.normalized_url for record in recent] == ["http://a.tk/"]
    assert pool.queries[-1][1] == (1,)


@pytest.mark.asyncio
async def test_evidence_decoding_tolerates_bad_column_values(pool) -> None:
    repo = PostgresBlockedUrlRepository(pool)
    await repo.upsert(_payload())
    pool.rows["http://192.168.1.5/app.exe"]["evidence"] = "{not json"
    record = await repo.lookup("http://192.168.1.5/app.exe")
    assert record is not None
    assert record.evidence == {}

    pool.rows["http://192.168.1.5/app.exe"]["evidence"] = {"decoded": True}
    record = await repo.lookup("http://192.168.1.5/app.exe")
    assert record is not None
    assert record.evidence == {"decoded": True}


@pytest.mark.asyncio
async def test_upsert_without_returned_row_raises(pool) -> None:
    pool.return_nothing = True
    repo = PostgresBlockedUrlRepository(pool)
    with pytest.raises(RuntimeError, match="returned no row"):
        await repo.upsert(_payload())
