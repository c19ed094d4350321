from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from chatguard.moderation.domain.blocked_urls import BlockedUrlUpsert, InMemoryBlockedUrlRepository


def _payload(normalized: str = "http://evil.tk/", score: int = 85, source: str = "heuristic") -> BlockedUrlUpsert:
    return BlockedUrlUpsert(
        url=normalized,
        normalized_url=normalized,
        risk_score=score,
        detection_source=source,
        reasons=["suspicious TLD"],
        categories=[],
        evidence={"heuristic": {"risk": score}},
    )


@pytest.mark.asyncio
async def test_second_upsert_increments_count_and_advances_last_detected() -> None:
    frozen = datetime(2024, 5, 1, tzinfo=timezone.utc)
    repo = InMemoryBlockedUrlRepository(clock=lambda: frozen)

    first = await repo.upsert(_payload(score=85))
    second = await repo.upsert(_payload(score=95, source="combined"))

    assert first.blocked_count == 1
    assert second.blocked_count == 2
    assert second.first_detected == first.first_detected
    assert second.last_detected > first.last_detected
    assert second.risk_score == 95
    assert second.detection_source == "combined"
    assert second.record_id == first.record_id


@pytest.mark.asyncio
async def test_stored_score_is_clamped() -> None:
    repo = InMemoryBlockedUrlRepository()
    record = await repo.upsert(_payload(score=105))
    assert record.risk_score == 100


@pytest.mark.asyncio
async def test_lookup_counts_hits_on_active_records_only() -> None:
    repo = InMemoryBlockedUrlRepository()
    assert await repo.lookup("http://evil.tk/") is None

    created = await repo.upsert(_payload())
    hit = await repo.lookup("http://evil.tk/")
    assert hit is not None
    assert hit.blocked_count == 2
    assert hit.last_detected >= created.last_detected

    await repo.deactivate(created.record_id)
    assert await repo.lookup("http://evil.tk/") is None


@pytest.mark.asyncio
async def test_concurrent_upserts_do_not_lose_increments() -> None:
    repo = InMemoryBlockedUrlRepository()
    await asyncio.gather(*(repo.upsert(_payload()) for _ in range(25)))
    record = await repo.lookup("http://evil.tk/")
    assert record is not None
    assert record.blocked_count == 26


@pytest.mark.asyncio
async def test_upsert_reactivates_deactivated_record() -> None:
    repo = InMemoryBlockedUrlRepository()
    created = await repo.upsert(_payload())
    deactivated = await repo.deactivate(created.record_id)
    assert deactivated is not None and deactivated.is_active is False

    revived = await repo.upsert(_payload())
    assert revived.is_active is True
    assert revived.blocked_count == 2


@pytest.mark.asyncio
async def test_stats_and_recent_cover_active_records() -> None:
    repo = InMemoryBlockedUrlRepository()
    assert (await repo.stats()).total_blocked == 0

    a = await repo.upsert(_payload("http://a.tk/", score=80, source="heuristic"))
    await repo.upsert(_payload("http://b.tk/", score=100, source="urlhaus"))
    await repo.upsert(_payload("http://b.tk/", score=100, source="urlhaus"))
    c = await repo.upsert(_payload("http://c.tk/", score=90, source="combined"))
    await repo.deactivate(c.record_id)

    stats = await repo.stats()
    assert stats.total_blocked == 2
    assert stats.total_block_count == 3
    assert stats.avg_risk_score == pytest.approx(90.0)
    assert stats.max_risk_score == 100
    assert stats.sources == ("heuristic", "urlhaus")

    recent = await repo.list_recent(10)
    assert [record.normalized_url for record in recent] == ["http://b.tk/", "http://a.tk/"]
    assert len(await repo.list_recent(1)) == 1
    assert a.record_id != c.record_id


@pytest.mark.asyncio
async def test_deactivate_unknown_record() -> None:
    repo = InMemoryBlockedUrlRepository()
    assert await repo.deactivate(999) is None


@pytest.mark.asyncio
async def test_returned_records_are_snapshots() -> None:
    repo = InMemoryBlockedUrlRepository()
    record = await repo.upsert(_payload())
    record.blocked_count = 50
    again = await repo.lookup("http://evil.tk/")
    assert again is not None and again.blocked_count == 2
