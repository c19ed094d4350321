"""Storage contracts and in-memory fallback for the known-bad URL cache."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, MutableMapping, Protocol, Sequence

MAX_RISK_SCORE = 100


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class BlockedUrlRecord:
    """Persisted verdict for one normalized URL."""

    record_id: int
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
    evidence: dict[str, Any]


@dataclass(slots=True)
class BlockedUrlUpsert:
    """Latest scoring data for a URL that crossed the block threshold."""

    url: str
    normalized_url: str
    risk_score: int
    detection_source: str
    reasons: Sequence[str]
    categories: Sequence[str]
    evidence: dict[str, Any] = field(default_factory=dict)

    @property
    def stored_score(self) -> int:
        return max(0, min(MAX_RISK_SCORE, self.risk_score))


@dataclass(frozen=True, slots=True)
class BlockedUrlStats:
    total_blocked: int
    total_block_count: int
    avg_risk_score: float
    max_risk_score: int
    sources: tuple[str, ...]

    @classmethod
    def empty(cls) -> "BlockedUrlStats":
        return cls(total_blocked=0, total_block_count=0, avg_risk_score=0.0, max_risk_score=0, sources=())


class BlockedUrlRepository(Protocol):
    """Persistence for blocked URLs. Every write must be atomic per normalized URL."""

    async def lookup(self, normalized_url: str) -> BlockedUrlRecord | None:
        """Return the active record and count this hit, or None on a miss."""

    async def upsert(self, payload: BlockedUrlUpsert) -> BlockedUrlRecord:
        """Create the record or merge fresh scoring data and count the block."""

    async def stats(self) -> BlockedUrlStats:
        """Aggregate figures over active records."""

    async def list_recent(self, limit: int) -> Sequence[BlockedUrlRecord]:
        """Active records, most recently detected first."""

    async def deactivate(self, record_id: int) -> BlockedUrlRecord | None:
        """Soft-delete a record; history is kept."""


@dataclass
class InMemoryBlockedUrlRepository(BlockedUrlRepository):
    """Lock-guarded repository for local development and tests."""

    records: MutableMapping[str, BlockedUrlRecord] = field(default_factory=dict)
    clock: Callable[[], datetime] = utcnow
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)
    _next_id: int = field(default=1, init=False, repr=False)

    def _tick(self, previous: datetime | None = None) -> datetime:
        now = self.clock()
        if previous is not None and now <= previous:
            now = previous + timedelta(microseconds=1)
        return now

    async def lookup(self, normalized_url: str) -> BlockedUrlRecord | None:
        async with self._lock:
            record = self.records.get(normalized_url)
            if record is None or not record.is_active:
                return None
            record.blocked_count += 1
            record.last_detected = self._tick(record.last_detected)
            return replace(record)

    async def upsert(self, payload: BlockedUrlUpsert) -> BlockedUrlRecord:
        async with self._lock:
            record = self.records.get(payload.normalized_url)
            if record is None:
                now = self._tick()
                record = BlockedUrlRecord(
                    record_id=self._next_id,
                    url=payload.url,
                    normalized_url=payload.normalized_url,
                    risk_score=payload.stored_score,
                    detection_source=payload.detection_source,
                    reasons=list(payload.reasons),
                    categories=list(payload.categories),
                    blocked_count=1,
                    first_detected=now,
                    last_detected=now,
                    is_active=True,
                    evidence=dict(payload.evidence),
                )
                self._next_id += 1
                self.records[payload.normalized_url] = record
            else:
                record.url = payload.url
                record.risk_score = payload.stored_score
                record.detection_source = payload.detection_source
                record.reasons = list(payload.reasons)
                record.categories = list(payload.categories)
                record.evidence = dict(payload.evidence)
                record.blocked_count += 1
                record.last_detected = self._tick(record.last_detected)
                record.is_active = True
            return replace(record)

    async def stats(self) -> BlockedUrlStats:
        async with self._lock:
            active = [record for record in self.records.values() if record.is_active]
        if not active:
            return BlockedUrlStats.empty()
        return BlockedUrlStats(
            total_blocked=len(active),
            total_block_count=sum(record.blocked_count for record in active),
            avg_risk_score=sum(record.risk_score for record in active) / len(active),
            max_risk_score=max(record.risk_score for record in active),
            sources=tuple(sorted({record.detection_source for record in active})),
        )

    async def list_recent(self, limit: int) -> Sequence[BlockedUrlRecord]:
        async with self._lock:
            active = [replace(record) for record in self.records.values() if record.is_active]
        active.sort(key=lambda record: record.last_detected, reverse=True)
        return active[:limit]

    async def deactivate(self, record_id: int) -> BlockedUrlRecord | None:
        async with self._lock:
            for record in self.records.values():
                if record.record_id == record_id:
                    record.is_active = False
                    return replace(record)
        return None
