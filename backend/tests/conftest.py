import sys
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace
from typing import Optional

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from chatguard.infra import postgres
from chatguard.main import app
from chatguard.moderation.domain import container
from chatguard.moderation.domain.blocked_urls import InMemoryBlockedUrlRepository
from chatguard.moderation.domain.dlp_semantic import EmbeddingError
from chatguard.moderation.domain.dlp_terms import ProtectedContentEmbedding, build_dlp_context
from chatguard.moderation.domain.evidence import ReputationListEvidence, ThreatIntelEvidence
from chatguard.settings import settings

ADMIN_TOKEN = "test-admin-token"
ADMIN_HEADERS = {"X-Admin-Token": ADMIN_TOKEN}

PROTECTED_CORPUS = (
	ProtectedContentEmbedding(
		item_id="r-1",
		name="Gorgonzola Supreme",
		vector=(1.0, 0.0, 0.0),
		tokens=("gorgonzola", "walnut oil", "aged dough"),
	),
)


@dataclass
class FakeReputation:
	listed: dict[str, ReputationListEvidence] = field(default_factory=dict)
	calls: list[str] = field(default_factory=list)

	async def lookup(self, url: str) -> ReputationListEvidence:
		self.calls.append(url)
		return self.listed.get(url, ReputationListEvidence(listed=False))


@dataclass
class FakeIntel:
	results: dict[str, ThreatIntelEvidence] = field(default_factory=dict)
	calls: list[str] = field(default_factory=list)

	async def lookup(self, url: str) -> ThreatIntelEvidence:
		self.calls.append(url)
		return self.results.get(url, ThreatIntelEvidence(enabled=True, listed=False))


@dataclass
class FakeEmbeddings:
	vector: Optional[list[float]] = None
	error: Optional[Exception] = None
	calls: list[str] = field(default_factory=list)

	async def embed(self, text: str) -> list[float]:
		self.calls.append(text)
		if self.error is not None:
			raise self.error
		if self.vector is None:
			raise EmbeddingError("no vector configured")
		return list(self.vector)


class StepClock:
	"""Deterministic clock for repository timestamps."""

	def __init__(self, start: Optional[datetime] = None, step: timedelta = timedelta(seconds=1)) -> None:
		self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
		self.step = step

	def __call__(self) -> datetime:
		current = self.now
		self.now = self.now + self.step
		return current


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def force_test_settings(monkeypatch):
	"""Pin a dev environment with an admin token and defaults for every threshold."""
	monkeypatch.setattr(settings, "environment", "dev")
	monkeypatch.setattr(settings, "obs_admin_token", ADMIN_TOKEN)
	monkeypatch.setattr(settings, "obs_metrics_public", False)
	monkeypatch.setattr(settings, "postgres_url", None)
	monkeypatch.setattr(settings, "url_risk_threshold", 70)
	monkeypatch.setattr(settings, "max_urls_per_message", 5)
	monkeypatch.setattr(settings, "blocked_url_cache_enabled", True)
	monkeypatch.setattr(settings, "dlp_enabled", True)
	monkeypatch.setattr(settings, "dlp_similarity_threshold", 0.75)
	monkeypatch.setattr(settings, "dlp_prefilter_match_threshold", 1)
	monkeypatch.setattr(settings, "dlp_max_retries", 0)
	monkeypatch.setattr(settings, "gemini_api_key", None)
	monkeypatch.setattr(settings, "virustotal_api_key", None)
	yield


@pytest.fixture
def fake_reputation() -> FakeReputation:
	return FakeReputation()


@pytest.fixture
def fake_intel() -> FakeIntel:
	return FakeIntel()


@pytest.fixture
def fake_embeddings() -> FakeEmbeddings:
	return FakeEmbeddings()


@pytest_asyncio.fixture
async def moderation(fake_reputation, fake_intel, fake_embeddings):
	"""Container wired to in-memory storage and fake external services."""
	repository = InMemoryBlockedUrlRepository(clock=StepClock())
	http = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(503)))
	pipeline = container.configure(
		config=settings,
		repository=repository,
		reputation=fake_reputation,
		intel=fake_intel,
		embedding_provider=fake_embeddings,
		dlp_context=build_dlp_context(PROTECTED_CORPUS),
		http_client=http,
	)
	try:
		yield SimpleNamespace(
			pipeline=pipeline,
			repository=repository,
			writer=container.get_writer(),
			reputation=fake_reputation,
			intel=fake_intel,
			embeddings=fake_embeddings,
		)
	finally:
		await container.shutdown()
		await http.aclose()


@pytest_asyncio.fixture
async def api_client(moderation):
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
