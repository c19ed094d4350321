"""Lightweight service container shared by moderation modules."""

from __future__ import annotations

import logging
from typing import Optional

import asyncpg
import httpx

from chatguard.moderation.domain.blocked_urls import BlockedUrlRepository, InMemoryBlockedUrlRepository
from chatguard.moderation.domain.dlp_prefilter import DlpPrefilter
from chatguard.moderation.domain.dlp_semantic import EmbeddingProvider, GeminiEmbeddingProvider, SemanticLeakChecker
from chatguard.moderation.domain.dlp_terms import DlpContext, build_dlp_context, load_corpus
from chatguard.moderation.domain.pipeline import DlpChecker, ModerationPipeline
from chatguard.moderation.domain.resilience import DependencyGuard
from chatguard.moderation.domain.threat_intel import (
	DisabledThreatIntelClient,
	ReputationListClient,
	ThreatIntelClient,
	UrlhausClient,
	VirusTotalClient,
)
from chatguard.moderation.domain.url_checker import UrlChecker
from chatguard.moderation.infra.blocked_url_repo import PostgresBlockedUrlRepository
from chatguard.moderation.workers.blocked_url_writer import BlockedUrlWriter
from chatguard.settings import Settings, settings

logger = logging.getLogger(__name__)

_config: Settings = settings
_repository: BlockedUrlRepository = InMemoryBlockedUrlRepository()
_writer: Optional[BlockedUrlWriter] = None
_http: Optional[httpx.AsyncClient] = None
_owns_http = False
_embedding_provider: Optional[EmbeddingProvider] = None
_dlp_context: Optional[DlpContext] = None
_pipeline: Optional[ModerationPipeline] = None


def _build_http_client(config: Settings) -> httpx.AsyncClient:
	return httpx.AsyncClient(
		timeout=httpx.Timeout(max(config.virustotal_timeout_seconds, config.dlp_timeout_seconds)),
		headers={"User-Agent": f"{config.service_name}/{config.git_commit}"},
	)


def _intel_guard(name: str, timeout: float, config: Settings) -> DependencyGuard:
	return DependencyGuard(
		name=name,
		timeout=timeout,
		failure_threshold=config.intel_failure_threshold,
		reset_after=config.intel_reset_seconds,
	)


def _build_dlp(context: DlpContext, config: Settings) -> Optional[DlpChecker]:
	if not config.dlp_enabled:
		return None
	guard = DependencyGuard(
		name="embeddings",
		timeout=config.dlp_timeout_seconds,
		retries=config.dlp_max_retries,
		backoff_base=config.dlp_retry_base_delay_seconds,
		failure_threshold=config.intel_failure_threshold,
		reset_after=config.intel_reset_seconds,
	)
	return DlpChecker(
		prefilter=DlpPrefilter(context=context, match_threshold=config.dlp_prefilter_match_threshold),
		semantic=SemanticLeakChecker(
			context=context,
			provider=_embedding_provider,
			guard=guard,
			threshold=config.dlp_similarity_threshold,
		),
	)


def configure(
	*,
	config: Optional[Settings] = None,
	repository: Optional[BlockedUrlRepository] = None,
	reputation: Optional[ReputationListClient] = None,
	intel: Optional[ThreatIntelClient] = None,
	embedding_provider: Optional[EmbeddingProvider] = None,
	dlp_context: Optional[DlpContext] = None,
	http_client: Optional[httpx.AsyncClient] = None,
) -> ModerationPipeline:
	"""Wire the pipeline; anything not supplied is built from settings."""

	global _config, _repository, _writer, _http, _owns_http, _embedding_provider, _dlp_context, _pipeline
	cfg = config or settings
	_config = cfg
	if http_client is not None:
		_http, _owns_http = http_client, False
	elif _http is None:
		_http, _owns_http = _build_http_client(cfg), True
	_repository = repository or InMemoryBlockedUrlRepository()
	if _writer is not None:
		_writer.retire()
	_writer = BlockedUrlWriter(repository=_repository, max_queue_size=cfg.blocked_url_writer_queue_size)

	if reputation is None:
		reputation = UrlhausClient(
			http=_http,
			guard=_intel_guard("urlhaus", cfg.url_check_timeout_seconds, cfg),
			api_url=cfg.urlhaus_api_url,
		)
	if intel is None:
		if cfg.virustotal_api_key:
			intel = VirusTotalClient(
				http=_http,
				guard=_intel_guard("virustotal", cfg.virustotal_timeout_seconds, cfg),
				api_key=cfg.virustotal_api_key,
				api_url=cfg.virustotal_api_url,
			)
		else:
			intel = DisabledThreatIntelClient()

	if embedding_provider is None and cfg.gemini_api_key:
		embedding_provider = GeminiEmbeddingProvider(
			http=_http,
			api_key=cfg.gemini_api_key,
			model=cfg.gemini_embedding_model,
			api_url=cfg.gemini_api_url,
		)
	_embedding_provider = embedding_provider
	if dlp_context is None:
		dlp_context = build_dlp_context(load_corpus(cfg.dlp_corpus_path)) if cfg.dlp_enabled else build_dlp_context()
	_dlp_context = dlp_context

	checker = UrlChecker(
		repository=_repository,
		reputation=reputation,
		intel=intel,
		writer=_writer,
		block_threshold=cfg.url_risk_threshold,
		max_urls=cfg.max_urls_per_message,
		cache_enabled=cfg.blocked_url_cache_enabled,
	)
	_pipeline = ModerationPipeline(urls=checker, dlp=_build_dlp(dlp_context, cfg), block_threshold=cfg.url_risk_threshold)
	return _pipeline


def configure_postgres(pool: asyncpg.Pool, **overrides) -> ModerationPipeline:
	return configure(repository=PostgresBlockedUrlRepository(pool), **overrides)


def reload_dlp(corpus_path: Optional[str] = None) -> DlpContext:
	"""Build a fresh term context from disk and swap it into the pipeline."""

	global _dlp_context
	pipeline = get_pipeline()
	context = build_dlp_context(load_corpus(corpus_path or _config.dlp_corpus_path))
	_dlp_context = context
	pipeline.replace_dlp(_build_dlp(context, _config))
	logger.info(
		"dlp context reloaded",
		extra={"corpus_entries": len(context.corpus), "sensitive_terms": len(context.sensitive_terms)},
	)
	return context


async def shutdown() -> None:
	global _http, _owns_http
	if _writer is not None:
		await _writer.drain()
		await _writer.stop()
	if _http is not None and _owns_http:
		await _http.aclose()
	_http, _owns_http = None, False


def get_pipeline() -> ModerationPipeline:
	if _pipeline is None:
		return configure()
	return _pipeline


def get_repository() -> BlockedUrlRepository:
	return _repository


def get_writer() -> Optional[BlockedUrlWriter]:
	return _writer


def get_dlp_context() -> Optional[DlpContext]:
	return _dlp_context
