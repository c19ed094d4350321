"""Liveness and readiness reporting for the ops routes."""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Dict, Tuple

from chatguard.infra import postgres
from chatguard.obs import metrics
from chatguard.settings import settings

LOGGER = logging.getLogger(__name__)


async def _postgres_status(timeout: float = 0.3) -> Dict[str, Any]:
	if not settings.postgres_url:
		return {"ok": True, "mode": "in_memory"}
	try:
		pool = await postgres.get_pool()
	except Exception as exc:  # pragma: no cover - connection bootstrap failure
		metrics.mark_postgres(False)
		LOGGER.warning("Postgres connection unavailable", exc_info=True)
		return {"ok": False, "error": exc.__class__.__name__}

	start = perf_counter()
	try:
		async with pool.acquire() as conn:
			await asyncio.wait_for(conn.execute("SELECT 1"), timeout=timeout)
	except Exception as exc:  # pragma: no cover - depends on runtime
		metrics.mark_postgres(False)
		LOGGER.warning("Postgres readiness query failed", exc_info=True)
		return {"ok": False, "error": exc.__class__.__name__}
	latency = perf_counter() - start
	metrics.mark_postgres(True)
	return {"ok": True, "latency_ms": round(latency * 1000, 2)}


def _dlp_status() -> Dict[str, Any]:
	from chatguard.moderation.domain import container

	if not settings.dlp_enabled:
		return {"ok": True, "enabled": False}
	context = container.get_dlp_context()
	if context is None:
		return {"ok": False, "enabled": True, "error": "not_loaded"}
	return {"ok": True, "enabled": True, "corpus_entries": len(context.corpus)}


async def liveness() -> Dict[str, Any]:
	return {"status": "ok"}


async def readiness() -> Tuple[int, Dict[str, Any]]:
	postgres_state = await _postgres_status()
	dlp_state = _dlp_status()
	ok = bool(postgres_state.get("ok") and dlp_state.get("ok"))
	return (
		200 if ok else 503,
		{
			"status": "ok" if ok else "degraded",
			"postgres": postgres_state,
			"dlp": dlp_state,
			"service": settings.service_name,
			"commit": settings.git_commit,
		},
	)
