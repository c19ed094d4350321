"""Embedding-similarity check against the protected-content corpus."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

import httpx

from chatguard.moderation.domain.dlp_terms import DlpContext
from chatguard.moderation.domain.resilience import DependencyGuard

logger = logging.getLogger(__name__)


class EmbeddingError(RuntimeError):
    """The embedding provider returned no usable vector."""


class EmbeddingProvider(Protocol):
    async def embed(self, text: str) -> list[float]:
        ...


def cosine_similarity(left: Sequence[float], right: Sequence[float]) -> float:
    if len(left) != len(right) or not left:
        return 0.0
    dot = sum(a * b for a, b in zip(left, right))
    norm_left = math.sqrt(sum(a * a for a in left))
    norm_right = math.sqrt(sum(b * b for b in right))
    if norm_left == 0 or norm_right == 0:
        return 0.0
    return dot / (norm_left * norm_right)


@dataclass
class GeminiEmbeddingProvider(EmbeddingProvider):
    """Calls the Generative Language ``embedContent`` endpoint."""

    http: httpx.AsyncClient
    api_key: str
    model: str = "text-embedding-004"
    api_url: str = "https://generativelanguage.googleapis.com/v1beta"

    async def embed(self, text: str) -> list[float]:
        response = await self.http.post(
            f"{self.api_url}/models/{self.model}:embedContent",
            headers={"x-goog-api-key": self.api_key},
            json={"model": f"models/{self.model}", "content": {"parts": [{"text": text}]}},
        )
        response.raise_for_status()
        payload = response.json()
        values = (payload.get("embedding") or {}).get("values") if isinstance(payload, dict) else None
        if not isinstance(values, list) or not values:
            raise EmbeddingError("embedding response carried no values")
        return [float(value) for value in values]


@dataclass
class SemanticLeakChecker:
    """Report a leak when the message embedding is close to any protected item.

    Fails open: any provider failure resolves to "no leak" through the guard,
    which logs and counts it.
    """

    context: DlpContext
    provider: Optional[EmbeddingProvider]
    guard: DependencyGuard
    threshold: float = 0.75

    async def has_leak(self, text: str, threshold: float | None = None) -> bool:
        limit = self.threshold if threshold is None else threshold
        if not self.context.corpus:
            logger.warning("semantic leak check skipped: protected content corpus is empty")
            return False
        if self.provider is None:
            logger.warning("semantic leak check skipped: no embedding provider configured")
            return False
        vector = await self.guard.call(lambda: self.provider.embed(text), None)
        if not vector:
            return False
        mismatched = [entry.item_id for entry in self.context.corpus if len(entry.vector) != len(vector)]
        if mismatched:
            # Usually a corpus built with a different embedding model.
            logger.warning(
                "embedding dimension mismatch; skipping %d corpus entries",
                len(mismatched),
                extra={"message_dims": len(vector), "item_ids": mismatched[:5]},
            )
        for entry in self.context.corpus:
            similarity = cosine_similarity(vector, entry.vector)
            if similarity > limit:
                logger.info("protected content match", extra={"item_id": entry.item_id, "similarity": round(similarity, 4)})
                return True
        return False
