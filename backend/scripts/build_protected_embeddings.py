#!/usr/bin/env python3
"""
Build the protected-content embedding corpus used by the semantic DLP check.

Usage:
    python scripts/build_protected_embeddings.py ITEMS.json [--output protected_embeddings.json] [--force]

ITEMS.json holds a list of {"id", "name", "tokens"} objects. Each item is
embedded as "name: token, token" and written with its vector. An existing
corpus is never overwritten unless --force is given.

Environment Variables:
    GEMINI_API_KEY: required
    GEMINI_EMBEDDING_MODEL, GEMINI_API_URL: optional overrides
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import httpx

from chatguard.moderation.domain.dlp_semantic import GeminiEmbeddingProvider
from chatguard.moderation.jobs.protected_embeddings import CorpusExistsError, run
from chatguard.obs.logging import configure_logging
from chatguard.settings import settings

logger = logging.getLogger("chatguard.jobs.protected_embeddings")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build the protected-content embedding corpus")
    parser.add_argument("items", help="JSON file with protected items")
    parser.add_argument("--output", default=settings.dlp_corpus_path, help="corpus file to write")
    parser.add_argument("--force", action="store_true", help="overwrite an existing corpus")
    return parser.parse_args(argv)


async def _main(args: argparse.Namespace) -> int:
    if not settings.gemini_api_key:
        logger.error("GEMINI_API_KEY is not set")
        return 2
    async with httpx.AsyncClient(timeout=httpx.Timeout(settings.dlp_timeout_seconds * 4)) as http:
        provider = GeminiEmbeddingProvider(
            http=http,
            api_key=settings.gemini_api_key,
            model=settings.gemini_embedding_model,
            api_url=settings.gemini_api_url,
        )
        try:
            await run(args.items, args.output, provider, force=args.force)
        except CorpusExistsError as exc:
            logger.warning("%s", exc)
            return 1
    return 0


if __name__ == "__main__":
    configure_logging()
    sys.exit(asyncio.run(_main(_parse_args())))
