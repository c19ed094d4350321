"""Offline job building the protected-content embedding corpus."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

from chatguard.moderation.domain.dlp_semantic import EmbeddingProvider
from chatguard.moderation.domain.dlp_terms import ProtectedContentEmbedding

logger = logging.getLogger(__name__)


class CorpusExistsError(FileExistsError):
    """The output corpus exists and overwriting was not requested."""


@dataclass(frozen=True, slots=True)
class ProtectedItem:
    item_id: str
    name: str
    tokens: tuple[str, ...]

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ProtectedItem":
        name = str(data.get("name") or "").strip()
        if not name:
            raise ValueError("protected item needs a name")
        tokens = data.get("tokens", data.get("ingredients")) or ()
        if isinstance(tokens, str) or not isinstance(tokens, Sequence):
            raise ValueError("tokens must be a list of strings")
        return cls(item_id=str(data.get("id") or name), name=name, tokens=tuple(str(token) for token in tokens))

    def embedding_text(self) -> str:
        return f"{self.name}: {', '.join(self.tokens)}"


def read_items(path: str | Path) -> list[ProtectedItem]:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError("protected items file must hold a JSON list")
    return [ProtectedItem.from_mapping(item) for item in data]


async def build_corpus(items: Iterable[ProtectedItem], provider: EmbeddingProvider) -> list[ProtectedContentEmbedding]:
    """Embed every item sequentially; a provider error aborts the whole run."""

    corpus: list[ProtectedContentEmbedding] = []
    for item in items:
        vector = await provider.embed(item.embedding_text())
        corpus.append(
            ProtectedContentEmbedding(item_id=item.item_id, name=item.name, vector=tuple(vector), tokens=item.tokens)
        )
        logger.info("embedded protected item", extra={"item_id": item.item_id, "dimensions": len(vector)})
    return corpus


def write_corpus(path: str | Path, corpus: Sequence[ProtectedContentEmbedding], *, force: bool = False) -> Path:
    target = Path(path)
    if target.exists() and not force:
        raise CorpusExistsError(f"{target} already exists; pass --force to overwrite")
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_suffix(target.suffix + ".tmp")
    tmp.write_text(json.dumps([entry.as_dict() for entry in corpus], ensure_ascii=False, indent=2), encoding="utf-8")
    tmp.replace(target)
    return target


async def run(
    items_path: str | Path,
    output_path: str | Path,
    provider: EmbeddingProvider,
    *,
    force: bool = False,
) -> Path:
    target = Path(output_path)
    if target.exists() and not force:
        raise CorpusExistsError(f"{target} already exists; pass --force to overwrite")
    corpus = await build_corpus(read_items(items_path), provider)
    written = write_corpus(target, corpus, force=force)
    logger.info("protected content corpus written", extra={"path": str(written), "entries": len(corpus)})
    return written
