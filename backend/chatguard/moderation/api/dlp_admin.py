"""Admin endpoint for the out-of-band DLP context reload."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from chatguard.api.deps import require_admin
from chatguard.moderation.domain import container

router = APIRouter(prefix="/api/mod/v1/dlp", tags=["moderation-dlp"], dependencies=[Depends(require_admin)])


class DlpReloadOut(BaseModel):
    corpus_entries: int
    sensitive_terms: int
    sensitive_phrases: int
    benign_terms: int


@router.post("/reload", response_model=DlpReloadOut)
async def reload_dlp_context() -> DlpReloadOut:
    context = container.reload_dlp()
    return DlpReloadOut(
        corpus_entries=len(context.corpus),
        sensitive_terms=len(context.sensitive_terms),
        sensitive_phrases=len(context.sensitive_phrases),
        benign_terms=len(context.benign_terms),
    )
