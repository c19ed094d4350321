"""Screening endpoint called by the chat transport for every outgoing message."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from chatguard.moderation.domain.container import get_pipeline
from chatguard.moderation.domain.pipeline import ModerationPipeline, ScreenResult

router = APIRouter(prefix="/api/mod/v1", tags=["moderation-screen"])


class ScreenIn(BaseModel):
    text: str = Field(..., max_length=10_000)
    sender: str = Field(default="Someone", min_length=1, max_length=120)


class UrlResultOut(BaseModel):
    url: str
    score: int
    verdict: str
    reasons: list[str]
    fromCache: bool


class NoticeOut(BaseModel):
    text: str
    audience: str


class ScreenOut(BaseModel):
    allowed: bool
    blocked_by: Optional[str] = None
    notice: Optional[NoticeOut] = None
    urls: list[UrlResultOut] = Field(default_factory=list)
    leak: bool = False

    @classmethod
    def from_domain(cls, result: ScreenResult) -> "ScreenOut":
        return cls.model_validate(result.as_dict())


def _pipeline_dep() -> ModerationPipeline:
    return get_pipeline()


@router.post("/screen", response_model=ScreenOut)
async def screen_message(payload: ScreenIn, pipeline: ModerationPipeline = Depends(_pipeline_dep)) -> ScreenOut:
    result = await pipeline.screen(payload.text, sender=payload.sender)
    return ScreenOut.from_domain(result)
