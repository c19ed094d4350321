"""Per-message screening: URL risk first, then data-leak prevention."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from chatguard.moderation.domain.dlp_prefilter import DlpPrefilter, PrefilterAction
from chatguard.moderation.domain.dlp_semantic import SemanticLeakChecker
from chatguard.moderation.domain.url_checker import UrlCheckResult, UrlChecker
from chatguard.obs import metrics

logger = logging.getLogger(__name__)

DLP_NOTICE = "Message contains restricted content"


@dataclass(frozen=True, slots=True)
class Notice:
    """System message for the transport layer; ``audience`` is ``room`` or ``sender``."""

    text: str
    audience: str

    def as_dict(self) -> dict[str, str]:
        return {"text": self.text, "audience": self.audience}


def url_block_notice(sender: str, *, from_cache: bool) -> Notice:
    if from_cache:
        return Notice(f"{sender} tried to share a known malicious link. Message blocked.", "room")
    return Notice(f"{sender} tried to share a dangerous link. Message blocked.", "room")


@dataclass(frozen=True, slots=True)
class DlpOutcome:
    leak: bool
    stage: str
    matches: tuple[str, ...] = ()


@dataclass(frozen=True)
class DlpChecker:
    """Prefilter plus semantic verifier bound to one immutable term context."""

    prefilter: DlpPrefilter
    semantic: SemanticLeakChecker

    async def check(self, text: str) -> DlpOutcome:
        result = self.prefilter.evaluate(text)
        metrics.inc_dlp_decision("prefilter", result.action.value)
        if result.action is PrefilterAction.ALLOW:
            return DlpOutcome(leak=False, stage="prefilter")
        if result.action is PrefilterAction.BLOCK:
            logger.info("dlp prefilter blocked message", extra={"match_count": len(result.matches)})
            return DlpOutcome(leak=True, stage="prefilter", matches=result.matches)
        leak = await self.semantic.has_leak(text)
        metrics.inc_dlp_decision("semantic", "block" if leak else "allow")
        return DlpOutcome(leak=leak, stage="semantic", matches=result.matches)


@dataclass(slots=True)
class ScreenResult:
    allowed: bool
    urls: list[UrlCheckResult] = field(default_factory=list)
    leak: bool = False
    blocked_by: Optional[str] = None
    notice: Optional[Notice] = None
    dlp_stage: Optional[str] = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "blocked_by": self.blocked_by,
            "notice": self.notice.as_dict() if self.notice else None,
            "urls": [result.summary() for result in self.urls],
            "leak": self.leak,
        }


@dataclass
class ModerationPipeline:
    """Single entry point the chat transport calls for every outgoing message."""

    urls: UrlChecker
    dlp: Optional[DlpChecker] = None
    block_threshold: int = 70

    def replace_dlp(self, dlp: Optional[DlpChecker]) -> None:
        self.dlp = dlp

    async def screen(self, text: str, sender: str = "Someone") -> ScreenResult:
        results = await self.urls.check_message(text)
        if results:
            worst = max(results, key=lambda result: result.score)
            if worst.score >= self.block_threshold:
                logger.info(
                    "message blocked by url check",
                    extra={"score": worst.score, "from_cache": worst.from_cache, "url_count": len(results)},
                )
                metrics.inc_message_screened("blocked_url")
                return ScreenResult(
                    allowed=False,
                    urls=results,
                    blocked_by="url",
                    notice=url_block_notice(sender, from_cache=worst.from_cache),
                )

        dlp = self.dlp
        if dlp is not None:
            outcome = await dlp.check(text)
            if outcome.leak:
                metrics.inc_message_screened("blocked_dlp")
                return ScreenResult(
                    allowed=False,
                    urls=results,
                    leak=True,
                    blocked_by="dlp",
                    notice=Notice(DLP_NOTICE, "sender"),
                    dlp_stage=outcome.stage,
                )
            metrics.inc_message_screened("allowed")
            return ScreenResult(allowed=True, urls=results, dlp_stage=outcome.stage)

        metrics.inc_message_screened("allowed")
        return ScreenResult(allowed=True, urls=results)
