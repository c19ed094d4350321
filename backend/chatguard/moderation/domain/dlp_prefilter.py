"""Cheap lexical pass deciding whether a message needs the semantic DLP check."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from chatguard.moderation.domain.dlp_terms import MIN_SIGNIFICANT_LENGTH, DlpContext, tokenize


class PrefilterAction(str, Enum):
    ALLOW = "allow"
    CHECK = "check"
    BLOCK = "block"


@dataclass(frozen=True, slots=True)
class PrefilterResult:
    action: PrefilterAction
    matches: tuple[str, ...] = ()


@dataclass(frozen=True)
class DlpPrefilter:
    """Classify text as allow, block or check against a :class:`DlpContext`.

    Only tokens of at least ``MIN_SIGNIFICANT_LENGTH`` characters count.
    Sensitive phrases match as contiguous token runs and count once each.
    """

    context: DlpContext
    match_threshold: int = 1
    _max_phrase: int = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        longest = max((len(phrase) for phrase in self.context.sensitive_phrases), default=0)
        object.__setattr__(self, "_max_phrase", longest)

    def evaluate(self, text: str) -> PrefilterResult:
        tokens = tokenize(text)
        significant = [token for token in tokens if len(token) >= MIN_SIGNIFICANT_LENGTH]
        if not significant:
            return PrefilterResult(action=PrefilterAction.ALLOW)

        matches = [token for token in significant if token in self.context.sensitive_terms]
        matches.extend(self._phrase_matches(tokens))

        if not matches and all(token in self.context.benign_terms for token in significant):
            return PrefilterResult(action=PrefilterAction.ALLOW)
        if matches and len(matches) >= self.match_threshold:
            return PrefilterResult(action=PrefilterAction.BLOCK, matches=tuple(matches))
        return PrefilterResult(action=PrefilterAction.CHECK, matches=tuple(matches))

    def _phrase_matches(self, tokens: list[str]) -> list[str]:
        if not self._max_phrase:
            return []
        phrases = set(self.context.sensitive_phrases)
        found: list[str] = []
        for start in range(len(tokens)):
            for size in range(2, self._max_phrase + 1):
                window = tuple(tokens[start : start + size])
                if len(window) < size:
                    break
                if window in phrases:
                    found.append(" ".join(window))
        return found
