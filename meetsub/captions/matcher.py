from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from meetsub.captions.store import Caption
from meetsub.captions.text import is_text_growing, strip_punctuation


class MatchDecision(str, Enum):
    DUPLICATE = "duplicate"
    CONTINUATION = "continuation"
    NEW = "new"


@dataclass(frozen=True)
class MatchResult:
    decision: MatchDecision
    caption_id: Optional[int] = None


DUPLICATE = MatchResult(MatchDecision.DUPLICATE)
NEW = MatchResult(MatchDecision.NEW)


class ContinuityMatcher:
    """
    Decide whether a (speaker, text) fragment is a duplicate, a growing
    recognition of a recent caption, or a new utterance.

    Rules, first hit wins:
      1) Same stripped text as the newest caption -> duplicate.
      2) Newest caption from the same speaker within `lookback`:
         not longer -> duplicate; growing -> continuation.
      3) Otherwise -> new.
    """

    def __init__(
        self,
        lookback: int = 5,
        prefix_ratio: float = 0.8,
        min_prefix: int = 5,
        overlap_ratio: float = 0.9,
    ) -> None:
        if lookback <= 0:
            raise ValueError("lookback must be > 0")
        if not (0.0 < prefix_ratio <= 1.0 and 0.0 < overlap_ratio <= 1.0):
            raise ValueError("ratios must be in (0, 1]")
        self.lookback = int(lookback)
        self.prefix_ratio = float(prefix_ratio)
        self.min_prefix = int(min_prefix)
        self.overlap_ratio = float(overlap_ratio)

    def _speaker_target(self, speaker: str, captions: Sequence[Caption]) -> Optional[Caption]:
        window = captions[-self.lookback:]
        for caption in reversed(window):
            if caption.speaker == speaker:
                return caption
        return None

    def match(self, speaker: str, raw_text: str, captions: Sequence[Caption]) -> MatchResult:
        text = (raw_text or "").strip()
        if not speaker or not text:
            return DUPLICATE
        new = strip_punctuation(text)
        if not new:
            return DUPLICATE

        if captions and strip_punctuation(captions[-1].text) == new:
            return MatchResult(MatchDecision.DUPLICATE, captions[-1].id)

        target = self._speaker_target(speaker, captions)
        if target is None:
            return NEW

        if len(new) <= len(strip_punctuation(target.text)):
            return MatchResult(MatchDecision.DUPLICATE, target.id)

        if is_text_growing(
            target.text,
            text,
            prefix_ratio=self.prefix_ratio,
            min_prefix=self.min_prefix,
            overlap_ratio=self.overlap_ratio,
        ):
            return MatchResult(MatchDecision.CONTINUATION, target.id)
        return NEW
