from __future__ import annotations

import re

# ASCII and CJK punctuation plus whitespace, ignored for every text comparison.
_STRIP = re.compile(r"[。、，！？.!?,\s・「」『』（）()【】\[\]]")


def strip_punctuation(text: str) -> str:
    return _STRIP.sub("", text or "")


def _positional_matches(a: str, b: str) -> int:
    return sum(1 for x, y in zip(a, b) if x == y)


def is_text_growing(
    old_text: str,
    new_text: str,
    *,
    prefix_ratio: float = 0.8,
    min_prefix: int = 5,
    overlap_ratio: float = 0.9,
) -> bool:
    """
    True when new_text is a longer recognition of the same utterance.
    Tolerates retroactive punctuation or early-word fixes while growing.
    """
    old = strip_punctuation(old_text)
    new = strip_punctuation(new_text)

    if len(new) <= len(old):
        return False

    if new.startswith(old):
        return True

    check_len = max(min_prefix, int(len(old) * prefix_ratio))
    if new[:check_len] == old[:check_len]:
        return True

    return _positional_matches(old, new) >= len(old) * overlap_ratio
