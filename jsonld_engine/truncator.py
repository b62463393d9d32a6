"""Truncator — character budget with sentence-boundary-aware cutting."""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_MAX_CHARS = 50000
SENTENCE_BREAK_THRESHOLD = 0.7
SENTENCE_ENDINGS = (". ", "? ", "! ")


@dataclass
class TruncationResult:
    content: str
    truncated: bool
    original_length: int
    truncated_length: int


def truncate(text: str, max_chars: int = DEFAULT_MAX_CHARS) -> TruncationResult:
    """Cut ``text`` to at most ``max_chars`` characters.

    When a sentence ending (``". "``, ``"? "``, ``"! "``) finishes at or beyond
    70% of the budget, the cut happens right after it, keeping the trailing
    space. Otherwise the text is hard-cut at ``max_chars``.
    """
    original_length = len(text)
    if original_length <= max_chars:
        return TruncationResult(text, False, original_length, original_length)

    cut = text[:max_chars]
    threshold = max_chars * SENTENCE_BREAK_THRESHOLD

    end = max(cut.rfind(ending) for ending in SENTENCE_ENDINGS)
    if end != -1 and end + 2 >= threshold:
        cut = cut[: end + 2]

    return TruncationResult(cut, True, original_length, len(cut))


def truncation_indicator(truncated_length: int, original_length: int) -> str:
    return f"[Content truncated: showing {truncated_length} of {original_length} characters]"
