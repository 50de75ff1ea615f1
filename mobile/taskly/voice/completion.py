"""Lexical estimate of whether a speaker has finished their thought.

The score is deliberately cheap: word count, terminal punctuation, closing
phrases and a subject + auxiliary verb pattern. It is an approximation used to
stretch or shrink the natural-pause wait, not a language model.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

CLOSING_PHRASE = re.compile(
    r"\b(that'?s\s+it|that'?s\s+all|that\s+is\s+(?:it|all)|done|thanks|thank\s+you|okay|ok|got\s+it)\W*$",
    re.IGNORECASE,
)
SUBJECT_AUXILIARY = re.compile(
    r"\b(i|you|we|they|he|she|it|this|that|there)\s+"
    r"(am|is|are|was|were|will|would|can|could|should|shall|must|have|has|had|do|does|did|need|needs|want|wants)\b",
    re.IGNORECASE,
)
SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")
TERMINAL_PUNCTUATION = (".", "!", "?")


@dataclass(frozen=True, slots=True)
class CompletionWeights:
    five_words: float = 0.3
    ten_words: float = 0.2
    punctuation: float = 0.4
    closing_phrase: float = 0.3
    subject_auxiliary: float = 0.2
    text_share: float = 0.7


DEFAULT_WEIGHTS = CompletionWeights()


def score_completion(text: str, weights: CompletionWeights = DEFAULT_WEIGHTS) -> float:
    stripped = text.strip()
    if not stripped:
        return 0.0
    score = 0.0
    words = stripped.split()
    if len(words) >= 5:
        score += weights.five_words
    if len(words) >= 10:
        score += weights.ten_words
    if stripped.endswith(TERMINAL_PUNCTUATION):
        score += weights.punctuation
    if CLOSING_PHRASE.search(stripped):
        score += weights.closing_phrase
    if SUBJECT_AUXILIARY.search(_last_fragment(stripped)):
        score += weights.subject_auxiliary
    return min(score, 1.0)


def completion_confidence(
    text: str,
    transcription_confidence: float,
    weights: CompletionWeights = DEFAULT_WEIGHTS,
) -> float:
    blended = weights.text_share * score_completion(text, weights) + (
        1.0 - weights.text_share
    ) * float(transcription_confidence)
    return max(0.0, min(blended, 1.0))


def _last_fragment(text: str) -> str:
    fragments = [part for part in SENTENCE_BREAK.split(text) if part.strip()]
    return fragments[-1] if fragments else text


__all__ = ["CompletionWeights", "completion_confidence", "score_completion"]
