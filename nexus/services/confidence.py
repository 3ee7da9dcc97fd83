from __future__ import annotations

import math
import re

MIN_CONFIDENCE = 22
MAX_CONFIDENCE = 97
BASE_CONFIDENCE = 45

EVIDENCE_PATTERN = re.compile(
    r"according to|research shows|evidence suggests|data shows",
    re.IGNORECASE,
)


def word_count(text: str) -> int:
    # Space-separated fields; empty text counts as one.
    return len(text.split(" "))


def compute_confidence(
    answer: str,
    completed_passes: int,
    doc_chunks: int = 0,
    has_memory: bool = False,
) -> int:
    """Heuristic answer-quality score in [22, 97].

    `doc_chunks` is reserved for document-grounded passes and is 0 for
    pure generation runs.
    """
    answer = answer or ""
    score = float(BASE_CONFIDENCE)
    score += min(15, word_count(answer) / 120)
    score += min(18, completed_passes * 3.5)
    score += min(12, doc_chunks * 2)
    if has_memory:
        score += 5
    score += min(10, len(EVIDENCE_PATTERN.findall(answer)) * 1.5)
    if "##" in answer or "|" in answer:
        score += 4
    rounded = math.floor(score + 0.5)
    return min(MAX_CONFIDENCE, max(MIN_CONFIDENCE, rounded))
