from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class DepthTier(str, Enum):
    QUICK = "quick"
    STANDARD = "standard"
    DEEP = "deep"
    EXHAUSTIVE = "exhaustive"


DEPTH_PASSES: dict[str, int] = {
    DepthTier.QUICK.value: 1,
    DepthTier.STANDARD.value: 3,
    DepthTier.DEEP.value: 5,
    DepthTier.EXHAUSTIVE.value: 8,
}
DEFAULT_PASS_COUNT = 3

PASS_LABELS: tuple[str, ...] = (
    "INITIAL ANALYSIS",
    "DEEP INVESTIGATION",
    "CRITICAL EVALUATION",
    "CROSS-VALIDATION",
    "EXPERT SYNTHESIS",
    "ADVERSARIAL REVIEW",
    "DOMAIN EXPANSION",
    "FINAL REFINEMENT",
)


def pass_count_for_depth(depth: str | DepthTier) -> int:
    """Number of analysis passes for a depth tier; unknown tiers get the standard count.

    Tier names match exactly, so "DEEP" is unknown.
    """
    key = depth.value if isinstance(depth, DepthTier) else depth
    return DEPTH_PASSES.get(key, DEFAULT_PASS_COUNT)


def pass_label(index: int) -> str:
    return PASS_LABELS[min(index, len(PASS_LABELS) - 1)]


class RunState(str, Enum):
    INIT = "init"
    RUNNING_PASS = "running_pass"
    SYNTHESIZING = "synthesizing"
    SCORING = "scoring"
    DONE = "done"
    ABORTED = "aborted"
    FAILED = "failed"


@dataclass
class PassRecord:
    """Output of one completed analysis pass, held for the duration of a run."""

    index: int
    label: str
    output: str
