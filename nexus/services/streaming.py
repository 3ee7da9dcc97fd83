from __future__ import annotations

from nexus.models.events import EventType, SSEEvent, ThoughtEvent
from nexus.models.schemas import ResearchResult


def thought(event: ThoughtEvent, *, phase: str = "", progress: float = 0.0) -> SSEEvent:
    return SSEEvent(
        event=EventType.THOUGHT,
        data={**event.to_dict(), "phase": phase, "progress": round(progress, 1)},
    )


def research_complete(result: ResearchResult, runtime_ms: int | None = None) -> SSEEvent:
    data = result.model_dump()
    data["confidence_level"] = result.confidence_level
    if runtime_ms is not None:
        data["runtime_ms"] = runtime_ms
    return SSEEvent(event=EventType.RESEARCH_COMPLETE, data=data)


def research_aborted(completed_passes: int) -> SSEEvent:
    return SSEEvent(
        event=EventType.RESEARCH_ABORTED,
        data={"message": "Research stopped by user", "completed_passes": completed_passes},
    )


def error(message: str) -> SSEEvent:
    return SSEEvent(event=EventType.ERROR, data={"message": message})
