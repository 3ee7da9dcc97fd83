from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventType(str, Enum):
    THOUGHT = "thought"
    RESEARCH_COMPLETE = "research_complete"
    RESEARCH_ABORTED = "research_aborted"
    ERROR = "error"


@dataclass(frozen=True)
class ThoughtEvent:
    """One orchestration event; `elapsed` is seconds since the run started."""

    type: str
    detail: str
    elapsed: float

    @property
    def time(self) -> str:
        return f"+{self.elapsed:.2f}s"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "detail": self.detail, "time": self.time}


@dataclass
class SSEEvent:
    event: EventType
    data: dict[str, Any] = field(default_factory=dict)

    def to_sse(self) -> dict[str, str]:
        return {"event": self.event.value, "data": json.dumps(self.data)}
