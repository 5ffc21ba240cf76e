from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventType(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"
    TASK_START = "task_start"
    TASK_END = "task_end"
    INSIGHT_ADDED = "insight_added"
    TOPIC_ADDED = "topic_added"
    RESEARCH_COMPLETE = "research_complete"


@dataclass
class ResearchEvent:
    event: EventType
    message: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)
