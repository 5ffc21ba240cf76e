from __future__ import annotations

from typing import Callable

from loguru import logger

from deeptweet.models.events import ResearchEvent
from deeptweet.research_core.insights import InsightStore
from deeptweet.research_core.models.interfaces import TopicState
from deeptweet.research_core.task_queue import BoundedTaskQueue
from deeptweet.research_core.topics import VisitedTopicSet

EventListener = Callable[[ResearchEvent], None]


class ResearchSession:
    """All mutable state of one research run.

    Passed explicitly to every component so independent runs can share a
    process. Everything here is mutated only from the event loop thread.
    """

    def __init__(self, *, max_topics: int = 3, queue_concurrency: int = 1):
        self.topics = VisitedTopicSet(max_topics)
        self.insights = InsightStore()
        self.queue = BoundedTaskQueue(queue_concurrency)
        self.topic_states: dict[str, TopicState] = {}
        self.state_history: list[tuple[str, TopicState]] = []
        self.events: list[ResearchEvent] = []
        self._listeners: list[EventListener] = []

    def subscribe(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def emit(self, event: ResearchEvent) -> None:
        self.events.append(event)
        for listener in self._listeners:
            try:
                listener(event)
            except Exception as exc:
                logger.warning(f"Event listener failed on {event.event.value}: {exc}")

    def set_state(self, topic: str, state: TopicState) -> None:
        self.topic_states[topic] = state
        self.state_history.append((topic, state))
