"""Constructors for research progress events."""
from __future__ import annotations

from typing import Any

from deeptweet.models.events import EventType, ResearchEvent


def info(message: str, **data: Any) -> ResearchEvent:
    return ResearchEvent(EventType.INFO, message, data)


def success(message: str, **data: Any) -> ResearchEvent:
    return ResearchEvent(EventType.SUCCESS, message, data)


def error(message: str, **data: Any) -> ResearchEvent:
    return ResearchEvent(EventType.ERROR, message, data)


def task_started(topic: str, *, depth: int) -> ResearchEvent:
    return ResearchEvent(EventType.TASK_START, f"Researching: {topic}", {"topic": topic, "depth": depth})


def task_completed(topic: str, *, state: str, insights: int) -> ResearchEvent:
    return ResearchEvent(
        EventType.TASK_END,
        f"Finished: {topic}",
        {"topic": topic, "state": state, "insights": insights},
    )


def insight_added(topic: str, *, url: str, score: int) -> ResearchEvent:
    return ResearchEvent(
        EventType.INSIGHT_ADDED,
        f"New insight for {topic}",
        {"topic": topic, "url": url, "score": score},
    )


def topic_added(topic: str, *, parent_topic: str | None) -> ResearchEvent:
    return ResearchEvent(
        EventType.TOPIC_ADDED,
        f"New topic: {topic}",
        {"topic": topic, "parent_topic": parent_topic},
    )


def research_complete(topic: str, *, insights: int, topics: list[str], runtime_ms: int) -> ResearchEvent:
    return ResearchEvent(
        EventType.RESEARCH_COMPLETE,
        f"Completed research: {topic}",
        {"topic": topic, "insights": insights, "topics": topics, "runtime_ms": runtime_ms},
    )
