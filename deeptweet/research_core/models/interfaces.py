from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

MIN_SCORE = 1
MAX_SCORE = 10

# Sub-topics never expand further: recursion stops one level below the root.
MAX_EXPANSION_DEPTH = 1


class TopicState(str, Enum):
    INIT = "init"
    SEARCHING = "searching"
    SEARCH_FAILED = "search_failed"
    ANALYZING = "analyzing"
    AGGREGATING = "aggregating"
    DONE = "done"


@dataclass(slots=True)
class SearchResult:
    url: str
    title: str = ""
    snippet: str = ""
    hostname: str | None = None


@dataclass(slots=True)
class WebContent:
    url: str
    chunks: list[str] = field(default_factory=list)
    title: str | None = None
    hostname: str | None = None

    @property
    def text(self) -> str:
        return " ".join(self.chunks)


@dataclass(frozen=True, slots=True)
class Insight:
    topic: str
    summary: str
    score: int
    url: str
    source: str | None = None

    def __post_init__(self) -> None:
        if not MIN_SCORE <= self.score <= MAX_SCORE:
            raise ValueError(f"Insight score must be in [{MIN_SCORE}, {MAX_SCORE}], got {self.score}")


@dataclass(frozen=True, slots=True)
class ResearchJob:
    topic: str
    depth: int = 0
    parent_topic: str | None = None

    @property
    def is_sub_topic(self) -> bool:
        return self.depth > 0

    @property
    def can_expand(self) -> bool:
        return self.depth < MAX_EXPANSION_DEPTH

    def child(self, topic: str) -> "ResearchJob":
        return ResearchJob(topic=topic, depth=self.depth + 1, parent_topic=self.topic)


@dataclass(slots=True)
class TopicDigest:
    topic: str
    insights: list[Insight] = field(default_factory=list)

    def render(self) -> str:
        lines = [f"Topic: {self.topic}"]
        lines.extend(f"• {insight.summary}" for insight in self.insights)
        return "\n".join(lines)


@dataclass(slots=True)
class ResearchDigest:
    topics: list[TopicDigest] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not any(group.insights for group in self.topics)

    @property
    def text(self) -> str:
        return "\n\n".join(group.render() for group in self.topics if group.insights)

    @property
    def sources(self) -> list[str]:
        seen: dict[str, None] = {}
        for group in self.topics:
            for insight in group.insights:
                seen.setdefault(insight.url, None)
        return list(seen)


@dataclass(slots=True)
class ResearchResult:
    topic: str
    digest: ResearchDigest
    artifact: object | None
    insights: list[Insight]
    topics: list[str]
