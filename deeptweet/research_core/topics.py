from __future__ import annotations

import asyncio
import re
from collections.abc import Iterator
from typing import TYPE_CHECKING, Awaitable, Callable

from loguru import logger

from deeptweet.errors import UpstreamError
from deeptweet.research_core.models.interfaces import ResearchJob
from deeptweet.services import streaming

if TYPE_CHECKING:
    from deeptweet.research_core.session import ResearchSession

TopicProposer = Callable[[str, str], Awaitable[str]]

_LIST_MARKER = re.compile(r"^\s*(?:\d+\s*[.):]|[-*•])\s*")
_EMPHASIS = re.compile(r"^\*\*(.+?)\*\*:?")


class VisitedTopicSet:
    """Every topic ever admitted in one session, capped at ``max_topics``.

    ``admit`` checks and inserts with no suspension point in between, so
    concurrent coroutines on one event loop can never push the set past the cap.
    """

    def __init__(self, max_topics: int):
        if max_topics < 1:
            raise ValueError(f"max_topics must be >= 1, got {max_topics}")
        self.max_topics = max_topics
        self._topics: dict[str, None] = {}

    def admit(self, topic: str) -> bool:
        if topic in self._topics or len(self._topics) >= self.max_topics:
            return False
        self._topics[topic] = None
        return True

    @property
    def is_full(self) -> bool:
        return len(self._topics) >= self.max_topics

    def __contains__(self, topic: object) -> bool:
        return topic in self._topics

    def __len__(self) -> int:
        return len(self._topics)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._topics))

    def as_list(self) -> list[str]:
        return list(self._topics)


def parse_topic_list(text: str, *, limit: int | None = None) -> list[str]:
    """Parse a numbered or bulleted list of topics, one per line.

    Markers like ``1.``, ``2)``, ``-`` and bold ``**Title**:`` lead-ins are
    stripped; blank lines and exact duplicates are skipped.
    """
    topics: list[str] = []
    for line in text.splitlines():
        cleaned = _LIST_MARKER.sub("", line).strip()
        emphasis = _EMPHASIS.match(cleaned)
        if emphasis:
            cleaned = emphasis.group(1).strip()
        cleaned = cleaned.strip("\"'` ").rstrip(":").strip()
        if not cleaned or cleaned in topics:
            continue
        topics.append(cleaned)
        if limit is not None and len(topics) >= limit:
            break
    return topics


class TopicExpansionEngine:
    """Turns analyzed content into admitted, queued sub-topic jobs."""

    def __init__(
        self,
        proposer: TopicProposer,
        *,
        max_subtopics: int = 3,
        submit_delay_seconds: float = 0.5,
    ):
        self._proposer = proposer
        self.max_subtopics = max(int(max_subtopics), 0)
        self.submit_delay_seconds = max(float(submit_delay_seconds), 0.0)

    async def propose_subtopics(self, content: str, parent_topic: str) -> list[str]:
        try:
            raw = await self._proposer(content, parent_topic)
        except UpstreamError as exc:
            logger.warning(f"Topic proposal failed for '{parent_topic}': {exc}")
            return []
        return parse_topic_list(raw, limit=self.max_subtopics)

    async def expand(
        self,
        job: ResearchJob,
        content: str,
        session: "ResearchSession",
        submit: Callable[[ResearchJob], object],
    ) -> list[str]:
        """Propose sub-topics for ``job`` and submit the ones the session admits.

        Returns the admitted topics. Proposals that are duplicates or arrive
        once the session is at capacity are dropped.
        """
        if not job.can_expand or session.topics.is_full:
            return []

        proposals = await self.propose_subtopics(content, job.topic)
        admitted: list[str] = []
        for topic in proposals:
            if not session.topics.admit(topic):
                logger.debug(f"Dropped sub-topic '{topic}' (duplicate or budget reached)")
                continue
            if admitted and self.submit_delay_seconds:
                # Pacing for the rate-limited search/LLM APIs.
                await asyncio.sleep(self.submit_delay_seconds)
            admitted.append(topic)
            session.emit(streaming.topic_added(topic, parent_topic=job.topic))
            submit(job.child(topic))
        return admitted
