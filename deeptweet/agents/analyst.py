from __future__ import annotations

import re
from datetime import date
from typing import Any

from loguru import logger

from deeptweet.config import settings
from deeptweet.errors import ParseError, UpstreamError
from deeptweet.llm_client import client as llm_client, get_model
from deeptweet.research_core.models.interfaces import MAX_SCORE, MIN_SCORE
from deeptweet.services.prompt_store import load_examples, render_prompt

# Graceful degradation: a score that cannot be parsed becomes a neutral 5
# instead of failing the URL. Scores are a ranking hint, not a correctness input.
DEFAULT_SCORE = 5

_LEADING_INT = re.compile(r"^\s*\**\s*(\d{1,3})(?!\d)")


def parse_score(text: str) -> int:
    """Parse the leading integer of a 1-10 rating reply.

    Raises ``ParseError`` when there is no leading integer or it falls
    outside the rating scale.
    """
    match = _LEADING_INT.match(text or "")
    if not match:
        raise ParseError(f"No leading integer in score reply: {text[:40]!r}")
    value = int(match.group(1))
    if not MIN_SCORE <= value <= MAX_SCORE:
        raise ParseError(f"Score {value} outside [{MIN_SCORE}, {MAX_SCORE}]")
    return value


class ResearchAnalyst:
    """LLM calls made while researching a topic.

    Covers search query refinement, summarization, insight scoring and
    sub-topic proposal. Prompts live in the prompt catalog.
    """

    def __init__(
        self,
        model: str | None = None,
        query_model: str | None = None,
        *,
        alarm_ratio: float | None = None,
        alarm_min_calls: int | None = None,
    ):
        self.model = model or get_model()
        self.query_model = query_model or settings.query_model or self.model
        self.client: Any | None = None
        self.alarm_ratio = float(
            alarm_ratio if alarm_ratio is not None else settings.score_default_alarm_ratio
        )
        self.alarm_min_calls = int(
            alarm_min_calls if alarm_min_calls is not None else settings.score_default_alarm_min_calls
        )
        self.score_calls = 0
        self.score_defaults = 0
        self._alarm_raised = False

    def _client(self) -> Any:
        return self.client or llm_client()

    async def refine_query(self, topic: str, parent_topic: str | None = None) -> str:
        """Rewrite ``topic`` as a web search query; falls back to the raw topic."""
        previous = f"Previous questions:\n- {parent_topic}\n\n" if parent_topic else ""
        try:
            completion = await self._client().complete(
                system=render_prompt(
                    "query_refiner.system_prompt",
                    current_date=date.today().strftime("%B %d, %Y"),
                ),
                user=render_prompt(
                    "query_refiner.user_prompt",
                    previous_questions=previous,
                    topic=topic,
                ),
                examples=load_examples("query_refiner.examples"),
                model=self.query_model,
                max_tokens=64,
                caller="analyst.refine_query",
            )
        except UpstreamError as exc:
            logger.warning(f"Query refinement failed for '{topic}', using raw topic: {exc}")
            return topic
        query = completion.text.strip().strip('"').strip()
        return query or topic

    async def summarize(self, topic: str, content: str) -> str:
        completion = await self._client().complete(
            system=render_prompt("summarizer.system_prompt"),
            user=render_prompt("summarizer.user_prompt", topic=topic, content=content),
            model=self.model,
            max_tokens=512,
            caller="analyst.summarize",
        )
        return completion.text

    async def score(self, summary: str) -> int:
        """Rate ``summary`` 1-10; unparseable replies yield ``DEFAULT_SCORE``."""
        completion = await self._client().complete(
            system=render_prompt("scorer.system_prompt"),
            user=summary,
            model=self.model,
            max_tokens=8,
            caller="analyst.score",
        )
        self.score_calls += 1
        try:
            return parse_score(completion.text)
        except ParseError as exc:
            self.score_defaults += 1
            logger.debug(f"Score defaulted to {DEFAULT_SCORE}: {exc}")
            self._check_default_rate()
            return DEFAULT_SCORE

    @property
    def default_rate(self) -> float:
        if not self.score_calls:
            return 0.0
        return self.score_defaults / self.score_calls

    def _check_default_rate(self) -> None:
        if self._alarm_raised or self.score_calls < self.alarm_min_calls:
            return
        if self.default_rate > self.alarm_ratio:
            self._alarm_raised = True
            logger.warning(
                f"Scorer fell back to the default for {self.score_defaults}/{self.score_calls} "
                f"insights; the scoring prompt or model output may have regressed"
            )

    async def propose_topics(self, content: str, parent_topic: str) -> str:
        """Raw numbered list of related sub-topics."""
        completion = await self._client().complete(
            system=render_prompt("topic_proposer.system_prompt"),
            user=render_prompt("topic_proposer.user_prompt", topic=parent_topic, content=content),
            model=self.model,
            max_tokens=256,
            caller="analyst.propose_topics",
        )
        return completion.text
