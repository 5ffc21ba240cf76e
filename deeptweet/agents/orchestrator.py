from __future__ import annotations

import asyncio
import time
from functools import partial
from typing import Any

from loguru import logger

from deeptweet.agents.analyst import ResearchAnalyst
from deeptweet.agents.synthesis import Synthesizer, get_synthesizer
from deeptweet.config import settings
from deeptweet.errors import UpstreamError
from deeptweet.research_core.models.interfaces import (
    Insight,
    ResearchJob,
    ResearchResult,
    TopicState,
)
from deeptweet.research_core.ranking import EmbeddingRanker
from deeptweet.research_core.scrape.service import PageFetcher
from deeptweet.research_core.session import ResearchSession
from deeptweet.research_core.topics import TopicExpansionEngine
from deeptweet.services import logger as log_service
from deeptweet.services import streaming
from deeptweet.tools import web_utils
from deeptweet.tools.search_provider import SearchClient


class ResearchOrchestrator:
    """Drives the per-topic research pipeline.

    Flow for one topic:
      1. INIT: admission against the session's topic budget
      2. SEARCHING: refine the query, search, dedupe and cap URLs
      3. ANALYZING: per URL fetch → rank chunks → summarize → score → insight,
         and for the root topic propose sub-topics onto the task queue
      4. AGGREGATING (root only): drain the queue, keep the top insights per
         topic and hand the digest to the synthesis stage

    Sub-topic jobs run on the session's BoundedTaskQueue; a failure inside
    one never reaches the root invocation.
    """

    def __init__(
        self,
        session: ResearchSession | None = None,
        *,
        model: str | None = None,
        search_client: Any | None = None,
        fetcher: Any | None = None,
        ranker: EmbeddingRanker | None = None,
        analyst: ResearchAnalyst | None = None,
        expansion: TopicExpansionEngine | None = None,
        synthesizer: Synthesizer | None = None,
        output_format: str | None = None,
    ):
        self.session = session or ResearchSession(
            max_topics=int(settings.max_topics),
            queue_concurrency=int(settings.queue_concurrency),
        )
        self.search_client = search_client or SearchClient()
        self.fetcher = fetcher or PageFetcher()
        self.ranker = ranker or EmbeddingRanker()
        self.analyst = analyst or ResearchAnalyst(model=model)
        self.expansion = expansion or TopicExpansionEngine(
            self.analyst.propose_topics,
            max_subtopics=int(settings.max_subtopics),
            submit_delay_seconds=float(settings.subtopic_submit_delay_seconds),
        )
        self.synthesizer = synthesizer or get_synthesizer(
            output_format or settings.output_format,
            model=model,
        )
        self.max_urls_per_topic = max(int(settings.max_urls_per_topic), 1)
        self.top_k_chunks = max(int(settings.top_k_chunks), 1)
        self.top_insights_per_topic = max(int(settings.top_insights_per_topic), 1)
        self.url_fanout = max(int(settings.url_fanout), 1)
        self.expansion_content_chars = max(int(settings.expansion_content_chars), 200)

    async def research(self, topic: str) -> ResearchResult | None:
        """Research ``topic`` and every sub-topic it spawns, then synthesize.

        Returns ``None`` when the topic was already researched in this session
        or the topic budget is spent.
        """
        session = self.session
        started = time.monotonic()
        job = ResearchJob(topic=topic)
        if not session.topics.admit(topic):
            logger.info(f"Skipping '{topic}': already researched or topic budget reached")
            return None
        session.emit(streaming.topic_added(topic, parent_topic=None))

        try:
            searched = await self.run_job(job)

            if searched:
                self._transition(job, TopicState.AGGREGATING)
            outstanding = session.queue.pending + session.queue.in_flight
            if outstanding:
                session.emit(streaming.info(f"Waiting for {outstanding} sub-topic tasks", topic=topic))
            await session.queue.drain()

            digest = session.insights.aggregate(self.top_insights_per_topic)
            artifact = None
            if digest.is_empty:
                logger.warning(f"No insights collected for '{topic}'; skipping synthesis")
            else:
                try:
                    artifact = await self.synthesizer.synthesize(topic, digest)
                except UpstreamError as exc:
                    logger.error(f"Synthesis failed for '{topic}': {exc}")
                    session.emit(streaming.error(f"Synthesis failed: {exc}", topic=topic))
        except BaseException as exc:
            # Fatal for the run: stop queued sub-topics before handing the error back.
            stopped = await session.queue.cancel()
            if session.topic_states.get(topic) != TopicState.DONE:
                self._transition(job, TopicState.DONE)
            logger.error(f"Research aborted for '{topic}' ({stopped} sub-topic tasks cancelled): {exc!r}")
            session.emit(streaming.error(f"Research aborted: {exc}", topic=topic, cancelled=stopped))
            raise

        if session.topic_states.get(topic) != TopicState.DONE:
            self._transition(job, TopicState.DONE)
        runtime_ms = int((time.monotonic() - started) * 1000)
        topics = session.topics.as_list()
        session.emit(
            streaming.research_complete(
                topic,
                insights=len(session.insights),
                topics=topics,
                runtime_ms=runtime_ms,
            )
        )
        logger.info(
            f"Research complete! Runtime: {runtime_ms}ms, Topics: {len(topics)}, "
            f"Insights: {len(session.insights)}, Queue failures: {session.queue.failed}"
        )
        return ResearchResult(
            topic=topic,
            digest=digest,
            artifact=artifact,
            insights=session.insights.snapshot(),
            topics=topics,
        )

    async def run_job(self, job: ResearchJob) -> bool:
        """Search and analyze one topic. Returns False if nothing was searched.

        Whatever happens, the topic leaves this method in ``DONE`` unless it
        is the root topic and analysis succeeded (the root still aggregates).
        """
        session = self.session
        if job.topic not in session.topics or job.topic in session.topic_states:
            # Not admitted, or already handled in this session.
            return False

        self._transition(job, TopicState.INIT)
        session.emit(streaming.task_started(job.topic, depth=job.depth))
        before = len(session.insights)

        try:
            self._transition(job, TopicState.SEARCHING)
            try:
                urls = await self._search(job)
            except UpstreamError as exc:
                logger.error(f"Search failed for '{job.topic}': {exc}")
                session.emit(streaming.error(f"Research failed for: {job.topic}", error=str(exc)))
                self._transition(job, TopicState.SEARCH_FAILED)
                self._transition(job, TopicState.DONE)
                session.emit(streaming.task_completed(job.topic, state="search_failed", insights=0))
                return False

            self._transition(job, TopicState.ANALYZING)
            await self._analyze(job, urls)
        except BaseException:
            self._transition(job, TopicState.DONE)
            session.emit(
                streaming.task_completed(
                    job.topic,
                    state="failed",
                    insights=len(session.insights) - before,
                )
            )
            raise

        added = len(session.insights) - before
        if job.is_sub_topic:
            self._transition(job, TopicState.DONE)
        session.emit(streaming.task_completed(job.topic, state="analyzed", insights=added))
        return True

    def submit(self, job: ResearchJob) -> int:
        return self.session.queue.enqueue(partial(self.run_job, job))

    async def _search(self, job: ResearchJob) -> list[str]:
        query = await self.analyst.refine_query(job.topic, job.parent_topic)
        logger.info(f"Searching for '{job.topic}' with query: {query}")
        response = await self.search_client.search(query)
        urls = list(
            dict.fromkeys(
                result.url
                for result in response.results
                if result.url and web_utils.is_valid_url(result.url)
            )
        )[: self.max_urls_per_topic]
        self.session.emit(
            streaming.success(f"Found {len(urls)} relevant sources", topic=job.topic, urls=urls)
        )
        return urls

    async def _analyze(self, job: ResearchJob, urls: list[str]) -> None:
        for start in range(0, len(urls), self.url_fanout):
            batch = urls[start : start + self.url_fanout]
            outcomes = await asyncio.gather(
                *(self._process_url(job, url) for url in batch),
                return_exceptions=True,
            )
            # Per-URL upstream failures are handled inside _process_url; anything
            # left here (embedding/config errors, bugs) ends this topic.
            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    raise outcome

    async def _process_url(self, job: ResearchJob, url: str) -> Insight | None:
        session = self.session
        content = await self.fetcher.fetch(url)
        if not content.chunks:
            logger.warning(f"No usable content at {url}")
            session.emit(streaming.error(f"Failed to process: {url[:50]}", topic=job.topic, url=url))
            return None

        passages = await self.ranker.select(job.topic, content.chunks, self.top_k_chunks)
        selected = "\n\n".join(passages)

        try:
            summary = await self.analyst.summarize(job.topic, selected)
            if not summary.strip():
                logger.warning(f"Empty summary for {url}")
                return None
            score = await self.analyst.score(summary)
        except UpstreamError as exc:
            logger.warning(f"Skipping {url}: {exc}")
            session.emit(streaming.error(f"Failed to process: {url[:50]}", topic=job.topic, url=url))
            return None

        insight = Insight(
            topic=job.topic,
            summary=summary,
            score=score,
            url=url,
            source=content.hostname,
        )
        session.insights.append(insight)
        session.emit(streaming.insight_added(job.topic, url=url, score=score))

        if job.can_expand:
            page_text = web_utils.clean_content(content.text, self.expansion_content_chars)
            admitted = await self.expansion.expand(job, page_text, session, self.submit)
            if admitted:
                logger.info(f"Queued {len(admitted)} sub-topics from {url}: {admitted}")
        return insight

    def _transition(self, job: ResearchJob, state: TopicState) -> None:
        self.session.set_state(job.topic, state)
        log_service.log_research_step(
            job.topic,
            state.value,
            "sub_topic" if job.is_sub_topic else "root",
            {"depth": job.depth, "parent_topic": job.parent_topic},
        )
