"""Tests for the research orchestrator."""
from __future__ import annotations

import asyncio

import httpx
import pytest

from deeptweet.agents.orchestrator import ResearchOrchestrator
from deeptweet.errors import ConfigurationError, EmbeddingError, UpstreamError
from deeptweet.models.events import EventType
from deeptweet.research_core.models.interfaces import SearchResult, TopicState, WebContent
from deeptweet.research_core.ranking import EmbeddingRanker
from deeptweet.research_core.scrape.service import PageFetcher
from deeptweet.research_core.session import ResearchSession
from deeptweet.research_core.topics import TopicExpansionEngine
from deeptweet.tools.search_provider import SearchResponse

ROOT = "quantum computing"


class FakeSearch:
    def __init__(self, urls_by_query: dict[str, list[str]], fail: set[str] | None = None):
        self.urls_by_query = urls_by_query
        self.fail = fail or set()
        self.queries: list[str] = []

    async def search(self, query: str) -> SearchResponse:
        self.queries.append(query)
        if query in self.fail:
            raise UpstreamError(f"search down for {query}")
        urls = self.urls_by_query.get(query, [])
        return SearchResponse(results=[SearchResult(url=u) for u in urls], provider="fake")


class FakeFetcher:
    def __init__(self, pages: dict[str, list[str]], delay: float = 0.0):
        self.pages = pages
        self.delay = delay
        self.fetched: list[str] = []

    async def fetch(self, url: str) -> WebContent:
        self.fetched.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        return WebContent(url=url, chunks=list(self.pages.get(url, [])), hostname="example.com")


class FakeEmbedder:
    """Equal unit vectors, so ranking keeps page order; optionally fails on matching input."""

    def __init__(self, error: Exception | None = None, fail_on: str | None = None):
        self.error = error
        self.fail_on = fail_on

    async def embed_texts(self, texts):
        if self.error and (self.fail_on is None or any(self.fail_on in t for t in texts)):
            raise self.error
        return [[1.0, 0.0] for _ in texts]


class FakeAnalyst:
    def __init__(self, proposals: dict[str, str] | None = None, scores: dict[str, int] | None = None):
        self.proposals = proposals or {}
        self.scores = scores or {}
        self.refined: list[tuple[str, str | None]] = []

    async def refine_query(self, topic, parent_topic=None):
        self.refined.append((topic, parent_topic))
        return topic

    async def summarize(self, topic, content):
        return f"{topic} :: {content[:30]}"

    async def score(self, summary):
        for key, value in self.scores.items():
            if key in summary:
                return value
        return 7

    async def propose_topics(self, content, parent_topic):
        return self.proposals.get(parent_topic, "")


class FakeSynthesizer:
    def __init__(self):
        self.digests = []

    async def synthesize(self, topic, digest):
        self.digests.append(digest)
        return f"thread about {topic}"


def _pages(*urls: str) -> dict[str, list[str]]:
    return {url: [f"{url} chunk {i}" for i in range(5)] for url in urls}


def _orchestrator(search, fetcher, analyst, *, max_topics=3, concurrency=1, embedder=None, synthesizer=None):
    session = ResearchSession(max_topics=max_topics, queue_concurrency=concurrency)
    orchestrator = ResearchOrchestrator(
        session,
        search_client=search,
        fetcher=fetcher,
        ranker=EmbeddingRanker(embedder or FakeEmbedder()),
        analyst=analyst,
        expansion=TopicExpansionEngine(analyst.propose_topics, submit_delay_seconds=0),
        synthesizer=synthesizer or FakeSynthesizer(),
    )
    return orchestrator, session


@pytest.mark.asyncio
async def test_failed_fetch_contributes_no_insight():
    urls = [f"https://site{i}.example/article" for i in range(4)]
    pages = _pages(*urls[:3])  # the fourth page comes back empty
    orchestrator, session = _orchestrator(FakeSearch({ROOT: urls}), FakeFetcher(pages), FakeAnalyst())

    result = await orchestrator.research(ROOT)

    assert len(result.insights) == 3
    assert {i.url for i in result.insights} == set(urls[:3])
    assert all(1 <= i.score <= 10 for i in result.insights)
    assert result.artifact == f"thread about {ROOT}"
    assert session.topic_states[ROOT] == TopicState.DONE


@pytest.mark.asyncio
async def test_urls_are_deduplicated_and_capped():
    urls = [f"https://site{i}.example" for i in range(6)]
    search = FakeSearch({ROOT: [urls[0], urls[0], *urls[1:]]})
    fetcher = FakeFetcher(_pages(*urls))
    orchestrator, _ = _orchestrator(search, fetcher, FakeAnalyst())

    await orchestrator.research(ROOT)

    assert sorted(fetcher.fetched) == sorted(urls[:4])


@pytest.mark.asyncio
async def test_root_state_machine_transitions():
    url = "https://one.example"
    orchestrator, session = _orchestrator(FakeSearch({ROOT: [url]}), FakeFetcher(_pages(url)), FakeAnalyst())

    await orchestrator.research(ROOT)

    states = [state for topic, state in session.state_history if topic == ROOT]
    assert states == [
        TopicState.INIT,
        TopicState.SEARCHING,
        TopicState.ANALYZING,
        TopicState.AGGREGATING,
        TopicState.DONE,
    ]


@pytest.mark.asyncio
async def test_empty_search_results_produce_empty_digest():
    synthesizer = FakeSynthesizer()
    orchestrator, _ = _orchestrator(FakeSearch({}), FakeFetcher({}), FakeAnalyst(), synthesizer=synthesizer)

    result = await orchestrator.research(ROOT)

    assert result.insights == []
    assert result.digest.is_empty
    assert result.digest.text == ""
    assert result.artifact is None
    assert synthesizer.digests == []


@pytest.mark.asyncio
async def test_root_search_failure_completes_with_zero_insights():
    orchestrator, session = _orchestrator(FakeSearch({}, fail={ROOT}), FakeFetcher({}), FakeAnalyst())

    result = await orchestrator.research(ROOT)

    assert result.insights == []
    states = [state for topic, state in session.state_history if topic == ROOT]
    assert states == [TopicState.INIT, TopicState.SEARCHING, TopicState.SEARCH_FAILED, TopicState.DONE]
    assert any(e.event == EventType.ERROR for e in session.events)


@pytest.mark.asyncio
async def test_sub_topics_are_researched_before_aggregation():
    root_url = "https://root.example"
    sub_urls = {"qubits": "https://qubits.example", "annealing": "https://annealing.example"}
    search = FakeSearch({ROOT: [root_url], **{t: [u] for t, u in sub_urls.items()}})
    fetcher = FakeFetcher(_pages(root_url, *sub_urls.values()), delay=0.01)
    analyst = FakeAnalyst(
        proposals={ROOT: "1. qubits\n2. annealing", "qubits": "1. never researched"},
    )
    orchestrator, session = _orchestrator(search, fetcher, analyst, concurrency=2)

    result = await orchestrator.research(ROOT)

    assert result.topics == [ROOT, "qubits", "annealing"]
    assert {i.topic for i in result.insights} == {ROOT, "qubits", "annealing"}
    assert [g.topic for g in result.digest.topics] == [ROOT, "qubits", "annealing"]
    # Sub-topics searched with the parent as context and never expanded further.
    assert ("qubits", ROOT) in analyst.refined
    assert "never researched" not in search.queries
    assert session.topic_states["qubits"] == TopicState.DONE
    assert session.queue.is_idle


@pytest.mark.asyncio
async def test_topic_budget_caps_total_topics():
    urls = [f"https://r{i}.example" for i in range(4)]
    analyst = FakeAnalyst(proposals={ROOT: "1. a\n2. b\n3. c"})
    search = FakeSearch({ROOT: urls, "a": [], "b": [], "c": []})
    orchestrator, session = _orchestrator(search, FakeFetcher(_pages(*urls)), analyst, max_topics=3)

    result = await orchestrator.research(ROOT)

    assert len(result.topics) == 3
    assert len(session.topics) <= 3
    assert "c" not in search.queries


@pytest.mark.asyncio
async def test_sub_topic_failure_does_not_reach_root():
    root_url = "https://root.example"
    analyst = FakeAnalyst(proposals={ROOT: "1. broken\n2. flaky"})
    search = FakeSearch({ROOT: [root_url], "flaky": ["https://flaky.example"]}, fail={"broken"})

    class ExplodingFetcher(FakeFetcher):
        async def fetch(self, url):
            if "flaky" in url:
                raise RuntimeError("parser crashed")
            return await super().fetch(url)

    orchestrator, session = _orchestrator(search, ExplodingFetcher(_pages(root_url)), analyst)

    result = await orchestrator.research(ROOT)

    assert [i.topic for i in result.insights] == [ROOT]
    assert session.queue.failed == 1
    assert (("broken", TopicState.SEARCH_FAILED)) in session.state_history
    assert session.topic_states["flaky"] == TopicState.DONE


@pytest.mark.asyncio
async def test_embedding_error_propagates_from_root():
    url = "https://one.example"
    orchestrator, _ = _orchestrator(
        FakeSearch({ROOT: [url]}),
        FakeFetcher(_pages(url)),
        FakeAnalyst(),
        embedder=FakeEmbedder(error=EmbeddingError("provider returned 2 vectors for 3 inputs")),
    )

    with pytest.raises(EmbeddingError):
        await orchestrator.research(ROOT)


@pytest.mark.asyncio
async def test_summarize_failure_skips_only_that_url():
    urls = ["https://good.example", "https://bad.example"]

    class FlakyAnalyst(FakeAnalyst):
        async def summarize(self, topic, content):
            if "bad" in content:
                raise UpstreamError("429 Too Many Requests")
            return await super().summarize(topic, content)

    orchestrator, _ = _orchestrator(FakeSearch({ROOT: urls}), FakeFetcher(_pages(*urls)), FlakyAnalyst())

    result = await orchestrator.research(ROOT)

    assert [i.url for i in result.insights] == ["https://good.example"]


@pytest.mark.asyncio
async def test_aggregation_keeps_top_three_per_topic():
    urls = [f"https://r{i}.example" for i in range(4)]
    analyst = FakeAnalyst(scores={"r0": 2, "r1": 9, "r2": 5, "r3": 8})
    orchestrator, _ = _orchestrator(FakeSearch({ROOT: urls}), FakeFetcher(_pages(*urls)), analyst)

    result = await orchestrator.research(ROOT)

    (group,) = result.digest.topics
    assert [i.score for i in group.insights] == [9, 8, 5]
    assert result.digest.text.startswith(f"Topic: {ROOT}\n• ")


@pytest.mark.asyncio
async def test_duplicate_topic_is_a_no_op():
    url = "https://one.example"
    search = FakeSearch({ROOT: [url]})
    orchestrator, session = _orchestrator(search, FakeFetcher(_pages(url)), FakeAnalyst())

    await orchestrator.research(ROOT)
    events_before = len(session.events)

    assert await orchestrator.research(ROOT) is None
    assert len(session.events) == events_before
    assert search.queries == [ROOT]


@pytest.mark.asyncio
async def test_unfetchable_url_is_skipped_not_fatal():
    urls = ["https://good.example/a", "https://exämple..com/", "https://good2.example/b"]
    page = "<html><body><p>Logical qubits need error correction to scale.</p></body></html>"
    fetcher = PageFetcher(transport=httpx.MockTransport(lambda request: httpx.Response(200, text=page)))
    orchestrator, session = _orchestrator(FakeSearch({ROOT: urls}), fetcher, FakeAnalyst())

    result = await orchestrator.research(ROOT)

    assert [i.url for i in result.insights] == ["https://good.example/a", "https://good2.example/b"]
    assert session.topic_states[ROOT] == TopicState.DONE


@pytest.mark.asyncio
async def test_configuration_error_aborts_the_run():
    class MisconfiguredSearch(FakeSearch):
        async def search(self, query):
            raise ConfigurationError("SERPER_API_KEY environment variable is required")

    synthesizer = FakeSynthesizer()
    orchestrator, session = _orchestrator(
        MisconfiguredSearch({}), FakeFetcher({}), FakeAnalyst(), synthesizer=synthesizer
    )

    with pytest.raises(ConfigurationError):
        await orchestrator.research(ROOT)

    states = [state for topic, state in session.state_history if topic == ROOT]
    assert TopicState.SEARCH_FAILED not in states
    assert states[-1] == TopicState.DONE
    assert synthesizer.digests == []
    assert not any(e.event == EventType.RESEARCH_COMPLETE for e in session.events)


class SlowSubTopicFetcher(FakeFetcher):
    async def fetch(self, url):
        if "sub.example" in url:
            await asyncio.sleep(5)
        return await super().fetch(url)


@pytest.mark.asyncio
async def test_fatal_root_error_stops_queued_sub_topics():
    root_urls = ["https://r0.example", "https://r1.example", "https://r2.example"]
    search = FakeSearch({ROOT: root_urls, "qubits": ["https://sub.example/q"]})
    analyst = FakeAnalyst(proposals={ROOT: "1. qubits"})
    orchestrator, session = _orchestrator(
        search,
        SlowSubTopicFetcher(_pages(*root_urls, "https://sub.example/q")),
        analyst,
        embedder=FakeEmbedder(error=EmbeddingError("dimension mismatch"), fail_on="r2.example"),
    )

    with pytest.raises(EmbeddingError):
        await orchestrator.research(ROOT)

    assert session.queue.is_idle
    assert session.queue.cancelled == 1
    assert session.topic_states == {ROOT: TopicState.DONE, "qubits": TopicState.DONE}
    insights_at_abort = len(session.insights)
    await asyncio.sleep(0.05)
    assert len(session.insights) == insights_at_abort
    assert {i.topic for i in session.insights} == {ROOT}
