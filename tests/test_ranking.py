from __future__ import annotations

import math

import pytest

from deeptweet.errors import EmbeddingError
from deeptweet.research_core.ranking import EmbeddingRanker, inner_product_distance


def _unit(*values: float) -> list[float]:
    norm = math.sqrt(sum(v * v for v in values))
    return [v / norm for v in values]


class FakeEmbedder:
    def __init__(self, vectors: dict[str, list[float]]):
        self.vectors = vectors
        self.calls: list[list[str]] = []

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [self.vectors[t] for t in texts]


VECTORS = {
    "quantum": _unit(1.0, 0.0),
    "close": _unit(0.9, 0.1),
    "medium": _unit(0.5, 0.5),
    "far": _unit(0.0, 1.0),
    "close-twin": _unit(0.9, 0.1),
}


def test_inner_product_distance_is_zero_for_identical_unit_vectors():
    v = _unit(3.0, 4.0)
    assert inner_product_distance(v, v) == pytest.approx(0.0)


@pytest.mark.asyncio
async def test_rank_orders_by_ascending_distance():
    embedder = FakeEmbedder(VECTORS)
    ranker = EmbeddingRanker(embedder)

    order = await ranker.rank("quantum", ["far", "close", "medium"], top_k=3)

    assert order == [1, 2, 0]
    # One batched call: query first, then the segments in order.
    assert embedder.calls == [["quantum", "far", "close", "medium"]]


@pytest.mark.asyncio
async def test_rank_breaks_ties_by_original_index():
    ranker = EmbeddingRanker(FakeEmbedder(VECTORS))
    order = await ranker.rank("quantum", ["far", "close-twin", "close"], top_k=2)
    assert order == [1, 2]


@pytest.mark.asyncio
@pytest.mark.parametrize("top_k,expected", [(1, 1), (2, 2), (4, 4), (10, 4)])
async def test_rank_returns_min_of_top_k_and_segment_count(top_k, expected):
    ranker = EmbeddingRanker(FakeEmbedder(VECTORS))
    order = await ranker.rank("quantum", ["far", "close", "medium", "close-twin"], top_k=top_k)
    assert len(order) == expected
    assert len(set(order)) == expected


@pytest.mark.asyncio
async def test_rank_skips_provider_for_empty_input():
    embedder = FakeEmbedder(VECTORS)
    ranker = EmbeddingRanker(embedder)
    assert await ranker.rank("quantum", [], top_k=3) == []
    assert await ranker.rank("quantum", ["far"], top_k=0) == []
    assert embedder.calls == []


@pytest.mark.asyncio
async def test_rank_raises_on_vector_count_mismatch():
    class ShortEmbedder:
        async def embed_texts(self, texts):
            return [VECTORS["quantum"]] * (len(texts) - 1)

    with pytest.raises(EmbeddingError):
        await EmbeddingRanker(ShortEmbedder()).rank("quantum", ["a", "b"], top_k=2)


@pytest.mark.asyncio
async def test_rank_raises_on_dimension_mismatch():
    class RaggedEmbedder:
        async def embed_texts(self, texts):
            return [[1.0, 0.0], [1.0, 0.0, 0.0]]

    with pytest.raises(EmbeddingError):
        await EmbeddingRanker(RaggedEmbedder()).rank("quantum", ["a"], top_k=1)


@pytest.mark.asyncio
async def test_rank_wraps_provider_failure():
    class BrokenEmbedder:
        async def embed_texts(self, texts):
            raise RuntimeError("rate limited")

    with pytest.raises(EmbeddingError, match="rate limited"):
        await EmbeddingRanker(BrokenEmbedder()).rank("quantum", ["a"], top_k=1)


@pytest.mark.asyncio
async def test_select_returns_segments_in_relevance_order():
    ranker = EmbeddingRanker(FakeEmbedder(VECTORS))
    assert await ranker.select("quantum", ["far", "close"], top_k=1) == ["close"]
