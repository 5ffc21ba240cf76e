from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from deeptweet.errors import ConfigurationError, EmbeddingError
from deeptweet.services.embeddings import EmbeddingService, get_embedding_service


def dot(a: Sequence[float], b: Sequence[float]) -> float:
    return sum(x * y for x, y in zip(a, b))


def inner_product_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """hnswlib-style "ip" distance; equals cosine distance for unit vectors."""
    return 1.0 - dot(a, b)


class EmbeddingRanker:
    """Nearest-neighbour passage selection over one batched embedding call.

    Vectors are expected to be unit length already (the provider normalizes),
    so similarity is a plain dot product.
    """

    def __init__(self, embedder: EmbeddingService | None = None):
        self._embedder = embedder

    @property
    def embedder(self) -> EmbeddingService:
        if self._embedder is None:
            self._embedder = get_embedding_service()
        return self._embedder

    async def rank_with_distances(
        self,
        query: str,
        segments: Sequence[str],
        top_k: int,
    ) -> list[tuple[int, float]]:
        if top_k <= 0 or not segments:
            return []

        inputs = [query, *segments]
        try:
            vectors = await self.embedder.embed_texts(inputs)
        except (EmbeddingError, ConfigurationError):
            raise
        except Exception as exc:
            raise EmbeddingError(f"Embedding call failed: {exc}") from exc

        if len(vectors) != len(inputs):
            raise EmbeddingError(
                f"Embedding provider returned {len(vectors)} vectors for {len(inputs)} inputs"
            )
        query_vec, segment_vecs = vectors[0], vectors[1:]
        dim = len(query_vec)
        if dim == 0 or any(len(vec) != dim for vec in segment_vecs):
            raise EmbeddingError("Embedding provider returned vectors of inconsistent dimension")

        distances = [
            (index, inner_product_distance(query_vec, vec))
            for index, vec in enumerate(segment_vecs)
        ]
        distances.sort(key=lambda item: (item[1], item[0]))
        selected = distances[:top_k]
        logger.debug(
            f"Ranked {len(segments)} segments for '{query[:60]}': "
            f"kept {[i for i, _ in selected]}"
        )
        return selected

    async def rank(self, query: str, segments: Sequence[str], top_k: int) -> list[int]:
        """Indices of the ``top_k`` segments closest to ``query``, closest first."""
        return [index for index, _ in await self.rank_with_distances(query, segments, top_k)]

    async def select(self, query: str, segments: Sequence[str], top_k: int) -> list[str]:
        return [segments[index] for index in await self.rank(query, segments, top_k)]
