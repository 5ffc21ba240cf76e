from __future__ import annotations

import asyncio
import time
from typing import Any, Protocol

from loguru import logger

from deeptweet.config import settings
from deeptweet.errors import ConfigurationError, EmbeddingError


class EmbeddingService(Protocol):
    """Embeds a batch of strings into unit-length vectors, one per input, same order."""

    async def embed_texts(self, texts: list[str]) -> list[list[float]]: ...


class OpenAIEmbeddingService:
    """Remote embeddings through the OpenAI-compatible ``/embeddings`` endpoint.

    ``text-embedding-3-*`` vectors are returned normalized to unit length,
    which the ranker relies on.
    """

    def __init__(self, model_name: str | None = None, llm: Any | None = None):
        self.model_name = model_name or settings.embedding_model
        self._llm = llm

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        if self._llm is None:
            from deeptweet.llm_client import client

            self._llm = client()
        try:
            return await self._llm.embed(texts, model=self.model_name)
        except ConfigurationError:
            raise
        except Exception as exc:
            raise EmbeddingError(f"Embedding request failed: {exc}") from exc


class LocalEmbeddingService:
    """sentence-transformers embeddings computed in a worker thread."""

    def __init__(self, model_name: str | None = None, batch_size: int | None = None):
        self.model_name = model_name or settings.local_embed_model
        self.batch_size = batch_size or int(settings.local_embed_batch_size)
        self._model: Any | None = None
        self._lock = asyncio.Lock()

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        async with self._lock:
            if self._model is None:
                self._model = await asyncio.to_thread(self._load_model)
        return await asyncio.to_thread(self._embed_sync, texts)

    def _load_model(self) -> Any:
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as exc:
            raise EmbeddingError(
                "EMBEDDING_BACKEND=local requires the 'sentence-transformers' package"
            ) from exc
        try:
            return SentenceTransformer(self.model_name)
        except Exception as exc:
            raise EmbeddingError(f"Could not load embedding model {self.model_name}: {exc}") from exc

    def _embed_sync(self, texts: list[str]) -> list[list[float]]:
        retries = 3
        last_error: Exception | None = None
        for attempt in range(retries):
            try:
                vectors = self._model.encode(
                    texts,
                    batch_size=self.batch_size,
                    normalize_embeddings=True,
                    show_progress_bar=False,
                )
                return [list(map(float, row)) for row in vectors]
            except Exception as exc:
                last_error = exc
                logger.warning(f"Local embedding attempt {attempt + 1}/{retries} failed: {exc}")
                if attempt < retries - 1:
                    time.sleep(0.2 * (attempt + 1))
        raise EmbeddingError(f"Local embedding failed after {retries} attempts: {last_error}")


def get_embedding_service() -> EmbeddingService:
    backend = settings.embedding_backend.lower().strip()
    if backend == "openai":
        return OpenAIEmbeddingService()
    if backend == "local":
        return LocalEmbeddingService()
    raise ConfigurationError(f"Unsupported EMBEDDING_BACKEND: {settings.embedding_backend}")
