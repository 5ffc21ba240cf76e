"""Error taxonomy shared by the research pipeline.

``ConfigurationError`` is fatal for the whole run. ``UpstreamError`` is
recovered locally (topic-level for search, URL-level for fetch/LLM calls).
``EmbeddingError`` always propagates because a silently degraded ranking
would corrupt relevance. ``ParseError`` is recovered with a documented default.
"""
from __future__ import annotations


class ResearchError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(ResearchError):
    """A required credential or setting is missing."""


class UpstreamError(ResearchError):
    """A search, fetch, or LLM call failed."""


class EmbeddingError(ResearchError):
    """The embedding provider failed or returned unusable vectors."""


class ParseError(ResearchError):
    """Generated text could not be parsed into the expected shape."""
