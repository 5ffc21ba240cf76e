from __future__ import annotations

from typing import Any

from tavily import AsyncTavilyClient

from deeptweet.config import settings
from deeptweet.errors import ConfigurationError, UpstreamError
from deeptweet.research_core.models.interfaces import SearchResult


async def search(
    query: str,
    *,
    max_results: int = 5,
    search_depth: str = "basic",
    time_range: str | None = None,
) -> list[SearchResult]:
    """Execute a Tavily web search and return structured results."""
    if not settings.tavily_api_key:
        raise ConfigurationError("TAVILY_API_KEY environment variable is required")
    client = AsyncTavilyClient(api_key=settings.tavily_api_key)

    kwargs: dict[str, Any] = {
        "query": query,
        "search_depth": search_depth,
        "max_results": max_results,
    }
    if time_range:
        kwargs["time_range"] = time_range

    try:
        response = await client.search(**kwargs)
    except Exception as exc:
        raise UpstreamError(f"Tavily search failed for '{query}': {exc}") from exc

    return [
        SearchResult(
            url=r.get("url", ""),
            title=r.get("title", ""),
            snippet=r.get("content", ""),
        )
        for r in response.get("results", [])
        if r.get("url")
    ]
