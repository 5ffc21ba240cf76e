from __future__ import annotations

import time
from dataclasses import dataclass, field

from loguru import logger

from deeptweet.config import settings
from deeptweet.errors import ConfigurationError, UpstreamError
from deeptweet.research_core.models.interfaces import SearchResult
from deeptweet.services import logger as log_service
from deeptweet.tools import serper_search, tavily_search, web_utils


@dataclass
class SearchResponse:
    results: list[SearchResult]
    provider: str
    dropped: list[str] = field(default_factory=list)


def filter_results(results: list[SearchResult], blocklist: list[str]) -> tuple[list[SearchResult], list[str]]:
    """Keep unique http(s) results whose hostname is not blocklisted.

    Returns the kept results (with ``hostname`` filled in) and the dropped URLs.
    """
    kept: list[SearchResult] = []
    dropped: list[str] = []
    seen: set[str] = set()
    for result in results:
        url = (result.url or "").strip()
        if not web_utils.is_valid_url(url) or url in seen:
            dropped.append(url)
            continue
        hostname = result.hostname or web_utils.extract_domain(url)
        if web_utils.is_blocked(hostname, blocklist):
            dropped.append(url)
            continue
        seen.add(url)
        result.url = url
        result.hostname = hostname
        kept.append(result)
    return kept, dropped


class SearchClient:
    """Provider-agnostic web search returning filtered ``SearchResult`` lists.

    Raises ``ConfigurationError`` when the provider's key is absent and
    ``UpstreamError`` on transport failure.
    """

    def __init__(
        self,
        provider: str | None = None,
        *,
        max_results: int | None = None,
        blocklist: list[str] | None = None,
    ):
        self.provider = (provider or settings.search_provider).lower().strip()
        self.max_results = max_results or int(settings.search_max_results)
        self.blocklist = blocklist if blocklist is not None else settings.search_blocklist

    async def search(self, query: str) -> SearchResponse:
        if self.provider == "serper":
            backend = serper_search.search
        elif self.provider == "tavily":
            backend = tavily_search.search
        else:
            raise ConfigurationError(f"Unsupported SEARCH_PROVIDER: {self.provider}")

        t0 = time.monotonic()
        try:
            raw = await backend(query, max_results=self.max_results)
        except UpstreamError as exc:
            log_service.log_search_call(
                self.provider,
                query,
                results=0,
                duration_ms=int((time.monotonic() - t0) * 1000),
                error=str(exc),
            )
            raise

        results, dropped = filter_results(raw, self.blocklist)
        if dropped:
            logger.debug(f"Search for '{query}' dropped {len(dropped)} results: {dropped}")
        log_service.log_search_call(
            self.provider,
            query,
            results=len(results),
            dropped=len(dropped),
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        return SearchResponse(results=results, provider=self.provider, dropped=dropped)
