from __future__ import annotations

from typing import Any

import httpx

from deeptweet.config import settings
from deeptweet.errors import ConfigurationError, UpstreamError
from deeptweet.research_core.models.interfaces import SearchResult

SERPER_ENDPOINT = "https://google.serper.dev/search"


def _parse_organic(payload: Any) -> list[SearchResult]:
    if not isinstance(payload, dict):
        return []
    organic = payload.get("organic") or []
    results: list[SearchResult] = []
    for item in organic:
        if not isinstance(item, dict):
            continue
        link = item.get("link")
        if not isinstance(link, str) or not link:
            continue
        results.append(
            SearchResult(
                url=link,
                title=str(item.get("title") or ""),
                snippet=str(item.get("snippet") or ""),
            )
        )
    return results


async def search(
    query: str,
    *,
    max_results: int = 5,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[SearchResult]:
    """Google organic results through serper.dev.

    API: POST https://google.serper.dev/search
    Headers:
        - X-API-KEY: <api_key>
    Body: {"q": <query>, "num": <max_results>}
    """
    api_key = settings.serper_api_key
    if not api_key:
        raise ConfigurationError("SERPER_API_KEY environment variable is required")

    try:
        async with httpx.AsyncClient(transport=transport, timeout=30.0) as client:
            response = await client.post(
                SERPER_ENDPOINT,
                headers={"X-API-KEY": api_key, "Content-Type": "application/json"},
                json={"q": query, "num": max_results},
            )
            response.raise_for_status()
            payload = response.json()
    except httpx.HTTPError as exc:
        raise UpstreamError(f"Serper search failed for '{query}': {exc}") from exc
    except ValueError as exc:
        raise UpstreamError(f"Serper returned invalid JSON for '{query}'") from exc

    return _parse_organic(payload)[:max_results]
