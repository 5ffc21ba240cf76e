from __future__ import annotations

import asyncio
import time
from dataclasses import replace
from typing import Awaitable, Callable

import httpx
from bs4 import BeautifulSoup

from deeptweet.config import settings
from deeptweet.research_core.chunking import PAGE_CHUNK_OPTIONS, ChunkOptions, chunk_text, clean_text
from deeptweet.research_core.models.interfaces import WebContent
from deeptweet.services import logger as log_service
from deeptweet.tools import web_utils

# Tried in order; the first selector that matches anything wins.
CONTENT_SELECTORS = (
    "p",
    "article",
    ".content",
    '[role="main"]',
    "div > p",
    ".post-content",
    "main",
    "div:not(:empty)",
)

NON_CONTENT_TAGS = ["script", "style", "noscript", "template"]

Fetcher = Callable[[str], Awaitable[str | None]]


def extract_text(raw_html: str) -> tuple[str, str | None]:
    """Readable text and ``<title>`` of an HTML document."""
    soup = BeautifulSoup(raw_html, "html.parser")
    for tag in soup(NON_CONTENT_TAGS):
        tag.decompose()
    title = soup.title.get_text(strip=True) if soup.title else None

    elements = []
    for selector in CONTENT_SELECTORS:
        elements = soup.select(selector)
        if elements:
            break

    if elements:
        pieces = [clean_text(el.get_text(" ")) for el in elements]
        text = " ".join(piece for piece in pieces if piece)
    else:
        root = soup.body or soup
        text = clean_text(root.get_text(" "))
    return text.strip(), title or None


class PageFetcher:
    """Fetches a page and returns its text as bounded chunks.

    Never raises for an unreachable, empty or timed-out page; those yield an
    empty ``WebContent``.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float | None = None,
        chunk_options: ChunkOptions | None = None,
        fetcher: Fetcher | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        user_agent: str | None = None,
    ):
        self.timeout_seconds = max(
            float(timeout_seconds if timeout_seconds is not None else settings.fetch_timeout_seconds),
            0.1,
        )
        self.chunk_options = chunk_options or replace(
            PAGE_CHUNK_OPTIONS,
            chunk_size=int(settings.page_chunk_chars),
            max_chunks=int(settings.page_max_chunks),
        )
        self._fetcher = fetcher
        self._transport = transport
        self.user_agent = user_agent or settings.fetch_user_agent

    async def fetch(self, url: str) -> WebContent:
        fetcher = self._fetcher or self._fetch_with_httpx
        hostname = web_utils.extract_domain(url) or None
        t0 = time.monotonic()
        try:
            # Absolute deadline covering connect, redirects and body download.
            html = await asyncio.wait_for(fetcher(url), timeout=self.timeout_seconds)
            text, title = extract_text(html) if html else ("", None)
            chunks = chunk_text(text, self.chunk_options) if text else []
        except asyncio.TimeoutError:
            self._log(url, 0, t0, f"timed out after {self.timeout_seconds}s")
            return WebContent(url=url, hostname=hostname)
        except Exception as exc:
            # Any fetch or extraction failure, httpx.InvalidURL included, drops only this page.
            self._log(url, 0, t0, f"{type(exc).__name__}: {exc}")
            return WebContent(url=url, hostname=hostname)

        self._log(url, len(chunks), t0)
        return WebContent(url=url, chunks=chunks, title=title, hostname=hostname)

    @staticmethod
    def _log(url: str, chunks: int, t0: float, error: str | None = None) -> None:
        log_service.log_page_fetch(url, chunks, int((time.monotonic() - t0) * 1000), error)

    async def _fetch_with_httpx(self, url: str) -> str | None:
        async with httpx.AsyncClient(
            transport=self._transport,
            timeout=self.timeout_seconds,
            follow_redirects=True,
        ) as client:
            response = await client.get(url, headers={"User-Agent": self.user_agent})
            response.raise_for_status()
            return response.text
