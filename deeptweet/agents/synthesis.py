"""Terminal stage: turn a research digest into a publishable artifact."""
from __future__ import annotations

import asyncio
import json
import math
import re
from typing import Any, Protocol

from loguru import logger
from pydantic import ValidationError

from deeptweet.errors import ParseError, UpstreamError
from deeptweet.llm_client import client as llm_client, get_model
from deeptweet.models.schemas import (
    BlogDraft,
    BlogPost,
    BlogSection,
    Outline,
    OutlineSection,
    PostPart,
    Reference,
    TweetThread,
)
from deeptweet.research_core.models.interfaces import ResearchDigest
from deeptweet.services.prompt_store import render_prompt

MAX_TWEET_CHARS = 280
SECTION_BATCH_SIZE = 3
POLISH_BATCH_SIZE = 2
WORDS_PER_MINUTE = 200

_NUMBERED_LINE = re.compile(r"^\s*(\d+)\s*[.)/]\s*(.+)$")


class Synthesizer(Protocol):
    async def synthesize(self, topic: str, digest: ResearchDigest) -> Any: ...


def extract_json_object(text: str) -> dict[str, Any]:
    """First JSON object in ``text``, tolerating code fences and chatter around it."""
    cleaned = re.sub(r"^```(?:json)?\s*|\s*```$", "", text.strip())
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end <= start:
        raise ParseError("No JSON object in model reply")
    try:
        payload = json.loads(cleaned[start : end + 1])
    except json.JSONDecodeError as exc:
        raise ParseError(f"Invalid JSON in model reply: {exc}") from exc
    if not isinstance(payload, dict):
        raise ParseError("Model reply JSON is not an object")
    return payload


def parse_tweets(text: str) -> list[str]:
    """Split a numbered thread into tweets, clipping each to 280 characters."""
    tweets: list[str] = []
    for line in text.splitlines():
        match = _NUMBERED_LINE.match(line)
        if match:
            tweets.append(match.group(2).strip())
        elif line.strip() and tweets:
            # Continuation of the previous tweet.
            tweets[-1] = f"{tweets[-1]} {line.strip()}"
    if not tweets and text.strip():
        tweets = [text.strip()]
    return [
        tweet if len(tweet) <= MAX_TWEET_CHARS else tweet[: MAX_TWEET_CHARS - 1].rstrip() + "…"
        for tweet in tweets
    ]


class ThreadSynthesizer:
    """Digest → 5-7 tweet thread."""

    def __init__(self, model: str | None = None):
        self.model = model or get_model()
        self.client: Any | None = None

    async def synthesize(self, topic: str, digest: ResearchDigest) -> TweetThread:
        if digest.is_empty:
            return TweetThread(topic=topic)
        completion = await (self.client or llm_client()).complete(
            system=render_prompt("thread.system_prompt"),
            user=digest.text,
            model=self.model,
            max_tokens=1024,
            caller="synthesis.thread",
        )
        return TweetThread(topic=topic, tweets=parse_tweets(completion.text), sources=digest.sources)


class BlogSynthesizer:
    """Digest → outline → sections → summary and conclusion → polish → combine → flow pass."""

    def __init__(self, model: str | None = None):
        self.model = model or get_model()
        self.client: Any | None = None

    async def _complete(self, system: str, user: str, caller: str, max_tokens: int = 1500) -> str:
        completion = await (self.client or llm_client()).complete(
            system=system,
            user=user,
            model=self.model,
            max_tokens=max_tokens,
            caller=caller,
        )
        return completion.text

    @staticmethod
    def fallback_outline(topic: str, digest: ResearchDigest) -> Outline:
        return Outline(
            title=topic,
            sections=[
                OutlineSection(
                    title=group.topic,
                    key_points=[insight.summary[:160] for insight in group.insights],
                )
                for group in digest.topics
                if group.insights
            ],
        )

    async def create_outline(self, topic: str, digest: ResearchDigest) -> Outline:
        reply = await self._complete(
            render_prompt("blog.outline_prompt", topic=topic),
            digest.text,
            "synthesis.outline",
        )
        try:
            outline = Outline.model_validate(extract_json_object(reply))
        except (ParseError, ValidationError) as exc:
            logger.warning(f"Outline reply unusable, building outline from digest: {exc}")
            return self.fallback_outline(topic, digest)
        if not outline.sections:
            return self.fallback_outline(topic, digest)
        return outline

    async def write_section(self, section: OutlineSection, research: str) -> BlogSection:
        content = await self._complete(
            render_prompt("blog.section_prompt", key_points=", ".join(section.key_points)),
            render_prompt(
                "blog.section_user_prompt",
                section_title=section.title,
                research=research,
            ),
            "synthesis.section",
        )
        return BlogSection(title=section.title, content=content)

    @staticmethod
    def draft_parts(draft: BlogDraft) -> list[PostPart]:
        """Title, summary, each section and the conclusion, in reading order."""
        parts = [PostPart(kind="title", content=draft.title)]
        if draft.summary:
            parts.append(PostPart(kind="summary", content=draft.summary))
        parts.extend(
            PostPart(kind="section", title=section.title, content=section.content)
            for section in draft.sections
        )
        if draft.conclusion:
            parts.append(PostPart(kind="conclusion", content=draft.conclusion))
        return parts

    async def polish_part(self, part: PostPart, sources: list[str]) -> PostPart:
        content = f"{part.title}\n\n{part.content}" if part.title else part.content
        try:
            improved = await self._complete(
                render_prompt("blog.polish_prompt", part_type=part.kind),
                render_prompt(
                    "blog.polish_user_prompt",
                    content=content,
                    sources="\n".join(f"[^{i}]: {url}" for i, url in enumerate(sources, 1)),
                ),
                "synthesis.polish",
            )
        except UpstreamError as exc:
            logger.warning(f"Polishing the {part.kind} failed, keeping the draft: {exc}")
            return part
        if not improved.strip():
            return part
        if part.title:
            heading, _, body = improved.strip().partition("\n\n")
            if heading.lstrip("# ").strip() == part.title and body.strip():
                improved = body
        return part.model_copy(update={"content": improved.strip()})

    async def polish_parts(self, parts: list[PostPart], sources: list[str]) -> list[PostPart]:
        polished: list[PostPart] = []
        for start in range(0, len(parts), POLISH_BATCH_SIZE):
            batch = parts[start : start + POLISH_BATCH_SIZE]
            polished.extend(await asyncio.gather(*(self.polish_part(p, sources) for p in batch)))
        return polished

    @staticmethod
    def assemble(draft: BlogDraft, parts: list[PostPart]) -> BlogDraft:
        """Put polished parts back into the draft's shape without another model call."""
        update: dict[str, Any] = {"sections": []}
        for part in parts:
            if part.kind == "title":
                lines = part.content.strip().splitlines()
                title = lines[0].lstrip("# ").strip() if lines else ""
                update["title"] = title or draft.title
            elif part.kind == "section":
                update["sections"].append(BlogSection(title=part.title, content=part.content))
            else:
                update[part.kind] = part.content
        return draft.model_copy(update=update)

    async def _revise(self, system: str, user: str, caller: str, fallback: BlogDraft) -> BlogDraft:
        """A whole-post pass; any failure or unusable reply keeps ``fallback``."""
        try:
            reply = await self._complete(system, user, caller, max_tokens=4000)
            revised = BlogDraft.model_validate(extract_json_object(reply))
        except (UpstreamError, ParseError, ValidationError) as exc:
            logger.warning(f"{caller} pass failed, keeping the previous draft: {exc}")
            return fallback
        if not revised.sections:
            logger.warning(f"{caller} pass returned no sections, keeping the previous draft")
            return fallback
        return revised.model_copy(
            update={
                "subtitle": revised.subtitle or fallback.subtitle,
                "keywords": revised.keywords or fallback.keywords,
            }
        )

    async def combine(self, draft: BlogDraft, parts: list[PostPart]) -> BlogDraft:
        assembled = self.assemble(draft, parts)
        return await self._revise(
            render_prompt("blog.combine_prompt"),
            json.dumps([part.model_dump() for part in parts], ensure_ascii=False),
            "synthesis.combine",
            assembled,
        )

    async def final_polish(self, draft: BlogDraft) -> BlogDraft:
        return await self._revise(
            render_prompt("blog.final_polish_prompt"),
            draft.model_dump_json(),
            "synthesis.final_polish",
            draft,
        )

    async def synthesize(self, topic: str, digest: ResearchDigest) -> BlogPost:
        if digest.is_empty:
            return BlogPost(title=topic)

        outline = await self.create_outline(topic, digest)
        sections: list[BlogSection] = []
        for start in range(0, len(outline.sections), SECTION_BATCH_SIZE):
            batch = outline.sections[start : start + SECTION_BATCH_SIZE]
            sections.extend(
                await asyncio.gather(*(self.write_section(s, digest.text) for s in batch))
            )

        body = "\n\n".join(section.content for section in sections)
        summary, conclusion = await asyncio.gather(
            self._complete(render_prompt("blog.summary_prompt"), body, "synthesis.summary", 600),
            self._complete(render_prompt("blog.conclusion_prompt"), body, "synthesis.conclusion", 600),
        )
        draft = BlogDraft(
            title=outline.title,
            subtitle=outline.subtitle,
            summary=summary,
            keywords=outline.keywords,
            sections=sections,
            conclusion=conclusion,
        )

        sources = digest.sources
        polished = await self.polish_parts(self.draft_parts(draft), sources)
        final = await self.final_polish(await self.combine(draft, polished))
        return BlogPost(
            **final.model_dump(),
            sources=sources,
            reading_time=math.ceil(final.word_count / WORDS_PER_MINUTE),
            references=[Reference.from_url(url) for url in sources],
        )


def get_synthesizer(output_format: str, model: str | None = None) -> Synthesizer:
    fmt = output_format.lower().strip()
    if fmt == "thread":
        return ThreadSynthesizer(model=model)
    if fmt in {"blog", "paper"}:
        return BlogSynthesizer(model=model)
    raise ValueError(f"Unsupported output format: {output_format}")
