from __future__ import annotations

import re
from datetime import date
from pathlib import Path

from deeptweet.models.schemas import BlogPost, Reference, TweetThread
from deeptweet.research_core.models.interfaces import ResearchDigest


def sanitize_filename(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug[:80] or "untitled"


def _output_path(output_dir: str | Path, topic: str, suffix: str) -> Path:
    directory = Path(output_dir)
    directory.mkdir(parents=True, exist_ok=True)
    stem = sanitize_filename(f"{date.today().isoformat()}-{topic}")
    return directory / f"{stem}-{suffix}.md"


def render_digest(topic: str, digest: ResearchDigest) -> str:
    lines = [f"# Research digest: {topic}", ""]
    if digest.is_empty:
        lines.append("_No insights were collected._")
        return "\n".join(lines) + "\n"
    for group in digest.topics:
        if not group.insights:
            continue
        lines.append(f"## {group.topic}")
        lines.append("")
        for insight in group.insights:
            lines.append(f"**Score {insight.score}/10** · <{insight.url}>")
            lines.append("")
            lines.append(insight.summary.strip())
            lines.append("")
    return "\n".join(lines).rstrip() + "\n"


def render_thread(thread: TweetThread) -> str:
    lines = [f"# Thread: {thread.topic}", ""]
    lines.extend(f"{i}. {tweet}" for i, tweet in enumerate(thread.tweets, 1))
    if thread.sources:
        lines.extend(["", "## Sources", ""])
        lines.extend(f"- <{url}>" for url in thread.sources)
    return "\n".join(lines) + "\n"


def render_blog_post(post: BlogPost) -> str:
    parts = [f"# {post.title}"]
    if post.subtitle:
        parts.append(f"*{post.subtitle.strip()}*")
    meta = []
    if post.reading_time:
        meta.append(f"{post.reading_time} min read")
    if post.keywords:
        meta.append("Keywords: " + ", ".join(post.keywords))
    if meta:
        parts.append(" · ".join(meta))
    if post.summary:
        parts.append(post.summary.strip())
    for section in post.sections:
        parts.append(f"## {section.title}\n\n{section.content.strip()}")
    if post.conclusion:
        parts.append(f"## Conclusion\n\n{post.conclusion.strip()}")
    references = post.references or [Reference.from_url(url) for url in post.sources]
    if references:
        refs = "\n".join(
            f"[^{i}]: <{ref.url}>" + (f" ({ref.site})" if ref.site else "")
            for i, ref in enumerate(references, 1)
        )
        parts.append(f"---\n\n## References\n\n{refs}")
    return "\n\n".join(parts) + "\n"


def write_digest_markdown(topic: str, digest: ResearchDigest, output_dir: str | Path) -> Path:
    path = _output_path(output_dir, topic, "digest")
    path.write_text(render_digest(topic, digest), encoding="utf-8")
    return path


def write_thread_markdown(thread: TweetThread, output_dir: str | Path) -> Path:
    path = _output_path(output_dir, thread.topic, "thread")
    path.write_text(render_thread(thread), encoding="utf-8")
    return path


def write_blog_post_markdown(post: BlogPost, topic: str, output_dir: str | Path) -> Path:
    path = _output_path(output_dir, topic, "blog")
    path.write_text(render_blog_post(post), encoding="utf-8")
    return path
