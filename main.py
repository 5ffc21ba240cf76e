"""DeepTweet - topic research tool

Simple CLI for researching a topic and turning it into a thread or blog post.
"""

import argparse
import asyncio
import sys

from deeptweet.agents.orchestrator import ResearchOrchestrator
from deeptweet.config import settings
from deeptweet.errors import ConfigurationError
from deeptweet.models.events import EventType, ResearchEvent
from deeptweet.models.schemas import BlogPost, TweetThread
from deeptweet.research_core.session import ResearchSession
from deeptweet.services import markdown

ICONS = {
    EventType.INFO: "→",
    EventType.SUCCESS: "✓",
    EventType.ERROR: "✗",
    EventType.TASK_START: "▶",
    EventType.TASK_END: "■",
    EventType.INSIGHT_ADDED: "✧",
    EventType.TOPIC_ADDED: "+",
    EventType.RESEARCH_COMPLETE: "*",
}


def print_event(event: ResearchEvent) -> None:
    print(f"[{ICONS.get(event.event, '·')}] {event.message}", flush=True)


def star_rating(score: int) -> str:
    """Five-star bar for a 1-10 score, halves rounded up."""
    stars = int(score / 2 + 0.5)
    return "★" * stars + "☆" * (5 - stars)


def print_insights(result) -> None:
    for group in result.digest.topics:
        print(f"\n{group.topic}")
        for insight in group.insights:
            print(star_rating(insight.score))
            print(f"  {insight.summary[:120]}...")


async def run_research(topic: str, output_format: str, max_topics: int, concurrency: int, output_dir: str):
    """Run research on the given topic."""
    print(f"Researching: {topic}")
    print("-" * 50)

    session = ResearchSession(max_topics=max_topics, queue_concurrency=concurrency)
    session.subscribe(print_event)
    orchestrator = ResearchOrchestrator(session, output_format=output_format)

    result = await orchestrator.research(topic)
    if result is None:
        return

    print(f"\n{'=' * 50}")
    print(f"Topics: {', '.join(result.topics)}")
    print(f"Insights: {len(result.insights)}")
    print_insights(result)

    digest_path = markdown.write_digest_markdown(topic, result.digest, output_dir)
    print(f"\nWrote digest to {digest_path}")

    if isinstance(result.artifact, TweetThread):
        path = markdown.write_thread_markdown(result.artifact, output_dir)
        print(f"\n{'=' * 50}\nTHREAD:\n{'=' * 50}")
        print(result.artifact.text)
        print(f"\nWrote thread to {path}")
    elif isinstance(result.artifact, BlogPost):
        path = markdown.write_blog_post_markdown(result.artifact, topic, output_dir)
        print(f"\n{result.artifact.title} ({result.artifact.reading_time} min read)")
        print(f"Wrote blog post to {path}")


def main():
    parser = argparse.ArgumentParser(description="DeepTweet topic research tool")
    parser.add_argument("topic", help="Topic to research")
    parser.add_argument(
        "--format",
        "-f",
        choices=["thread", "blog"],
        default=settings.output_format,
        help="Output artifact (default: from config)",
    )
    parser.add_argument("--max-topics", type=int, default=settings.max_topics, help="Topic budget including the root")
    parser.add_argument("--concurrency", type=int, default=settings.queue_concurrency, help="Parallel sub-topic tasks")
    parser.add_argument("--output-dir", "-o", default=settings.output_dir, help="Where markdown files are written")

    args = parser.parse_args()

    try:
        asyncio.run(
            run_research(args.topic, args.format, args.max_topics, args.concurrency, args.output_dir)
        )
    except ConfigurationError as exc:
        print(f"\n[!] Configuration error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
