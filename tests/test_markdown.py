from __future__ import annotations

from deeptweet.models.schemas import BlogPost, BlogSection, Reference, TweetThread
from deeptweet.research_core.insights import InsightStore
from deeptweet.research_core.models.interfaces import Insight, ResearchDigest
from deeptweet.services import markdown


def _store() -> InsightStore:
    store = InsightStore()
    for topic, score, url in [
        ("quantum computing", 4, "https://a.example"),
        ("quantum computing", 9, "https://b.example"),
        ("qubits", 6, "https://c.example"),
        ("quantum computing", 9, "https://d.example"),
        ("quantum computing", 2, "https://e.example"),
    ]:
        store.append(Insight(topic, f"summary from {url}", score, url))
    return store


def test_aggregate_keeps_top_scores_per_topic_in_stable_order():
    digest = _store().aggregate(3)

    assert [group.topic for group in digest.topics] == ["quantum computing", "qubits"]
    assert [i.url for i in digest.topics[0].insights] == [
        "https://b.example",
        "https://d.example",
        "https://a.example",
    ]
    assert digest.text.split("\n\n")[1] == "Topic: qubits\n• summary from https://c.example"


def test_render_digest_lists_scores_and_sources():
    text = markdown.render_digest("quantum computing", _store().aggregate(1))

    assert text.startswith("# Research digest: quantum computing\n")
    assert "**Score 9/10** · <https://b.example>" in text
    assert "https://a.example" not in text


def test_render_digest_notes_empty_research():
    assert "_No insights were collected._" in markdown.render_digest("x", ResearchDigest())


def test_render_thread_numbers_tweets_and_lists_sources():
    thread = TweetThread(topic="qubits", tweets=["One", "Two"], sources=["https://a.example"])

    assert markdown.render_thread(thread) == (
        "# Thread: qubits\n\n1. One\n2. Two\n\n## Sources\n\n- <https://a.example>\n"
    )


def test_write_blog_post_markdown(tmp_path):
    post = BlogPost(
        title="Quantum, explained",
        summary="Short summary.",
        sections=[BlogSection(title="Qubits", content="They decohere.")],
        conclusion="Watch this space.",
        sources=["https://a.example"],
    )

    path = markdown.write_blog_post_markdown(post, "Quantum Computing?", tmp_path / "out")

    assert path.parent == tmp_path / "out"
    assert path.name.endswith("-quantum-computing-blog.md")
    body = path.read_text(encoding="utf-8")
    assert "## Qubits\n\nThey decohere." in body
    assert "[^1]: <https://a.example>" in body


def test_sanitize_filename():
    assert markdown.sanitize_filename("  What's next for AI?  ") == "what-s-next-for-ai"
    assert markdown.sanitize_filename("???") == "untitled"


def test_render_blog_post_shows_metadata_and_reference_sites():
    post = BlogPost(
        title="Quantum, explained",
        subtitle="From qubits to codes",
        keywords=["qubits", "error correction"],
        reading_time=4,
        sections=[BlogSection(title="Qubits", content="They decohere.[^1]")],
        sources=["https://www.a.example/paper"],
        references=[Reference.from_url("https://www.a.example/paper")],
    )

    text = markdown.render_blog_post(post)

    assert text.startswith("# Quantum, explained\n\n*From qubits to codes*\n\n")
    assert "4 min read · Keywords: qubits, error correction" in text
    assert "[^1]: <https://www.a.example/paper> (www.a.example)" in text
