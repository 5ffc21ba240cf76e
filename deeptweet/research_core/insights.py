from __future__ import annotations

from collections.abc import Iterator

from deeptweet.research_core.models.interfaces import Insight, ResearchDigest, TopicDigest


class InsightStore:
    """Append-only record of scored insights, in discovery order."""

    def __init__(self) -> None:
        self._items: list[Insight] = []

    def append(self, insight: Insight) -> None:
        self._items.append(insight)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Insight]:
        return iter(list(self._items))

    def snapshot(self) -> list[Insight]:
        return list(self._items)

    def by_topic(self) -> dict[str, list[Insight]]:
        groups: dict[str, list[Insight]] = {}
        for insight in self._items:
            groups.setdefault(insight.topic, []).append(insight)
        return groups

    def aggregate(self, top_n: int) -> ResearchDigest:
        """Top ``top_n`` insights per topic by descending score.

        ``sorted`` is stable, so equal scores keep discovery order.
        """
        return ResearchDigest(
            topics=[
                TopicDigest(
                    topic=topic,
                    insights=sorted(items, key=lambda i: i.score, reverse=True)[: max(top_n, 0)],
                )
                for topic, items in self.by_topic().items()
            ]
        )
