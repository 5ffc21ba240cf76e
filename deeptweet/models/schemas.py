from __future__ import annotations

from pydantic import BaseModel, Field

from deeptweet.tools import web_utils


class OutlineSection(BaseModel):
    title: str
    key_points: list[str] = Field(default_factory=list)


class Outline(BaseModel):
    title: str
    subtitle: str = ""
    keywords: list[str] = Field(default_factory=list)
    sections: list[OutlineSection] = Field(default_factory=list)


class BlogSection(BaseModel):
    title: str
    content: str


class PostPart(BaseModel):
    """One polishable piece of a draft: the title, summary, a section or the conclusion."""

    kind: str
    content: str
    title: str = ""


class Reference(BaseModel):
    url: str
    title: str = "Reference"
    site: str = ""

    @classmethod
    def from_url(cls, url: str) -> "Reference":
        return cls(url=url, site=web_utils.extract_domain(url))


class BlogDraft(BaseModel):
    title: str
    subtitle: str = ""
    summary: str = ""
    keywords: list[str] = Field(default_factory=list)
    sections: list[BlogSection] = Field(default_factory=list)
    conclusion: str = ""

    @property
    def word_count(self) -> int:
        texts = [self.summary, *(s.content for s in self.sections), self.conclusion]
        return sum(len(text.split()) for text in texts)


class BlogPost(BlogDraft):
    sources: list[str] = Field(default_factory=list)
    reading_time: int = 0
    references: list[Reference] = Field(default_factory=list)


class TweetThread(BaseModel):
    topic: str
    tweets: list[str] = Field(default_factory=list)
    sources: list[str] = Field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n".join(f"{i}. {tweet}" for i, tweet in enumerate(self.tweets, 1))
