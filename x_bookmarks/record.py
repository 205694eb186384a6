from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Mapping, Sequence

SourceQuality = Literal["intercepted", "scraped", "link_only"]

INTERCEPTED: SourceQuality = "intercepted"
SCRAPED: SourceQuality = "scraped"
LINK_ONLY: SourceQuality = "link_only"


@dataclass(frozen=True)
class MediaItem:
    kind: str
    url: str


@dataclass(frozen=True)
class Counters:
    """Engagement counters as decimal-digit strings; empty when unknown."""

    likes: str = ""
    reposts: str = ""
    replies: str = ""
    views: str = ""


@dataclass(frozen=True)
class CanonicalRecord:
    """The source-agnostic shape of one bookmarked post."""

    identity: str
    text: str = ""
    author_display_name: str = ""
    author_handle: str = ""
    created_at: str = ""
    counters: Counters = field(default_factory=Counters)
    media: Sequence[MediaItem] = ()
    source_quality: SourceQuality = SCRAPED

    @classmethod
    def empty(cls) -> "CanonicalRecord":
        return cls(identity="")

    @classmethod
    def link_only(cls, identity: str, author_handle: str) -> "CanonicalRecord":
        return cls(identity=identity, author_handle=author_handle, source_quality=LINK_ONLY)

    def to_dict(self) -> dict[str, Any]:
        return {
            "identity": self.identity,
            "text": self.text,
            "author_display_name": self.author_display_name,
            "author_handle": self.author_handle,
            "created_at": self.created_at,
            "counters": {
                "likes": self.counters.likes,
                "reposts": self.counters.reposts,
                "replies": self.counters.replies,
                "views": self.counters.views,
            },
            "media": [{"kind": m.kind, "url": m.url} for m in self.media],
            "source_quality": self.source_quality,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CanonicalRecord":
        counters = data.get("counters")
        if not isinstance(counters, Mapping):
            counters = {}

        media: list[MediaItem] = []
        raw_media = data.get("media")
        if isinstance(raw_media, list):
            for item in raw_media:
                if isinstance(item, Mapping):
                    media.append(
                        MediaItem(kind=str(item.get("kind") or ""), url=str(item.get("url") or ""))
                    )

        quality = str(data.get("source_quality") or SCRAPED)
        if quality not in (INTERCEPTED, SCRAPED, LINK_ONLY):
            quality = SCRAPED

        return cls(
            identity=str(data.get("identity") or ""),
            text=str(data.get("text") or ""),
            author_display_name=str(data.get("author_display_name") or ""),
            author_handle=str(data.get("author_handle") or ""),
            created_at=str(data.get("created_at") or ""),
            counters=Counters(
                likes=str(counters.get("likes") or ""),
                reposts=str(counters.get("reposts") or ""),
                replies=str(counters.get("replies") or ""),
                views=str(counters.get("views") or ""),
            ),
            media=tuple(media),
            source_quality=quality,  # type: ignore[arg-type]
        )
