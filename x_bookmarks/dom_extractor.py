from __future__ import annotations

import re
from typing import TYPE_CHECKING

from bs4 import Tag

from .counters import normalize_count
from .identity import DEFAULT_PLATFORM_URL, build_identity, parse_status_url
from .record import SCRAPED, CanonicalRecord, Counters

if TYPE_CHECKING:
    from .run_log import RunLogger

_VIEW_LABEL_RE = re.compile(r"view", re.IGNORECASE)

# Toggled test ids appear once the viewer has liked/reposted the post.
_LIKE_SLOTS = ("like", "unlike")
_REPOST_SLOTS = ("retweet", "unretweet")
_REPLY_SLOTS = ("reply",)


def _text_of(el: Tag | None) -> str:
    if el is None:
        return ""
    return el.get_text().strip()


def first_status_link(node: Tag) -> str:
    """href of the first descendant anchor that points at a status URL."""
    for anchor in node.find_all("a", href=True):
        href = anchor.get("href")
        if isinstance(href, str) and parse_status_url(href) is not None:
            return href
    return ""


def _body_text(node: Tag) -> str:
    parts: list[str] = []
    for el in node.select('[data-testid="tweetText"]'):
        t = _text_of(el)
        if t:
            parts.append(t)
    return " ".join(parts)


def _author_from_header(node: Tag) -> tuple[str, str]:
    group = node.select_one('div[role="group"]')
    header = group.parent.parent if group is not None and group.parent is not None else None
    if not isinstance(header, Tag):
        return "", ""

    spans = header.find_all("span")
    display_name = _text_of(spans[0]) if spans else ""

    handle = ""
    for span in spans:
        t = _text_of(span)
        if t.startswith("@"):
            handle = t[1:]
            break
    return display_name, handle


def _counter(node: Tag, slots: tuple[str, ...]) -> str:
    for slot in slots:
        el = node.select_one(f'[data-testid="{slot}"]')
        if el is not None:
            return normalize_count(el.get_text())
    return ""


def _views(node: Tag) -> str:
    for el in node.find_all(["a", "span"], attrs={"aria-label": _VIEW_LABEL_RE}):
        label = el.get("aria-label")
        if isinstance(label, str):
            return normalize_count(label)
    return ""


def _extract(node: Tag, *, platform_url: str) -> CanonicalRecord:
    href = first_status_link(node)
    link = parse_status_url(href)
    if link is None:
        return CanonicalRecord.empty()

    display_name, handle = _author_from_header(node)

    if not display_name:
        display_name = _text_of(node.select_one('div[dir="auto"] > span'))

    if not handle:
        handle_span = node.select_one('div[dir="ltr"] > span')
        if handle_span is not None:
            handle = handle_span.get_text().replace("@", "", 1).strip()

    if not handle:
        handle = link.handle

    time_el = node.find("time", attrs={"datetime": True})
    created_at = str(time_el.get("datetime") or "") if time_el is not None else ""

    return CanonicalRecord(
        identity=build_identity(platform_url, link.handle, link.status_id),
        text=_body_text(node),
        author_display_name=display_name,
        author_handle=handle,
        created_at=created_at,
        counters=Counters(
            likes=_counter(node, _LIKE_SLOTS),
            reposts=_counter(node, _REPOST_SLOTS),
            replies=_counter(node, _REPLY_SLOTS),
            views=_views(node),
        ),
        source_quality=SCRAPED,
    )


def extract_from_node(
    node: Tag,
    *,
    platform_url: str = DEFAULT_PLATFORM_URL,
    logger: RunLogger | None = None,
) -> CanonicalRecord:
    """
    Read one rendered post card into a canonical record.

    Always returns a record; an empty identity means nothing usable was found.
    """
    try:
        return _extract(node, platform_url=platform_url)
    except Exception as e:
        if logger is not None:
            logger.exception("dom_extraction_failed", exc=e, level="WARN")
        return CanonicalRecord.empty()
