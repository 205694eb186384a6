from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping

from .identity import DEFAULT_PLATFORM_URL, build_identity
from .media import select_rendition
from .record import INTERCEPTED, CanonicalRecord, Counters, MediaItem

if TYPE_CHECKING:
    from .run_log import RunLogger


def _get_path(node: Any, *keys: str) -> Any:
    """Follow keys through nested mappings; None as soon as one is missing."""
    current = node
    for key in keys:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
        if current is None:
            return None
    return current


def _coerce_str(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    return ""


def _coerce_id(value: Any) -> str:
    if isinstance(value, str):
        v = value.strip()
        return v if v.isdigit() else ""
    if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
        return str(value)
    return ""


def _coerce_count(value: Any) -> str:
    if isinstance(value, bool):
        return ""
    if isinstance(value, int):
        return str(value) if value >= 0 else ""
    if isinstance(value, str) and value.strip().isdigit():
        return value.strip()
    return ""


def find_entries(payload: Any, *, logger: RunLogger | None = None) -> list[Any]:
    """
    Collect every list stored under an "entries" key, anywhere in the payload.

    Depth-first, pre-order, so entries come out in document order. Containers
    already visited are skipped, which keeps the walk finite. A container
    that fails while being read is skipped along with its subtree.
    """
    found: list[Any] = []
    visited: set[int] = set()
    stack: list[Any] = [payload]

    while stack:
        node = stack.pop()
        if not isinstance(node, (Mapping, list)):
            continue
        if id(node) in visited:
            continue
        visited.add(id(node))

        try:
            if isinstance(node, Mapping):
                entries = node.get("entries")
                children = list(node.values())
            else:
                entries = None
                children = list(node)
        except Exception as e:
            if logger is not None:
                logger.exception("api_node_failed", exc=e, level="WARN", node_type=type(node).__name__)
            continue

        if isinstance(entries, list):
            found.extend(entries)
        stack.extend(reversed(children))

    return found


def _tweet_result(entry: Any) -> Mapping[str, Any] | None:
    result = _get_path(entry, "content", "itemContent", "tweet_results", "result")
    if not isinstance(result, Mapping):
        return None

    # Visibility-limited posts nest the actual tweet one level deeper.
    if result.get("__typename") == "TweetWithVisibilityResults":
        inner = result.get("tweet")
        return inner if isinstance(inner, Mapping) else None
    return result


def _media_items(legacy: Mapping[str, Any]) -> tuple[MediaItem, ...]:
    media = _get_path(legacy, "extended_entities", "media")
    if not isinstance(media, list):
        media = _get_path(legacy, "entities", "media")
    if not isinstance(media, list):
        return ()

    out: list[MediaItem] = []
    for item in media:
        if not isinstance(item, Mapping):
            continue
        rendition = select_rendition(item)
        if rendition.url:
            out.append(rendition)
    return tuple(out)


def record_from_tweet_result(
    result: Mapping[str, Any],
    *,
    platform_url: str = DEFAULT_PLATFORM_URL,
) -> CanonicalRecord | None:
    legacy = result.get("legacy")
    user_result = _get_path(result, "core", "user_results", "result")
    author = _get_path(user_result, "legacy")
    if not isinstance(legacy, Mapping) or not isinstance(author, Mapping):
        return None

    status_id = _coerce_id(legacy.get("id_str")) or _coerce_id(result.get("rest_id"))
    handle = _coerce_str(author.get("screen_name")) or _coerce_str(
        _get_path(user_result, "core", "screen_name")
    )
    if not status_id or not handle:
        return None

    display_name = _coerce_str(author.get("name")) or _coerce_str(
        _get_path(user_result, "core", "name")
    )

    note = _get_path(result, "note_tweet", "note_tweet_results", "result", "text")
    text = note if isinstance(note, str) and note else _coerce_str(legacy.get("full_text"))

    return CanonicalRecord(
        identity=build_identity(platform_url, handle, status_id),
        text=text,
        author_display_name=display_name,
        author_handle=handle,
        created_at=_coerce_str(legacy.get("created_at")),
        counters=Counters(
            likes=_coerce_count(legacy.get("favorite_count")),
            reposts=_coerce_count(legacy.get("retweet_count")),
            replies=_coerce_count(legacy.get("reply_count")),
            views=_coerce_count(_get_path(result, "views", "count")),
        ),
        media=_media_items(legacy),
        source_quality=INTERCEPTED,
    )


def _record_from_entry(entry: Any, *, platform_url: str) -> CanonicalRecord | None:
    result = _tweet_result(entry)
    if result is None:
        return None
    return record_from_tweet_result(result, platform_url=platform_url)


def parse_payload(
    payload: Any,
    *,
    platform_url: str = DEFAULT_PLATFORM_URL,
    logger: RunLogger | None = None,
) -> list[CanonicalRecord]:
    """
    Turn one captured API response into canonical records.

    Entries that are not posts, lack the legacy/author objects, or fail while
    being read are skipped; one bad entry never aborts the batch.
    """
    records: list[CanonicalRecord] = []
    skipped = 0

    for index, entry in enumerate(find_entries(payload, logger=logger)):
        try:
            record = _record_from_entry(entry, platform_url=platform_url)
        except Exception as e:
            record = None
            if logger is not None:
                logger.exception("api_entry_failed", exc=e, level="WARN", entry_index=index)

        if record is None:
            skipped += 1
            continue
        records.append(record)

    if logger is not None and skipped:
        logger.debug("api_entries_skipped", skipped=skipped, parsed=len(records))

    return records
