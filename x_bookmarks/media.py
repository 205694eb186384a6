from __future__ import annotations

from typing import Any, Mapping

from .record import MediaItem

MP4_CONTENT_TYPE = "video/mp4"

_KIND_ALIASES = {
    "photo": "image",
    "image": "image",
    "video": "video",
}

# Kinds whose renditions are delivered as encoded variants.
_VARIANT_KINDS = frozenset({"video", "animated_gif"})


def _coerce_bitrate(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return 0


def media_kind(declared: Any) -> str:
    kind = (declared if isinstance(declared, str) else "").strip().lower()
    return _KIND_ALIASES.get(kind, kind)


def select_rendition(item: Mapping[str, Any]) -> MediaItem:
    """
    Resolve one media entity to a single URL.

    Video-like items keep the highest-bitrate mp4 variant (first one wins on a
    tie); everything else, and videos without an mp4 variant, keep the
    declared URL.
    """
    kind = media_kind(item.get("type"))
    declared = item.get("media_url_https") or item.get("media_url") or item.get("url") or ""
    url = declared if isinstance(declared, str) else ""

    if kind not in _VARIANT_KINDS:
        return MediaItem(kind=kind, url=url)

    video_info = item.get("video_info")
    variants = video_info.get("variants") if isinstance(video_info, Mapping) else None
    if not isinstance(variants, list):
        return MediaItem(kind=kind, url=url)

    best_url: str | None = None
    best_bitrate = -1
    for variant in variants:
        if not isinstance(variant, Mapping):
            continue
        if variant.get("content_type") != MP4_CONTENT_TYPE:
            continue
        variant_url = variant.get("url")
        if not isinstance(variant_url, str) or not variant_url:
            continue
        bitrate = _coerce_bitrate(variant.get("bitrate"))
        if bitrate > best_bitrate:
            best_bitrate = bitrate
            best_url = variant_url

    return MediaItem(kind=kind, url=best_url if best_url is not None else url)
