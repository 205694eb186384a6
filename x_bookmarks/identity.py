from __future__ import annotations

import re
from typing import NamedTuple

DEFAULT_PLATFORM_URL = "https://x.com"

_STATUS_PATH_RE = re.compile(r"/(?P<handle>[^/?#\s]+)/status/(?P<status_id>\d+)(?![\d])")

_IDENTITY_RE = re.compile(
    r"(?P<platform>(?:[A-Za-z][A-Za-z0-9+.-]*://)?[^/\s]+)"
    r"/(?P<handle>[^/\s]+)/status/(?P<status_id>\d+)"
)


class StatusLink(NamedTuple):
    handle: str
    status_id: str


def parse_status_url(href: str | None) -> StatusLink | None:
    """Pull the handle and numeric post id out of a status hyperlink."""
    value = (href or "").strip()
    if not value:
        return None
    if not value.startswith(("/", "http://", "https://")) and "://" not in value:
        value = "/" + value

    match = _STATUS_PATH_RE.search(value)
    if match is None:
        return None
    return StatusLink(handle=match.group("handle"), status_id=match.group("status_id"))


def handle_from_url(href: str | None) -> str:
    link = parse_status_url(href)
    return link.handle if link is not None else ""


def build_identity(platform_url: str, handle: str, status_id: str) -> str:
    base = (platform_url or DEFAULT_PLATFORM_URL).strip().rstrip("/")
    return f"{base}/{(handle or '').strip()}/status/{(status_id or '').strip()}"


def identity_from_href(href: str | None, platform_url: str = DEFAULT_PLATFORM_URL) -> str:
    link = parse_status_url(href)
    if link is None:
        return ""
    return build_identity(platform_url, link.handle, link.status_id)


def is_identity(value: str) -> bool:
    return _IDENTITY_RE.fullmatch(value or "") is not None
