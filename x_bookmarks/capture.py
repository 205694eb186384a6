from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterator, Mapping

if TYPE_CHECKING:
    from .run_log import RunLogger

_BOOKMARK_URL_MARKERS = ("Bookmarks", "bookmarks")


@dataclass(frozen=True)
class CapturedPayload:
    url: str
    data: Any
    captured_at: float | None = None


def is_bookmark_url(url: str | None) -> bool:
    u = url or ""
    return any(marker in u for marker in _BOOKMARK_URL_MARKERS)


def _har_timestamp(value: Any) -> float | None:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00")).timestamp()
    except ValueError:
        return None


def _har_body(content: Mapping[str, Any]) -> str | None:
    text = content.get("text")
    if not isinstance(text, str):
        return None
    if content.get("encoding") == "base64":
        try:
            return base64.b64decode(text).decode("utf-8")
        except (ValueError, UnicodeDecodeError):
            return None
    return text


def _iter_har(doc: Mapping[str, Any], *, logger: RunLogger | None) -> Iterator[CapturedPayload]:
    log = doc.get("log")
    entries = log.get("entries") if isinstance(log, Mapping) else None
    if not isinstance(entries, list):
        return

    for entry in entries:
        if not isinstance(entry, Mapping):
            continue
        request = entry.get("request")
        response = entry.get("response")
        if not isinstance(request, Mapping) or not isinstance(response, Mapping):
            continue

        url = request.get("url")
        if not isinstance(url, str) or not is_bookmark_url(url):
            continue

        content = response.get("content")
        body = _har_body(content) if isinstance(content, Mapping) else None
        if body is None:
            continue

        try:
            data = json.loads(body)
        except ValueError:
            if logger is not None:
                logger.debug("capture_body_not_json", url=url)
            continue

        yield CapturedPayload(url=url, data=data, captured_at=_har_timestamp(entry.get("startedDateTime")))


def _iter_jsonl(text: str, *, logger: RunLogger | None) -> Iterator[CapturedPayload]:
    for lineno, line in enumerate(text.splitlines(), start=1):
        s = line.strip()
        if not s:
            continue
        try:
            obj = json.loads(s)
        except ValueError:
            if logger is not None:
                logger.debug("capture_line_not_json", line=lineno)
            continue

        if isinstance(obj, Mapping) and "data" in obj:
            ts = obj.get("timestamp")
            yield CapturedPayload(
                url=str(obj.get("url") or ""),
                data=obj.get("data"),
                captured_at=float(ts) / 1000.0 if isinstance(ts, (int, float)) else None,
            )
        else:
            yield CapturedPayload(url="", data=obj)


def iter_captured_payloads(path: str | Path, *, logger: RunLogger | None = None) -> Iterator[CapturedPayload]:
    """
    Yield the captured API responses stored in a capture file.

    HAR exports are filtered to bookmark requests; .jsonl files carry one
    {"url", "data", "timestamp"} event per line; anything else is read as a
    single JSON payload.
    """
    p = Path(path)
    text = p.read_text(encoding="utf-8")

    if p.suffix.lower() == ".jsonl":
        yield from _iter_jsonl(text, logger=logger)
        return

    try:
        doc = json.loads(text)
    except ValueError:
        if logger is not None:
            logger.warning("capture_file_not_json", path=str(p))
        return

    if isinstance(doc, Mapping) and (p.suffix.lower() == ".har" or isinstance(doc.get("log"), Mapping)):
        yield from _iter_har(doc, logger=logger)
        return

    yield CapturedPayload(url=str(p), data=doc)
