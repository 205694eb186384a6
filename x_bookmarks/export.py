from __future__ import annotations

import csv
import io
import json
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

from .analysis import Analysis
from .dates import parse_created_at
from .errors import ExportError
from .record import CanonicalRecord

TagLookup = Callable[[str], Sequence[str]]

_CSV_HEADER = [
    "Author",
    "Username",
    "Date",
    "Text",
    "Likes",
    "Reposts",
    "Replies",
    "Views",
    "Link",
    "Media URLs",
]

_MARKDOWN_TAG_LIMIT = 5

EXPORT_VERSION = "1.0"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _count(value: str) -> int:
    return int(value) if (value or "").isdigit() else 0


def _no_tags(identity: str) -> Sequence[str]:
    return ()


def basic_stats(records: Sequence[CanonicalRecord]) -> dict[str, Any]:
    total_likes = 0
    total_reposts = 0
    authors: Counter[str] = Counter()
    dates: list[datetime] = []

    for r in records:
        total_likes += _count(r.counters.likes)
        total_reposts += _count(r.counters.reposts)
        if r.author_handle:
            authors[r.author_handle] += 1
        parsed = parse_created_at(r.created_at)
        if parsed is not None:
            dates.append(parsed)

    top_handle, top_count = authors.most_common(1)[0] if authors else (None, 0)

    date_range = "N/A"
    if dates:
        lo = min(dates).date().isoformat()
        hi = max(dates).date().isoformat()
        date_range = lo if lo == hi else f"{lo} - {hi}"

    return {
        "total_likes": total_likes,
        "total_reposts": total_reposts,
        "avg_likes": total_likes / len(records) if records else 0,
        "top_author": {"handle": top_handle, "count": top_count},
        "date_range": date_range,
    }


def format_media(record: CanonicalRecord) -> str:
    return "; ".join(m.url for m in record.media)


def generate_json(
    records: Sequence[CanonicalRecord],
    *,
    analysis: Analysis | None = None,
    provider: str = "none",
) -> dict[str, Any] | None:
    if not records:
        return None

    return {
        "metadata": {
            "export_date": _utc_now_iso(),
            "total_bookmarks": len(records),
            "version": EXPORT_VERSION,
            "llm_provider": provider,
        },
        "analysis": analysis.model_dump(mode="json") if analysis is not None else None,
        "statistics": basic_stats(records),
        "bookmarks": [r.to_dict() for r in records],
    }


def generate_csv(records: Sequence[CanonicalRecord], *, analysis: Analysis | None = None) -> str:
    if not records:
        return ""

    header = list(_CSV_HEADER)
    extra: list[str] = []
    if analysis is not None:
        header += ["Tags", "Categories"]
        extra = ["; ".join(analysis.tags), "; ".join(analysis.categories)]

    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(header)
    for r in records:
        row = [
            r.author_display_name,
            f"@{r.author_handle}",
            r.created_at,
            r.text,
            r.counters.likes,
            r.counters.reposts,
            r.counters.replies,
            r.counters.views,
            r.identity,
            format_media(r),
        ] + extra
        writer.writerow([str(v).replace("\n", " ") for v in row])
    return buf.getvalue()


def generate_markdown(
    records: Sequence[CanonicalRecord],
    *,
    analysis: Analysis | None = None,
    custom_tags: TagLookup = _no_tags,
) -> str:
    if not records:
        return ""

    parts: list[str] = [
        "# X Bookmarks Export\n\n",
        f"**Exported:** {_utc_now_iso()}\n",
        f"**Total Bookmarks:** {len(records)}\n\n",
        "---\n\n",
    ]

    for index, r in enumerate(records, start=1):
        parts.append(f"## Bookmark {index}\n\n")
        if r.text:
            parts.append(f"**Text:** {r.text}\n\n")

        owner = r.author_display_name or "Unknown"
        handle = f"@{r.author_handle}" if r.author_handle else "@unknown"
        parts.append(f"**Owner:** {owner} ({handle})\n\n")

        tags = list(custom_tags(r.identity))[:_MARKDOWN_TAG_LIMIT]
        if len(tags) < _MARKDOWN_TAG_LIMIT and analysis is not None:
            tags += analysis.tags[: _MARKDOWN_TAG_LIMIT - len(tags)]
        if tags:
            parts.append(f"**Tags:** {', '.join(tags)}\n\n")

        parts.append(f"**Link:** {r.identity}\n\n")

        if r.media:
            parts.append("**Media:**\n")
            for m in r.media:
                label = "Video (MP4)" if m.kind == "video" else "Image (Original)"
                parts.append(f"- [{label}]({m.url})\n")
            parts.append("\n")

        parts.append("---\n\n")

    return "".join(parts)


def write_exports(
    records: Sequence[CanonicalRecord],
    out_dir: str | Path,
    *,
    formats: Sequence[str],
    analysis: Analysis | None = None,
    provider: str = "none",
    custom_tags: Mapping[str, Sequence[str]] | None = None,
) -> dict[str, Path]:
    """Write each requested format into out_dir; returns format -> path."""
    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    tags = dict(custom_tags or {})

    written: dict[str, Path] = {}
    for fmt in formats:
        try:
            if fmt == "json":
                path = out / "bookmarks.json"
                doc = generate_json(records, analysis=analysis, provider=provider)
                path.write_text(json.dumps(doc, ensure_ascii=False, indent=2), encoding="utf-8")
            elif fmt == "csv":
                path = out / "bookmarks.csv"
                path.write_text(generate_csv(records, analysis=analysis), encoding="utf-8")
            elif fmt == "markdown":
                path = out / "bookmarks.md"
                path.write_text(
                    generate_markdown(records, analysis=analysis, custom_tags=lambda i: tags.get(i, ())),
                    encoding="utf-8",
                )
            elif fmt == "xlsx":
                from .export_excel import export_workbook

                path = export_workbook(records, out / "bookmarks.xlsx", analysis=analysis)
            elif fmt == "html":
                from .export_html import generate_html

                path = out / "bookmarks.html"
                path.write_text(generate_html(records, analysis=analysis), encoding="utf-8")
            else:
                raise ExportError(f"Unknown export format: {fmt}")
        except OSError as e:
            raise ExportError(f"Failed to write {fmt} export: {e}") from e
        written[fmt] = path
    return written
