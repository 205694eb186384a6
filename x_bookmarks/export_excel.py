from __future__ import annotations

from pathlib import Path
from typing import Any, Sequence

from .analysis import Analysis
from .errors import ExportError
from .export import basic_stats, format_media
from .record import CanonicalRecord

_EXCEL_FORMULA_PREFIXES = ("=", "+", "-", "@")

_BOOKMARK_COLUMNS = [
    "identity",
    "author_display_name",
    "author_handle",
    "created_at",
    "text",
    "likes",
    "reposts",
    "replies",
    "views",
    "media",
    "source_quality",
]


def _safe_excel_text(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        return str(value)
    s = value
    if s.startswith(_EXCEL_FORMULA_PREFIXES):
        return "'" + s
    return s


def _record_row(r: CanonicalRecord) -> dict[str, Any]:
    return {
        "identity": _safe_excel_text(r.identity),
        "author_display_name": _safe_excel_text(r.author_display_name),
        "author_handle": _safe_excel_text(r.author_handle),
        "created_at": _safe_excel_text(r.created_at),
        "text": _safe_excel_text(r.text),
        "likes": _safe_excel_text(r.counters.likes),
        "reposts": _safe_excel_text(r.counters.reposts),
        "replies": _safe_excel_text(r.counters.replies),
        "views": _safe_excel_text(r.counters.views),
        "media": _safe_excel_text(format_media(r)),
        "source_quality": r.source_quality,
    }


def export_workbook(
    records: Sequence[CanonicalRecord],
    out_path: str | Path,
    *,
    analysis: Analysis | None = None,
) -> Path:
    """Write bookmarks, statistics and (when present) the analysis to an .xlsx file."""
    import pandas as pd

    out = Path(out_path)
    out.parent.mkdir(parents=True, exist_ok=True)

    stats = basic_stats(records)
    stat_rows = [
        {"key": "total_bookmarks", "value": len(records)},
        {"key": "total_likes", "value": stats["total_likes"]},
        {"key": "total_reposts", "value": stats["total_reposts"]},
        {"key": "avg_likes", "value": round(float(stats["avg_likes"]), 2)},
        {"key": "top_author", "value": _safe_excel_text(stats["top_author"]["handle"])},
        {"key": "date_range", "value": stats["date_range"]},
    ]

    analysis_rows: list[dict[str, Any]] = []
    if analysis is not None:
        analysis_rows.append({"kind": "summary", "label": _safe_excel_text(analysis.overall_summary)})
        analysis_rows.extend({"kind": "tag", "label": _safe_excel_text(t)} for t in analysis.tags)
        analysis_rows.extend({"kind": "category", "label": _safe_excel_text(c)} for c in analysis.categories)

    try:
        with pd.ExcelWriter(out, engine="openpyxl") as writer:
            bookmarks_df = pd.DataFrame([_record_row(r) for r in records], columns=_BOOKMARK_COLUMNS)
            bookmarks_df.to_excel(writer, sheet_name="bookmarks", index=False)
            pd.DataFrame(stat_rows).to_excel(writer, sheet_name="statistics", index=False)
            if analysis_rows:
                pd.DataFrame(analysis_rows).to_excel(writer, sheet_name="analysis", index=False)

            wb = writer.book
            for name in ("bookmarks", "statistics", "analysis"):
                if name in wb.sheetnames:
                    wb[name].freeze_panes = "A2"
    except Exception as e:
        raise ExportError(f"Failed to write workbook: {out}: {e}") from e

    return out
