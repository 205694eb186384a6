from __future__ import annotations

from datetime import datetime, timezone
from html import escape
from typing import Sequence

from .analysis import Analysis
from .export import basic_stats
from .record import CanonicalRecord

_STYLE = """\
    :root {
      --primary: #1DA1F2;
      --bg: #15202B;
      --card-bg: #192734;
      --text: #FFFFFF;
      --text-secondary: #8899A6;
      --border: #38444D;
    }
    * { box-sizing: border-box; margin: 0; padding: 0; }
    body {
      font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif;
      background: var(--bg);
      color: var(--text);
      line-height: 1.5;
      padding: 20px;
    }
    .container { max-width: 800px; margin: 0 auto; }
    header { text-align: center; padding: 40px 20px; border-bottom: 1px solid var(--border); margin-bottom: 30px; }
    header h1 { font-size: 28px; margin-bottom: 10px; }
    header p, footer { color: var(--text-secondary); }
    .stats { display: grid; grid-template-columns: repeat(auto-fit, minmax(150px, 1fr)); gap: 15px; margin-bottom: 30px; }
    .stat-card, .analysis { background: var(--card-bg); padding: 20px; border-radius: 12px; text-align: center; }
    .analysis { text-align: left; margin-bottom: 30px; }
    .stat-value { font-size: 24px; font-weight: bold; color: var(--primary); }
    .stat-label { font-size: 12px; color: var(--text-secondary); text-transform: uppercase; }
    .bookmark { background: var(--card-bg); border-radius: 12px; padding: 20px; margin-bottom: 15px; border: 1px solid var(--border); }
    .bookmark-header { display: flex; align-items: center; margin-bottom: 12px; }
    .avatar {
      width: 48px; height: 48px; border-radius: 50%; background: var(--primary);
      display: flex; align-items: center; justify-content: center; font-weight: bold; margin-right: 12px;
    }
    .author-info strong { display: block; }
    .author-info span { color: var(--text-secondary); font-size: 14px; }
    .bookmark-text { margin-bottom: 12px; white-space: pre-wrap; }
    .bookmark-meta { display: flex; gap: 20px; color: var(--text-secondary); font-size: 14px; }
    .bookmark-link { display: inline-block; margin-top: 12px; color: var(--primary); text-decoration: none; }
    .media-grid { display: grid; grid-template-columns: repeat(auto-fill, minmax(150px, 1fr)); gap: 10px; margin-top: 12px; }
    .media-item { border-radius: 8px; background: var(--border); padding: 12px; text-align: center; }
    .media-item a { color: var(--primary); }
    footer { text-align: center; padding: 30px; font-size: 14px; }
    @media print {
      body { background: white; color: black; }
      .bookmark { border: 1px solid #ddd; }
    }
"""


def _safe_href(url: str) -> str:
    u = (url or "").strip()
    if not u.lower().startswith(("http://", "https://")):
        return "#"
    return escape(u, quote=True)


def _stat_card(value: str, label: str) -> str:
    return (
        '      <div class="stat-card">'
        f'<div class="stat-value">{escape(value)}</div>'
        f'<div class="stat-label">{escape(label)}</div>'
        "</div>\n"
    )


def _analysis_section(analysis: Analysis) -> str:
    parts = ['    <section class="analysis">\n', "      <h2>Analysis</h2>\n"]
    if analysis.overall_summary:
        parts.append(f"      <p>{escape(analysis.overall_summary)}</p>\n")
    if analysis.tags:
        parts.append(f"      <p><strong>Tags:</strong> {escape(', '.join(analysis.tags))}</p>\n")
    if analysis.categories:
        parts.append(f"      <p><strong>Categories:</strong> {escape(', '.join(analysis.categories))}</p>\n")
    parts.append("    </section>\n")
    return "".join(parts)


def _bookmark_card(r: CanonicalRecord) -> str:
    initial = (r.author_display_name or r.author_handle or "U")[0].upper()
    parts = [
        '      <article class="bookmark">\n',
        '        <div class="bookmark-header">\n',
        f'          <div class="avatar">{escape(initial)}</div>\n',
        '          <div class="author-info">\n',
        f"            <strong>{escape(r.author_display_name or 'Unknown')}</strong>\n",
        f"            <span>@{escape(r.author_handle or 'unknown')}</span>\n",
        "          </div>\n",
        "        </div>\n",
        f'        <div class="bookmark-text">{escape(r.text)}</div>\n',
        '        <div class="bookmark-meta">'
        f"<span>Likes {escape(r.counters.likes or '0')}</span>"
        f"<span>Reposts {escape(r.counters.reposts or '0')}</span>"
        f"<span>Replies {escape(r.counters.replies or '0')}</span>"
        f"<span>Views {escape(r.counters.views or '0')}</span>"
        "</div>\n",
    ]

    if r.media:
        parts.append('        <div class="media-grid">\n')
        for m in r.media:
            label = "Video" if m.kind == "video" else "Image"
            parts.append(
                f'          <div class="media-item"><a href="{_safe_href(m.url)}" target="_blank">{label}</a></div>\n'
            )
        parts.append("        </div>\n")

    parts.append(f'        <a class="bookmark-link" href="{_safe_href(r.identity)}" target="_blank">View on X</a>\n')
    parts.append("      </article>\n")
    return "".join(parts)


def generate_html(records: Sequence[CanonicalRecord], *, analysis: Analysis | None = None) -> str:
    """
    Standalone, styled HTML page for a bookmark collection.

    Every record field is escaped; links that are not http(s) become "#".
    """
    if not records:
        return ""

    stats = basic_stats(records)
    top = stats["top_author"]["handle"]
    exported = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")

    parts = [
        "<!DOCTYPE html>\n",
        '<html lang="en">\n',
        "<head>\n",
        '  <meta charset="UTF-8">\n',
        '  <meta name="viewport" content="width=device-width, initial-scale=1.0">\n',
        "  <title>X Bookmarks Export</title>\n",
        f"  <style>\n{_STYLE}  </style>\n",
        "</head>\n",
        "<body>\n",
        '  <div class="container">\n',
        "    <header>\n",
        "      <h1>X Bookmarks Export</h1>\n",
        f"      <p>Exported on {exported}</p>\n",
        "    </header>\n",
        '    <section class="stats">\n',
        _stat_card(str(len(records)), "Bookmarks"),
        _stat_card(f"{stats['total_likes']:,}", "Total Likes"),
        _stat_card(f"{stats['total_reposts']:,}", "Total Reposts"),
        _stat_card(f"@{top}" if top else "N/A", "Top Author"),
        "    </section>\n",
    ]

    if analysis is not None:
        parts.append(_analysis_section(analysis))

    parts.append('    <section class="bookmarks">\n')
    parts.extend(_bookmark_card(r) for r in records)
    parts.append("    </section>\n")
    parts += [
        "    <footer><p>Generated by x-bookmarks</p></footer>\n",
        "  </div>\n",
        "</body>\n",
        "</html>\n",
    ]
    return "".join(parts)
