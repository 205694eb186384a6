from __future__ import annotations

import csv
import io
import json
import tempfile
import unittest
from pathlib import Path

from bs4 import BeautifulSoup

from x_bookmarks.analysis import Analysis
from x_bookmarks.errors import ExportError
from x_bookmarks.export import basic_stats, generate_csv, generate_json, generate_markdown, write_exports
from x_bookmarks.export_html import generate_html
from x_bookmarks.record import CanonicalRecord, Counters, MediaItem

_RECORDS = [
    CanonicalRecord(
        identity="https://x.com/alice/status/1",
        text="line one\nline two",
        author_display_name="Alice",
        author_handle="alice",
        created_at="2024-01-05T10:00:00Z",
        counters=Counters(likes="10", reposts="4", replies="1", views="100"),
        media=(
            MediaItem(kind="image", url="https://pbs.example/a.jpg"),
            MediaItem(kind="video", url="https://v.example/b.mp4"),
        ),
    ),
    CanonicalRecord(
        identity="https://x.com/alice/status/2",
        text="second",
        author_handle="alice",
        created_at="Wed Mar 06 12:00:00 +0000 2024",
        counters=Counters(likes="1.5K"),
    ),
    CanonicalRecord.link_only("https://x.com/bob/status/3", "bob"),
]

_ANALYSIS = Analysis(
    overall_summary="summary",
    tags=["t1", "t2", "t3", "t4", "t5", "t6"],
    categories=["Technology"],
)


class TestBasicStats(unittest.TestCase):
    def test_totals_and_range(self) -> None:
        stats = basic_stats(_RECORDS)

        self.assertEqual(stats["total_likes"], 10)
        self.assertEqual(stats["total_reposts"], 4)
        self.assertAlmostEqual(stats["avg_likes"], 10 / 3)
        self.assertEqual(stats["top_author"], {"handle": "alice", "count": 2})
        self.assertEqual(stats["date_range"], "2024-01-05 - 2024-03-06")

    def test_empty(self) -> None:
        stats = basic_stats([])

        self.assertEqual(stats["avg_likes"], 0)
        self.assertEqual(stats["date_range"], "N/A")
        self.assertEqual(stats["top_author"], {"handle": None, "count": 0})


class TestGenerators(unittest.TestCase):
    def test_json_document(self) -> None:
        doc = generate_json(_RECORDS, analysis=_ANALYSIS, provider="openai")

        assert doc is not None
        self.assertEqual(doc["metadata"]["total_bookmarks"], 3)
        self.assertEqual(doc["metadata"]["llm_provider"], "openai")
        self.assertEqual(doc["analysis"]["overall_summary"], "summary")
        self.assertEqual(doc["bookmarks"][2]["source_quality"], "link_only")
        self.assertIsNone(generate_json([]))

    def test_csv_rows(self) -> None:
        text = generate_csv(_RECORDS, analysis=_ANALYSIS)
        rows = list(csv.reader(io.StringIO(text)))

        self.assertEqual(rows[0][:3], ["Author", "Username", "Date"])
        self.assertEqual(rows[0][-2:], ["Tags", "Categories"])
        self.assertEqual(len(rows), 4)
        self.assertEqual(rows[1][3], "line one line two")
        self.assertEqual(rows[1][9], "https://pbs.example/a.jpg; https://v.example/b.mp4")
        self.assertEqual(rows[1][1], "@alice")
        self.assertEqual(generate_csv([]), "")

    def test_csv_without_analysis(self) -> None:
        header = generate_csv(_RECORDS).splitlines()[0]
        self.assertTrue(header.endswith("Media URLs"))

    def test_markdown_layout(self) -> None:
        md = generate_markdown(
            _RECORDS,
            analysis=_ANALYSIS,
            custom_tags=lambda identity: ["mine"] if identity.endswith("/1") else [],
        )

        self.assertTrue(md.startswith("# X Bookmarks Export\n\n"))
        self.assertIn("**Total Bookmarks:** 3\n", md)
        self.assertIn("## Bookmark 1\n\n**Text:** line one\nline two\n\n", md)
        self.assertIn("**Owner:** Alice (@alice)\n\n", md)
        self.assertIn("**Tags:** mine, t1, t2, t3, t4\n\n", md)
        self.assertIn("**Tags:** t1, t2, t3, t4, t5\n\n", md)
        self.assertIn("- [Image (Original)](https://pbs.example/a.jpg)\n", md)
        self.assertIn("- [Video (MP4)](https://v.example/b.mp4)\n", md)
        self.assertIn("**Owner:** Unknown (@alice)", md)
        self.assertIn("**Link:** https://x.com/bob/status/3\n\n", md)
        self.assertEqual(md.count("## Bookmark "), 3)
        self.assertEqual(generate_markdown([]), "")


class TestHtmlExport(unittest.TestCase):
    def test_page_escapes_content(self) -> None:
        hostile = CanonicalRecord(
            identity="https://x.com/mallory/status/4",
            text='<script>alert("x")</script> & more',
            author_display_name="<b>Mallory</b>",
            author_handle="mallory",
            media=(MediaItem(kind="image", url="javascript:alert(1)"),),
        )
        analysis = Analysis(overall_summary="Summary <here>", tags=["t1"], categories=["Tech"])

        page = generate_html(_RECORDS + [hostile], analysis=analysis)

        self.assertTrue(page.startswith("<!DOCTYPE html>"))
        self.assertNotIn("<script>", page)
        self.assertIn("&lt;script&gt;", page)

        soup = BeautifulSoup(page, "html.parser")
        cards = soup.select("article.bookmark")
        self.assertEqual(len(cards), 4)
        self.assertEqual(cards[0].select_one(".bookmark-link")["href"], "https://x.com/alice/status/1")
        self.assertEqual([a["href"] for a in cards[0].select(".media-item a")], [
            "https://pbs.example/a.jpg",
            "https://v.example/b.mp4",
        ])
        self.assertEqual(cards[3].select_one(".author-info strong").get_text(), "<b>Mallory</b>")
        self.assertEqual(cards[3].select_one(".media-item a")["href"], "#")
        self.assertEqual(soup.select_one(".analysis p").get_text(), "Summary <here>")
        values = [v.get_text() for v in soup.select(".stat-value")]
        self.assertEqual(values, ["4", "10", "4", "@alice"])

    def test_empty_collection(self) -> None:
        self.assertEqual(generate_html([]), "")


class TestWriteExports(unittest.TestCase):
    def test_writes_requested_formats(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            written = write_exports(
                _RECORDS,
                td,
                formats=["json", "csv", "markdown", "html"],
                custom_tags={"https://x.com/bob/status/3": ["later"]},
            )

            self.assertEqual(set(written), {"json", "csv", "markdown", "html"})
            self.assertEqual(written["html"].name, "bookmarks.html")
            self.assertIn("View on X", written["html"].read_text(encoding="utf-8"))
            doc = json.loads(written["json"].read_text(encoding="utf-8"))
            self.assertEqual(len(doc["bookmarks"]), 3)
            self.assertIn("**Tags:** later", written["markdown"].read_text(encoding="utf-8"))
            self.assertTrue(Path(written["csv"]).exists())

    def test_unknown_format(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(ExportError):
                write_exports(_RECORDS, td, formats=["pdf"])


if __name__ == "__main__":
    unittest.main()
