from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from x_bookmarks.analysis import Analysis
from x_bookmarks.record import INTERCEPTED, CanonicalRecord, Counters, MediaItem
from x_bookmarks.storage import SQLiteStateStore


def _record(handle: str, status_id: str, created_at: str = "", text: str = "") -> CanonicalRecord:
    return CanonicalRecord(
        identity=f"https://x.com/{handle}/status/{status_id}",
        text=text,
        author_handle=handle,
        created_at=created_at,
    )


class TestSQLiteStateStore(unittest.TestCase):
    def test_round_trips_latest_extraction(self) -> None:
        record = CanonicalRecord(
            identity="https://x.com/alice/status/1",
            text="hello",
            author_display_name="Alice",
            author_handle="alice",
            created_at="2024-01-01T00:00:00Z",
            counters=Counters(likes="10", reposts="2", replies="0", views="99"),
            media=(MediaItem(kind="video", url="https://v.example/a.mp4"),),
            source_quality=INTERCEPTED,
        )

        with tempfile.TemporaryDirectory() as td:
            db_path = Path(td) / "state.sqlite"
            with SQLiteStateStore.open(db_path) as store:
                store.save_extraction([_record("old", "9")], performance={"duration": 1})
                extraction_id = store.save_extraction(
                    [record, _record("bob", "2")],
                    performance={"duration": 5, "articlesProcessed": 2, "tweetsExtracted": 2},
                    page_url="page.html",
                )

            with SQLiteStateStore.open(db_path) as store:
                latest = store.latest_extraction()

        assert latest is not None
        self.assertEqual(latest.extraction_id, extraction_id)
        self.assertEqual(latest.page_url, "page.html")
        self.assertEqual(latest.performance["tweetsExtracted"], 2)
        self.assertEqual(latest.records[0], record)
        self.assertEqual([r.identity for r in latest.records][1], "https://x.com/bob/status/2")

    def test_empty_store(self) -> None:
        with SQLiteStateStore.open(":memory:") as store:
            self.assertIsNone(store.latest_extraction())
            self.assertIsNone(store.latest_analysis())
            self.assertEqual(store.load_bookmarks(), [])

    def test_manual_bookmark_upserts(self) -> None:
        with SQLiteStateStore.open(":memory:") as store:
            store.save_manual_bookmark(_record("alice", "1"), tags=["ai", " ai ", ""], notes="first")
            store.save_manual_bookmark(
                _record("alice", "1", text="updated"),
                tags=["python"],
                saved_at="2030-01-01T00:00:00+00:00",
            )

            saved = store.manual_bookmarks()

        self.assertEqual(len(saved), 1)
        self.assertEqual(saved[0].record.text, "updated")
        self.assertEqual(saved[0].custom_tags, ("python",))
        self.assertEqual(saved[0].notes, "")

    def test_manual_bookmark_requires_identity(self) -> None:
        with SQLiteStateStore.open(":memory:") as store:
            with self.assertRaises(ValueError):
                store.save_manual_bookmark(CanonicalRecord.empty())

    def test_load_bookmarks_merges_newest_first(self) -> None:
        with SQLiteStateStore.open(":memory:") as store:
            store.save_extraction(
                [
                    _record("alice", "1", created_at="2024-01-01T00:00:00Z"),
                    _record("bob", "2", created_at="2024-03-01T00:00:00Z"),
                ]
            )
            store.save_manual_bookmark(
                _record("alice", "1", text="manual copy"),
                saved_at="2024-06-01T00:00:00+00:00",
            )
            store.save_manual_bookmark(
                _record("carol", "3"),
                saved_at="2024-02-01T00:00:00+00:00",
            )

            merged = store.load_bookmarks()

        self.assertEqual(
            [b.record.identity for b in merged],
            [
                "https://x.com/alice/status/1",
                "https://x.com/bob/status/2",
                "https://x.com/carol/status/3",
            ],
        )
        self.assertEqual(merged[0].source, "manual")
        self.assertEqual(merged[0].record.text, "manual copy")
        self.assertEqual(merged[1].source, "extraction")

    def test_latest_analysis(self) -> None:
        with SQLiteStateStore.open(":memory:") as store:
            store.save_analysis(Analysis(overall_summary="one", tags=["a"]), provider="none")
            store.save_analysis(Analysis(overall_summary="two", tags=["b"]), provider="openai")

            latest = store.latest_analysis()

        assert latest is not None
        self.assertEqual(latest.overall_summary, "two")
        self.assertEqual(latest.tags, ["b"])


if __name__ == "__main__":
    unittest.main()
