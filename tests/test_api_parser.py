from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path
from typing import Any

from x_bookmarks.api_parser import find_entries, parse_payload, record_from_tweet_result
from x_bookmarks.record import INTERCEPTED
from x_bookmarks.run_log import RunLogger


def _tweet_result(
    status_id: str,
    handle: str,
    *,
    text: str = "hello",
    name: str = "Some Name",
    with_author: bool = True,
    **legacy_extra: Any,
) -> dict[str, Any]:
    legacy: dict[str, Any] = {
        "id_str": status_id,
        "full_text": text,
        "created_at": "Wed Oct 10 20:19:24 +0000 2018",
        "favorite_count": 3,
        "retweet_count": 1,
        "reply_count": 0,
    }
    legacy.update(legacy_extra)
    result: dict[str, Any] = {
        "__typename": "Tweet",
        "rest_id": status_id,
        "legacy": legacy,
        "views": {"count": "120", "state": "EnabledWithCount"},
    }
    if with_author:
        result["core"] = {
            "user_results": {"result": {"legacy": {"screen_name": handle, "name": name}}}
        }
    return result


def _entry(result: dict[str, Any]) -> dict[str, Any]:
    return {
        "entryId": f"tweet-{result.get('rest_id', 'x')}",
        "content": {"itemContent": {"tweet_results": {"result": result}}},
    }


def _payload(*entries: dict[str, Any]) -> dict[str, Any]:
    return {
        "data": {
            "bookmark_timeline_v2": {
                "timeline": {
                    "instructions": [
                        {"type": "TimelineAddEntries", "entries": list(entries)},
                    ]
                }
            }
        }
    }


class _UnreadableDict(dict):
    def get(self, key: Any, default: Any = None) -> Any:
        raise RuntimeError("unreadable node")


class TestFindEntries(unittest.TestCase):
    def test_collects_entries_in_document_order(self) -> None:
        payload = {
            "a": {"entries": [1, 2]},
            "b": [{"nested": {"entries": [3]}}],
            "entries": [0],
        }

        self.assertEqual(find_entries(payload), [0, 1, 2, 3])

    def test_ignores_non_list_entries(self) -> None:
        self.assertEqual(find_entries({"entries": "nope"}), [])
        self.assertEqual(find_entries("scalar"), [])

    def test_unreadable_node_is_skipped(self) -> None:
        payload = {
            "a": {"entries": [1]},
            "bad": _UnreadableDict({"entries": [99]}),
            "b": {"entries": [2]},
        }

        with tempfile.TemporaryDirectory() as td:
            log_path = Path(td) / "run.log"
            with RunLogger.open(log_path) as log:
                found = find_entries(payload, logger=log)

            events = [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines()]

        self.assertEqual(found, [1, 2])
        failed = [e for e in events if e["event"] == "api_node_failed"]
        self.assertEqual(len(failed), 1)
        self.assertEqual(failed[0]["level"], "WARN")

    def test_unreadable_node_does_not_abort_batch(self) -> None:
        payload = _payload(_entry(_tweet_result("1", "alice")), _entry(_tweet_result("2", "bob")))
        payload["data"]["extra"] = _UnreadableDict({"entries": []})

        records = parse_payload(payload)

        self.assertEqual([r.identity for r in records], [
            "https://x.com/alice/status/1",
            "https://x.com/bob/status/2",
        ])


class TestParsePayload(unittest.TestCase):
    def test_skips_entries_without_author(self) -> None:
        payload = _payload(
            _entry(_tweet_result("1", "alice")),
            _entry(_tweet_result("2", "ghost", with_author=False)),
            _entry(_tweet_result("3", "carol")),
        )

        records = parse_payload(payload)

        self.assertEqual(
            [r.identity for r in records],
            ["https://x.com/alice/status/1", "https://x.com/carol/status/3"],
        )

    def test_maps_fields_and_counters(self) -> None:
        records = parse_payload(_payload(_entry(_tweet_result("1", "alice", text="hi there"))))

        self.assertEqual(len(records), 1)
        r = records[0]
        self.assertEqual(r.text, "hi there")
        self.assertEqual(r.author_handle, "alice")
        self.assertEqual(r.author_display_name, "Some Name")
        self.assertEqual(r.created_at, "Wed Oct 10 20:19:24 +0000 2018")
        self.assertEqual(r.counters.likes, "3")
        self.assertEqual(r.counters.reposts, "1")
        self.assertEqual(r.counters.replies, "0")
        self.assertEqual(r.counters.views, "120")
        self.assertEqual(r.source_quality, INTERCEPTED)

    def test_long_form_text_wins(self) -> None:
        result = _tweet_result("1", "alice", text="truncated…")
        result["note_tweet"] = {"note_tweet_results": {"result": {"text": "the whole long post"}}}

        record = record_from_tweet_result(result)

        assert record is not None
        self.assertEqual(record.text, "the whole long post")

    def test_media_falls_back_to_entities(self) -> None:
        result = _tweet_result(
            "1",
            "alice",
            entities={"media": [{"type": "photo", "media_url_https": "https://pbs.example/a.jpg"}]},
        )

        record = record_from_tweet_result(result)

        assert record is not None
        self.assertEqual([m.url for m in record.media], ["https://pbs.example/a.jpg"])
        self.assertEqual(record.media[0].kind, "image")

    def test_extended_entities_preferred(self) -> None:
        result = _tweet_result(
            "1",
            "alice",
            entities={"media": [{"type": "photo", "media_url_https": "https://pbs.example/short.jpg"}]},
            extended_entities={
                "media": [
                    {"type": "photo", "media_url_https": "https://pbs.example/a.jpg"},
                    {"type": "photo", "media_url_https": "https://pbs.example/b.jpg"},
                ]
            },
        )

        record = record_from_tweet_result(result)

        assert record is not None
        self.assertEqual(
            [m.url for m in record.media],
            ["https://pbs.example/a.jpg", "https://pbs.example/b.jpg"],
        )

    def test_unwraps_visibility_results(self) -> None:
        wrapped = {"__typename": "TweetWithVisibilityResults", "tweet": _tweet_result("9", "dora")}

        records = parse_payload(_payload(_entry(wrapped)))

        self.assertEqual([r.identity for r in records], ["https://x.com/dora/status/9"])

    def test_cursor_entries_and_platform_url(self) -> None:
        cursor = {"entryId": "cursor-bottom-1", "content": {"value": "abc", "cursorType": "Bottom"}}

        records = parse_payload(
            _payload(cursor, _entry(_tweet_result("5", "erin"))),
            platform_url="https://platform.example/",
        )

        self.assertEqual([r.identity for r in records], ["https://platform.example/erin/status/5"])

    def test_handle_from_user_core(self) -> None:
        result = _tweet_result("4", "ignored")
        result["core"] = {
            "user_results": {"result": {"legacy": {"name": ""}, "core": {"screen_name": "frank", "name": "Frank"}}}
        }

        record = record_from_tweet_result(result)

        assert record is not None
        self.assertEqual(record.author_handle, "frank")
        self.assertEqual(record.author_display_name, "Frank")


if __name__ == "__main__":
    unittest.main()
