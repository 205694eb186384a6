from __future__ import annotations

import base64
import json
import tempfile
import unittest
from pathlib import Path

from x_bookmarks.capture import is_bookmark_url, iter_captured_payloads

_BOOKMARKS_URL = "https://x.com/i/api/graphql/abc123/Bookmarks?variables=%7B%7D"


def _har_entry(url: str, body: str, *, encoding: str | None = None) -> dict:
    content: dict = {"mimeType": "application/json", "text": body}
    if encoding:
        content["encoding"] = encoding
    return {
        "startedDateTime": "2024-05-01T10:00:00.000Z",
        "request": {"method": "GET", "url": url},
        "response": {"status": 200, "content": content},
    }


class TestCapture(unittest.TestCase):
    def test_bookmark_url_detection(self) -> None:
        self.assertTrue(is_bookmark_url(_BOOKMARKS_URL))
        self.assertTrue(is_bookmark_url("https://x.com/i/api/graphql/x/bookmarks_timeline"))
        self.assertFalse(is_bookmark_url("https://x.com/i/api/graphql/x/HomeTimeline"))
        self.assertFalse(is_bookmark_url(None))

    def test_har_keeps_bookmark_responses(self) -> None:
        payload = {"data": {"entries": []}}
        encoded = base64.b64encode(json.dumps({"data": {"b64": True}}).encode("utf-8")).decode("ascii")
        har = {
            "log": {
                "entries": [
                    _har_entry(_BOOKMARKS_URL, json.dumps(payload)),
                    _har_entry("https://x.com/i/api/graphql/x/HomeTimeline", json.dumps(payload)),
                    _har_entry(_BOOKMARKS_URL, encoded, encoding="base64"),
                    _har_entry(_BOOKMARKS_URL, "<html>not json</html>"),
                ]
            }
        }

        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "session.har"
            path.write_text(json.dumps(har), encoding="utf-8")

            captured = list(iter_captured_payloads(path))

        self.assertEqual(len(captured), 2)
        self.assertEqual(captured[0].data, payload)
        self.assertEqual(captured[0].url, _BOOKMARKS_URL)
        self.assertIsNotNone(captured[0].captured_at)
        self.assertEqual(captured[1].data, {"data": {"b64": True}})

    def test_jsonl_events(self) -> None:
        lines = [
            json.dumps({"url": _BOOKMARKS_URL, "data": {"n": 1}, "timestamp": 1700000000000}),
            "",
            "{broken",
            json.dumps({"n": 2}),
        ]

        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "events.jsonl"
            path.write_text("\n".join(lines), encoding="utf-8")

            captured = list(iter_captured_payloads(path))

        self.assertEqual([c.data for c in captured], [{"n": 1}, {"n": 2}])
        self.assertEqual(captured[0].captured_at, 1700000000.0)
        self.assertEqual(captured[0].url, _BOOKMARKS_URL)
        self.assertIsNone(captured[1].captured_at)

    def test_plain_json_file(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "response.json"
            path.write_text(json.dumps([{"entries": []}]), encoding="utf-8")

            captured = list(iter_captured_payloads(path))

        self.assertEqual(len(captured), 1)
        self.assertEqual(captured[0].data, [{"entries": []}])


if __name__ == "__main__":
    unittest.main()
