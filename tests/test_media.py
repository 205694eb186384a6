from __future__ import annotations

import unittest

from x_bookmarks.media import select_rendition


class TestSelectRendition(unittest.TestCase):
    def test_photo_keeps_declared_url(self) -> None:
        item = select_rendition(
            {"type": "photo", "media_url_https": "https://pbs.example/media/a.jpg"}
        )

        self.assertEqual(item.kind, "image")
        self.assertEqual(item.url, "https://pbs.example/media/a.jpg")

    def test_video_picks_highest_bitrate_mp4(self) -> None:
        item = select_rendition(
            {
                "type": "video",
                "media_url_https": "https://pbs.example/thumb.jpg",
                "video_info": {
                    "variants": [
                        {"content_type": "video/mp4", "bitrate": 832000, "url": "https://v.example/low.mp4"},
                        {"content_type": "application/x-mpegURL", "url": "https://v.example/pl.m3u8"},
                        {"content_type": "video/mp4", "bitrate": 2176000, "url": "https://v.example/high.mp4"},
                        {"content_type": "video/mp4", "bitrate": 632000, "url": "https://v.example/lowest.mp4"},
                    ]
                },
            }
        )

        self.assertEqual(item.kind, "video")
        self.assertEqual(item.url, "https://v.example/high.mp4")

    def test_bitrate_tie_keeps_first_variant(self) -> None:
        item = select_rendition(
            {
                "type": "video",
                "video_info": {
                    "variants": [
                        {"content_type": "video/mp4", "bitrate": 1000, "url": "https://v.example/first.mp4"},
                        {"content_type": "video/mp4", "bitrate": 1000, "url": "https://v.example/second.mp4"},
                    ]
                },
            }
        )

        self.assertEqual(item.url, "https://v.example/first.mp4")

    def test_video_without_mp4_falls_back_to_declared_url(self) -> None:
        item = select_rendition(
            {
                "type": "video",
                "media_url_https": "https://pbs.example/thumb.jpg",
                "video_info": {
                    "variants": [{"content_type": "application/x-mpegURL", "url": "https://v.example/pl.m3u8"}]
                },
            }
        )

        self.assertEqual(item.url, "https://pbs.example/thumb.jpg")

    def test_animated_gif_uses_variant(self) -> None:
        item = select_rendition(
            {
                "type": "animated_gif",
                "media_url_https": "https://pbs.example/gif_thumb.jpg",
                "video_info": {
                    "variants": [{"content_type": "video/mp4", "bitrate": 0, "url": "https://v.example/gif.mp4"}]
                },
            }
        )

        self.assertEqual(item.kind, "animated_gif")
        self.assertEqual(item.url, "https://v.example/gif.mp4")


if __name__ == "__main__":
    unittest.main()
