from __future__ import annotations

import unittest

from x_bookmarks.retry import RetryConfig, RetryEvent, backoff_seconds, call_with_retries

_CFG = RetryConfig(max_attempts=3, base_delay_seconds=1.0, max_delay_seconds=10.0, jitter_ratio=0.0)


class TestRetry(unittest.TestCase):
    def test_backoff_doubles_and_caps(self) -> None:
        self.assertEqual(backoff_seconds(1, _CFG), 1.0)
        self.assertEqual(backoff_seconds(2, _CFG), 2.0)
        self.assertEqual(backoff_seconds(10, _CFG), 10.0)
        self.assertEqual(backoff_seconds(1, _CFG, retry_after=5.0), 5.0)

    def test_retries_until_success(self) -> None:
        attempts: list[int] = []
        sleeps: list[float] = []
        events: list[RetryEvent] = []

        def _fn() -> str:
            attempts.append(1)
            if len(attempts) < 3:
                raise TimeoutError("slow")
            return "ok"

        result = call_with_retries(
            _fn,
            cfg=_CFG,
            is_retryable=lambda e: (True, None, "timeout"),
            operation="test",
            on_retry=events.append,
            sleep_fn=sleeps.append,
        )

        self.assertEqual(result, "ok")
        self.assertEqual(len(attempts), 3)
        self.assertEqual(sleeps, [1.0, 2.0])
        self.assertEqual([e.failure_attempt for e in events], [1, 2])

    def test_non_retryable_raises_immediately(self) -> None:
        calls: list[int] = []

        def _fn() -> None:
            calls.append(1)
            raise ValueError("bad request")

        with self.assertRaises(ValueError):
            call_with_retries(
                _fn,
                cfg=_CFG,
                is_retryable=lambda e: (False, None, None),
                operation="test",
                sleep_fn=lambda s: None,
            )
        self.assertEqual(len(calls), 1)

    def test_rejects_bad_config(self) -> None:
        with self.assertRaises(ValueError):
            RetryConfig(max_attempts=0)


if __name__ == "__main__":
    unittest.main()
