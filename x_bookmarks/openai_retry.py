from __future__ import annotations

from typing import Any

from openai import APIConnectionError, APIStatusError, APITimeoutError, RateLimitError


def retry_after_seconds(exc: BaseException) -> float | None:
    response = getattr(exc, "response", None)
    headers: Any = getattr(response, "headers", None)
    if headers is None:
        return None
    value = headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(str(value).strip())
    except ValueError:
        return None


def is_retryable_openai_exception(exc: BaseException) -> tuple[bool, float | None, str | None]:
    """
    Transient OpenAI failures: connection errors, timeouts, HTTP 408/409/429 and 5xx.
    """
    if isinstance(exc, APITimeoutError):
        return True, None, "timeout"

    if isinstance(exc, APIConnectionError):
        return True, None, "connection_error"

    if isinstance(exc, RateLimitError):
        return True, retry_after_seconds(exc), "rate_limited"

    if isinstance(exc, APIStatusError):
        code = exc.status_code
        reason = f"http_{code}"
        if code in (408, 409, 429) or code >= 500:
            return True, retry_after_seconds(exc), reason
        return False, None, reason

    return False, None, None
