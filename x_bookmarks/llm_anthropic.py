from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, Sequence

from anthropic import Anthropic, APIConnectionError, APIStatusError, APITimeoutError, RateLimitError

from .analysis import Analysis, parse_json_response, prepare_record_texts, validate_analysis
from .config_schema import AnalysisConfig
from .errors import AnalysisError
from .llm import ANALYSIS_SYSTEM_PROMPT, build_analysis_prompt
from .openai_retry import retry_after_seconds
from .record import CanonicalRecord
from .retry import RetryConfig, RetryEvent, call_with_retries

if TYPE_CHECKING:
    from .run_log import RunLogger


class _MessagesAPI(Protocol):
    def create(self, **kwargs: Any) -> Any: ...


class _AnthropicClient(Protocol):
    messages: _MessagesAPI


def is_retryable_anthropic_exception(exc: BaseException) -> tuple[bool, float | None, str | None]:
    """Transient Anthropic failures: connection errors, timeouts, HTTP 408/409/429 and 5xx."""
    if isinstance(exc, APITimeoutError):
        return True, None, "timeout"

    if isinstance(exc, APIConnectionError):
        return True, None, "connection_error"

    if isinstance(exc, RateLimitError):
        return True, retry_after_seconds(exc), "rate_limited"

    if isinstance(exc, APIStatusError):
        code = exc.status_code
        reason = f"http_{code}"
        # 529 is Anthropic's "overloaded" status.
        if code in (408, 409, 429) or code >= 500:
            return True, retry_after_seconds(exc), reason
        return False, None, reason

    return False, None, None


def _extract_message_text(response: Any) -> str:
    for block in getattr(response, "content", None) or []:
        text = getattr(block, "text", None)
        if isinstance(text, str) and text.strip():
            return text.strip()

    raise AnalysisError("Anthropic response did not include text content")


class AnthropicAnalyzer:
    """Summarizes a bookmark collection with one Anthropic Messages call."""

    def __init__(
        self,
        api_key: str,
        *,
        cfg: AnalysisConfig,
        client: _AnthropicClient | None = None,
        retry: RetryConfig | None = None,
        logger: RunLogger | None = None,
    ) -> None:
        key = (api_key or "").strip()
        if not key:
            raise ValueError("api_key must be a non-empty string")

        self._cfg = cfg
        self._client: _AnthropicClient = client or Anthropic(api_key=key)
        self._retry = retry or RetryConfig()
        self._logger = logger

    def _on_retry(self, event: RetryEvent) -> None:
        if self._logger is not None:
            self._logger.warning(
                "analysis_retry",
                provider="anthropic",
                attempt=event.failure_attempt,
                delay_seconds=round(event.delay_seconds, 3),
                reason=event.reason,
                error=event.error_message,
            )

    def analyze(self, records: Sequence[CanonicalRecord]) -> Analysis:
        texts = prepare_record_texts(records, limit=self._cfg.analysis_limit)
        if not texts:
            raise AnalysisError("No bookmark content to analyze")

        def _call() -> Any:
            return self._client.messages.create(
                model=self._cfg.model,
                max_tokens=self._cfg.max_output_tokens,
                system=ANALYSIS_SYSTEM_PROMPT,
                messages=[{"role": "user", "content": build_analysis_prompt(texts)}],
            )

        try:
            response = call_with_retries(
                _call,
                cfg=self._retry,
                is_retryable=is_retryable_anthropic_exception,
                operation="anthropic.messages.create",
                on_retry=self._on_retry,
            )
        except Exception as e:
            raise AnalysisError(f"Anthropic call failed ({self._cfg.model}): {e}") from e

        raw = parse_json_response(_extract_message_text(response))
        return validate_analysis(raw, cfg=self._cfg)
