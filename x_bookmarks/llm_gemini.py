from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, Sequence

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from .analysis import Analysis, parse_json_response, prepare_record_texts, validate_analysis
from .config_schema import AnalysisConfig
from .errors import AnalysisError
from .llm import ANALYSIS_SYSTEM_PROMPT, build_analysis_prompt
from .record import CanonicalRecord
from .retry import RetryConfig, RetryEvent, call_with_retries

if TYPE_CHECKING:
    from .run_log import RunLogger

_TEMPERATURE = 0.7


class _GenerativeModel(Protocol):
    def generate_content(self, contents: Any, **kwargs: Any) -> Any: ...


def is_retryable_gemini_exception(exc: BaseException) -> tuple[bool, float | None, str | None]:
    """Transient Gemini failures: deadline exceeded, HTTP 408/429 and 5xx."""
    if isinstance(exc, google_exceptions.DeadlineExceeded):
        return True, None, "timeout"

    if isinstance(exc, google_exceptions.GoogleAPICallError):
        code = exc.code
        if not isinstance(code, int):
            return False, None, None
        reason = f"http_{code}"
        if code in (408, 429) or code >= 500:
            return True, None, reason
        return False, None, reason

    return False, None, None


def _extract_candidate_text(response: Any) -> str:
    # response.text raises ValueError when the reply was blocked or empty.
    try:
        direct = response.text
    except (AttributeError, ValueError):
        direct = None
    if isinstance(direct, str) and direct.strip():
        return direct.strip()

    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            text = getattr(part, "text", None)
            if isinstance(text, str) and text.strip():
                return text.strip()

    raise AnalysisError("Gemini response did not include candidate text")


class GeminiAnalyzer:
    """Summarizes a bookmark collection with one Gemini generate_content call."""

    def __init__(
        self,
        api_key: str,
        *,
        cfg: AnalysisConfig,
        model: _GenerativeModel | None = None,
        retry: RetryConfig | None = None,
        logger: RunLogger | None = None,
    ) -> None:
        key = (api_key or "").strip()
        if not key:
            raise ValueError("api_key must be a non-empty string")

        self._cfg = cfg
        if model is None:
            genai.configure(api_key=key)
            model = genai.GenerativeModel(cfg.model, system_instruction=ANALYSIS_SYSTEM_PROMPT)
        self._model: _GenerativeModel = model
        self._retry = retry or RetryConfig()
        self._logger = logger

    def _on_retry(self, event: RetryEvent) -> None:
        if self._logger is not None:
            self._logger.warning(
                "analysis_retry",
                provider="gemini",
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
            return self._model.generate_content(
                build_analysis_prompt(texts),
                generation_config={
                    "temperature": _TEMPERATURE,
                    "max_output_tokens": self._cfg.max_output_tokens,
                    "response_mime_type": "application/json",
                },
            )

        try:
            response = call_with_retries(
                _call,
                cfg=self._retry,
                is_retryable=is_retryable_gemini_exception,
                operation="gemini.generate_content",
                on_retry=self._on_retry,
            )
        except Exception as e:
            raise AnalysisError(f"Gemini call failed ({self._cfg.model}): {e}") from e

        raw = parse_json_response(_extract_candidate_text(response))
        return validate_analysis(raw, cfg=self._cfg)
