from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, Sequence

from openai import OpenAI

from .analysis import Analysis, parse_json_response, prepare_record_texts, validate_analysis
from .config_schema import AnalysisConfig
from .errors import AnalysisError
from .openai_retry import is_retryable_openai_exception
from .record import CanonicalRecord
from .retry import RetryConfig, RetryEvent, call_with_retries

if TYPE_CHECKING:
    from .run_log import RunLogger


class _ResponsesAPI(Protocol):
    def create(self, **kwargs: Any) -> Any: ...


class _OpenAIClient(Protocol):
    responses: _ResponsesAPI


ANALYSIS_SYSTEM_PROMPT = (
    "You are a helpful assistant that analyzes social media content and provides structured summaries."
)

_PROMPT_TEMPLATE = """\
Analyze these Twitter/X bookmarks and provide:
1. An overall summary (2-3 sentences) of the main themes
2. A list of 5-10 relevant tags/keywords
3. 3-5 main categories these bookmarks fall into

Bookmarks:
{bookmarks}

Respond in JSON format:
{{
  "overallSummary": "...",
  "tags": ["tag1", "tag2", ...],
  "categories": ["category1", "category2", ...]
}}"""


def build_analysis_prompt(texts: str) -> str:
    return _PROMPT_TEMPLATE.format(bookmarks=texts)


ANALYSIS_SCHEMA_NAME = "x_bookmarks_analysis"

ANALYSIS_JSON_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "overallSummary": {"type": "string"},
        "tags": {"type": "array", "items": {"type": "string"}},
        "categories": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["overallSummary", "tags", "categories"],
}

_TEXT_FORMAT: dict[str, Any] = {
    "format": {
        "type": "json_schema",
        "name": ANALYSIS_SCHEMA_NAME,
        "strict": True,
        "schema": ANALYSIS_JSON_SCHEMA,
    }
}


def _extract_output_text(response: Any) -> str:
    direct = (getattr(response, "output_text", None) or "").strip()
    if direct:
        return direct

    output = getattr(response, "output", None) or []
    for item in output:
        content = getattr(item, "content", None) or []
        for part in content:
            text = getattr(part, "text", None)
            if isinstance(text, str) and text.strip():
                return text.strip()

    raise AnalysisError("OpenAI response did not include output text")


class OpenAIAnalyzer:
    """Summarizes a bookmark collection with one OpenAI Responses call."""

    def __init__(
        self,
        api_key: str,
        *,
        cfg: AnalysisConfig,
        client: _OpenAIClient | None = None,
        retry: RetryConfig | None = None,
        logger: RunLogger | None = None,
    ) -> None:
        key = (api_key or "").strip()
        if not key:
            raise ValueError("api_key must be a non-empty string")

        self._cfg = cfg
        self._client: _OpenAIClient = client or OpenAI(api_key=key)
        self._retry = retry or RetryConfig()
        self._logger = logger

    def _on_retry(self, event: RetryEvent) -> None:
        if self._logger is not None:
            self._logger.warning(
                "analysis_retry",
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
            return self._client.responses.create(
                model=self._cfg.model,
                instructions=ANALYSIS_SYSTEM_PROMPT,
                input=[{"role": "user", "content": build_analysis_prompt(texts)}],
                text=_TEXT_FORMAT,
                max_output_tokens=self._cfg.max_output_tokens,
            )

        try:
            response = call_with_retries(
                _call,
                cfg=self._retry,
                is_retryable=is_retryable_openai_exception,
                operation="openai.responses.create",
                on_retry=self._on_retry,
            )
        except Exception as e:
            raise AnalysisError(f"OpenAI call failed ({self._cfg.model}): {e}") from e

        raw = parse_json_response(_extract_output_text(response))
        return validate_analysis(raw, cfg=self._cfg)
