from __future__ import annotations

import json
import re
import time
from collections import Counter
from typing import TYPE_CHECKING, Any, Protocol, Sequence

from pydantic import BaseModel, ConfigDict, Field

from .config_schema import AnalysisConfig
from .errors import AnalysisError
from .record import CanonicalRecord

if TYPE_CHECKING:
    from .run_log import RunLogger

_CODE_BLOCK_RE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)
_TOKEN_STRIP_RE = re.compile(r"[^\w\s#@]")

_STOP_WORDS = frozenset(
    {
        "that", "this", "with", "from", "have", "will", "your", "they",
        "been", "more", "when", "there", "their", "would", "about",
        "which", "these", "https", "http", "just", "like", "what", "some",
        "than", "then", "into", "only", "also", "could", "should",
    }
)

_CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "Technology": ("tech", "software", "code", "programming", "developer", "ai", "data", "cloud", "api", "javascript", "python"),
    "Business": ("business", "startup", "entrepreneur", "market", "company", "revenue", "growth", "investor", "funding"),
    "News & Politics": ("news", "political", "government", "election", "policy", "breaking", "vote", "democracy"),
    "Science": ("science", "research", "study", "paper", "scientific", "discovery", "experiment"),
    "Entertainment": ("movie", "music", "game", "entertainment", "show", "video", "film", "concert"),
    "Sports": ("sport", "team", "player", "game", "match", "football", "basketball", "soccer"),
    "Education": ("learn", "education", "course", "tutorial", "teaching", "university", "class"),
    "Health": ("health", "medical", "wellness", "fitness", "mental", "exercise", "diet"),
    "Finance": ("crypto", "bitcoin", "stock", "finance", "invest", "trading", "money"),
    "Design": ("design", "ux", "ui", "figma", "creative", "art", "visual"),
}

_API_KEY_PREFIXES = {"openai": "sk-", "anthropic": "sk-ant-", "gemini": "AIza"}


class Analysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    overall_summary: str = ""
    tags: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    timestamp: float = Field(default_factory=time.time)


class Analyzer(Protocol):
    def analyze(self, records: Sequence[CanonicalRecord]) -> Analysis: ...


def prepare_record_texts(records: Sequence[CanonicalRecord], *, limit: int) -> str:
    """Format up to `limit` records that have text as "@handle: text" blocks."""
    lines: list[str] = []
    for record in records:
        if len(lines) >= limit:
            break
        text = (record.text or "").strip()
        if text:
            lines.append(f"@{record.author_handle}: {text}")
    return "\n\n".join(lines)


def parse_json_response(content: str) -> Any:
    """
    Pull a JSON object out of a model reply.

    Tries the whole body, then a fenced code block, then the outermost {...}.
    """
    try:
        return json.loads(content)
    except ValueError:
        pass

    block = _CODE_BLOCK_RE.search(content or "")
    if block:
        try:
            return json.loads(block.group(1))
        except ValueError:
            pass

    span = _OBJECT_RE.search(content or "")
    if span is None:
        raise AnalysisError("No JSON found in response")
    try:
        return json.loads(span.group(0))
    except ValueError as e:
        raise AnalysisError("Failed to parse response as JSON") from e


def _string_list(value: Any, *, limit: int) -> list[str]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str)][:limit]


def validate_analysis(raw: Any, *, cfg: AnalysisConfig) -> Analysis:
    if not isinstance(raw, dict):
        raise AnalysisError("Analysis is not a valid object")

    summary = raw.get("overallSummary", raw.get("overall_summary"))
    analysis = Analysis(
        overall_summary=summary if isinstance(summary, str) else "",
        tags=_string_list(raw.get("tags"), limit=cfg.max_tags),
        categories=_string_list(raw.get("categories"), limit=cfg.max_categories),
    )

    if not analysis.overall_summary and not analysis.tags and not analysis.categories:
        raise AnalysisError("Response contained no useful analysis data")
    return analysis


def validate_api_key(api_key: str | None, provider: str, *, min_length: int = 20) -> tuple[bool, str | None]:
    key = (api_key or "").strip()
    if not key:
        return False, "API key is required"

    prefix = _API_KEY_PREFIXES.get(provider)
    if prefix and not key.startswith(prefix):
        return False, f'Invalid API key format. {provider} keys start with "{prefix}"'

    if len(key) < min_length:
        return False, "API key is too short"
    return True, None


class KeywordAnalyzer:
    """Local analysis from word frequency and keyword categories; no network."""

    def __init__(self, cfg: AnalysisConfig | None = None) -> None:
        self._cfg = cfg or AnalysisConfig()

    def analyze(self, records: Sequence[CanonicalRecord]) -> Analysis:
        if not records:
            raise AnalysisError("No bookmark content to analyze")

        words: Counter[str] = Counter()
        authors: Counter[str] = Counter()
        texts: list[str] = []

        for record in records:
            if record.text:
                lowered = record.text.lower()
                texts.append(lowered)
                for word in _TOKEN_STRIP_RE.sub(" ", lowered).split():
                    if len(word) > 3 and word not in _STOP_WORDS:
                        words[word] += 1
            if record.author_handle:
                authors[record.author_handle] += 1

        tags = [w for w, _ in words.most_common(min(10, self._cfg.max_tags))]
        top_author = authors.most_common(1)[0][0] if authors else "N/A"

        summary = (
            f"This collection contains {len(records)} bookmarks. "
            f"Most frequently bookmarked author: @{top_author}. "
            f"Common topics include: {', '.join(tags[:3])}."
        )
        return Analysis(
            overall_summary=summary,
            tags=tags,
            categories=detect_categories(" ".join(texts))[: self._cfg.max_categories],
        )


def detect_categories(text: str) -> list[str]:
    lowered = (text or "").lower()
    found = [
        name
        for name, keywords in _CATEGORY_KEYWORDS.items()
        if sum(1 for k in keywords if k in lowered) >= 2
    ]
    return found[:5] if found else ["General"]


def create_analyzer(
    cfg: AnalysisConfig,
    api_key: str | None = None,
    *,
    logger: RunLogger | None = None,
) -> Analyzer:
    if cfg.provider == "openai":
        from .llm import OpenAIAnalyzer

        return OpenAIAnalyzer(api_key or "", cfg=cfg, logger=logger)
    if cfg.provider == "anthropic":
        from .llm_anthropic import AnthropicAnalyzer

        return AnthropicAnalyzer(api_key or "", cfg=cfg, logger=logger)
    if cfg.provider == "gemini":
        from .llm_gemini import GeminiAnalyzer

        return GeminiAnalyzer(api_key or "", cfg=cfg, logger=logger)
    return KeywordAnalyzer(cfg)
