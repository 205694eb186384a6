from __future__ import annotations

import re
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .identity import DEFAULT_PLATFORM_URL

_ENV_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

ExportFormat = Literal["json", "csv", "markdown", "xlsx", "html"]
ProviderName = Literal["none", "openai", "anthropic", "gemini"]

# (api key variable, model) used when the analysis section leaves them out.
PROVIDER_DEFAULTS: dict[str, tuple[str, str]] = {
    "none": ("OPENAI_API_KEY", "gpt-4o-mini"),
    "openai": ("OPENAI_API_KEY", "gpt-4o-mini"),
    "anthropic": ("ANTHROPIC_API_KEY", "claude-3-5-sonnet-20241022"),
    "gemini": ("GEMINI_API_KEY", "gemini-1.5-flash"),
}

PositiveInt = Annotated[int, Field(ge=1)]


def _validate_env_var_name(value: str) -> str:
    name = (value or "").strip()
    if not _ENV_NAME_RE.fullmatch(name):
        raise ValueError("must be a valid environment variable name")
    return name


class PlatformConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    base_url: str = DEFAULT_PLATFORM_URL
    card_selector: str = "article"
    html_parser: Literal["html.parser", "lxml"] = "html.parser"

    @field_validator("base_url")
    @classmethod
    def _base_url_must_be_http(cls, v: str) -> str:
        url = (v or "").strip().rstrip("/")
        if not url.startswith(("http://", "https://")):
            raise ValueError("must start with http:// or https://")
        return url

    @field_validator("card_selector")
    @classmethod
    def _selector_must_be_set(cls, v: str) -> str:
        sel = (v or "").strip()
        if not sel:
            raise ValueError("must be a non-empty CSS selector")
        return sel


class ScanConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    include_link_only: bool = False


class AnalysisConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    provider: ProviderName = "none"
    api_key_env: str = "OPENAI_API_KEY"
    model: str = "gpt-4o-mini"
    analysis_limit: PositiveInt = 50
    max_output_tokens: PositiveInt = 500
    max_tags: PositiveInt = 20
    max_categories: PositiveInt = 10

    @model_validator(mode="before")
    @classmethod
    def _fill_provider_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        provider = data.get("provider", "none")
        defaults = PROVIDER_DEFAULTS.get(provider) if isinstance(provider, str) else None
        if defaults is None:
            return data
        out = dict(data)
        out.setdefault("api_key_env", defaults[0])
        out.setdefault("model", defaults[1])
        return out

    @field_validator("api_key_env")
    @classmethod
    def _api_key_env_must_be_valid(cls, v: str) -> str:
        return _validate_env_var_name(v)

    @field_validator("model")
    @classmethod
    def _model_must_be_set(cls, v: str) -> str:
        name = (v or "").strip()
        if not name:
            raise ValueError("must be a non-empty model name")
        return name


class ExportConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    formats: list[ExportFormat] = Field(default_factory=lambda: ["json", "csv", "markdown"])

    @field_validator("formats")
    @classmethod
    def _dedupe_formats(cls, v: list[str]) -> list[str]:
        out: list[str] = []
        for fmt in v:
            if fmt not in out:
                out.append(fmt)
        return out


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    level: Literal["DEBUG", "INFO", "WARN", "ERROR"] = "INFO"


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    platform: PlatformConfig = Field(default_factory=PlatformConfig)
    scan: ScanConfig = Field(default_factory=ScanConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
