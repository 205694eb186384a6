from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import ValidationError

from .config_schema import AppConfig
from .errors import ConfigError


def _read_yaml_mapping(path: Path) -> dict[str, Any]:
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    try:
        doc = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Config file {path} is not valid YAML: {e}") from e

    if doc is None:
        return {}
    if not isinstance(doc, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level")
    return doc


def load_config(path: str | Path) -> AppConfig:
    """
    Read the YAML settings for a scan/analyze/save session.

    Missing sections fall back to their defaults; an empty file is valid.
    """
    p = Path(path)
    doc = _read_yaml_mapping(p)
    try:
        return AppConfig.model_validate(doc)
    except ValidationError as e:
        raise ConfigError(_describe_validation_errors(e, p)) from e


def resolve_api_key(
    config: AppConfig, *, environ: Mapping[str, str] | None = None
) -> str | None:
    """API key for the configured analysis provider; None when it runs locally."""
    if config.analysis.provider == "none":
        return None

    source = os.environ if environ is None else environ
    var = config.analysis.api_key_env
    key = (source.get(var) or "").strip()
    if not key:
        raise ConfigError(
            f"Analysis provider {config.analysis.provider!r} needs an API key in ${var}"
        )
    return key


def _describe_validation_errors(err: ValidationError, path: Path) -> str:
    problems = [
        f"- {'.'.join(str(part) for part in item.get('loc', ())) or '<root>'}: "
        f"{item.get('msg', 'invalid value')}"
        for item in err.errors()
    ]
    return "\n".join([f"Invalid configuration in {path}:", *problems])
