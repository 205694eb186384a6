from __future__ import annotations

from .config import load_config, resolve_api_key
from .config_schema import AppConfig
from .engine import RecordsLoaded, ReconciliationEngine, ScanResult
from .errors import AnalysisError, ConfigError, ExportError, ScanError, StorageError
from .record import CanonicalRecord, Counters, MediaItem

__all__ = [
    "AnalysisError",
    "AppConfig",
    "CanonicalRecord",
    "ConfigError",
    "Counters",
    "ExportError",
    "MediaItem",
    "RecordsLoaded",
    "ReconciliationEngine",
    "ScanError",
    "ScanResult",
    "StorageError",
    "load_config",
    "resolve_api_key",
]
