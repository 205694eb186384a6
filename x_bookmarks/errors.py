from __future__ import annotations


class ConfigError(RuntimeError):
    """Raised when configuration is missing or invalid."""


class ScanError(RuntimeError):
    """Raised when the page query itself fails and a scan yields nothing usable."""


class AnalysisError(RuntimeError):
    """Raised when an analysis provider call or response parse fails."""


class StorageError(RuntimeError):
    """Raised when reading or writing state in SQLite fails."""


class ExportError(RuntimeError):
    """Raised when an export file cannot be produced."""
