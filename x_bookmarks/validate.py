from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from .identity import is_identity
from .record import CanonicalRecord


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    reason: str | None = None


def validate_record(record: Any) -> ValidationResult:
    """
    Check that a record can be trusted: it must carry a well-formed identity.

    Text, counters and media may all legitimately be empty.
    """
    if isinstance(record, CanonicalRecord):
        identity: Any = record.identity
    elif isinstance(record, Mapping):
        identity = record.get("identity")
    else:
        return ValidationResult(False, "record is not an object")

    if not isinstance(identity, str) or not identity.strip():
        return ValidationResult(False, "missing identity")

    if identity != identity.strip():
        return ValidationResult(False, "identity has surrounding whitespace")

    if not is_identity(identity):
        return ValidationResult(False, "identity is not a <platform>/<handle>/status/<id> key")

    return ValidationResult(True)
