from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

_ABBREVIATED_RE = re.compile(r"(\d[\d,.]*)\s*([KMB])(?![A-Za-z])", re.IGNORECASE)

# Grouped thousands ("1,234", "1.234.567") before a bare digit run.
_PLAIN_RE = re.compile(r"\d{1,3}(?:[,.]\d{3})+(?!\d)|\d+")

_MULTIPLIERS = {
    "K": Decimal(1_000),
    "M": Decimal(1_000_000),
    "B": Decimal(1_000_000_000),
}


def normalize_count(text: str | None) -> str:
    """
    Turn a rendered counter ("1.5K", "2,304", "12 Likes") into a digit string.

    Returns "" when no number is present.
    """
    s = (text or "").strip()
    if not s:
        return ""

    abbreviated = _ABBREVIATED_RE.search(s)
    if abbreviated:
        raw = abbreviated.group(1).replace(",", "").rstrip(".")
        try:
            value = Decimal(raw) * _MULTIPLIERS[abbreviated.group(2).upper()]
        except (InvalidOperation, KeyError):
            value = None
        if value is not None:
            return str(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))

    plain = _PLAIN_RE.search(s)
    if plain:
        return plain.group(0).replace(",", "").replace(".", "")
    return ""
