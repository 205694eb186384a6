from __future__ import annotations

from datetime import datetime, timezone

# Platform API timestamps look like "Wed Oct 10 20:19:24 +0000 2018".
_API_FORMAT = "%a %b %d %H:%M:%S %z %Y"

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_created_at(value: str | None) -> datetime | None:
    s = (value or "").strip()
    if not s:
        return None
    try:
        parsed = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed = datetime.strptime(s, _API_FORMAT)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
