from __future__ import annotations

import json
import traceback
import uuid
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, TextIO

_LEVELS = {"DEBUG": 10, "INFO": 20, "WARN": 30, "ERROR": 40}


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _truncate(text: str, *, limit: int) -> str:
    s = str(text or "")
    if limit <= 0:
        return ""
    if len(s) <= limit:
        return s
    return s[: max(0, limit - 1)] + "…"


class RunLogger:
    """
    JSONL event log for one page-view session.

    Each line is a single JSON object; lines below min_level are dropped.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        overwrite: bool = True,
        min_level: str = "INFO",
        session_id: str | None = None,
    ) -> None:
        self._path = Path(path)
        self._overwrite = bool(overwrite)
        self._min_level = _LEVELS.get((min_level or "").strip().upper(), _LEVELS["INFO"])
        self._session_id = (session_id or "").strip() or uuid.uuid4().hex
        self._scan_id: str | None = None
        self._fp: TextIO | None = None
        self._lock = Lock()
        self._opened = False

    @classmethod
    def open(
        cls,
        path: str | Path,
        *,
        overwrite: bool = True,
        min_level: str = "INFO",
        session_id: str | None = None,
    ) -> "RunLogger":
        logger = cls(path, overwrite=overwrite, min_level=min_level, session_id=session_id)
        logger._ensure_open()
        return logger

    @property
    def path(self) -> Path:
        return self._path

    @property
    def session_id(self) -> str:
        return self._session_id

    def close(self) -> None:
        with self._lock:
            if self._fp is not None:
                try:
                    self._fp.flush()
                finally:
                    self._fp.close()
                self._fp = None

    def __enter__(self) -> "RunLogger":
        self._ensure_open()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def set_min_level(self, level: str) -> None:
        self._min_level = _LEVELS.get((level or "").strip().upper(), self._min_level)

    def begin_scan(self) -> str:
        self._scan_id = uuid.uuid4().hex
        return self._scan_id

    def end_scan(self) -> None:
        self._scan_id = None

    def debug(self, event: str, *, identity: str | None = None, **data: Any) -> None:
        self.log("DEBUG", event, identity=identity, **data)

    def info(self, event: str, *, identity: str | None = None, **data: Any) -> None:
        self.log("INFO", event, identity=identity, **data)

    def warning(self, event: str, *, identity: str | None = None, **data: Any) -> None:
        self.log("WARN", event, identity=identity, **data)

    def error(self, event: str, *, identity: str | None = None, **data: Any) -> None:
        self.log("ERROR", event, identity=identity, **data)

    def exception(
        self,
        event: str,
        *,
        exc: BaseException,
        identity: str | None = None,
        level: str = "ERROR",
        **data: Any,
    ) -> None:
        err = {
            "type": type(exc).__name__,
            "message": _truncate(str(exc), limit=2000),
            "traceback": _truncate(
                "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
                limit=12000,
            ),
        }
        self.log(level, event, identity=identity, error=err, **data)

    def log(self, level: str, event: str, *, identity: str | None = None, **data: Any) -> None:
        lvl = (level or "").strip().upper() or "INFO"
        if _LEVELS.get(lvl, _LEVELS["INFO"]) < self._min_level:
            return

        ev = (event or "").strip() or "event"

        record: dict[str, Any] = {
            "ts": _utc_now_iso(),
            "level": lvl,
            "event": ev,
            "session_id": self._session_id,
        }

        if self._scan_id:
            record["scan_id"] = self._scan_id

        ident = (identity or "").strip()
        if ident:
            record["identity"] = ident

        if data:
            record["data"] = data

        self._write(record)

    def _ensure_open(self) -> None:
        if self._fp is not None:
            return

        with self._lock:
            if self._fp is not None:
                return

            self._path.parent.mkdir(parents=True, exist_ok=True)
            mode = "w" if self._overwrite and not self._opened else "a"

            self._fp = self._path.open(mode, encoding="utf-8", newline="\n")
            self._opened = True

    def _write(self, record: dict[str, Any]) -> None:
        self._ensure_open()

        payload = json.dumps(
            record,
            ensure_ascii=False,
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )

        with self._lock:
            if self._fp is None:
                return
            self._fp.write(payload + "\n")
            self._fp.flush()
