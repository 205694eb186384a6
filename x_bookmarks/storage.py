from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

from .analysis import Analysis
from .dates import EPOCH, parse_created_at
from .errors import StorageError
from .record import CanonicalRecord
from .storage_schema import initialize_sqlite
from .validate import validate_record


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _json_dumps(value: Any) -> str:
    return json.dumps(
        value,
        ensure_ascii=False,
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )


def _load_record(raw: str) -> CanonicalRecord:
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise StorageError(f"Stored record_json could not be parsed: {e}") from e
    if not isinstance(data, dict):
        raise StorageError("Stored record_json was not an object")
    return CanonicalRecord.from_dict(data)


def _normalize_tags(tags: Iterable[str]) -> list[str]:
    out: list[str] = []
    for tag in tags:
        t = (tag or "").strip()
        if t and t not in out:
            out.append(t)
    return out


@dataclass(frozen=True)
class StoredExtraction:
    extraction_id: int
    created_at: str
    page_url: str | None
    performance: dict[str, Any]
    records: list[CanonicalRecord]


@dataclass(frozen=True)
class StoredBookmark:
    record: CanonicalRecord
    source: str
    saved_at: str | None = None
    custom_tags: tuple[str, ...] = ()
    notes: str = ""

    def sort_key(self) -> datetime:
        return (
            parse_created_at(self.saved_at)
            or parse_created_at(self.record.created_at)
            or EPOCH
        )


class SQLiteStateStore:
    """
    Persistence for extraction results, manually saved bookmarks, and analyses.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._conn.row_factory = sqlite3.Row

    @classmethod
    def open(cls, path: str | Path) -> "SQLiteStateStore":
        db_path = str(path)
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            conn = sqlite3.connect(db_path)
        except sqlite3.DatabaseError as e:
            raise StorageError(f"Failed to open sqlite database: {db_path}: {e}") from e

        try:
            initialize_sqlite(conn)
        except Exception as e:
            conn.close()
            raise StorageError(f"Failed to initialize sqlite schema: {e}") from e

        return cls(conn)

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "SQLiteStateStore":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    def save_extraction(
        self,
        records: Sequence[CanonicalRecord],
        *,
        performance: Mapping[str, Any] | None = None,
        page_url: str | None = None,
        created_at: str | None = None,
    ) -> int:
        ts = (created_at or _utc_now_iso()).strip()
        try:
            with self._conn:
                cur = self._conn.execute(
                    "INSERT INTO extractions(created_at, page_url, performance_json) VALUES (?, ?, ?)",
                    (ts, (page_url or "").strip() or None, _json_dumps(dict(performance or {}))),
                )
                extraction_id = int(cur.lastrowid or 0)
                self._conn.executemany(
                    """
                    INSERT INTO extraction_records(
                      extraction_id, position, identity, source_quality, record_json
                    ) VALUES (?, ?, ?, ?, ?)
                    """.strip(),
                    [
                        (extraction_id, pos, r.identity, r.source_quality, _json_dumps(r.to_dict()))
                        for pos, r in enumerate(records)
                    ],
                )
        except sqlite3.DatabaseError as e:
            raise StorageError(f"Failed to save extraction: {e}") from e
        return extraction_id

    def latest_extraction(self) -> StoredExtraction | None:
        row = self._conn.execute(
            """
            SELECT extraction_id, created_at, page_url, performance_json
            FROM extractions
            ORDER BY extraction_id DESC
            LIMIT 1
            """.strip()
        ).fetchone()
        if row is None:
            return None

        extraction_id = int(row["extraction_id"])
        rows = self._conn.execute(
            "SELECT record_json FROM extraction_records WHERE extraction_id = ? ORDER BY position ASC",
            (extraction_id,),
        ).fetchall()

        try:
            performance = json.loads(row["performance_json"] or "{}")
        except ValueError:
            performance = {}

        return StoredExtraction(
            extraction_id=extraction_id,
            created_at=str(row["created_at"]),
            page_url=str(row["page_url"]) if row["page_url"] is not None else None,
            performance=performance if isinstance(performance, dict) else {},
            records=[_load_record(str(r["record_json"])) for r in rows],
        )

    def save_manual_bookmark(
        self,
        record: CanonicalRecord,
        *,
        tags: Iterable[str] = (),
        notes: str = "",
        saved_at: str | None = None,
    ) -> StoredBookmark:
        """Save or refresh one bookmark by identity; a later save replaces the earlier one."""
        result = validate_record(record)
        if not result.valid:
            raise ValueError(f"Invalid bookmark: {result.reason}")

        ts = (saved_at or _utc_now_iso()).strip()
        tag_list = _normalize_tags(tags)
        note = (notes or "").strip()

        try:
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO manual_bookmarks(identity, record_json, saved_at, tags_json, notes)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(identity) DO UPDATE SET
                      record_json = excluded.record_json,
                      saved_at = excluded.saved_at,
                      tags_json = excluded.tags_json,
                      notes = excluded.notes
                    """.strip(),
                    (record.identity, _json_dumps(record.to_dict()), ts, _json_dumps(tag_list), note),
                )
        except sqlite3.DatabaseError as e:
            raise StorageError(f"Failed to save bookmark: {e}") from e

        return StoredBookmark(
            record=record,
            source="manual",
            saved_at=ts,
            custom_tags=tuple(tag_list),
            notes=note,
        )

    def manual_bookmarks(self) -> list[StoredBookmark]:
        rows = self._conn.execute(
            "SELECT record_json, saved_at, tags_json, notes FROM manual_bookmarks ORDER BY saved_at DESC"
        ).fetchall()

        out: list[StoredBookmark] = []
        for r in rows:
            try:
                tags = json.loads(r["tags_json"] or "[]")
            except ValueError:
                tags = []
            out.append(
                StoredBookmark(
                    record=_load_record(str(r["record_json"])),
                    source="manual",
                    saved_at=str(r["saved_at"]),
                    custom_tags=tuple(t for t in tags if isinstance(t, str)) if isinstance(tags, list) else (),
                    notes=str(r["notes"] or ""),
                )
            )
        return out

    def load_bookmarks(self) -> list[StoredBookmark]:
        """
        Latest extraction plus manual bookmarks, newest first, one per identity.
        """
        combined: list[StoredBookmark] = []
        extraction = self.latest_extraction()
        if extraction is not None:
            combined.extend(StoredBookmark(record=r, source="extraction") for r in extraction.records)
        combined.extend(self.manual_bookmarks())

        combined.sort(key=lambda b: b.sort_key(), reverse=True)

        seen: set[str] = set()
        out: list[StoredBookmark] = []
        for bookmark in combined:
            identity = bookmark.record.identity
            if not identity or identity in seen:
                continue
            seen.add(identity)
            out.append(bookmark)
        return out

    def save_analysis(self, analysis: Analysis, *, provider: str, created_at: str | None = None) -> None:
        ts = (created_at or _utc_now_iso()).strip()
        try:
            with self._conn:
                self._conn.execute(
                    "INSERT INTO analyses(created_at, provider, analysis_json) VALUES (?, ?, ?)",
                    (ts, (provider or "none").strip(), analysis.model_dump_json()),
                )
        except sqlite3.DatabaseError as e:
            raise StorageError(f"Failed to save analysis: {e}") from e

    def latest_analysis(self) -> Analysis | None:
        row = self._conn.execute(
            "SELECT analysis_json FROM analyses ORDER BY analysis_id DESC LIMIT 1"
        ).fetchone()
        if row is None:
            return None
        try:
            return Analysis.model_validate_json(str(row["analysis_json"]))
        except Exception as e:
            raise StorageError(f"Stored analysis_json could not be parsed: {e}") from e
