from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from threading import Lock
from typing import TYPE_CHECKING, Any, Callable, Iterable

from bs4 import Tag

from .api_parser import parse_payload
from .dom_extractor import extract_from_node
from .errors import ScanError
from .identity import DEFAULT_PLATFORM_URL, build_identity, parse_status_url
from .record import CanonicalRecord
from .validate import validate_record

if TYPE_CHECKING:
    from .run_log import RunLogger

RECORDS_LOADED = "RECORDS_LOADED"

DEFAULT_CARD_SELECTOR = "article"


@dataclass(frozen=True)
class RecordsLoaded:
    count: int
    timestamp: float
    type: str = RECORDS_LOADED


RecordsLoadedListener = Callable[[RecordsLoaded], None]


@dataclass(frozen=True)
class ScanResult:
    """Reconciled records plus advisory performance counters."""

    records: list[CanonicalRecord]
    articles_processed: int
    tweets_extracted: int
    duration_ms: int
    seen_identities: tuple[str, ...] = field(default_factory=tuple)

    def performance(self) -> dict[str, int]:
        return {
            "duration": self.duration_ms,
            "articlesProcessed": self.articles_processed,
            "tweetsExtracted": self.tweets_extracted,
        }


def _decode_payload(raw: Any) -> Any:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    if isinstance(raw, str):
        return json.loads(raw)
    return raw


class ReconciliationEngine:
    """
    Owns the intercepted records of one page-view session.

    Network payloads go in through ingest(); reconcile() merges them with
    what the page currently renders. Intercepted records win over scraped
    ones with the same identity.
    """

    def __init__(
        self,
        *,
        platform_url: str = DEFAULT_PLATFORM_URL,
        card_selector: str = DEFAULT_CARD_SELECTOR,
        logger: RunLogger | None = None,
    ) -> None:
        self._platform_url = (platform_url or DEFAULT_PLATFORM_URL).strip().rstrip("/")
        self._card_selector = card_selector
        self._logger = logger
        self._intercepted: dict[str, CanonicalRecord] = {}
        self._lock = Lock()
        self._listeners: list[RecordsLoadedListener] = []

    @property
    def platform_url(self) -> str:
        return self._platform_url

    def __len__(self) -> int:
        with self._lock:
            return len(self._intercepted)

    def intercepted(self, identity: str) -> CanonicalRecord | None:
        with self._lock:
            return self._intercepted.get(identity)

    def intercepted_records(self) -> list[CanonicalRecord]:
        with self._lock:
            return list(self._intercepted.values())

    def reset(self) -> None:
        with self._lock:
            self._intercepted.clear()

    def subscribe(self, listener: RecordsLoadedListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: RecordsLoadedListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def ingest(
        self,
        raw_payload: Any,
        *,
        source_url: str | None = None,
        captured_at: float | None = None,
    ) -> int:
        """
        Parse a captured payload and store every valid record by identity.

        Returns the number of records stored by this call. Never raises: a
        malformed payload counts as zero records.
        """
        try:
            payload = _decode_payload(raw_payload)
        except (UnicodeDecodeError, ValueError, RecursionError) as e:
            if self._logger is not None:
                self._logger.warning("payload_malformed", source_url=source_url, reason=str(e))
            return 0

        if not isinstance(payload, (dict, list)):
            if self._logger is not None:
                self._logger.warning(
                    "payload_malformed",
                    source_url=source_url,
                    reason=f"unexpected payload type {type(payload).__name__}",
                )
            return 0

        try:
            candidates = parse_payload(payload, platform_url=self._platform_url, logger=self._logger)
        except Exception as e:
            if self._logger is not None:
                self._logger.exception("payload_parse_failed", exc=e, source_url=source_url)
            return 0

        valid: list[CanonicalRecord] = []
        for record in candidates:
            result = validate_record(record)
            if not result.valid:
                if self._logger is not None:
                    self._logger.debug("record_rejected", identity=record.identity, reason=result.reason)
                continue
            valid.append(record)

        with self._lock:
            for record in valid:
                self._intercepted[record.identity] = record

        count = len(valid)
        if self._logger is not None:
            self._logger.info(
                "payload_ingested",
                source_url=source_url,
                captured_at=captured_at,
                candidates=len(candidates),
                stored=count,
            )

        if count > 0:
            self._notify(RecordsLoaded(count=count, timestamp=time.time()))
        return count

    def _notify(self, event: RecordsLoaded) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                if self._logger is not None:
                    self._logger.exception("listener_failed", exc=e, level="WARN")

    def _scraped_or_intercepted(self, node: Tag) -> CanonicalRecord | None:
        scraped = extract_from_node(node, platform_url=self._platform_url, logger=self._logger)
        if not scraped.identity:
            return None

        result = validate_record(scraped)
        if not result.valid:
            if self._logger is not None:
                self._logger.warning("record_rejected", identity=scraped.identity, reason=result.reason)
            return None

        with self._lock:
            intercepted = self._intercepted.get(scraped.identity)
        return intercepted if intercepted is not None else scraped

    def record_for_anchor(self, node: Tag) -> CanonicalRecord | None:
        """Canonical record for one rendered card, or None when it is unusable."""
        return self._scraped_or_intercepted(node)

    def _select_cards(self, page: Tag | None, nodes: Iterable[Tag] | None) -> list[Tag]:
        try:
            if nodes is not None:
                return list(nodes)
            if page is None:
                return []
            return list(page.select(self._card_selector))
        except Exception as e:
            raise ScanError(f"Failed to query content cards: {e}") from e

    def _link_hrefs(self, page: Tag | None, cards: list[Tag]) -> list[str]:
        roots: list[Tag] = [page] if page is not None else cards
        hrefs: list[str] = []
        try:
            for root in roots:
                for anchor in root.find_all("a", href=True):
                    href = anchor.get("href")
                    if isinstance(href, str):
                        hrefs.append(href)
        except Exception as e:
            raise ScanError(f"Failed to query status links: {e}") from e
        return hrefs

    def reconcile(
        self,
        page: Tag | None = None,
        *,
        nodes: Iterable[Tag] | None = None,
        include_link_only: bool = False,
    ) -> ScanResult:
        """
        Merge the rendered cards with the intercepted records.

        Output order: cards in page order, then intercepted records the page
        has not rendered, then (optionally) link-only placeholders. Each
        identity appears at most once.
        """
        if page is None and nodes is None:
            raise ValueError("reconcile needs a page or an explicit node sequence")

        started = time.perf_counter()
        if self._logger is not None:
            self._logger.begin_scan()

        try:
            cards = self._select_cards(page, nodes)

            records: list[CanonicalRecord] = []
            seen: set[str] = set()
            seen_order: list[str] = []

            def _emit(record: CanonicalRecord) -> None:
                seen.add(record.identity)
                seen_order.append(record.identity)
                records.append(record)

            for card in cards:
                record = self._scraped_or_intercepted(card)
                if record is None or record.identity in seen:
                    continue
                _emit(record)

            # Read the map now, not before the card pass, so late payloads count.
            for record in self.intercepted_records():
                if record.identity not in seen:
                    _emit(record)

            if include_link_only:
                for href in self._link_hrefs(page, cards):
                    link = parse_status_url(href)
                    if link is None:
                        continue
                    identity = build_identity(self._platform_url, link.handle, link.status_id)
                    if identity in seen:
                        continue
                    _emit(CanonicalRecord.link_only(identity, link.handle))

            duration_ms = int(round((time.perf_counter() - started) * 1000))
            result = ScanResult(
                records=records,
                articles_processed=len(cards),
                tweets_extracted=len(records),
                duration_ms=duration_ms,
                seen_identities=tuple(seen_order) if include_link_only else (),
            )

            if self._logger is not None:
                self._logger.info(
                    "scan_completed",
                    include_link_only=include_link_only,
                    **result.performance(),
                )
            return result
        except ScanError as e:
            if self._logger is not None:
                self._logger.exception("scan_failed", exc=e)
            raise
        finally:
            if self._logger is not None:
                self._logger.end_scan()
