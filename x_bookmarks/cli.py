from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Sequence

from bs4 import BeautifulSoup

from .analysis import create_analyzer, validate_api_key
from .capture import iter_captured_payloads
from .config import load_config, resolve_api_key
from .config_schema import AppConfig
from .engine import ReconciliationEngine
from .errors import AnalysisError, ConfigError, ExportError, ScanError, StorageError
from .export import write_exports
from .identity import identity_from_href
from .run_log import RunLogger
from .storage import SQLiteStateStore


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="x_bookmarks")

    subparsers = parser.add_subparsers(dest="command", required=True)

    scan = subparsers.add_parser(
        "scan",
        help="Reconcile a saved bookmarks page with captured API responses.",
    )
    scan.add_argument("--config", required=True, help="Path to YAML config file.")
    scan.add_argument("--page", required=True, help="Saved HTML of the bookmarks page.")
    scan.add_argument(
        "--capture",
        action="append",
        default=[],
        help="Captured API responses (.har, .jsonl or .json). May be repeated.",
    )
    scan.add_argument("--out", required=True, help="Output directory for state, exports and logs.")
    scan.add_argument(
        "--link-only",
        action="store_true",
        help="Also emit placeholder records for status links with no card.",
    )
    scan.set_defaults(_handler=_cmd_scan)

    analyze = subparsers.add_parser(
        "analyze",
        help="Summarize and tag the stored bookmarks.",
    )
    analyze.add_argument("--config", required=True, help="Path to YAML config file.")
    analyze.add_argument("--out", required=True, help="Output directory holding state.sqlite.")
    analyze.set_defaults(_handler=_cmd_analyze)

    save = subparsers.add_parser(
        "save",
        help="Save one card from a page as a manual bookmark.",
    )
    save.add_argument("--config", required=True, help="Path to YAML config file.")
    save.add_argument("--page", required=True, help="Saved HTML containing the card.")
    target = save.add_mutually_exclusive_group(required=True)
    target.add_argument("--identity", help="Canonical URL of the card to save.")
    target.add_argument("--index", type=int, help="1-based position of the card on the page.")
    save.add_argument("--tags", default="", help="Comma-separated custom tags.")
    save.add_argument("--notes", default="", help="Free-form note.")
    save.add_argument("--out", required=True, help="Output directory holding state.sqlite.")
    save.set_defaults(_handler=_cmd_save)

    return parser


def _eprint(message: str) -> None:
    print(message, file=sys.stderr)


def _load_page(path: str, cfg: AppConfig) -> BeautifulSoup:
    p = Path(path)
    try:
        html = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ScanError(f"Failed to read page: {p}: {e}") from e
    return BeautifulSoup(html, cfg.platform.html_parser)


def _engine(cfg: AppConfig, log: RunLogger) -> ReconciliationEngine:
    return ReconciliationEngine(
        platform_url=cfg.platform.base_url,
        card_selector=cfg.platform.card_selector,
        logger=log,
    )


def _export_store(
    cfg: AppConfig,
    store: SQLiteStateStore,
    out_dir: Path,
    log: RunLogger,
) -> dict[str, Path]:
    bookmarks = store.load_bookmarks()
    analysis = store.latest_analysis()
    custom_tags = {b.record.identity: b.custom_tags for b in bookmarks if b.custom_tags}

    log.info("export_started", formats=list(cfg.export.formats), bookmarks=len(bookmarks))
    written = write_exports(
        [b.record for b in bookmarks],
        out_dir,
        formats=cfg.export.formats,
        analysis=analysis,
        provider=cfg.analysis.provider,
        custom_tags=custom_tags,
    )
    log.info("export_completed", paths={k: str(v) for k, v in written.items()})
    return written


def _cmd_scan(args: argparse.Namespace) -> int:
    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)

    log_path = out_dir / "run.log"
    with RunLogger.open(log_path, overwrite=True) as log:
        log.info("scan_command_started", config_path=str(args.config), page=str(args.page))

        try:
            cfg = load_config(args.config)
            log.set_min_level(cfg.logging.level)
            log.info("config_loaded", config_path=str(args.config), platform_url=cfg.platform.base_url)

            engine = _engine(cfg, log)

            ingested = 0
            for capture_path in args.capture:
                try:
                    payloads = list(iter_captured_payloads(capture_path, logger=log))
                except OSError as e:
                    raise ScanError(f"Failed to read capture file: {capture_path}: {e}") from e
                for payload in payloads:
                    ingested += engine.ingest(
                        payload.data,
                        source_url=payload.url,
                        captured_at=payload.captured_at,
                    )

            page = _load_page(args.page, cfg)
            result = engine.reconcile(
                page,
                include_link_only=bool(args.link_only) or cfg.scan.include_link_only,
            )

            with SQLiteStateStore.open(out_dir / "state.sqlite") as store:
                extraction_id = store.save_extraction(
                    result.records,
                    performance=result.performance(),
                    page_url=str(args.page),
                )
                written = _export_store(cfg, store, out_dir, log)

            print(f"extraction_id={extraction_id}")
            print(f"intercepted={len(engine)}")
            print(f"ingested={ingested}")
            print(f"articles_processed={result.articles_processed}")
            print(f"records={result.tweets_extracted}")
            for fmt, path in written.items():
                print(f"export_{fmt}={path}")
            print(f"run_log={log_path}")
            return 0
        except Exception as e:
            log.exception("scan_command_failed", exc=e)
            raise


def _cmd_analyze(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    api_key = resolve_api_key(cfg)
    if cfg.analysis.provider != "none":
        ok, reason = validate_api_key(api_key, cfg.analysis.provider)
        if not ok:
            raise ConfigError(f"{cfg.analysis.api_key_env}: {reason}")

    out_dir = Path(args.out)
    db_path = out_dir / "state.sqlite"
    if not db_path.exists():
        raise StorageError(f"No state database found: {db_path}")

    log_path = out_dir / "run.log"
    with RunLogger.open(log_path, overwrite=False, min_level=cfg.logging.level) as log:
        try:
            with SQLiteStateStore.open(db_path) as store:
                records = [b.record for b in store.load_bookmarks()]
                log.info("analysis_started", provider=cfg.analysis.provider, bookmarks=len(records))

                analysis = create_analyzer(cfg.analysis, api_key, logger=log).analyze(records)
                store.save_analysis(analysis, provider=cfg.analysis.provider)
                log.info(
                    "analysis_completed",
                    tags=len(analysis.tags),
                    categories=len(analysis.categories),
                )

                written = _export_store(cfg, store, out_dir, log)

            print(f"provider={cfg.analysis.provider}")
            print(f"summary={analysis.overall_summary}")
            print(f"tags={', '.join(analysis.tags)}")
            print(f"categories={', '.join(analysis.categories)}")
            for fmt, path in written.items():
                print(f"export_{fmt}={path}")
            return 0
        except Exception as e:
            log.exception("analyze_command_failed", exc=e)
            raise


def _cmd_save(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)

    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)

    log_path = out_dir / "run.log"
    with RunLogger.open(log_path, overwrite=False, min_level=cfg.logging.level) as log:
        try:
            engine = _engine(cfg, log)
            page = _load_page(args.page, cfg)
            cards = page.select(cfg.platform.card_selector)

            record = None
            if args.index is not None:
                if not 1 <= args.index <= len(cards):
                    raise ScanError(f"--index {args.index} is out of range (page has {len(cards)} cards)")
                record = engine.record_for_anchor(cards[args.index - 1])
            else:
                wanted = identity_from_href(args.identity, cfg.platform.base_url)
                if not wanted:
                    raise ScanError(f"Not a status URL: {args.identity}")
                for card in cards:
                    candidate = engine.record_for_anchor(card)
                    if candidate is not None and candidate.identity == wanted:
                        record = candidate
                        break

            if record is None:
                raise ScanError("No usable card matched the requested bookmark")

            tags = [t for t in str(args.tags).split(",") if t.strip()]
            with SQLiteStateStore.open(out_dir / "state.sqlite") as store:
                saved = store.save_manual_bookmark(record, tags=tags, notes=args.notes)

            log.info("bookmark_saved", identity=saved.record.identity, tags=list(saved.custom_tags))
            print(f"saved={saved.record.identity}")
            print(f"tags={', '.join(saved.custom_tags)}")
            return 0
        except Exception as e:
            log.exception("save_command_failed", exc=e)
            raise


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        handler = getattr(args, "_handler")
        return int(handler(args))
    except ConfigError as e:
        _eprint(str(e))
        return 2
    except (ScanError, AnalysisError, StorageError, ExportError) as e:
        _eprint(str(e))
        return 3
    except KeyboardInterrupt:
        _eprint("Interrupted")
        return 130
    except Exception as e:
        _eprint(f"Unexpected error: {e}")
        return 1
