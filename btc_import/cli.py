#!/usr/bin/env python3
"""Command-line interface for the BTC → TangoTiempo import.

Commands:
  - btc-import run         : Import one date and print the go/no-go verdict
  - btc-import cleanup     : Back up and delete all target events of a date
  - btc-import restore     : Re-post the events of a backup file
  - btc-import organizers  : Resolve every source organizer and write a report
  - btc-import check       : Probe the source and target APIs
  - btc-import errors      : Print error log statistics

Typical usage:
  btc-import run --date 2025-06-01
  btc-import run --no-dry-run --confirm
  btc-import cleanup --date 2025-06-01 --no-dry-run
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import date
from pathlib import Path
from typing import Any, Callable

from btc_import.configs.settings import Settings, get_settings
from btc_import.monitoring.logging import LoggingOptions, setup_logging


def _parse_date(value: str) -> str:
    try:
        return date.fromisoformat(value).isoformat()
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid date {value!r}, expected YYYY-MM-DD") from e


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--dry-run",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Simulate target writes (default: DRY_RUN setting)",
    )
    parser.add_argument("--output", "-o", default=None, help="Override OUTPUT_DIR")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON logs")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="btc-import", description="BTC → TangoTiempo event import")
    p.add_argument("--version", action="store_true", help="Print version and exit")
    sub = p.add_subparsers(dest="cmd")

    # run
    pr = sub.add_parser("run", help="Import one date")
    pr.add_argument("--date", "-d", type=_parse_date, default=None, help="Date (YYYY-MM-DD)")
    pr.add_argument("--confirm", action="store_true", help="Skip the confirmation prompt")
    _add_common(pr)

    # cleanup
    pc = sub.add_parser("cleanup", help="Back up and delete target events of a date")
    pc.add_argument("--date", "-d", type=_parse_date, required=True, help="Date (YYYY-MM-DD)")
    pc.add_argument("--confirm", action="store_true", help="Skip the confirmation prompt")
    _add_common(pc)

    # restore
    prs = sub.add_parser("restore", help="Restore events from a backup file")
    prs.add_argument("backup_file", help="Path to a backup-events-*.json file")
    prs.add_argument("--confirm", action="store_true", help="Skip the confirmation prompt")
    _add_common(prs)

    # organizers
    po = sub.add_parser("organizers", help="Resolve all source organizers")
    po.add_argument("--max-pages", type=int, default=None, help="Cap on organizer pages")
    _add_common(po)

    # check
    pk = sub.add_parser("check", help="Probe the source and target APIs")
    _add_common(pk)

    # errors
    pe = sub.add_parser("errors", help="Print error log statistics")
    _add_common(pe)

    return p.parse_args(argv)


def _settings_for(args: argparse.Namespace) -> Settings:
    settings = get_settings()
    update: dict[str, Any] = {}
    if getattr(args, "dry_run", None) is not None:
        update["DRY_RUN"] = args.dry_run
    if getattr(args, "output", None):
        update["OUTPUT_DIR"] = Path(args.output)
    if getattr(args, "json_logs", False):
        update["JSON_LOGS"] = True
    if getattr(args, "log_level", None):
        update["LOG_LEVEL"] = args.log_level
    return settings.model_copy(update=update) if update else settings


def confirm(word: str, prompt: str, input_fn: Callable[[str], str] = input) -> bool:
    """Ask the operator to type ``word``; True when they did."""
    try:
        answer = input_fn(f'{prompt} Type "{word}" to proceed: ')
    except EOFError:
        return False
    return answer.strip().upper() == word


def _guard_destructive(
    settings: Settings,
    args: argparse.Namespace,
    word: str,
    prompt: str,
    input_fn: Callable[[str], str],
) -> int | None:
    """Exit code when a non-dry-run destructive command must not proceed."""
    if settings.DRY_RUN:
        return None
    if not settings.auth_token:
        print("Error: AUTH_TOKEN is required when not in dry-run mode.", file=sys.stderr)
        return 1
    if not args.confirm and not confirm(word, prompt, input_fn):
        print("Aborted.")
        return 0
    return None


def main(argv: list[str] | None = None, input_fn: Callable[[str], str] = input) -> int:
    """Run the CLI with the given arguments."""
    try:
        return _main_impl(argv, input_fn)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def _main_impl(argv: list[str] | None, input_fn: Callable[[str], str]) -> int:
    args = _parse_args(argv)

    if args.version:
        from btc_import import __version__

        print(f"btc-import version {__version__}")
        return 0

    if not args.cmd:
        print("Error: Command required. Use --help for usage info.", file=sys.stderr)
        return 1

    settings = _settings_for(args)
    setup_logging(LoggingOptions(level=settings.LOG_LEVEL, json_logs=settings.JSON_LOGS))

    if args.cmd == "errors":
        from btc_import.ingestion.errors import ErrorLog

        stats = ErrorLog(settings.error_log_dir).get_error_stats()
        print(json.dumps(stats, indent=2, ensure_ascii=False))
        return 0

    if args.cmd == "check":
        return asyncio.run(_check(settings))

    if args.cmd == "organizers":
        return asyncio.run(_organizers(settings, args.max_pages))

    if args.cmd == "run":
        day = args.date or settings.resolve_target_date().isoformat()
        blocked = _guard_destructive(
            settings,
            args,
            "CONFIRM",
            f"This will DELETE and re-create target events for {day}.",
            input_fn,
        )
        if blocked is not None:
            return blocked
        return asyncio.run(_run(settings, day))

    if args.cmd == "cleanup":
        blocked = _guard_destructive(
            settings,
            args,
            "CONFIRM",
            f"This will DELETE all target events for {args.date}.",
            input_fn,
        )
        if blocked is not None:
            return blocked
        return asyncio.run(_cleanup(settings, args.date))

    if args.cmd == "restore":
        backup = Path(args.backup_file)
        if not backup.exists():
            raise FileNotFoundError(f"Backup file not found: {backup}")
        blocked = _guard_destructive(
            settings,
            args,
            "RESTORE",
            f"This will re-create every event in {backup}.",
            input_fn,
        )
        if blocked is not None:
            return blocked
        return asyncio.run(_restore(settings, backup))

    print(f"Error: Unknown command {args.cmd}", file=sys.stderr)
    return 1


# ---------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------


async def _run(settings: Settings, day: str) -> int:
    from btc_import.ingestion.orchestrator import ImportOrchestrator

    orchestrator = ImportOrchestrator.from_settings(settings)
    print(f"Starting import for date: {day}")
    print(f"Dry run mode: {settings.DRY_RUN}")
    print(f"Output directory: {settings.OUTPUT_DIR}")
    try:
        result, assessment = await orchestrator.run(day)
    except Exception as e:
        print(f"Import failed: {e}", file=sys.stderr)
        return 1
    finally:
        await orchestrator.source.close()
        await orchestrator.target.close()

    print(json.dumps(result.to_dict(), indent=2))
    print("\n".join(assessment.summary_lines()))
    return 0


async def _cleanup(settings: Settings, day: str) -> int:
    from btc_import.ingestion.adapters.target_api import TargetAPIClient
    from btc_import.ingestion.cleanup import HistoricalCleanup
    from btc_import.ingestion.errors import ErrorLog
    from btc_import.ingestion.persist import RunArtifactWriter
    from btc_import.ingestion.resilience import RetryingExecutor, RetryPolicy

    error_log = ErrorLog(settings.error_log_dir)
    target = TargetAPIClient.from_settings(settings)
    cleanup = HistoricalCleanup(
        target,
        error_log,
        RunArtifactWriter(settings.OUTPUT_DIR),
        dry_run=settings.DRY_RUN,
        executor=RetryingExecutor(error_log, RetryPolicy.from_settings(settings)),
    )
    try:
        result = await cleanup.cleanup_events_for_date(day)
    finally:
        await target.close()

    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.failed_events == 0 else 1


async def _restore(settings: Settings, backup: Path) -> int:
    from btc_import.ingestion.adapters.target_api import TargetAPIClient
    from btc_import.ingestion.cleanup import HistoricalCleanup
    from btc_import.ingestion.errors import ErrorLog
    from btc_import.ingestion.persist import RunArtifactWriter
    from btc_import.ingestion.resilience import RetryingExecutor, RetryPolicy

    error_log = ErrorLog(settings.error_log_dir)
    target = TargetAPIClient.from_settings(settings)
    cleanup = HistoricalCleanup(
        target,
        error_log,
        RunArtifactWriter(settings.OUTPUT_DIR),
        dry_run=settings.DRY_RUN,
        executor=RetryingExecutor(error_log, RetryPolicy.from_settings(settings)),
    )
    try:
        result = await cleanup.restore_from_backup(backup)
    finally:
        await target.close()

    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.failed_events == 0 else 1


async def _organizers(settings: Settings, max_pages: int | None) -> int:
    from btc_import.ingestion.adapters.source_api import SourceAPIClient
    from btc_import.ingestion.adapters.target_api import TargetAPIClient
    from btc_import.ingestion.errors import ErrorLog
    from btc_import.ingestion.organizer_report import build_organizer_report
    from btc_import.ingestion.persist import RunArtifactWriter
    from btc_import.ingestion.resilience import RetryingExecutor, RetryPolicy
    from btc_import.ingestion.resolution import EntityResolver, load_resolution_defaults

    error_log = ErrorLog(settings.error_log_dir)
    source = SourceAPIClient.from_settings(settings)
    target = TargetAPIClient.from_settings(settings)
    resolver = EntityResolver(
        target,
        RetryingExecutor(error_log, RetryPolicy.from_settings(settings)),
        error_log,
        defaults=load_resolution_defaults(settings.RESOLUTION_CONFIG_PATH),
    )
    try:
        report, path = await build_organizer_report(
            source, resolver, RunArtifactWriter(settings.OUTPUT_DIR), max_pages=max_pages
        )
    finally:
        await source.close()
        await target.close()

    print(json.dumps(report["stats"], indent=2))
    print(f"Report written to {path}")
    return 0


async def _check(settings: Settings) -> int:
    from btc_import.ingestion.adapters.source_api import SourceAPIClient
    from btc_import.ingestion.adapters.target_api import TargetAPIClient

    report: dict[str, Any] = {}
    ok = True
    for name, client in (
        ("source", SourceAPIClient.from_settings(settings)),
        ("target", TargetAPIClient.from_settings(settings)),
    ):
        try:
            count = await client.ping()
            report[name] = {"ok": True, "url": client.base_url, "events": count}
        except Exception as e:
            ok = False
            report[name] = {"ok": False, "url": client.base_url, "error": str(e)}
        finally:
            await client.close()

    print(json.dumps(report, indent=2, ensure_ascii=False))
    return 0 if ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
