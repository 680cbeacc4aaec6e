"""Command-line entry point for the AI Observer session importer.

Usage:
  ai-observer import all --dry-run
  ai-observer import claude-code --from 2025-01-01 --to 2025-01-31 --purge --yes
  ai-observer import-state list codex
  ai-observer import-state clear gemini --yes
  ai-observer delete --scope logs --from 2025-01-01 --to 2025-01-31 --service codex_cli_rs
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from typing import Callable, Optional, Sequence

from observer import config, observability
from observer.config import resolve_source_roots
from observer.date_utils import format_datetime_utc
from observer.db import connection
from observer.db.repositories.import_state import SqliteImportStateRepository
from observer.db.repositories.telemetry import SqliteTelemetryRepository
from observer.db.sqlite_migrations import run_migrations
from observer.deleter import DeleteOptions, execute, parse_delete_scope, preview, render_delete_summary
from observer.errors import ConfigurationError, ImportCancelledError, ObserverError
from observer.importer.engine import Importer, ask_confirmation
from observer.importer.options import (
    ImportOptions,
    build_import_options,
    parse_date_arg,
    parse_source_selector,
    parse_to_date_arg,
)
from observer.importer.state import FileStateTracker
from observer.models import SourceType
from observer.parsers.platforms.registry import build_default_registry

logger = logging.getLogger("observer")

ConfirmFn = Callable[[str], bool]


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, str(config.LOG_LEVEL).upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _install_cancel_handler(cancel_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
    except (NotImplementedError, RuntimeError):
        logger.debug("SIGINT handler not supported on this platform")


# ── import ─────────────────────────────────────────────────────────

async def _run_import(
    sources: list[SourceType],
    options: ImportOptions,
    db_path: Optional[str],
    confirm: ConfirmFn,
) -> int:
    db = await connection.get_connection(db_path)
    try:
        await run_migrations(db)
        registry = build_default_registry(resolve_source_roots(), pricing_mode=options.pricing_mode)
        importer = Importer(db, registry, confirm=confirm)
        cancel_event = asyncio.Event()
        _install_cancel_handler(cancel_event)
        await importer.run(sources, options, cancel_event=cancel_event)
    finally:
        await connection.close_connection()
    return 0


def _cmd_import(args: argparse.Namespace, confirm: ConfirmFn) -> int:
    sources = parse_source_selector(args.tool)
    options = build_import_options(
        from_arg=args.from_date,
        to_arg=args.to_date,
        dry_run=args.dry_run,
        force=args.force,
        purge=args.purge,
        skip_confirm=args.yes,
        verbose=args.verbose,
        pricing_mode=args.pricing_mode,
    )
    try:
        return asyncio.run(_run_import(sources, options, args.db, confirm))
    except ImportCancelledError as exc:
        print(f"Import cancelled: {exc}")
        return 130


# ── import-state ───────────────────────────────────────────────────

async def _run_state_list(sources: list[SourceType], db_path: Optional[str]) -> int:
    db = await connection.get_connection(db_path)
    try:
        await run_migrations(db)
        tracker = FileStateTracker(SqliteImportStateRepository(db))
        for source in sources:
            states = await tracker.get_imported_files(source)
            print(f"[{source.value}] {len(states)} imported file(s)")
            for state in states:
                print(
                    f"  {state.file_path}  records={state.record_count}  "
                    f"imported={format_datetime_utc(state.imported_at)}  hash={state.file_hash[:12]}"
                )
    finally:
        await connection.close_connection()
    return 0


async def _run_state_clear(sources: list[SourceType], db_path: Optional[str]) -> int:
    db = await connection.get_connection(db_path)
    try:
        await run_migrations(db)
        tracker = FileStateTracker(SqliteImportStateRepository(db))
        for source in sources:
            deleted = await tracker.clear_source(source)
            print(f"[{source.value}] cleared {deleted} file state row(s)")
    finally:
        await connection.close_connection()
    return 0


def _cmd_import_state(args: argparse.Namespace, confirm: ConfirmFn) -> int:
    if args.state_command == "list":
        sources = parse_source_selector(args.tool or "all")
        return asyncio.run(_run_state_list(sources, args.db))

    sources = parse_source_selector(args.tool)
    if not args.yes:
        names = ", ".join(s.value for s in sources)
        if not confirm(f"Clear import state for {names}? Next import will re-read every file. [y/N] "):
            print("Aborted.")
            return 0
    return asyncio.run(_run_state_clear(sources, args.db))


# ── delete ─────────────────────────────────────────────────────────

async def _run_delete(options: DeleteOptions, skip_confirm: bool, db_path: Optional[str], confirm: ConfirmFn) -> int:
    db = await connection.get_connection(db_path)
    try:
        await run_migrations(db)
        repo = SqliteTelemetryRepository(db)
        summary = await preview(repo, options)
        print(render_delete_summary(summary, options))
        if summary.is_empty():
            print("\nNothing to delete.")
            return 0
        if not skip_confirm and not confirm("\nThis action cannot be undone.\nContinue? [y/N] "):
            print("Aborted.")
            return 0
        deleted = await execute(repo, options)
        print(
            f"\nDeletion complete: {deleted.log_count} logs, "
            f"{deleted.metric_count} metrics, {deleted.span_count} spans"
        )
    finally:
        await connection.close_connection()
    return 0


def _cmd_delete(args: argparse.Namespace, confirm: ConfirmFn) -> int:
    from_time = parse_date_arg(args.from_date)
    to_time = parse_to_date_arg(args.to_date)
    if from_time is None or to_time is None:
        raise ConfigurationError("--from and --to are required")
    if from_time > to_time:
        raise ConfigurationError("--from date must be before --to date")
    options = DeleteOptions(
        scope=parse_delete_scope(args.scope),
        from_time=from_time,
        to_time=to_time,
        service=args.service or None,
    )
    return asyncio.run(_run_delete(options, args.yes, args.db, confirm))


# ── argument parsing ───────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ai-observer", description="Import local AI coding-tool sessions.")
    parser.add_argument("--db", default=None, help=f"SQLite database path (default: {config.DATABASE_PATH})")
    commands = parser.add_subparsers(dest="command", required=True)

    imp = commands.add_parser("import", help="Import session files into the telemetry store")
    imp.add_argument("tool", nargs="?", default="all", help="claude-code, codex, gemini or all (default: all)")
    imp.add_argument("--from", dest="from_date", default=None, help="Start date, YYYY-MM-DD (inclusive)")
    imp.add_argument("--to", dest="to_date", default=None, help="End date, YYYY-MM-DD (inclusive, end of day)")
    imp.add_argument("--dry-run", action="store_true", help="Report what would be imported without writing")
    imp.add_argument("--force", action="store_true", help="Re-import files that have not changed")
    imp.add_argument("--purge", action="store_true", help="Delete existing data in the range before writing")
    imp.add_argument("--yes", "-y", action="store_true", help="Skip the confirmation prompt")
    imp.add_argument("--verbose", "-v", action="store_true", help="Show per-file progress")
    imp.add_argument(
        "--pricing-mode",
        default="auto",
        help="auto (declared cost, else computed), calculate, or display",
    )

    state = commands.add_parser("import-state", help="Inspect or reset per-file import state")
    state_commands = state.add_subparsers(dest="state_command", required=True)
    state_list = state_commands.add_parser("list", help="List imported files")
    state_list.add_argument("tool", nargs="?", default=None, help="claude-code, codex, gemini or all")
    state_clear = state_commands.add_parser("clear", help="Forget imported files so they are re-imported")
    state_clear.add_argument("tool", help="claude-code, codex, gemini or all")
    state_clear.add_argument("--yes", "-y", action="store_true", help="Skip the confirmation prompt")

    delete = commands.add_parser("delete", help="Delete stored telemetry in a date range")
    delete.add_argument("--scope", default="all", help="logs, metrics, traces or all (default: all)")
    delete.add_argument("--from", dest="from_date", required=True, help="Start date, YYYY-MM-DD")
    delete.add_argument("--to", dest="to_date", required=True, help="End date, YYYY-MM-DD (inclusive)")
    delete.add_argument("--service", default="", help="Only delete records of this service name")
    delete.add_argument("--yes", "-y", action="store_true", help="Skip the confirmation prompt")

    return parser


_COMMANDS = {
    "import": _cmd_import,
    "import-state": _cmd_import_state,
    "delete": _cmd_delete,
}


def main(argv: Optional[Sequence[str]] = None, confirm: ConfirmFn = ask_confirmation) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging(getattr(args, "verbose", False))
    observability.initialize()
    try:
        return _COMMANDS[args.command](args, confirm)
    except ObserverError as exc:
        print(f"Error: {exc}")
        return 1
    finally:
        observability.shutdown()


if __name__ == "__main__":
    raise SystemExit(main())
