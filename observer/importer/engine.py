"""Import orchestrator: scan, classify, parse, filter, confirm, write, record."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

import aiosqlite

from observer import observability
from observer.db.repositories.import_state import SqliteImportStateRepository
from observer.db.repositories.telemetry import SqliteTelemetryRepository, TimeRange
from observer.deleter import DeleteOptions, DeleteScope, preview
from observer.errors import DiscoveryError, ImportCancelledError, ParseError, StateTrackerError
from observer.importer.options import ImportOptions, parse_source_selector
from observer.importer.report import render_report
from observer.importer.state import FileStateTracker, should_import_file
from observer.models import DeleteSummary, ImportReport, ImportResult, ImportSummary, SourceType
from observer.parsers.common import SessionParser
from observer.parsers.platforms.registry import ParserRegistry

logger = logging.getLogger("observer.import")

# Purge bounds when --from/--to is omitted; the upper bound stays within int64 nanoseconds.
_PURGE_MIN_TIME = datetime(1970, 1, 1, tzinfo=timezone.utc)
_PURGE_MAX_TIME = datetime(2262, 1, 1, tzinfo=timezone.utc)

ConfirmFn = Callable[[str], bool]
OutFn = Callable[[str], None]


def ask_confirmation(prompt: str) -> bool:
    """Interactive y/N prompt on stdin. End of input counts as no."""
    try:
        answer = input(prompt)
    except EOFError:
        return False
    return answer.strip().lower() in {"y", "yes"}


@dataclass
class _AcceptedFile:
    source: SourceType
    path: Path
    file_hash: str
    result: ImportResult


class Importer:
    """Runs one import over the requested sources.

    Nothing persists between runs except the import state table; every
    other structure lives only for the duration of `run`.
    """

    def __init__(
        self,
        db: aiosqlite.Connection,
        registry: ParserRegistry,
        *,
        confirm: Optional[ConfirmFn] = None,
        out: OutFn = print,
    ):
        self.db = db
        self.registry = registry
        self.telemetry_repo = SqliteTelemetryRepository(db)
        self.tracker = FileStateTracker(SqliteImportStateRepository(db))
        self.confirm = confirm or ask_confirmation
        self.out = out

    async def run(
        self,
        selector: Union[str, Iterable[SourceType]],
        options: ImportOptions,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ImportReport:
        sources = parse_source_selector(selector) if isinstance(selector, str) else list(selector)
        report = ImportReport(
            from_date=options.from_date,
            to_date=options.to_date,
            dry_run=options.dry_run,
            purge=options.purge,
        )

        with observability.start_span(
            "observer.import.run",
            {"sources": ",".join(s.value for s in sources), "dry_run": options.dry_run},
        ):
            accepted: list[_AcceptedFile] = []
            for source in sources:
                parser = self.registry.get(source)
                if parser is None:
                    logger.warning("No parser registered for %s, skipping", source.value)
                    continue
                summary = ImportSummary(source=source)
                report.summaries.append(summary)
                accepted.extend(await self._scan_source(parser, summary, options, cancel_event))

            purge_windows = self._purge_windows(sources, options) if options.purge else []
            if options.purge and accepted:
                report.delete_summary = await self._preview_purge(purge_windows)

            self.out(render_report(report, verbose=options.verbose))

            if not accepted:
                self.out("No new or modified files found to import.")
                return report

            if options.dry_run:
                self.out("Dry run - no changes made.")
                return report

            if not report.is_empty() and not options.skip_confirm:
                prompt = "Continue? [y/N] "
                if options.purge:
                    prompt = "This will DELETE existing data in the time range and import new data.\n" + prompt
                if not self.confirm(prompt):
                    report.aborted = True
                    self.out("Aborted.")
                    return report

            await self._write(accepted, purge_windows if not report.is_empty() else [], options)
            report.imported_files = await self._record_state(accepted)
            self.out(f"Import complete: {report.imported_files} file(s) recorded.")
        return report

    async def _scan_source(
        self,
        parser: SessionParser,
        summary: ImportSummary,
        options: ImportOptions,
        cancel_event: Optional[asyncio.Event],
    ) -> list[_AcceptedFile]:
        source = parser.source
        try:
            files = parser.find_session_files()
        except DiscoveryError as exc:
            summary.failed = str(exc)
            logger.error("Error scanning %s: %s", source.value, exc)
            return []

        summary.total_files = len(files)
        if options.verbose:
            self.out(f"Scanning {source.value}: found {len(files)} files")

        accepted: list[_AcceptedFile] = []
        for path in files:
            if cancel_event is not None and cancel_event.is_set():
                raise ImportCancelledError(f"import cancelled before {path}")

            t0 = time.monotonic()
            try:
                check = await self.tracker.inspect_file(source, path)
            except StateTrackerError as exc:
                summary.add_error(str(path), exc)
                logger.warning("Error checking %s: %s", path, exc)
                observability.record_file_import(source.value, "error", _elapsed_ms(t0))
                continue

            if not should_import_file(check.status, options.force):
                summary.add_skipped(str(path))
                observability.record_file_import(source.value, "skipped", _elapsed_ms(t0))
                continue

            try:
                with observability.start_span("observer.import.parse_file", {"source": source.value}):
                    result = parser.parse_file(path)
            except ParseError as exc:
                summary.add_error(str(path), exc)
                logger.warning("Error parsing %s: %s", path, exc)
                observability.record_parser_failure(source.value)
                observability.record_file_import(source.value, "error", _elapsed_ms(t0))
                continue

            if not options.in_range(result.first_time, result.last_time):
                logger.debug("Outside date range, excluding %s", path)
                summary.add_skipped(str(path))
                observability.record_file_import(source.value, "out_of_range", _elapsed_ms(t0))
                continue

            status = check.status.label()
            summary.add(result, status)
            accepted.append(_AcceptedFile(source, Path(path), check.file_hash, result))
            observability.record_file_import(source.value, status, _elapsed_ms(t0))
            if options.verbose:
                self.out(
                    f"  [{source.value}] {result.session_id}: "
                    f"{len(result.logs)} logs, {len(result.metrics)} metrics ({status})"
                )
        return accepted

    def _purge_windows(self, sources: list[SourceType], options: ImportOptions) -> list[TimeRange]:
        start = options.from_date or _PURGE_MIN_TIME
        end = options.to_date or _PURGE_MAX_TIME
        return [
            TimeRange(start=start, end=end, service=source.service_name)
            for source in sources
            if source in self.registry
        ]

    async def _preview_purge(self, windows: list[TimeRange]) -> DeleteSummary:
        total = DeleteSummary()
        for window in windows:
            counted = await preview(
                self.telemetry_repo,
                DeleteOptions(DeleteScope.ALL, window.start, window.end, window.service),
            )
            total.log_count += counted.log_count
            total.metric_count += counted.metric_count
            total.trace_count += counted.trace_count
            total.span_count += counted.span_count
        return total

    async def _write(
        self,
        accepted: list[_AcceptedFile],
        purge_windows: list[TimeRange],
        options: ImportOptions,
    ) -> None:
        # Files are accepted whole; only records inside the date window are written.
        if options.has_date_filter():
            for item in accepted:
                item.result.logs = [r for r in item.result.logs if options.contains(r.timestamp)]
                item.result.metrics = [r for r in item.result.metrics if options.contains(r.timestamp)]
                item.result.spans = [r for r in item.result.spans if options.contains(r.timestamp)]

        logs = [log for item in accepted for log in item.result.logs]
        metrics = [metric for item in accepted for metric in item.result.metrics]
        spans = [span for item in accepted for span in item.result.spans]

        with observability.start_span(
            "observer.import.write",
            {"logs": len(logs), "metrics": len(metrics), "spans": len(spans)},
        ):
            deleted = await self.telemetry_repo.replace_in_range(logs, metrics, spans, purge_windows)
        if purge_windows:
            logger.info(
                "Purged %d logs, %d metrics, %d spans",
                deleted.log_count, deleted.metric_count, deleted.span_count,
            )
        logger.info("Wrote %d logs, %d metrics, %d spans", len(logs), len(metrics), len(spans))

        per_source: dict[SourceType, list[int]] = {}
        for item in accepted:
            counts = per_source.setdefault(item.source, [0, 0, 0])
            counts[0] += len(item.result.logs)
            counts[1] += len(item.result.metrics)
            counts[2] += len(item.result.spans)
        for source, (n_logs, n_metrics, n_spans) in per_source.items():
            observability.record_imported_records(source.value, n_logs, n_metrics, n_spans)

    async def _record_state(self, accepted: list[_AcceptedFile]) -> int:
        for item in accepted:
            await self.tracker.record_import(
                item.source,
                item.path,
                item.result.record_count,
                file_hash=item.file_hash,
            )
        return len(accepted)


def _elapsed_ms(t0: float) -> float:
    return (time.monotonic() - t0) * 1000

