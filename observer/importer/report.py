"""Human-readable import summary."""
from __future__ import annotations

from observer.date_utils import format_datetime_utc
from observer.models import ImportReport


def render_report(report: ImportReport, verbose: bool = False) -> str:
    lines: list[str] = ["", "Import Summary", "=============="]

    if report.dry_run:
        lines.append("Mode: DRY RUN (nothing will be written)")
    if report.purge:
        lines.append("Mode: PURGE (existing data in range will be replaced)")

    if report.from_date is not None or report.to_date is not None:
        start = f"{report.from_date:%Y-%m-%d}" if report.from_date else "beginning"
        end = f"{report.to_date:%Y-%m-%d}" if report.to_date else "now"
        lines.append(f"Time range: {start} to {end}")

    if report.purge and report.delete_summary is not None:
        deleted = report.delete_summary
        lines.extend([
            "",
            "Data to DELETE (existing):",
            f"  Logs:    {deleted.log_count}",
            f"  Metrics: {deleted.metric_count}",
            f"  Traces:  {deleted.trace_count} (spans: {deleted.span_count})",
        ])

    lines.extend(["", "Data to IMPORT (from files):"])
    total_new = total_modified = total_skipped = 0
    for summary in report.summaries:
        lines.append(f"\n  [{summary.source.value}]")
        if summary.failed:
            lines.append(f"    FAILED: {summary.failed}")
            continue
        lines.append(
            f"    Files: {summary.total_files} total "
            f"({summary.new_files} new, {summary.modified_files} modified, {summary.skipped_files} skipped)"
        )
        lines.append(f"    Logs:    {summary.total_logs}")
        lines.append(f"    Metrics: {summary.total_metrics}")
        if summary.total_spans:
            lines.append(f"    Spans:   {summary.total_spans}")
        if summary.errors:
            lines.append(f"    Errors: {len(summary.errors)}")

        if verbose:
            for item in summary.sorted_files():
                if item.status == "skipped" and not (item.logs or item.metrics or item.spans):
                    continue
                span = ""
                if item.first_time is not None and item.last_time is not None:
                    span = f" [{format_datetime_utc(item.first_time)} .. {format_datetime_utc(item.last_time)}]"
                lines.append(
                    f"      {item.status:<8} {item.path}: "
                    f"{item.logs} logs, {item.metrics} metrics, {item.spans} spans{span}"
                )

        total_new += summary.new_files
        total_modified += summary.modified_files
        total_skipped += summary.skipped_files

    lines.extend([
        "",
        "  Total:",
        f"    Files: {total_new} new, {total_modified} modified, {total_skipped} skipped",
        f"    Logs:    {report.total_logs}",
        f"    Metrics: {report.total_metrics}",
    ])
    if report.total_spans:
        lines.append(f"    Spans:   {report.total_spans}")

    errors = sorted(report.errors, key=lambda e: e.file_path)
    if errors:
        lines.extend(["", "Errors:"])
        for error in errors:
            lines.append(f"  {error.file_path}: {error.error}")

    if report.is_empty():
        lines.extend(["", "Nothing to import."])
    return "\n".join(lines)
