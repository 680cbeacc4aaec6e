import unittest
from datetime import datetime, timezone

from observer.importer.report import render_report
from observer.models import (
    DeleteSummary,
    ImportReport,
    ImportResult,
    ImportSummary,
    LogRecord,
    MetricDataPoint,
    MetricType,
    SourceType,
)

T0 = datetime(2025, 2, 1, 9, 0, tzinfo=timezone.utc)


def _result(path: str, logs: int, metrics: int) -> ImportResult:
    result = ImportResult(file_path=path, session_id=path.rsplit("/", 1)[-1])
    result.logs = [LogRecord(timestamp=T0, service_name="codex_cli_rs") for _ in range(logs)]
    result.metrics = [
        MetricDataPoint(
            timestamp=T0,
            service_name="codex_cli_rs",
            metric_name="codex_cli_rs.token.usage",
            metric_type=MetricType.SUM,
            value=1.0,
        )
        for _ in range(metrics)
    ]
    result.observe(T0)
    return result


class ImportSummaryTests(unittest.TestCase):
    def test_totals_are_sums_over_added_results(self) -> None:
        summary = ImportSummary(source=SourceType.CODEX)
        summary.add(_result("/s/b.jsonl", 2, 3), "new")
        summary.add(_result("/s/a.jsonl", 1, 0), "modified")
        summary.add_skipped("/s/c.jsonl")

        self.assertEqual((summary.total_logs, summary.total_metrics, summary.total_spans), (3, 3, 0))
        self.assertEqual((summary.new_files, summary.modified_files, summary.skipped_files), (1, 1, 1))
        self.assertEqual([f.path for f in summary.sorted_files()], ["/s/a.jsonl", "/s/b.jsonl", "/s/c.jsonl"])
        self.assertFalse(summary.is_empty())

    def test_summary_with_only_skipped_files_is_empty(self) -> None:
        summary = ImportSummary(source=SourceType.GEMINI)
        summary.add_skipped("/g/session-1.json")
        self.assertTrue(summary.is_empty())

    def test_report_aggregates_summaries(self) -> None:
        codex = ImportSummary(source=SourceType.CODEX)
        codex.add(_result("/s/a.jsonl", 2, 1), "new")
        claude = ImportSummary(source=SourceType.CLAUDE)
        claude.add_error("/c/bad.jsonl", ValueError("broken"))
        report = ImportReport(summaries=[codex, claude])

        self.assertEqual((report.total_logs, report.total_metrics), (2, 1))
        self.assertEqual([e.file_path for e in report.errors], ["/c/bad.jsonl"])
        self.assertFalse(report.is_empty())
        self.assertTrue(ImportReport(summaries=[claude]).is_empty())


class RenderReportTests(unittest.TestCase):
    def test_dry_run_purge_report(self) -> None:
        summary = ImportSummary(source=SourceType.CODEX, total_files=2)
        summary.add(_result("/s/a.jsonl", 2, 1), "new")
        summary.add_error("/s/z.jsonl", "parsing JSONL: none of 1 line(s) is a JSON object")
        report = ImportReport(
            summaries=[summary],
            delete_summary=DeleteSummary(log_count=5, metric_count=4),
            from_date=datetime(2025, 1, 1, tzinfo=timezone.utc),
            dry_run=True,
            purge=True,
        )

        text = render_report(report, verbose=True)
        self.assertIn("Mode: DRY RUN", text)
        self.assertIn("Data to DELETE (existing):", text)
        self.assertIn("  Logs:    5", text)
        self.assertIn("Time range: 2025-01-01 to now", text)
        self.assertIn("[codex]", text)
        self.assertIn("/s/a.jsonl: 2 logs, 1 metrics, 0 spans", text)
        self.assertIn("Errors: 1", text)
        self.assertIn("  /s/z.jsonl: parsing JSONL", text)
        self.assertNotIn("Nothing to import.", text)

    def test_failed_source_and_empty_report(self) -> None:
        summary = ImportSummary(source=SourceType.GEMINI, failed="cannot read session root /g")
        text = render_report(ImportReport(summaries=[summary]))
        self.assertIn("FAILED: cannot read session root /g", text)
        self.assertIn("Nothing to import.", text)


if __name__ == "__main__":
    unittest.main()
