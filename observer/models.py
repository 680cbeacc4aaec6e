"""Pydantic models for canonical telemetry records and import bookkeeping."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# ── Sources ────────────────────────────────────────────────────────

class SourceType(str, Enum):
    CLAUDE = "claude-code"
    CODEX = "codex"
    GEMINI = "gemini"

    @property
    def service_name(self) -> str:
        """OTLP service.name emitted by the tool's own live telemetry."""
        return _SERVICE_NAMES[self]

    def __str__(self) -> str:
        return self.value


_SERVICE_NAMES = {
    SourceType.CLAUDE: "claude-code",
    SourceType.CODEX: "codex_cli_rs",
    SourceType.GEMINI: "gemini_cli",
}


def all_sources() -> list[SourceType]:
    return [SourceType.CLAUDE, SourceType.CODEX, SourceType.GEMINI]


def parse_source_type(value: str) -> SourceType | None:
    token = (value or "").strip().lower()
    for source in SourceType:
        if source.value == token:
            return source
    return None


# ── Canonical records ──────────────────────────────────────────────

class _Record(BaseModel):
    model_config = ConfigDict(frozen=True)


class LogRecord(_Record):
    timestamp: datetime
    trace_id: Optional[str] = None
    span_id: Optional[str] = None
    trace_flags: Optional[int] = None
    severity_text: str = ""
    severity_number: int = 0
    service_name: str
    body: str = ""
    resource_schema_url: str = ""
    resource_attributes: dict[str, str] = Field(default_factory=dict)
    scope_schema_url: str = ""
    scope_name: str = ""
    scope_version: str = ""
    scope_attributes: dict[str, str] = Field(default_factory=dict)
    log_attributes: dict[str, str] = Field(default_factory=dict)


class MetricType(str, Enum):
    GAUGE = "gauge"
    SUM = "sum"
    HISTOGRAM = "histogram"
    EXPONENTIAL_HISTOGRAM = "exponential_histogram"
    SUMMARY = "summary"


class MetricDataPoint(_Record):
    timestamp: datetime
    service_name: str
    metric_name: str
    metric_description: str = ""
    metric_unit: str = ""
    resource_attributes: dict[str, str] = Field(default_factory=dict)
    scope_name: str = ""
    scope_version: str = ""
    attributes: dict[str, str] = Field(default_factory=dict)
    metric_type: MetricType
    # None means the field was absent, which is distinct from zero.
    value: Optional[float] = None
    aggregation_temporality: Optional[int] = None
    is_monotonic: Optional[bool] = None
    count: Optional[int] = None
    sum: Optional[float] = None
    bucket_counts: Optional[list[int]] = None
    explicit_bounds: Optional[list[float]] = None
    scale: Optional[int] = None
    zero_count: Optional[int] = None
    positive_offset: Optional[int] = None
    positive_bucket_counts: Optional[list[int]] = None
    negative_offset: Optional[int] = None
    negative_bucket_counts: Optional[list[int]] = None
    quantile_values: Optional[list[float]] = None
    quantile_quantiles: Optional[list[float]] = None
    min: Optional[float] = None
    max: Optional[float] = None


class SpanEvent(_Record):
    timestamp: datetime
    name: str
    attributes: dict[str, str] = Field(default_factory=dict)


class SpanLink(_Record):
    trace_id: str
    span_id: str
    trace_state: str = ""
    attributes: dict[str, str] = Field(default_factory=dict)


class Span(_Record):
    timestamp: datetime
    trace_id: str
    span_id: str
    parent_span_id: Optional[str] = None
    trace_state: str = ""
    span_name: str
    span_kind: str = ""
    service_name: str
    resource_attributes: dict[str, str] = Field(default_factory=dict)
    scope_name: str = ""
    scope_version: str = ""
    span_attributes: dict[str, str] = Field(default_factory=dict)
    duration: int = 0  # nanoseconds
    status_code: str = ""
    status_message: str = ""
    events: list[SpanEvent] = Field(default_factory=list)
    links: list[SpanLink] = Field(default_factory=list)


# ── Import bookkeeping ─────────────────────────────────────────────

class ImportResult(BaseModel):
    """Everything one session file produced."""

    file_path: str
    session_id: str = ""
    logs: list[LogRecord] = Field(default_factory=list)
    metrics: list[MetricDataPoint] = Field(default_factory=list)
    spans: list[Span] = Field(default_factory=list)
    record_count: int = 0
    first_time: Optional[datetime] = None
    last_time: Optional[datetime] = None

    def observe(self, ts: datetime) -> None:
        if self.first_time is None or ts < self.first_time:
            self.first_time = ts
        if self.last_time is None or ts > self.last_time:
            self.last_time = ts


class FileStatus(str, Enum):
    NEW = "new"
    MODIFIED = "modified"
    CURRENT = "current"

    def label(self) -> str:
        """Status as shown in summaries: unchanged files are reported as skipped."""
        return "skipped" if self is FileStatus.CURRENT else self.value


class FileState(BaseModel):
    source: SourceType
    file_path: str
    file_hash: str
    imported_at: datetime
    record_count: int = 0


class FileSummary(BaseModel):
    path: str
    session_id: str = ""
    logs: int = 0
    metrics: int = 0
    spans: int = 0
    first_time: Optional[datetime] = None
    last_time: Optional[datetime] = None
    status: str = "new"  # "new" | "modified" | "skipped"


class FileImportError(BaseModel):
    file_path: str
    error: str


class ImportSummary(BaseModel):
    source: SourceType
    total_files: int = 0
    new_files: int = 0
    modified_files: int = 0
    skipped_files: int = 0
    total_logs: int = 0
    total_metrics: int = 0
    total_spans: int = 0
    files: list[FileSummary] = Field(default_factory=list)
    errors: list[FileImportError] = Field(default_factory=list)
    failed: Optional[str] = None  # source-level discovery failure

    def add(self, result: ImportResult, status: str) -> None:
        self.files.append(
            FileSummary(
                path=result.file_path,
                session_id=result.session_id,
                logs=len(result.logs),
                metrics=len(result.metrics),
                spans=len(result.spans),
                first_time=result.first_time,
                last_time=result.last_time,
                status=status,
            )
        )
        self.total_logs += len(result.logs)
        self.total_metrics += len(result.metrics)
        self.total_spans += len(result.spans)
        self._count_status(status)

    def add_skipped(self, path: str) -> None:
        self.files.append(FileSummary(path=path, status="skipped"))
        self._count_status("skipped")

    def add_error(self, file_path: str, error: BaseException | str) -> None:
        self.errors.append(FileImportError(file_path=file_path, error=str(error)))

    def _count_status(self, status: str) -> None:
        if status == "new":
            self.new_files += 1
        elif status == "modified":
            self.modified_files += 1
        elif status == "skipped":
            self.skipped_files += 1

    def is_empty(self) -> bool:
        return self.total_logs == 0 and self.total_metrics == 0 and self.total_spans == 0

    def sorted_files(self) -> list[FileSummary]:
        return sorted(self.files, key=lambda item: item.path)


class DeleteSummary(BaseModel):
    log_count: int = 0
    metric_count: int = 0
    trace_count: int = 0
    span_count: int = 0

    def is_empty(self) -> bool:
        return self.log_count == 0 and self.metric_count == 0 and self.span_count == 0


class ImportReport(BaseModel):
    """Outcome of one orchestrator run."""

    summaries: list[ImportSummary] = Field(default_factory=list)
    delete_summary: Optional[DeleteSummary] = None
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None
    dry_run: bool = False
    purge: bool = False
    aborted: bool = False
    imported_files: int = 0

    @property
    def total_logs(self) -> int:
        return sum(s.total_logs for s in self.summaries)

    @property
    def total_metrics(self) -> int:
        return sum(s.total_metrics for s in self.summaries)

    @property
    def total_spans(self) -> int:
        return sum(s.total_spans for s in self.summaries)

    @property
    def errors(self) -> list[FileImportError]:
        return [error for s in self.summaries for error in s.errors]

    def is_empty(self) -> bool:
        return all(s.is_empty() for s in self.summaries)
