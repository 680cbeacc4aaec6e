"""Range deletion over the telemetry store, with a dry preview."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from observer.db.repositories.telemetry import SqliteTelemetryRepository, TimeRange
from observer.errors import ConfigurationError
from observer.models import DeleteSummary


class DeleteScope(str, Enum):
    LOGS = "logs"
    METRICS = "metrics"
    TRACES = "traces"
    ALL = "all"


def parse_delete_scope(value: str) -> DeleteScope:
    token = (value or "").strip().lower()
    for scope in DeleteScope:
        if scope.value == token:
            return scope
    raise ConfigurationError(f"unknown delete scope: {value!r} (valid: logs, metrics, traces, all)")


@dataclass(frozen=True)
class DeleteOptions:
    scope: DeleteScope
    from_time: datetime
    to_time: datetime
    service: Optional[str] = None

    @property
    def window(self) -> TimeRange:
        return TimeRange(start=self.from_time, end=self.to_time, service=self.service)


async def preview(repo: SqliteTelemetryRepository, options: DeleteOptions) -> DeleteSummary:
    """Count what `execute` would remove, without touching the store."""
    window = options.window
    if options.scope is DeleteScope.LOGS:
        return DeleteSummary(log_count=await repo.count_logs_in_range(window))
    if options.scope is DeleteScope.METRICS:
        return DeleteSummary(metric_count=await repo.count_metrics_in_range(window))
    if options.scope is DeleteScope.TRACES:
        traces, spans = await repo.count_traces_in_range(window)
        return DeleteSummary(trace_count=traces, span_count=spans)
    return await repo.count_all_in_range(window)


async def execute(repo: SqliteTelemetryRepository, options: DeleteOptions) -> DeleteSummary:
    window = options.window
    if options.scope is DeleteScope.LOGS:
        return DeleteSummary(log_count=await repo.delete_logs_in_range(window))
    if options.scope is DeleteScope.METRICS:
        return DeleteSummary(metric_count=await repo.delete_metrics_in_range(window))
    if options.scope is DeleteScope.TRACES:
        return DeleteSummary(span_count=await repo.delete_traces_in_range(window))
    return await repo.delete_all_in_range(window)


def render_delete_summary(summary: DeleteSummary, options: DeleteOptions) -> str:
    lines = [
        "Delete Summary",
        "==============",
        f"Time range: {options.from_time:%Y-%m-%d} to {options.to_time:%Y-%m-%d}",
        f"Service: {options.service or 'all'}",
        "",
        "Records to be deleted:",
    ]
    if options.scope in (DeleteScope.LOGS, DeleteScope.ALL):
        lines.append(f"  Logs:    {summary.log_count}")
    if options.scope in (DeleteScope.METRICS, DeleteScope.ALL):
        lines.append(f"  Metrics: {summary.metric_count}")
    if options.scope in (DeleteScope.TRACES, DeleteScope.ALL):
        lines.append(f"  Traces:  {summary.trace_count} (spans: {summary.span_count})")
    return "\n".join(lines)
