"""SQLite repository for canonical telemetry records."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Sequence

import aiosqlite

from observer.date_utils import from_unix_nano, to_unix_nano
from observer.db.repositories.base import store_errors
from observer.models import DeleteSummary, LogRecord, MetricDataPoint, Span

logger = logging.getLogger("observer.db")


@dataclass(frozen=True)
class TimeRange:
    """Inclusive `[start, end]` window with an optional service filter."""

    start: datetime
    end: datetime
    service: Optional[str] = None


def _json(value: Any) -> Optional[str]:
    return None if value is None else json.dumps(value)


def _opt_bool(value: Optional[bool]) -> Optional[int]:
    return None if value is None else int(value)


def _range_clause(window: TimeRange) -> tuple[str, list[Any]]:
    clause = "timestamp_ns >= ? AND timestamp_ns <= ?"
    params: list[Any] = [to_unix_nano(window.start), to_unix_nano(window.end)]
    if window.service:
        clause += " AND service_name = ?"
        params.append(window.service)
    return clause, params


def _log_row(log: LogRecord) -> tuple:
    return (
        to_unix_nano(log.timestamp), log.trace_id, log.span_id, log.trace_flags,
        log.severity_text, log.severity_number, log.service_name, log.body,
        log.resource_schema_url, json.dumps(log.resource_attributes),
        log.scope_schema_url, log.scope_name, log.scope_version,
        json.dumps(log.scope_attributes), json.dumps(log.log_attributes),
    )


def _metric_row(m: MetricDataPoint) -> tuple:
    return (
        to_unix_nano(m.timestamp), m.service_name, m.metric_name,
        m.metric_description, m.metric_unit, json.dumps(m.resource_attributes),
        m.scope_name, m.scope_version, json.dumps(m.attributes), m.metric_type.value,
        m.value, m.aggregation_temporality, _opt_bool(m.is_monotonic), m.count, m.sum,
        _json(m.bucket_counts), _json(m.explicit_bounds), m.scale, m.zero_count,
        m.positive_offset, _json(m.positive_bucket_counts),
        m.negative_offset, _json(m.negative_bucket_counts),
        _json(m.quantile_values), _json(m.quantile_quantiles), m.min, m.max,
    )


def _span_row(span: Span) -> tuple:
    events = [
        {
            "timestamp_ns": to_unix_nano(event.timestamp),
            "name": event.name,
            "attributes": event.attributes,
        }
        for event in span.events
    ]
    links = [link.model_dump() for link in span.links]
    return (
        to_unix_nano(span.timestamp), span.trace_id, span.span_id, span.parent_span_id,
        span.trace_state, span.span_name, span.span_kind, span.service_name,
        json.dumps(span.resource_attributes), span.scope_name, span.scope_version,
        json.dumps(span.span_attributes), span.duration, span.status_code,
        span.status_message, json.dumps(events), json.dumps(links),
    )


_INSERT_LOG = """INSERT INTO otel_logs (
    timestamp_ns, trace_id, span_id, trace_flags, severity_text, severity_number,
    service_name, body, resource_schema_url, resource_attributes_json,
    scope_schema_url, scope_name, scope_version, scope_attributes_json, log_attributes_json
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"""

_INSERT_METRIC = """INSERT INTO otel_metrics (
    timestamp_ns, service_name, metric_name, metric_description, metric_unit,
    resource_attributes_json, scope_name, scope_version, attributes_json, metric_type,
    value, aggregation_temporality, is_monotonic, count, sum,
    bucket_counts_json, explicit_bounds_json, scale, zero_count,
    positive_offset, positive_bucket_counts_json, negative_offset, negative_bucket_counts_json,
    quantile_values_json, quantile_quantiles_json, min, max
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"""

_INSERT_SPAN = """INSERT INTO otel_traces (
    timestamp_ns, trace_id, span_id, parent_span_id, trace_state, span_name, span_kind,
    service_name, resource_attributes_json, scope_name, scope_version, span_attributes_json,
    duration_ns, status_code, status_message, events_json, links_json
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"""


class SqliteTelemetryRepository:
    """Insert, count, delete and query OTLP-shaped records."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    # ── Inserts ─────────────────────────────────────────────────────

    @store_errors
    async def insert_logs(self, logs: Sequence[LogRecord]) -> int:
        if not logs:
            return 0
        await self.db.executemany(_INSERT_LOG, [_log_row(log) for log in logs])
        await self.db.commit()
        return len(logs)

    @store_errors
    async def insert_metrics(self, metrics: Sequence[MetricDataPoint]) -> int:
        if not metrics:
            return 0
        await self.db.executemany(_INSERT_METRIC, [_metric_row(m) for m in metrics])
        await self.db.commit()
        return len(metrics)

    @store_errors
    async def insert_spans(self, spans: Sequence[Span]) -> int:
        if not spans:
            return 0
        await self.db.executemany(_INSERT_SPAN, [_span_row(s) for s in spans])
        await self.db.commit()
        return len(spans)

    # ── Counts ──────────────────────────────────────────────────────

    async def _count(self, sql: str, params: list[Any]) -> int:
        async with self.db.execute(sql, params) as cur:
            row = await cur.fetchone()
            return int(row[0] or 0) if row else 0

    @store_errors
    async def count_logs_in_range(self, window: TimeRange) -> int:
        clause, params = _range_clause(window)
        return await self._count(f"SELECT COUNT(*) FROM otel_logs WHERE {clause}", params)

    @store_errors
    async def count_metrics_in_range(self, window: TimeRange) -> int:
        clause, params = _range_clause(window)
        return await self._count(f"SELECT COUNT(*) FROM otel_metrics WHERE {clause}", params)

    @store_errors
    async def count_traces_in_range(self, window: TimeRange) -> tuple[int, int]:
        """Return `(distinct traces, spans)` in the window."""
        clause, params = _range_clause(window)
        spans = await self._count(f"SELECT COUNT(*) FROM otel_traces WHERE {clause}", params)
        traces = await self._count(
            f"SELECT COUNT(DISTINCT trace_id) FROM otel_traces WHERE {clause}", params
        )
        return traces, spans

    async def count_all_in_range(self, window: TimeRange) -> DeleteSummary:
        traces, spans = await self.count_traces_in_range(window)
        return DeleteSummary(
            log_count=await self.count_logs_in_range(window),
            metric_count=await self.count_metrics_in_range(window),
            trace_count=traces,
            span_count=spans,
        )

    # ── Deletes ─────────────────────────────────────────────────────

    async def _delete(self, table: str, window: TimeRange, commit: bool = True) -> int:
        clause, params = _range_clause(window)
        cur = await self.db.execute(f"DELETE FROM {table} WHERE {clause}", params)
        deleted = cur.rowcount if cur.rowcount is not None and cur.rowcount >= 0 else 0
        await cur.close()
        if commit:
            await self.db.commit()
        return deleted

    @store_errors
    async def delete_logs_in_range(self, window: TimeRange) -> int:
        return await self._delete("otel_logs", window)

    @store_errors
    async def delete_metrics_in_range(self, window: TimeRange) -> int:
        return await self._delete("otel_metrics", window)

    @store_errors
    async def delete_traces_in_range(self, window: TimeRange) -> int:
        """Delete spans in the window; returns the number of span rows removed."""
        return await self._delete("otel_traces", window)

    @store_errors
    async def delete_all_in_range(self, window: TimeRange) -> DeleteSummary:
        summary = await self.count_all_in_range(window)
        try:
            await self.db.execute("BEGIN")
            summary.log_count = await self._delete("otel_logs", window, commit=False)
            summary.metric_count = await self._delete("otel_metrics", window, commit=False)
            summary.span_count = await self._delete("otel_traces", window, commit=False)
            await self.db.commit()
        except aiosqlite.Error:
            await self.db.rollback()
            raise
        return summary

    # ── Atomic purge + write ────────────────────────────────────────

    @store_errors
    async def replace_in_range(
        self,
        logs: Sequence[LogRecord],
        metrics: Sequence[MetricDataPoint],
        spans: Sequence[Span],
        purge: Sequence[TimeRange] = (),
    ) -> DeleteSummary:
        """Delete every purge window, then insert the records, in one transaction.

        Either all deletes and inserts become visible together or none do.
        Returns the number of rows the purge removed.
        """
        deleted = DeleteSummary()
        try:
            await self.db.execute("BEGIN IMMEDIATE")
            for window in purge:
                deleted.log_count += await self._delete("otel_logs", window, commit=False)
                deleted.metric_count += await self._delete("otel_metrics", window, commit=False)
                deleted.span_count += await self._delete("otel_traces", window, commit=False)
            if logs:
                await self.db.executemany(_INSERT_LOG, [_log_row(log) for log in logs])
            if metrics:
                await self.db.executemany(_INSERT_METRIC, [_metric_row(m) for m in metrics])
            if spans:
                await self.db.executemany(_INSERT_SPAN, [_span_row(s) for s in spans])
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        logger.debug(
            "Replaced range: -%d/+%d logs, -%d/+%d metrics, -%d/+%d spans",
            deleted.log_count, len(logs), deleted.metric_count, len(metrics),
            deleted.span_count, len(spans),
        )
        return deleted

    # ── Queries ─────────────────────────────────────────────────────

    @store_errors
    async def query_logs(
        self,
        window: TimeRange,
        limit: int = 100,
        offset: int = 0,
    ) -> list[LogRecord]:
        clause, params = _range_clause(window)
        async with self.db.execute(
            f"SELECT * FROM otel_logs WHERE {clause} ORDER BY timestamp_ns ASC, id ASC LIMIT ? OFFSET ?",
            [*params, limit, offset],
        ) as cur:
            rows = await cur.fetchall()
        return [
            LogRecord(
                timestamp=from_unix_nano(row["timestamp_ns"]),
                trace_id=row["trace_id"],
                span_id=row["span_id"],
                trace_flags=row["trace_flags"],
                severity_text=row["severity_text"] or "",
                severity_number=row["severity_number"] or 0,
                service_name=row["service_name"],
                body=row["body"] or "",
                resource_schema_url=row["resource_schema_url"] or "",
                resource_attributes=json.loads(row["resource_attributes_json"] or "{}"),
                scope_schema_url=row["scope_schema_url"] or "",
                scope_name=row["scope_name"] or "",
                scope_version=row["scope_version"] or "",
                scope_attributes=json.loads(row["scope_attributes_json"] or "{}"),
                log_attributes=json.loads(row["log_attributes_json"] or "{}"),
            )
            for row in rows
        ]

    @store_errors
    async def count_all(self) -> DeleteSummary:
        """Row counts over the whole store."""
        logs = await self._count("SELECT COUNT(*) FROM otel_logs", [])
        metrics = await self._count("SELECT COUNT(*) FROM otel_metrics", [])
        spans = await self._count("SELECT COUNT(*) FROM otel_traces", [])
        traces = await self._count("SELECT COUNT(DISTINCT trace_id) FROM otel_traces", [])
        return DeleteSummary(log_count=logs, metric_count=metrics, trace_count=traces, span_count=spans)
