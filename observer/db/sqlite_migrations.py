"""Database schema creation and versioning.

All CREATE TABLE statements for the telemetry store.
Uses IF NOT EXISTS for idempotent runs.
"""
from __future__ import annotations

import logging

import aiosqlite

logger = logging.getLogger("observer.db")

SCHEMA_VERSION = 1

_TABLES = """
-- ── Schema version tracking ────────────────────────────────────────
CREATE TABLE IF NOT EXISTS schema_version (
    version   INTEGER NOT NULL,
    applied   TEXT NOT NULL DEFAULT (datetime('now'))
);

-- ── 1. Logs ────────────────────────────────────────────────────────
CREATE TABLE IF NOT EXISTS otel_logs (
    id                        INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp_ns              INTEGER NOT NULL,
    trace_id                  TEXT,
    span_id                   TEXT,
    trace_flags               INTEGER,
    severity_text             TEXT DEFAULT '',
    severity_number           INTEGER DEFAULT 0,
    service_name              TEXT NOT NULL,
    body                      TEXT DEFAULT '',
    resource_schema_url       TEXT DEFAULT '',
    resource_attributes_json  TEXT DEFAULT '{}',
    scope_schema_url          TEXT DEFAULT '',
    scope_name                TEXT DEFAULT '',
    scope_version             TEXT DEFAULT '',
    scope_attributes_json     TEXT DEFAULT '{}',
    log_attributes_json       TEXT DEFAULT '{}'
);

CREATE INDEX IF NOT EXISTS idx_logs_timestamp ON otel_logs(timestamp_ns);
CREATE INDEX IF NOT EXISTS idx_logs_service   ON otel_logs(service_name, timestamp_ns);
CREATE INDEX IF NOT EXISTS idx_logs_trace     ON otel_logs(trace_id);

-- ── 2. Metrics ─────────────────────────────────────────────────────
CREATE TABLE IF NOT EXISTS otel_metrics (
    id                           INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp_ns                 INTEGER NOT NULL,
    service_name                 TEXT NOT NULL,
    metric_name                  TEXT NOT NULL,
    metric_description           TEXT DEFAULT '',
    metric_unit                  TEXT DEFAULT '',
    resource_attributes_json     TEXT DEFAULT '{}',
    scope_name                   TEXT DEFAULT '',
    scope_version                TEXT DEFAULT '',
    attributes_json              TEXT DEFAULT '{}',
    metric_type                  TEXT NOT NULL,
    value                        REAL,
    aggregation_temporality      INTEGER,
    is_monotonic                 INTEGER,
    count                        INTEGER,
    sum                          REAL,
    bucket_counts_json           TEXT,
    explicit_bounds_json         TEXT,
    scale                        INTEGER,
    zero_count                   INTEGER,
    positive_offset              INTEGER,
    positive_bucket_counts_json  TEXT,
    negative_offset              INTEGER,
    negative_bucket_counts_json  TEXT,
    quantile_values_json         TEXT,
    quantile_quantiles_json      TEXT,
    min                          REAL,
    max                          REAL
);

CREATE INDEX IF NOT EXISTS idx_metrics_timestamp ON otel_metrics(timestamp_ns);
CREATE INDEX IF NOT EXISTS idx_metrics_name      ON otel_metrics(metric_name);
CREATE INDEX IF NOT EXISTS idx_metrics_service   ON otel_metrics(service_name, timestamp_ns);

-- ── 3. Traces (one row per span) ───────────────────────────────────
CREATE TABLE IF NOT EXISTS otel_traces (
    id                        INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp_ns              INTEGER NOT NULL,
    trace_id                  TEXT NOT NULL,
    span_id                   TEXT NOT NULL,
    parent_span_id            TEXT,
    trace_state               TEXT DEFAULT '',
    span_name                 TEXT NOT NULL,
    span_kind                 TEXT DEFAULT '',
    service_name              TEXT NOT NULL,
    resource_attributes_json  TEXT DEFAULT '{}',
    scope_name                TEXT DEFAULT '',
    scope_version             TEXT DEFAULT '',
    span_attributes_json      TEXT DEFAULT '{}',
    duration_ns               INTEGER DEFAULT 0,
    status_code               TEXT DEFAULT '',
    status_message            TEXT DEFAULT '',
    events_json               TEXT DEFAULT '[]',
    links_json                TEXT DEFAULT '[]'
);

CREATE INDEX IF NOT EXISTS idx_traces_timestamp ON otel_traces(timestamp_ns);
CREATE INDEX IF NOT EXISTS idx_traces_trace_id  ON otel_traces(trace_id);
CREATE INDEX IF NOT EXISTS idx_traces_service   ON otel_traces(service_name, timestamp_ns);

-- ── 4. Import State (Incremental Change Detection) ────────────────
CREATE TABLE IF NOT EXISTS import_state (
    source        TEXT NOT NULL,
    file_path     TEXT NOT NULL,
    file_hash     TEXT NOT NULL,
    imported_at   TEXT NOT NULL,
    record_count  INTEGER DEFAULT 0,
    PRIMARY KEY (source, file_path)
);
"""


async def run_migrations(db: aiosqlite.Connection) -> None:
    """Create all tables. Idempotent."""
    try:
        async with db.execute("SELECT MAX(version) FROM schema_version") as cur:
            row = await cur.fetchone()
            current_version = row[0] if row and row[0] else 0
    except aiosqlite.OperationalError:
        current_version = 0

    if current_version >= SCHEMA_VERSION:
        logger.info("Schema is up to date (version %s)", current_version)
        return

    logger.info("Running migrations: %s → %s", current_version, SCHEMA_VERSION)

    await db.executescript(_TABLES)

    await db.execute(
        "INSERT INTO schema_version (version) VALUES (?)",
        (SCHEMA_VERSION,),
    )
    await db.commit()
    logger.info("Migrations complete, schema version %s", SCHEMA_VERSION)
