"""Observability helpers."""

from observer.observability.otel import (
    initialize,
    shutdown,
    start_span,
    record_file_import,
    record_parser_failure,
    record_imported_records,
)

__all__ = [
    "initialize",
    "shutdown",
    "start_span",
    "record_file_import",
    "record_parser_failure",
    "record_imported_records",
]
