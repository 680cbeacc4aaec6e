"""Repository package for database access."""

from .import_state import SqliteImportStateRepository
from .telemetry import SqliteTelemetryRepository, TimeRange

__all__ = [
    "SqliteImportStateRepository",
    "SqliteTelemetryRepository",
    "TimeRange",
]
