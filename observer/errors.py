"""Error taxonomy for the import pipeline."""
from __future__ import annotations

from pathlib import Path


class ObserverError(Exception):
    """Base class for all importer errors."""


class ConfigurationError(ObserverError, ValueError):
    """Invalid run configuration (source, pricing mode, date range)."""


class DiscoveryError(ObserverError):
    """A session root exists but could not be enumerated."""


class ParseError(ObserverError):
    """A session file could not be parsed."""

    def __init__(self, path: Path | str, message: str):
        self.path = str(path)
        super().__init__(message)


class StateTrackerError(ObserverError):
    """A file could not be fingerprinted or its import state could not be read."""

    def __init__(self, path: Path | str, message: str):
        self.path = str(path)
        super().__init__(message)


class StoreError(ObserverError):
    """Telemetry store insert/delete/query failure. Fatal to an import run."""


class ImportCancelledError(ObserverError):
    """Raised when an import run is cancelled between files."""
