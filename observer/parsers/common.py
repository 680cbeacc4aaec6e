"""Shared parser contract and helpers for session file importers."""
from __future__ import annotations

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol

from observer import config
from observer.errors import DiscoveryError, ParseError
from observer.models import ImportResult, LogRecord, MetricDataPoint, MetricType, SourceType

logger = logging.getLogger("observer.parsers")

IMPORT_SOURCE = "local_jsonl"

SEVERITY_INFO = ("INFO", 9)
SEVERITY_WARN = ("WARN", 13)
SEVERITY_ERROR = ("ERROR", 17)


class SessionParser(Protocol):
    """Capability every tool-specific parser provides.

    `parse_file` must not touch shared state: it reads one file and returns
    a self-contained ImportResult, so files can be parsed in any order.
    """

    @property
    def source(self) -> SourceType: ...

    def find_session_files(self) -> list[Path]: ...

    def parse_file(self, path: Path) -> ImportResult: ...


def walk_session_files(roots: Iterable[Path], match: Callable[[Path], bool]) -> list[Path]:
    """Recursively collect matching files under each root, in sorted order.

    Missing roots are ignored. A root that exists but cannot be listed raises
    DiscoveryError; unreadable nested directories are skipped.
    """
    files: list[Path] = []
    seen: set[str] = set()
    for root in roots:
        if not root.exists():
            logger.debug("Session root does not exist: %s", root)
            continue
        if not root.is_dir():
            raise DiscoveryError(f"session root is not a directory: {root}")

        root_failures: list[OSError] = []

        def _on_error(exc: OSError, _root: Path = root, _failures: list[OSError] = root_failures) -> None:
            if exc.filename is not None and Path(exc.filename) == _root:
                _failures.append(exc)
            else:
                logger.debug("Skipping unreadable directory %s: %s", exc.filename, exc)

        for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
            dirnames.sort()
            for name in sorted(filenames):
                candidate = Path(dirpath) / name
                if not match(candidate):
                    continue
                key = str(candidate)
                if key in seen:
                    continue
                seen.add(key)
                files.append(candidate)

        if root_failures:
            raise DiscoveryError(f"cannot read session root {root}: {root_failures[0]}") from root_failures[0]
    return files


def read_jsonl(path: Path) -> list[dict[str, Any]]:
    """Load every JSON object line of a JSONL file.

    Malformed or oversized lines are skipped. A file whose non-blank lines
    are all unusable is rejected as a whole.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ParseError(path, f"reading file: not valid UTF-8 ({exc})") from exc
    except OSError as exc:
        raise ParseError(path, f"opening file: {exc}") from exc

    entries: list[dict[str, Any]] = []
    non_blank = 0
    # Only "\n" ends a record; U+2028 and friends may appear raw inside strings.
    for line in text.split("\n"):
        line = line.rstrip("\r")
        if not line.strip():
            continue
        non_blank += 1
        if len(line) > config.JSONL_MAX_LINE_BYTES:
            logger.debug("Skipping oversized line (%d chars) in %s", len(line), path)
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(entry, dict):
            entries.append(entry)

    if non_blank and not entries:
        raise ParseError(path, f"parsing JSONL: none of {non_blank} line(s) is a JSON object")
    return entries


def coerce_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def coerce_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def make_log(
    ts: datetime,
    service_name: str,
    body: str,
    attributes: dict[str, str],
    severity: tuple[str, int] = SEVERITY_INFO,
) -> LogRecord:
    attrs = {key: value for key, value in attributes.items() if value is not None}
    attrs.setdefault("import_source", IMPORT_SOURCE)
    return LogRecord(
        timestamp=ts,
        service_name=service_name,
        severity_text=severity[0],
        severity_number=severity[1],
        body=body,
        log_attributes=attrs,
    )


def make_sum_metric(
    ts: datetime,
    service_name: str,
    metric_name: str,
    value: float,
    attributes: dict[str, str],
    unit: str = "",
) -> MetricDataPoint:
    attrs = {key: value for key, value in attributes.items() if value is not None}
    attrs.setdefault("import_source", IMPORT_SOURCE)
    return MetricDataPoint(
        timestamp=ts,
        service_name=service_name,
        metric_name=metric_name,
        metric_unit=unit,
        metric_type=MetricType.SUM,
        value=float(value),
        attributes=attrs,
    )
