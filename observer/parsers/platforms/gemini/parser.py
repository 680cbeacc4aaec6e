"""Parse Gemini CLI chat session documents into canonical telemetry records."""
from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Sequence

from observer.date_utils import parse_timestamp
from observer.errors import ParseError
from observer.models import ImportResult, MetricDataPoint, SourceType
from observer.parsers.common import (
    SEVERITY_ERROR,
    SEVERITY_INFO,
    SEVERITY_WARN,
    coerce_int,
    make_log,
    make_sum_metric,
    walk_session_files,
)
from observer.pricing import TokenUsage, calculate_cost

logger = logging.getLogger("observer.parsers.gemini")

TOKEN_USAGE_METRIC = "gemini_cli.token.usage"
COST_USAGE_METRIC = "gemini_cli.cost.usage"

_SEVERITY_BY_TYPE = {
    "error": SEVERITY_ERROR,
    "warning": SEVERITY_WARN,
}

_BODY_BY_TYPE = {
    "gemini": "api_response",
    "user": "user_prompt",
    "error": "api_error",
    "warning": "warning",
    "info": "info",
}

_TOKEN_FIELDS = ("input", "output", "cached", "thoughts", "tool")


def _is_session_file(path: Path) -> bool:
    return path.name.startswith("session-") and path.suffix == ".json"


def _load_session(path: Path) -> dict[str, Any]:
    try:
        raw = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ParseError(path, f"reading file: not valid UTF-8 ({exc})") from exc
    except OSError as exc:
        raise ParseError(path, f"reading file: {exc}") from exc
    try:
        session = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ParseError(path, f"parsing JSON: {exc}") from exc
    if not isinstance(session, dict):
        raise ParseError(path, "parsing JSON: session document must be an object")
    messages = session.get("messages", [])
    if messages is not None and not isinstance(messages, list):
        raise ParseError(path, "parsing JSON: 'messages' must be an array")
    return session


def _session_id_from_filename(path: Path) -> str:
    stem = path.stem
    return stem[len("session-"):] if stem.startswith("session-") else stem


class GeminiParser:
    """Session parser for `~/.gemini/tmp/<project-hash>/chats/session-*.json`."""

    def __init__(self, roots: Sequence[Path]):
        self.roots = [Path(root) for root in roots]

    @property
    def source(self) -> SourceType:
        return SourceType.GEMINI

    def find_session_files(self) -> list[Path]:
        return walk_session_files(self.roots, _is_session_file)

    def parse_file(self, path: Path) -> ImportResult:
        path = Path(path)
        session = _load_session(path)
        service = self.source.service_name

        session_id = str(session.get("sessionId") or "") or _session_id_from_filename(path)
        project_hash = str(session.get("projectHash") or "")
        result = ImportResult(file_path=str(path), session_id=session_id)

        for message in session.get("messages") or []:
            if not isinstance(message, dict):
                continue
            ts = parse_timestamp(message.get("timestamp"))
            if ts is None:
                continue
            result.observe(ts)

            msg_type = str(message.get("type") or "")
            model = str(message.get("model") or "")
            attrs = {
                "event.name": f"gemini_cli.{msg_type}",
                "session.id": session_id,
                "message.id": str(message.get("id") or ""),
            }
            if model:
                attrs["model"] = model
            if project_hash:
                attrs["project_hash"] = project_hash
            result.logs.append(
                make_log(
                    ts,
                    service,
                    _BODY_BY_TYPE.get(msg_type, msg_type),
                    attrs,
                    severity=_SEVERITY_BY_TYPE.get(msg_type, SEVERITY_INFO),
                )
            )
            result.record_count += 1

            tokens = message.get("tokens")
            if msg_type == "gemini" and isinstance(tokens, dict):
                result.metrics.extend(self._token_metrics(ts, model, session_id, tokens))

        # Session metadata wins over message timestamps: the session can be
        # touched after its last message was written.
        start = parse_timestamp(session.get("startTime"))
        if start is not None:
            result.first_time = start
        last_updated = parse_timestamp(session.get("lastUpdated"))
        if last_updated is not None:
            result.last_time = last_updated

        return result

    def _token_metrics(
        self,
        ts: datetime,
        model: str,
        session_id: str,
        tokens: dict[str, Any],
    ) -> list[MetricDataPoint]:
        service = self.source.service_name
        counts = {name: coerce_int(tokens.get(name)) for name in _TOKEN_FIELDS}
        metrics: list[MetricDataPoint] = [
            make_sum_metric(
                ts,
                service,
                TOKEN_USAGE_METRIC,
                value,
                {"type": name, "model": model, "session.id": session_id},
                unit="tokens",
            )
            for name, value in counts.items()
            if value > 0
        ]

        usage = TokenUsage(
            input=counts["input"],
            output=counts["output"],
            cache_read=counts["cached"],
            reasoning=counts["thoughts"],
            tool=counts["tool"],
        )
        cost = calculate_cost(self.source, model, usage)
        if cost is None:
            logger.debug("No gemini pricing for model %r", model)
        elif cost > 0:
            metrics.append(
                make_sum_metric(
                    ts,
                    service,
                    COST_USAGE_METRIC,
                    cost,
                    {"model": model, "session.id": session_id},
                    unit="USD",
                )
            )
        return metrics
