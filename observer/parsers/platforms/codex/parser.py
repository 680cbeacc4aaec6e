"""Parse Codex CLI rollout JSONL files into canonical telemetry records.

Codex writes `token_count` events holding the running session total, so the
parser folds consecutive snapshots into per-event deltas. The fold state
lives inside a single `parse_file` call.
"""
from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Sequence

from observer.date_utils import parse_timestamp
from observer.models import ImportResult, MetricDataPoint, SourceType
from observer.parsers.common import (
    coerce_int,
    make_log,
    make_sum_metric,
    read_jsonl,
    walk_session_files,
)
from observer.pricing import TokenUsage, calculate_cost

logger = logging.getLogger("observer.parsers.codex")

TOKEN_USAGE_METRIC = "codex_cli_rs.token.usage"
COST_USAGE_METRIC = "codex_cli_rs.cost.usage"

_MESSAGE_EVENTS = {"user_message", "agent_message"}

# (TokenUsage field, metric `type` attribute)
_DELTA_CATEGORIES: tuple[tuple[str, str], ...] = (
    ("input", "input"),
    ("output", "output"),
    ("cache_creation", "cache_creation"),
    ("cache_read", "cache_read"),
    ("reasoning", "reasoning"),
    ("tool", "tool"),
)


def snapshot_from_payload(total: dict[str, Any]) -> TokenUsage:
    """Read a `total_token_usage` object; `cached_input_tokens` is the older name for cache reads."""
    cache_read = coerce_int(total.get("cache_read_input_tokens"))
    if cache_read == 0:
        cache_read = coerce_int(total.get("cached_input_tokens"))
    return TokenUsage(
        input=coerce_int(total.get("input_tokens")),
        output=coerce_int(total.get("output_tokens")),
        cache_creation=coerce_int(total.get("cache_creation_input_tokens")),
        cache_read=cache_read,
        reasoning=coerce_int(total.get("reasoning_output_tokens")),
        tool=coerce_int(total.get("tool_tokens")),
    )


def usage_delta(current: TokenUsage, previous: TokenUsage | None) -> TokenUsage:
    """Per-category difference between two cumulative snapshots, floored at zero."""
    base = previous or TokenUsage()
    return TokenUsage(
        input=max(0, current.input - base.input),
        output=max(0, current.output - base.output),
        cache_creation=max(0, current.cache_creation - base.cache_creation),
        cache_read=max(0, current.cache_read - base.cache_read),
        reasoning=max(0, current.reasoning - base.reasoning),
        tool=max(0, current.tool - base.tool),
    )


class CodexParser:
    """Session parser for `~/.codex/sessions/**/rollout-*.jsonl`."""

    def __init__(self, roots: Sequence[Path]):
        self.roots = [Path(root) for root in roots]

    @property
    def source(self) -> SourceType:
        return SourceType.CODEX

    def find_session_files(self) -> list[Path]:
        return walk_session_files(self.roots, lambda p: p.suffix == ".jsonl")

    def parse_file(self, path: Path) -> ImportResult:
        path = Path(path)
        result = ImportResult(file_path=str(path), session_id=path.stem)
        service = self.source.service_name
        current_model = ""
        previous: TokenUsage | None = None

        for entry in read_jsonl(path):
            ts = parse_timestamp(entry.get("timestamp"))
            if ts is None:
                continue
            result.observe(ts)

            entry_type = entry.get("type")
            payload = entry.get("payload")
            if not isinstance(payload, dict):
                continue

            if entry_type == "session_meta":
                if payload.get("id"):
                    result.session_id = str(payload["id"])
                if payload.get("model"):
                    current_model = str(payload["model"])
                attrs = {
                    "event.name": "codex.conversation_starts",
                    "session.id": result.session_id,
                    "model": str(payload.get("model") or ""),
                    "model_provider": str(payload.get("model_provider") or ""),
                    "cli_version": str(payload.get("cli_version") or ""),
                }
                if payload.get("cwd"):
                    attrs["cwd"] = str(payload["cwd"])
                result.logs.append(make_log(ts, service, "conversation_starts", attrs))
                result.record_count += 1

            elif entry_type == "turn_context":
                if payload.get("model"):
                    current_model = str(payload["model"])

            elif entry_type == "event_msg":
                event_type = str(payload.get("type") or "")
                if event_type in _MESSAGE_EVENTS:
                    attrs = {
                        "event.name": f"codex.{event_type}",
                        "session.id": result.session_id,
                    }
                    if current_model:
                        attrs["model"] = current_model
                    result.logs.append(make_log(ts, service, event_type, attrs))
                    result.record_count += 1
                elif event_type == "token_count":
                    info = payload.get("info")
                    total = info.get("total_token_usage") if isinstance(info, dict) else None
                    if not isinstance(total, dict):
                        continue
                    current = snapshot_from_payload(total)
                    delta = usage_delta(current, previous)
                    previous = current
                    result.metrics.extend(self._delta_metrics(ts, current_model, result.session_id, delta))
                    result.record_count += 1

        return result

    def _delta_metrics(
        self,
        ts: datetime,
        model: str,
        session_id: str,
        delta: TokenUsage,
    ) -> list[MetricDataPoint]:
        service = self.source.service_name
        metrics: list[MetricDataPoint] = []
        for field_name, token_type in _DELTA_CATEGORIES:
            value = getattr(delta, field_name)
            if value > 0:
                metrics.append(
                    make_sum_metric(
                        ts,
                        service,
                        TOKEN_USAGE_METRIC,
                        value,
                        {"type": token_type, "model": model, "session.id": session_id},
                        unit="tokens",
                    )
                )

        # Codex logs carry no cost of their own; unrated models produce no cost metric.
        cost = calculate_cost(self.source, model, delta)
        if cost is None:
            logger.debug("No codex pricing for model %r", model)
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
