"""Parse Claude Code JSONL transcripts into canonical telemetry records.

Each assistant line carries the usage of that single API request, so usage is
taken as-is (no delta reconstruction). Cost follows the run's pricing mode,
preferring or ignoring the line's own `costUSD` accordingly.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Sequence

from observer.date_utils import parse_timestamp
from observer.models import ImportResult, LogRecord, SourceType
from observer.parsers.common import (
    coerce_float,
    coerce_int,
    make_log,
    make_sum_metric,
    read_jsonl,
    walk_session_files,
)
from observer.pricing import PricingMode, TokenUsage, resolve_cost

logger = logging.getLogger("observer.parsers.claude_code")

TOKEN_USAGE_METRIC = "claude_code.token.usage"
COST_USAGE_METRIC = "claude_code.cost.usage"

# (usage field, metric `type` attribute)
_TOKEN_FIELDS: tuple[tuple[str, str], ...] = (
    ("input_tokens", "input"),
    ("output_tokens", "output"),
    ("cache_creation_input_tokens", "cacheCreation"),
    ("cache_read_input_tokens", "cacheRead"),
)

_TRANSCRIPT_ENTRY_TYPES = {"user", "assistant"}


def _content_blocks(message: dict[str, Any]) -> list[dict[str, Any]]:
    content = message.get("content")
    if isinstance(content, str):
        return [{"type": "text", "text": content}] if content.strip() else []
    if isinstance(content, list):
        return [block for block in content if isinstance(block, dict)]
    return []


def _tool_result_text(block: dict[str, Any]) -> str:
    content = block.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [
            str(part.get("text") or "")
            for part in content
            if isinstance(part, dict) and part.get("type") == "text"
        ]
        return "\n".join(part for part in parts if part)
    return ""


class ClaudeCodeParser:
    """Session parser for `~/.claude/projects/**/*.jsonl`."""

    def __init__(
        self,
        roots: Sequence[Path],
        pricing_mode: PricingMode = PricingMode.AUTO,
        include_transcripts: bool = False,
    ):
        self.roots = [Path(root) for root in roots]
        self.pricing_mode = pricing_mode
        self.include_transcripts = include_transcripts

    @property
    def source(self) -> SourceType:
        return SourceType.CLAUDE

    def find_session_files(self) -> list[Path]:
        return walk_session_files(self.roots, lambda p: p.suffix == ".jsonl")

    def parse_file(self, path: Path) -> ImportResult:
        path = Path(path)
        result = ImportResult(file_path=str(path), session_id=path.stem)
        service = self.source.service_name
        seen_requests: set[str] = set()
        message_index = 0

        for entry in read_jsonl(path):
            message = entry.get("message")
            if not isinstance(message, dict):
                continue
            entry_type = str(entry.get("type") or "")
            if entry_type not in _TRANSCRIPT_ENTRY_TYPES:
                continue
            ts = parse_timestamp(entry.get("timestamp"))
            if ts is None:
                continue

            result.observe(ts)
            session_id = str(entry.get("sessionId") or "") or result.session_id

            if self.include_transcripts:
                transcript = self._transcript_logs(entry_type, message, ts, session_id, message_index)
                message_index += len(transcript)
                result.logs.extend(transcript)

            usage = message.get("usage")
            if entry_type == "assistant" and isinstance(usage, dict):
                message_id = str(message.get("id") or "")
                request_id = str(entry.get("requestId") or "")
                if message_id and request_id:
                    # Streaming writes the same request more than once.
                    dedup_key = f"{message_id}:{request_id}"
                    if dedup_key in seen_requests:
                        logger.debug("Skipping duplicate request %s in %s", dedup_key, path)
                        continue
                    seen_requests.add(dedup_key)
                self._append_usage(result, entry, message, usage, ts, session_id, service)

            result.record_count += 1

        return result

    def _append_usage(
        self,
        result: ImportResult,
        entry: dict[str, Any],
        message: dict[str, Any],
        usage: dict[str, Any],
        ts,
        session_id: str,
        service: str,
    ) -> None:
        model = str(message.get("model") or "")
        tokens = TokenUsage(
            input=coerce_int(usage.get("input_tokens")),
            output=coerce_int(usage.get("output_tokens")),
            cache_creation=coerce_int(usage.get("cache_creation_input_tokens")),
            cache_read=coerce_int(usage.get("cache_read_input_tokens")),
        )
        cost = resolve_cost(
            self.pricing_mode,
            self.source,
            model,
            tokens,
            coerce_float(entry.get("costUSD")),
        )

        attrs = {
            "event.name": "claude_code.api_request",
            "session.id": session_id,
            "model": model,
            "input_tokens": str(tokens.input),
            "output_tokens": str(tokens.output),
            "cache_creation_tokens": str(tokens.cache_creation),
            "cache_read_tokens": str(tokens.cache_read),
            "cost_usd": f"{cost:.6f}",
        }
        if entry.get("cwd"):
            attrs["cwd"] = str(entry["cwd"])
        if entry.get("requestId"):
            attrs["request_id"] = str(entry["requestId"])
        result.logs.append(make_log(ts, service, "api_request", attrs))

        for field_name, token_type in _TOKEN_FIELDS:
            value = coerce_int(usage.get(field_name))
            if value > 0:
                result.metrics.append(
                    make_sum_metric(
                        ts,
                        service,
                        TOKEN_USAGE_METRIC,
                        value,
                        {"type": token_type, "model": model, "session.id": session_id},
                        unit="tokens",
                    )
                )
        if cost > 0:
            result.metrics.append(
                make_sum_metric(
                    ts,
                    service,
                    COST_USAGE_METRIC,
                    cost,
                    {"model": model, "session.id": session_id},
                    unit="USD",
                )
            )

    def _transcript_logs(
        self,
        entry_type: str,
        message: dict[str, Any],
        ts,
        session_id: str,
        start_index: int,
    ) -> list[LogRecord]:
        logs: list[LogRecord] = []
        index = start_index
        for block in _content_blocks(message):
            block_type = block.get("type")
            attrs = {
                "event.name": "transcript.message",
                "session.id": session_id,
                "message.role": entry_type,
            }
            if message.get("model"):
                attrs["model"] = str(message["model"])
            if message.get("id"):
                attrs["message.id"] = str(message["id"])

            if block_type == "text":
                body = str(block.get("text") or "")
                if not body:
                    continue
            elif block_type == "tool_use":
                name = str(block.get("name") or "")
                attrs["message.role"] = "tool_use"
                attrs["tool.name"] = name
                if block.get("input") is not None:
                    attrs["tool.input"] = json.dumps(block["input"], sort_keys=True)
                body = f"Tool call: {name}"
            elif block_type == "tool_result":
                body = _tool_result_text(block)
                attrs["message.role"] = "tool_result"
                if block.get("tool_use_id"):
                    attrs["tool.use_id"] = str(block["tool_use_id"])
                if body:
                    attrs["tool.output"] = body
            else:
                continue

            attrs["message.index"] = str(index)
            logs.append(make_log(ts, self.source.service_name, body, attrs))
            index += 1
        return logs
