import json
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from observer.errors import ParseError
from observer.parsers.platforms.claude_code.parser import (
    COST_USAGE_METRIC,
    TOKEN_USAGE_METRIC,
    ClaudeCodeParser,
)
from observer.pricing import PricingMode


def _assistant(ts: str, message_id: str, request_id: str, usage: dict, cost=None) -> dict:
    entry = {
        "type": "assistant",
        "sessionId": "sess-1",
        "requestId": request_id,
        "timestamp": ts,
        "cwd": "/work/app",
        "message": {
            "id": message_id,
            "role": "assistant",
            "model": "claude-sonnet-4-5-20250929",
            "content": [{"type": "text", "text": "done"}],
            "usage": usage,
        },
    }
    if cost is not None:
        entry["costUSD"] = cost
    return entry


def _user(ts: str, text: str = "hello") -> dict:
    return {
        "type": "user",
        "sessionId": "sess-1",
        "timestamp": ts,
        "message": {"role": "user", "content": text},
    }


class ClaudeCodeParserTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name) / "projects"
        self.project = self.root / "-work-app"
        self.project.mkdir(parents=True)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _write(self, name: str, entries: list, extra_lines: list[str] | None = None) -> Path:
        path = self.project / name
        lines = [json.dumps(entry) for entry in entries] + list(extra_lines or [])
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    def test_two_requests_with_declared_costs(self) -> None:
        path = self._write(
            "abc.jsonl",
            [
                _assistant("2025-01-01T10:00:00Z", "msg_1", "req_1", {"input_tokens": 1000, "output_tokens": 500}, 0.05),
                _assistant("2025-01-01T10:05:00Z", "msg_2", "req_2", {"input_tokens": 800, "output_tokens": 300}, 0.03),
            ],
        )
        result = ClaudeCodeParser([self.root]).parse_file(path)

        self.assertEqual(len(result.logs), 2)
        self.assertEqual(result.record_count, 2)
        costs = [m.value for m in result.metrics if m.metric_name == COST_USAGE_METRIC]
        self.assertEqual(costs, [0.05, 0.03])
        tokens = [
            (m.attributes["type"], m.value)
            for m in result.metrics
            if m.metric_name == TOKEN_USAGE_METRIC
        ]
        self.assertEqual(tokens, [("input", 1000), ("output", 500), ("input", 800), ("output", 300)])
        for metric in result.metrics:
            self.assertEqual(metric.service_name, "claude-code")
            self.assertEqual(metric.attributes["import_source"], "local_jsonl")

    def test_raw_line_separator_in_message_text_keeps_the_entry(self) -> None:
        first = _assistant("2025-01-01T10:00:00Z", "msg_1", "req_1", {"input_tokens": 10}, 0.01)
        first["message"]["content"][0]["text"] = "line one\u2028line two"
        second = _assistant("2025-01-01T10:05:00Z", "msg_2", "req_2", {"input_tokens": 20}, 0.02)
        path = self.project / "sep.jsonl"
        path.write_text(
            "\n".join(json.dumps(e, ensure_ascii=False) for e in (first, second)) + "\n",
            encoding="utf-8",
        )

        result = ClaudeCodeParser([self.root]).parse_file(path)
        self.assertEqual(len(result.logs), 2)
        self.assertEqual(result.record_count, 2)
        costs = [m.value for m in result.metrics if m.metric_name == COST_USAGE_METRIC]
        self.assertEqual(costs, [0.01, 0.02])

    def test_api_request_log_attributes(self) -> None:
        path = self._write(
            "abc.jsonl",
            [
                _assistant(
                    "2025-01-01T10:00:05.123Z",
                    "msg_1",
                    "req_1",
                    {"input_tokens": 10, "output_tokens": 20, "cache_creation_input_tokens": 30, "cache_read_input_tokens": 40},
                    0.5,
                ),
            ],
        )
        log = ClaudeCodeParser([self.root]).parse_file(path).logs[0]
        self.assertEqual(log.body, "api_request")
        self.assertEqual(log.severity_text, "INFO")
        self.assertEqual(log.severity_number, 9)
        self.assertEqual(log.timestamp, datetime(2025, 1, 1, 10, 0, 5, 123000, tzinfo=timezone.utc))
        attrs = log.log_attributes
        self.assertEqual(attrs["event.name"], "claude_code.api_request")
        self.assertEqual(attrs["session.id"], "sess-1")
        self.assertEqual(attrs["model"], "claude-sonnet-4-5-20250929")
        self.assertEqual(attrs["cache_creation_tokens"], "30")
        self.assertEqual(attrs["cache_read_tokens"], "40")
        self.assertEqual(attrs["cost_usd"], "0.500000")
        self.assertEqual(attrs["cwd"], "/work/app")
        self.assertEqual(attrs["request_id"], "req_1")

    def test_duplicate_request_is_counted_once(self) -> None:
        entry = _assistant("2025-01-01T10:00:00Z", "msg_1", "req_1", {"input_tokens": 1000, "output_tokens": 500}, 0.05)
        path = self._write("dup.jsonl", [entry, entry, entry])
        result = ClaudeCodeParser([self.root]).parse_file(path)
        self.assertEqual(len(result.logs), 1)
        self.assertEqual(result.record_count, 1)
        self.assertEqual(len([m for m in result.metrics if m.metric_name == COST_USAGE_METRIC]), 1)

    def test_same_message_id_with_new_request_is_kept(self) -> None:
        path = self._write(
            "retry.jsonl",
            [
                _assistant("2025-01-01T10:00:00Z", "msg_1", "req_1", {"input_tokens": 5}),
                _assistant("2025-01-01T10:00:01Z", "msg_1", "req_2", {"input_tokens": 5}),
            ],
        )
        result = ClaudeCodeParser([self.root]).parse_file(path)
        self.assertEqual(len(result.logs), 2)

    def test_calculate_mode_ignores_declared_cost(self) -> None:
        usage = {
            "input_tokens": 1000,
            "output_tokens": 500,
            "cache_creation_input_tokens": 100,
            "cache_read_input_tokens": 50,
        }
        path = self._write("calc.jsonl", [_assistant("2025-01-01T10:00:00Z", "m", "r", usage, 9.0)])
        result = ClaudeCodeParser([self.root], pricing_mode=PricingMode.CALCULATE).parse_file(path)
        cost = [m.value for m in result.metrics if m.metric_name == COST_USAGE_METRIC]
        self.assertEqual(len(cost), 1)
        self.assertAlmostEqual(cost[0], 0.01089, places=9)

    def test_display_mode_without_declared_cost_emits_no_cost_metric(self) -> None:
        path = self._write(
            "display.jsonl",
            [_assistant("2025-01-01T10:00:00Z", "m", "r", {"input_tokens": 1000, "output_tokens": 500})],
        )
        result = ClaudeCodeParser([self.root], pricing_mode=PricingMode.DISPLAY).parse_file(path)
        self.assertFalse([m for m in result.metrics if m.metric_name == COST_USAGE_METRIC])
        self.assertEqual(result.logs[0].log_attributes["cost_usd"], "0.000000")

    def test_time_span_covers_user_entries_and_session_id_comes_from_file(self) -> None:
        path = self._write(
            "7f3c.jsonl",
            [
                _user("2025-01-01T09:59:00Z"),
                _assistant("2025-01-01T10:00:00Z", "m", "r", {"input_tokens": 1}),
                {"type": "summary", "summary": "no timestamp"},
            ],
        )
        result = ClaudeCodeParser([self.root]).parse_file(path)
        self.assertEqual(result.session_id, "7f3c")
        self.assertEqual(result.first_time, datetime(2025, 1, 1, 9, 59, tzinfo=timezone.utc))
        self.assertEqual(result.last_time, datetime(2025, 1, 1, 10, 0, tzinfo=timezone.utc))
        self.assertEqual(result.record_count, 2)
        self.assertEqual(len(result.logs), 1)

    def test_malformed_lines_are_skipped(self) -> None:
        path = self._write(
            "mixed.jsonl",
            [_assistant("2025-01-01T10:00:00Z", "m", "r", {"input_tokens": 1})],
            extra_lines=["{not json", "[1, 2]", ""],
        )
        result = ClaudeCodeParser([self.root]).parse_file(path)
        self.assertEqual(len(result.logs), 1)

    def test_file_with_only_malformed_lines_is_rejected(self) -> None:
        path = self._write("broken.jsonl", [], extra_lines=["{oops", "still not json"])
        with self.assertRaises(ParseError):
            ClaudeCodeParser([self.root]).parse_file(path)

    def test_empty_file_yields_empty_result(self) -> None:
        path = self.project / "empty.jsonl"
        path.write_text("", encoding="utf-8")
        result = ClaudeCodeParser([self.root]).parse_file(path)
        self.assertEqual(result.logs, [])
        self.assertIsNone(result.first_time)

    def test_transcripts_are_emitted_when_enabled(self) -> None:
        tool_call = {
            "type": "assistant",
            "sessionId": "sess-1",
            "timestamp": "2025-01-01T10:00:01Z",
            "message": {
                "role": "assistant",
                "content": [{"type": "tool_use", "name": "Bash", "input": {"command": "ls"}}],
            },
        }
        path = self._write("t.jsonl", [_user("2025-01-01T10:00:00Z", "list files"), tool_call])

        plain = ClaudeCodeParser([self.root]).parse_file(path)
        self.assertEqual(plain.logs, [])

        result = ClaudeCodeParser([self.root], include_transcripts=True).parse_file(path)
        self.assertEqual([log.body for log in result.logs], ["list files", "Tool call: Bash"])
        self.assertEqual(result.logs[0].log_attributes["message.role"], "user")
        self.assertEqual(result.logs[1].log_attributes["tool.name"], "Bash")
        self.assertEqual(result.logs[1].log_attributes["tool.input"], '{"command": "ls"}')
        self.assertEqual([log.log_attributes["message.index"] for log in result.logs], ["0", "1"])

    def test_find_session_files_is_recursive_and_sorted(self) -> None:
        nested = self.project / "sub"
        nested.mkdir()
        (nested / "b.jsonl").write_text("", encoding="utf-8")
        (self.project / "a.jsonl").write_text("", encoding="utf-8")
        (self.project / "notes.txt").write_text("", encoding="utf-8")

        parser = ClaudeCodeParser([self.root, Path(self._tmp.name) / "missing"])
        files = parser.find_session_files()
        self.assertEqual(files, [self.project / "a.jsonl", nested / "b.jsonl"])


if __name__ == "__main__":
    unittest.main()
