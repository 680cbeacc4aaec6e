import json
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from observer.parsers.platforms.codex.parser import (
    COST_USAGE_METRIC,
    TOKEN_USAGE_METRIC,
    CodexParser,
    snapshot_from_payload,
    usage_delta,
)
from observer.pricing import TokenUsage


def _token_count(ts: str, input_tokens: int, output_tokens: int, reasoning: int = 0, tool: int = 0, **extra) -> dict:
    total = {
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "reasoning_output_tokens": reasoning,
        "tool_tokens": tool,
    }
    total.update(extra)
    return {
        "timestamp": ts,
        "type": "event_msg",
        "payload": {"type": "token_count", "info": {"total_token_usage": total}},
    }


def _event(ts: str, event_type: str) -> dict:
    return {"timestamp": ts, "type": "event_msg", "payload": {"type": event_type, "message": "..."}}


SESSION_META = {
    "timestamp": "2025-01-01T10:00:00Z",
    "type": "session_meta",
    "payload": {
        "id": "sess-abc",
        "model": "gpt-5",
        "model_provider": "openai",
        "cli_version": "0.50.0",
        "cwd": "/work/app",
    },
}

TURN_CONTEXT = {
    "timestamp": "2025-01-01T10:00:01Z",
    "type": "turn_context",
    "payload": {"model": "gpt-5-codex"},
}


def _tokens_at(result, ts: datetime) -> dict:
    return {
        m.attributes["type"]: m.value
        for m in result.metrics
        if m.metric_name == TOKEN_USAGE_METRIC and m.timestamp == ts
    }


class UsageDeltaTests(unittest.TestCase):
    def test_first_snapshot_is_its_own_delta(self) -> None:
        current = TokenUsage(input=500, output=200, reasoning=50, tool=10)
        self.assertEqual(usage_delta(current, None), current)

    def test_delta_between_snapshots(self) -> None:
        first = TokenUsage(input=500, output=200, reasoning=50, tool=10)
        second = TokenUsage(input=800, output=350, reasoning=100, tool=20)
        self.assertEqual(
            usage_delta(second, first),
            TokenUsage(input=300, output=150, cache_creation=0, cache_read=0, reasoning=50, tool=10),
        )

    def test_regressing_counter_is_clamped_to_zero(self) -> None:
        delta = usage_delta(TokenUsage(input=400, output=300), TokenUsage(input=500, output=200))
        self.assertEqual(delta.input, 0)
        self.assertEqual(delta.output, 100)

    def test_cached_input_tokens_alias(self) -> None:
        self.assertEqual(snapshot_from_payload({"cached_input_tokens": 70}).cache_read, 70)
        self.assertEqual(
            snapshot_from_payload({"cache_read_input_tokens": 5, "cached_input_tokens": 70}).cache_read,
            5,
        )


class CodexParserTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name) / "sessions"
        self.day = self.root / "2025" / "01" / "01"
        self.day.mkdir(parents=True)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _write(self, entries: list, name: str = "rollout-2025-01-01T10-00-00-abc.jsonl") -> Path:
        path = self.day / name
        path.write_text("\n".join(json.dumps(e) for e in entries) + "\n", encoding="utf-8")
        return path

    def _session(self) -> Path:
        return self._write(
            [
                SESSION_META,
                TURN_CONTEXT,
                _event("2025-01-01T10:00:02Z", "user_message"),
                _token_count("2025-01-01T10:00:03Z", 500, 200, reasoning=50, tool=10),
                _event("2025-01-01T10:00:04Z", "agent_message"),
                _token_count("2025-01-01T10:00:05Z", 800, 350, reasoning=100, tool=20),
            ]
        )

    def test_cumulative_snapshots_become_deltas(self) -> None:
        result = CodexParser([self.root]).parse_file(self._session())

        first = _tokens_at(result, datetime(2025, 1, 1, 10, 0, 3, tzinfo=timezone.utc))
        second = _tokens_at(result, datetime(2025, 1, 1, 10, 0, 5, tzinfo=timezone.utc))
        self.assertEqual(first, {"input": 500, "output": 200, "reasoning": 50, "tool": 10})
        self.assertEqual(second, {"input": 300, "output": 150, "reasoning": 50, "tool": 10})

    def test_delta_cost_uses_current_model(self) -> None:
        result = CodexParser([self.root]).parse_file(self._session())
        costs = [m for m in result.metrics if m.metric_name == COST_USAGE_METRIC]
        self.assertEqual(len(costs), 2)
        self.assertAlmostEqual(costs[1].value, 300 * 1.25e-6 + 150 * 10e-6, places=12)
        self.assertEqual(costs[1].attributes["model"], "gpt-5-codex")
        self.assertEqual(costs[1].metric_unit, "USD")

    def test_session_metadata_and_counts(self) -> None:
        result = CodexParser([self.root]).parse_file(self._session())
        self.assertEqual(result.session_id, "sess-abc")
        self.assertEqual(result.record_count, 5)
        self.assertEqual(
            [log.log_attributes["event.name"] for log in result.logs],
            ["codex.conversation_starts", "codex.user_message", "codex.agent_message"],
        )
        start = result.logs[0].log_attributes
        self.assertEqual(start["model_provider"], "openai")
        self.assertEqual(start["cli_version"], "0.50.0")
        self.assertEqual(start["cwd"], "/work/app")
        self.assertEqual(result.logs[1].log_attributes["model"], "gpt-5-codex")
        self.assertEqual(result.first_time, datetime(2025, 1, 1, 10, 0, 0, tzinfo=timezone.utc))
        self.assertEqual(result.last_time, datetime(2025, 1, 1, 10, 0, 5, tzinfo=timezone.utc))
        for log in result.logs:
            self.assertEqual(log.service_name, "codex_cli_rs")

    def test_counter_reset_emits_no_negative_usage(self) -> None:
        path = self._write(
            [
                SESSION_META,
                _token_count("2025-01-01T10:00:01Z", 500, 200),
                _token_count("2025-01-01T10:00:02Z", 400, 260),
            ]
        )
        result = CodexParser([self.root]).parse_file(path)
        second = _tokens_at(result, datetime(2025, 1, 1, 10, 0, 2, tzinfo=timezone.utc))
        self.assertEqual(second, {"output": 60})
        self.assertTrue(all(m.value >= 0 for m in result.metrics))

    def test_token_count_without_info_is_ignored(self) -> None:
        path = self._write(
            [
                SESSION_META,
                {"timestamp": "2025-01-01T10:00:01Z", "type": "event_msg", "payload": {"type": "token_count", "info": None}},
            ]
        )
        result = CodexParser([self.root]).parse_file(path)
        self.assertEqual(result.metrics, [])
        self.assertEqual(result.record_count, 1)

    def test_unpriced_model_produces_tokens_but_no_cost(self) -> None:
        meta = json.loads(json.dumps(SESSION_META))
        meta["payload"]["model"] = "house-model"
        path = self._write([meta, _token_count("2025-01-01T10:00:01Z", 100, 10)])
        result = CodexParser([self.root]).parse_file(path)
        self.assertEqual({m.metric_name for m in result.metrics}, {TOKEN_USAGE_METRIC})

    def test_each_file_starts_a_fresh_fold(self) -> None:
        path = self._session()
        parser = CodexParser([self.root])
        first = parser.parse_file(path)
        second = parser.parse_file(path)
        self.assertEqual(
            [(m.metric_name, m.value) for m in first.metrics],
            [(m.metric_name, m.value) for m in second.metrics],
        )

    def test_find_session_files_walks_date_directories(self) -> None:
        path = self._session()
        (self.day / "notes.md").write_text("", encoding="utf-8")
        self.assertEqual(CodexParser([self.root]).find_session_files(), [path])


if __name__ == "__main__":
    unittest.main()
