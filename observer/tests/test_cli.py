import contextlib
import io
import json
import os
import sqlite3
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from observer.cli import main


def _claude_session(root: Path) -> None:
    entries = [
        {
            "type": "assistant",
            "sessionId": "cli-1",
            "requestId": f"req_{n}",
            "timestamp": f"2025-01-01T10:0{n}:00Z",
            "costUSD": 0.01,
            "message": {"id": f"msg_{n}", "model": "claude-sonnet-4-5", "usage": {"input_tokens": 10}},
        }
        for n in range(2)
    ]
    session = root / "-work" / "cli-1.jsonl"
    session.parent.mkdir(parents=True)
    session.write_text("\n".join(json.dumps(e) for e in entries) + "\n", encoding="utf-8")


class CliTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        base = Path(self._tmp.name)
        self.db_path = str(base / "store" / "observer.sqlite3")
        claude_root = base / "claude"
        _claude_session(claude_root)
        env = {
            "AI_OBSERVER_CLAUDE_PATH": str(claude_root),
            "AI_OBSERVER_CODEX_PATH": str(base / "no-codex"),
            "AI_OBSERVER_GEMINI_PATH": str(base / "no-gemini"),
        }
        patcher = mock.patch.dict(os.environ, env)
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _run(self, *argv: str, answer: bool = True) -> tuple[int, str]:
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            code = main(["--db", self.db_path, *argv], confirm=lambda prompt: answer)
        return code, out.getvalue()

    def _log_count(self) -> int:
        conn = sqlite3.connect(self.db_path)
        try:
            return conn.execute("SELECT COUNT(*) FROM otel_logs").fetchone()[0]
        finally:
            conn.close()

    def test_invalid_arguments_exit_with_error(self) -> None:
        for argv in (
            ("import", "cursor"),
            ("import", "all", "--pricing-mode", "free"),
            ("import", "all", "--from", "2025-02-01", "--to", "2025-01-01"),
            ("delete", "--scope", "events", "--from", "2025-01-01", "--to", "2025-01-02"),
        ):
            with self.subTest(argv=argv):
                code, output = self._run(*argv)
                self.assertEqual(code, 1)
                self.assertIn("Error:", output)

    def test_import_list_clear_and_delete(self) -> None:
        code, output = self._run("import", "claude-code", "--yes")
        self.assertEqual(code, 0)
        self.assertIn("Import complete: 1 file(s) recorded.", output)
        self.assertEqual(self._log_count(), 2)

        code, output = self._run("import-state", "list", "claude-code")
        self.assertEqual(code, 0)
        self.assertIn("[claude-code] 1 imported file(s)", output)
        self.assertIn("records=2", output)

        code, output = self._run("import-state", "clear", "claude-code", "--yes")
        self.assertEqual(code, 0)
        self.assertIn("cleared 1 file state row(s)", output)

        code, output = self._run("delete", "--from", "2025-01-01", "--to", "2025-01-01", "--service", "claude-code")
        self.assertEqual(code, 0)
        self.assertIn("Deletion complete: 2 logs", output)
        self.assertEqual(self._log_count(), 0)

    def test_declined_import_writes_nothing(self) -> None:
        code, output = self._run("import", "all", answer=False)
        self.assertEqual(code, 0)
        self.assertIn("Aborted.", output)
        self.assertEqual(self._log_count(), 0)

    def test_dry_run_reports_without_writing(self) -> None:
        code, output = self._run("import", "all", "--dry-run")
        self.assertEqual(code, 0)
        self.assertIn("Mode: DRY RUN", output)
        self.assertEqual(self._log_count(), 0)


if __name__ == "__main__":
    unittest.main()
