import tempfile
import unittest
from pathlib import Path
from zoneinfo import ZoneInfo

from metricsbridge.core import action_logging
from metricsbridge.core.action_logging import format_log_line, make_log_action, make_log_exception


class ActionLoggingTests(unittest.TestCase):
    def test_format_log_line_sanitizes_newlines(self):
        line = format_log_line("Jan 01 00:00:00", "10.0.0.1", "console", "admin", "say hi\nop me", "bad\r\nthing")
        self.assertEqual(line, "Jan 01 00:00:00 <10.0.0.1> [bridge/console] user=admin say hi op me rejected: bad thing")

    def test_log_action_appends_lines_outside_request(self):
        with tempfile.TemporaryDirectory() as tmp:
            log_dir = Path(tmp) / "logs"
            log_file = log_dir / "actions.log"
            log_action = make_log_action(ZoneInfo("UTC"), log_dir, log_file)
            log_action("login", actor="admin")
            log_action("login", actor="bob", rejection_message="Invalid credentials.")
            lines = log_file.read_text(encoding="utf-8").splitlines()
        self.assertEqual(len(lines), 2)
        self.assertIn("<bridge> [bridge/login] user=admin", lines[0])
        self.assertTrue(lines[1].endswith("rejected: Invalid credentials."))

    def test_log_exception_includes_context_and_type(self):
        with tempfile.TemporaryDirectory() as tmp:
            log_dir = Path(tmp)
            log_file = log_dir / "system.log"
            log_exception = make_log_exception(make_log_action(ZoneInfo("UTC"), log_dir, log_file))
            try:
                raise ValueError("boom")
            except ValueError as exc:
                log_exception("metrics/players", exc)
            text = log_file.read_text(encoding="utf-8")
        self.assertIn("[bridge/error]", text)
        self.assertIn("metrics/players: ValueError: boom", text)

    def test_rotation_keeps_backups(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "actions.log"
            path.write_text("x" * 20, encoding="utf-8")
            action_logging._rotate_log_file(path, max_bytes=10, backup_count=2)
            self.assertFalse(path.exists())
            self.assertTrue(path.with_name("actions.log.1").exists())


if __name__ == "__main__":
    unittest.main()
