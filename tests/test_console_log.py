import threading
import unittest
from datetime import datetime

from metricsbridge.services.console_log import ConsoleLogSink


def _fixed_clock():
    return datetime(2026, 1, 1, 12, 30, 5, 123456)


class ConsoleLogSinkTests(unittest.TestCase):
    def test_lines_are_timestamped_and_errors_prefixed(self):
        sink = ConsoleLogSink(clock=_fixed_clock)
        self.assertTrue(sink.append("Server started"))
        self.assertTrue(sink.append("Something broke", level="stderr"))
        self.assertEqual(sink.history(), [
            "[12:30:05.123456] Server started",
            "[12:30:05.123456] [ERROR] Something broke",
        ])

    def test_whole_second_timestamps_keep_microseconds(self):
        sink = ConsoleLogSink(clock=lambda: datetime(2026, 1, 1, 12, 0, 0))
        sink.append("hello")
        self.assertEqual(sink.history(), ["[12:00:00.000000] hello"])

    def test_blank_and_bridge_lines_are_dropped(self):
        sink = ConsoleLogSink(clock=_fixed_clock)
        self.assertFalse(sink.append("   "))
        self.assertFalse(sink.append(None))
        self.assertFalse(sink.append("[MetricsBridge] web server listening"))
        self.assertEqual(sink.history(), [])

    def test_buffer_is_bounded(self):
        sink = ConsoleLogSink(max_lines=5, clock=_fixed_clock)
        for index in range(12):
            sink.append(f"line {index}")
        history = sink.history()
        self.assertEqual(len(history), 5)
        self.assertTrue(history[0].endswith("line 7"))
        self.assertTrue(history[-1].endswith("line 11"))

    def test_extend_splits_lines_and_history_is_a_copy(self):
        sink = ConsoleLogSink(clock=_fixed_clock)
        sink.extend("one\n\ntwo\r\n")
        history = sink.history()
        history.append("mutated")
        self.assertEqual(len(sink.history()), 2)
        sink.clear()
        self.assertEqual(sink.history(), [])

    def test_concurrent_appends_respect_bound(self):
        sink = ConsoleLogSink(max_lines=100)

        def writer(prefix):
            for index in range(200):
                sink.append(f"{prefix}-{index}")

        threads = [threading.Thread(target=writer, args=(name,)) for name in "abcd"]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        self.assertEqual(len(sink.history()), 100)


if __name__ == "__main__":
    unittest.main()
