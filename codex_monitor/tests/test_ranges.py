import unittest
from datetime import datetime, timezone

from codex_monitor.models import SessionMessage
from codex_monitor.parsers.ranges import RangeParseError, parse_ranges, select_messages


class RangeParsingTests(unittest.TestCase):
    def test_parse_indexes_and_spans(self) -> None:
        self.assertEqual(parse_ranges("1...3, 25...28,7"), [(1, 3), (25, 28), (7, 7)])

    def test_reversed_span_is_normalized(self) -> None:
        self.assertEqual(parse_ranges("5...2"), [(2, 5)])

    def test_empty_input_selects_everything(self) -> None:
        self.assertEqual(parse_ranges(""), [])
        self.assertEqual(parse_ranges("  , ,"), [])

    def test_invalid_segments(self) -> None:
        for value in ("0", "-1", "a", "1...", "1...2...3", "x...4"):
            with self.subTest(value=value):
                with self.assertRaises(RangeParseError):
                    parse_ranges(value)

    def test_select_messages_keeps_one_based_positions(self) -> None:
        stamp = datetime(2025, 1, 31, tzinfo=timezone.utc)
        messages = [SessionMessage(role="user", timestamp=stamp, text=str(i)) for i in range(1, 6)]

        selected = select_messages(messages, [(2, 3), (5, 9)])
        self.assertEqual([(index, m.text) for index, m in selected], [(2, "2"), (3, "3"), (5, "5")])
        self.assertEqual(len(select_messages(messages, [])), 5)


if __name__ == "__main__":
    unittest.main()
