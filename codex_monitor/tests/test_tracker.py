import unittest
from datetime import datetime, timezone
from pathlib import Path

from codex_monitor.models import SessionSummary
from codex_monitor.watcher.tracker import ActiveSessionTracker


def _summary(session_id: str, end_minute: int, cwd: str = "/work/demo") -> SessionSummary:
    return SessionSummary(
        id=session_id,
        startTime=datetime(2025, 1, 31, 10, 0, tzinfo=timezone.utc),
        endTime=datetime(2025, 1, 31, 10, end_minute, tzinfo=timezone.utc),
        cwd=cwd,
        title="t",
        originator="codex_vscode",
        messageCount=1,
    )


class ActiveSessionTrackerTests(unittest.TestCase):
    def test_active_and_modified_update_entries(self) -> None:
        tracker = ActiveSessionTracker()
        path = Path("/s/rollout-a.jsonl")

        tracker.on_session_active(path, _summary("a", 1))
        entry = tracker.get(path)
        self.assertEqual(entry.lastEvent, "active")
        self.assertEqual(entry.project, "demo")
        self.assertEqual(entry.originator, "VS.CODE")

        tracker.on_session_modified(path, _summary("a", 5))
        entry = tracker.get(path)
        self.assertEqual(entry.lastEvent, "modified")
        self.assertEqual(entry.summary.endTime.minute, 5)

    def test_missing_summary_keeps_previous_one(self) -> None:
        tracker = ActiveSessionTracker()
        path = Path("/s/rollout-a.jsonl")
        tracker.on_session_active(path, _summary("a", 1))
        tracker.on_session_modified(path, None)
        self.assertEqual(tracker.get(path).summary.id, "a")

        unknown = Path("/s/rollout-b.jsonl")
        tracker.on_session_active(unknown, None)
        self.assertIsNone(tracker.get(unknown).summary)
        self.assertEqual(tracker.get(unknown).project, "Unknown")

    def test_inactive_removes_entry_and_list_is_newest_first(self) -> None:
        tracker = ActiveSessionTracker()
        first, second, third = Path("/s/a.jsonl"), Path("/s/b.jsonl"), Path("/s/c.jsonl")
        tracker.on_session_active(first, _summary("a", 1))
        tracker.on_session_active(second, _summary("b", 9))
        tracker.on_session_active(third, _summary("c", 4))

        self.assertEqual([s.summary.id for s in tracker.list()], ["b", "c", "a"])

        tracker.on_session_inactive(second, None)
        self.assertIsNone(tracker.get(second))
        self.assertEqual([s.summary.id for s in tracker.list()], ["c", "a"])

        tracker.clear()
        self.assertEqual(tracker.list(), [])

    def test_errors_are_remembered(self) -> None:
        tracker = ActiveSessionTracker()
        tracker.on_watch_error(RuntimeError("boom"))
        self.assertEqual(tracker.last_error, "boom")


if __name__ == "__main__":
    unittest.main()
