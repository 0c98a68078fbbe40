import json
import os
import tempfile
import types
import unittest
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import patch

from fastapi import HTTPException

from codex_monitor.models import SessionSummary
from codex_monitor.routers import sessions as sessions_router
from codex_monitor.scanner import SessionScanner
from codex_monitor.watcher.tracker import ActiveSessionTracker


def _record(timestamp: str, record_type: str, payload: dict) -> str:
    return json.dumps({"timestamp": timestamp, "type": record_type, "payload": payload})


class SessionsApiRouterTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.root = Path(tmpdir.name)
        self.scanner = SessionScanner(self.root, ".jsonl")
        patcher = patch.object(sessions_router, "get_scanner", return_value=self.scanner)
        patcher.start()
        self.addCleanup(patcher.stop)

    def _write(self, relative: str, lines: list[str], mtime: float) -> Path:
        path = self.root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        os.utime(path, (mtime, mtime))
        return path

    def _session(self, session_id: str, mtime: float) -> Path:
        return self._write(
            f"2025/01/31/rollout-{session_id}.jsonl",
            [
                _record(
                    "2025-01-31T10:00:00Z",
                    "session_meta",
                    {"id": session_id, "cwd": "/work/widget", "originator": "codex_cli"},
                ),
                _record(
                    "2025-01-31T10:00:01Z",
                    "response_item",
                    {"type": "message", "role": "user", "content": "<INSTRUCTIONS>x</INSTRUCTIONS>Ship it"},
                ),
                _record(
                    "2025-01-31T10:00:02Z",
                    "response_item",
                    {"type": "message", "role": "assistant", "content": [{"type": "output_text", "text": "Shipped"}]},
                ),
                _record(
                    "2025-01-31T10:00:03Z",
                    "response_item",
                    {"type": "message", "role": "user", "content": "Thanks"},
                ),
            ],
            mtime,
        )

    async def test_list_sessions_returns_newest_first(self) -> None:
        older = self._session("older", 1_700_000_000)
        newer = self._session("newer", 1_700_000_500)

        response = await sessions_router.list_sessions(path="2025/01/31", limit=10)

        self.assertEqual([item.path for item in response], [str(newer), str(older)])
        self.assertEqual(response[0].project, "widget")
        self.assertEqual(response[0].originator, "CLI")
        self.assertEqual(response[0].summary.messageCount, 3)

    async def test_list_sessions_missing_path_is_404(self) -> None:
        with self.assertRaises(HTTPException) as ctx:
            await sessions_router.list_sessions(path="2031/01/01", limit=10)
        self.assertEqual(ctx.exception.status_code, 404)

    async def test_list_sessions_rejects_paths_outside_root(self) -> None:
        sessions_root = self.root / "sessions"
        outside = self.root / "secret" / "rollout-leak.jsonl"
        outside.parent.mkdir(parents=True)
        outside.write_text(
            _record("2025-01-31T10:00:00Z", "session_meta", {"id": "leak", "cwd": "/secret"}) + "\n",
            encoding="utf-8",
        )
        sessions_root.mkdir()

        with patch.object(sessions_router, "get_scanner", return_value=SessionScanner(sessions_root, ".jsonl")):
            for path in ("../secret", "../x"):
                with self.subTest(path=path):
                    with self.assertRaises(HTTPException) as ctx:
                        await sessions_router.list_sessions(path=path, limit=10)
                    self.assertEqual(ctx.exception.status_code, 404)
                    self.assertNotIn("leak", ctx.exception.detail)

    async def test_undecodable_session_file_is_422(self) -> None:
        self._session("good", 1_700_000_000)
        broken = self.root / "2025/01/31/rollout-binary.jsonl"
        broken.write_bytes(b"\xff\xfe\n")

        with self.assertRaises(HTTPException) as list_ctx:
            await sessions_router.list_sessions(path="2025/01/31", limit=10)
        self.assertEqual(list_ctx.exception.status_code, 422)
        self.assertIn("Malformed record", list_ctx.exception.detail)

        with self.assertRaises(HTTPException) as get_ctx:
            await sessions_router.get_session("binary", ranges=None, strip_instructions=False)
        self.assertEqual(get_ctx.exception.status_code, 422)

    async def test_get_session_filters_ranges(self) -> None:
        self._session("abc123", 1_700_000_000)

        response = await sessions_router.get_session("abc123", ranges="2...3", strip_instructions=False)

        self.assertEqual(response.summary.id, "abc123")
        self.assertEqual([m.index for m in response.messages], [2, 3])
        self.assertEqual(response.messages[0].text, "Shipped")

    async def test_get_session_messages_strips_instructions_by_request(self) -> None:
        self._session("abc123", 1_700_000_000)

        stripped = await sessions_router.get_session_messages("abc123", ranges="1", strip_instructions=True)
        raw = await sessions_router.get_session_messages("abc123", ranges=None, strip_instructions=False)

        self.assertEqual([m.text for m in stripped], ["Ship it"])
        self.assertEqual(len(raw), 3)
        self.assertTrue(raw[0].text.startswith("<INSTRUCTIONS>"))

    async def test_unknown_session_is_404(self) -> None:
        with self.assertRaises(HTTPException) as ctx:
            await sessions_router.get_session("missing", ranges=None, strip_instructions=False)
        self.assertEqual(ctx.exception.status_code, 404)
        self.assertIn("missing", ctx.exception.detail)

    async def test_bad_ranges_are_400(self) -> None:
        self._session("abc123", 1_700_000_000)
        with self.assertRaises(HTTPException) as ctx:
            await sessions_router.get_session_messages("abc123", ranges="0...x", strip_instructions=True)
        self.assertEqual(ctx.exception.status_code, 400)

    async def test_malformed_session_is_422(self) -> None:
        self._write("2025/01/31/rollout-broken.jsonl", ['{"timestamp": "2025-01-31T10:00:00Z"'], 1_700_000_000)
        with self.assertRaises(HTTPException) as ctx:
            await sessions_router.get_session("broken", ranges=None, strip_instructions=False)
        self.assertEqual(ctx.exception.status_code, 422)

    async def test_active_sessions_come_from_tracker(self) -> None:
        tracker = ActiveSessionTracker()
        tracker.on_session_active(
            Path("/s/rollout-a.jsonl"),
            SessionSummary(
                id="a",
                startTime=datetime(2025, 1, 31, 10, tzinfo=timezone.utc),
                endTime=datetime(2025, 1, 31, 10, 5, tzinfo=timezone.utc),
                cwd="/work/widget",
            ),
        )
        fake_service = types.SimpleNamespace(tracker=tracker)

        with patch.object(sessions_router, "watch_service", fake_service):
            response = await sessions_router.list_active_sessions()

        self.assertEqual(len(response), 1)
        self.assertEqual(response[0].summary.id, "a")
        self.assertEqual(response[0].project, "widget")


if __name__ == "__main__":
    unittest.main()
