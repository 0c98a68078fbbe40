import tempfile
import unittest
from pathlib import Path

from codex_monitor.scanner import SessionScanner
from codex_monitor.watcher.backends import PollingBackend
from codex_monitor.watcher.service import WatchService


class WatchServiceTests(unittest.IsolatedAsyncioTestCase):
    async def test_missing_root_does_not_start(self) -> None:
        service = WatchService()
        started = await service.start(SessionScanner("/nonexistent/codex/sessions"), backend=PollingBackend())
        self.assertFalse(started)
        self.assertFalse(service.is_running)
        self.assertIsNone(service.watcher)

    async def test_start_and_stop(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        service = WatchService()

        started = await service.start(SessionScanner(Path(tmpdir.name)), backend=PollingBackend(interval=0.05))
        self.assertTrue(started)
        self.assertTrue(service.is_running)
        self.assertTrue(await service.start(SessionScanner(Path(tmpdir.name))))

        await service.stop()
        self.assertFalse(service.is_running)
        self.assertEqual(service.tracker.list(), [])


if __name__ == "__main__":
    unittest.main()
