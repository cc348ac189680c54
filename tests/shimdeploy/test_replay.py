import json
import tempfile
import unittest
from pathlib import Path

from shimdeploy.trace import Replay, TraceEmitter, TraceStoreJSONL


class TestReplay(unittest.TestCase):
    def _write_runs(self, path: Path) -> None:
        first = TraceEmitter(TraceStoreJSONL(path, durable=False), run_id="run_a")
        first.emit("transition_started", action="install", kind="containerd")
        first.emit("transition_finished", action="install", kind="containerd")
        second = TraceEmitter(TraceStoreJSONL(path, durable=False), run_id="run_b")
        second.emit("transition_started", action="cleanup", kind="containerd")
        second.emit("error", action="cleanup", kind="containerd", step="cleanup_runtime", message="boom")

    def test_filters(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "trace.jsonl"
            self._write_runs(path)
            replay = Replay(path)

            self.assertEqual(len(list(replay.iter_events())), 4)
            self.assertEqual([e["run_id"] for e in replay.iter_events(action="install")], ["run_a", "run_a"])
            self.assertEqual([e["action"] for e in replay.iter_events(event_type="transition_started")], ["install", "cleanup"])
            self.assertEqual([e["event_type"] for e in replay.iter_events(run_id="run_b", action="cleanup")], ["transition_started", "error"])

    def test_last_outcome(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "trace.jsonl"
            self.assertIsNone(Replay(path).last_outcome())

            self._write_runs(path)
            self.assertEqual(Replay(path).last_outcome()["event_type"], "error")
            self.assertEqual(Replay(path).last_outcome(action="install")["event_type"], "transition_finished")
            self.assertIsNone(Replay(path).last_outcome(action="reset"))

    def test_torn_last_line_is_ignored(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "trace.jsonl"
            self._write_runs(path)
            with path.open("a", encoding="utf-8") as f:
                f.write('{"ts": "2024-01-01T00:00:00Z", "run_')

            self.assertEqual(len(list(Replay(path).iter_events())), 4)

    def test_corrupt_middle_line_raises(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "trace.jsonl"
            path.write_text("not json\n" + json.dumps({"event_type": "error"}) + "\n", encoding="utf-8")

            with self.assertRaises(json.JSONDecodeError):
                list(Replay(path).iter_events())
