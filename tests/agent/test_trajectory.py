"""Tests for agent/trajectory.py -- debug file layout and the recent view."""

import json

from agent.trajectory import NullRecorder, TrajectoryRecorder, recorder_or_null, render_messages


class TestRecording:
    def test_layout(self, tmp_path):
        rec = TrajectoryRecorder.for_run(tmp_path, "run_1")
        rec.record_initial({"url": "https://a.example/v", "htmlChars": 10})
        rec.record_input(1, [{"role": "system", "content": "SYS"}])
        rec.record_output(1, '{"final": {}}')
        root = tmp_path / "debug" / "run_1"
        initial = (root / "initial_input.md").read_text(encoding="utf-8")
        assert initial.startswith("# Initial Input")
        assert json.loads(initial.split("```json\n")[1].split("\n```")[0])["htmlChars"] == 10
        assert (root / "llm_input_step_1.md").read_text(encoding="utf-8") == "## [0] system\n\nSYS\n"
        assert (root / "llm_output_step_1.md").read_text(encoding="utf-8") == '{"final": {}}'

    def test_child_prefixes(self, tmp_path):
        child = TrajectoryRecorder.for_run(tmp_path, "run_1").child("subagent_static")
        child.record_input(2, [])
        child.record_output(2, "out")
        sub = tmp_path / "debug" / "run_1" / "subagent_static"
        assert (sub / "input_2.md").exists()
        assert (sub / "output_2.md").read_text(encoding="utf-8") == "out"

    def test_render_messages(self):
        text = render_messages([{"role": "user", "content": "a"}, {"role": "assistant", "content": "b"}])
        assert text == "## [0] user\n\na\n\n## [1] assistant\n\nb\n"


class TestReadRecent:
    def test_latest_outputs_in_step_order(self, tmp_path):
        rec = TrajectoryRecorder.for_run(tmp_path, "run_1")
        for step in (1, 2, 10):
            rec.record_output(step, f"out {step}")
        rec.child("subagent_network").record_output(1, "net 1")
        (tmp_path / "debug" / "server.log").write_text("line\n", encoding="utf-8")
        recent = rec.read_recent(limit=2)
        assert recent["llmOutputs"] == ["out 2", "out 10"]
        assert recent["subOutputs"] == ["net 1"]
        assert recent["logTail"] == [{"file": "server.log", "tail": "line\n"}]

    def test_empty_run(self, tmp_path):
        recent = TrajectoryRecorder.for_run(tmp_path, "run_x").read_recent()
        assert recent == {"llmOutputs": [], "subOutputs": [], "logTail": []}


class TestNullRecorder:
    def test_writes_nothing(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        rec = NullRecorder()
        rec.record_output(1, "x")
        rec.child("subagent_static").record_input(1, [])
        assert list(tmp_path.iterdir()) == []
        assert rec.read_recent() == {"llmOutputs": [], "subOutputs": [], "logTail": []}

    def test_recorder_or_null(self, tmp_path):
        real = TrajectoryRecorder(tmp_path)
        assert recorder_or_null(real) is real
        assert isinstance(recorder_or_null(None), NullRecorder)
